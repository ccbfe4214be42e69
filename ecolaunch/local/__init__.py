"""
Local package for the ecolaunch supervisor.

This package provides the effective settings, the ecosystem file loader,
the supervisor and the management console.
"""

from .config import effective_settings

__all__ = ["effective_settings"]
