"""
Logging handlers for ecolaunch.
"""

from .loki import LokiHandler

__all__ = ["LokiHandler"]
