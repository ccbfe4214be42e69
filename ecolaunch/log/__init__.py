"""
Logging module for ecolaunch.
This module provides the logging setup shared by the console and the supervisor.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
