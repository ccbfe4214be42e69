"""
ecolaunch: launches the apps declared in an ecosystem file, redirects their
output to log files and supervises them.
"""

__version__ = "0.1.0"
