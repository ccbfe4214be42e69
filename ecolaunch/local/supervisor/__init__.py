"""
The Supervisor package.
Manages the lifecycle of the apps declared in an ecosystem file.

This package contains the central ProcessManager class and its helper modules,
which together handle launching, stopping, supervising and restarting the apps.
"""
from .process_utils import LaunchResult, SpawnError
from .supervisor import ProcessManager

__all__ = ['ProcessManager', 'LaunchResult', 'SpawnError']
