"""
This module initializes the console package, exposing the interactive dashboard
used by parallel workflows and the command dispatcher behind it.
"""

from .dashboard import ConsoleDashboard
from .process import execute_command
from .handler import print_help

__all__ = ["ConsoleDashboard", "execute_command", "print_help"]
