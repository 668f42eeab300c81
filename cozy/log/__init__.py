"""
Logging module for cozy.
This module provides the console logging setup shared by the launcher and the dashboard.
"""

from .setup import setup_logging, PROC_LOGGER_PREFIX

__all__ = ["setup_logging", "PROC_LOGGER_PREFIX"]
