"""
This module initializes the console package, exposing command execution,
status display and help for the command line.
"""

from .process import execute_command
from .handler import display_check, display_status, print_help

__all__ = ["execute_command", "display_check", "display_status", "print_help"]
