"""
Local package for runpod_boss.

Holds the configuration object, the provisioning planner, the shared model
linker, the process supervisor and the command-line console.
"""

from .config import MergedSettings, load_settings

__all__ = ["MergedSettings", "load_settings"]
