"""
csvlab Configuration Package.

This package contains the centralized settings used by csvlab components.
"""

from config.manager import EnvironmentManager, env_manager

# Re-export the singleton instance for easy access
env = env_manager

__all__ = [
    "EnvironmentManager",
    "env_manager",
    "env",
]
