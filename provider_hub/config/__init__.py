"""Configuration module"""

from .models import NetworkConfig, Settings

__all__ = ["NetworkConfig", "Settings"]
