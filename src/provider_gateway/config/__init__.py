"""
Configuration de Provider Gateway.
"""

from .loader import load_config, reload_config, get_config
from .settings import Settings, TransportConfig

__all__ = [
    "load_config",
    "reload_config",
    "get_config",
    "Settings",
    "TransportConfig",
]
