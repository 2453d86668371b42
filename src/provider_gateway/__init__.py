"""
Provider Gateway: accès unifié à plusieurs APIs de modèles.
"""
import logging

from .context import GatewayContext, create_context
from .services.gateway import DispatchResult, GatewayService

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "GatewayContext",
    "create_context",
    "GatewayService",
    "DispatchResult",
    "__version__",
]
