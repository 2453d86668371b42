"""
Module core: constantes, exceptions et modèles partagés.
"""

from .exceptions import (
    GatewayError,
    ConfigurationError,
    ProviderError,
    TransportError,
    AdmissionError,
    AuthError,
    ModelPermissionError,
    QuotaError,
)
from .models import ApiKey, ProviderCredentials, AdmissionResult

__all__ = [
    "GatewayError",
    "ConfigurationError",
    "ProviderError",
    "TransportError",
    "AdmissionError",
    "AuthError",
    "ModelPermissionError",
    "QuotaError",
    "ApiKey",
    "ProviderCredentials",
    "AdmissionResult",
]
