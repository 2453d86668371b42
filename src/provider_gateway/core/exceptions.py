"""
Exceptions personnalisées pour Provider Gateway.
"""
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse


class GatewayError(Exception):
    """Exception de base pour toutes les erreurs de la gateway."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code or "unknown_error"
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"[{self.code}] {self.message} - Détails: {self.details}"
        return f"[{self.code}] {self.message}"


class ConfigurationError(GatewayError):
    """Erreur de configuration (fichier manquant, valeur invalide)."""

    def __init__(self, message: str, config_key: str = None):
        super().__init__(
            message=message,
            code="config_error",
            details={"key": config_key} if config_key else {}
        )


class ProviderError(GatewayError):
    """Erreur liée à un provider (URL inconnue, configuration absente)."""

    def __init__(self, message: str, provider: str = None):
        super().__init__(
            message=message,
            code="provider_error",
            details={"provider": provider} if provider else {}
        )


class TransportError(GatewayError):
    """Échec du client d'empreinte réseau (récupéré par le fallback direct)."""

    def __init__(self, message: str, url: str = None):
        super().__init__(
            message=message,
            code="transport_error",
            details={"url": url} if url else {}
        )


class AdmissionError(GatewayError):
    """
    Refus du contrôle d'admission.

    Porte le statut HTTP et le type d'erreur du format OpenAI, pour être
    renvoyé tel quel à l'appelant via `to_response()`.
    """

    status_code: int = 400
    error_type: str = "invalid_request_error"

    def __init__(self, message: str, code: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=code, details=extra or {})

    def to_dict(self) -> Dict[str, Any]:
        """Corps JSON `{"error": {...}}` renvoyé au client."""
        error = {
            "message": self.message,
            "type": self.error_type,
            "code": self.code,
        }
        error.update(self.details)
        return {"error": error}

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            content=self.to_dict(),
            status_code=self.status_code,
            headers={"Access-Control-Allow-Origin": "*"},
        )


class AuthError(AdmissionError):
    """Clé API absente, inconnue ou désactivée."""

    status_code = 401
    error_type = "invalid_request_error"


class ModelPermissionError(AdmissionError):
    """Modèle absent de la liste autorisée de la clé."""

    status_code = 403
    error_type = "insufficient_permissions"

    def __init__(self, model: str, allowed_models: list):
        super().__init__(
            message=f"Model '{model}' is not allowed for this API key",
            code="model_not_allowed",
            extra={"allowedModels": list(allowed_models)},
        )


class QuotaError(AdmissionError):
    """Quota de requêtes ou de tokens épuisé."""

    status_code = 429
    error_type = "insufficient_quota"

    def __init__(self, message: str, quota: Dict[str, Any]):
        super().__init__(message=message, code="quota_exceeded", extra={"quota": quota})
        self.quota = quota
