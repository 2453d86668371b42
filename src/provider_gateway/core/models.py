"""
Dataclasses métier pour Provider Gateway.
"""
import math
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional


def to_number(value: Any) -> int:
    """Convertit une valeur du store en entier (0 si non numérique)."""
    if isinstance(value, bool):
        return int(value)
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(n):
        return 0
    return int(n)


def parse_expiry_ms(value: Any) -> Optional[float]:
    """
    Normalise une date d'expiration en epoch millisecondes.

    Accepte un ISO-8601, un epoch en millisecondes ou en secondes
    (les valeurs < 1e12 sont des secondes, cf. `expires_at` de Copilot).

    Returns:
        Epoch ms ou None si la valeur est absente/illisible
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return dt.timestamp() * 1000
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) * 1000 if value < 1e12 else float(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return parse_expiry_ms(float(text))
        except ValueError:
            pass
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parse_expiry_ms(dt)
    return None


def now_ms() -> float:
    return datetime.now(timezone.utc).timestamp() * 1000


@dataclass
class ApiKey:
    """Clé API d'un appelant, avec quotas et liste de modèles autorisés."""
    id: str
    key: str = ""
    name: str = ""
    is_active: bool = True
    request_limit: int = 0
    token_limit: int = 0
    request_used: int = 0
    token_used: int = 0
    allowed_models: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApiKey":
        """Crée une instance depuis un enregistrement du store."""
        allowed = data.get("allowed_models")
        return cls(
            id=str(data.get("id", "")),
            key=str(data.get("key") or ""),
            name=str(data.get("name") or ""),
            is_active=data.get("is_active") is not False,
            request_limit=to_number(data.get("request_limit")),
            token_limit=to_number(data.get("token_limit")),
            request_used=to_number(data.get("request_used")),
            token_used=to_number(data.get("token_used")),
            allowed_models=list(allowed) if isinstance(allowed, (list, tuple, set)) else [],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convertit la clé en dictionnaire (secret masqué)."""
        return {
            "id": self.id,
            "name": self.name,
            "key": f"{self.key[:8]}***" if self.key else "",
            "is_active": self.is_active,
            "request_limit": self.request_limit,
            "token_limit": self.token_limit,
            "request_used": self.request_used,
            "token_used": self.token_used,
            "allowed_models": list(self.allowed_models),
        }


# Champs de la connexion qui ne sont pas des credentials
_CONNECTION_METADATA = ("id", "provider", "name", "is_active", "priority", "created_at", "updated_at")

CREDENTIAL_FIELDS = (
    "access_token",
    "refresh_token",
    "api_key",
    "expires_at",
    "expires_in",
    "connection_id",
    "email",
    "project_id",
)


@dataclass
class ProviderCredentials:
    """
    Credentials d'une connexion provider.

    Les champs spécifiques à un provider (token dérivé Copilot, profile ARN
    Kiro, account id Codex...) vivent dans `provider_specific_data`.
    """
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    api_key: Optional[str] = None
    expires_at: Optional[Any] = None
    expires_in: Optional[int] = None
    connection_id: Optional[str] = None
    email: Optional[str] = None
    project_id: Optional[str] = None
    provider_specific_data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Lit un champ connu ou un champ spécifique au provider."""
        if key in CREDENTIAL_FIELDS:
            value = getattr(self, key)
            return default if value is None else value
        return self.provider_specific_data.get(key, default)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderCredentials":
        """Crée une instance depuis une connexion du store (ou un patch de refresh)."""
        extra = dict(data.get("provider_specific_data") or {})
        for key, value in data.items():
            if key not in CREDENTIAL_FIELDS and key != "provider_specific_data":
                extra[key] = value
        values = {name: data.get(name) for name in CREDENTIAL_FIELDS}
        if values["connection_id"] is None and data.get("id") is not None:
            values["connection_id"] = str(data["id"])
        for key in _CONNECTION_METADATA:
            extra.pop(key, None)
        return cls(provider_specific_data=extra, **values)

    def merged(self, patch: Dict[str, Any]) -> "ProviderCredentials":
        """
        Retourne de nouveaux credentials avec le patch appliqué.

        Un `expires_in` sans `expires_at` est converti en date absolue.
        """
        data = self.to_dict()
        extra = dict(data.pop("provider_specific_data"))
        for key, value in patch.items():
            if key in CREDENTIAL_FIELDS:
                data[key] = value
            elif key == "provider_specific_data":
                extra.update(value or {})
            else:
                extra[key] = value
        if patch.get("expires_in") and not patch.get("expires_at"):
            expires = datetime.now(timezone.utc) + timedelta(seconds=to_number(patch["expires_in"]))
            data["expires_at"] = expires.isoformat()
        data["provider_specific_data"] = extra
        return ProviderCredentials(**data)

    def to_dict(self) -> Dict[str, Any]:
        result = {f.name: getattr(self, f.name) for f in fields(self)}
        result["provider_specific_data"] = dict(self.provider_specific_data)
        return result


@dataclass
class AdmissionResult:
    """Résultat du contrôle d'admission."""
    ok: bool
    response: Optional[Any] = None  # JSONResponse prête à renvoyer si refus
    api_key_id: Optional[str] = None
    api_key: Optional[ApiKey] = None
