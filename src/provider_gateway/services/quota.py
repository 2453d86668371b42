"""
Contrôle d'admission: clé API, liste de modèles autorisés, quotas.

Chaque requête entrante passe ici avant toute résolution d'executor.
Les refus sont renvoyés tels quels au client (JSON format OpenAI,
401/403/429) et ne sont jamais retentés par la gateway.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from fastapi import Request

from ..core.exceptions import AdmissionError, AuthError, ModelPermissionError, QuotaError
from ..core.models import AdmissionResult, ApiKey, to_number
from .credential_store import CredentialStore
from .locks import KeyedLocks

logger = logging.getLogger(__name__)


def parse_bearer_api_key(request: Request) -> Optional[str]:
    """Extrait le secret `Bearer` du header Authorization."""
    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def normalize_allowed_models(value: Any) -> List[str]:
    """Trim, retire les vides, déduplique en gardant l'ordre."""
    if not isinstance(value, (list, tuple, set)):
        return []
    seen = []
    for item in value:
        model = str(item or "").strip()
        if model and model not in seen:
            seen.append(model)
    return seen


def _tail(model: str) -> str:
    return model.split("/", 1)[1] if "/" in model else model


def model_matches_allowed(model: Optional[str], allowed_model: Optional[str]) -> bool:
    """
    Deux identifiants matchent si:
    - ils sont égaux
    - l'un est l'autre suivi d'un suffixe `/...`
    - leurs queues (sans le premier segment `namespace/`) sont égales
    """
    request_model = str(model or "").strip()
    allow = str(allowed_model or "").strip()
    if not request_model or not allow:
        return False

    if request_model == allow:
        return True
    if request_model.startswith(f"{allow}/") or allow.startswith(f"{request_model}/"):
        return True

    request_tail = _tail(request_model)
    allow_tail = _tail(allow)
    return bool(request_tail and allow_tail and request_tail == allow_tail)


def is_model_allowed(model: Optional[str], allowed_models: Optional[Iterable[str]]) -> bool:
    """Liste vide (ou modèle absent) = tout est autorisé."""
    allowed = list(allowed_models or [])
    if not model or not allowed:
        return True
    return any(model_matches_allowed(model, entry) for entry in allowed)


def build_quota_snapshot(api_key: ApiKey, exhausted: Optional[str] = None) -> Dict[str, Any]:
    """
    Photographie des quotas au format wire.

    Le remaining d'une dimension sans limite vaut None; celui de la
    dimension épuisée (`"request"` ou `"token"`) vaut 0.
    """
    request_limit, token_limit = api_key.request_limit, api_key.token_limit
    request_remaining = max(0, request_limit - api_key.request_used) if request_limit > 0 else None
    token_remaining = max(0, token_limit - api_key.token_used) if token_limit > 0 else None
    if exhausted == "request":
        request_remaining = 0
    elif exhausted == "token":
        token_remaining = 0
    return {
        "requestLimit": request_limit,
        "requestUsed": api_key.request_used,
        "requestRemaining": request_remaining,
        "tokenLimit": token_limit,
        "tokenUsed": api_key.token_used,
        "tokenRemaining": token_remaining,
    }


class AdmissionController:
    """
    Gate d'admission adossée au Credential Store.

    La vérification de quota et l'incrément du compteur sont faits sous un
    verrou par clé: deux requêtes concurrentes sur la même clé ne peuvent pas
    passer toutes deux la dernière unité de quota.
    """

    def __init__(self, store: CredentialStore, locks: Optional[KeyedLocks] = None):
        self.store = store
        self.locks = locks or KeyedLocks()

    async def enforce_api_key_quota(
        self,
        request: Request,
        consume_request: bool = True,
        model: Optional[str] = None
    ) -> AdmissionResult:
        """
        Valide la clé de l'appelant et consomme une unité de quota.

        Args:
            request: Requête entrante (header Authorization)
            consume_request: Incrémente le compteur de requêtes si admis
            model: Modèle demandé, pour la liste autorisée

        Returns:
            AdmissionResult (ok=False avec `response` prête à renvoyer si refus)
        """
        try:
            api_key = await self._admit(request, consume_request, model)
        except AdmissionError as e:
            logger.info(f"🚫 [ADMISSION] Refus {e.status_code} ({e.code})")
            return AdmissionResult(ok=False, response=e.to_response())
        return AdmissionResult(ok=True, api_key_id=api_key.id, api_key=api_key)

    async def _admit(self, request: Request, consume_request: bool, model: Optional[str]) -> ApiKey:
        raw_key = parse_bearer_api_key(request)
        if not raw_key:
            raise AuthError("Missing API key", code="missing_api_key")

        api_key = await self.store.get_api_key_by_value(raw_key)
        if api_key is None:
            raise AuthError("Invalid API key", code="invalid_api_key")
        if api_key.is_active is False:
            raise AuthError("API key is disabled", code="api_key_disabled")

        allowed_models = normalize_allowed_models(api_key.allowed_models)
        if not is_model_allowed(model, allowed_models):
            raise ModelPermissionError(model, allowed_models)

        async with self.locks.hold(api_key.id):
            # Relecture sous verrou: une requête concurrente a pu consommer
            api_key = await self.store.get_api_key_by_id(api_key.id) or api_key

            if api_key.request_limit > 0 and api_key.request_used >= api_key.request_limit:
                raise QuotaError("API key request quota exceeded", build_quota_snapshot(api_key, "request"))
            if api_key.token_limit > 0 and api_key.token_used >= api_key.token_limit:
                raise QuotaError("API key token quota exceeded", build_quota_snapshot(api_key, "token"))

            if consume_request:
                await self.store.increment_api_key_request_usage(api_key.id, 1)

        updated = await self.store.get_api_key_by_id(api_key.id)
        return updated or api_key

    async def record_api_key_token_usage(self, api_key_id: Optional[str], tokens: Optional[Dict[str, Any]] = None) -> int:
        """
        Ajoute prompt + completion au compteur de tokens de la clé.

        Returns:
            Nombre de tokens enregistrés (0 si rien à faire)
        """
        if not api_key_id or not tokens:
            return 0
        prompt = to_number(tokens.get("prompt_tokens") or tokens.get("input_tokens") or tokens.get("input"))
        completion = to_number(
            tokens.get("completion_tokens") or tokens.get("output_tokens") or tokens.get("output")
        )
        total = prompt + completion
        if total <= 0:
            return 0
        await self.store.increment_api_key_token_usage(api_key_id, total)
        return total
