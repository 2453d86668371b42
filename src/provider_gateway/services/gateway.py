"""
Orchestration d'une requête à travers la gateway.

admission -> executor -> credentials frais -> appel upstream
(-> refresh forcé + un seul nouvel essai sur 401) -> usage
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from ..core.models import ProviderCredentials
from ..proxy.stream import extract_usage_from_response, extract_usage_from_stream
from .credentials import CredentialManager
from .quota import AdmissionController

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """
    Issue d'un dispatch.

    `response` est la réponse de refus (admission) quand `ok` est False,
    sinon `execution` porte la réponse upstream.
    """
    ok: bool
    response: Optional[JSONResponse] = None
    execution: Optional[Any] = None
    api_key_id: Optional[str] = None
    credentials: Optional[ProviderCredentials] = None
    refreshed: bool = False


class GatewayService:
    """Point d'entrée de la gateway pour la couche HTTP appelante."""

    def __init__(self, admission: AdmissionController, registry, credentials: CredentialManager):
        self.admission = admission
        self.registry = registry
        self.credentials = credentials

    async def dispatch(
        self,
        request: Request,
        provider: str,
        model: str,
        body: Dict[str, Any],
        credentials: ProviderCredentials,
        stream: bool = False,
        consume_request: bool = True,
        log: logging.Logger = logger
    ) -> DispatchResult:
        """
        Traite une requête déjà traduite vers le format du provider.

        Args:
            request: Requête entrante (clé API de l'appelant)
            provider: Provider cible
            model: Modèle cible (contrôlé contre la liste autorisée)
            body: Body au format du provider
            credentials: Credentials de la connexion provider choisie
            stream: Appel en streaming
            consume_request: Compte la requête dans le quota
            log: Logger

        Returns:
            DispatchResult
        """
        admission = await self.admission.enforce_api_key_quota(request, consume_request, model)
        if not admission.ok:
            return DispatchResult(ok=False, response=admission.response)

        executor = self.registry.get_executor(provider)
        fresh = await self.credentials.ensure_fresh(provider, credentials, log=log)
        result = await executor.execute(model, body, stream, fresh, log)
        refreshed = fresh is not credentials

        if result.response.status_code == 401:
            log.warning(f"🔐 [GATEWAY] {provider}: 401 upstream, refresh forcé et nouvel essai")
            retried = await self.credentials.ensure_fresh(provider, fresh, force=True, log=log)
            if retried is not fresh:
                await result.response.aclose()
                fresh = retried
                refreshed = True
                result = await executor.execute(model, body, stream, fresh, log)

        if not stream:
            await self._record_response_usage(admission.api_key_id, executor, result)

        log.info(f"📤 [GATEWAY] {provider}/{model}: HTTP {result.response.status_code}")
        return DispatchResult(
            ok=True,
            execution=result,
            api_key_id=admission.api_key_id,
            credentials=fresh,
            refreshed=refreshed,
        )

    async def _record_response_usage(self, api_key_id: Optional[str], executor, result) -> None:
        if not result.response.is_success:
            return
        try:
            data = result.response.json()
        except ValueError:
            return
        if not isinstance(data, dict):
            return
        capture = getattr(executor, "capture_signature", None)
        if capture is not None and result.session_id:
            capture(result.session_id, data)
        usage = extract_usage_from_response(data)
        if usage:
            await self.admission.record_api_key_token_usage(api_key_id, usage)

    async def record_stream_usage(
        self,
        api_key_id: Optional[str],
        buffer: bytes,
        provider: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> int:
        """
        Enregistre l'usage d'une réponse streamée, une fois le flux consommé.

        Avec `provider` et `session_id` (ceux de `result.execution`), les
        signatures du flux sont aussi mises en cache pour la session.

        Returns:
            Nombre de tokens enregistrés
        """
        if provider and session_id:
            capture = getattr(self.registry.get_executor(provider), "capture_signature", None)
            if capture is not None:
                capture(session_id, buffer)
        usage = extract_usage_from_stream(buffer)
        if not usage:
            return 0
        return await self.admission.record_api_key_token_usage(api_key_id, usage)
