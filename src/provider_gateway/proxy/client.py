"""
Client HTTPX sortant avec timeouts par provider et retry.

Pourquoi cette forme:
- Les providers ont des comportements différents (latence, cold starts)
- Le transport (empreinte/NO_PROXY) est injecté: un seul client partagé
- Les retries ne portent que sur les erreurs réseau (pas sur les 4xx)
"""
import asyncio
import logging
from typing import Dict, Optional

import httpx

from .transport import BUFFER_RESPONSE_EXTENSION

logger = logging.getLogger(__name__)


# Timeouts par provider (secondes)
PROVIDER_TIMEOUTS = {
    "antigravity": 300.0,  # Les modèles "thinking" répondent lentement
    "gemini-cli": 180.0,
    "gemini": 180.0,
    "claude": 180.0,
    "codex": 300.0,
    "github": 120.0,
    "kiro": 180.0,
    "openai": 120.0,
    "openrouter": 150.0,
    "qwen": 120.0,
    "iflow": 120.0,
    "default": 120.0
}


class ProxyClient:
    """
    Client HTTP sortant vers les APIs provider.

    Gère:
    - Timeouts configurables par provider
    - Retry avec backoff exponentiel
    - Un `httpx.AsyncClient` unique au-dessus du transport injecté
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 120.0,
        max_retries: int = 2,
        retry_delay: float = 1.0
    ):
        self.transport = transport
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self.transport,
                # Pourquoi ces limits: évite l'épuisement des connexions
                limits=httpx.Limits(
                    max_keepalive_connections=20,
                    max_connections=50
                )
            )
        return self._client

    async def __aenter__(self) -> "ProxyClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def timeout_for(self, provider_type: str) -> float:
        return PROVIDER_TIMEOUTS.get(provider_type, self.timeout)

    def build_request(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        content: Optional[str] = None,
        provider_type: str = "default",
        data: Optional[Dict[str, str]] = None,
    ) -> httpx.Request:
        """
        Construit une requête HTTPX.

        Le timeout est porté par la requête (extension), jamais par le transport.
        """
        timeout = httpx.Timeout(self.timeout_for(provider_type), connect=10.0)
        return self.client.build_request(
            method,
            url,
            headers=headers,
            content=content,
            data=data,
            timeout=timeout,
        )

    async def send_streaming(
        self,
        request: httpx.Request,
        provider_type: str = "default"
    ) -> httpx.Response:
        """
        Envoie une requête en mode streaming avec retry.

        L'appelant doit fermer la réponse (`await response.aclose()`).
        """
        return await self._send_with_retry(request, provider_type, stream=True)

    async def send(
        self,
        request: httpx.Request,
        provider_type: str = "default"
    ) -> httpx.Response:
        """Envoie une requête et retourne la réponse complète avec retry."""
        return await self._send_with_retry(request, provider_type, stream=False)

    async def _send_with_retry(
        self,
        request: httpx.Request,
        provider_type: str,
        stream: bool
    ) -> httpx.Response:
        """
        Pourquoi retry seulement sur certaines erreurs:
        - ReadError/ConnectError/Timeout: problème réseau, on retry
        - Réponse HTTP (même 5xx): l'executor décide (rotation d'URL)
        """
        if not stream:
            request.extensions[BUFFER_RESPONSE_EXTENSION] = True

        for attempt in range(self.max_retries + 1):
            try:
                return await self.client.send(request, stream=stream)
            except (httpx.ReadError, httpx.ConnectError, httpx.TimeoutException) as e:
                if attempt >= self.max_retries:
                    raise
                delay = self.retry_delay * (2 ** attempt)  # Backoff exponentiel
                logger.warning(
                    f"⚠️  [CLIENT] {provider_type}: retry {attempt + 1}/{self.max_retries} "
                    f"après {delay:.1f}s: {e}"
                )
                await asyncio.sleep(delay)

        raise httpx.ConnectError("Échec après retries", request=request)

    async def post_form(
        self,
        url: str,
        data: Dict[str, str],
        headers: Optional[Dict[str, str]] = None,
        provider_type: str = "default"
    ) -> httpx.Response:
        """POST application/x-www-form-urlencoded (échanges OAuth)."""
        request = self.build_request(
            "POST", url, {"Accept": "application/json", **(headers or {})},
            data=data, provider_type=provider_type,
        )
        return await self.send(request, provider_type)

    async def post_json(
        self,
        url: str,
        payload: Dict,
        headers: Optional[Dict[str, str]] = None,
        provider_type: str = "default"
    ) -> httpx.Response:
        """POST JSON (échanges OAuth style Anthropic/Kiro)."""
        request = self.client.build_request(
            "POST", url,
            headers={"Accept": "application/json", **(headers or {})},
            json=payload,
            timeout=httpx.Timeout(self.timeout_for(provider_type), connect=10.0),
        )
        return await self.send(request, provider_type)

    async def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        provider_type: str = "default"
    ) -> httpx.Response:
        request = self.build_request("GET", url, headers or {}, provider_type=provider_type)
        return await self.send(request, provider_type)


def create_proxy_client(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = 120.0,
    max_retries: int = 2,
    retry_delay: float = 1.0
) -> ProxyClient:
    """
    Crée un client proxy.

    Args:
        transport: Transport sortant (FingerprintTransport, MockTransport...)
        timeout: Timeout en secondes
        max_retries: Nombre de retries sur erreur réseau
        retry_delay: Délai initial entre retries (backoff exponentiel)

    Returns:
        Instance de ProxyClient
    """
    return ProxyClient(
        transport=transport,
        timeout=timeout,
        max_retries=max_retries,
        retry_delay=retry_delay
    )
