"""
Contrat commun des executors (une stratégie par provider).

Un executor sait, pour son provider:
- construire l'URL, les headers et le body sortants
- dire si les credentials doivent être rafraîchis, et les rafraîchir
- exécuter l'appel en tournant sur ses URLs upstream en cas d'échec transitoire
"""
import copy
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from ..core.constants import RETRYABLE_UPSTREAM_STATUS, TOKEN_EXPIRY_BUFFER_MS
from ..core.exceptions import ProviderError
from ..core.models import ProviderCredentials, now_ms, parse_expiry_ms
from ..proxy.client import ProxyClient
from ..services.session_cache import SessionCache
from ..services.token_refresh import TokenPatch, refresh_token_by_provider

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Résultat d'un appel upstream."""
    response: httpx.Response
    url: str
    headers: Dict[str, str]
    transformed_body: Dict[str, Any]
    url_index: int = 0
    session_id: Optional[str] = None


class BaseExecutor:
    """
    Executor de base.

    Les sous-classes surchargent les capacités dont leur provider a besoin;
    tout le reste (refresh générique, rotation d'URL) est hérité.
    """

    def __init__(
        self,
        provider: str,
        config: Dict[str, Any],
        http: ProxyClient,
        session_cache: Optional[SessionCache] = None,
        expiry_buffer_ms: int = TOKEN_EXPIRY_BUFFER_MS
    ):
        self.provider = provider
        self.config = config or {}
        self.http = http
        self.session_cache = session_cache or SessionCache()
        self.expiry_buffer_ms = expiry_buffer_ms

    @property
    def base_urls(self) -> List[str]:
        urls = self.config.get("base_urls")
        if urls:
            return list(urls)
        base_url = self.config.get("base_url")
        return [base_url] if base_url else []

    @property
    def url_count(self) -> int:
        return max(1, len(self.base_urls))

    def base_url(self, url_index: int = 0) -> str:
        urls = self.base_urls
        if not urls:
            raise ProviderError(f"Aucune URL configurée pour le provider {self.provider}", provider=self.provider)
        return urls[min(url_index, len(urls) - 1)].rstrip("/")

    def build_url(self, model: str, stream: bool, url_index: int = 0) -> str:
        return self.base_url(url_index)

    def build_headers(self, credentials: ProviderCredentials, stream: bool = True) -> Dict[str, str]:
        token = credentials.access_token or credentials.api_key
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
        }

    def transform_request(
        self,
        model: str,
        body: Dict[str, Any],
        stream: bool,
        credentials: ProviderCredentials
    ) -> Dict[str, Any]:
        """Identité (copie): le body de l'appelant n'est jamais muté."""
        return copy.deepcopy(body)

    def needs_refresh(self, credentials: ProviderCredentials) -> bool:
        """True si le token expire dans moins de `expiry_buffer_ms`."""
        expires_at = parse_expiry_ms(credentials.expires_at)
        if expires_at is None:
            return False
        return expires_at - now_ms() < self.expiry_buffer_ms

    async def refresh_credentials(
        self,
        credentials: ProviderCredentials,
        log: logging.Logger = logger
    ) -> Optional[TokenPatch]:
        return await refresh_token_by_provider(
            self.http, self.provider, credentials, log, provider_config=self.config
        )

    async def execute(
        self,
        model: str,
        body: Dict[str, Any],
        stream: bool,
        credentials: ProviderCredentials,
        log: logging.Logger = logger
    ) -> ExecutionResult:
        """
        Exécute l'appel upstream.

        Passe à l'URL suivante sur 429/5xx ou erreur réseau tant qu'il en
        reste; la dernière réponse (ou erreur) est rendue à l'appelant.
        En streaming, l'appelant ferme `result.response`.
        """
        transformed = self.transform_request(model, body, stream, credentials)
        content = json.dumps(transformed)
        send = self.http.send_streaming if stream else self.http.send

        for url_index in range(self.url_count):
            url = self.build_url(model, stream, url_index)
            headers = self.build_headers(credentials, stream)
            request = self.http.build_request("POST", url, headers, content=content, provider_type=self.provider)
            has_next = url_index + 1 < self.url_count

            try:
                response = await send(request, self.provider)
            except httpx.TransportError as e:
                if not has_next:
                    raise
                log.warning(f"⚠️  [EXECUTOR] {self.provider}: erreur réseau sur {url}, URL suivante ({e})")
                continue

            if response.status_code in RETRYABLE_UPSTREAM_STATUS and has_next:
                log.warning(
                    f"⚠️  [EXECUTOR] {self.provider}: HTTP {response.status_code} sur {url}, URL suivante"
                )
                await response.aclose()
                continue

            return ExecutionResult(
                response=response,
                url=url,
                headers=headers,
                transformed_body=transformed,
                url_index=url_index,
            )

        raise ProviderError(f"Aucune URL disponible pour le provider {self.provider}", provider=self.provider)
