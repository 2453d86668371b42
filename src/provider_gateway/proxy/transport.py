"""
Transport HTTPX sortant: contournement proxy + empreinte navigateur.

Chaque appel sortant passe par `FingerprintTransport`:
- NO_PROXY matché -> transport httpx direct, non modifié
- sinon -> session curl_cffi qui imite un Chrome fixe (TLS/HTTP2), avec les
  proxies de l'environnement configurés au niveau de la session
- échec de curl_cffi -> un seul nouvel essai via le transport direct

Le transport n'impose aucun timeout: seul celui posé par l'appelant sur la
requête (extension `timeout`) est transmis. L'annulation (CancelledError)
n'est jamais interceptée par le fallback.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
from curl_cffi.requests import AsyncSession

from ..config.settings import Settings, TransportConfig
from ..core.exceptions import TransportError

logger = logging.getLogger(__name__)

# curl gère la décompression et le framing: ces headers ne doivent pas
# être réinterprétés par httpx
_CURL_MANAGED_RESPONSE_HEADERS = {"content-encoding", "content-length", "transfer-encoding", "connection"}
_CURL_MANAGED_REQUEST_HEADERS = {"host", "content-length", "connection", "accept-encoding"}

# Extension de requête posée par ProxyClient pour les appels non streamés:
# le corps est lu dans le transport, un échec de lecture passe par le fallback
BUFFER_RESPONSE_EXTENSION = "gateway.buffer_response"


def parse_no_proxy(value: Optional[str]) -> List[str]:
    """Découpe une liste NO_PROXY séparée par des virgules."""
    if not value:
        return []
    return [p.strip().lower() for p in value.split(",") if p.strip()]


def should_bypass_proxy(host: str, patterns: List[str]) -> bool:
    """
    Indique si l'hôte doit contourner le client d'empreinte.

    Règles:
    - `*` contourne tout
    - `.example.com` matche `example.com` et `*.example.com`
    - `example.com` matche l'hôte exact et `*.example.com`
    """
    host = (host or "").lower()
    for pattern in patterns:
        if pattern == "*":
            return True
        if pattern.startswith("."):
            if host == pattern[1:] or host.endswith(pattern):
                return True
        elif host == pattern or host.endswith(f".{pattern}"):
            return True
    return False


def normalize_proxy_url(proxy_url: Optional[str]) -> Optional[str]:
    """Accepte aussi les valeurs style `127.0.0.1:7890`."""
    if not proxy_url:
        return None
    proxy_url = proxy_url.strip()
    if "://" in proxy_url:
        return proxy_url
    return f"http://{proxy_url}"


def build_proxies(config: TransportConfig) -> Dict[str, str]:
    """Proxies curl_cffi par schéma, ALL_PROXY en dernier recours."""
    proxies = {}
    http_proxy = normalize_proxy_url(config.http_proxy or config.all_proxy)
    https_proxy = normalize_proxy_url(config.https_proxy or config.all_proxy)
    if http_proxy:
        proxies["http"] = http_proxy
    if https_proxy:
        proxies["https"] = https_proxy
    return proxies


class _CurlResponseStream(httpx.AsyncByteStream):
    """Expose le corps d'une réponse curl_cffi en streaming comme un flux httpx."""

    def __init__(self, response: Any):
        self._response = response

    async def __aiter__(self):
        # Les erreurs curl en cours de lecture deviennent des erreurs httpx
        # (retry client, rotation d'URL, refresh -> None)
        try:
            async for chunk in self._response.aiter_content():
                yield chunk
        except Exception as e:
            raise httpx.ReadError(f"Lecture du corps en échec: {e}") from e

    async def aclose(self) -> None:
        await self._response.aclose()


class FingerprintTransport(httpx.AsyncBaseTransport):
    """
    Transport httpx avec empreinte navigateur et fallback direct.

    Args:
        config: Configuration transport (impersonate, proxies, NO_PROXY)
        fallback: Transport non modifié (contournement + fallback)
        session_factory: Fabrique de session d'empreinte (injectable en test)
    """

    def __init__(
        self,
        config: TransportConfig,
        fallback: Optional[httpx.AsyncBaseTransport] = None,
        session_factory: Optional[Callable[[], Any]] = None,
    ):
        self.config = config
        self.bypass_patterns = parse_no_proxy(config.no_proxy)
        self.fallback = fallback or httpx.AsyncHTTPTransport()
        self._session_factory = session_factory or self._create_session
        self._session = None

    def _create_session(self) -> AsyncSession:
        proxies = build_proxies(self.config)
        logger.debug(
            f"🛡️ [TRANSPORT] Session empreinte '{self.config.impersonate}' "
            f"(proxies: {sorted(proxies) or 'aucun'})"
        )
        return AsyncSession(impersonate=self.config.impersonate, proxies=proxies or None)

    def _get_session(self) -> Any:
        if self._session is None:
            self._session = self._session_factory()
        return self._session

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if should_bypass_proxy(host, self.bypass_patterns):
            logger.debug(f"[TRANSPORT] NO_PROXY match pour {host}, transport direct")
            return await self.fallback.handle_async_request(request)

        try:
            return await self._send_fingerprinted(request)
        except TransportError as e:
            logger.warning(f"⚠️  [TRANSPORT] {e.message}, fallback direct: {e.__cause__}")
            return await self.fallback.handle_async_request(request)

    async def _send_fingerprinted(self, request: httpx.Request) -> httpx.Response:
        body = await request.aread()
        headers = {
            k: v for k, v in request.headers.items()
            if k.lower() not in _CURL_MANAGED_REQUEST_HEADERS
        }
        # Laisse l'User-Agent du navigateur imité si l'appelant n'en a pas fixé
        if headers.get("user-agent", "").startswith("python-httpx"):
            headers.pop("user-agent")

        kwargs = {}
        timeout = (request.extensions.get("timeout") or {}).get("read")
        if timeout is not None:
            kwargs["timeout"] = timeout

        buffered = bool(request.extensions.get(BUFFER_RESPONSE_EXTENSION))
        try:
            response = await self._get_session().request(
                request.method,
                str(request.url),
                headers=headers,
                data=body or None,
                stream=True,
                **kwargs,
            )
            if buffered:
                try:
                    content = b"".join([chunk async for chunk in response.aiter_content()])
                finally:
                    await response.aclose()
        except Exception as e:
            raise TransportError("Client empreinte en échec", url=str(request.url)) from e

        response_headers = [
            (k, v) for k, v in response.headers.items()
            if k.lower() not in _CURL_MANAGED_RESPONSE_HEADERS
        ]
        if buffered:
            return httpx.Response(status_code=response.status_code, headers=response_headers, content=content)
        return httpx.Response(
            status_code=response.status_code,
            headers=response_headers,
            stream=_CurlResponseStream(response),
        )

    async def aclose(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
        await self.fallback.aclose()


def create_transport(settings: Settings) -> httpx.AsyncBaseTransport:
    """
    Crée le transport sortant selon le mode de déploiement.

    En mode managé (sandbox multi-tenant), le transport httpx d'origine est
    utilisé tel quel: pas d'empreinte, pas de contournement.
    """
    if settings.is_managed:
        logger.info("☁️ [TRANSPORT] Mode managé: transport httpx non modifié")
        return httpx.AsyncHTTPTransport()
    return FingerprintTransport(settings.transport)
