"""
Contexte de la gateway: propriétaire explicite de l'état du process.

Registre d'executors, cache de session, transport/client sortant, store et
verrous vivent ici plutôt qu'en variables de module: un test (ou un worker)
crée son contexte, le réinitialise et le ferme.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from .config.settings import Settings
from .executors import ExecutorRegistry
from .proxy.client import ProxyClient, create_proxy_client
from .proxy.transport import create_transport
from .services.credential_store import CredentialStore, InMemoryCredentialStore
from .services.credentials import CredentialManager
from .services.gateway import GatewayService
from .services.locks import KeyedLocks
from .services.quota import AdmissionController
from .services.session_cache import SessionCache

logger = logging.getLogger(__name__)


@dataclass
class GatewayContext:
    settings: Settings
    store: CredentialStore
    http: ProxyClient
    session_cache: SessionCache
    registry: ExecutorRegistry
    admission: AdmissionController
    credentials: CredentialManager
    gateway: GatewayService
    api_key_locks: KeyedLocks = field(default_factory=KeyedLocks)
    connection_locks: KeyedLocks = field(default_factory=KeyedLocks)

    def reset(self) -> None:
        """Vide les sessions, les signatures et les DefaultExecutor mémoïsés."""
        self.session_cache.clear_session_store()
        self.registry.clear()
        logger.debug("[CONTEXT] Contexte réinitialisé")

    async def aclose(self) -> None:
        """Ferme le client sortant (et son transport)."""
        await self.http.aclose()
        logger.debug("[CONTEXT] Client sortant fermé")

    async def __aenter__(self) -> "GatewayContext":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()


def create_context(
    settings: Optional[Settings] = None,
    store: Optional[CredentialStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> GatewayContext:
    """
    Construit un contexte complet.

    Args:
        settings: Configuration (défaut: config.toml + environnement)
        store: Credential Store (défaut: store mémoire vide)
        transport: Transport sortant (défaut: selon le mode de déploiement)

    Returns:
        GatewayContext prêt à l'emploi
    """
    settings = settings or Settings.load()
    store = store if store is not None else InMemoryCredentialStore()
    transport = transport or create_transport(settings)

    http = create_proxy_client(
        transport=transport,
        timeout=settings.transport.timeout,
        max_retries=settings.transport.max_retries,
        retry_delay=settings.transport.retry_delay,
    )
    session_cache = SessionCache()
    registry = ExecutorRegistry(http, settings=settings, session_cache=session_cache)
    api_key_locks = KeyedLocks()
    connection_locks = KeyedLocks()
    admission = AdmissionController(store, api_key_locks)
    credentials = CredentialManager(store, registry, connection_locks)

    logger.info(f"🚀 [CONTEXT] Gateway prête (mode {settings.deployment_mode})")
    return GatewayContext(
        settings=settings,
        store=store,
        http=http,
        session_cache=session_cache,
        registry=registry,
        admission=admission,
        credentials=credentials,
        gateway=GatewayService(admission, registry, credentials),
        api_key_locks=api_key_locks,
        connection_locks=connection_locks,
    )
