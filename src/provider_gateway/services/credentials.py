"""
Gestion du cycle de vie des credentials provider.

Le CredentialManager décide (via l'executor) s'il faut rafraîchir, garantit
un seul refresh à la fois par connexion, et propose l'écriture au store.
"""
import logging
from typing import Any, Dict, Optional

from ..core.models import CREDENTIAL_FIELDS, ProviderCredentials
from .credential_store import CredentialStore
from .locks import KeyedLocks

logger = logging.getLogger(__name__)


def build_store_patch(patch: Dict[str, Any], refreshed: ProviderCredentials) -> Dict[str, Any]:
    """
    Convertit un patch de refresh au format du store.

    - `expires_in` -> `expires_at` absolu (calculé par `merged()`)
    - champs hors credentials -> `provider_specific_data`
    """
    store_patch: Dict[str, Any] = {}
    extras: Dict[str, Any] = {}
    for key, value in patch.items():
        if key in CREDENTIAL_FIELDS:
            store_patch[key] = value
        elif key == "provider_specific_data":
            extras.update(value or {})
        else:
            extras[key] = value
    if refreshed.expires_at is not None:
        store_patch["expires_at"] = refreshed.expires_at
    store_patch.pop("connection_id", None)
    if extras:
        store_patch["provider_specific_data"] = extras
    return store_patch


def _tokens(credentials: ProviderCredentials) -> tuple:
    return credentials.access_token, credentials.get("copilot_token")


class CredentialManager:
    """
    Refresh dé-dupliqué par connexion.

    Sous le verrou de la connexion, la version du store est relue: si une
    autre tâche a déjà rafraîchi, ses credentials sont réutilisés.
    """

    def __init__(self, store: CredentialStore, registry, locks: Optional[KeyedLocks] = None):
        self.store = store
        self.registry = registry
        self.locks = locks or KeyedLocks()

    async def ensure_fresh(
        self,
        provider: str,
        credentials: ProviderCredentials,
        force: bool = False,
        log: logging.Logger = logger
    ) -> ProviderCredentials:
        """
        Retourne des credentials utilisables pour le provider.

        Args:
            provider: Id du provider
            credentials: Credentials connus de l'appelant
            force: Refresh même si l'expiration est lointaine (après un 401)
            log: Logger

        Returns:
            Credentials rafraîchis, ou inchangés si le refresh a échoué
        """
        executor = self.registry.get_executor(provider)
        if not force and not executor.needs_refresh(credentials):
            return credentials

        lock_key = f"{provider}:{credentials.connection_id or 'anonymous'}"
        async with self.locks.hold(lock_key):
            current = await self._reload(credentials)

            if current is not credentials and (force or not executor.needs_refresh(current)):
                log.info(f"🔄 [CREDENTIALS] {provider}: déjà rafraîchi par une requête concurrente")
                return current

            patch = await executor.refresh_credentials(current, log)
            if not patch:
                log.warning(f"⚠️  [CREDENTIALS] {provider}: refresh impossible, credentials actuels conservés")
                return current

            refreshed = current.merged(patch)
            if refreshed.connection_id:
                await self.store.update_provider_connection(
                    refreshed.connection_id, build_store_patch(patch, refreshed)
                )
            log.info(f"✅ [CREDENTIALS] {provider}: credentials rafraîchis")
            return refreshed

    async def _reload(self, credentials: ProviderCredentials) -> ProviderCredentials:
        """Version du store si ses tokens diffèrent de ceux de l'appelant."""
        if not credentials.connection_id:
            return credentials
        stored = await self.store.get_provider_connection_by_id(credentials.connection_id)
        if not stored:
            return credentials
        current = ProviderCredentials.from_dict(stored)
        if _tokens(current) == _tokens(credentials):
            return credentials
        return current
