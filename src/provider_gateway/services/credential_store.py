"""
Interface du Credential Store et implémentation mémoire.

La persistance réelle (fichier JSON, base SQL...) est externe à la gateway:
celle-ci ne fait que lire et proposer des mises à jour via cette interface.
"""
import asyncio
import copy
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from ..core.models import ApiKey, to_number


class CredentialStore(ABC):
    """Contrat consommé par la gateway (toutes les opérations sont async)."""

    @abstractmethod
    async def get_api_key_by_value(self, secret: str) -> Optional[ApiKey]:
        """Clé API par valeur secrète, ou None."""

    @abstractmethod
    async def get_api_key_by_id(self, api_key_id: str) -> Optional[ApiKey]:
        """Clé API par id, ou None."""

    @abstractmethod
    async def increment_api_key_request_usage(self, api_key_id: str, delta: int = 1) -> Optional[ApiKey]:
        """Incrémente le compteur de requêtes."""

    @abstractmethod
    async def increment_api_key_token_usage(self, api_key_id: str, delta: int = 0) -> Optional[ApiKey]:
        """Incrémente le compteur de tokens."""

    @abstractmethod
    async def get_provider_connection_by_id(self, connection_id: str) -> Optional[Dict[str, Any]]:
        """Connexion provider (credentials inclus), ou None."""

    @abstractmethod
    async def update_provider_connection(self, connection_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Applique un patch à une connexion et retourne la version écrite."""


class InMemoryCredentialStore(CredentialStore):
    """
    Store mémoire, utilisé par les tests et pour l'embarqué.

    Les compteurs ne décroissent jamais: un delta négatif est ignoré.
    """

    def __init__(
        self,
        api_keys: Iterable[Dict[str, Any]] = (),
        connections: Iterable[Dict[str, Any]] = ()
    ):
        self._api_keys: Dict[str, Dict[str, Any]] = {}
        self._connections: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        for record in api_keys:
            self.add_api_key(record)
        for connection in connections:
            self.add_provider_connection(connection)

    def add_api_key(self, record: Dict[str, Any]) -> ApiKey:
        data = dict(record)
        data.setdefault("is_active", True)
        data.setdefault("request_used", 0)
        data.setdefault("token_used", 0)
        self._api_keys[str(data["id"])] = data
        return ApiKey.from_dict(data)

    def add_provider_connection(self, connection: Dict[str, Any]) -> None:
        self._connections[str(connection["id"])] = copy.deepcopy(connection)

    async def get_api_key_by_value(self, secret: str) -> Optional[ApiKey]:
        if not secret:
            return None
        for record in self._api_keys.values():
            if record.get("key") == secret:
                return ApiKey.from_dict(record)
        return None

    async def get_api_key_by_id(self, api_key_id: str) -> Optional[ApiKey]:
        record = self._api_keys.get(str(api_key_id))
        return ApiKey.from_dict(record) if record else None

    async def _increment(self, api_key_id: str, field_name: str, delta: int) -> Optional[ApiKey]:
        async with self._lock:
            record = self._api_keys.get(str(api_key_id))
            if record is None:
                return None
            record[field_name] = to_number(record.get(field_name)) + max(0, to_number(delta))
            record["last_accessed"] = datetime.now(timezone.utc).isoformat()
            return ApiKey.from_dict(record)

    async def increment_api_key_request_usage(self, api_key_id: str, delta: int = 1) -> Optional[ApiKey]:
        return await self._increment(api_key_id, "request_used", delta)

    async def increment_api_key_token_usage(self, api_key_id: str, delta: int = 0) -> Optional[ApiKey]:
        return await self._increment(api_key_id, "token_used", delta)

    async def get_provider_connection_by_id(self, connection_id: str) -> Optional[Dict[str, Any]]:
        connection = self._connections.get(str(connection_id))
        return copy.deepcopy(connection) if connection else None

    async def update_provider_connection(self, connection_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._lock:
            connection = self._connections.get(str(connection_id))
            if connection is None:
                return None
            for key, value in patch.items():
                if key == "provider_specific_data":
                    merged = dict(connection.get("provider_specific_data") or {})
                    merged.update(value or {})
                    connection[key] = merged
                else:
                    connection[key] = value
            connection["updated_at"] = datetime.now(timezone.utc).isoformat()
            return copy.deepcopy(connection)
