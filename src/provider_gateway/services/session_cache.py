"""
Cache de session et de signatures (continuité de prompt caching).

- Session: un id stable par identité (email ou connexion) pour la durée de vie
  du process, au format `<uuid4><epoch ms>` attendu par Cloud Code.
- Signatures: dernier `thoughtSignature` vu par session, transmis hors bande
  car le format intermédiaire OpenAI le perd entre réponse et requête suivante.
"""
import logging
import time
import uuid
from typing import Dict, Optional

logger = logging.getLogger(__name__)


def generate_binary_style_id() -> str:
    """Id de session `uuid4 + timestamp ms`."""
    return f"{uuid.uuid4()}{int(time.time() * 1000)}"


class SessionCache:
    """Maps session et signatures, portées par le contexte de la gateway."""

    def __init__(self):
        self._sessions: Dict[str, str] = {}
        self._signatures: Dict[str, str] = {}

    def derive_session_id(self, identity_key: Optional[str]) -> str:
        """
        Retourne l'id de session de l'identité, en le créant au besoin.

        Sans identité, un id neuf est généré à chaque appel et jamais mis en cache.
        """
        if not identity_key:
            return generate_binary_style_id()

        session_id = self._sessions.get(identity_key)
        if session_id is None:
            session_id = generate_binary_style_id()
            self._sessions[identity_key] = session_id
        return session_id

    def cache_signature(self, session_id: Optional[str], signature: Optional[str]) -> None:
        """Mémorise la dernière signature d'une session (last write wins)."""
        if not session_id or not signature:
            return
        logger.debug(f"[SESSION] Signature mise en cache pour {session_id[:8]}...: {signature[:20]}...")
        self._signatures[session_id] = signature

    def get_cached_signature(self, session_id: Optional[str]) -> Optional[str]:
        """Dernière signature connue pour la session, ou None."""
        if not session_id:
            return None
        return self._signatures.get(session_id)

    def clear_session_store(self) -> None:
        """Vide les sessions et les signatures (reset complet)."""
        self._sessions.clear()
        self._signatures.clear()

    def __len__(self) -> int:
        return len(self._sessions)
