"""
Executor GitHub Copilot.

Le token envoyé upstream est le token Copilot (court), dérivé du token OAuth
GitHub. Le refresh passe par la chaîne à deux niveaux de `token_refresh`.
"""
import uuid
from typing import Dict

from ..core.constants import DERIVED_TOKEN_EXPIRY_BUFFER_MS
from ..core.models import ProviderCredentials, now_ms, parse_expiry_ms
from .base import BaseExecutor

COPILOT_HEADERS = {
    "copilot-integration-id": "vscode-chat",
    "editor-version": "vscode/1.107.1",
    "editor-plugin-version": "copilot-chat/0.26.7",
    "user-agent": "GitHubCopilotChat/0.26.7",
    "openai-intent": "conversation-panel",
    "x-github-api-version": "2025-04-01",
    "x-vscode-user-agent-library-version": "electron-fetch",
    "X-Initiator": "user",
}


class GithubExecutor(BaseExecutor):

    def build_headers(self, credentials: ProviderCredentials, stream: bool = True) -> Dict[str, str]:
        token = credentials.get("copilot_token") or credentials.access_token
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            **COPILOT_HEADERS,
            "x-request-id": str(uuid.uuid4()),
            "Accept": "text/event-stream" if stream else "application/json",
        }

    def needs_refresh(self, credentials: ProviderCredentials) -> bool:
        """Token Copilot à moins de 5 min d'expiration, sinon règle de base."""
        copilot_expires_at = parse_expiry_ms(credentials.get("copilot_token_expires_at"))
        if copilot_expires_at is not None and copilot_expires_at - now_ms() < DERIVED_TOKEN_EXPIRY_BUFFER_MS:
            return True
        return super().needs_refresh(credentials)
