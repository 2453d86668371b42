"""
Executor générique: providers compatibles OpenAI, Anthropic et Gemini AI Studio.
"""
from typing import Dict

from ..core.constants import ANTHROPIC_VERSION
from ..core.models import ProviderCredentials
from .base import BaseExecutor


class DefaultExecutor(BaseExecutor):
    """
    Executor utilisé pour tout provider sans stratégie dédiée.

    Le header d'authentification suit le `auth_type` de la table provider.
    """

    def build_url(self, model: str, stream: bool, url_index: int = 0) -> str:
        base = self.base_url(url_index)
        if self.config.get("auth_type") == "goog-api-key":
            if stream:
                return f"{base}/{model}:streamGenerateContent?alt=sse"
            return f"{base}/{model}:generateContent"
        return base

    def build_headers(self, credentials: ProviderCredentials, stream: bool = True) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
        }
        auth_type = self.config.get("auth_type", "bearer")

        if auth_type == "x-api-key":
            headers["anthropic-version"] = ANTHROPIC_VERSION
            if credentials.api_key:
                headers["x-api-key"] = credentials.api_key
            else:
                # Token OAuth (abonnement Claude)
                headers["Authorization"] = f"Bearer {credentials.access_token}"
                headers["anthropic-beta"] = "oauth-2025-04-20"
        elif auth_type == "goog-api-key" and credentials.api_key:
            headers["x-goog-api-key"] = credentials.api_key
        else:
            headers["Authorization"] = f"Bearer {credentials.api_key or credentials.access_token}"

        return headers
