"""
Executor Gemini CLI (Cloud Code Assist).
"""
import copy
from typing import Any, Dict

from ..core.models import ProviderCredentials
from .base import BaseExecutor


class GeminiCLIExecutor(BaseExecutor):
    """Requête Gemini enveloppée avec le projet Cloud Code du compte."""

    def build_url(self, model: str, stream: bool, url_index: int = 0) -> str:
        base = self.base_url(url_index)
        if stream:
            return f"{base}:streamGenerateContent?alt=sse"
        return f"{base}:generateContent"

    def build_headers(self, credentials: ProviderCredentials, stream: bool = True) -> Dict[str, str]:
        headers = super().build_headers(credentials, stream)
        headers["User-Agent"] = "google-api-nodejs-client/9.15.1"
        headers["X-Goog-Api-Client"] = "gl-node/22.17.0"
        return headers

    def transform_request(
        self,
        model: str,
        body: Dict[str, Any],
        stream: bool,
        credentials: ProviderCredentials
    ) -> Dict[str, Any]:
        inner = body.get("request") if isinstance(body.get("request"), dict) else body
        return {
            "project": credentials.project_id or body.get("project"),
            "model": model,
            "request": copy.deepcopy(inner),
        }
