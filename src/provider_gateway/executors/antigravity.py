"""
Executor Antigravity (Cloud Code, plusieurs URLs upstream).

Particularités:
- Rotation entre l'URL sandbox quotidienne et l'URL de production
- Enveloppe Cloud Code autour de la requête Gemini
- Affinité de session: un sessionId stable par compte (prompt caching)
- Canal latéral des `thoughtSignature`: le format intermédiaire les perd,
  on réinjecte la dernière vue dans les `functionCall` du modèle
"""
import copy
import json
import logging
import uuid
from typing import Any, Dict, Iterable, Optional, Union

from ..core.models import ProviderCredentials
from .base import BaseExecutor, ExecutionResult

logger = logging.getLogger(__name__)

ANTIGRAVITY_USER_AGENT = "antigravity"


def _iter_signatures(payload: Any) -> Iterable[str]:
    """Toutes les `thoughtSignature` d'un chunk de réponse, dans l'ordre."""
    response = payload.get("response", payload) if isinstance(payload, dict) else None
    if not isinstance(response, dict):
        return
    for candidate in response.get("candidates") or []:
        parts = (candidate.get("content") or {}).get("parts") or []
        for part in parts:
            signature = part.get("thoughtSignature") if isinstance(part, dict) else None
            if signature:
                yield signature


class AntigravityExecutor(BaseExecutor):

    def build_url(self, model: str, stream: bool, url_index: int = 0) -> str:
        base = self.base_url(url_index)
        if stream:
            return f"{base}:streamGenerateContent?alt=sse"
        return f"{base}:generateContent"

    def build_headers(self, credentials: ProviderCredentials, stream: bool = True) -> Dict[str, str]:
        headers = super().build_headers(credentials, stream)
        headers["User-Agent"] = ANTIGRAVITY_USER_AGENT
        return headers

    def session_id_for(self, credentials: ProviderCredentials) -> str:
        return self.session_cache.derive_session_id(credentials.email or credentials.connection_id)

    def transform_request(
        self,
        model: str,
        body: Dict[str, Any],
        stream: bool,
        credentials: ProviderCredentials
    ) -> Dict[str, Any]:
        """
        Enveloppe Cloud Code.

        Un body déjà enveloppé est ré-enveloppé depuis sa requête interne,
        ce qui rend la transformation idempotente.
        """
        inner = body.get("request") if isinstance(body.get("request"), dict) else body
        request = copy.deepcopy(inner)

        session_id = self.session_id_for(credentials)
        request["sessionId"] = session_id
        self._inject_signatures(request, session_id)

        project = credentials.project_id or credentials.get("project_id") or body.get("project")
        return {
            "project": project,
            "model": model,
            "request": request,
            "userAgent": ANTIGRAVITY_USER_AGENT,
            "requestId": body.get("requestId") or f"agent-{uuid.uuid4()}",
            "requestType": "agent",
        }

    def _inject_signatures(self, request: Dict[str, Any], session_id: str) -> None:
        signature = self.session_cache.get_cached_signature(session_id)
        if not signature:
            return
        for content in request.get("contents") or []:
            if content.get("role") != "model":
                continue
            for part in content.get("parts") or []:
                if "functionCall" in part and not part.get("thoughtSignature"):
                    part["thoughtSignature"] = signature

    def capture_signature(self, session_id: Optional[str], chunk: Union[str, bytes, Dict[str, Any]]) -> Optional[str]:
        """
        Mémorise la dernière signature vue dans un chunk de réponse.

        Accepte un dict déjà parsé ou une ligne/bloc SSE (`data: {...}`).

        Returns:
            La signature mise en cache, ou None
        """
        payloads = []
        if isinstance(chunk, dict):
            payloads.append(chunk)
        else:
            text = chunk.decode("utf-8", errors="ignore") if isinstance(chunk, bytes) else chunk
            for line in text.splitlines():
                line = line.strip()
                if line.startswith("data:"):
                    line = line[5:].strip()
                if not line or line == "[DONE]":
                    continue
                try:
                    payloads.append(json.loads(line))
                except json.JSONDecodeError:
                    continue

        last = None
        for payload in payloads:
            for signature in _iter_signatures(payload):
                last = signature
        if last:
            self.session_cache.cache_signature(session_id, last)
        return last

    async def execute(
        self,
        model: str,
        body: Dict[str, Any],
        stream: bool,
        credentials: ProviderCredentials,
        log: logging.Logger = logger
    ) -> ExecutionResult:
        result = await super().execute(model, body, stream, credentials, log)
        result.session_id = result.transformed_body["request"].get("sessionId")
        return result
