"""
Executor Codex (API Responses de ChatGPT).
"""
import copy
from typing import Any, Dict

from ..core.constants import CODEX_DEFAULT_INSTRUCTIONS
from ..core.models import ProviderCredentials
from .base import BaseExecutor


class CodexExecutor(BaseExecutor):
    """
    Codex refuse une requête sans `instructions` et exige `store=false`.
    """

    def build_headers(self, credentials: ProviderCredentials, stream: bool = True) -> Dict[str, str]:
        headers = super().build_headers(credentials, stream)
        headers["OpenAI-Beta"] = "responses=experimental"
        headers["originator"] = "codex_cli_rs"
        account_id = credentials.get("chatgpt_account_id") or credentials.get("account_id")
        if account_id:
            headers["chatgpt-account-id"] = account_id
        return headers

    def transform_request(
        self,
        model: str,
        body: Dict[str, Any],
        stream: bool,
        credentials: ProviderCredentials
    ) -> Dict[str, Any]:
        transformed = copy.deepcopy(body)
        instructions = transformed.get("instructions")
        if not isinstance(instructions, str) or not instructions.strip():
            transformed["instructions"] = CODEX_DEFAULT_INSTRUCTIONS
        transformed["store"] = False
        return transformed
