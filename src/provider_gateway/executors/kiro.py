"""
Executor Kiro (AWS CodeWhisperer).
"""
import copy
import uuid
from typing import Any, Dict

from ..core.models import ProviderCredentials
from .base import BaseExecutor


class KiroExecutor(BaseExecutor):
    """Le profile ARN du compte doit accompagner chaque requête."""

    def build_headers(self, credentials: ProviderCredentials, stream: bool = True) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {credentials.access_token}",
            "Content-Type": "application/json",
            "Accept": "application/vnd.amazon.eventstream" if stream else "application/json",
            "x-amz-user-agent": "aws-sdk-js/1.0.7 KiroIDE",
            "amz-sdk-invocation-id": str(uuid.uuid4()),
        }

    def transform_request(
        self,
        model: str,
        body: Dict[str, Any],
        stream: bool,
        credentials: ProviderCredentials
    ) -> Dict[str, Any]:
        transformed = copy.deepcopy(body)
        profile_arn = credentials.get("profile_arn")
        if profile_arn and not transformed.get("profileArn"):
            transformed["profileArn"] = profile_arn
        return transformed
