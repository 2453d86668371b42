"""
Services métier de la gateway: admission, credentials, sessions.

`credentials` et `gateway` s'importent depuis leur module: ils dépendent des
executors, qui dépendent eux-mêmes de ce package.
"""

from .credential_store import CredentialStore, InMemoryCredentialStore
from .locks import KeyedLocks
from .quota import (
    AdmissionController,
    build_quota_snapshot,
    is_model_allowed,
    model_matches_allowed,
    normalize_allowed_models,
    parse_bearer_api_key,
)
from .session_cache import SessionCache, generate_binary_style_id
from .token_refresh import refresh_token_by_provider, refresh_two_tier

__all__ = [
    "CredentialStore",
    "InMemoryCredentialStore",
    "KeyedLocks",
    "AdmissionController",
    "build_quota_snapshot",
    "is_model_allowed",
    "model_matches_allowed",
    "normalize_allowed_models",
    "parse_bearer_api_key",
    "SessionCache",
    "generate_binary_style_id",
    "refresh_token_by_provider",
    "refresh_two_tier",
]
