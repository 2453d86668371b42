"""
Registre des executors: une stratégie par provider.
"""
import logging
from typing import Dict, Optional, Type

from ..config.settings import Settings
from ..proxy.client import ProxyClient
from ..services.session_cache import SessionCache
from .antigravity import AntigravityExecutor
from .base import BaseExecutor, ExecutionResult
from .codex import CodexExecutor
from .default import DefaultExecutor
from .gemini_cli import GeminiCLIExecutor
from .github import GithubExecutor
from .kiro import KiroExecutor

logger = logging.getLogger(__name__)

SPECIALIZED_EXECUTORS: Dict[str, Type[BaseExecutor]] = {
    "antigravity": AntigravityExecutor,
    "gemini-cli": GeminiCLIExecutor,
    "github": GithubExecutor,
    "kiro": KiroExecutor,
    "codex": CodexExecutor,
}


class ExecutorRegistry:
    """
    Résout l'executor d'un provider.

    Une seule instance par provider id: les executors spécialisés comme les
    `DefaultExecutor` créés à la demande sont mémoïsés.
    """

    def __init__(
        self,
        http: ProxyClient,
        settings: Optional[Settings] = None,
        session_cache: Optional[SessionCache] = None
    ):
        self.http = http
        self.settings = settings or Settings()
        self.session_cache = session_cache or SessionCache()
        self._classes: Dict[str, Type[BaseExecutor]] = dict(SPECIALIZED_EXECUTORS)
        self._instances: Dict[str, BaseExecutor] = {}

    def register(self, provider: str, executor_cls: Type[BaseExecutor]) -> None:
        """Enregistre (ou remplace) la stratégie d'un provider."""
        self._classes[provider] = executor_cls
        self._instances.pop(provider, None)
        logger.debug(f"[EXECUTOR] Stratégie {executor_cls.__name__} enregistrée pour {provider}")

    def has_specialized_executor(self, provider: str) -> bool:
        return provider in self._classes

    def get_executor(self, provider: str) -> BaseExecutor:
        executor = self._instances.get(provider)
        if executor is None:
            executor_cls = self._classes.get(provider, DefaultExecutor)
            executor = executor_cls(
                provider,
                self.settings.get_provider(provider),
                self.http,
                session_cache=self.session_cache,
                expiry_buffer_ms=self.settings.token_expiry_buffer_ms,
            )
            self._instances[provider] = executor
        return executor

    def clear(self) -> None:
        """Oublie les DefaultExecutor créés à la demande."""
        for provider in list(self._instances):
            if provider not in self._classes:
                del self._instances[provider]


__all__ = [
    "AntigravityExecutor",
    "BaseExecutor",
    "CodexExecutor",
    "DefaultExecutor",
    "ExecutionResult",
    "ExecutorRegistry",
    "GeminiCLIExecutor",
    "GithubExecutor",
    "KiroExecutor",
    "SPECIALIZED_EXECUTORS",
]
