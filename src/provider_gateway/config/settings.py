"""
Dataclasses pour la configuration.
"""
import os
from dataclasses import dataclass, field
from typing import Dict, Any, Mapping, Optional

from ..core.constants import (
    DEFAULT_IMPERSONATE,
    DEPLOYMENT_MANAGED,
    DEPLOYMENT_SELF_HOSTED,
    PROVIDERS,
    TOKEN_EXPIRY_BUFFER_MS,
)
from ..core.exceptions import ConfigurationError


def _first_env(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return None


@dataclass
class TransportConfig:
    """Configuration du transport sortant."""
    impersonate: str = DEFAULT_IMPERSONATE
    no_proxy: str = ""
    http_proxy: Optional[str] = None
    https_proxy: Optional[str] = None
    all_proxy: Optional[str] = None
    timeout: float = 120.0
    max_retries: int = 2
    retry_delay: float = 1.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any], env: Mapping[str, str] = None) -> "TransportConfig":
        """
        Crée une instance depuis un dictionnaire.

        Priorité: env > toml. Les variables proxy sont lues en majuscules
        puis en minuscules, comme le font curl et httpx.
        """
        env = os.environ if env is None else env
        return cls(
            impersonate=_first_env(env, "GATEWAY_IMPERSONATE") or data.get("impersonate", DEFAULT_IMPERSONATE),
            no_proxy=_first_env(env, "NO_PROXY", "no_proxy") or data.get("no_proxy", ""),
            http_proxy=_first_env(env, "HTTP_PROXY", "http_proxy") or data.get("http_proxy"),
            https_proxy=_first_env(env, "HTTPS_PROXY", "https_proxy") or data.get("https_proxy"),
            all_proxy=_first_env(env, "ALL_PROXY", "all_proxy") or data.get("all_proxy"),
            timeout=float(data.get("timeout", 120.0)),
            max_retries=int(data.get("max_retries", 2)),
            retry_delay=float(data.get("retry_delay", 1.0)),
        )


@dataclass
class Settings:
    """Configuration globale de la gateway."""
    deployment_mode: str = DEPLOYMENT_SELF_HOSTED
    token_expiry_buffer_ms: int = TOKEN_EXPIRY_BUFFER_MS
    transport: TransportConfig = field(default_factory=TransportConfig)
    providers: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def is_managed(self) -> bool:
        """True en exécution managée (sandbox multi-tenant): transport non modifié."""
        return self.deployment_mode == DEPLOYMENT_MANAGED

    @classmethod
    def from_config(cls, config: Dict[str, Any], env: Mapping[str, str] = None) -> "Settings":
        """Crée une instance depuis la configuration chargée."""
        from .loader import init_providers

        env = os.environ if env is None else env
        gateway = config.get("gateway", {})
        mode = _first_env(env, "GATEWAY_DEPLOYMENT_MODE") or gateway.get("deployment_mode", DEPLOYMENT_SELF_HOSTED)
        if mode not in (DEPLOYMENT_SELF_HOSTED, DEPLOYMENT_MANAGED):
            raise ConfigurationError(
                message=f"deployment_mode inconnu: {mode}",
                config_key="gateway.deployment_mode"
            )

        return cls(
            deployment_mode=mode,
            token_expiry_buffer_ms=int(gateway.get("token_expiry_buffer_ms", TOKEN_EXPIRY_BUFFER_MS)),
            transport=TransportConfig.from_dict(config.get("transport", {}), env=env),
            providers=init_providers(config),
        )

    @classmethod
    def from_env(cls, env: Mapping[str, str] = None) -> "Settings":
        """Configuration sans fichier: valeurs par défaut + variables d'environnement."""
        return cls.from_config({}, env=env)

    @classmethod
    def load(cls, config_path: str = None, env: Mapping[str, str] = None) -> "Settings":
        """
        Configuration par défaut d'un contexte.

        config.toml (ou $GATEWAY_CONFIG) s'il existe, surchargé par
        l'environnement; sinon environnement seul.
        """
        from .loader import load_config, resolve_config_path

        path = resolve_config_path(config_path)
        if not os.path.exists(path):
            return cls.from_env(env=env)
        return cls.from_config(load_config(path), env=env)

    def get_provider(self, key: str) -> Dict[str, Any]:
        """Table intégrée du provider, surchargée par `[providers.<key>]`."""
        merged = dict(PROVIDERS.get(key, {}))
        merged.update(self.providers.get(key, {}))
        return merged
