"""provider_gateway.config.loader

Chargement de la configuration TOML.

Note d'architecture:
- Le package `config/` est consommé par `services/`, `proxy/` et `executors/`.
- Il ne dépend que de `core/` pour éviter les imports circulaires.
"""
import os
import re
from pathlib import Path
from typing import Dict, Any, Optional

from ..core.exceptions import ConfigurationError

# Cache global de configuration
_config_cache: Optional[Dict[str, Any]] = None


def _expand_env_vars(obj: Any) -> Any:
    """
    Récursivement étend les variables d'environnement ${VAR} dans la config.

    Args:
        obj: Valeur à traiter (str, dict, list)

    Returns:
        Valeur avec variables d'environnement expansées
    """
    if isinstance(obj, str):
        def replace_env_var(match):
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))
        return re.sub(r'\$\{([^}]+)\}', replace_env_var, obj)
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    return obj


def _clear_config_cache():
    """Vide le cache de configuration."""
    global _config_cache
    _config_cache = None


def default_config_path() -> str:
    """Chemin de config.toml à la racine du projet (parent de src/)."""
    # Remonte de 4 niveaux: loader.py -> config -> provider_gateway -> src -> project
    current_file = os.path.abspath(__file__)
    project_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(current_file))))
    return os.path.join(project_dir, "config.toml")


def resolve_config_path(config_path: str = None) -> str:
    """Chemin explicite, sinon $GATEWAY_CONFIG, sinon config.toml du projet."""
    return config_path or os.environ.get("GATEWAY_CONFIG") or default_config_path()


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Charge la configuration depuis config.toml.

    Args:
        config_path: Chemin vers le fichier config (optionnel)

    Returns:
        Dictionnaire de configuration

    Raises:
        ConfigurationError: Si le fichier n'existe pas ou est invalide
    """
    global _config_cache

    if _config_cache is not None:
        return _config_cache

    config_path = resolve_config_path(config_path)

    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(
            message=f"Fichier de configuration non trouvé: {config_path}",
            config_key="config_path"
        )

    try:
        import tomllib
    except ImportError:
        import tomli as tomllib

    try:
        with open(path, "rb") as f:
            raw_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            message=f"config.toml invalide: {e}",
            config_key="config_path"
        ) from e

    _config_cache = _expand_env_vars(raw_config)
    return _config_cache


def reload_config(config_path: str = None) -> Dict[str, Any]:
    """
    Recharge la configuration depuis le fichier.

    Returns:
        Nouvelle configuration chargée
    """
    _clear_config_cache()
    return load_config(config_path)


def get_config() -> Dict[str, Any]:
    """
    Retourne la configuration en cache.

    Returns:
        Configuration actuelle
    """
    if _config_cache is None:
        return load_config()
    return _config_cache


def init_providers(config: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Initialise les overrides providers depuis la configuration.

    Seules les clés renseignées sont retenues: elles se superposent à la
    table intégrée `PROVIDERS` au moment de construire les executors.

    Args:
        config: Configuration chargée

    Returns:
        Dictionnaire des providers
    """
    providers = {}
    providers_config = config.get("providers", {})
    if not isinstance(providers_config, dict):
        return providers

    for provider_key, provider_data in providers_config.items():
        if not isinstance(provider_data, dict):
            continue
        entry = {}
        for field_name in ("base_url", "auth_type", "client_id", "client_secret"):
            value = provider_data.get(field_name)
            if isinstance(value, str) and value and not value.startswith("${"):
                entry[field_name] = value
        base_urls = provider_data.get("base_urls")
        if isinstance(base_urls, list) and base_urls:
            entry["base_urls"] = [str(u) for u in base_urls if u]
        providers[provider_key] = entry

    return providers
