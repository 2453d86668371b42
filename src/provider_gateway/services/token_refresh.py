"""
Refresh des credentials provider.

Point d'entrée unique: `refresh_token_by_provider()`. Chaque provider a sa
fonction d'échange; toutes retournent un patch de credentials ou None.

Politique d'erreur:
- Erreur réseau, statut non-2xx, JSON illisible -> None (loggé), jamais d'exception
- Retry/backoff et décision "continuer avec des credentials périmés" sont
  laissés à l'appelant (CredentialManager / GatewayService)
"""
import base64
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..core.constants import OAUTH_ENDPOINTS, PROVIDERS
from ..core.exceptions import TransportError
from ..core.models import ProviderCredentials
from ..proxy.client import ProxyClient

logger = logging.getLogger(__name__)

TokenPatch = Dict[str, Any]
RefreshFunc = Callable[..., Awaitable[Optional[TokenPatch]]]


async def _request_tokens(
    label: str,
    send: Callable[[], Awaitable[httpx.Response]],
    log: logging.Logger
) -> Optional[Dict[str, Any]]:
    """Exécute un échange de token et retourne le JSON, ou None en cas d'échec."""
    try:
        response = await send()
    except (httpx.HTTPError, TransportError) as e:
        log.error(f"❌ [TOKEN] {label}: erreur réseau: {e}")
        return None

    if not response.is_success:
        log.warning(f"⚠️  [TOKEN] {label}: refresh refusé (HTTP {response.status_code})")
        return None

    try:
        data = response.json()
    except ValueError:
        log.error(f"❌ [TOKEN] {label}: réponse non JSON")
        return None
    if not isinstance(data, dict):
        log.error(f"❌ [TOKEN] {label}: réponse inattendue")
        return None
    return data


def _oauth_patch(data: Dict[str, Any], previous_refresh_token: Optional[str]) -> Optional[TokenPatch]:
    """Réponse OAuth standard -> patch (le refresh token peut ne pas tourner)."""
    access_token = data.get("access_token")
    if not access_token:
        return None
    patch = {
        "access_token": access_token,
        "refresh_token": data.get("refresh_token") or previous_refresh_token,
    }
    if data.get("expires_in"):
        patch["expires_in"] = data["expires_in"]
    return patch


# ============================================================================
# PROVIDERS OAUTH
# ============================================================================

async def refresh_claude_token(
    client: ProxyClient,
    credentials: ProviderCredentials,
    config: Dict[str, Any],
    log: logging.Logger = logger
) -> Optional[TokenPatch]:
    """OAuth Anthropic (corps JSON)."""
    data = await _request_tokens(
        "claude",
        lambda: client.post_json(
            OAUTH_ENDPOINTS["claude"],
            {
                "grant_type": "refresh_token",
                "refresh_token": credentials.refresh_token,
                "client_id": config.get("client_id"),
            },
            provider_type="claude",
        ),
        log,
    )
    return _oauth_patch(data, credentials.refresh_token) if data else None


async def refresh_codex_token(
    client: ProxyClient,
    credentials: ProviderCredentials,
    config: Dict[str, Any],
    log: logging.Logger = logger
) -> Optional[TokenPatch]:
    """OAuth OpenAI (Codex CLI), corps form-urlencoded."""
    data = await _request_tokens(
        "codex",
        lambda: client.post_form(
            OAUTH_ENDPOINTS["codex"],
            {
                "grant_type": "refresh_token",
                "refresh_token": credentials.refresh_token,
                "client_id": config.get("client_id", ""),
                "scope": "openid profile email offline_access",
            },
            provider_type="codex",
        ),
        log,
    )
    if not data:
        return None
    patch = _oauth_patch(data, credentials.refresh_token)
    if patch and data.get("id_token"):
        patch["id_token"] = data["id_token"]
    return patch


async def refresh_google_token(
    client: ProxyClient,
    credentials: ProviderCredentials,
    config: Dict[str, Any],
    log: logging.Logger = logger
) -> Optional[TokenPatch]:
    """OAuth Google (gemini-cli, antigravity)."""
    data = await _request_tokens(
        "google",
        lambda: client.post_form(
            OAUTH_ENDPOINTS["google"],
            {
                "grant_type": "refresh_token",
                "refresh_token": credentials.refresh_token,
                "client_id": config.get("client_id", ""),
                "client_secret": config.get("client_secret", ""),
            },
        ),
        log,
    )
    return _oauth_patch(data, credentials.refresh_token) if data else None


async def refresh_qwen_token(
    client: ProxyClient,
    credentials: ProviderCredentials,
    config: Dict[str, Any],
    log: logging.Logger = logger
) -> Optional[TokenPatch]:
    data = await _request_tokens(
        "qwen",
        lambda: client.post_form(
            OAUTH_ENDPOINTS["qwen"],
            {
                "grant_type": "refresh_token",
                "refresh_token": credentials.refresh_token,
                "client_id": config.get("client_id", ""),
            },
            provider_type="qwen",
        ),
        log,
    )
    if not data:
        return None
    patch = _oauth_patch(data, credentials.refresh_token)
    if patch and data.get("resource_url"):
        patch["resource_url"] = data["resource_url"]
    return patch


async def refresh_iflow_token(
    client: ProxyClient,
    credentials: ProviderCredentials,
    config: Dict[str, Any],
    log: logging.Logger = logger
) -> Optional[TokenPatch]:
    """OAuth iFlow: client authentifié en Basic."""
    basic = base64.b64encode(
        f"{config.get('client_id', '')}:{config.get('client_secret', '')}".encode()
    ).decode()
    data = await _request_tokens(
        "iflow",
        lambda: client.post_form(
            OAUTH_ENDPOINTS["iflow"],
            {
                "grant_type": "refresh_token",
                "refresh_token": credentials.refresh_token,
                "client_id": config.get("client_id", ""),
                "client_secret": config.get("client_secret", ""),
            },
            headers={"Authorization": f"Basic {basic}"},
            provider_type="iflow",
        ),
        log,
    )
    return _oauth_patch(data, credentials.refresh_token) if data else None


async def refresh_kiro_token(
    client: ProxyClient,
    credentials: ProviderCredentials,
    config: Dict[str, Any],
    log: logging.Logger = logger
) -> Optional[TokenPatch]:
    """Refresh Kiro (auth desktop), réponse en camelCase."""
    data = await _request_tokens(
        "kiro",
        lambda: client.post_json(
            OAUTH_ENDPOINTS["kiro"],
            {"refreshToken": credentials.refresh_token},
            provider_type="kiro",
        ),
        log,
    )
    if not data or not data.get("accessToken"):
        return None
    patch = {
        "access_token": data["accessToken"],
        "refresh_token": data.get("refreshToken") or credentials.refresh_token,
    }
    if data.get("expiresIn"):
        patch["expires_in"] = data["expiresIn"]
    if data.get("profileArn"):
        patch["profile_arn"] = data["profileArn"]
    return patch


# ============================================================================
# CHAÎNE À DEUX NIVEAUX (token OAuth long + token dérivé court)
# ============================================================================

async def refresh_two_tier(
    credentials: ProviderCredentials,
    derive: Callable[[str], Awaitable[Optional[Dict[str, Any]]]],
    refresh_oauth: Callable[[str], Awaitable[Optional[TokenPatch]]],
    log: logging.Logger = logger,
    token_key: str = "copilot_token",
    expiry_key: str = "copilot_token_expires_at",
) -> Optional[TokenPatch]:
    """
    Refresh d'un provider à credentials à deux niveaux.

    Le token utilisable est dérivé d'un access token OAuth, lui-même
    renouvelable par refresh token:
    1. dérive avec l'access token courant
    2. si échec et refresh token présent: refresh OAuth
    3. si OK: nouvelle dérivation avec le nouvel access token
    4. succès -> patch OAuth + token dérivé
    5. échec de la re-dérivation -> patch OAuth seul (token dérivé périmé)
    6. succès direct en 1 -> tokens OAuth inchangés + nouveau token dérivé
    7. tout échoue -> None

    Args:
        credentials: Credentials courants
        derive: access_token -> {"token", "expires_at"} ou None
        refresh_oauth: refresh_token -> patch OAuth ou None
        log: Logger
        token_key: Clé du token dérivé dans le patch
        expiry_key: Clé de son expiration

    Returns:
        Patch de credentials ou None
    """
    derived = await derive(credentials.access_token) if credentials.access_token else None

    if not derived and credentials.refresh_token:
        oauth = await refresh_oauth(credentials.refresh_token)
        if oauth and oauth.get("access_token"):
            derived = await derive(oauth["access_token"])
            if derived:
                return {**oauth, token_key: derived["token"], expiry_key: derived.get("expires_at")}
            log.warning("⚠️  [TOKEN] Token OAuth renouvelé mais dérivation en échec")
            return oauth

    if derived:
        return {
            "access_token": credentials.access_token,
            "refresh_token": credentials.refresh_token,
            token_key: derived["token"],
            expiry_key: derived.get("expires_at"),
        }

    return None


async def fetch_copilot_token(
    client: ProxyClient,
    github_access_token: str,
    log: logging.Logger = logger
) -> Optional[Dict[str, Any]]:
    """Échange un access token GitHub contre un token Copilot court."""
    data = await _request_tokens(
        "copilot",
        lambda: client.get(
            OAUTH_ENDPOINTS["copilot"],
            headers={
                "Authorization": f"Bearer {github_access_token}",
                "User-Agent": "GitHub-Copilot/1.0",
                "Accept": "*/*",
            },
            provider_type="github",
        ),
        log,
    )
    if not data or not data.get("token"):
        return None
    log.info("🔑 [TOKEN] Token Copilot renouvelé")
    return {"token": data["token"], "expires_at": data.get("expires_at")}


async def refresh_github_oauth_token(
    client: ProxyClient,
    refresh_token: str,
    config: Dict[str, Any],
    log: logging.Logger = logger
) -> Optional[TokenPatch]:
    data = await _request_tokens(
        "github",
        lambda: client.post_form(
            OAUTH_ENDPOINTS["github"],
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": config.get("client_id", ""),
                "client_secret": config.get("client_secret", ""),
            },
            provider_type="github",
        ),
        log,
    )
    if not data:
        return None
    patch = _oauth_patch(data, refresh_token)
    if patch:
        log.info("🔑 [TOKEN] Token GitHub renouvelé")
    return patch


async def refresh_github_credentials(
    client: ProxyClient,
    credentials: ProviderCredentials,
    config: Dict[str, Any],
    log: logging.Logger = logger
) -> Optional[TokenPatch]:
    """GitHub Copilot: chaîne à deux niveaux (token GitHub -> token Copilot)."""
    return await refresh_two_tier(
        credentials,
        derive=lambda access_token: fetch_copilot_token(client, access_token, log),
        refresh_oauth=lambda refresh_token: refresh_github_oauth_token(client, refresh_token, config, log),
        log=log,
    )


# ============================================================================
# DISPATCH
# ============================================================================

REFRESHERS: Dict[str, RefreshFunc] = {
    "claude": refresh_claude_token,
    "codex": refresh_codex_token,
    "gemini-cli": refresh_google_token,
    "antigravity": refresh_google_token,
    "qwen": refresh_qwen_token,
    "iflow": refresh_iflow_token,
    "kiro": refresh_kiro_token,
    "github": refresh_github_credentials,
}

# Providers dont le refresh ne nécessite pas de refresh token
_ACCESS_TOKEN_ONLY = {"github"}


async def refresh_token_by_provider(
    client: ProxyClient,
    provider: str,
    credentials: ProviderCredentials,
    log: logging.Logger = logger,
    provider_config: Optional[Dict[str, Any]] = None
) -> Optional[TokenPatch]:
    """
    Rafraîchit les credentials d'un provider.

    Args:
        client: Client sortant (transport injecté)
        provider: Id du provider
        credentials: Credentials courants
        log: Logger
        provider_config: Table du provider (client_id/secret), défaut: PROVIDERS

    Returns:
        Patch de credentials, ou None (provider sans refresh, ou échec)
    """
    refresher = REFRESHERS.get(provider)
    if refresher is None:
        log.debug(f"[TOKEN] Pas de refresh pour le provider {provider}")
        return None

    if not credentials.refresh_token and provider not in _ACCESS_TOKEN_ONLY:
        log.warning(f"⚠️  [TOKEN] {provider}: aucun refresh token disponible")
        return None

    config = provider_config if provider_config is not None else PROVIDERS.get(provider, {})
    result = await refresher(client, credentials, config, log)
    if result:
        log.info(f"🔄 [TOKEN] {provider}: credentials rafraîchis")
    else:
        log.warning(f"⚠️  [TOKEN] {provider}: refresh en échec")
    return result
