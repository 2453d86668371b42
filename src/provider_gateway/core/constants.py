"""
Constantes globales pour Provider Gateway.
"""

# ============================================================================
# EXPIRATION DES CREDENTIALS
# ============================================================================
TOKEN_EXPIRY_BUFFER_MS = 10 * 60 * 1000  # Refresh préventif 10 min avant expiration
DERIVED_TOKEN_EXPIRY_BUFFER_MS = 5 * 60 * 1000  # Tokens dérivés (Copilot): 5 min

# ============================================================================
# TRANSPORT
# ============================================================================
DEFAULT_IMPERSONATE = "chrome124"  # Empreinte TLS/HTTP2 fixe du client spoofé
DEPLOYMENT_SELF_HOSTED = "self_hosted"
DEPLOYMENT_MANAGED = "managed"

# Statuts upstream pour lesquels on tente l'URL suivante de l'executor
RETRYABLE_UPSTREAM_STATUS = {429, 500, 502, 503, 504}

# ============================================================================
# PROVIDERS
# ============================================================================
# auth_type:
# - "bearer": Authorization: Bearer <token>
# - "x-api-key": header x-api-key (Anthropic)
# - "goog-api-key": header x-goog-api-key (Gemini AI Studio)
PROVIDERS = {
    "openai": {
        "base_url": "https://api.openai.com/v1/chat/completions",
        "auth_type": "bearer",
    },
    "claude": {
        "base_url": "https://api.anthropic.com/v1/messages",
        "auth_type": "x-api-key",
        "client_id": "9d1c250a-e61b-44d9-88ed-5944d1962f5e",
    },
    "gemini": {
        "base_url": "https://generativelanguage.googleapis.com/v1beta/models",
        "auth_type": "goog-api-key",
    },
    "openrouter": {
        "base_url": "https://openrouter.ai/api/v1/chat/completions",
        "auth_type": "bearer",
    },
    "qwen": {
        "base_url": "https://portal.qwen.ai/v1/chat/completions",
        "auth_type": "bearer",
        "client_id": "f0304373b74a44d2b584a3fb70ca9e56",
    },
    "iflow": {
        "base_url": "https://apis.iflow.cn/v1/chat/completions",
        "auth_type": "bearer",
        "client_id": "10009311001",
    },
    "codex": {
        "base_url": "https://chatgpt.com/backend-api/codex/responses",
        "auth_type": "bearer",
        "client_id": "app_EMoamEEZ73f0CkXaXp7hrann",
    },
    "github": {
        "base_url": "https://api.githubcopilot.com/chat/completions",
        "auth_type": "bearer",
        "client_id": "Iv1.b507a08c87ecfe98",
    },
    "gemini-cli": {
        "base_url": "https://cloudcode-pa.googleapis.com/v1internal",
        "auth_type": "bearer",
    },
    "antigravity": {
        "base_urls": [
            "https://daily-cloudcode-pa.sandbox.googleapis.com/v1internal",
            "https://cloudcode-pa.googleapis.com/v1internal",
        ],
        "auth_type": "bearer",
    },
    "kiro": {
        "base_url": "https://codewhisperer.us-east-1.amazonaws.com/generateAssistantResponse",
        "auth_type": "bearer",
    },
}

OAUTH_ENDPOINTS = {
    "claude": "https://console.anthropic.com/v1/oauth/token",
    "codex": "https://auth.openai.com/oauth/token",
    "google": "https://oauth2.googleapis.com/token",
    "qwen": "https://chat.qwen.ai/api/v1/oauth2/token",
    "iflow": "https://iflow.cn/oauth/token",
    "kiro": "https://prod.us-east-1.auth.desktop.kiro.dev/refreshToken",
    "github": "https://github.com/login/oauth/access_token",
    "copilot": "https://api.github.com/copilot_internal/v2/token",
}

# ============================================================================
# CODEX
# ============================================================================
CODEX_DEFAULT_INSTRUCTIONS = (
    "You are Codex, a coding agent based on GPT-5. You and the user share the same "
    "workspace and collaborate to achieve the user's goals. Be concise, precise and "
    "prefer making code changes over describing them."
)

# ============================================================================
# ANTHROPIC
# ============================================================================
ANTHROPIC_VERSION = "2023-06-01"
