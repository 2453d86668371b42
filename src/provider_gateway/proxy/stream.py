"""
Extraction des tokens d'usage depuis les réponses provider.

Les formats diffèrent selon le provider:
- OpenAI: usage.prompt_tokens / usage.completion_tokens
- Claude: usage.input_tokens / usage.output_tokens (message_start + message_delta)
- Gemini/Cloud Code: usageMetadata (éventuellement sous `response`)
"""
import json
from typing import Dict, Any, Optional


def _normalize_usage(usage: Dict[str, Any]) -> Dict[str, int]:
    prompt = usage.get("prompt_tokens") or usage.get("input_tokens") or 0
    completion = usage.get("completion_tokens") or usage.get("output_tokens") or 0
    total = usage.get("total_tokens") or prompt + completion
    return {
        "prompt_tokens": int(prompt),
        "completion_tokens": int(completion),
        "total_tokens": int(total),
    }


def _normalize_usage_metadata(meta: Dict[str, Any]) -> Dict[str, int]:
    return {
        "prompt_tokens": int(meta.get("promptTokenCount", 0)),
        "completion_tokens": int(meta.get("candidatesTokenCount", 0)),
        "total_tokens": int(meta.get("totalTokenCount", 0)),
    }


def extract_usage_from_stream(buffer: bytes) -> Optional[Dict[str, int]]:
    """
    Extrait les usage tokens du stream SSE.

    Pourquoi on cherche dans les lignes inversées:
    - Les tokens d'usage sont généralement dans le dernier chunk
    - Format SSE: data: {...} par ligne
    - [DONE] marque la fin du stream

    Claude répartit l'usage: input dans `message_start`, output dans
    `message_delta`. On cumule donc les deux en remontant.

    Args:
        buffer: Buffer contenant tout le stream (même partiel)

    Returns:
        Dictionnaire avec prompt_tokens, completion_tokens, total_tokens
        ou None si pas trouvé
    """
    if not buffer:
        return None

    text = buffer.decode('utf-8', errors='ignore')
    lines = text.strip().split('\n')
    claude_usage: Dict[str, int] = {}

    for line in reversed(lines):
        line = line.strip()
        if not line.startswith('data:'):
            continue
        data_str = line[5:].strip()
        if data_str == '[DONE]':
            continue
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            # Ligne malformée - on continue
            continue
        if not isinstance(data, dict):
            continue

        event_type = data.get("type")
        if event_type == "message_delta" and data.get("usage"):
            claude_usage.setdefault("output_tokens", data["usage"].get("output_tokens", 0))
            continue
        if event_type == "message_start":
            message_usage = (data.get("message") or {}).get("usage") or {}
            claude_usage.setdefault("input_tokens", message_usage.get("input_tokens", 0))
            claude_usage.setdefault("output_tokens", message_usage.get("output_tokens", 0))
            return _normalize_usage(claude_usage)

        # Format OpenAI standard (et Responses API: response.usage)
        usage = data.get("usage") or (data.get("response") or {}).get("usage")
        if usage and isinstance(usage, dict):
            return _normalize_usage(usage)

        # Format Gemini / Cloud Code (enveloppe `response`)
        meta = data.get("usageMetadata") or (data.get("response") or {}).get("usageMetadata")
        if meta:
            return _normalize_usage_metadata(meta)

    if claude_usage:
        return _normalize_usage(claude_usage)
    return None


def extract_usage_from_response(response_data: Dict[str, Any]) -> Optional[Dict[str, int]]:
    """
    Extrait les usage tokens d'une réponse complète (non-streaming).

    Args:
        response_data: Données JSON de la réponse

    Returns:
        Dictionnaire avec prompt_tokens, completion_tokens, total_tokens
    """
    usage = response_data.get('usage')
    if usage:
        return _normalize_usage(usage)
    meta = response_data.get('usageMetadata') or (response_data.get('response') or {}).get('usageMetadata')
    if meta:
        return _normalize_usage_metadata(meta)
    return None
