"""
Couche réseau sortante: transport (empreinte, NO_PROXY) et client HTTP.
"""

from .transport import (
    FingerprintTransport,
    create_transport,
    should_bypass_proxy,
    parse_no_proxy,
    normalize_proxy_url,
)
from .client import create_proxy_client, ProxyClient, PROVIDER_TIMEOUTS
from .stream import extract_usage_from_stream, extract_usage_from_response

__all__ = [
    "FingerprintTransport",
    "create_transport",
    "should_bypass_proxy",
    "parse_no_proxy",
    "normalize_proxy_url",
    "create_proxy_client",
    "ProxyClient",
    "PROVIDER_TIMEOUTS",
    "extract_usage_from_stream",
    "extract_usage_from_response",
]
