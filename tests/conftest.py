"""
Configuration des tests pytest.
"""
import pytest
import sys
import os

import httpx

# Ajoute src au path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from fastapi import Request  # noqa: E402

from provider_gateway.config.settings import Settings, TransportConfig  # noqa: E402
from provider_gateway.context import create_context  # noqa: E402
from provider_gateway.proxy.client import ProxyClient  # noqa: E402
from provider_gateway.services.credential_store import InMemoryCredentialStore  # noqa: E402


# Configuration pytest-asyncio
def pytest_configure(config):
    """Configure pytest pour async."""
    config.addinivalue_line(
        "markers", "asyncio: marque un test comme asynchrone"
    )


class Upstream:
    """
    Faux upstream pour `httpx.MockTransport`.

    Les réponses sont enregistrées par fragment d'URL; la dernière réponse
    d'une file est rejouée indéfiniment.
    """

    def __init__(self):
        self.requests = []
        self._routes = []

    def on(self, url_part, *responses):
        self._routes.append((url_part, list(responses)))
        return self

    def calls_to(self, url_part):
        return [r for r in self.requests if url_part in str(r.url)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for url_part, queue in self._routes:
            if url_part in str(request.url):
                answer = queue.pop(0) if len(queue) > 1 else queue[0]
                if callable(answer):
                    return answer(request)
                status, payload = answer
                return httpx.Response(status, json=payload)
        return httpx.Response(404, json={"error": "no route"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_request(api_key=None, scheme="Bearer") -> Request:
    """Requête entrante minimale (scope ASGI) avec header Authorization."""
    headers = []
    if api_key is not None:
        headers.append((b"authorization", f"{scheme} {api_key}".encode()))
    return Request({
        "type": "http",
        "method": "POST",
        "path": "/v1/chat/completions",
        "headers": headers,
        "query_string": b"",
    })


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def settings():
    """Settings de test: pas de retry réseau, pas de fichier."""
    return Settings(transport=TransportConfig(max_retries=0, retry_delay=0.0))


@pytest.fixture
def store():
    """Store mémoire avec une clé illimitée et une connexion GitHub."""
    return InMemoryCredentialStore(
        api_keys=[
            {"id": "key-1", "key": "sk-test-123", "name": "test"},
        ],
        connections=[
            {
                "id": "conn-github",
                "provider": "github",
                "access_token": "gho_old",
                "refresh_token": "ghr_old",
                "provider_specific_data": {
                    "copilot_token": "cop_old",
                    "copilot_token_expires_at": 4102444800,
                },
            },
        ],
    )


@pytest.fixture
def http(upstream):
    """Client sortant branché sur le faux upstream."""
    return ProxyClient(transport=upstream.transport, max_retries=0, retry_delay=0.0)


@pytest.fixture
def context(settings, store, upstream):
    return create_context(settings=settings, store=store, transport=upstream.transport)


@pytest.fixture
def sample_messages():
    """Fixture pour des messages de test."""
    return [
        {"role": "system", "content": "Tu es un assistant utile."},
        {"role": "user", "content": "Bonjour, comment ça va?"},
    ]


@pytest.fixture(name="make_request")
def make_request_fixture():
    return make_request
