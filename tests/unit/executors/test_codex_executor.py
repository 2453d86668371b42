"""
Tests unitaires de l'executor Codex.
"""
import pytest

from provider_gateway.core.constants import CODEX_DEFAULT_INSTRUCTIONS, PROVIDERS
from provider_gateway.core.models import ProviderCredentials
from provider_gateway.executors import CodexExecutor


@pytest.fixture
def executor(http):
    return CodexExecutor("codex", PROVIDERS["codex"], http)


class TestCodexTransform:
    """Tests de la transformation du body Responses."""

    @pytest.mark.parametrize("instructions", [None, "", "   "])
    def test_missing_instructions_get_default(self, executor, instructions):
        body = {"model": "gpt-5-codex", "input": []}
        if instructions is not None:
            body["instructions"] = instructions
        transformed = executor.transform_request("gpt-5-codex", body, True, ProviderCredentials())
        assert transformed["instructions"] == CODEX_DEFAULT_INSTRUCTIONS

    def test_custom_instructions_kept(self, executor):
        body = {"instructions": "Be brief.", "store": True}
        transformed = executor.transform_request("gpt-5-codex", body, True, ProviderCredentials())
        assert transformed["instructions"] == "Be brief."
        assert transformed["store"] is False

    def test_caller_body_untouched(self, executor):
        body = {"store": True}
        executor.transform_request("m", body, True, ProviderCredentials())
        assert body == {"store": True}

    def test_idempotent(self, executor):
        creds = ProviderCredentials()
        once = executor.transform_request("m", {"input": []}, True, creds)
        twice = executor.transform_request("m", once, True, creds)
        assert once == twice


class TestCodexHeaders:
    """Tests des headers ChatGPT backend."""

    def test_headers(self, executor):
        creds = ProviderCredentials(access_token="eyJ", provider_specific_data={"chatgpt_account_id": "acc-1"})
        headers = executor.build_headers(creds)
        assert headers["Authorization"] == "Bearer eyJ"
        assert headers["chatgpt-account-id"] == "acc-1"
        assert headers["OpenAI-Beta"] == "responses=experimental"
        assert headers["originator"] == "codex_cli_rs"

    def test_no_account_id(self, executor):
        assert "chatgpt-account-id" not in executor.build_headers(ProviderCredentials(access_token="eyJ"))
