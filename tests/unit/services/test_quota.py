"""
Tests unitaires du contrôle d'admission.

Pourquoi: chaque requête passe ici; un faux positif coûte de l'argent,
un faux négatif bloque un client légitime.
"""
import asyncio
import json

import pytest

from provider_gateway.core.models import ApiKey
from provider_gateway.services.credential_store import InMemoryCredentialStore
from provider_gateway.services.quota import (
    AdmissionController,
    build_quota_snapshot,
    is_model_allowed,
    model_matches_allowed,
    normalize_allowed_models,
    parse_bearer_api_key,
)


def _body(response):
    return json.loads(response.body)


class TestModelMatching:
    """Tests du matching modèle / liste autorisée."""

    def test_exact_match(self):
        assert model_matches_allowed("openai/gpt-4", "openai/gpt-4")

    def test_suffix_match(self):
        """Un identifiant suivi de `/...` matche dans les deux sens."""
        assert model_matches_allowed("openai/gpt-4/turbo", "openai/gpt-4")
        assert model_matches_allowed("openai", "openai/gpt-4")

    def test_tail_match(self):
        """Même modèle derrière deux namespaces différents."""
        assert model_matches_allowed("openrouter/gpt-4", "openai/gpt-4")

    def test_bare_model_matches_namespaced_entry(self):
        assert model_matches_allowed("gpt-4", "openai/gpt-4")
        assert is_model_allowed("gpt-4", ["openai/gpt-4"])

    def test_prefix_without_slash_does_not_match(self):
        assert not model_matches_allowed("openai/gpt-4-mini", "openai/gpt-4")

    def test_empty_values_never_match(self):
        assert not model_matches_allowed("", "openai/gpt-4")
        assert not model_matches_allowed("gpt-4", "  ")

    def test_empty_allow_list_allows_everything(self):
        assert is_model_allowed("anything", [])
        assert is_model_allowed(None, ["openai/gpt-4"])

    def test_normalize_allowed_models(self):
        assert normalize_allowed_models([" a ", "", None, "b", "a"]) == ["a", "b"]
        assert normalize_allowed_models("not-a-list") == []

    def test_normalize_drops_falsy_entries(self):
        assert normalize_allowed_models([0, False, "gpt-4", 7]) == ["gpt-4", "7"]


class TestParseBearer:
    """Tests d'extraction de la clé."""

    def test_bearer(self, make_request):
        assert parse_bearer_api_key(make_request("sk-abc")) == "sk-abc"

    def test_missing_header(self, make_request):
        assert parse_bearer_api_key(make_request()) is None

    def test_other_scheme(self, make_request):
        assert parse_bearer_api_key(make_request("sk-abc", scheme="Basic")) is None


class TestQuotaSnapshot:
    """Tests du snapshot de quota."""

    def test_unlimited_dimension_has_no_remaining(self):
        snapshot = build_quota_snapshot(ApiKey(id="k", request_limit=10, request_used=3))
        assert snapshot["requestRemaining"] == 7
        assert snapshot["tokenRemaining"] is None

    def test_exhausted_dimension_is_zero(self):
        snapshot = build_quota_snapshot(ApiKey(id="k", token_limit=100, token_used=150), "token")
        assert snapshot["tokenRemaining"] == 0
        assert snapshot["tokenUsed"] == 150


class TestAdmissionController:
    """Tests du contrôleur d'admission."""

    @pytest.mark.asyncio
    async def test_missing_key_is_401(self, store, make_request):
        result = await AdmissionController(store).enforce_api_key_quota(make_request())
        assert not result.ok
        assert result.response.status_code == 401
        body = _body(result.response)
        assert body["error"]["code"] == "missing_api_key"
        assert body["error"]["type"] == "invalid_request_error"
        assert result.response.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_unknown_key_is_401(self, store, make_request):
        result = await AdmissionController(store).enforce_api_key_quota(make_request("sk-nope"))
        assert result.response.status_code == 401
        assert _body(result.response)["error"]["code"] == "invalid_api_key"

    @pytest.mark.asyncio
    async def test_disabled_key_is_401(self, make_request):
        store = InMemoryCredentialStore(api_keys=[{"id": "k", "key": "sk-off", "is_active": False}])
        result = await AdmissionController(store).enforce_api_key_quota(make_request("sk-off"))
        assert result.response.status_code == 401
        assert _body(result.response)["error"]["code"] == "api_key_disabled"

    @pytest.mark.asyncio
    async def test_admitted_request_consumes_one_unit(self, store, make_request):
        controller = AdmissionController(store)
        result = await controller.enforce_api_key_quota(make_request("sk-test-123"))
        assert result.ok
        assert result.api_key_id == "key-1"
        assert (await store.get_api_key_by_id("key-1")).request_used == 1

    @pytest.mark.asyncio
    async def test_consume_request_false_does_not_count(self, store, make_request):
        controller = AdmissionController(store)
        await controller.enforce_api_key_quota(make_request("sk-test-123"), consume_request=False)
        assert (await store.get_api_key_by_id("key-1")).request_used == 0

    @pytest.mark.asyncio
    async def test_model_not_allowed_is_403(self, make_request):
        store = InMemoryCredentialStore(api_keys=[
            {"id": "k", "key": "sk-m", "allowed_models": ["openai/gpt-4", " ", "openai/gpt-4"]},
        ])
        result = await AdmissionController(store).enforce_api_key_quota(
            make_request("sk-m"), model="openai/gpt-4-mini"
        )
        assert result.response.status_code == 403
        error = _body(result.response)["error"]
        assert error["code"] == "model_not_allowed"
        assert error["type"] == "insufficient_permissions"
        assert error["allowedModels"] == ["openai/gpt-4"]
        assert (await store.get_api_key_by_id("k")).request_used == 0

    @pytest.mark.asyncio
    async def test_request_quota_exhausted_is_429(self, make_request):
        store = InMemoryCredentialStore(api_keys=[
            {"id": "k", "key": "sk-q", "request_limit": 5, "request_used": 5},
        ])
        result = await AdmissionController(store).enforce_api_key_quota(make_request("sk-q"))
        assert result.response.status_code == 429
        error = _body(result.response)["error"]
        assert error["code"] == "quota_exceeded"
        assert error["type"] == "insufficient_quota"
        assert error["quota"]["requestRemaining"] == 0
        assert (await store.get_api_key_by_id("k")).request_used == 5

    @pytest.mark.asyncio
    async def test_request_quota_checked_before_token_quota(self, make_request):
        store = InMemoryCredentialStore(api_keys=[
            {"id": "k", "key": "sk-q", "request_limit": 1, "request_used": 1,
             "token_limit": 10, "token_used": 10},
        ])
        result = await AdmissionController(store).enforce_api_key_quota(make_request("sk-q"))
        assert "request" in _body(result.response)["error"]["message"]

    @pytest.mark.asyncio
    async def test_token_quota_exhausted_is_429(self, make_request):
        store = InMemoryCredentialStore(api_keys=[
            {"id": "k", "key": "sk-t", "token_limit": 100, "token_used": 100},
        ])
        result = await AdmissionController(store).enforce_api_key_quota(make_request("sk-t"))
        error = _body(result.response)["error"]
        assert error["quota"]["tokenRemaining"] == 0
        assert error["quota"]["requestRemaining"] is None

    @pytest.mark.asyncio
    async def test_non_numeric_limits_mean_unlimited(self, make_request):
        store = InMemoryCredentialStore(api_keys=[
            {"id": "k", "key": "sk-n", "request_limit": "abc", "token_limit": None},
        ])
        result = await AdmissionController(store).enforce_api_key_quota(make_request("sk-n"))
        assert result.ok

    @pytest.mark.asyncio
    async def test_zero_limit_means_unlimited(self, make_request):
        store = InMemoryCredentialStore(api_keys=[
            {"id": "k", "key": "sk-z", "request_limit": 0, "request_used": 999, "token_limit": 0, "token_used": 10**6},
        ])
        result = await AdmissionController(store).enforce_api_key_quota(make_request("sk-z"))
        assert result.ok
        assert (await store.get_api_key_by_id("k")).request_used == 1000

    @pytest.mark.asyncio
    async def test_concurrent_requests_never_exceed_limit(self, make_request):
        """Le verrou par clé empêche de dépasser la dernière unité de quota."""
        store = InMemoryCredentialStore(api_keys=[{"id": "k", "key": "sk-c", "request_limit": 3}])
        controller = AdmissionController(store)

        results = await asyncio.gather(*[
            controller.enforce_api_key_quota(make_request("sk-c")) for _ in range(10)
        ])

        assert sum(1 for r in results if r.ok) == 3
        assert (await store.get_api_key_by_id("k")).request_used == 3


class TestRecordTokenUsage:
    """Tests de l'enregistrement des tokens consommés."""

    @pytest.mark.asyncio
    async def test_records_prompt_plus_completion(self, store):
        controller = AdmissionController(store)
        total = await controller.record_api_key_token_usage(
            "key-1", {"prompt_tokens": 12, "completion_tokens": 30}
        )
        assert total == 42
        assert (await store.get_api_key_by_id("key-1")).token_used == 42

    @pytest.mark.asyncio
    async def test_claude_style_usage(self, store):
        controller = AdmissionController(store)
        assert await controller.record_api_key_token_usage("key-1", {"input_tokens": 5, "output_tokens": 7}) == 12

    @pytest.mark.asyncio
    async def test_noop_without_usage(self, store):
        controller = AdmissionController(store)
        assert await controller.record_api_key_token_usage("key-1", None) == 0
        assert await controller.record_api_key_token_usage(None, {"prompt_tokens": 1}) == 0
        assert await controller.record_api_key_token_usage("key-1", {"prompt_tokens": 0}) == 0
        assert (await store.get_api_key_by_id("key-1")).token_used == 0
