"""
Tests unitaires des modèles et de la normalisation des valeurs du store.
"""
from datetime import datetime, timezone

import pytest

from provider_gateway.core.exceptions import QuotaError
from provider_gateway.core.models import ApiKey, ProviderCredentials, parse_expiry_ms, to_number


class TestToNumber:

    @pytest.mark.parametrize("value,expected", [
        (5, 5), ("12", 12), ("abc", 0), (None, 0), (float("nan"), 0), (float("inf"), 0), (True, 1), (3.9, 3),
    ])
    def test_coercion(self, value, expected):
        assert to_number(value) == expected


class TestParseExpiry:
    """Les dates d'expiration arrivent sous trois formes."""

    def test_iso(self):
        expected = datetime(2030, 1, 1, tzinfo=timezone.utc).timestamp() * 1000
        assert parse_expiry_ms("2030-01-01T00:00:00Z") == expected
        assert parse_expiry_ms("2030-01-01T00:00:00+00:00") == expected

    def test_seconds_and_ms(self):
        assert parse_expiry_ms(1_900_000_000) == 1_900_000_000_000
        assert parse_expiry_ms(1_900_000_000_000) == 1_900_000_000_000
        assert parse_expiry_ms("1900000000") == 1_900_000_000_000

    def test_unreadable(self):
        assert parse_expiry_ms(None) is None
        assert parse_expiry_ms("") is None
        assert parse_expiry_ms("demain") is None


class TestApiKey:

    def test_from_dict_coerces_numbers(self):
        key = ApiKey.from_dict({"id": 7, "key": "sk", "request_limit": "10", "token_used": "x"})
        assert key.id == "7"
        assert key.request_limit == 10
        assert key.token_used == 0
        assert key.is_active is True
        assert key.allowed_models == []

    def test_to_dict_masks_secret(self):
        assert ApiKey(id="k", key="sk-1234567890").to_dict()["key"] == "sk-12345***"


class TestProviderCredentials:

    def test_from_connection(self):
        creds = ProviderCredentials.from_dict({
            "id": "conn-1",
            "provider": "kiro",
            "access_token": "a",
            "profile_arn": "arn:aws:p",
            "provider_specific_data": {"region": "us-east-1"},
        })
        assert creds.connection_id == "conn-1"
        assert creds.get("profile_arn") == "arn:aws:p"
        assert creds.get("region") == "us-east-1"
        assert "provider" not in creds.provider_specific_data

    def test_merged_computes_expires_at(self):
        creds = ProviderCredentials(access_token="a", refresh_token="r")
        merged = creds.merged({"access_token": "b", "expires_in": 3600, "copilot_token": "c"})
        assert merged.access_token == "b"
        assert merged.refresh_token == "r"
        assert merged.get("copilot_token") == "c"
        assert parse_expiry_ms(merged.expires_at) > datetime.now(timezone.utc).timestamp() * 1000
        assert creds.access_token == "a"


class TestAdmissionErrors:

    def test_quota_error_wire_format(self):
        error = QuotaError("API key token quota exceeded", {"tokenRemaining": 0})
        assert error.to_dict() == {
            "error": {
                "message": "API key token quota exceeded",
                "type": "insufficient_quota",
                "code": "quota_exceeded",
                "quota": {"tokenRemaining": 0},
            }
        }
        response = error.to_response()
        assert response.status_code == 429
        assert response.headers["access-control-allow-origin"] == "*"
