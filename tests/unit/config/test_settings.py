"""
Tests unitaires du chargement de configuration.
"""
import httpx
import pytest

from provider_gateway import create_context
from provider_gateway.config.loader import _clear_config_cache, init_providers, load_config, reload_config
from provider_gateway.config.settings import Settings, TransportConfig
from provider_gateway.core.exceptions import ConfigurationError

CONFIG = """
[gateway]
deployment_mode = "self_hosted"
token_expiry_buffer_ms = 120000

[transport]
impersonate = "chrome120"
no_proxy = "localhost,.internal.com"
timeout = 60.0

[providers.github]
client_secret = "${TEST_GITHUB_SECRET}"

[providers.iflow]
client_secret = "${TEST_UNSET_SECRET}"

[providers.deepseek]
base_url = "https://api.deepseek.com/v1/chat/completions"
auth_type = "bearer"
"""


@pytest.fixture(autouse=True)
def clean_cache():
    _clear_config_cache()
    yield
    _clear_config_cache()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests du loader TOML."""

    def test_env_expansion(self, config_file, monkeypatch):
        monkeypatch.setenv("TEST_GITHUB_SECRET", "s3cr3t")
        config = reload_config(str(config_file))
        assert config["providers"]["github"]["client_secret"] == "s3cr3t"
        assert config["providers"]["iflow"]["client_secret"] == "${TEST_UNSET_SECRET}"

    def test_cached(self, config_file):
        first = load_config(str(config_file))
        assert load_config("/does/not/matter") is first

    def test_gateway_config_env(self, config_file, monkeypatch):
        monkeypatch.setenv("GATEWAY_CONFIG", str(config_file))
        assert load_config()["gateway"]["token_expiry_buffer_ms"] == 120000

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(str(tmp_path / "absent.toml"))

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[gateway\nmode = ", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_unexpanded_values_are_dropped(self, config_file):
        providers = init_providers(reload_config(str(config_file)))
        assert providers["iflow"] == {}
        assert providers["deepseek"]["auth_type"] == "bearer"


class TestSettings:
    """Tests des dataclasses de configuration."""

    def test_from_config(self, config_file):
        settings = Settings.from_config(reload_config(str(config_file)), env={})
        assert settings.token_expiry_buffer_ms == 120000
        assert settings.transport.impersonate == "chrome120"
        assert settings.transport.no_proxy == "localhost,.internal.com"
        assert settings.transport.timeout == 60.0
        assert not settings.is_managed

    def test_env_overrides_file(self, config_file):
        env = {"GATEWAY_DEPLOYMENT_MODE": "managed", "NO_PROXY": "*", "GATEWAY_IMPERSONATE": "safari17_0"}
        settings = Settings.from_config(reload_config(str(config_file)), env=env)
        assert settings.is_managed
        assert settings.transport.no_proxy == "*"
        assert settings.transport.impersonate == "safari17_0"

    def test_lowercase_proxy_variables(self):
        config = TransportConfig.from_dict({}, env={"https_proxy": "127.0.0.1:7890", "no_proxy": "localhost"})
        assert config.https_proxy == "127.0.0.1:7890"
        assert config.no_proxy == "localhost"

    def test_unknown_deployment_mode(self):
        with pytest.raises(ConfigurationError):
            Settings.from_config({"gateway": {"deployment_mode": "cloud"}}, env={})

    def test_from_env_without_file(self):
        settings = Settings.from_env(env={})
        assert settings.deployment_mode == "self_hosted"
        assert settings.token_expiry_buffer_ms == 600000
        assert settings.transport.impersonate == "chrome124"

    def test_get_provider_merges_overrides(self):
        settings = Settings(providers={"github": {"client_secret": "s"}})
        github = settings.get_provider("github")
        assert github["client_secret"] == "s"
        assert github["client_id"] == "Iv1.b507a08c87ecfe98"
        assert settings.get_provider("unknown") == {}


class TestDefaultSettings:
    """Configuration utilisée quand le contexte est créé sans settings."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in ("GATEWAY_DEPLOYMENT_MODE", "GATEWAY_IMPERSONATE", "NO_PROXY", "no_proxy"):
            monkeypatch.delenv(name, raising=False)

    def test_load_reads_config_file(self, config_file):
        settings = Settings.load(str(config_file), env={})
        assert settings.token_expiry_buffer_ms == 120000
        assert settings.get_provider("deepseek")["base_url"] == "https://api.deepseek.com/v1/chat/completions"

    def test_load_without_file(self, tmp_path):
        settings = Settings.load(str(tmp_path / "absent.toml"), env={})
        assert settings.token_expiry_buffer_ms == 600000
        assert settings.providers == {}

    def test_context_uses_gateway_config(self, config_file, monkeypatch):
        monkeypatch.setenv("GATEWAY_CONFIG", str(config_file))
        context = create_context(transport=httpx.MockTransport(lambda request: httpx.Response(200)))

        executor = context.registry.get_executor("deepseek")

        assert executor.build_url("deepseek-chat", False) == "https://api.deepseek.com/v1/chat/completions"
        assert context.settings.transport.impersonate == "chrome120"
        assert context.http.timeout == 60.0
