"""
Property-based tests for configuration loading, saving and environment overrides.
"""

import json
import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from custom_hosts.cli import (
    apply_env_overrides,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)
from custom_hosts.config import (
    DEFAULT_DNS_PROVIDERS,
    DEFAULT_GITHUB_DOMAINS,
    AdminConfig,
    CacheConfig,
    DNSProviderConfig,
    LoggingConfig,
    PersistenceConfig,
    ResolverConfig,
    RetryConfig,
    SystemConfig,
    UpstreamConfig,
)


ENV_VARS = [
    "CUSTOM_HOSTS_STATE_DIR",
    "CUSTOM_HOSTS_HMAC_SECRET",
    "CUSTOM_HOSTS_UPSTREAM_URL",
    "CUSTOM_HOSTS_LOG_LEVEL",
    "CUSTOM_HOSTS_API_KEY",
    "CUSTOM_HOSTS_ADMIN_PATH",
]


# Strategies for generating valid configuration objects

@st.composite
def provider_strategy(draw) -> DNSProviderConfig:
    name = draw(st.text(alphabet="abcdefghijklmnopqrstuvwxyz", min_size=2, max_size=10))
    return DNSProviderConfig(
        name=name,
        endpoint=f"https://{name}.example/dns-query",
        enabled=draw(st.booleans()),
    )


@st.composite
def system_config_strategy(draw) -> SystemConfig:
    """Generate valid SystemConfig objects."""
    domains = draw(st.lists(
        st.sampled_from(DEFAULT_GITHUB_DOMAINS), min_size=1, max_size=10, unique=True
    ))
    return SystemConfig(
        resolver=ResolverConfig(
            providers=draw(st.lists(provider_strategy(), min_size=1, max_size=4)),
            request_timeout_seconds=draw(st.floats(min_value=0.5, max_value=30.0)),
            overall_timeout_seconds=draw(st.floats(min_value=1.0, max_value=60.0)),
            record_type=draw(st.sampled_from(["A", "AAAA"])),
        ),
        upstream=UpstreamConfig(
            domains=domains,
            source_url=draw(st.one_of(st.none(), st.just("https://hosts.example/list.json"))),
            group_keywords=draw(st.lists(st.sampled_from(["github", "copilot"]), unique=True)),
            max_concurrency=draw(st.integers(min_value=1, max_value=32)),
        ),
        cache=CacheConfig(
            validity_minutes=draw(st.integers(min_value=1, max_value=1440)),
            refresh_interval_seconds=draw(st.floats(min_value=1.0, max_value=86400.0)),
        ),
        retry=RetryConfig(
            max_retries=draw(st.integers(min_value=0, max_value=5)),
            base_delay_seconds=draw(st.floats(min_value=0.1, max_value=5.0)),
            max_delay_seconds=draw(st.floats(min_value=5.0, max_value=60.0)),
        ),
        persistence=PersistenceConfig(
            state_dir=Path("/var/lib/custom-hosts"),
            hmac_secret=draw(st.text(alphabet="abcdefABCDEF0123456789", min_size=16, max_size=40)),
        ),
        logging=LoggingConfig(
            level=draw(st.sampled_from(["debug", "info", "warn", "error"])),
            output_format=draw(st.sampled_from(["json", "text", "both"])),
        ),
        admin=AdminConfig(
            admin_path=draw(st.sampled_from(["admin", "secret-panel"])),
            api_key=draw(st.one_of(st.none(), st.just("k3y"))),
        ),
    )


class TestConfigRoundTripProperty:
    """
    Property-based tests for configuration persistence.
    """

    @given(config=system_config_strategy())
    @settings(max_examples=50, deadline=None)
    def test_saved_config_loads_back_equal(self, config: SystemConfig) -> None:
        """
        Property 1: A saved configuration loads back unchanged.
        """
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "config.json"

            assert save_config_to_file(config, path)
            loaded = load_config_from_file(path)

        assert loaded == config


class TestConfigDefaults:
    """Defaults and tolerant loading."""

    def test_default_config(self) -> None:
        config = create_default_config(state_dir=Path("/tmp/state"))

        assert [p.name for p in config.resolver.providers] == ["cloudflare", "google", "alidns"]
        assert config.cache.validity_minutes == 360
        assert config.upstream.domains == DEFAULT_GITHUB_DOMAINS
        assert config.persistence.state_dir == Path("/tmp/state")
        assert config.admin.admin_path == "admin"

    def test_missing_sections_use_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"cache": {"validity_minutes": 30}}), encoding="utf-8")

        config = load_config_from_file(path)

        assert config.cache.validity_minutes == 30
        assert config.resolver.providers == list(DEFAULT_DNS_PROVIDERS)
        assert config.upstream.domains == DEFAULT_GITHUB_DOMAINS
        assert config.retry == RetryConfig()

    def test_missing_file_returns_none(self, tmp_path: Path) -> None:
        assert load_config_from_file(tmp_path / "absent.json") is None

    def test_invalid_json_returns_none(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")

        assert load_config_from_file(path) is None


class TestEnvironmentOverrides:
    """CUSTOM_HOSTS_* variables override the loaded configuration."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ENV_VARS:
            monkeypatch.delenv(name, raising=False)

    def test_overrides_applied(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CUSTOM_HOSTS_STATE_DIR", "/srv/hosts")
        monkeypatch.setenv("CUSTOM_HOSTS_HMAC_SECRET", "s3cret-value")
        monkeypatch.setenv("CUSTOM_HOSTS_UPSTREAM_URL", "https://hosts.example/hosts")
        monkeypatch.setenv("CUSTOM_HOSTS_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("CUSTOM_HOSTS_API_KEY", "abc123")
        monkeypatch.setenv("CUSTOM_HOSTS_ADMIN_PATH", "/panel/")

        config = apply_env_overrides(create_default_config())

        assert config.persistence.state_dir == Path("/srv/hosts")
        assert config.persistence.hmac_secret == "s3cret-value"
        assert config.upstream.source_url == "https://hosts.example/hosts"
        assert config.logging.level == "debug"
        assert config.admin.api_key == "abc123"
        assert config.admin.admin_path == "panel"

    def test_unset_variables_leave_config_alone(self) -> None:
        before = create_default_config()
        after = apply_env_overrides(create_default_config())

        assert after == before
