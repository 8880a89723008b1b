"""Tests for proxy configuration and bind address resolution."""

import pytest
from pydantic import ValidationError

from giscus_proxy.config import ProxyConfig
from giscus_proxy.config import ServerSettings
from giscus_proxy.config import derive_public_url
from giscus_proxy.config import ensure_url
from giscus_proxy.config import get_env


def test_proxy_config_defaults():
    config = ProxyConfig()

    assert config.upstream_origin == "https://giscus.app"
    assert config.widget_source_path == "/en/widget"
    assert config.widget_paths == ["/widget", "/en/widget"]
    assert config.upstream_timeout == 25.0
    assert config.cache_max_entries == 512
    assert config.cache_headers == [
        "Content-Type",
        "Content-Encoding",
        "Cache-Control",
        "ETag",
        "Last-Modified",
        "Vary",
    ]
    assert config.user_agent == "giscus-proxy/clean-1.0"


@pytest.mark.parametrize(
    "overrides",
    [
        {"cache_max_entries": 0},
        {"upstream_timeout": 0},
        {"widget_paths": []},
    ],
)
def test_proxy_config_validation(overrides):
    with pytest.raises(ValidationError):
        ProxyConfig(**overrides)


def test_get_env():
    env = {"HOST": "  127.0.0.1 ", "EMPTY": "   "}

    assert get_env("HOST", "0.0.0.0", env) == "127.0.0.1"
    assert get_env("EMPTY", "fallback", env) == "fallback"
    assert get_env("MISSING", "fallback", env) == "fallback"


@pytest.mark.parametrize(
    ("value", "scheme", "expected"),
    [
        ("", "", ""),
        ("   ", "https", ""),
        ("http://proxy.example", "", "http://proxy.example"),
        ("https://proxy.example", "http", "https://proxy.example"),
        ("proxy.example", "", "https://proxy.example"),
        ("proxy.example", "http", "http://proxy.example"),
    ],
)
def test_ensure_url(value, scheme, expected):
    assert ensure_url(value, scheme) == expected


class TestDerivePublicUrl:
    def test_public_url_wins(self):
        env = {"PUBLIC_URL": "comments.example", "RAILWAY_URL": "http://r.example"}

        assert derive_public_url(":8080", "", "", env) == "https://comments.example"

    def test_railway_domain_defaults_to_https(self):
        env = {"RAILWAY_PUBLIC_DOMAIN": "app.up.railway.app"}

        assert derive_public_url(":8080", "", "", env) == "https://app.up.railway.app"

    def test_railway_url(self):
        env = {"RAILWAY_URL": "http://internal.railway"}

        assert derive_public_url(":8080", "", "", env) == "http://internal.railway"

    @pytest.mark.parametrize(
        ("bind_addr", "host", "port", "expected"),
        [
            ("0.0.0.0:8080", "", "", "http://localhost:8080"),
            ("127.0.0.1:9000", "", "", "http://127.0.0.1:9000"),
            (":3000", "", "", "http://localhost:3000"),
            ("", "", "", "http://localhost:8080"),
            ("0.0.0.0:8080", "proxy.local", "81", "http://proxy.local:81"),
            ("[::]:8080", "", "", "http://localhost:8080"),
        ],
    )
    def test_local_fallback(self, bind_addr, host, port, expected):
        assert derive_public_url(bind_addr, host, port, {}) == expected


class TestServerSettings:
    def test_defaults(self):
        settings = ServerSettings.from_env({})

        assert settings.bind_addr == "0.0.0.0:8080"
        assert settings.host == "0.0.0.0"
        assert settings.port == 8080
        assert settings.public_url == "http://localhost:8080"

    def test_host_and_port(self):
        settings = ServerSettings.from_env({"HOST": "127.0.0.1", "PORT": ":9000"})

        assert settings.bind_addr == "127.0.0.1:9000"
        assert settings.port == 9000
        assert settings.public_url == "http://127.0.0.1:9000"

    def test_addr_overrides_host_and_port(self):
        settings = ServerSettings.from_env(
            {"ADDR": "10.0.0.5:7000", "HOST": "127.0.0.1", "PORT": "9000"}
        )

        assert settings.bind_addr == "10.0.0.5:7000"
        assert settings.host == "10.0.0.5"
        assert settings.port == 7000

    def test_port_only_addr(self):
        settings = ServerSettings.from_env({"ADDR": ":5000"})

        assert settings.host == "0.0.0.0"
        assert settings.port == 5000
        assert settings.public_url == "http://localhost:5000"
