"""
Tests for environment-backed configuration and URL helpers.
"""
from pathlib import Path

import pytest

from weave_client.config import ClientConfig, build_url, normalize_api_base


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("http://localhost:4000", "http://localhost:4000/api"),
        ("http://localhost:4000/", "http://localhost:4000/api"),
        ("https://weave.example/api", "https://weave.example/api"),
        ("https://weave.example/api/", "https://weave.example/api"),
    ],
)
def test_normalize_api_base(raw, expected):
    assert normalize_api_base(raw) == expected


def test_build_url():
    base = "http://api.test/api"
    assert build_url(base, "/products") == "http://api.test/api/products"
    assert build_url(base, "products") == "http://api.test/api/products"
    assert build_url(base, "") == base
    assert build_url(base, "HTTPS://cdn.test/x") == "HTTPS://cdn.test/x"


class TestClientConfig:
    def test_defaults(self, monkeypatch):
        for key in (
            "WEAVE_API_BASE_URL",
            "WEAVE_TOKEN_REFRESH_SKEW_SECONDS",
            "WEAVE_GET_CACHE_TTL_SECONDS",
            "WEAVE_GET_CACHE_MAX_ITEMS",
        ):
            monkeypatch.delenv(key, raising=False)

        assert ClientConfig.base_url() == "http://localhost:4000/api"
        assert ClientConfig.refresh_skew_seconds() == 30.0
        assert ClientConfig.cache_ttl_seconds() == 5.0
        assert ClientConfig.cache_max_items() == 500

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WEAVE_API_BASE_URL", "https://weave.example")
        monkeypatch.setenv("WEAVE_TOKEN_REFRESH_SKEW_SECONDS", "60")
        monkeypatch.setenv("WEAVE_GET_CACHE_TTL_SECONDS", "0")
        monkeypatch.setenv("WEAVE_TOKEN_FILE", str(tmp_path / "tokens.json"))

        assert ClientConfig.base_url() == "https://weave.example/api"
        assert ClientConfig.refresh_skew_seconds() == 60.0
        assert ClientConfig.cache_ttl_seconds() == 0.0
        assert ClientConfig.token_file() == Path(tmp_path / "tokens.json")

    def test_invalid_values_fall_back(self, monkeypatch, caplog):
        monkeypatch.setenv("WEAVE_TOKEN_REFRESH_SKEW_SECONDS", "soon")
        monkeypatch.setenv("WEAVE_GET_CACHE_MAX_ITEMS", "-3")

        assert ClientConfig.refresh_skew_seconds() == 30.0
        assert ClientConfig.cache_max_items() == 500
        assert "Invalid value for WEAVE_TOKEN_REFRESH_SKEW_SECONDS" in caplog.text

    def test_timeout(self, monkeypatch):
        monkeypatch.setenv("TIMEOUT_READ", "12.5")
        timeout = ClientConfig.timeout()
        assert timeout.read == 12.5
        assert timeout.connect == 10.0
