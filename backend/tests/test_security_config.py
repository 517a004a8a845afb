import importlib
import sys

import pytest

STRONG_SECRET = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
STRONG_HASH_KEY = "fedcba9876543210FEDCBA9876543210fedcba9876543210FEDCBA9876543210"


def reload_config_module():
    config_module = sys.modules.get("app.config")
    if config_module:
        config_module.get_settings.cache_clear()
        sys.modules.pop("app.config", None)
    return importlib.import_module("app.config")


def test_missing_secret_key_fails_closed(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "")
    monkeypatch.setenv("REFRESH_TOKEN_HASH_KEY", STRONG_HASH_KEY)

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="secret_key|SECRET_KEY"):
        config_module.get_settings()


def test_weak_secret_key_fails_closed(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "changeme-in-production")
    monkeypatch.setenv("REFRESH_TOKEN_HASH_KEY", STRONG_HASH_KEY)

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="secret_key|SECRET_KEY"):
        config_module.get_settings()


def test_low_entropy_hash_key_fails_closed(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", STRONG_SECRET)
    monkeypatch.setenv("REFRESH_TOKEN_HASH_KEY", "a" * 64)

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="refresh_token_hash_key|REFRESH_TOKEN_HASH_KEY"):
        config_module.get_settings()


def test_hash_key_must_differ_from_signing_key(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", STRONG_SECRET)
    monkeypatch.setenv("REFRESH_TOKEN_HASH_KEY", STRONG_SECRET)

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="must differ"):
        config_module.get_settings()


def test_strong_keys_pass_with_policy_defaults(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", STRONG_SECRET)
    monkeypatch.setenv("REFRESH_TOKEN_HASH_KEY", STRONG_HASH_KEY)
    monkeypatch.delenv("DEVICE_INACTIVITY_DAYS", raising=False)
    monkeypatch.delenv("REAPER_INTERVAL_HOURS", raising=False)

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()
    settings = config_module.get_settings()

    assert settings.secret_key
    assert settings.access_token_ttl.total_seconds() == 15 * 60
    assert settings.inactivity_threshold.days == 30
    assert settings.reaper_interval.total_seconds() == 24 * 60 * 60
    assert settings.refresh_token_ttl is None


def test_inactivity_threshold_is_configurable(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", STRONG_SECRET)
    monkeypatch.setenv("REFRESH_TOKEN_HASH_KEY", STRONG_HASH_KEY)
    monkeypatch.setenv("DEVICE_INACTIVITY_DAYS", "7")
    monkeypatch.setenv("REAPER_INTERVAL_HOURS", "1")

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()
    settings = config_module.get_settings()

    assert settings.inactivity_threshold.days == 7
    assert settings.reaper_interval.total_seconds() == 3600
