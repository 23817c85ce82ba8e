"""Tests for cloudresources.config."""
from cloudresources import config


class TestGetConfig:
    """Tests for configuration selection."""

    def test_named_config(self):
        assert config.get_config("production") is config.ProductionConfig
        assert config.get_config("testing") is config.TestingConfig

    def test_unknown_name_falls_back_to_development(self):
        assert config.get_config("staging") is config.DevelopmentConfig

    def test_environment_selects_config(self, monkeypatch):
        monkeypatch.setenv("CRO_ENV", "testing")
        assert config.get_config() is config.TestingConfig

    def test_testing_config_never_waits(self):
        assert config.TestingConfig.POLL_INTERVAL == 0
        assert config.TestingConfig.POLL_TIMEOUT == 0


class TestIntEnv:
    """Tests for integer environment parsing."""

    def test_unset_uses_default(self, monkeypatch):
        monkeypatch.delenv("CRO_TEST_VALUE", raising=False)
        assert config._int_env("CRO_TEST_VALUE", 7) == 7

    def test_valid_value(self, monkeypatch):
        monkeypatch.setenv("CRO_TEST_VALUE", "42")
        assert config._int_env("CRO_TEST_VALUE", 7) == 42

    def test_invalid_value_uses_default(self, monkeypatch):
        monkeypatch.setenv("CRO_TEST_VALUE", "soon")
        assert config._int_env("CRO_TEST_VALUE", 7) == 7
