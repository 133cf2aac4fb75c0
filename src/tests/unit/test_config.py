"""Tests for pydantic-settings configuration."""

import pytest
from pydantic import ValidationError

from blockhub.config import (
    EC2Config,
    LoggingConfig,
    PollBudget,
    PollerConfig,
    Settings,
    StoreConfig,
    get_settings,
)


class TestPollerConfig:
    def test_defaults(self) -> None:
        """600 attempts at 10s: a 100-minute ceiling."""
        config = PollerConfig()
        assert config.max_attempts == 600
        assert config.delay == 10.0

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("POLLER_MAX_ATTEMPTS", "60")
        monkeypatch.setenv("POLLER_DELAY", "2.5")
        config = PollerConfig()
        assert config.max_attempts == 60
        assert config.delay == 2.5

    def test_per_operation_overrides_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(
            "POLLER_OVERRIDES", '{"attach_volume": {"max_attempts": 30, "delay": 1}}'
        )
        config = PollerConfig()

        assert config.budget_for("attach_volume") == PollBudget(max_attempts=30, delay=1.0)
        assert config.budget_for("create_volume") == PollBudget(max_attempts=600, delay=10.0)

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValidationError):
            PollerConfig(max_attempts=0)


class TestEC2Config:
    def test_regions_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EC2_REGIONS", '["us-east-1", "eu-west-1"]')
        assert EC2Config().regions == ["us-east-1", "eu-west-1"]

    def test_defaults(self) -> None:
        config = EC2Config()
        assert config.default_region == "us-east-1"
        assert config.endpoint_url is None
        assert config.max_retries == 3


class TestStoreConfig:
    def test_prefix_cannot_contain_separator(self) -> None:
        with pytest.raises(ValidationError):
            StoreConfig(volume_prefix="vol/")


class TestLoggingConfig:
    def test_format_is_normalized(self) -> None:
        assert LoggingConfig(format="TEXT").format == "text"

    def test_unknown_format_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LoggingConfig(format="xml")


class TestSettings:
    def test_aggregates_sub_configs(self) -> None:
        settings = Settings()
        assert isinstance(settings.poller, PollerConfig)
        assert isinstance(settings.ec2, EC2Config)
        assert isinstance(settings.store, StoreConfig)
        assert isinstance(settings.logging, LoggingConfig)

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
