"""Tests for logging setup, JSON formatting and rate limiting."""

import json
import logging

import pytest

from blockhub.config import LoggingConfig
from blockhub.logging import BlockHubJsonFormatter, RateLimitFilter, component_for, setup_logging
from blockhub.logging_schema import Component, LogEvent


def make_record(
    msg: str = "waiting", level: int = logging.INFO, **extra: object
) -> logging.LogRecord:
    record = logging.LogRecord(
        name="blockhub.core.poller",
        level=level,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    record.__dict__.update(extra)
    return record


def poll_record(msg: str, volume_id: str) -> logging.LogRecord:
    return make_record(
        msg, event=LogEvent.POLL_STARTED, condition="volume_available", volume_id=volume_id
    )


class TestRateLimitFilter:
    def test_duplicate_suppressed_within_window(self) -> None:
        f = RateLimitFilter(rate_limit_seconds=60)
        assert f.filter(make_record()) is True
        assert f.filter(make_record()) is False

    def test_different_messages_pass(self) -> None:
        f = RateLimitFilter(rate_limit_seconds=60)
        assert f.filter(make_record("a")) is True
        assert f.filter(make_record("b")) is True

    def test_errors_always_pass(self) -> None:
        f = RateLimitFilter(rate_limit_seconds=60)
        assert f.filter(make_record(level=logging.ERROR)) is True
        assert f.filter(make_record(level=logging.ERROR)) is True

    def test_cache_is_bounded(self) -> None:
        f = RateLimitFilter(rate_limit_seconds=60, max_cache_size=150)
        for i in range(200):
            f.filter(make_record(f"m{i}"))
        assert len(f._last_log) <= 150

    def test_structured_events_keyed_by_resource(self) -> None:
        """Same wait on one volume is limited; other volumes still log."""
        f = RateLimitFilter(rate_limit_seconds=60)
        assert f.filter(poll_record("waiting (budget 600)", "us-east-1/vol-1")) is True
        assert f.filter(poll_record("waiting (budget 30)", "us-east-1/vol-1")) is False
        assert f.filter(poll_record("waiting (budget 600)", "us-east-1/vol-2")) is True

    def test_suppressed_count_reported(self, monkeypatch: pytest.MonkeyPatch) -> None:
        clock = iter([0.0, 1.0, 2.0, 100.0])
        monkeypatch.setattr("blockhub.logging.time.monotonic", lambda: next(clock))
        f = RateLimitFilter(rate_limit_seconds=60)

        for _ in range(3):
            f.filter(poll_record("waiting", "us-east-1/vol-1"))
        record = poll_record("waiting", "us-east-1/vol-1")

        assert f.filter(record) is True
        assert record.suppressed == 2


class TestBlockHubJsonFormatter:
    def test_standard_fields(self) -> None:
        formatter = BlockHubJsonFormatter(LoggingConfig(service_name="blockhub-test"))
        record = make_record()
        record.event = LogEvent.POLL_STARTED

        payload = json.loads(formatter.format(record))

        assert payload["message"] == "waiting"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "blockhub.core.poller"
        assert payload["service"] == "blockhub-test"
        assert payload["event"] == "poll_started"
        assert payload["lineno"] == 10
        assert "timestamp" in payload
        assert "pid" in payload

    def test_component_from_logger_name(self) -> None:
        formatter = BlockHubJsonFormatter(LoggingConfig())
        payload = json.loads(formatter.format(make_record()))
        assert payload["component"] == "poller"

    def test_explicit_component_kept(self) -> None:
        formatter = BlockHubJsonFormatter(LoggingConfig())
        record = make_record(component=Component.STORE)
        assert json.loads(formatter.format(record))["component"] == "store"


class TestComponentFor:
    @pytest.mark.parametrize(
        ("name", "component"),
        [
            ("blockhub.control.coordinator", Component.COORDINATOR),
            ("blockhub.adapters.memory.store", Component.STORE),
            ("blockhub.adapters.ec2.gateway", Component.GATEWAY),
            ("blockhub.core.poller", Component.POLLER),
            ("botocore.hooks", None),
        ],
    )
    def test_mapping(self, name: str, component: Component | None) -> None:
        assert component_for(name) == component


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_handler_installed(self) -> None:
        setup_logging(LoggingConfig(level="DEBUG", format="json"))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, BlockHubJsonFormatter)
        assert any(isinstance(f, RateLimitFilter) for f in root.handlers[0].filters)

    def test_text_format(self) -> None:
        setup_logging(LoggingConfig(format="text"))

        formatter = logging.getLogger().handlers[0].formatter
        assert not isinstance(formatter, BlockHubJsonFormatter)

    def test_aws_sdk_quieted(self) -> None:
        setup_logging(LoggingConfig())
        assert logging.getLogger("botocore").level == logging.WARNING
