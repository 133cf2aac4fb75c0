"""Logging setup for blockhub.

Records carry their meaning in `extra` (see blockhub.logging_schema), so
both the rate limiter and the JSON formatter work on those fields rather
than on message text:

- RateLimitFilter keys on (event, condition, resource). A 100-minute
  wait for one volume logs its poll events once per window, while
  waits on other volumes still log.
- BlockHubJsonFormatter adds service/timestamp/source fields and fills
  `component` from the logger name when a record did not set it.
"""

import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger import json as jsonlogger

from blockhub.config import LoggingConfig
from blockhub.logging_schema import Component

# Record attributes that identify the resource a message is about
_RESOURCE_FIELDS = ("volume_id", "snapshot_id", "resource_id", "circuit")

_COMPONENTS = {
    "blockhub.control": Component.COORDINATOR,
    "blockhub.adapters.memory": Component.STORE,
    "blockhub.core.poller": Component.POLLER,
    "blockhub.adapters.ec2": Component.GATEWAY,
    "blockhub.core.retryable": Component.GATEWAY,
    "blockhub.core.circuit_breaker": Component.GATEWAY,
}


def _record_key(record: logging.LogRecord) -> str:
    event = getattr(record, "event", None)
    if event is None:
        return f"{record.name}:{record.lineno}:{record.getMessage()}"
    parts = [str(event), str(getattr(record, "condition", ""))]
    parts.extend(str(getattr(record, field, "")) for field in _RESOURCE_FIELDS)
    return ":".join(parts)


def component_for(logger_name: str) -> str | None:
    """Map a module logger name to its Component, if it has one."""
    for prefix, component in _COMPONENTS.items():
        if logger_name == prefix or logger_name.startswith(prefix + "."):
            return component
    return None


class RateLimitFilter(logging.Filter):
    """Drop repeats of the same structured event inside a window.

    The next record that passes carries `suppressed`, the number of
    repeats dropped since the last one. ERROR and above always pass.

    Args:
        rate_limit_seconds: Window per event key (default: 5)
        max_cache_size: Tracked keys; least recently seen are evicted first
    """

    def __init__(
        self,
        rate_limit_seconds: float = 5.0,
        max_cache_size: int = 1000,
        name: str = "",
    ) -> None:
        super().__init__(name)
        self._rate_limit = rate_limit_seconds
        self._max_cache = max_cache_size
        # key -> (last emitted at, suppressed since)
        self._last_log: dict[str, tuple[float, int]] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR:
            return True

        key = _record_key(record)
        now = time.monotonic()
        entry = self._last_log.pop(key, None)

        if entry is not None:
            emitted_at, suppressed = entry
            if now - emitted_at < self._rate_limit:
                self._last_log[key] = (emitted_at, suppressed + 1)
                return False
            if suppressed:
                record.suppressed = suppressed

        self._last_log[key] = (now, 0)
        while len(self._last_log) > self._max_cache:
            del self._last_log[next(iter(self._last_log))]
        return True


class BlockHubJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per record, with the blockhub standard fields."""

    def __init__(self, config: LoggingConfig | None = None, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._service = (config or LoggingConfig()).service_name

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(
            record.created, tz=timezone.utc
        ).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = self._service
        log_record["pid"] = record.process
        log_record["filename"] = record.filename
        log_record["lineno"] = record.lineno

        if "component" not in log_record:
            component = component_for(record.name)
            if component is not None:
                log_record["component"] = component

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        config: Logging settings. Defaults to env-derived config.
    """
    config = config or LoggingConfig()
    level = getattr(logging, config.level.upper(), logging.INFO)

    if config.format == "json":
        formatter: logging.Formatter = BlockHubJsonFormatter(config)
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RateLimitFilter(rate_limit_seconds=config.rate_limit_seconds))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Per-request SDK chatter
    for name in ("aiobotocore", "aioboto3", "botocore"):
        logging.getLogger(name).setLevel(logging.WARNING)
