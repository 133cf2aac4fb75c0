"""blockhub configuration using pydantic-settings.

Configuration hierarchy:
- PollerConfig: Wait budgets for asynchronous remote state changes
- EC2Config: EC2/EBS gateway settings
- StoreConfig: In-memory reference store settings
- LoggingConfig: Logging behavior
- Settings: Main config aggregating all sub-configs

Environment variable prefix: BLOCKHUB_
Example: BLOCKHUB_POLLER__MAX_ATTEMPTS=60
"""

from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PollBudget(BaseModel):
    """Attempt/delay budget for one kind of wait."""

    max_attempts: int = Field(default=600, ge=1)
    delay: float = Field(default=10.0, ge=0.0)  # seconds

    model_config = {"frozen": True}


class PollerConfig(BaseSettings):
    """Condition poller configuration.

    Worst-case wait = max_attempts * delay.
      default → 600 * 10s = 100 minutes (EBS provisioning can be slow)

    Per-operation overrides (operation name → budget):
      POLLER_OVERRIDES='{"attach_volume": {"max_attempts": 60, "delay": 5}}'
    """

    model_config = SettingsConfigDict(env_prefix="POLLER_")

    max_attempts: int = Field(default=600, ge=1)
    delay: float = Field(default=10.0, ge=0.0)  # seconds
    overrides: dict[str, PollBudget] = Field(default_factory=dict)

    def budget_for(self, operation: str) -> PollBudget:
        """Return the budget for an operation, falling back to the defaults."""
        if operation in self.overrides:
            return self.overrides[operation]
        return PollBudget(max_attempts=self.max_attempts, delay=self.delay)


class EC2Config(BaseSettings):
    """EC2/EBS gateway configuration.

    When `regions` is empty the gateway discovers scopes with DescribeRegions.
    """

    model_config = SettingsConfigDict(env_prefix="EC2_")

    default_region: str = Field(default="us-east-1")
    regions: list[str] = Field(default_factory=list)
    endpoint_url: str | None = Field(default=None)  # e.g. LocalStack

    # Transient error retry (throttling, 5xx)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0)  # seconds
    retry_max_delay: float = Field(default=30.0)  # seconds


class StoreConfig(BaseSettings):
    """In-memory reference store configuration."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    volume_prefix: str = Field(default="vol-")
    snapshot_prefix: str = Field(default="snap-")
    default_volume_type: str = Field(default="local")

    @field_validator("volume_prefix", "snapshot_prefix")
    @classmethod
    def _no_separator(cls, value: str) -> str:
        if "/" in value:
            raise ValueError("id prefix cannot contain '/'")
        return value


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Formats:
    - json: Structured logging for log aggregation (default)
    - text: Human-readable for local development
    """

    model_config = SettingsConfigDict(env_prefix="LOGGING_")

    level: str = Field(default="INFO")
    format: str = Field(default="json")
    service_name: str = Field(default="blockhub")
    rate_limit_seconds: float = Field(default=5.0)  # identical message window

    @field_validator("format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "text"):
            raise ValueError("format must be 'json' or 'text'")
        return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BLOCKHUB_",
        env_nested_delimiter="__",
    )

    poller: PollerConfig = Field(default_factory=PollerConfig)
    ec2: EC2Config = Field(default_factory=EC2Config)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


@lru_cache
def get_settings() -> Settings:
    return Settings()
