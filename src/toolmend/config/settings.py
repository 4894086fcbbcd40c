"""Configuration management for toolmend."""

import json
import logging
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from toolmend.utils.retry import BACKOFF_STRATEGIES, BackoffConfig

# Standard logging here; structlog is configured later by setup_logging()
logger = logging.getLogger(__name__)


class ToolPolicyConfig(BaseModel):
    """Per-tool overrides of the retry defaults."""

    max_retries: Optional[int] = Field(None, ge=1)


class RecoverySettings(BaseSettings):
    """Settings for the retry and recovery engine, read from environment variables."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    # Retry engine
    max_retries: int = Field(3, ge=1, validation_alias="TOOL_MAX_RETRIES")
    max_suggestions: int = Field(3, ge=0, validation_alias="TOOL_MAX_SUGGESTIONS")
    timeout_threshold_ms: Optional[int] = Field(
        30000,
        ge=0,
        validation_alias="TOOL_TIMEOUT_THRESHOLD_MS",
        description="Failed attempts slower than this are classified as timeouts",
    )

    # Pattern store retention
    history_capacity: int = Field(1000, ge=1, validation_alias="PATTERN_HISTORY_CAPACITY")
    retention_seconds: float = Field(
        86400.0,
        ge=0,
        validation_alias="PATTERN_RETENTION_SECONDS",
        description="Records older than this are pruned (0 disables the window)",
    )

    # Backoff between attempts
    retry_backoff: str = Field("none", validation_alias="RETRY_BACKOFF")
    retry_initial_delay: float = Field(1.0, ge=0, validation_alias="RETRY_INITIAL_DELAY")
    retry_max_delay: float = Field(60.0, ge=0, validation_alias="RETRY_MAX_DELAY")
    retry_backoff_factor: float = Field(2.0, ge=1.0, validation_alias="RETRY_BACKOFF_FACTOR")
    retry_jitter: bool = Field(True, validation_alias="RETRY_JITTER")

    # Per-tool policies (YAML or JSON mapping of tool id -> ToolPolicyConfig)
    tool_policies_config: str = Field("{}", validation_alias="TOOL_POLICIES_CONFIG")

    # Logging configuration
    log_level: str = Field(
        "INFO",
        validation_alias="LOG_LEVEL",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    json_logs: bool = Field(False, validation_alias="JSON_LOGS")

    @field_validator("json_logs", "retry_jitter", mode="before")
    @classmethod
    def parse_bool_from_env(cls, v: Any) -> bool:
        """Handle empty strings and various boolean representations from env vars."""
        if v is None or v == "":
            return False
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower().strip() in ("true", "1", "yes")
        return bool(v)

    @field_validator("retry_backoff", mode="before")
    @classmethod
    def validate_retry_backoff(cls, value: Any) -> str:
        """Normalize the backoff strategy name, falling back to immediate retry."""
        if value is None:
            return "none"
        normalized = str(value).strip().lower()
        if normalized not in BACKOFF_STRATEGIES:
            logger.warning(
                f"Invalid RETRY_BACKOFF '{value}'. Falling back to 'none'. "
                f"Allowed values: {', '.join(BACKOFF_STRATEGIES)}."
            )
            return "none"
        return normalized

    def get_backoff_config(self) -> BackoffConfig:
        return BackoffConfig(
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
            backoff_factor=self.retry_backoff_factor,
            jitter=self.retry_jitter,
        )

    def get_tool_policies(self) -> Dict[str, ToolPolicyConfig]:
        """Parse per-tool policies from YAML, with JSON as a fallback."""
        if not self.tool_policies_config or not self.tool_policies_config.strip():
            return {}

        try:
            data = yaml.safe_load(self.tool_policies_config)
        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error in TOOL_POLICIES_CONFIG: {e}")
            try:
                data = json.loads(self.tool_policies_config)
            except (json.JSONDecodeError, TypeError) as e:
                logger.error(f"JSON parsing also failed: {e}")
                return {}

        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.error(f"Expected mapping for TOOL_POLICIES_CONFIG, got {type(data)}")
            return {}

        policies: Dict[str, ToolPolicyConfig] = {}
        for tool_id, raw in data.items():
            try:
                policies[str(tool_id)] = ToolPolicyConfig(**(raw or {}))
            except (TypeError, ValueError) as e:
                logger.error(f"Ignoring invalid policy for tool '{tool_id}': {e}")
        logger.info(f"Loaded {len(policies)} tool retry policies")
        return policies


def load_settings() -> RecoverySettings:
    """Load settings from environment variables."""
    return RecoverySettings()
