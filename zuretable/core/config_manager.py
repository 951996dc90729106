"""
Configuration management for zuretable.

Handles loading, validation, and access to client configuration settings.
"""

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from zuretable.core.retry import ExponentialRetry, LinearRetry, NoRetry, RetryConfig, RetryPolicy
from zuretable.table.options import TablePayloadFormat, TableRequestOptions

logger = logging.getLogger(__name__)

REDACTED = "***REDACTED***"


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class RetryPolicyType(str, Enum):
    """Supported retry policies."""
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    NONE = "none"


class AccountConfig(BaseModel):
    """Storage account and endpoints."""
    account_name: Optional[str] = None
    account_key: Optional[str] = Field(default=None, description="Base64 account key")
    endpoint: Optional[str] = Field(
        default=None,
        description="Table endpoint; defaults to https://<account>.table.core.windows.net"
    )
    secondary_endpoint: Optional[str] = Field(
        default=None,
        description="Read-access secondary; attempts alternate when set"
    )

    def resolved_endpoint(self) -> str:
        if self.endpoint:
            return self.endpoint.rstrip("/")
        if not self.account_name:
            raise ValueError("Either account.endpoint or account.account_name must be configured")
        return f"https://{self.account_name}.table.core.windows.net"


class RetryPolicyConfig(BaseModel):
    """Retry policy settings."""
    policy: RetryPolicyType = RetryPolicyType.EXPONENTIAL
    max_attempts: int = Field(default=RetryConfig.MAX_ATTEMPTS, ge=1)
    initial_backoff: float = Field(default=RetryConfig.INITIAL_BACKOFF, ge=0.0)
    max_backoff: float = Field(default=RetryConfig.MAX_BACKOFF, ge=0.0)
    backoff_multiplier: float = Field(default=RetryConfig.BACKOFF_MULTIPLIER, ge=1.0)

    def build_policy(self) -> RetryPolicy:
        """Instantiate the configured retry policy."""
        if self.policy == RetryPolicyType.NONE:
            return NoRetry()
        if self.policy == RetryPolicyType.LINEAR:
            return LinearRetry(backoff=self.initial_backoff, max_attempts=self.max_attempts)
        return ExponentialRetry(
            initial_backoff=self.initial_backoff,
            max_backoff=self.max_backoff,
            backoff_multiplier=self.backoff_multiplier,
            max_attempts=self.max_attempts,
        )


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.WARNING
    format: str = "text"
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = 5
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'zuretable.core.execution': 'DEBUG'}"
    )

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("json", "text"):
            raise ValueError("Logging format must be 'json' or 'text'")
        return v


class ClientConfig(BaseModel):
    """Default request options applied to every operation."""
    payload_format: TablePayloadFormat = TablePayloadFormat.JSON_MINIMAL_METADATA
    timeout_seconds: Optional[int] = Field(default=None, ge=1)
    client_timeout_seconds: Optional[float] = Field(default=30.0, gt=0)
    metrics_enabled: bool = False

    def to_request_options(self, retry: RetryPolicyConfig) -> TableRequestOptions:
        return TableRequestOptions(
            payload_format=self.payload_format,
            retry_policy=retry.build_policy(),
            timeout_seconds=self.timeout_seconds,
            client_timeout_seconds=self.client_timeout_seconds,
        )


class ZureTableConfig(BaseModel):
    """Main zuretable configuration schema."""

    account: AccountConfig = Field(default_factory=AccountConfig)

    retry: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    client: ClientConfig = Field(default_factory=ClientConfig)

    model_config = ConfigDict(use_enum_values=False)


class ConfigManager:
    """
    Manages zuretable configuration loading and validation.

    Configuration precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables (ZURETABLE_*)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    def __init__(self):
        self._config: Optional[ZureTableConfig] = None
        self._config_file: Optional[Path] = None

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> ZureTableConfig:
        """
        Load and validate configuration from multiple sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            cli_overrides: Nested dictionary of CLI argument overrides

        Returns:
            Validated ZureTableConfig instance

        Raises:
            ValidationError: If configuration is invalid
            FileNotFoundError: If specified config file doesn't exist
        """
        logger.debug("Loading zuretable configuration")

        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            self._config_file = Path(config_file)
            logger.debug(f"Loaded configuration from file: {config_file}")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.debug(f"Applied {len(env_config)} environment variable overrides")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, cli_overrides)
            logger.debug(f"Applied {len(cli_overrides)} CLI argument overrides")

        try:
            self._config = ZureTableConfig(**config_dict)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise
        self._log_configuration()
        return self._config

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif path.suffix == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        if account_name := os.getenv("ZURETABLE_ACCOUNT_NAME"):
            config.setdefault("account", {})["account_name"] = account_name
        if account_key := os.getenv("ZURETABLE_ACCOUNT_KEY"):
            config.setdefault("account", {})["account_key"] = account_key
        if endpoint := os.getenv("ZURETABLE_ENDPOINT"):
            config.setdefault("account", {})["endpoint"] = endpoint
        if secondary := os.getenv("ZURETABLE_SECONDARY_ENDPOINT"):
            config.setdefault("account", {})["secondary_endpoint"] = secondary

        if policy := os.getenv("ZURETABLE_RETRY_POLICY"):
            config.setdefault("retry", {})["policy"] = policy.lower()
        if max_attempts := os.getenv("ZURETABLE_RETRY_MAX_ATTEMPTS"):
            config.setdefault("retry", {})["max_attempts"] = int(max_attempts)

        if log_level := os.getenv("ZURETABLE_LOG_LEVEL"):
            config.setdefault("logging", {})["level"] = log_level.upper()
        if log_format := os.getenv("ZURETABLE_LOG_FORMAT"):
            config.setdefault("logging", {})["format"] = log_format.lower()
        if log_file := os.getenv("ZURETABLE_LOG_FILE"):
            config.setdefault("logging", {})["file"] = log_file

        if payload_format := os.getenv("ZURETABLE_PAYLOAD_FORMAT"):
            config.setdefault("client", {})["payload_format"] = payload_format.lower()
        if timeout := os.getenv("ZURETABLE_TIMEOUT"):
            config.setdefault("client", {})["timeout_seconds"] = int(timeout)
        if metrics_enabled := os.getenv("ZURETABLE_METRICS_ENABLED"):
            config.setdefault("client", {})["metrics_enabled"] = metrics_enabled.lower() in ['true', '1', 'yes']

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def redacted(self) -> Dict[str, Any]:
        """Loaded configuration as a dict with the account key redacted."""
        config_dict = self.get_config().model_dump(mode="json")
        if config_dict["account"].get("account_key"):
            config_dict["account"]["account_key"] = REDACTED
        return config_dict

    def _log_configuration(self) -> None:
        """Log the loaded configuration (with sensitive data redacted)."""
        if not self._config:
            return
        logger.debug(f"Active configuration: {json.dumps(self.redacted(), indent=2)}")

    def get_config(self) -> ZureTableConfig:
        """
        Get the loaded configuration.

        Raises:
            RuntimeError: If configuration hasn't been loaded
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def reload(self) -> ZureTableConfig:
        """Reload configuration from the same sources."""
        config_file = str(self._config_file) if self._config_file else None
        return self.load(config_file=config_file)
