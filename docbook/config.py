#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Process configuration and logging setup.

Settings come from the environment (and an optional .env file) and are
validated once at startup; any problem is fatal and every offending field
is reported together.
"""
import json
import logging
import re
from datetime import timedelta
from typing import Literal, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from docbook.storage.pool import PoolConfig


_DURATION_PATTERN = re.compile(r'^(\d+)([smhd])$')
_DURATION_UNITS = {'s': 'seconds', 'm': 'minutes', 'h': 'hours', 'd': 'days'}

_LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'error': logging.ERROR,
}


class ConfigurationError(Exception):
    """
    Invalid or missing configuration.

    Attributes:
        problems: One entry per offending field
    """

    def __init__(self, message: str, problems: Optional[list[str]] = None):
        self.problems = problems or []
        super().__init__(message)


def parse_duration(value: str) -> timedelta:
    """
    Parse '<int><unit>' durations such as '15m', '7d', '30s', '12h'.

    Raises:
        ValueError: Not a recognised duration
    """
    match = _DURATION_PATTERN.match(value.strip())
    if not match:
        raise ValueError(
            f"invalid duration {value!r}, expected <number><s|m|h|d> such as '15m'"
        )
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # NODE_ENV is read when APP_ENV is unset, for .env files carried over
    # from the Node deployment
    APP_ENV: Literal["development", "production", "test"] = Field(
        default="development",
        validation_alias=AliasChoices("APP_ENV", "NODE_ENV"),
    )
    PORT: int = Field(default=3001, ge=1, le=65535)

    DATABASE_URL: str = Field(min_length=1)
    DB_POOL_MIN: int = Field(default=2, ge=0)
    DB_POOL_MAX: int = Field(default=10, ge=1)
    DB_POOL_IDLE_TIMEOUT_MS: int = Field(default=30000, gt=0)
    DB_POOL_ACQUIRE_TIMEOUT_MS: int = Field(default=10000, gt=0)
    MIGRATIONS_DIR: Optional[str] = None

    # Token signing; consumed by the API layer
    JWT_SECRET: str = Field(min_length=32)
    JWT_REFRESH_SECRET: str = Field(min_length=32)
    JWT_ACCESS_EXPIRES_IN: str = "15m"
    JWT_REFRESH_EXPIRES_IN: str = "7d"

    FRONTEND_URL: AnyHttpUrl = Field(default="http://localhost:3000", validate_default=True)

    LOG_LEVEL: Literal["debug", "info", "warn", "error"] = "info"
    LOG_FILE: Optional[str] = None

    @field_validator("JWT_ACCESS_EXPIRES_IN", "JWT_REFRESH_EXPIRES_IN")
    @classmethod
    def _check_duration(cls, v: str) -> str:
        parse_duration(v)
        return v

    @field_validator("DB_POOL_MAX")
    @classmethod
    def _check_pool_bounds(cls, v: int, info: ValidationInfo) -> int:
        pool_min = info.data.get("DB_POOL_MIN")
        if pool_min is not None and v < pool_min:
            raise ValueError(f"must be >= DB_POOL_MIN ({pool_min})")
        return v

    @property
    def access_token_ttl(self) -> timedelta:
        return parse_duration(self.JWT_ACCESS_EXPIRES_IN)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return parse_duration(self.JWT_REFRESH_EXPIRES_IN)

    @property
    def log_level_number(self) -> int:
        return _LOG_LEVELS[self.LOG_LEVEL]

    @property
    def json_logs(self) -> bool:
        return self.APP_ENV == "production"

    def pool_config(self) -> PoolConfig:
        return PoolConfig(
            min_size=self.DB_POOL_MIN,
            max_size=self.DB_POOL_MAX,
            idle_timeout_ms=self.DB_POOL_IDLE_TIMEOUT_MS,
            acquire_timeout_ms=self.DB_POOL_ACQUIRE_TIMEOUT_MS,
        )

    def summary(self) -> dict:
        """Non-secret settings, safe to log."""
        return {
            "app_env": self.APP_ENV,
            "port": self.PORT,
            "log_level": self.LOG_LEVEL,
            "frontend_url": str(self.FRONTEND_URL),
            "pool": f"{self.DB_POOL_MIN}-{self.DB_POOL_MAX}",
        }


def load_settings(env_file: Optional[str] = ".env", **overrides) -> Settings:
    """Load and validate settings from the environment

    Args:
        env_file: Optional dotenv file read before the process environment
            takes precedence (None to skip)
        **overrides: Explicit values, taking precedence over the environment

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: Listing every invalid or missing field
    """
    try:
        return Settings(_env_file=env_file, **overrides)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise ConfigurationError(
            "Environment validation failed: " + ", ".join(problems),
            problems=problems,
        ) from e


# ============================================================================
# Logging
# ============================================================================

# Attributes every LogRecord has; anything else came in through extra={...}
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord('', 0, '', 0, '', (), None))
) | {'message', 'asctime', 'taskName'}


class RobustFileHandler(logging.FileHandler):
    """FileHandler that gracefully handles flush errors on Windows"""

    def flush(self):
        """Flush the stream, ignoring EINVAL from stale Windows handles"""
        try:
            super().flush()
        except OSError as e:
            if e.errno != 22:  # EINVAL
                raise


class StructuredFormatter(logging.Formatter):
    """
    Render log records with their extra={...} context fields.

    Text mode:
        [2026-01-05 10:00:00] [docbook.storage.sql_executor] [DEBUG] Database query executed query='SELECT 1' duration_ms=0.42

    JSON mode emits one object per line with time, level, logger, msg and
    every context field.
    """

    def __init__(self, fmt: Optional[str] = None, json_format: bool = False):
        super().__init__(fmt or '[%(asctime).19s] [%(name)s] [%(levelname)s] %(message)s')
        self.json_format = json_format

    @staticmethod
    def context(record: logging.LogRecord) -> dict:
        return {
            key: value for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith('_')
        }

    def format(self, record: logging.LogRecord) -> str:
        fields = self.context(record)

        if self.json_format:
            payload = {
                'time': self.formatTime(record),
                'level': record.levelname.lower(),
                'logger': record.name,
                'msg': record.getMessage(),
                **fields,
            }
            if record.exc_info:
                payload['exc_info'] = self.formatException(record.exc_info)
            return json.dumps(payload, default=str)

        line = super().format(record)
        if fields:
            rendered = ' '.join(f'{key}={value!r}' for key, value in fields.items())
            line = f'{line} {rendered}'
        return line


def configure_logger(logger,
                     log_file=None,
                     log_level=logging.INFO,
                     json_format=False,
                     log_format=None):
    """Configure a logger with a file or stream handler

    Args:
        logger: Logger instance or logger name string
        log_file: File path string or file-like object (None for stderr)
        log_level: Logging level (e.g., logging.INFO, logging.DEBUG)
        json_format: Emit one JSON object per line instead of text
        log_format: Format string for text mode

    Returns:
        Configured logger instance
    """
    if isinstance(log_file, str):
        handler = RobustFileHandler(
            log_file,
            mode='a',
            encoding='utf-8',
            errors='replace'
        )
    else:
        handler = logging.StreamHandler(log_file)  # Default to stderr if None

    handler.setFormatter(StructuredFormatter(log_format, json_format=json_format))

    if isinstance(logger, str):
        logger = logging.getLogger(logger)

    logger.addHandler(handler)
    logger.setLevel(log_level)

    return logger


def configure_from_settings(settings: Settings):
    """Attach the application handler to the 'docbook' logger tree."""
    return configure_logger(
        'docbook',
        log_file=settings.LOG_FILE,
        log_level=settings.log_level_number,
        json_format=settings.json_logs,
    )
