from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    CONFIG_ENV_VAR,
    DATABASE_URL_ENV_VARS,
    DEFAULT_CONFIG_PATH,
    DEFAULT_NOTIFICATION_TOPIC,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
    NOTIFIER_ENV_VAR,
    SYSTEM_SWEEPER_ACTOR,
)


class RedisConfig(BaseModel):
    """Configuration for the Redis notification transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class NotificationConfig(BaseModel):
    """Notification dispatch settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    topic: str = DEFAULT_NOTIFICATION_TOPIC
    redis: RedisConfig = Field(default_factory=RedisConfig)


class SweeperConfig(BaseModel):
    """Overdue sweeper settings."""

    interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS
    actor_id: str = SYSTEM_SWEEPER_ACTOR


class RfiFlowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    log_level: str = "INFO"
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    sweeper: SweeperConfig = Field(default_factory=SweeperConfig)


def load_config(path: Optional[str] = None) -> RfiFlowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to the RFIFLOW_CONFIG
            env variable or 'rfiflow.yaml' in the current directory.
    """

    config_path = path or os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = RfiFlowConfig(**data)
    else:
        config = RfiFlowConfig()

    for env_var in DATABASE_URL_ENV_VARS:
        env_db_url = os.getenv(env_var)
        if env_db_url:
            config.database_url = env_db_url
            break

    notifier = os.getenv(NOTIFIER_ENV_VAR)
    if notifier:
        config.notifications.backend = notifier.lower()
    return config
