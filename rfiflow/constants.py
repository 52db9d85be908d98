"""Shared defaults for rfiflow."""

DEFAULT_CONFIG_PATH = "rfiflow.yaml"
CONFIG_ENV_VAR = "RFIFLOW_CONFIG"
DATABASE_URL_ENV_VARS = ("RFIFLOW_DATABASE_URL", "DATABASE_URL")
NOTIFIER_ENV_VAR = "RFIFLOW_NOTIFIER"

DEFAULT_NOTIFICATION_TOPIC = "rfi-notifications"
REDIS_KEY_PREFIX = "rfiflow"

SYSTEM_SWEEPER_ACTOR = "system:overdue-sweeper"
DEFAULT_SWEEP_INTERVAL_SECONDS = 300.0
DEFAULT_CONFLICT_RETRIES = 0
