import os
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .logger import get_logger
from .schemas import DatabaseConfig, StorageConfig, StorageCredentials
from .utils import sanitize_filename

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_LOCAL_BASE_PATH = "backups"

AWS_ENV_FALLBACKS = {
    "access_key_id": "AWS_ACCESS_KEY_ID",
    "secret_access_key": "AWS_SECRET_ACCESS_KEY",
    "region": "AWS_REGION",
    "endpoint_url": "AWS_ENDPOINT_URL",
}


class ConfigError(ValueError):
    pass


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    if not os.path.exists(config_path):
        logger.debug(f"No config file at {config_path}, using command line and environment only.")
        return {}

    with open(config_path, "r") as f:
        try:
            config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Error parsing {config_path}: {e}")
            raise

    if not isinstance(config, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")
    logger.info(f"Loaded configuration from {config_path}")
    return config


def _merge(section: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Command line values win over the config file; None means 'not given'."""
    merged = dict(section or {})
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return merged


def build_database_config(overrides: Dict[str, Any], file_config: Optional[Dict[str, Any]] = None) -> DatabaseConfig:
    values = _merge((file_config or {}).get("database", {}), overrides)
    try:
        return DatabaseConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid database configuration: {e}") from e


def build_storage_config(overrides: Dict[str, Any], file_config: Optional[Dict[str, Any]] = None,
                         database_name: Optional[str] = None) -> StorageConfig:
    values = _merge((file_config or {}).get("storage", {}), overrides)
    kind = values.get("kind", "local")
    storage_path = values.pop("path", None)

    if kind == "s3":
        file_credentials = values.get("credentials") or {}
        credentials_overrides = values.pop("credential_overrides", None) or {}
        credentials = _merge(file_credentials, credentials_overrides)
        for key, env_var in AWS_ENV_FALLBACKS.items():
            if not credentials.get(key):
                credentials[key] = os.getenv(env_var)
        values["credentials"] = StorageCredentials(**credentials)
        if storage_path:
            values["bucket"] = storage_path
        if "base_path" not in values and database_name:
            values["base_path"] = sanitize_filename(database_name)
    else:
        values.pop("credential_overrides", None)
        if storage_path:
            values["root"] = storage_path
        values.setdefault("base_path", "" if values.get("root") else DEFAULT_LOCAL_BASE_PATH)

    try:
        return StorageConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid storage configuration: {e}") from e


def resolve_slack_webhook(override: Optional[str], file_config: Optional[Dict[str, Any]] = None) -> Optional[str]:
    if override:
        return override
    notifications = (file_config or {}).get("notifications") or {}
    return notifications.get("slack_webhook") or os.getenv("SLACK_WEBHOOK_URL")
