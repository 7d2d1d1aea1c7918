"""
Record store configuration.

Settings come from three layers, later ones winning:

1. ``StoreConfig`` defaults
2. an optional YAML file with a ``store`` section
3. environment variables (optionally loaded from a ``.env`` file)

Expected YAML format:
```yaml
store:
  db_path: /sdcard/driver/records.db
  busy_timeout_seconds: 5
  journal_mode: WAL
  synchronous: FULL
  log_level: INFO
  log_format: json
```
"""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# environment variable -> StoreConfig field
ENV_OVERRIDES = {
    "RECORD_STORE_PATH": "db_path",
    "RECORD_STORE_IN_MEMORY": "in_memory",
    "RECORD_STORE_BUSY_TIMEOUT": "busy_timeout_seconds",
    "RECORD_STORE_JOURNAL_MODE": "journal_mode",
    "RECORD_STORE_SYNCHRONOUS": "synchronous",
    "LOG_LEVEL": "log_level",
    "LOG_FORMAT": "log_format",
}


class StoreConfig(BaseModel):
    """
    Settings for opening a RecordStore.

    Attributes:
        db_path: SQLite file holding the record table
        in_memory: Use a private in-memory database (testing only)
        busy_timeout_seconds: Upper bound on waiting for a lock before failing
        journal_mode: SQLite journal mode; WAL lets readers run beside the writer
        synchronous: SQLite fsync level; FULL survives power loss after commit
        log_level: Level applied to store loggers
        log_format: "json" or "text"
    """

    db_path: str = "records.db"
    in_memory: bool = False
    busy_timeout_seconds: float = Field(5.0, gt=0, le=300)
    journal_mode: Literal["WAL", "DELETE", "TRUNCATE", "PERSIST"] = "WAL"
    synchronous: Literal["OFF", "NORMAL", "FULL", "EXTRA"] = "FULL"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "text"] = "json"

    model_config = {"frozen": True}


class StoreConfigLoader:
    """
    Loads StoreConfig from a YAML file and the environment.
    """

    def __init__(self, config_path: str | Path | None = None, env_file: str | Path | None = None):
        """
        Initialize the config loader.

        Args:
            config_path: Optional YAML file with a ``store`` section
            env_file: Optional .env file loaded before reading overrides

        Raises:
            FileNotFoundError: If a given file does not exist
        """
        self.config_path = Path(config_path) if config_path else None
        self.env_file = Path(env_file) if env_file else None

        if self.config_path and not self.config_path.exists():
            raise FileNotFoundError(f"Store configuration file not found: {config_path}")
        if self.env_file and not self.env_file.exists():
            raise FileNotFoundError(f"Environment file not found: {env_file}")

    def load(self) -> StoreConfig:
        """
        Build the effective configuration.

        Returns:
            Validated StoreConfig

        Raises:
            ValueError: If the YAML file is malformed
            pydantic.ValidationError: If a value is out of range
        """
        values: dict[str, Any] = {}
        if self.config_path:
            values.update(self._read_yaml())

        if self.env_file:
            load_dotenv(self.env_file, override=False)

        for env_name, field_name in ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw is not None and raw != "":
                values[field_name] = self._coerce_env(field_name, raw)

        return StoreConfig(**values)

    def _read_yaml(self) -> dict[str, Any]:
        with open(self.config_path) as f:
            config = yaml.safe_load(f)

        if not config or "store" not in config:
            raise ValueError("Configuration file must contain 'store' section")

        section = config["store"]
        if not isinstance(section, dict):
            raise ValueError("'store' section must be a mapping")

        unknown = set(section) - set(StoreConfig.model_fields)
        if unknown:
            raise ValueError(f"Unknown store settings: {', '.join(sorted(unknown))}")

        return section

    @staticmethod
    def _coerce_env(field_name: str, raw: str) -> Any:
        if field_name == "in_memory":
            return raw.strip().lower() in ("1", "true", "yes", "on")
        if field_name in ("journal_mode", "synchronous", "log_level"):
            return raw.strip().upper()
        if field_name == "log_format":
            return raw.strip().lower()
        return raw.strip()


def load_config(
    config_path: str | Path | None = None,
    env_file: str | Path | None = None,
) -> StoreConfig:
    """
    Load the effective store configuration.

    Args:
        config_path: Optional YAML file
        env_file: Optional .env file

    Returns:
        StoreConfig instance
    """
    return StoreConfigLoader(config_path, env_file).load()
