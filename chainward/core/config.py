#!/usr/bin/env python3
"""
Central configuration for the chainward ledger and retention engine.

Values come from (lowest to highest precedence) built-in defaults, an
optional YAML file, and CHAINWARD_* environment variables. Configuration is
read once when components are constructed; there is no hot reload.
"""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigFileNotFoundError, ConfigParseError, ConfigValidationError

ENV_PREFIX = "CHAINWARD_"

# field name -> environment variable suffix
ENV_FIELDS = {
    "enabled": "LEDGER_ENABLED",
    "base_dir": "BASE_DIR",
    "retention_years": "RETENTION_YEARS",
    "redaction_threshold": "REDACTION_THRESHOLD",
    "segment_prefix": "SEGMENT_PREFIX",
    "sync_on_write": "SYNC_ON_WRITE",
}

BOOLEAN_FIELDS = {"enabled", "sync_on_write"}


def default_base_dir() -> Path:
    return Path.home() / ".local" / "share" / "chainward"


class ChainwardConfig(BaseModel):
    """Configuration surface for the ledger and the retention engine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    base_dir: Path = Field(default_factory=default_base_dir)
    retention_years: int = Field(default=7, ge=0)
    redaction_threshold: int = Field(default=100, ge=1)
    segment_prefix: str = Field(default="events", pattern=r"^[A-Za-z0-9_.]+$")
    sync_on_write: bool = True

    @property
    def ledger_dir(self) -> Path:
        return self.base_dir / "compliance"

    @property
    def config_dir(self) -> Path:
        return self.base_dir / "config"

    @property
    def policies_file(self) -> Path:
        return self.config_dir / "retention-policies.json"

    @property
    def last_run_file(self) -> Path:
        return self.config_dir / "retention-last-run.json"

    @property
    def archive_dir(self) -> Path:
        return self.base_dir / "archive"

    @property
    def default_retention_days(self) -> int:
        return self.retention_years * 365

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ChainwardConfig":
        """Build configuration from defaults and CHAINWARD_* variables."""
        return cls._build(_env_values(environ))

    @classmethod
    def load_from_file(
        cls,
        config_path: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ChainwardConfig":
        """Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML file. Defaults to $CHAINWARD_CONFIG;
                when neither is set, only defaults and environment apply.
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Validated configuration

        Raises:
            ConfigFileNotFoundError: An explicit config_path does not exist
            ConfigParseError: The file is not a YAML mapping
            ConfigValidationError: A value is out of range or unknown
        """
        env = os.environ if environ is None else environ
        explicit = config_path is not None
        if config_path is None:
            config_path = env.get(f"{ENV_PREFIX}CONFIG")
        if not config_path:
            return cls.from_env(env)

        config_file = Path(config_path).expanduser()
        if not config_file.exists():
            if explicit:
                raise ConfigFileNotFoundError(str(config_file))
            return cls.from_env(env)

        try:
            with open(config_file, "r") as f:
                file_values = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigParseError(str(config_file), str(e))

        if not isinstance(file_values, dict):
            raise ConfigParseError(str(config_file), "top-level value must be a mapping")

        # Environment wins over the file
        merged = {**file_values, **_env_values(env)}
        return cls._build(merged)

    @classmethod
    def _build(cls, values: Dict[str, Any]) -> "ChainwardConfig":
        try:
            return cls(**values)
        except ValidationError as e:
            invalid = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise ConfigValidationError(f"Invalid chainward configuration: {invalid}", invalid)


def _env_values(environ: Optional[Mapping[str, str]]) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for field_name, suffix in ENV_FIELDS.items():
        raw = env.get(f"{ENV_PREFIX}{suffix}")
        if raw is None or raw == "":
            continue
        if field_name in BOOLEAN_FIELDS:
            values[field_name] = raw.strip().lower() == "true"
        elif field_name == "base_dir":
            values[field_name] = Path(raw).expanduser()
        else:
            values[field_name] = raw
    return values
