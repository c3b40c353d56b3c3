"""Configuration models and loader for buildarea.

Configuration is read from a YAML file (``buildarea.yaml`` by default) or
passed as a dict, validated with Pydantic and cached as a process-wide
singleton.

Usage:
    from buildarea.core.config import get_config, load_config

    load_config(Path("buildarea.yaml"))
    chunk = get_config().sync_chunk_size
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from buildarea.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_CONFIG_FILENAME",
    "DEFAULT_SYNC_CHUNK_SIZE",
    "CHUNK_SIZE_ENV_VAR",
    "P4Settings",
    "BuildAreaConfig",
    "load_config",
    "get_config",
    "_reset_config",
]

DEFAULT_CONFIG_FILENAME = "buildarea.yaml"

# Practical limit on paths per sync invocation
DEFAULT_SYNC_CHUNK_SIZE = 100_000

CHUNK_SIZE_ENV_VAR = "BUILDAREA_SYNC_CHUNK_SIZE"


class P4Settings(BaseModel):
    """Connection settings for the version-control command-line client.

    Empty values are not passed to the client, which then falls back to
    its own environment (P4PORT, P4USER, P4CLIENT, P4CONFIG).

    Attributes:
        executable: Name or path of the client binary.
        port: Server address.
        user: User name.
        client: Workspace (client) name.
        timeout: Seconds before a single command is abandoned (None = no limit).

    """

    model_config = ConfigDict(frozen=True)

    executable: str = Field(default="p4", min_length=1)
    port: str = ""
    user: str = ""
    client: str = ""
    timeout: float | None = Field(default=None, gt=0)


class BuildAreaConfig(BaseModel):
    """Top-level buildarea configuration.

    Attributes:
        sync_chunk_size: Maximum paths passed to one sync invocation.
        exclude_prefix: Relative-path prefix of the configuration subtree,
            which is synchronized by a separate step and never reconciled.
        marker_file: Name of the reconciliation marker in the workspace root.
        p4: Version-control client settings.

    """

    model_config = ConfigDict(frozen=True)

    sync_chunk_size: int = Field(default=DEFAULT_SYNC_CHUNK_SIZE, ge=1)
    exclude_prefix: str = "config/"
    marker_file: str = Field(default=".rebase-snap", min_length=1)
    p4: P4Settings = Field(default_factory=P4Settings)

    @field_validator("exclude_prefix")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        """A prefix without a slash would also exclude e.g. 'configure.ac'."""
        if v and not v.endswith("/"):
            return v + "/"
        return v

    @field_validator("marker_file")
    @classmethod
    def reject_nested_marker(cls, v: str) -> str:
        """The marker must live directly in the workspace root."""
        if "/" in v or "\\" in v:
            raise ValueError("marker_file must be a plain file name")
        return v


_config: BuildAreaConfig | None = None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    raw = os.environ.get(CHUNK_SIZE_ENV_VAR)
    if raw:
        try:
            data = {**data, "sync_chunk_size": int(raw)}
        except ValueError:
            raise ConfigError(f"{CHUNK_SIZE_ENV_VAR} must be an integer, got {raw!r}") from None
    return data


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at top level")
    return data


def load_config(source: Path | dict[str, Any] | None = None) -> BuildAreaConfig:
    """Load, validate and cache the configuration.

    Args:
        source: Path to a YAML file, an already-parsed dict, or None for
            defaults. A path that does not exist is an error.

    Returns:
        The validated configuration (also stored as the singleton).

    Raises:
        ConfigError: If the file cannot be read or validation fails.

    """
    global _config

    if source is None:
        data: dict[str, Any] = {}
    elif isinstance(source, dict):
        data = dict(source)
    else:
        data = _read_yaml(Path(source))
        logger.debug("Loaded config from %s", source)

    data = _apply_env_overrides(data)

    try:
        config = BuildAreaConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    _config = config
    return config


def get_config() -> BuildAreaConfig:
    """Return the loaded configuration, loading defaults on first use."""
    if _config is None:
        return load_config()
    return _config


def _reset_config() -> None:
    """Reset the config singleton. For tests only."""
    global _config
    _config = None
