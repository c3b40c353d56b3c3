"""Core infrastructure: configuration and the exception hierarchy."""

from buildarea.core.config import BuildAreaConfig, P4Settings, get_config, load_config
from buildarea.core.exceptions import (
    BuildAreaError,
    ConfigError,
    DiffAnomalyError,
    ReconciliationInvariantError,
    SourceSelectionError,
    VersionControlError,
)

__all__ = [
    "BuildAreaConfig",
    "P4Settings",
    "get_config",
    "load_config",
    "BuildAreaError",
    "ConfigError",
    "DiffAnomalyError",
    "ReconciliationInvariantError",
    "SourceSelectionError",
    "VersionControlError",
]
