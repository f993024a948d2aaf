"""Core configuration, errors and filesystem helpers for chainward."""

from .config import ChainwardConfig
from .errors import (
    ChainwardError,
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigurationError,
    ConfigValidationError,
    LedgerError,
    LedgerWriteError,
    PolicyError,
)

__all__ = [
    "ChainwardConfig",
    "ChainwardError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "ConfigurationError",
    "ConfigValidationError",
    "LedgerError",
    "LedgerWriteError",
    "PolicyError",
]
