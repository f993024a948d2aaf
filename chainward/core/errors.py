#!/usr/bin/env python3
"""
errors.py: Exception hierarchy for the chainward ledger and retention engine

Only conditions that break the durability contract (the ledger cannot append
at all) or invalid configuration are raised. Corrupted lines, chain breaks,
disposal failures and policy-not-found are reported as data instead.
"""


class ChainwardError(Exception):
    """Base exception for chainward."""


class LedgerError(ChainwardError):
    """Base exception for ledger failures."""


class LedgerWriteError(LedgerError):
    """Raised when the ledger directory or current segment cannot be written."""

    def __init__(self, path: str, reason: str):
        """
        Initialize ledger write error.

        Args:
            path: Segment or directory path that could not be written
            reason: Underlying OS error message
        """
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot append to ledger at {path}: {reason}")


class PolicyError(ChainwardError):
    """Raised when a retention policy payload is invalid."""

    def __init__(self, message: str, errors: list = None):
        self.errors = errors or []
        super().__init__(message)


class ConfigurationError(ChainwardError):
    """Chainward settings could not be loaded; carries the offending file, if any."""

    def __init__(self, message: str, config_path: str = None, details: dict = None):
        self.config_path = config_path
        self.details = details or {}
        super().__init__(message)


class ConfigFileNotFoundError(ConfigurationError):
    """--config or $CHAINWARD_CONFIG names a YAML file that does not exist."""

    def __init__(self, config_path: str):
        super().__init__(f"Chainward config file does not exist: {config_path}", config_path=config_path)


class ConfigParseError(ConfigurationError):
    """The YAML file is unreadable or is not a mapping of settings."""

    def __init__(self, config_path: str, parse_error: str):
        super().__init__(
            f"Cannot read chainward settings from {config_path}: {parse_error}",
            config_path=config_path,
            details={"parse_error": parse_error},
        )


class ConfigValidationError(ConfigurationError):
    """A setting from the file or a CHAINWARD_* variable is unknown or out of range."""

    def __init__(self, message: str, invalid_fields: list = None):
        details = {"invalid_fields": invalid_fields} if invalid_fields else {}
        super().__init__(message, details=details)
