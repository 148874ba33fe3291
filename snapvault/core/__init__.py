"""
Core module - Contains configuration, logging, errors and the encryption engine.
"""

from snapvault.core.config import SnapVaultConfig
from snapvault.core.logging import get_secure_logger, SecureLogFilter
from snapvault.core.exceptions import (
    SnapVaultError,
    ConfigurationError,
    AuthenticationFailure,
    MalformedInput,
    MalformedPackage,
    MalformedManifest,
    IOFailure,
    Cancelled,
)

__all__ = [
    "SnapVaultConfig",
    "get_secure_logger",
    "SecureLogFilter",
    "SnapVaultError",
    "ConfigurationError",
    "AuthenticationFailure",
    "MalformedInput",
    "MalformedPackage",
    "MalformedManifest",
    "IOFailure",
    "Cancelled",
]
