"""
Configuration Module
====================

Immutable, environment-aware configuration for the snapshot encryption
service.

Security Features:
- Immutable configuration after initialization
- Environment variable override support
- The encryption key is only read from its dedicated variable
- The key never appears in repr() or the configuration hash
- OS-aware path handling
"""

from __future__ import annotations

import hashlib
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Mapping, Optional

from snapvault.core.constants import (
    CHUNK_SIZE,
    DECRYPTED_FILE_NAME,
    ENCRYPTED_FILE_NAME,
    PACKAGE_OVERHEAD,
)
from snapvault.core.exceptions import ConfigurationError


_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "key", "token", "api_key",
    "private", "credential", "auth", "salt"
})

ENCRYPTION_KEY_ENV: Final[str] = "ENCRYPTION_KEY"


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(value: str, name: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer: {value!r}") from e


def _get_default_snapshot_dir() -> Path:
    """Get OS-appropriate default directory for snapshot files."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif system == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:  # Linux and others
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "SnapVault"


def _get_default_log_dir() -> Path:
    """Get OS-appropriate default log directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "SnapVault" / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / "SnapVault"
    else:  # Linux and others
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "SnapVault" / "logs"


@dataclass(frozen=True, slots=True)
class CryptoConfig:
    """Key and chunking settings."""

    encryption_key: str = field(default="", repr=False)
    chunk_size: int = CHUNK_SIZE
    derive_sub_chunk: bool = False

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ConfigurationError("Chunk size must be positive")
        if self.derive_sub_chunk and self.chunk_size <= PACKAGE_OVERHEAD:
            raise ConfigurationError(
                f"Chunk size must exceed {PACKAGE_OVERHEAD} bytes to derive sub-chunks"
            )

    @property
    def has_key(self) -> bool:
        return bool(self.encryption_key.strip())


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Where snapshot files live and what they are called."""

    snapshot_dir: Path = field(default_factory=_get_default_snapshot_dir)
    snapshot_file_name: str = "dump.rdb"
    encrypted_file_name: str = ENCRYPTED_FILE_NAME
    decrypted_file_name: str = DECRYPTED_FILE_NAME

    def __post_init__(self) -> None:
        if not self.snapshot_dir.is_absolute():
            raise ConfigurationError(f"snapshot_dir must be an absolute path: {self.snapshot_dir}")
        for name in (self.snapshot_file_name, self.encrypted_file_name, self.decrypted_file_name):
            if not name or Path(name).name != name:
                raise ConfigurationError(f"File names must not contain directories: {name!r}")

    @property
    def snapshot_path(self) -> Path:
        return self.snapshot_dir / self.snapshot_file_name

    @property
    def encrypted_path(self) -> Path:
        return self.snapshot_dir / self.encrypted_file_name

    @property
    def decrypted_path(self) -> Path:
        return self.snapshot_dir / self.decrypted_file_name


@dataclass(frozen=True, slots=True)
class MigrationConfig:
    """Schema migration gating."""

    force_migration: bool = False
    clean_on_shutdown: bool = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    log_dir: Path = field(default_factory=_get_default_log_dir)
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False

    def __post_init__(self) -> None:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ConfigurationError(f"Invalid log level: {self.level}")


class SnapVaultConfig:
    """
    Centralized, immutable configuration loader with environment override support.

    Usage:
        config = SnapVaultConfig.load()
        key = config.crypto.encryption_key
        chunk_size = config.crypto.chunk_size

    Environment variables are prefixed with SNAPVAULT_ and use double
    underscores for nested values:

        SNAPVAULT_CRYPTO__CHUNK_SIZE=8192
        SNAPVAULT_STORAGE__SNAPSHOT_DIR=/var/lib/redis
        SNAPVAULT_MIGRATION__FORCE_MIGRATION=true
        SNAPVAULT_LOGGING__LEVEL=DEBUG

    Generic overrides skip anything that looks like a secret. The key is
    read only from SNAPVAULT_ENCRYPTION_KEY.
    """

    __slots__ = ("_crypto", "_storage", "_migration", "_logging", "_frozen", "_config_hash")

    def __init__(
        self,
        crypto: Optional[CryptoConfig] = None,
        storage: Optional[StorageConfig] = None,
        migration: Optional[MigrationConfig] = None,
        logging: Optional[LoggingConfig] = None,
    ) -> None:
        """Initialize configuration. Use SnapVaultConfig.load() for standard initialization."""
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_crypto", crypto or CryptoConfig())
        object.__setattr__(self, "_storage", storage or StorageConfig())
        object.__setattr__(self, "_migration", migration or MigrationConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Compute a hash of the configuration (key excluded) for integrity checking."""
        config_str = f"{self._crypto}|{self._storage}|{self._migration}|{self._logging}"
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def crypto(self) -> CryptoConfig:
        return self._crypto

    @property
    def storage(self) -> StorageConfig:
        return self._storage

    @property
    def migration(self) -> MigrationConfig:
        return self._migration

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def config_hash(self) -> str:
        return self._config_hash

    @classmethod
    def load(
        cls,
        env_prefix: str = "SNAPVAULT",
        environ: Optional[Mapping[str, str]] = None,
    ) -> SnapVaultConfig:
        """
        Load configuration with environment variable overrides.

        Args:
            env_prefix: Prefix for environment variables (default: SNAPVAULT)
            environ: Mapping to read instead of os.environ

        Returns:
            Configured SnapVaultConfig instance

        Raises:
            ConfigurationError: If an override has an invalid value
        """
        environ = os.environ if environ is None else environ
        env_overrides = cls._parse_env_overrides(env_prefix, environ)

        crypto_kwargs: dict[str, Any] = {
            "encryption_key": environ.get(f"{env_prefix.upper()}_{ENCRYPTION_KEY_ENV}", ""),
        }
        if "crypto.chunk_size" in env_overrides:
            crypto_kwargs["chunk_size"] = _parse_int(env_overrides["crypto.chunk_size"], "chunk_size")
        if "crypto.derive_sub_chunk" in env_overrides:
            crypto_kwargs["derive_sub_chunk"] = _parse_bool(env_overrides["crypto.derive_sub_chunk"])

        storage_kwargs: dict[str, Any] = {}
        if "storage.snapshot_dir" in env_overrides:
            storage_kwargs["snapshot_dir"] = Path(env_overrides["storage.snapshot_dir"])
        for name in ("snapshot_file_name", "encrypted_file_name", "decrypted_file_name"):
            if f"storage.{name}" in env_overrides:
                storage_kwargs[name] = env_overrides[f"storage.{name}"]

        migration_kwargs: dict[str, Any] = {}
        for name in ("force_migration", "clean_on_shutdown"):
            if f"migration.{name}" in env_overrides:
                migration_kwargs[name] = _parse_bool(env_overrides[f"migration.{name}"])

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env_overrides:
            logging_kwargs["level"] = env_overrides["logging.level"]
        if "logging.log_dir" in env_overrides:
            logging_kwargs["log_dir"] = Path(env_overrides["logging.log_dir"])
        for name in ("enable_console", "enable_file"):
            if f"logging.{name}" in env_overrides:
                logging_kwargs[name] = _parse_bool(env_overrides[f"logging.{name}"])

        return cls(
            crypto=CryptoConfig(**crypto_kwargs),
            storage=StorageConfig(**storage_kwargs) if storage_kwargs else None,
            migration=MigrationConfig(**migration_kwargs) if migration_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str, environ: Mapping[str, str]) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in environ.items():
            if key.startswith(prefix_upper):
                # Convert SNAPVAULT_SECTION__KEY to section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                # SECURITY: Skip sensitive keys from generic overrides
                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    def __repr__(self) -> str:
        """Safe string representation without sensitive data."""
        return f"SnapVaultConfig(hash={self._config_hash}, has_key={self._crypto.has_key})"

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after initialization."""
        if hasattr(self, "_frozen") and self._frozen:
            raise AttributeError("SnapVaultConfig is immutable after initialization")
        super().__setattr__(name, value)
