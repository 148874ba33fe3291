"""
Migrations module - schema version gating for index migrations and seeds.
"""

from snapvault.migrations.gate import (
    LATEST_MIGRATION_VERSION,
    SCHEMA_VERSION_KEY,
    MigrationGate,
    MigrationState,
    VersionStore,
)

__all__ = [
    "LATEST_MIGRATION_VERSION",
    "SCHEMA_VERSION_KEY",
    "MigrationGate",
    "MigrationState",
    "VersionStore",
]
