"""
Schema Migration Gate
=====================

Decides whether index migrations and seed data should run, based on a
schema version recorded in a key-value store.

The decision is made once by ``initialize()`` and returned as an
explicit MigrationState that the caller passes into ``migrate()`` and
``seed()``. The gate itself keeps no mutable state between calls.

Any store exposing ``get(key)`` and ``set(key, value)`` works, including
a redis-py client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Final, Optional, Protocol, TypeVar, Union

SCHEMA_VERSION_KEY: Final[str] = "SchemaMigration:Version"
LATEST_MIGRATION_VERSION: Final[str] = "20250309"

T = TypeVar("T")


class VersionStore(Protocol):
    """Minimal key-value interface used to record the schema version."""

    def get(self, key: str) -> Optional[Union[str, bytes]]: ...

    def set(self, key: str, value: str) -> object: ...


@dataclass(frozen=True, slots=True)
class MigrationState:
    """Outcome of initialize(), threaded into migrate() and seed()."""

    applied_version: Optional[str]
    latest_version: str
    is_up_to_date: bool
    forced: bool

    @property
    def should_run(self) -> bool:
        return self.forced or not self.is_up_to_date


class MigrationGate:
    """
    Gate index creation and seeding on the recorded schema version.

    Usage:
        gate = MigrationGate(redis_client, force=config.migration.force_migration)
        state = gate.initialize()
        gate.migrate(state, create_indexes)
        gate.seed(state, insert_fixtures)
    """

    __slots__ = ("_store", "_latest_version", "_force", "_log")

    def __init__(
        self,
        store: VersionStore,
        latest_version: str = LATEST_MIGRATION_VERSION,
        force: bool = False,
    ) -> None:
        self._store = store
        self._latest_version = latest_version
        self._force = force
        self._log = logging.getLogger("snapvault.migrations")

    def initialize(self) -> MigrationState:
        """
        Read the applied version and record the latest one if work is due.

        Returns:
            MigrationState describing whether migrate/seed should run
        """
        applied = self._store.get(SCHEMA_VERSION_KEY)
        if isinstance(applied, bytes):
            applied = applied.decode("utf-8")

        state = MigrationState(
            applied_version=applied,
            latest_version=self._latest_version,
            is_up_to_date=(applied or "") == self._latest_version,
            forced=self._force,
        )

        if state.should_run:
            self._store.set(SCHEMA_VERSION_KEY, self._latest_version)
            self._log.info(
                "Schema version %s -> %s (forced=%s)",
                applied or "none", self._latest_version, self._force,
            )
        else:
            self._log.info("Schema already at %s", self._latest_version)

        return state

    def migrate(self, state: MigrationState, create_indexes: Callable[[], T]) -> Optional[T]:
        """Run ``create_indexes`` unless the state says the schema is current."""
        if not state.should_run:
            return None
        self._log.info("Running migrations")
        return create_indexes()

    def seed(self, state: MigrationState, seeder: Callable[[], T]) -> Optional[T]:
        """Run ``seeder`` unless the state says the schema is current."""
        if not state.should_run:
            return None
        self._log.info("Running seeds")
        return seeder()
