"""Snapshot store capability.

The snapshot store holds the stacks and stack resources persisted by the
previous collection run. The collector only reads from it.

Public API (the "studs"):
    SnapshotStore: Protocol consumed by the change-detection cache
    SqliteSnapshotStore: Read-only SQLite implementation
"""

import logging
import sqlite3
from collections.abc import Collection, Iterable, Sequence
from pathlib import Path
from typing import Protocol

from azcollect.errors import SnapshotStoreError
from azcollect.models import PersistedStack, PersistedStackResource, parse_timestamp

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    """Read access to the previous run's stacks and stack resources."""

    def find_stacks(self, refs: Collection[str] | None = None) -> Iterable[PersistedStack]:
        """Persisted stacks, optionally restricted to the given external ids."""
        ...

    def find_stack_resources(self, stack_ids: Sequence[int]) -> Iterable[PersistedStackResource]:
        """Persisted resources of the stacks with the given primary keys."""
        ...


class SqliteSnapshotStore:
    """SQLite-backed snapshot store (read-only).

    Expected schema:

        orchestration_stacks(id INTEGER PRIMARY KEY, ems_ref TEXT, finish_time TEXT)
        orchestration_stack_resources(
            stack_id INTEGER, ems_ref TEXT, name TEXT, logical_resource TEXT,
            physical_resource TEXT, resource_category TEXT, resource_status TEXT,
            resource_status_reason TEXT, last_updated TEXT)

    Timestamps are ISO-8601 strings. The database is opened in read-only
    mode, so the store can never modify the snapshot.
    """

    # SQLite's default host parameter limit is 999 on older builds
    MAX_QUERY_PARAMS = 900

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            raise SnapshotStoreError(f"Snapshot database not found: {self.db_path}")
        try:
            conn = sqlite3.connect(f"{self.db_path.resolve().as_uri()}?mode=ro", uri=True)
        except sqlite3.Error as e:
            raise SnapshotStoreError(f"Failed to open snapshot database: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    def _select_in(
        self, conn: sqlite3.Connection, sql: str, values: Sequence[object]
    ) -> list[sqlite3.Row]:
        """Run ``sql`` (with a single ``{placeholders}`` slot) over ``values`` in chunks."""
        rows: list[sqlite3.Row] = []
        for start in range(0, len(values), self.MAX_QUERY_PARAMS):
            chunk = values[start : start + self.MAX_QUERY_PARAMS]
            placeholders = ", ".join("?" for _ in chunk)
            rows.extend(conn.execute(sql.format(placeholders=placeholders), chunk).fetchall())
        return rows

    def find_stacks(self, refs: Collection[str] | None = None) -> list[PersistedStack]:
        conn = self._connect()
        try:
            if refs is None:
                rows = conn.execute(
                    "SELECT id, ems_ref, finish_time FROM orchestration_stacks"
                ).fetchall()
            else:
                rows = self._select_in(
                    conn,
                    "SELECT id, ems_ref, finish_time FROM orchestration_stacks "
                    "WHERE ems_ref IN ({placeholders})",
                    list(refs),
                )
        except sqlite3.Error as e:
            raise SnapshotStoreError(f"Failed to query stacks: {e}") from e
        finally:
            conn.close()

        stacks = [
            PersistedStack(
                id=row["id"],
                ems_ref=row["ems_ref"],
                finish_time=parse_timestamp(row["finish_time"]),
            )
            for row in rows
        ]
        logger.debug(f"Loaded {len(stacks)} persisted stacks from {self.db_path}")
        return stacks

    def find_stack_resources(self, stack_ids: Sequence[int]) -> list[PersistedStackResource]:
        if not stack_ids:
            return []

        conn = self._connect()
        try:
            rows = self._select_in(
                conn,
                """
                SELECT stack_id, ems_ref, name, logical_resource, physical_resource,
                       resource_category, resource_status, resource_status_reason,
                       last_updated
                FROM orchestration_stack_resources
                WHERE stack_id IN ({placeholders})
                """,
                list(stack_ids),
            )
        except sqlite3.Error as e:
            raise SnapshotStoreError(f"Failed to query stack resources: {e}") from e
        finally:
            conn.close()

        return [
            PersistedStackResource(
                stack_id=row["stack_id"],
                ems_ref=row["ems_ref"],
                name=row["name"],
                logical_resource=row["logical_resource"],
                physical_resource=row["physical_resource"],
                resource_category=row["resource_category"],
                resource_status=row["resource_status"],
                resource_status_reason=row["resource_status_reason"],
                last_updated=parse_timestamp(row["last_updated"]),
            )
            for row in rows
        ]


__all__ = ["SnapshotStore", "SqliteSnapshotStore"]
