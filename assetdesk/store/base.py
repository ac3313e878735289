"""
Record store contract.

A record store keeps one logical table per entity type. Rows are plain
dicts, ids are positive integers assigned as max(id) + 1, and row order is
insertion order. Updates are partial: unknown fields are accepted and
stored alongside the declared ones.

Each table has a re-entrant write lock. Services hold it across a
read-check-write cycle so that two transitions on the same table are
serialised:

    with store.lock(ASSETS):
        asset = store.get(ASSETS, asset_id)
        ...
        store.update(ASSETS, asset_id, changes)
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager

from assetdesk.core.exceptions import NotFoundError
from assetdesk.models.schema import schema_for

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """Base class for the workbook and SQL backends."""

    def __init__(self):
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ── Backend primitives ────────────────────────────────────────────────

    @abstractmethod
    def _fetch(self, table: str) -> list[dict]:
        """Return the raw rows of *table* in insertion order."""

    @abstractmethod
    def _append(self, table: str, record: dict) -> None:
        """Persist a new row."""

    @abstractmethod
    def _replace(self, table: str, record: dict) -> None:
        """Persist the full new body of an existing row (matched by id)."""

    def invalidate(self, table: str | None = None) -> None:
        """Drop any cached reads. Backends without a cache ignore this."""

    def _lock_key(self, table: str) -> str:
        return table

    # ── Locking ───────────────────────────────────────────────────────────

    @contextmanager
    def lock(self, table: str):
        key = self._lock_key(table)
        with self._locks_guard:
            lk = self._locks.setdefault(key, threading.RLock())
        with lk:
            yield

    # ── Public API ────────────────────────────────────────────────────────

    def get_all(self, table: str) -> list[dict]:
        schema = schema_for(table)
        return [schema.apply_defaults(row) for row in self._fetch(table)]

    def get(self, table: str, record_id) -> dict | None:
        try:
            rid = int(record_id)
        except (TypeError, ValueError):
            return None
        for row in self.get_all(table):
            if row.get("id") == rid:
                return row
        return None

    def get_or_raise(self, table: str, record_id, label: str | None = None) -> dict:
        row = self.get(table, record_id)
        if row is None:
            raise NotFoundError(label or table.rstrip("s"), record_id)
        return row

    def find(self, table: str, **criteria) -> list[dict]:
        """Rows whose fields equal every keyword given."""
        return [
            row for row in self.get_all(table)
            if all(row.get(k) == v for k, v in criteria.items())
        ]

    def insert(self, table: str, data: dict) -> dict:
        with self.lock(table):
            rows = self._fetch(table)
            next_id = max((int(r.get("id") or 0) for r in rows), default=0) + 1
            record = {k: v for k, v in data.items() if k != "id"}
            record["id"] = next_id
            self._append(table, record)
            self.invalidate(table)
            logger.debug("Inserted %s id=%s", table, next_id)
            return schema_for(table).apply_defaults(record)

    def update(self, table: str, record_id, changes: dict) -> dict:
        with self.lock(table):
            current = None
            for row in self._fetch(table):
                if str(row.get("id")) == str(record_id):
                    current = row
                    break
            if current is None:
                raise NotFoundError(table.rstrip("s"), record_id)
            merged = dict(current)
            merged.update({k: v for k, v in changes.items() if k != "id"})
            self._replace(table, merged)
            self.invalidate(table)
            logger.debug("Updated %s id=%s fields=%s", table, record_id, sorted(changes))
            return schema_for(table).apply_defaults(merged)
