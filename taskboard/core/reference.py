"""
FILE: taskboard/core/reference.py
PURPOSE: Resolve statuses, priorities and types with self-healing defaults
EXPORTS:
  - ReferenceResolver (class)
  - resolver (process-wide instance)
DEPENDENCIES:
  - threading (stdlib)
  - loguru (logging)
  - taskboard.core.repository (lookup rows, seeding, transactions)
NOTES:
  - Lookup tables are loaded into an in-memory cache keyed by code
  - The cache is keyed per database path so separate stores never mix
  - An empty table is seeded with the canonical rows via an idempotent upsert
  - Rows seeded inside a caller's transaction are not cached until that
    transaction is known to have committed (next lookup reloads them)
  - add_entry() invalidates the cache
"""

import sqlite3
import threading
from typing import Dict, List, Optional, Tuple

from loguru import logger

from . import repository
from .constants import (
    DEFAULT_PRIORITIES,
    DEFAULT_PRIORITY_CODE,
    DEFAULT_STATUS_CODE,
    DEFAULT_STATUSES,
    DEFAULT_TYPE_CODE,
    DEFAULT_TYPES,
    KIND_PRIORITY,
    KIND_STATUS,
    KIND_TYPE,
    REFERENCE_KINDS,
)
from .exceptions import InternalError, ValidationError
from .models import PriorityEntity, ReferenceEntity, StatusEntity, TypeEntity


CANONICAL_ROWS = {
    KIND_STATUS: DEFAULT_STATUSES,
    KIND_PRIORITY: DEFAULT_PRIORITIES,
    KIND_TYPE: DEFAULT_TYPES,
}

DEFAULT_CODES = {
    KIND_STATUS: DEFAULT_STATUS_CODE,
    KIND_PRIORITY: DEFAULT_PRIORITY_CODE,
    KIND_TYPE: DEFAULT_TYPE_CODE,
}


class ReferenceResolver:
    """Cached, self-healing access to the lookup tables."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cache: Dict[Tuple[str, str], Dict[str, ReferenceEntity]] = {}

    # -- cache --------------------------------------------------------------

    def _key(self, kind: str) -> Tuple[str, str]:
        return (str(repository.DB_PATH), kind)

    def invalidate(self, kind: Optional[str] = None) -> None:
        """Drop cached rows (one kind, or everything for the current store)."""
        db = str(repository.DB_PATH)
        with self._lock:
            for key in list(self._cache):
                if key[0] == db and (kind is None or key[1] == kind):
                    del self._cache[key]

    def _load(self, conn: sqlite3.Connection, kind: str, owned: bool) -> Dict[str, ReferenceEntity]:
        rows = repository.fetch_reference_rows(conn, kind)
        seeded = False

        if not rows:
            inserted = repository.seed_reference_rows(conn, kind, CANONICAL_ROWS[kind])
            logger.info("Seeded {} default {} row(s)", inserted, kind)
            rows = repository.fetch_reference_rows(conn, kind)
            seeded = True

        by_code = {row.code: row for row in rows}
        if by_code and (owned or not seeded):
            with self._lock:
                self._cache[self._key(kind)] = by_code
        return by_code

    def _rows(
        self,
        kind: str,
        conn: Optional[sqlite3.Connection] = None,
        refresh: bool = False,
    ) -> Dict[str, ReferenceEntity]:
        if not refresh:
            with self._lock:
                cached = self._cache.get(self._key(kind))
            if cached:
                return cached

        if conn is not None:
            return self._load(conn, kind, owned=False)

        return repository.run_in_transaction(
            lambda own: self._load(own, kind, owned=True),
            context={"step": f"load {kind} reference rows"},
        )

    def _by_code(
        self,
        kind: str,
        code: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[ReferenceEntity]:
        rows = self._rows(kind, conn)
        if code in rows:
            return rows[code]
        # Another process may have added it since the cache was filled
        return self._rows(kind, conn, refresh=True).get(code)

    def _by_id(
        self,
        kind: str,
        entity_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[ReferenceEntity]:
        for refresh in (False, True):
            for row in self._rows(kind, conn, refresh=refresh).values():
                if row.id == entity_id:
                    return row
        return None

    def _default(self, kind: str, conn: Optional[sqlite3.Connection] = None) -> ReferenceEntity:
        code = DEFAULT_CODES[kind]
        entity = self._by_code(kind, code, conn)
        if entity is not None:
            return entity

        # Table is populated but the canonical default was removed or renamed:
        # fall back to the first row by display order
        rows = sorted(self._rows(kind, conn).values(), key=lambda r: (r.display_order, r.id))
        if rows:
            logger.warning("Default {} '{}' missing, using '{}'", kind, code, rows[0].code)
            return rows[0]

        raise InternalError(
            f"No {kind} rows available after initialization",
            {"kind": kind, "code": code},
        )

    # -- defaults -----------------------------------------------------------

    def default_type(self, conn: Optional[sqlite3.Connection] = None) -> TypeEntity:
        """
        Return the canonical "feature" type, seeding the type table if empty.

        Raises:
            InternalError: If initialization itself fails
        """
        return self._default(KIND_TYPE, conn)

    def default_status(self, conn: Optional[sqlite3.Connection] = None) -> StatusEntity:
        return self._default(KIND_STATUS, conn)

    def default_priority(self, conn: Optional[sqlite3.Connection] = None) -> PriorityEntity:
        return self._default(KIND_PRIORITY, conn)

    def ensure_defaults(self) -> None:
        """Seed every lookup table that is still empty (idempotent)."""
        for kind in REFERENCE_KINDS:
            self._rows(kind, refresh=True)

    # -- lookups ------------------------------------------------------------

    def get_status(self, status_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[StatusEntity]:
        return self._by_id(KIND_STATUS, status_id, conn)

    def get_priority(self, priority_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[PriorityEntity]:
        return self._by_id(KIND_PRIORITY, priority_id, conn)

    def get_type(self, type_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[TypeEntity]:
        return self._by_id(KIND_TYPE, type_id, conn)

    def get_status_by_code(self, code: str, conn: Optional[sqlite3.Connection] = None) -> Optional[StatusEntity]:
        return self._by_code(KIND_STATUS, code, conn)

    def get_priority_by_code(self, code: str, conn: Optional[sqlite3.Connection] = None) -> Optional[PriorityEntity]:
        return self._by_code(KIND_PRIORITY, code, conn)

    def get_type_by_code(self, code: str, conn: Optional[sqlite3.Connection] = None) -> Optional[TypeEntity]:
        return self._by_code(KIND_TYPE, code, conn)

    def resolve_type(self, code: Optional[str], conn: Optional[sqlite3.Connection] = None) -> TypeEntity:
        """
        Resolve a type code, falling back to the default when omitted.

        Raises:
            ValidationError: If a code is given but unknown
        """
        code = (code or "").strip().lower()
        if not code:
            return self.default_type(conn)
        entity = self.get_type_by_code(code, conn)
        if entity is None:
            raise ValidationError(
                f"Invalid task type '{code}'",
                {"type": code, "valid": [t.code for t in self.list_types(conn)]},
            )
        return entity

    def resolve_priority(self, code: Optional[str], conn: Optional[sqlite3.Connection] = None) -> PriorityEntity:
        code = (code or "").strip().lower()
        if not code:
            return self.default_priority(conn)
        entity = self.get_priority_by_code(code, conn)
        if entity is None:
            raise ValidationError(
                f"Invalid priority '{code}'",
                {"priority": code, "valid": [p.code for p in self.list_priorities(conn)]},
            )
        return entity

    def list_statuses(self, conn: Optional[sqlite3.Connection] = None) -> List[StatusEntity]:
        return self._sorted(KIND_STATUS, conn)

    def list_priorities(self, conn: Optional[sqlite3.Connection] = None) -> List[PriorityEntity]:
        return self._sorted(KIND_PRIORITY, conn)

    def list_types(self, conn: Optional[sqlite3.Connection] = None) -> List[TypeEntity]:
        return self._sorted(KIND_TYPE, conn)

    def _sorted(self, kind: str, conn: Optional[sqlite3.Connection]) -> List[ReferenceEntity]:
        return sorted(self._rows(kind, conn).values(), key=lambda r: (r.display_order, r.id))

    # -- admin edits --------------------------------------------------------

    def add_entry(
        self,
        kind: str,
        code: str,
        name: str,
        description: Optional[str] = None,
        display_order: Optional[int] = None,
    ) -> ReferenceEntity:
        """
        Add a lookup row (e.g. a new status column) and invalidate the cache.

        Raises:
            ValidationError: If kind is unknown, code is blank or already taken
        """
        if kind not in REFERENCE_KINDS:
            raise ValidationError(
                f"Unknown reference kind '{kind}'", {"kind": kind, "valid": list(REFERENCE_KINDS)}
            )

        code = code.strip().lower()
        name = name.strip()
        if not code or not name:
            raise ValidationError("Code and name are required", {"code": code, "name": name})

        # Make sure defaults exist first so the new row doesn't block seeding
        self._rows(kind)

        repository.run_in_transaction(
            lambda conn: repository.insert_reference_row(
                conn, kind, code, name, description, display_order
            ),
            context={"kind": kind, "code": code, "step": "add reference row"},
        )
        self.invalidate(kind)
        logger.info("Added {} '{}'", kind, code)

        entity = self._by_code(kind, code)
        if entity is None:
            raise InternalError(f"{kind} '{code}' missing after insert", {"kind": kind, "code": code})
        return entity


resolver = ReferenceResolver()
