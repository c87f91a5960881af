"""
TestCraft Repository Hub Scanner
Batch operation helpers.

Vendor-neutral building blocks for the persistence service:

    - DatabaseVendor / detect_vendor: which database is behind an engine
    - is_duplicate_key_error: vendor-keyed table of duplicate-key signatures
    - UpsertStrategy: insert-or-update on a natural key, one builder per vendor
    - execute_batch_with_fallback: run a chunk as one batched statement
      inside a SAVEPOINT; if it hits any integrity violation, replay the
      chunk row by row and report the rows that still fail as skipped

The row-by-row replay is triggered by every IntegrityError (duplicate key,
NOT NULL, foreign key, check). The duplicate-key signature table only
decides the reason a skipped row is reported with: "duplicate" when it
matches, "constraint" otherwise.

Usage:
    strategy = UpsertStrategy(detect_vendor(session.get_bind()))
    result = execute_batch_with_fallback(
        session, rows,
        lambda chunk: strategy.execute(session, table, chunk, ["name"], ["total"]),
        batch_size=1000,
    )
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from sqlalchemy import Table, and_, insert, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000


# ═══════════════════════════════════════════════════════════════════════════
#  Vendor detection
# ═══════════════════════════════════════════════════════════════════════════


class DatabaseVendor(str, enum.Enum):
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"
    MSSQL = "mssql"
    ORACLE = "oracle"
    UNKNOWN = "unknown"

    @classmethod
    def from_dialect_name(cls, name: str | None) -> DatabaseVendor:
        name = (name or "").lower()
        if name == "mariadb":
            return cls.MYSQL
        for vendor in cls:
            if vendor.value == name:
                return vendor
        return cls.UNKNOWN


def detect_vendor(bind) -> DatabaseVendor:
    """Vendor of an Engine or Connection, from its SQLAlchemy dialect."""
    return DatabaseVendor.from_dialect_name(getattr(bind.dialect, "name", None))


# ═══════════════════════════════════════════════════════════════════════════
#  Duplicate-key detection
# ═══════════════════════════════════════════════════════════════════════════

# vendor → (driver error codes / sqlstates, message fragments)
DUPLICATE_KEY_SIGNATURES: dict[DatabaseVendor, tuple[frozenset, tuple[str, ...]]] = {
    DatabaseVendor.POSTGRESQL: (frozenset({"23505"}), ("duplicate key value violates unique constraint",)),
    DatabaseVendor.MYSQL: (frozenset({1062, "1062", 1586, "1586"}), ("duplicate entry",)),
    DatabaseVendor.SQLITE: (frozenset({2067, 1555}), ("unique constraint failed",)),
    DatabaseVendor.MSSQL: (frozenset({2627, 2601, "2627", "2601"}),
                           ("violation of unique key constraint", "cannot insert duplicate key")),
    DatabaseVendor.ORACLE: (frozenset({"ORA-00001"}), ("ora-00001",)),
}
_GENERIC_FRAGMENTS = ("duplicate", "unique constraint", "already exists")


def _driver_codes(orig) -> set:
    codes = set()
    for attr in ("pgcode", "sqlstate", "sqlite_errorcode", "errno", "code"):
        value = getattr(orig, attr, None)
        if value is not None:
            codes.add(value)
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], (int, str)):
        codes.add(args[0])
    return codes


def is_duplicate_key_error(exc: BaseException, vendor: DatabaseVendor | None = None) -> bool:
    """True when ``exc`` is a unique/primary key violation.

    Checks the vendor's codes and messages first, then falls back to
    generic message fragments so unknown drivers still classify.
    """
    orig = exc.orig if isinstance(exc, DBAPIError) else exc
    message = str(orig).lower()
    codes = _driver_codes(orig)

    vendors = [vendor] if vendor in DUPLICATE_KEY_SIGNATURES else list(DUPLICATE_KEY_SIGNATURES)
    for v in vendors:
        known_codes, fragments = DUPLICATE_KEY_SIGNATURES[v]
        if codes & known_codes or any(f in message for f in fragments):
            return True
    return any(f in message for f in _GENERIC_FRAGMENTS)


# ═══════════════════════════════════════════════════════════════════════════
#  Upsert strategies
# ═══════════════════════════════════════════════════════════════════════════


def _on_conflict_upsert(dialect_insert):
    def build(table: Table, key_columns: Sequence[str], update_columns: Sequence[str]):
        stmt = dialect_insert(table)
        return stmt.on_conflict_do_update(
            index_elements=[table.c[k] for k in key_columns],
            set_={c: stmt.excluded[c] for c in update_columns},
        )
    return build


def _mysql_upsert(table: Table, key_columns: Sequence[str], update_columns: Sequence[str]):
    stmt = mysql.insert(table)
    return stmt.on_duplicate_key_update({c: stmt.inserted[c] for c in update_columns})


# vendor → single-statement upsert builder; vendors missing here use update-then-insert
UPSERT_BUILDERS = {
    DatabaseVendor.POSTGRESQL: _on_conflict_upsert(postgresql.insert),
    DatabaseVendor.SQLITE: _on_conflict_upsert(sqlite.insert),
    DatabaseVendor.MYSQL: _mysql_upsert,
}


class UpsertStrategy:
    """Insert-or-update on a natural key for one database vendor.

    Conflicting rows only get ``update_columns`` rewritten; identity
    columns (natural key, first-seen dates) are never touched.
    """

    def __init__(self, vendor: DatabaseVendor):
        self.vendor = vendor
        self._builder = UPSERT_BUILDERS.get(vendor)

    @property
    def is_native(self) -> bool:
        return self._builder is not None

    def statement(self, table: Table, key_columns: Sequence[str], update_columns: Sequence[str]):
        if self._builder is None:
            raise NotImplementedError(f"No single-statement upsert for {self.vendor.value}")
        return self._builder(table, key_columns, update_columns)

    def execute(
        self,
        session: Session,
        table: Table,
        rows: Sequence[dict],
        key_columns: Sequence[str],
        update_columns: Sequence[str],
    ) -> None:
        if not rows:
            return
        if self._builder is not None:
            session.execute(self.statement(table, key_columns, update_columns), list(rows))
            return
        for row in rows:
            key_clause = and_(*(table.c[k] == row[k] for k in key_columns))
            values = {c: row[c] for c in update_columns if c in row}
            result = session.execute(update(table).where(key_clause).values(values))
            if result.rowcount == 0:
                session.execute(insert(table).values(row))


# ═══════════════════════════════════════════════════════════════════════════
#  Batch with fallback
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class SkippedRow:
    row: dict
    reason: str                 # duplicate, constraint
    error: str


@dataclass
class BatchResult:
    attempted: int = 0
    batches: int = 0
    fallbacks: int = 0
    skipped: list[SkippedRow] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.attempted - len(self.skipped)

    def merge(self, other: BatchResult) -> None:
        self.attempted += other.attempted
        self.batches += other.batches
        self.fallbacks += other.fallbacks
        self.skipped.extend(other.skipped)


def execute_batch_with_fallback(
    session: Session,
    rows: Sequence[dict],
    execute: Callable[[Sequence[dict]], None],
    batch_size: int = DEFAULT_BATCH_SIZE,
    vendor: DatabaseVendor | None = None,
    label: str = "rows",
) -> BatchResult:
    """
    Run ``execute`` over ``rows`` in chunks of ``batch_size``.

    Each chunk runs inside a SAVEPOINT. When a chunk raises an
    IntegrityError of any kind the savepoint is rolled back and the chunk
    is replayed one row at a time, each row in its own SAVEPOINT; rows
    that still violate a constraint are collected as skipped, with reason
    "duplicate" when ``is_duplicate_key_error`` recognises the failure and
    "constraint" otherwise. Any other database error propagates and
    aborts the surrounding transaction.
    """
    result = BatchResult()
    batch_size = max(1, int(batch_size or DEFAULT_BATCH_SIZE))
    for start in range(0, len(rows), batch_size):
        chunk = list(rows[start:start + batch_size])
        result.attempted += len(chunk)
        result.batches += 1
        try:
            with session.begin_nested():
                execute(chunk)
            continue
        except IntegrityError as exc:
            result.fallbacks += 1
            logger.warning("Batch of %d %s hit a constraint, retrying row by row: %s",
                           len(chunk), label, exc.orig)

        for row in chunk:
            try:
                with session.begin_nested():
                    execute([row])
            except IntegrityError as exc:
                reason = "duplicate" if is_duplicate_key_error(exc, vendor) else "constraint"
                result.skipped.append(SkippedRow(row=row, reason=reason, error=str(exc.orig)))
                logger.warning("Skipped %s row (%s): %s", label, reason, exc.orig)
    return result
