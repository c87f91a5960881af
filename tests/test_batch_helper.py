"""
TestCraft Repository Hub Scanner
Tests — Batch operation helpers.

Covers:
    1. Vendor detection
    2. Duplicate-key classification
    3. Native and generic upserts
    4. Batch fallback: one bad row costs exactly one row, wherever it sits
"""

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from testcraft.models import db
from testcraft.services.batch_helper import (
    DatabaseVendor,
    UpsertStrategy,
    detect_vendor,
    execute_batch_with_fallback,
    is_duplicate_key_error,
)

_scratch_metadata = sa.MetaData()
scratch = sa.Table(
    "batch_scratch", _scratch_metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("code", sa.String(50), nullable=False, unique=True),
    sa.Column("label", sa.String(50), nullable=False),
)


@pytest.fixture()
def scratch_table(app):
    scratch.create(db.engine, checkfirst=True)
    yield scratch
    db.session.rollback()
    scratch.drop(db.engine, checkfirst=True)


def _count():
    return db.session.execute(sa.select(sa.func.count()).select_from(scratch)).scalar_one()


def _insert(chunk):
    db.session.execute(sa.insert(scratch), list(chunk))


# ═══════════════════════════════════════════════════════════════════════════
#  1. Vendors
# ═══════════════════════════════════════════════════════════════════════════


class TestVendor:
    @pytest.mark.parametrize("name, vendor", [
        ("postgresql", DatabaseVendor.POSTGRESQL),
        ("mysql", DatabaseVendor.MYSQL),
        ("mariadb", DatabaseVendor.MYSQL),
        ("sqlite", DatabaseVendor.SQLITE),
        ("mssql", DatabaseVendor.MSSQL),
        ("oracle", DatabaseVendor.ORACLE),
        ("firebird", DatabaseVendor.UNKNOWN),
        (None, DatabaseVendor.UNKNOWN),
    ])
    def test_from_dialect_name(self, name, vendor):
        assert DatabaseVendor.from_dialect_name(name) is vendor

    def test_detect_from_engine(self):
        assert detect_vendor(db.engine) is DatabaseVendor.SQLITE

    def test_native_upsert_availability(self):
        assert UpsertStrategy(DatabaseVendor.POSTGRESQL).is_native
        assert UpsertStrategy(DatabaseVendor.MYSQL).is_native
        assert not UpsertStrategy(DatabaseVendor.MSSQL).is_native
        with pytest.raises(NotImplementedError):
            UpsertStrategy(DatabaseVendor.ORACLE).statement(scratch, ["code"], ["label"])


# ═══════════════════════════════════════════════════════════════════════════
#  2. Duplicate-key classification
# ═══════════════════════════════════════════════════════════════════════════


class _DriverError(Exception):
    def __init__(self, message, **attrs):
        super().__init__(message)
        for key, value in attrs.items():
            setattr(self, key, value)


class TestDuplicateKey:
    @pytest.mark.parametrize("orig, vendor", [
        (_DriverError("boom", pgcode="23505"), DatabaseVendor.POSTGRESQL),
        (_DriverError("(1062, \"Duplicate entry 'x' for key 'code'\")"), DatabaseVendor.MYSQL),
        (_DriverError("UNIQUE constraint failed: t.code"), DatabaseVendor.SQLITE),
        (_DriverError("Violation of UNIQUE KEY constraint 'uq'", code=2627), DatabaseVendor.MSSQL),
        (_DriverError("ORA-00001: unique constraint violated"), DatabaseVendor.ORACLE),
    ])
    def test_vendor_signatures(self, orig, vendor):
        exc = IntegrityError("INSERT ...", {}, orig)
        assert is_duplicate_key_error(exc, vendor)
        assert is_duplicate_key_error(exc)

    def test_other_constraint_is_not_duplicate(self):
        exc = IntegrityError("INSERT ...", {}, _DriverError("NOT NULL constraint failed: t.label"))
        assert not is_duplicate_key_error(exc, DatabaseVendor.SQLITE)

    def test_real_sqlite_error(self, scratch_table):
        _insert([{"code": "A", "label": "a"}])
        with pytest.raises(IntegrityError) as exc_info:
            with db.session.begin_nested():
                _insert([{"code": "A", "label": "again"}])
        assert is_duplicate_key_error(exc_info.value, DatabaseVendor.SQLITE)


# ═══════════════════════════════════════════════════════════════════════════
#  3. Upserts
# ═══════════════════════════════════════════════════════════════════════════


class TestUpsert:
    @pytest.mark.parametrize("vendor", [DatabaseVendor.SQLITE, DatabaseVendor.UNKNOWN])
    def test_second_write_updates_in_place(self, scratch_table, vendor):
        strategy = UpsertStrategy(vendor)
        rows = [{"code": "A", "label": "first"}, {"code": "B", "label": "first"}]
        strategy.execute(db.session, scratch, rows, ["code"], ["label"])
        strategy.execute(db.session, scratch, [{"code": "A", "label": "second"}], ["code"], ["label"])
        db.session.commit()

        labels = dict(db.session.execute(sa.select(scratch.c.code, scratch.c.label)).all())
        assert labels == {"A": "second", "B": "first"}

    def test_empty_rows_is_noop(self, scratch_table):
        UpsertStrategy(DatabaseVendor.SQLITE).execute(db.session, scratch, [], ["code"], ["label"])
        assert _count() == 0


# ═══════════════════════════════════════════════════════════════════════════
#  4. Batch with fallback
# ═══════════════════════════════════════════════════════════════════════════


class TestBatchFallback:
    N = 6

    @pytest.mark.parametrize("k", range(N))
    def test_one_conflicting_row_at_any_position(self, scratch_table, k):
        _insert([{"code": "TAKEN", "label": "existing"}])
        rows = [{"code": f"R{i}", "label": "new"} for i in range(self.N)]
        rows[k] = {"code": "TAKEN", "label": "conflict"}

        result = execute_batch_with_fallback(db.session, rows, _insert, batch_size=100,
                                             vendor=DatabaseVendor.SQLITE, label="scratch")
        db.session.commit()

        assert _count() == 1 + (self.N - 1)
        assert result.attempted == self.N
        assert result.succeeded == self.N - 1
        assert result.fallbacks == 1
        assert len(result.skipped) == 1
        assert result.skipped[0].row["code"] == "TAKEN"
        assert result.skipped[0].reason == "duplicate"

    def test_chunks_without_conflicts_take_the_fast_path(self, scratch_table):
        _insert([{"code": "seed", "label": "x"}])
        rows = [{"code": f"R{i}", "label": "new"} for i in range(7)]
        result = execute_batch_with_fallback(db.session, rows, _insert, batch_size=3)
        db.session.commit()

        assert result.batches == 3
        assert result.fallbacks == 0
        assert result.skipped == []
        assert _count() == 8

    def test_non_unique_violation_is_reported_as_constraint(self, scratch_table):
        _insert([{"code": "seed", "label": "x"}])
        rows = [{"code": "ok", "label": "fine"}, {"code": "bad", "label": None}]
        result = execute_batch_with_fallback(db.session, rows, _insert, batch_size=10)
        db.session.commit()

        # any integrity violation takes the row-by-row path, not only duplicates
        assert result.fallbacks == 1
        assert [s.reason for s in result.skipped] == ["constraint"]
        assert _count() == 2

    def test_merge(self, scratch_table):
        _insert([{"code": "seed", "label": "x"}])
        a = execute_batch_with_fallback(db.session, [{"code": "A", "label": "a"}], _insert)
        b = execute_batch_with_fallback(db.session, [{"code": "A", "label": "a"}], _insert)
        a.merge(b)
        assert a.attempted == 2
        assert a.succeeded == 1
        assert a.batches == 2
