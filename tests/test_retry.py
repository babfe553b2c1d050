"""Tests for bounded retry of conflicting writes."""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from storefront.application.retry import is_write_conflict, retry_on_conflict
from storefront.domain.exceptions import ConcurrencyConflictError, InvalidInputError


class _PgError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


class Flaky:
    def __init__(self, failures, error_factory):
        self.calls = 0
        self._failures = failures
        self._error_factory = error_factory

    async def __call__(self):
        self.calls += 1
        if self.calls <= self._failures:
            raise self._error_factory()
        return "done"


def run(operation, **kwargs):
    return asyncio.run(retry_on_conflict(operation, base_delay=0, **kwargs))


class TestIsWriteConflict:
    @pytest.mark.parametrize("sqlstate", ["40001", "40P01"])
    def test_postgres_serialization_failures(self, sqlstate):
        error = OperationalError("UPDATE", {}, _PgError(sqlstate))
        assert is_write_conflict(error)

    def test_sqlite_lock(self):
        error = OperationalError("UPDATE", {}, Exception("database is locked"))
        assert is_write_conflict(error)

    def test_optimistic_version_conflict(self):
        assert is_write_conflict(ConcurrencyConflictError("stale"))

    def test_other_errors(self):
        assert not is_write_conflict(OperationalError("UPDATE", {}, _PgError("23505")))
        assert not is_write_conflict(ValueError("boom"))


class TestRetryOnConflict:
    def test_succeeds_after_transient_conflicts(self):
        operation = Flaky(2, lambda: ConcurrencyConflictError("stale"))

        assert run(operation, attempts=3) == "done"
        assert operation.calls == 3

    def test_gives_up_after_attempts(self):
        operation = Flaky(10, lambda: ConcurrencyConflictError("stale"))

        with pytest.raises(ConcurrencyConflictError, match="Concurrent update conflict"):
            run(operation, attempts=3)
        assert operation.calls == 3

    def test_other_errors_are_not_retried(self):
        operation = Flaky(1, lambda: InvalidInputError("bad"))

        with pytest.raises(InvalidInputError):
            run(operation, attempts=3)
        assert operation.calls == 1

    def test_custom_predicate(self):
        operation = Flaky(1, lambda: ValueError("retry me"))

        assert run(operation, attempts=2, is_conflict=lambda e: isinstance(e, ValueError)) == "done"
        assert operation.calls == 2
