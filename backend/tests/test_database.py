"""Tests for the unit-of-work helper: commit, retry on write conflicts, rollback.

The mock-session cases cover the control flow.  The SQLite cases run the
retry against a real async session, where a rollback expires loaded rows.
"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError

import tally.models  # noqa: F401  registers every mapper
from tally.database import Base, run_in_transaction
from tally.models.party import PartyRole, ThirdParty
from tally.models.tenant import Tenant
from tally.tenant_utils import get_current_tenant
from tally.services.errors import ConcurrencyConflict, InvalidAmount


def _duplicate():
    return IntegrityError("INSERT INTO journal_entries", {}, Exception("duplicate key"))


class TestRunInTransaction:

    @pytest.mark.asyncio
    async def test_commits_on_success(self):
        db = AsyncMock()
        work = AsyncMock(return_value="done")
        assert await run_in_transaction(db, work) == "done"
        work.assert_awaited_once_with(db)
        db.commit.assert_awaited_once()
        db.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_retries_stale_version(self):
        db = AsyncMock()
        work = AsyncMock(side_effect=[StaleDataError("version mismatch"), "done"])
        assert await run_in_transaction(db, work, attempts=3) == "done"
        assert work.await_count == 2
        db.rollback.assert_awaited_once()
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_conflict_on_commit_is_retried(self):
        db = AsyncMock()
        db.commit.side_effect = [_duplicate(), None]
        work = AsyncMock(return_value="done")
        assert await run_in_transaction(db, work, attempts=2) == "done"
        assert work.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        db = AsyncMock()
        work = AsyncMock(side_effect=_duplicate())
        with pytest.raises(ConcurrencyConflict, match="2 conflicting attempts") as exc_info:
            await run_in_transaction(db, work, attempts=2)
        assert isinstance(exc_info.value.__cause__, IntegrityError)
        assert work.await_count == 2
        assert db.rollback.await_count == 2
        db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_domain_error_rolls_back_without_retry(self):
        db = AsyncMock()
        work = AsyncMock(side_effect=InvalidAmount("Amount must be positive"))
        with pytest.raises(InvalidAmount):
            await run_in_transaction(db, work, attempts=3)
        work.assert_awaited_once()
        db.rollback.assert_awaited_once()
        db.commit.assert_not_called()


# ===================================================================
# Real session (SQLite)
# ===================================================================


async def _sqlite_sessions(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tally.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(
            Base.metadata.create_all, tables=[Tenant.__table__, ThirdParty.__table__]
        )
    sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with sessions() as s:
        s.add(Tenant(id="acme", name="Acme"))
        s.add(ThirdParty(
            tenant_id="acme",
            name="Ana",
            document_id="30111222",
            role=PartyRole.CLIENT,
            credit_limit=Decimal("5000.00"),
            credit_used=Decimal("1000.00"),
        ))
        await s.commit()
    return engine, sessions


class TestRetryWithRealSession:

    @pytest.mark.asyncio
    async def test_resolved_tenant_survives_rollback(self, tmp_path):
        engine, sessions = await _sqlite_sessions(tmp_path)
        calls = []

        async with sessions() as db:
            tenant = await get_current_tenant("acme", db)

            async def work(s):
                calls.append(tenant.id)
                if len(calls) == 1:
                    raise StaleDataError("version mismatch")
                s.add(Tenant(id="beta", name=f"Sister of {tenant.name}"))
                return tenant.id

            assert await run_in_transaction(db, work, attempts=2) == "acme"

        async with sessions() as check:
            assert (await check.get(Tenant, "beta")).name == "Sister of Acme"
        assert calls == ["acme", "acme"]
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_concurrent_credit_update_is_not_lost(self, tmp_path):
        engine, sessions = await _sqlite_sessions(tmp_path)
        attempts = []

        async def charge(s):
            party = (await s.get(ThirdParty, 1, populate_existing=True))
            attempts.append(party.version)
            if len(attempts) == 1:
                # Another request releases credit between our read and our write
                async with sessions() as other:
                    rival = await other.get(ThirdParty, 1)
                    rival.credit_used = Decimal(str(rival.credit_used)) - Decimal("400.00")
                    await other.commit()
            party.credit_used = Decimal(str(party.credit_used)) + Decimal("250.00")
            await s.flush()
            return party.credit_used

        async with sessions() as db:
            assert await run_in_transaction(db, charge, attempts=2) == Decimal("850.00")

        async with sessions() as check:
            party = await check.get(ThirdParty, 1)
            assert Decimal(str(party.credit_used)) == Decimal("850.00")
            assert party.version == 3
        assert attempts == [1, 2]
        await engine.dispose()
