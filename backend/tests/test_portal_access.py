"""Tests for client portal magic-link tokens."""

import pytest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from tally.services.errors import ExpiredOrInvalidToken
from tally.services.portal_access import (
    hash_token,
    issue_access_token,
    request_access_link,
    resolve_portal_client,
    token_is_valid,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _db_returning(party):
    result = MagicMock()
    result.scalar_one_or_none.return_value = party
    db = AsyncMock()
    db.execute.return_value = result
    return db


class TestTokens:

    def test_hash_is_stable_sha256_hex(self):
        digest = hash_token("abc")
        assert digest == hash_token("abc")
        assert digest != hash_token("abd")
        assert len(digest) == 64
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_validity_window(self):
        assert token_is_valid(NOW + timedelta(seconds=1), NOW)
        assert not token_is_valid(NOW, NOW)
        assert not token_is_valid(NOW - timedelta(hours=1), NOW)
        assert not token_is_valid(None, NOW)

    def test_issue_stores_only_the_hash(self):
        party = SimpleNamespace(access_token_hash=None, token_expires_at=None)
        token = issue_access_token(party, now=NOW, hours=48)
        assert token
        assert party.access_token_hash == hash_token(token)
        assert party.access_token_hash != token
        assert party.token_expires_at == NOW + timedelta(hours=48)

    def test_reissue_replaces_previous_token(self):
        party = SimpleNamespace(access_token_hash=None, token_expires_at=None)
        first = issue_access_token(party, now=NOW, hours=48)
        second = issue_access_token(party, now=NOW, hours=48)
        assert first != second
        assert party.access_token_hash == hash_token(second)


class TestRequestAccessLink:

    @pytest.mark.asyncio
    async def test_unknown_document_returns_none(self):
        db = _db_returning(None)
        assert await request_access_link(db, "acme", "99999999", now=NOW, hours=48) is None
        db.flush.assert_not_called()

    @pytest.mark.asyncio
    async def test_known_client_gets_token(self):
        party = SimpleNamespace(id=4, access_token_hash=None, token_expires_at=None)
        db = _db_returning(party)
        token = await request_access_link(db, "acme", "20304050", now=NOW, hours=24)
        assert party.access_token_hash == hash_token(token)
        assert party.token_expires_at == NOW + timedelta(hours=24)
        db.flush.assert_awaited()


class TestResolvePortalClient:

    @pytest.mark.asyncio
    async def test_empty_token_rejected(self):
        db = AsyncMock()
        with pytest.raises(ExpiredOrInvalidToken):
            await resolve_portal_client(db, "acme", "", now=NOW)
        db.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_token_rejected(self):
        with pytest.raises(ExpiredOrInvalidToken):
            await resolve_portal_client(_db_returning(None), "acme", "nope", now=NOW)

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self):
        party = SimpleNamespace(id=4, token_expires_at=NOW - timedelta(minutes=1))
        with pytest.raises(ExpiredOrInvalidToken, match="expired"):
            await resolve_portal_client(_db_returning(party), "acme", "tok", now=NOW)

    @pytest.mark.asyncio
    async def test_valid_token_resolves_client(self):
        party = SimpleNamespace(id=4, token_expires_at=NOW + timedelta(hours=1))
        assert await resolve_portal_client(_db_returning(party), "acme", "tok", now=NOW) is party
