"""
Tests for JWT sessions and persisted tokens.
"""
from datetime import timedelta

import pytest
from jose import jwt

from security_api.core.clock import as_utc, utcnow
from security_api.core.config import parse_duration, settings
from security_api.core.security import create_access_token, decode_token
from security_api.services.session_service import SessionService
from security_api.services.user_service import UserService


async def _user(db):
    return await UserService(db).create_user(
        username="alice",
        password="alice-password",
        display_name="Alice Example",
        email="alice@example.com",
    )


class TestJwt:

    def test_round_trip_preserves_claims(self):
        token, expires_at = create_access_token(42, "alice")
        claims = SessionService.verify(token)

        assert claims.user_id == 42
        assert claims.username == "alice"
        assert abs((claims.expires_at - expires_at).total_seconds()) < 1

    def test_lifetime_follows_configuration(self):
        before = utcnow()
        _, expires_at = create_access_token(1, "alice")
        expected = before + settings.jwt_lifetime
        assert abs((expires_at - expected).total_seconds()) < 5

    def test_tampered_token_is_rejected(self):
        token, _ = create_access_token(1, "alice")
        other, _ = create_access_token(2, "mallory")
        header, payload, _ = token.split(".")
        spliced = ".".join([header, payload, other.split(".")[2]])
        forged = jwt.encode({"userId": 1, "username": "alice", "exp": 9999999999}, "another-secret", algorithm="HS256")

        assert SessionService.verify(spliced) is None
        assert SessionService.verify(forged) is None
        assert SessionService.verify("not-a-jwt") is None

    def test_expired_token_is_rejected(self):
        token, _ = create_access_token(1, "alice", expires_delta=timedelta(seconds=-10))
        assert decode_token(token) is None
        assert SessionService.verify(token) is None

    def test_token_without_user_claims_is_rejected(self):
        token = jwt.encode(
            {"sub": "1", "exp": int((utcnow() + timedelta(hours=1)).timestamp())},
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )
        assert decode_token(token) is None

    def test_refresh_issues_new_expiry(self):
        token, _ = create_access_token(7, "bob")
        claims = SessionService.verify(token)
        refreshed, expires_at = SessionService.refresh(claims)

        again = SessionService.verify(refreshed)
        assert again.user_id == 7
        assert expires_at >= claims.expires_at


class TestParseDuration:

    @pytest.mark.parametrize(
        "value,seconds",
        [("24h", 86400), ("30m", 1800), ("7d", 604800), ("45s", 45), ("3600", 3600)],
    )
    def test_accepted_forms(self, value, seconds):
        assert parse_duration(value) == timedelta(seconds=seconds)

    @pytest.mark.parametrize("value", ["", "abc", "10w", "-5m", "0"])
    def test_rejected_forms(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestTokenRecords:

    @pytest.mark.asyncio
    async def test_issue_persists_a_token_row(self, db_session):
        user = await _user(db_session)
        service = SessionService(db_session)

        session = await service.issue(user.id, user.username)

        assert SessionService.verify(session.jwt).user_id == user.id
        tokens = await service.get_tokens_by_user(user.id)
        assert [t.id for t in tokens] == [session.token.id]
        assert await service.is_valid(session.token.value) is True

    @pytest.mark.asyncio
    async def test_sweep_deletes_only_expired_tokens(self, db_session):
        user = await _user(db_session)
        service = SessionService(db_session)
        now = utcnow()

        await service.create_token(user.id, expires_at=now - timedelta(hours=2))
        await service.create_token(user.id, expires_at=now - timedelta(minutes=1))
        live = await service.create_token(user.id, expires_at=now + timedelta(hours=1))

        assert await service.sweep_expired(now) == 2
        remaining = await service.get_tokens_by_user(user.id)
        assert [t.id for t in remaining] == [live.id]
        assert await service.sweep_expired(now) == 0

    @pytest.mark.asyncio
    async def test_expired_token_is_not_valid(self, db_session):
        user = await _user(db_session)
        service = SessionService(db_session)
        token = await service.create_token(user.id, expires_at=utcnow() - timedelta(seconds=1))

        assert await service.is_valid(token.value) is False
        assert await service.is_valid("unknown-token-value") is False
        assert await service.mark_validated(token.value, validated_by="tests") is None

    @pytest.mark.asyncio
    async def test_mark_validated(self, db_session):
        user = await _user(db_session)
        service = SessionService(db_session)
        token = await service.create_token(user.id)

        validated = await service.mark_validated(token.value, validated_by="tests")

        assert validated.validated is True
        assert validated.validated_at is not None
        assert validated.updated_by == "tests"

    @pytest.mark.asyncio
    async def test_tokens_listed_newest_expiry_first(self, db_session):
        user = await _user(db_session)
        service = SessionService(db_session)
        now = utcnow()
        early = await service.create_token(user.id, expires_at=now + timedelta(hours=1))
        late = await service.create_token(user.id, expires_at=now + timedelta(hours=5))

        tokens = await service.get_tokens_by_user(user.id)

        assert [t.id for t in tokens] == [late.id, early.id]
        assert as_utc(tokens[0].expires_at) > as_utc(tokens[1].expires_at)

    @pytest.mark.asyncio
    async def test_update_and_delete(self, db_session):
        user = await _user(db_session)
        service = SessionService(db_session)
        token = await service.create_token(user.id)
        new_expiry = utcnow() + timedelta(days=3)

        updated = await service.update_token(token.id, {"expires_at": new_expiry}, updated_by="admin")
        assert as_utc(updated.expires_at) == new_expiry

        assert await service.delete_token(token.id) is True
        assert await service.delete_token(token.id) is False
        assert await service.update_token(token.id, {"validated": True}, updated_by="admin") is None
