from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from redis.exceptions import ConnectionError as RedisConnectionError

from bookshop_account.core.security import (
    MemoryTokenSessionStore,
    RedisTokenSessionStore,
    authenticate_bearer,
    extract_bearer_token,
)
from bookshop_account.services.local_auth import issue_access_token
from conftest import TEST_SIGNING_KEY, build_test_settings


def _later(hours: int = 3) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)


class _UnavailableRedis:
    """所有调用都抛出连接错误。"""

    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise RedisConnectionError("redis is down")

        return _fail


def test_memory_store_keeps_one_session_per_account():
    sessions = MemoryTokenSessionStore()
    sessions.activate("acc-1", "jti-1", _later())
    assert sessions.lookup("jti-1") == "acc-1"

    sessions.activate("acc-1", "jti-2", _later())
    assert sessions.lookup("jti-1") is None
    assert sessions.lookup("jti-2") == "acc-1"


def test_memory_store_revoke_and_clear():
    sessions = MemoryTokenSessionStore()
    sessions.activate("acc-1", "jti-1", _later())
    sessions.activate("acc-2", "jti-2", _later())

    assert sessions.revoke("jti-1") is True
    assert sessions.revoke("jti-1") is False
    assert sessions.lookup("jti-1") is None

    sessions.clear_account("acc-2")
    assert sessions.lookup("jti-2") is None


def test_memory_store_checks_expiry_on_read():
    sessions = MemoryTokenSessionStore()
    sessions.activate("acc-1", "jti-1", datetime.now(timezone.utc) - timedelta(seconds=1))
    assert sessions.lookup("jti-1") is None


def test_memory_stores_do_not_share_state():
    first = MemoryTokenSessionStore()
    second = MemoryTokenSessionStore()
    first.activate("acc-1", "jti-1", _later())
    assert second.lookup("jti-1") is None


def test_redis_store_falls_back_to_memory_when_unavailable():
    sessions = RedisTokenSessionStore(_UnavailableRedis(), prefix="test:session:")
    sessions.activate("acc-1", "jti-1", _later())
    assert sessions.lookup("jti-1") == "acc-1"
    assert sessions.revoke("jti-1") is True
    assert sessions.lookup("jti-1") is None


def test_extract_bearer_token_uses_last_token_of_joined_headers():
    assert extract_bearer_token("Bearer first, Bearer second") == "second"
    with pytest.raises(HTTPException) as exc_info:
        extract_bearer_token("Basic abc")
    assert exc_info.value.status_code == 401


def test_authenticate_bearer_requires_live_session():
    settings = build_test_settings()
    issued = issue_access_token("reader", ["user"], settings=settings)
    sessions = MemoryTokenSessionStore()
    key = TEST_SIGNING_KEY.encode("utf-8")

    with pytest.raises(HTTPException) as exc_info:
        authenticate_bearer(f"Bearer {issued.token}", settings=settings, key=key, sessions=sessions)
    assert exc_info.value.status_code == 401

    sessions.activate("acc-1", issued.jti, issued.expires_at)
    session = authenticate_bearer(f"Bearer {issued.token}", settings=settings, key=key, sessions=sessions)
    assert session.account_id == "acc-1"
    assert session.user_name == "reader"
    assert session.roles == ["user"]


def test_authenticate_bearer_rejects_foreign_signature():
    settings = build_test_settings()
    issued = issue_access_token("reader", ["user"], settings=settings)
    sessions = MemoryTokenSessionStore()
    sessions.activate("acc-1", issued.jti, issued.expires_at)

    with pytest.raises(HTTPException):
        authenticate_bearer(
            f"Bearer {issued.token}",
            settings=settings,
            key=b"another-signing-key-0123456789abcdef",
            sessions=sessions,
        )
