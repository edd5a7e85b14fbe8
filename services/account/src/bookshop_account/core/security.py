"""访问令牌解析与服务端会话控制。

每个账号同一时间只保留一个有效会话（以令牌 jti 标识）：再次登录会替换旧会话，
口令、登录名、邮箱变更或账号注销会清理会话。会话过期时间在每次读取时校验。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Protocol

import jwt
from jwt import InvalidTokenError
from redis import Redis
from redis.exceptions import RedisError

from bookshop_account.core.config import Settings
from bookshop_account.exceptions import unauthorized

logger = logging.getLogger(__name__)

MISSING_TOKEN_MESSAGE = "Authentication is required to access this resource."
INVALID_TOKEN_MESSAGE = "The access token is invalid or has expired."


@dataclass
class AuthenticatedSession:
    """已通过校验的 Bearer 会话。"""

    # 令牌唯一 ID。
    jti: str
    # 会话所属账号 ID。
    account_id: str
    # 令牌中的登录名声明。
    user_name: str
    # 令牌中的角色声明。
    roles: list[str]
    # 令牌过期时间。
    expires_at: datetime


class TokenSessionStore(Protocol):
    """服务端会话存储接口。"""

    def activate(self, account_id: str, jti: str, expires_at: datetime) -> None: ...

    def lookup(self, jti: str) -> str | None: ...

    def revoke(self, jti: str) -> bool: ...

    def clear_account(self, account_id: str) -> None: ...


def _ts(value: datetime) -> int:
    return int(value.timestamp())


def _now_ts() -> int:
    return int(datetime.now(timezone.utc).timestamp())


class MemoryTokenSessionStore:
    """进程内会话存储，未配置 Redis 或 Redis 不可用时使用。"""

    def __init__(self) -> None:
        # account_id -> (jti, exp_ts)
        self._by_account: dict[str, tuple[str, int]] = {}
        # jti -> (account_id, exp_ts)
        self._by_jti: dict[str, tuple[str, int]] = {}
        self._lock = Lock()

    def _cleanup(self, now_ts: int) -> None:
        for key in [key for key, item in self._by_account.items() if item[1] <= now_ts]:
            self._by_account.pop(key, None)
        for key in [key for key, item in self._by_jti.items() if item[1] <= now_ts]:
            self._by_jti.pop(key, None)

    def activate(self, account_id: str, jti: str, expires_at: datetime) -> None:
        exp_ts = _ts(expires_at)
        with self._lock:
            self._cleanup(_now_ts())
            previous = self._by_account.get(account_id)
            if previous and previous[0] != jti:
                self._by_jti.pop(previous[0], None)
            self._by_account[account_id] = (jti, exp_ts)
            self._by_jti[jti] = (account_id, exp_ts)

    def lookup(self, jti: str) -> str | None:
        with self._lock:
            self._cleanup(_now_ts())
            session = self._by_jti.get(jti)
            if session is None:
                return None
            current = self._by_account.get(session[0])
            if current is None or current[0] != jti:
                return None
            return session[0]

    def revoke(self, jti: str) -> bool:
        with self._lock:
            session = self._by_jti.pop(jti, None)
            if session is None:
                return False
            current = self._by_account.get(session[0])
            if current and current[0] == jti:
                self._by_account.pop(session[0], None)
            return True

    def clear_account(self, account_id: str) -> None:
        with self._lock:
            current = self._by_account.pop(account_id, None)
            if current:
                self._by_jti.pop(current[0], None)


class RedisTokenSessionStore:
    """Redis 会话存储，键带 TTL；Redis 异常时回退到进程内存储。"""

    def __init__(self, client: Redis, *, prefix: str, fallback: MemoryTokenSessionStore | None = None) -> None:
        self._client = client
        self._prefix = prefix
        self._fallback = fallback or MemoryTokenSessionStore()

    def _account_key(self, account_id: str) -> str:
        return f"{self._prefix}account:{account_id}"

    def _jti_key(self, jti: str) -> str:
        return f"{self._prefix}jti:{jti}"

    def activate(self, account_id: str, jti: str, expires_at: datetime) -> None:
        ttl = max(1, _ts(expires_at) - _now_ts())
        try:
            account_key = self._account_key(account_id)
            previous_jti = self._client.get(account_key)
            pipe = self._client.pipeline()
            pipe.setex(account_key, ttl, jti)
            pipe.setex(self._jti_key(jti), ttl, account_id)
            if previous_jti and previous_jti != jti:
                pipe.delete(self._jti_key(previous_jti))
            pipe.execute()
            return
        except RedisError:
            logger.warning("redis unavailable, session activation falls back to memory account_id=%s", account_id)
        self._fallback.activate(account_id, jti, expires_at)

    def lookup(self, jti: str) -> str | None:
        try:
            account_id = self._client.get(self._jti_key(jti))
            if not account_id:
                return None
            if self._client.get(self._account_key(account_id)) != jti:
                return None
            return account_id
        except RedisError:
            logger.warning("redis unavailable, session lookup falls back to memory")
        return self._fallback.lookup(jti)

    def revoke(self, jti: str) -> bool:
        try:
            account_id = self._client.get(self._jti_key(jti))
            if not account_id:
                return self._fallback.revoke(jti)
            account_key = self._account_key(account_id)
            current_jti = self._client.get(account_key)
            pipe = self._client.pipeline()
            pipe.delete(self._jti_key(jti))
            if current_jti == jti:
                pipe.delete(account_key)
            pipe.execute()
            return True
        except RedisError:
            logger.warning("redis unavailable, session revoke falls back to memory")
        return self._fallback.revoke(jti)

    def clear_account(self, account_id: str) -> None:
        try:
            account_key = self._account_key(account_id)
            current_jti = self._client.get(account_key)
            pipe = self._client.pipeline()
            pipe.delete(account_key)
            if current_jti:
                pipe.delete(self._jti_key(current_jti))
            pipe.execute()
        except RedisError:
            logger.warning("redis unavailable, session clear falls back to memory account_id=%s", account_id)
        self._fallback.clear_account(account_id)


def build_session_store(settings: Settings) -> TokenSessionStore:
    """根据配置构造会话存储。"""
    if not settings.redis_url:
        return MemoryTokenSessionStore()
    client = Redis.from_url(settings.redis_url, decode_responses=True)
    return RedisTokenSessionStore(client, prefix=settings.auth_token_session_prefix)


def extract_bearer_token(authorization: str | None) -> str:
    """从 Authorization 头中提取 Bearer token，兼容重复头被逗号拼接的场景。"""
    if not authorization:
        raise unauthorized(MISSING_TOKEN_MESSAGE)
    tokens = [token.strip() for token in re.findall(r"Bearer\s+([^,\s]+)", authorization, flags=re.IGNORECASE)]
    tokens = [token for token in tokens if token]
    if not tokens:
        raise unauthorized(MISSING_TOKEN_MESSAGE)
    return tokens[-1]


def decode_access_token(token: str, settings: Settings, key: bytes) -> dict[str, Any]:
    """按配置解码并校验令牌签名、过期时间、签发方与受众。"""
    try:
        return jwt.decode(
            token,
            key=key,
            algorithms=[settings.auth_jwt_algorithm],
            issuer=settings.auth_jwt_issuer,
            audience=settings.auth_jwt_audience,
            options={"verify_aud": bool(settings.auth_jwt_audience), "require": ["exp", "jti"]},
        )
    except InvalidTokenError as exc:
        raise unauthorized(INVALID_TOKEN_MESSAGE) from exc


def authenticate_bearer(
    authorization: str | None,
    *,
    settings: Settings,
    key: bytes,
    sessions: TokenSessionStore,
) -> AuthenticatedSession:
    """校验 Bearer 令牌，并确认其仍是账号的当前会话。"""
    claims = decode_access_token(extract_bearer_token(authorization), settings, key)
    jti = claims.get("jti")
    if not isinstance(jti, str) or not jti:
        raise unauthorized(INVALID_TOKEN_MESSAGE)
    account_id = sessions.lookup(jti)
    if account_id is None:
        raise unauthorized("The session has ended. Please sign in again.")

    roles = claims.get("role") or []
    if isinstance(roles, str):
        roles = [roles]
    return AuthenticatedSession(
        jti=jti,
        account_id=account_id,
        user_name=str(claims.get("name") or ""),
        roles=[str(role) for role in roles],
        expires_at=datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc),
    )
