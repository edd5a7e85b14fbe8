"""本地账号认证服务：口令哈希与访问令牌签发。"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt

from bookshop_account.core.config import Settings, get_settings

# 令牌有效期固定为 3 小时，不随请求变化。
ACCESS_TOKEN_LIFETIME = timedelta(hours=3)
# HS256 要求密钥不少于 256 位。
MIN_SIGNING_KEY_BYTES = 32


class SigningKeyError(RuntimeError):
    """签名密钥缺失或不合规，属于启动期致命错误。"""


class TokenIssueError(Exception):
    """单次请求签发令牌失败。"""


@dataclass(frozen=True)
class IssuedToken:
    """已签发的访问令牌。"""

    token: str
    jti: str
    issued_at: datetime
    expires_at: datetime

    @property
    def expires_ts(self) -> int:
        return int(self.expires_at.timestamp())


def hash_password(password: str, *, iterations: int | None = None) -> str:
    """使用 PBKDF2-SHA256 生成口令哈希。"""
    if iterations is None:
        iterations = get_settings().auth_password_hash_iterations
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt,
        iterations,
    )
    salt_b64 = base64.b64encode(salt).decode("ascii")
    digest_b64 = base64.b64encode(digest).decode("ascii")
    return f"pbkdf2_sha256${iterations}${salt_b64}${digest_b64}"


def verify_password(password: str, password_hash: str) -> bool:
    """校验口令是否匹配。"""
    try:
        algorithm, iterations_text, salt_b64, expected_digest_b64 = password_hash.split("$", 3)
        if algorithm != "pbkdf2_sha256":
            return False
        iterations = int(iterations_text)
        salt = base64.b64decode(salt_b64.encode("ascii"))
        expected_digest = base64.b64decode(expected_digest_b64.encode("ascii"))
    except (ValueError, TypeError, binascii.Error):
        return False

    actual_digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt,
        iterations,
    )
    return hmac.compare_digest(actual_digest, expected_digest)


def ensure_signing_key(settings: Settings) -> bytes:
    """读取并校验签名密钥，启动时调用。"""
    if settings.auth_jwt_secret is None:
        raise SigningKeyError("BS_AUTH_JWT_SECRET is not configured")
    key = settings.auth_jwt_secret.get_secret_value().encode("utf-8")
    if len(key) < MIN_SIGNING_KEY_BYTES:
        raise SigningKeyError(f"BS_AUTH_JWT_SECRET must be at least {MIN_SIGNING_KEY_BYTES} bytes")
    return key


def build_claims(user_name: str, roles: Iterable[str], *, jti: str | None = None) -> dict[str, object]:
    """构造声明集合：登录名、唯一令牌 ID 与全部角色。"""
    return {
        "name": user_name,
        "jti": jti or str(uuid4()),
        "role": sorted(set(roles)),
    }


def issue_access_token(
    user_name: str,
    roles: Iterable[str],
    *,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> IssuedToken:
    """签发访问令牌。"""
    settings = settings or get_settings()
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + ACCESS_TOKEN_LIFETIME

    claims = build_claims(user_name, roles)
    claims["iat"] = int(issued_at.timestamp())
    claims["exp"] = int(expires_at.timestamp())
    if settings.auth_jwt_issuer:
        claims["iss"] = settings.auth_jwt_issuer
    if settings.auth_jwt_audience:
        claims["aud"] = settings.auth_jwt_audience

    try:
        key = ensure_signing_key(settings)
        token = jwt.encode(claims, key, algorithm=settings.auth_jwt_algorithm)
    except (SigningKeyError, jwt.PyJWTError, NotImplementedError, TypeError, ValueError) as exc:
        raise TokenIssueError(str(exc)) from exc
    return IssuedToken(token=token, jti=str(claims["jti"]), issued_at=issued_at, expires_at=expires_at)
