"""请求上下文依赖。

职责:
1. 为每个请求构造凭据存储（绑定请求级数据库会话）。
2. 暴露进程级共享对象：配置、通知器、会话存储、签名密钥。
3. 解析 Bearer 令牌并确认服务端会话仍然有效。
"""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from bookshop_account.core.config import Settings
from bookshop_account.core.security import AuthenticatedSession, TokenSessionStore, authenticate_bearer
from bookshop_account.db.session import get_db
from bookshop_account.services.credential_store import CredentialStore, SqlCredentialStore
from bookshop_account.services.notifier import Notifier

bearer_scheme = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_session_store(request: Request) -> TokenSessionStore:
    return request.app.state.session_store


def get_credential_store(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> CredentialStore:
    """凭据存储与请求共享同一个数据库会话。"""
    return SqlCredentialStore(
        db,
        password_hash_iterations=settings.auth_password_hash_iterations,
        token_ttl_seconds=settings.confirmation_token_ttl_seconds,
    )


def get_current_session(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_app_settings),
    sessions: TokenSessionStore = Depends(get_session_store),
) -> AuthenticatedSession:
    """提取并校验当前请求的 Bearer 会话。"""
    authorization = None
    if credentials is not None and credentials.credentials:
        authorization = f"{credentials.scheme} {credentials.credentials}"
    return authenticate_bearer(
        authorization,
        settings=settings,
        key=request.app.state.signing_key,
        sessions=sessions,
    )
