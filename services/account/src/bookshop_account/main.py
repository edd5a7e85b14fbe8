"""FastAPI 应用入口点。"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from sqlalchemy.orm import Session, sessionmaker

from bookshop_account.api.router import api_router
from bookshop_account.core.config import Settings, get_settings
from bookshop_account.core.security import TokenSessionStore, build_session_store
from bookshop_account.db.base import Base
from bookshop_account.db.session import build_engine, build_session_factory
from bookshop_account.exceptions import register_exception_handlers
from bookshop_account.middlewares import register_middlewares
from bookshop_account.services.bootstrap import seed_default_accounts
from bookshop_account.services.credential_store import SqlCredentialStore
from bookshop_account.services.local_auth import ensure_signing_key
from bookshop_account.services.notifier import Notifier, build_notifier

logger = logging.getLogger(__name__)


def _setup_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _bootstrap(app: FastAPI) -> None:
    """启动期准备：校验签名密钥、建表、初始化默认账号。任何失败都会中止启动。"""
    settings: Settings = app.state.settings
    app.state.signing_key = ensure_signing_key(settings)

    factory: sessionmaker[Session] = app.state.session_factory
    if settings.db_auto_create:
        Base.metadata.create_all(bind=factory.kw["bind"])

    with factory() as db:
        seed_default_accounts(
            SqlCredentialStore(
                db,
                password_hash_iterations=settings.auth_password_hash_iterations,
                token_ttl_seconds=settings.confirmation_token_ttl_seconds,
            ),
            settings,
        )
    logger.info("account service ready env=%s versions=%s", settings.app_env, settings.api_supported_versions)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    _bootstrap(app)
    yield


def create_app(
    *,
    settings: Settings | None = None,
    session_factory: sessionmaker[Session] | None = None,
    notifier: Notifier | None = None,
    session_store: TokenSessionStore | None = None,
) -> FastAPI:
    """创建并配置 FastAPI 应用实例。

    数据库会话工厂、通知器与会话存储均可注入，缺省按配置构造。
    """
    settings = settings or get_settings()
    _setup_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        debug=settings.app_debug,
        lifespan=lifespan,
        description=(
            "书店账号服务接口。\n\n"
            "成功响应统一为：`{request_id, message, data, meta}`；"
            "失败响应统一为：`{request_id, code, message, details}`。\n"
            "接口版本通过 `Api-Version` 请求头选择。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "account", "description": "注册、登录、邮箱确认与本人账号管理。"},
            {"name": "admin", "description": "管理员修改其他账号资料与密码。"},
        ],
    )
    app.state.settings = settings
    app.state.session_factory = session_factory or build_session_factory(build_engine(settings.database_url))
    app.state.notifier = notifier or build_notifier(settings)
    app.state.session_store = session_store or build_session_store(settings)

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
