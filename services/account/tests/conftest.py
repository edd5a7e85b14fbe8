import os
import re
from collections.abc import Generator

# 模块级 app 会在导入时创建，测试环境避免连接真实数据库。
os.environ.setdefault("BS_DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from bookshop_account.core.config import Settings
from bookshop_account.core.security import MemoryTokenSessionStore
from bookshop_account.db.base import Base
from bookshop_account.db.session import build_engine, build_session_factory
from bookshop_account.main import create_app
from bookshop_account.services.credential_store import SqlCredentialStore
from bookshop_account.services.notifier import MailMessage, NotificationError

TEST_SIGNING_KEY = "unit-test-signing-key-0123456789abcdef"
TEST_ISSUER = "bookshop-account-tests"
TEST_AUDIENCE = "bookshop-clients"
DEFAULT_PASSWORD = "Default1@pass"
USER_PASSWORD = "Aa1@aaaa"
HASH_ITERATIONS = 1000

_LINK_PATTERN = re.compile(r"https?://\S+/account/confirmemail\?\S+")


class RecordingNotifier:
    """记录所有待发送邮件，不做真实投递。"""

    def __init__(self) -> None:
        self.messages: list[MailMessage] = []

    def send(self, message: MailMessage) -> None:
        self.messages.append(message)

    def sent_to(self, recipient: str) -> list[MailMessage]:
        return [message for message in self.messages if message.recipient == recipient]

    def confirmation_link(self, recipient: str) -> str:
        """返回最近一封确认邮件中的确认链接。"""
        for message in reversed(self.sent_to(recipient)):
            match = _LINK_PATTERN.search(message.text_body or "")
            if match:
                return match.group(0)
        raise AssertionError(f"no confirmation link sent to {recipient}")


class FailingNotifier:
    """模拟邮件服务不可用。"""

    def __init__(self) -> None:
        self.attempts = 0

    def send(self, message: MailMessage) -> None:
        self.attempts += 1
        raise NotificationError(f"smtp unavailable for {message.recipient}")


def build_test_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite+pysqlite:///:memory:",
        "auth_jwt_secret": TEST_SIGNING_KEY,
        "auth_jwt_issuer": TEST_ISSUER,
        "auth_jwt_audience": TEST_AUDIENCE,
        "auth_password_hash_iterations": HASH_ITERATIONS,
        "default_accounts_password": DEFAULT_PASSWORD,
        "redis_url": None,
        "auth_api_key": None,
        "smtp_host": None,
        "public_base_url": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return build_test_settings()


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session


@pytest.fixture
def store(db: Session) -> SqlCredentialStore:
    return SqlCredentialStore(db, password_hash_iterations=HASH_ITERATIONS, token_ttl_seconds=3600)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def session_store() -> MemoryTokenSessionStore:
    return MemoryTokenSessionStore()


@pytest.fixture
def client(settings, session_factory, notifier, session_store) -> Generator[TestClient, None, None]:
    app = create_app(
        settings=settings,
        session_factory=session_factory,
        notifier=notifier,
        session_store=session_store,
    )
    # 进入上下文时执行启动流程（校验密钥、初始化默认账号）。
    with TestClient(app) as test_client:
        yield test_client


def registration_payload(login: str, email: str, password: str = USER_PASSWORD) -> dict[str, str]:
    return {
        "usernameOrEmail": login,
        "emailAddress": email,
        "confirmEmailAddress": email,
        "password": password,
        "confirmPassword": password,
    }


def register_and_confirm(
    client: TestClient,
    notifier: RecordingNotifier,
    login: str,
    email: str,
    password: str = USER_PASSWORD,
    *,
    path: str = "/new",
) -> dict:
    resp = client.post(path, json=registration_payload(login, email, password))
    assert resp.status_code == 200, resp.text
    confirm = client.get(notifier.confirmation_link(email))
    assert confirm.status_code == 200, confirm.text
    return resp.json()["data"]


def login(client: TestClient, identifier: str, password: str = USER_PASSWORD):
    return client.post("/account/login", json={"usernameOrEmail": identifier, "password": password})
