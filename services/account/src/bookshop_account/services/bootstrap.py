"""默认账号初始化。"""

import logging

from bookshop_account.core.config import Settings
from bookshop_account.models.account import Account
from bookshop_account.models.enums import AccountRole
from bookshop_account.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_LOGIN = "admin"
DEFAULT_USER_LOGIN = "user"


class BootstrapError(RuntimeError):
    """默认账号无法初始化，属于启动期致命错误。"""


def _ensure_account(
    store: CredentialStore,
    *,
    user_name: str,
    email: str,
    password: str,
    role: AccountRole,
) -> Account:
    account = store.find_by_email(email) or store.find_by_name(user_name)
    if account is None:
        account = store.create(user_name, email, password, email_confirmed=True, roles=[role])
        logger.info("default account created user=%s role=%s", user_name, role)
    if not store.is_in_role(account, role):
        store.add_to_role(account, role)
    return account


def seed_default_accounts(store: CredentialStore, settings: Settings) -> list[Account]:
    """确保默认管理员与默认普通账号存在（幂等）。"""
    if settings.default_accounts_password is None:
        raise BootstrapError("BS_DEFAULT_ACCOUNTS_PASSWORD is not configured")
    password = settings.default_accounts_password.get_secret_value()
    return [
        _ensure_account(
            store,
            user_name=DEFAULT_ADMIN_LOGIN,
            email=settings.default_admin_email,
            password=password,
            role=AccountRole.ADMIN,
        ),
        _ensure_account(
            store,
            user_name=DEFAULT_USER_LOGIN,
            email=settings.default_user_email,
            password=password,
            role=AccountRole.USER,
        ),
    ]
