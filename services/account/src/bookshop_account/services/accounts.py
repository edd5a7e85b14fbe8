"""账号解析与凭据校验。"""

from bookshop_account.core.config import Settings
from bookshop_account.models.account import Account
from bookshop_account.services.credential_store import CredentialStore, normalize_identity
from bookshop_account.services.validation import is_valid_email


def resolve_account(store: CredentialStore, identifier: str | None) -> Account | None:
    """按“先邮箱、后登录名”的顺序解析账号。"""
    if not identifier or not identifier.strip():
        return None
    account = None
    if is_valid_email(identifier):
        account = store.find_by_email(identifier)
    if account is None:
        # 登录名允许包含 @，形似邮箱时也要回退到登录名查找。
        account = store.find_by_name(identifier)
    return account


def authenticate(store: CredentialStore, identifier: str | None, password: str | None) -> Account | None:
    """解析账号并校验口令。

    账号不存在与口令错误都返回 None，调用方据此给出同一个 401，避免账号枚举。
    """
    account = resolve_account(store, identifier)
    if account is None or not store.check_password(account, password or ""):
        return None
    return account


def is_default_account_email(settings: Settings, email: str | None) -> bool:
    """是否为系统预置的默认账号邮箱（不发送真实邮件）。"""
    if not email:
        return False
    return normalize_identity(email) in settings.default_account_emails


def is_default_account(settings: Settings, account: Account) -> bool:
    return is_default_account_email(settings, account.email)
