"""账号操作的前置校验。

统一封装格式校验、凭据校验、管理员身份与目标账号解析，
避免各路由重复拼装相同的拒绝逻辑导致文案或状态码不一致。
"""

from collections.abc import Iterator
from contextlib import contextmanager
import logging

from bookshop_account.core.config import Settings
from bookshop_account.exceptions import bad_request, not_found, unauthorized
from bookshop_account.models.account import Account
from bookshop_account.models.enums import AccountRole
from bookshop_account.services.accounts import authenticate, is_default_account, resolve_account
from bookshop_account.services.credential_store import CredentialStore, CredentialStoreError, normalize_identity
from bookshop_account.services.validation import ValidationResult

logger = logging.getLogger(__name__)

VALIDATION_FAILED_MESSAGE = "Validation failed for the account model."
VALIDATION_HELP = "Please ensure all required fields are filled out correctly."
ACCOUNT_NOT_FOUND_MESSAGE = "Account was not found."


def ensure_valid(result: ValidationResult) -> None:
    """格式或交叉字段校验失败时返回 400。"""
    if result:
        return
    logger.info("request validation failed error=%s", result.error)
    raise bad_request(VALIDATION_FAILED_MESSAGE, code="VALIDATION_ERROR", error=result.error, help=VALIDATION_HELP)


def require_credentials(
    store: CredentialStore,
    identifier: str | None,
    password: str | None,
    *,
    message: str,
    require_confirmed: bool = True,
) -> Account:
    """校验凭据；账号不存在、口令错误与（按需）邮箱未确认都返回同一个 401。"""
    account = authenticate(store, identifier, password)
    if account is None or (require_confirmed and not account.email_confirmed):
        logger.warning("unauthorized account access identifier=%s", identifier)
        raise unauthorized(message)
    return account


def require_admin(store: CredentialStore, account: Account, *, message: str) -> None:
    """操作者必须持有管理员角色。"""
    if not store.is_in_role(account, AccountRole.ADMIN):
        logger.warning("admin role required user=%s", account.user_name)
        raise unauthorized(message)


def require_target(store: CredentialStore, identifier: str | None) -> Account:
    """按“先邮箱、后登录名”解析管理员操作的目标账号。"""
    target = resolve_account(store, identifier)
    if target is None:
        logger.info("target account not found identifier=%s", identifier)
        raise not_found(ACCOUNT_NOT_FOUND_MESSAGE)
    return target


def _supplied(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


def ensure_identity_change_allowed(
    store: CredentialStore,
    settings: Settings,
    account: Account,
    *,
    updated_login: str | None,
    updated_email: str | None,
) -> tuple[str | None, str | None]:
    """按账号实际值校验登录名/邮箱变更，返回需要写入的新值。"""
    login = _supplied(updated_login)
    email = _supplied(updated_email)

    if login is not None and normalize_identity(login) == account.normalized_user_name:
        raise bad_request(
            VALIDATION_FAILED_MESSAGE,
            code="VALIDATION_ERROR",
            error="The updated login should not match the current login.",
            help=VALIDATION_HELP,
        )
    if email is not None and normalize_identity(email) == account.normalized_email:
        raise bad_request(
            VALIDATION_FAILED_MESSAGE,
            code="VALIDATION_ERROR",
            error="The updated email should not match the current email.",
            help=VALIDATION_HELP,
        )
    if email is not None and is_default_account(settings, account):
        raise bad_request(
            "The email of a default API account cannot be changed.",
            code="ACCOUNT_CONFLICT",
            reason="Default API accounts keep their configured email addresses.",
        )

    # 新值按登录时的解析顺序检查，不能指向其他账号。
    if login is not None:
        owner = resolve_account(store, login)
        if owner is not None and owner.id != account.id:
            raise bad_request(
                "An account with the provided username already exists.",
                code="DUPLICATE_ACCOUNT",
                reason="The chosen username is already taken by another user.",
            )
    if email is not None:
        owner = resolve_account(store, email)
        if owner is not None and owner.id != account.id:
            raise bad_request(
                "An account with the provided email address already exists.",
                code="DUPLICATE_ACCOUNT",
                reason="The email address is already associated with another account.",
            )
    return login, email


@contextmanager
def store_failure(message: str) -> Iterator[None]:
    """存储层变更失败：完整原因写日志，对外只返回通用文案。"""
    try:
        yield
    except CredentialStoreError:
        logger.exception("credential store mutation failed")
        raise bad_request(message, code="ACCOUNT_STORE_ERROR") from None
