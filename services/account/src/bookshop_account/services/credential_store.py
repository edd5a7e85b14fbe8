"""凭据存储：账号、口令哈希、角色与一次性令牌的持久化。

账号流程只依赖 `CredentialStore` 协议；`SqlCredentialStore` 是基于 SQLAlchemy 的实现。
唯一性（登录名、邮箱）由数据库唯一约束保证，“先查重后创建”之间的并发竞争
会在提交时以 `CredentialStoreError` 的形式暴露给调用方。
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Protocol
from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bookshop_account.models.account import Account, AccountRoleMembership, AccountToken
from bookshop_account.models.enums import TokenPurpose
from bookshop_account.services.local_auth import hash_password, verify_password


class CredentialStoreError(Exception):
    """存储层变更失败，详细原因只写日志，不返回给调用方。"""


class CredentialStore(Protocol):
    """账号流程所需的凭据存储操作。"""

    def create(
        self,
        user_name: str,
        email: str,
        password: str,
        *,
        email_confirmed: bool = False,
        roles: Iterable[str] = (),
    ) -> Account: ...

    def find_by_email(self, email: str) -> Account | None: ...

    def find_by_name(self, user_name: str) -> Account | None: ...

    def find_by_id(self, account_id: str | UUID) -> Account | None: ...

    def check_password(self, account: Account, password: str) -> bool: ...

    def change_password(self, account: Account, current_password: str, new_password: str) -> None: ...

    def generate_password_reset_token(self, account: Account) -> str: ...

    def reset_password(self, account: Account, token: str, new_password: str) -> bool: ...

    def update(self, account: Account, *, user_name: str | None = None, email: str | None = None) -> Account: ...

    def delete(self, account: Account) -> None: ...

    def generate_email_confirmation_token(self, account: Account) -> str: ...

    def confirm_email(self, account: Account, token: str) -> bool: ...

    def get_roles(self, account: Account) -> list[str]: ...

    def add_to_role(self, account: Account, role: str) -> None: ...

    def is_in_role(self, account: Account, role: str) -> bool: ...


def normalize_identity(value: str) -> str:
    """标准化登录名/邮箱（去空格 + 小写）。"""
    return value.strip().lower()


def _new_security_stamp() -> str:
    return secrets.token_hex(16)


def _digest_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # SQLite 读回的时间不带时区。
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlCredentialStore:
    """基于 SQLAlchemy 会话的凭据存储实现。

    每个变更操作自行提交；失败时回滚并抛出 `CredentialStoreError`。
    """

    def __init__(
        self,
        db: Session,
        *,
        password_hash_iterations: int = 390000,
        token_ttl_seconds: int = 86400,
    ) -> None:
        self._db = db
        self._iterations = password_hash_iterations
        self._token_ttl = timedelta(seconds=token_ttl_seconds)

    def _commit(self, action: str) -> None:
        try:
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise CredentialStoreError(f"{action} failed: {exc}") from exc

    # 查询

    def find_by_email(self, email: str) -> Account | None:
        if not email or not email.strip():
            return None
        stmt = select(Account).where(Account.normalized_email == normalize_identity(email))
        return self._db.execute(stmt).scalar_one_or_none()

    def find_by_name(self, user_name: str) -> Account | None:
        if not user_name or not user_name.strip():
            return None
        stmt = select(Account).where(Account.normalized_user_name == normalize_identity(user_name))
        return self._db.execute(stmt).scalar_one_or_none()

    def find_by_id(self, account_id: str | UUID) -> Account | None:
        if isinstance(account_id, str):
            try:
                account_id = UUID(account_id)
            except ValueError:
                return None
        return self._db.get(Account, account_id)

    # 账号生命周期

    def create(
        self,
        user_name: str,
        email: str,
        password: str,
        *,
        email_confirmed: bool = False,
        roles: Iterable[str] = (),
    ) -> Account:
        """创建账号并分配初始角色；账号与角色在同一事务中提交。"""
        account = Account(
            id=uuid4(),
            user_name=user_name.strip(),
            normalized_user_name=normalize_identity(user_name),
            email=email.strip(),
            normalized_email=normalize_identity(email),
            password_hash=hash_password(password, iterations=self._iterations),
            email_confirmed=email_confirmed,
            security_stamp=_new_security_stamp(),
        )
        self._db.add(account)
        for role in dict.fromkeys(map(str, roles)):
            self._db.add(AccountRoleMembership(account_id=account.id, role=role))
        self._commit("create account")
        return account

    def update(self, account: Account, *, user_name: str | None = None, email: str | None = None) -> Account:
        """更新登录名和/或邮箱；邮箱变化时重置确认状态。"""
        changed = False
        if user_name is not None and normalize_identity(user_name) != account.normalized_user_name:
            account.user_name = user_name.strip()
            account.normalized_user_name = normalize_identity(user_name)
            changed = True
        if email is not None and normalize_identity(email) != account.normalized_email:
            account.email = email.strip()
            account.normalized_email = normalize_identity(email)
            account.email_confirmed = False
            changed = True
        if changed:
            account.security_stamp = _new_security_stamp()
            self._commit("update account")
        return account

    def delete(self, account: Account) -> None:
        # 无数据库外键，关联数据需显式清理。
        self._db.execute(delete(AccountRoleMembership).where(AccountRoleMembership.account_id == account.id))
        self._db.execute(delete(AccountToken).where(AccountToken.account_id == account.id))
        self._db.delete(account)
        self._commit("delete account")

    # 口令

    def check_password(self, account: Account, password: str) -> bool:
        if not password:
            return False
        return verify_password(password, account.password_hash)

    def change_password(self, account: Account, current_password: str, new_password: str) -> None:
        if not self.check_password(account, current_password):
            raise CredentialStoreError("change password failed: current password mismatch")
        self._set_password(account, new_password)
        self._commit("change password")

    def generate_password_reset_token(self, account: Account) -> str:
        return self._issue_token(account, TokenPurpose.PASSWORD_RESET)

    def reset_password(self, account: Account, token: str, new_password: str) -> bool:
        record = self._consume_token(account, TokenPurpose.PASSWORD_RESET, token)
        if record is None:
            return False
        self._set_password(account, new_password)
        self._commit("reset password")
        return True

    def _set_password(self, account: Account, new_password: str) -> None:
        account.password_hash = hash_password(new_password, iterations=self._iterations)
        account.security_stamp = _new_security_stamp()

    # 邮箱确认

    def generate_email_confirmation_token(self, account: Account) -> str:
        return self._issue_token(account, TokenPurpose.EMAIL_CONFIRMATION)

    def confirm_email(self, account: Account, token: str) -> bool:
        record = self._consume_token(account, TokenPurpose.EMAIL_CONFIRMATION, token)
        if record is None:
            return False
        account.email_confirmed = True
        self._commit("confirm email")
        return True

    # 角色

    def get_roles(self, account: Account) -> list[str]:
        stmt = (
            select(AccountRoleMembership.role)
            .where(AccountRoleMembership.account_id == account.id)
            .order_by(AccountRoleMembership.role)
        )
        return list(self._db.execute(stmt).scalars().all())

    def add_to_role(self, account: Account, role: str) -> None:
        if self.is_in_role(account, role):
            return
        self._db.add(AccountRoleMembership(account_id=account.id, role=str(role)))
        self._commit("add role")

    def is_in_role(self, account: Account, role: str) -> bool:
        stmt = (
            select(AccountRoleMembership.id)
            .where(AccountRoleMembership.account_id == account.id)
            .where(AccountRoleMembership.role == str(role))
        )
        return self._db.execute(stmt).first() is not None

    # 一次性令牌

    def _issue_token(self, account: Account, purpose: TokenPurpose) -> str:
        token = secrets.token_urlsafe(32)
        self._db.add(
            AccountToken(
                account_id=account.id,
                purpose=purpose,
                token_hash=_digest_token(token),
                security_stamp=account.security_stamp,
                email=account.normalized_email,
                expires_at=datetime.now(timezone.utc) + self._token_ttl,
            )
        )
        self._commit(f"issue {purpose} token")
        return token

    def _consume_token(self, account: Account, purpose: TokenPurpose, token: str) -> AccountToken | None:
        """校验并标记令牌已使用；令牌无效时返回 None，不做任何写入。"""
        if not token:
            return None
        record = self._db.execute(
            select(AccountToken)
            .where(AccountToken.account_id == account.id)
            .where(AccountToken.purpose == purpose)
            .where(AccountToken.token_hash == _digest_token(token))
        ).scalar_one_or_none()
        if record is None or record.consumed_at is not None:
            return None
        now = datetime.now(timezone.utc)
        if _as_utc(record.expires_at) <= now:
            return None
        # 口令、登录名或邮箱在签发后发生过变化。
        if record.security_stamp != account.security_stamp or record.email != account.normalized_email:
            return None
        record.consumed_at = now
        return record
