"""账号、角色与一次性令牌模型。"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bookshop_account.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Account(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """账号主体。"""

    __tablename__ = "accounts"

    # 登录名原样保存，唯一性按规范化值判断。
    user_name: Mapped[str] = mapped_column(String(256), nullable=False)
    normalized_user_name: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(256), nullable=False)
    normalized_email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    # 口令哈希，不存明文。
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    email_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 口令、登录名或邮箱变化时轮换，旧令牌随之失效。
    security_stamp: Mapped[str] = mapped_column(String(64), nullable=False)


class AccountRoleMembership(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """账号角色关系。"""

    __tablename__ = "account_roles"
    __table_args__ = (UniqueConstraint("account_id", "role", name="uk_account_roles_account_role"),)

    # 账号 ID（逻辑关联 accounts.id，不声明数据库外键）。
    account_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)


class AccountToken(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """一次性账号令牌（邮箱确认、密码重置）。"""

    __tablename__ = "account_tokens"

    account_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    purpose: Mapped[str] = mapped_column(String(32), nullable=False)
    # 仅保存令牌摘要，原文只出现在链接中。
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    # 签发时的安全戳与邮箱快照，任一变化即视为失效。
    security_stamp: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(256), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
