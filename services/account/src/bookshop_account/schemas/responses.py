"""接口成功响应 `data` 字段结构定义。

说明：
1. 所有业务接口统一返回 `SuccessResponse[data=...]`。
2. 本文件专注于定义各接口在 `data` 中的业务字段。
3. 字段描述会直接用于 Swagger 展示，便于联调时理解含义。
"""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from bookshop_account.schemas.common import BaseSchema


class HealthStatusData(BaseSchema):
    """健康检查返回结构。"""

    status: str = Field(description="健康状态值，常见为 ok 或 ready。")


class NotificationData(BaseSchema):
    """一次邮件通知的投递结果。

    默认系统账号不会真实投递，此时 `subject`、`body` 与 `link` 随响应返回，
    便于在没有真实邮箱的环境中完成确认流程。
    """

    status: str = Field(description="投递结果：sent / suppressed / failed。")
    recipient: str = Field(description="收件邮箱。")
    subject: str = Field(description="邮件主题。")
    body: str | None = Field(default=None, description="邮件正文（仅默认账号返回）。")
    link: str | None = Field(default=None, description="确认链接（仅默认账号返回）。")


class RegistrationData(BaseSchema):
    """注册结果结构。"""

    account_id: UUID = Field(description="账号 ID。")
    user_name: str = Field(description="登录名。")
    email: str = Field(description="账号邮箱。")
    roles: list[str] = Field(description="账号角色。")
    notification: NotificationData = Field(description="确认邮件投递结果。")


class LoginData(BaseSchema):
    """登录结果结构。"""

    token: str = Field(description="访问令牌。")
    token_type: str = Field(default="bearer", description="令牌类型。")
    expiration: datetime = Field(description="令牌过期时间（UTC）。")
    user: str = Field(description="登录名。")
    email: str = Field(description="账号邮箱。")


class AccountChangeData(BaseSchema):
    """账号变更（密码、登录名、邮箱）结果结构。"""

    account_id: UUID = Field(description="账号 ID。")
    user_name: str = Field(description="变更后的登录名。")
    email: str = Field(description="变更后的邮箱。")
    email_confirmed: bool = Field(description="邮箱是否已确认。")
    notifications: list[NotificationData] = Field(default_factory=list, description="本次变更触发的邮件通知。")


class DeletionData(BaseSchema):
    """注销结果结构。"""

    deleted: bool = Field(description="账号是否已删除。")
    details: str | None = Field(default=None, description="补充说明。")
    help: str | None = Field(default=None, description="后续操作提示。")
    notifications: list[NotificationData] = Field(default_factory=list, description="注销通知投递结果。")


class EmailConfirmationData(BaseSchema):
    """邮箱确认结果结构。"""

    account_id: UUID = Field(description="账号 ID。")
    email_confirmed: bool = Field(description="邮箱是否已确认。")


class ResendConfirmationData(BaseSchema):
    """重发确认邮件结果结构。"""

    notification: NotificationData = Field(description="确认邮件投递结果。")


class SessionData(BaseSchema):
    """当前登录会话结构。"""

    account_id: UUID = Field(description="账号 ID。")
    user: str = Field(description="登录名。")
    email: str = Field(description="账号邮箱。")
    email_confirmed: bool = Field(description="邮箱是否已确认。")
    roles: list[str] = Field(description="账号角色。")
    expiration: datetime = Field(description="当前令牌过期时间（UTC）。")


class LogoutData(BaseSchema):
    """登出结果结构。"""

    logged_out: bool = Field(description="是否已完成登出。")
    revoked: bool = Field(description="当前令牌会话是否已撤销。")
