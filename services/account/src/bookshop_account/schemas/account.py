"""账号流程请求结构。

字段同时接受 camelCase（与前端保持一致）与 snake_case 名称。
所有字段允许缺省或为 null，格式与交叉校验统一在 services.validation 中完成，
从而返回带业务语义的错误信息。
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RequestSchema(BaseModel):
    """请求结构公共配置。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(RequestSchema):
    """登录请求。"""

    username_or_email: str | None = Field(default=None, description="登录名或邮箱。", examples=["alice@example.com"])
    password: str | None = Field(default=None, description="登录密码。", examples=["StrongPassw0rd!"])


class RegistrationRequest(RequestSchema):
    """注册请求。"""

    username_or_email: str | None = Field(default=None, description="登录名（也可以直接使用邮箱）。", examples=["alice"])
    email_address: str | None = Field(default=None, description="账号邮箱。", examples=["alice@example.com"])
    confirm_email_address: str | None = Field(default=None, description="确认邮箱。")
    password: str | None = Field(default=None, description="登录密码。", examples=["StrongPassw0rd!"])
    confirm_password: str | None = Field(default=None, description="确认密码。")


class DeletionRequest(RequestSchema):
    """注销账号请求。"""

    username_or_email: str | None = Field(default=None, description="登录名或邮箱。")
    password: str | None = Field(default=None, description="当前密码。")
    is_confirmed: bool | None = Field(default=None, description="是否确认注销，非 true（含缺省与 null）视为取消。")


class PasswordResetRequest(RequestSchema):
    """修改本人密码请求。"""

    username_or_email: str | None = Field(default=None, description="登录名或邮箱。")
    password: str | None = Field(default=None, description="当前密码。")
    new_user_password: str | None = Field(default=None, description="新密码。")
    confirm_new_user_password: str | None = Field(default=None, description="确认新密码。")


class AccountUpdateRequest(RequestSchema):
    """修改本人登录名/邮箱请求。"""

    username_or_email: str | None = Field(default=None, description="登录名或邮箱。")
    password: str | None = Field(default=None, description="当前密码。")
    updated_login: str | None = Field(default=None, description="新登录名，可留空。")
    updated_email_address: str | None = Field(default=None, description="新邮箱，可留空。")
    confirm_updated_email_address: str | None = Field(default=None, description="确认新邮箱。")


class AdminPasswordResetRequest(RequestSchema):
    """管理员重置目标账号密码请求。"""

    username_or_email: str | None = Field(default=None, description="管理员登录名或邮箱。")
    password: str | None = Field(default=None, description="管理员密码。")
    user_identifier: str | None = Field(default=None, description="目标账号登录名或邮箱。")
    new_user_password: str | None = Field(default=None, description="目标账号新密码。")
    confirm_new_user_password: str | None = Field(default=None, description="确认新密码。")


class AdminUpdateRequest(RequestSchema):
    """管理员修改目标账号登录名/邮箱请求。"""

    username_or_email: str | None = Field(default=None, description="管理员登录名或邮箱。")
    password: str | None = Field(default=None, description="管理员密码。")
    user_identifier: str | None = Field(default=None, description="目标账号登录名或邮箱。")
    updated_login: str | None = Field(default=None, description="新登录名，可留空。")
    updated_email_address: str | None = Field(default=None, description="新邮箱，可留空。")
    confirm_updated_email_address: str | None = Field(default=None, description="确认新邮箱。")
