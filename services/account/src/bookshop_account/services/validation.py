"""账号请求格式校验。

每个账号操作对应一个独立的校验函数：输入为请求结构，输出为 `ValidationResult`。
操作之间通过直接调用组合（例如注册先调用 `validate_credentials`），不依赖继承。
校验只做格式与交叉字段判断，不访问凭据存储。
"""

import re
from dataclasses import dataclass
from typing import Protocol

# 本地部分不得以 _.%+- 开头或结尾，顶级域名 2-6 位字母。
EMAIL_PATTERN = re.compile(
    r"(?![_.%+\-])[A-Za-z0-9._%+-]+(?:'[A-Za-z0-9._%+-]+)*(?<![_.%+\-])"
    r"@[A-Za-z0-9]+(?:[.-][A-Za-z0-9]+)*\.[A-Za-z]{2,6}"
)
# 3-30 位，首尾不能是符号。
USER_NAME_PATTERN = re.compile(r"(?![_.\-@])[A-Za-z0-9._\-@]{3,30}(?<![_.\-@])")

PASSWORD_MIN_LENGTH = 8
PASSWORD_SYMBOLS = frozenset("@./-_&!#$%*()+=")
_LOWERCASE = frozenset("abcdefghijklmnopqrstuvwxyz")
_UPPERCASE = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZ")
_DIGITS = frozenset("0123456789")


@dataclass(frozen=True)
class ValidationResult:
    """校验结果：成功，或携带可读原因的失败。"""

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> "ValidationResult":
        return cls(ok=False, error=error)

    def __bool__(self) -> bool:
        return self.ok


class CredentialFields(Protocol):
    """携带登录凭据的请求结构。"""

    username_or_email: str | None
    password: str | None


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _same_identity(left: str | None, right: str | None) -> bool:
    """按规范化规则（去空格 + 小写）比较登录名或邮箱。"""
    if left is None or right is None:
        return False
    return left.strip().lower() == right.strip().lower()


def is_valid_email(value: str | None) -> bool:
    """判断是否为合法邮箱。"""
    if _is_blank(value):
        return False
    return EMAIL_PATTERN.fullmatch(value) is not None


def is_valid_user_name(value: str | None) -> bool:
    """判断是否为合法登录名。"""
    if _is_blank(value):
        return False
    return USER_NAME_PATTERN.fullmatch(value) is not None


def is_valid_password(value: str | None) -> bool:
    """判断口令是否满足复杂度：至少 8 位，含大小写字母、数字与指定符号。"""
    if _is_blank(value) or len(value) < PASSWORD_MIN_LENGTH:
        return False
    characters = set(value)
    return bool(
        characters & _LOWERCASE
        and characters & _UPPERCASE
        and characters & _DIGITS
        and characters & PASSWORD_SYMBOLS
    )


def is_valid_identifier(value: str | None) -> bool:
    """登录标识可以是邮箱或登录名。"""
    return is_valid_email(value) or is_valid_user_name(value)


def validate_credentials(model: CredentialFields | None) -> ValidationResult:
    """校验登录标识与口令格式，所有需要认证的操作都先经过这一步。"""
    if model is None:
        return ValidationResult.failure("Account model cannot be null.")
    if not is_valid_identifier(model.username_or_email):
        return ValidationResult.failure("Login must be a valid email or username.")
    if not is_valid_password(model.password):
        return ValidationResult.failure("Entered password is not valid.")
    return ValidationResult.success()


def validate_registration(model) -> ValidationResult:
    """注册：凭据格式 + 邮箱与确认邮箱一致 + 口令与确认口令一致。"""
    result = validate_credentials(model)
    if not result:
        return result
    if not is_valid_email(model.email_address):
        return ValidationResult.failure("Email Address is required")
    if model.email_address != model.confirm_email_address:
        return ValidationResult.failure("The confirmation email does not match.")
    if model.password != model.confirm_password:
        return ValidationResult.failure("The confirmation password does not match.")
    return ValidationResult.success()


def is_deletion_cancelled(model) -> bool:
    """未显式确认的注销请求视为用户取消。"""
    return model.is_confirmed is not True


def _validate_new_password(model, *, reject_current: bool) -> ValidationResult:
    if _is_blank(model.new_user_password) or _is_blank(model.confirm_new_user_password):
        return ValidationResult.failure("Both the new password and its confirmation are required.")
    if model.new_user_password != model.confirm_new_user_password:
        return ValidationResult.failure("New password and confirmation new password do not match.")
    if reject_current and model.new_user_password == model.password:
        return ValidationResult.failure("The new password cannot be the same as the current password.")
    if not is_valid_password(model.new_user_password):
        return ValidationResult.failure("The new password is not valid.")
    return ValidationResult.success()


def validate_password_reset(model) -> ValidationResult:
    """修改密码：新口令与确认一致、不同于当前口令且满足复杂度。"""
    result = validate_credentials(model)
    if not result:
        return result
    return _validate_new_password(model, reject_current=True)


def validate_update_fields(
    updated_login: str | None,
    updated_email: str | None,
    confirm_updated_email: str | None,
    *,
    current_identifier: str | None = None,
) -> ValidationResult:
    """校验登录名/邮箱变更字段。

    `current_identifier` 为请求中携带的当前登录标识，用于拦截“改成与现在相同”的请求；
    解析出账号后，调用方还需按账号实际值再次比较。
    """
    login_supplied = not _is_blank(updated_login)
    email_supplied = not _is_blank(updated_email)

    if not login_supplied and not email_supplied:
        return ValidationResult.failure("At least one of the updated login or email is required.")
    if login_supplied and not is_valid_user_name(updated_login):
        return ValidationResult.failure("The updated login must be a valid username.")
    if email_supplied:
        if not is_valid_email(updated_email):
            return ValidationResult.failure("The updated email must be a valid email address.")
        if _is_blank(confirm_updated_email):
            return ValidationResult.failure("The confirmation email is required.")
        if updated_email != confirm_updated_email:
            return ValidationResult.failure("The updated email and confirmation email do not match.")
        if _same_identity(updated_email, current_identifier):
            return ValidationResult.failure("The updated email should not match the current email.")
    if login_supplied and _same_identity(updated_login, current_identifier):
        return ValidationResult.failure("The updated login should not match the current login.")
    return ValidationResult.success()


def validate_account_update(model) -> ValidationResult:
    """修改本人登录名/邮箱。"""
    result = validate_credentials(model)
    if not result:
        return result
    return validate_update_fields(
        model.updated_login,
        model.updated_email_address,
        model.confirm_updated_email_address,
        current_identifier=model.username_or_email,
    )


def _validate_target(model) -> ValidationResult:
    if not is_valid_identifier(model.user_identifier):
        return ValidationResult.failure("The target account login or email must be valid.")
    return ValidationResult.success()


def validate_admin_password_reset(model) -> ValidationResult:
    """管理员重置密码：管理员凭据 + 新口令规则 + 目标账号标识。

    `password` 是管理员自己的口令，与目标账号的新口令无关，不做“不同于当前口令”的比较。
    """
    result = validate_credentials(model)
    if not result:
        return result
    result = _validate_new_password(model, reject_current=False)
    if not result:
        return result
    return _validate_target(model)


def validate_admin_update(model) -> ValidationResult:
    """管理员修改目标账号：管理员凭据 + 目标账号标识 + 变更字段。"""
    result = validate_credentials(model)
    if not result:
        return result
    result = _validate_target(model)
    if not result:
        return result
    return validate_update_fields(
        model.updated_login,
        model.updated_email_address,
        model.confirm_updated_email_address,
        current_identifier=model.user_identifier,
    )


def validate_email_address(value: str | None) -> ValidationResult:
    """单独校验邮箱（重发确认邮件）。"""
    if _is_blank(value):
        return ValidationResult.failure("The email cannot be null or empty")
    if not is_valid_email(value):
        return ValidationResult.failure("The email is invalid format.")
    return ValidationResult.success()
