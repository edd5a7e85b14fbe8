"""领域枚举定义。"""

from enum import StrEnum


class AccountRole(StrEnum):
    """账号角色。"""

    ADMIN = "admin"  # 管理员，可修改其他账号资料与密码。
    USER = "user"  # 普通用户，仅可管理自己的账号。


class TokenPurpose(StrEnum):
    """一次性账号令牌用途。"""

    EMAIL_CONFIRMATION = "email_confirmation"  # 证明邮箱归属。
    PASSWORD_RESET = "password_reset"  # 管理员代为重置密码。


class NotificationStatus(StrEnum):
    """邮件通知投递结果。"""

    SENT = "sent"  # 已交给邮件服务。
    SUPPRESSED = "suppressed"  # 默认系统账号，不投递，内容随响应返回。
    FAILED = "failed"  # 投递失败，不影响已提交的变更。
