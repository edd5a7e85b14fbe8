"""邮箱确认链接与通知投递。

默认系统账号的邮箱不会收到真实邮件：投递被跳过，邮件内容与确认链接随响应返回，
便于在没有真实邮箱的环境中演示和测试完整流程。
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from urllib.parse import quote

from fastapi import Request

from bookshop_account.core.config import Settings
from bookshop_account.models.account import Account
from bookshop_account.models.enums import NotificationStatus
from bookshop_account.services.accounts import is_default_account_email
from bookshop_account.services.credential_store import CredentialStore
from bookshop_account.services.notifier import MailMessage, NotificationError, Notifier

logger = logging.getLogger(__name__)

CONFIRM_EMAIL_PATH = "/account/confirmemail"
CONFIRMATION_SUBJECT = "Confirmation email"


@dataclass(frozen=True)
class NotificationOutcome:
    """单次通知的投递结果。"""

    status: NotificationStatus
    recipient: str
    subject: str
    body: str | None = None
    link: str | None = None

    @property
    def failed(self) -> bool:
        return self.status == NotificationStatus.FAILED

    def as_dict(self) -> dict[str, str | None]:
        return {
            "status": str(self.status),
            "recipient": self.recipient,
            "subject": self.subject,
            "body": self.body,
            "link": self.link,
        }


def request_base_url(request: Request, settings: Settings) -> str:
    """确认链接使用的站点地址：优先配置，其次取当前请求。"""
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    return f"{request.url.scheme}://{request.url.netloc}"


def build_confirmation_link(base_url: str, account_id: object, token: str) -> str:
    """拼接确认链接，令牌做 URL 编码。"""
    return f"{base_url}{CONFIRM_EMAIL_PATH}?userId={account_id}&token={quote(token, safe='')}"


def confirmation_message(account: Account, link: str) -> MailMessage:
    name = html.escape(account.user_name)
    escaped_link = html.escape(link, quote=True)
    return MailMessage(
        recipient=account.email,
        subject=CONFIRMATION_SUBJECT,
        html_body=(
            f"<h1>Welcome, {name}!</h1>"
            f"Please, confirm your email address by <a href='{escaped_link}'>clicking this link</a><br>"
            f", or copy and paste into the browser the link below:<br>{escaped_link}"
        ),
        text_body=(
            f"Welcome, {account.user_name}! Please confirm your email address by copying and pasting "
            f"into the browser the link below: {link}"
        ),
    )


def info_message(recipient: str, subject: str, text: str) -> MailMessage:
    """账号变更类通知：正文为纯文本，HTML 版本只做转义包装。"""
    return MailMessage(
        recipient=recipient,
        subject=subject,
        html_body=f"<span>{html.escape(text)}</span>",
        text_body=text,
    )


def dispatch(notifier: Notifier, message: MailMessage, settings: Settings, *, link: str | None = None) -> NotificationOutcome:
    """投递一封邮件；默认账号跳过投递，投递失败只记录日志。"""
    if is_default_account_email(settings, message.recipient):
        logger.warning("unable to send email to the default API accounts recipient=%s", message.recipient)
        return NotificationOutcome(
            status=NotificationStatus.SUPPRESSED,
            recipient=message.recipient,
            subject=message.subject,
            body=message.text_body or message.html_body,
            link=link,
        )
    try:
        notifier.send(message)
    except NotificationError:
        logger.exception("email delivery failed recipient=%s subject=%s", message.recipient, message.subject)
        return NotificationOutcome(
            status=NotificationStatus.FAILED,
            recipient=message.recipient,
            subject=message.subject,
        )
    return NotificationOutcome(
        status=NotificationStatus.SENT,
        recipient=message.recipient,
        subject=message.subject,
    )


def send_confirmation_link(
    store: CredentialStore,
    notifier: Notifier,
    settings: Settings,
    account: Account,
    *,
    base_url: str,
) -> NotificationOutcome:
    """为账号当前邮箱生成确认令牌并投递确认邮件。"""
    token = store.generate_email_confirmation_token(account)
    link = build_confirmation_link(base_url, account.id, token)
    return dispatch(notifier, confirmation_message(account, link), settings, link=link)


CONFIRMATION_DELIVERY_FAILED = (
    "An unexpected error occurred while sending email confirmation link. "
    "Please try to resend confirmation link later or contact support if the issue persists."
)
INFO_DELIVERY_FAILED = "Failed to send the information email to the user."


def delivery_message(message: str, *outcomes: NotificationOutcome) -> str:
    """投递失败时在成功文案后追加说明，变更本身已经生效。"""
    failed = [outcome for outcome in outcomes if outcome.failed]
    if not failed:
        return message
    notices = []
    if any(outcome.subject == CONFIRMATION_SUBJECT for outcome in failed):
        notices.append(CONFIRMATION_DELIVERY_FAILED)
    if any(outcome.subject != CONFIRMATION_SUBJECT for outcome in failed):
        notices.append(INFO_DELIVERY_FAILED)
    return " ".join([message, *notices])


UPDATE_SUBJECT = "Updated account data"
_DATA_CHANGED_TEXT = (
    "Some of your account data has been changed. "
    "Please contact the support team immediately if you did not request it."
)
_EMAIL_CHANGED_TEXT = (
    "Your account email address has been changed. This email was removed from your account. "
    "If you did not request it, please contact the support team immediately."
)


def notify_account_update(
    store: CredentialStore,
    notifier: Notifier,
    settings: Settings,
    account: Account,
    *,
    previous_email: str,
    base_url: str,
) -> list[NotificationOutcome]:
    """登录名/邮箱变更后的通知：告知原邮箱，邮箱变化时再向新邮箱发送确认链接。"""
    email_changed = previous_email.strip().lower() != account.normalized_email
    text = _EMAIL_CHANGED_TEXT if email_changed else _DATA_CHANGED_TEXT
    outcomes = [dispatch(notifier, info_message(previous_email, UPDATE_SUBJECT, text), settings)]
    if email_changed:
        outcomes.append(send_confirmation_link(store, notifier, settings, account, base_url=base_url))
    return outcomes
