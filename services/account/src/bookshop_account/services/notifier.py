"""邮件通知：账号流程只依赖 `Notifier` 协议。"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Protocol

from bookshop_account.core.config import Settings

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """投递失败。调用方记录日志后降级响应，不回滚已提交的变更。"""


@dataclass(frozen=True)
class MailMessage:
    """一封待发送的邮件，按通知事件即时构造，不持久化。"""

    recipient: str
    subject: str
    html_body: str
    text_body: str | None = None


class Notifier(Protocol):
    """邮件投递接口，失败时抛出 `NotificationError`。"""

    def send(self, message: MailMessage) -> None: ...


class SmtpNotifier:
    """通过 SMTP 投递邮件。"""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        sender_address: str,
        sender_name: str = "",
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = formataddr((sender_name, sender_address)) if sender_name else sender_address
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout

    def _build(self, message: MailMessage) -> EmailMessage:
        email = EmailMessage()
        email["From"] = self._sender
        email["To"] = message.recipient
        email["Subject"] = message.subject
        email.set_content(message.text_body or message.html_body)
        email.add_alternative(message.html_body, subtype="html")
        return email

    def send(self, message: MailMessage) -> None:
        if not message.recipient or not message.recipient.strip():
            raise NotificationError("recipient address is empty")
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as conn:
                if self._use_tls:
                    conn.starttls()
                if self._username:
                    conn.login(self._username, self._password or "")
                conn.send_message(self._build(message))
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"smtp delivery to {message.recipient} failed: {exc}") from exc
        logger.info("email sent recipient=%s subject=%s", message.recipient, message.subject)


class LoggingNotifier:
    """未配置 SMTP 时使用：只记录日志，便于本地开发。"""

    def send(self, message: MailMessage) -> None:
        logger.info("email (not delivered) recipient=%s subject=%s", message.recipient, message.subject)
        logger.debug("email body recipient=%s body=%s", message.recipient, message.text_body or message.html_body)


def build_notifier(settings: Settings) -> Notifier:
    """根据配置构造通知器。"""
    if not settings.smtp_host:
        logger.warning("smtp_host not configured, outgoing email will only be logged")
        return LoggingNotifier()
    return SmtpNotifier(
        settings.smtp_host,
        settings.smtp_port,
        sender_address=settings.mail_sender_address,
        sender_name=settings.mail_sender_name,
        username=settings.smtp_username,
        password=settings.smtp_password.get_secret_value() if settings.smtp_password else None,
        use_tls=settings.smtp_use_tls,
        timeout=settings.smtp_timeout_seconds,
    )
