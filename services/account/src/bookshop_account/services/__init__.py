"""服务层能力导出集合。"""

from bookshop_account.services.accounts import (
    authenticate,
    is_default_account,
    is_default_account_email,
    resolve_account,
)
from bookshop_account.services.bootstrap import BootstrapError, seed_default_accounts
from bookshop_account.services.confirmation import (
    NotificationOutcome,
    build_confirmation_link,
    dispatch,
    info_message,
    request_base_url,
    send_confirmation_link,
)
from bookshop_account.services.credential_store import (
    CredentialStore,
    CredentialStoreError,
    SqlCredentialStore,
    normalize_identity,
)
from bookshop_account.services.local_auth import (
    IssuedToken,
    SigningKeyError,
    TokenIssueError,
    ensure_signing_key,
    hash_password,
    issue_access_token,
    verify_password,
)
from bookshop_account.services.notifier import (
    LoggingNotifier,
    MailMessage,
    NotificationError,
    Notifier,
    SmtpNotifier,
    build_notifier,
)

__all__ = [
    "BootstrapError",
    "CredentialStore",
    "CredentialStoreError",
    "IssuedToken",
    "LoggingNotifier",
    "MailMessage",
    "NotificationError",
    "NotificationOutcome",
    "Notifier",
    "SigningKeyError",
    "SmtpNotifier",
    "SqlCredentialStore",
    "TokenIssueError",
    "authenticate",
    "build_confirmation_link",
    "build_notifier",
    "dispatch",
    "ensure_signing_key",
    "hash_password",
    "info_message",
    "is_default_account",
    "is_default_account_email",
    "issue_access_token",
    "normalize_identity",
    "request_base_url",
    "resolve_account",
    "send_confirmation_link",
    "seed_default_accounts",
    "verify_password",
]
