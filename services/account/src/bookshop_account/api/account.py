"""账号生命周期接口：注册、登录、邮箱确认与本人账号管理。"""

import logging

from fastapi import APIRouter, Body, Depends, Query, Request, status

from bookshop_account.core.config import Settings
from bookshop_account.core.security import AuthenticatedSession, TokenSessionStore
from bookshop_account.dependencies import (
    get_app_settings,
    get_credential_store,
    get_current_session,
    get_notifier,
    get_session_store,
)
from bookshop_account.exceptions import api_error, bad_request, not_found, unauthorized
from bookshop_account.models.enums import AccountRole
from bookshop_account.schemas.account import (
    AccountUpdateRequest,
    DeletionRequest,
    LoginRequest,
    PasswordResetRequest,
    RegistrationRequest,
)
from bookshop_account.schemas.common import ErrorResponse, SuccessResponse
from bookshop_account.schemas.responses import (
    AccountChangeData,
    DeletionData,
    EmailConfirmationData,
    LoginData,
    LogoutData,
    RegistrationData,
    ResendConfirmationData,
    SessionData,
)
from bookshop_account.services.accounts import is_default_account, resolve_account
from bookshop_account.services.authorization import (
    ACCOUNT_NOT_FOUND_MESSAGE,
    ensure_identity_change_allowed,
    ensure_valid,
    require_credentials,
    store_failure,
)
from bookshop_account.services.confirmation import (
    delivery_message,
    dispatch,
    info_message,
    notify_account_update,
    request_base_url,
    send_confirmation_link,
)
from bookshop_account.services.credential_store import CredentialStore
from bookshop_account.services.local_auth import TokenIssueError, issue_access_token
from bookshop_account.services.notifier import Notifier
from bookshop_account.services.validation import (
    is_deletion_cancelled,
    validate_account_update,
    validate_credentials,
    validate_email_address,
    validate_password_reset,
    validate_registration,
)
from bookshop_account.utils.response import success

logger = logging.getLogger(__name__)

router = APIRouter(tags=["account"])

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials. Please verify your username and password, and try again."
EMAIL_NOT_CONFIRMED_MESSAGE = "Please confirm the email. A confirmation link has been sent to your email."
SIGN_IN_FAILED_MESSAGE = "Failed to sign in user into requested account."
CONFIRMATION_REQUEST_FAILED_MESSAGE = "Request failed. Please contact the support team."
CONFIRMATION_LINK_FAILED_MESSAGE = (
    "Failed to generate the email confirmation link. Please try again later or contact the support team."
)


def account_change_data(account, notifications) -> dict:
    return {
        "account_id": account.id,
        "user_name": account.user_name,
        "email": account.email,
        "email_confirmed": account.email_confirmed,
        "notifications": [outcome.as_dict() for outcome in notifications],
    }


def _register(
    payload: RegistrationRequest,
    request: Request,
    *,
    role: AccountRole,
    store: CredentialStore,
    notifier: Notifier,
    settings: Settings,
) -> dict:
    """注册流程：格式校验 → 邮箱/登录名查重 → 创建账号 → 分配角色 → 发送确认链接。"""
    ensure_valid(validate_registration(payload))

    # 解析顺序与登录一致：新邮箱或登录名不得解析到已有账号（含对方的邮箱或登录名）。
    if resolve_account(store, payload.email_address) is not None:
        raise bad_request(
            "An account with the provided email address already exists.",
            code="DUPLICATE_ACCOUNT",
            reason="The email address is already associated with another account.",
            help="Try using a different email address, or if you already have an account, use the forgot password option.",
        )
    if resolve_account(store, payload.username_or_email) is not None:
        raise bad_request(
            "An account with the provided username already exists.",
            code="DUPLICATE_ACCOUNT",
            reason="The chosen username is already taken by another user.",
            help="Please try registering with a different username or consider using your email address.",
        )

    with store_failure("The account registration failed."):
        account = store.create(payload.username_or_email, payload.email_address, payload.password, roles=[role])
    logger.info("account registered user=%s role=%s", account.user_name, role)

    with store_failure(CONFIRMATION_LINK_FAILED_MESSAGE):
        outcome = send_confirmation_link(
            store, notifier, settings, account, base_url=request_base_url(request, settings)
        )
    return success(
        request,
        delivery_message("Account registration successful. Please check your email for confirmation link.", outcome),
        {
            "account_id": account.id,
            "user_name": account.user_name,
            "email": account.email,
            "roles": store.get_roles(account),
            "notification": outcome.as_dict(),
        },
    )


@router.post(
    "/admin/new",
    summary="注册管理员账号",
    description="创建管理员账号并发送邮箱确认链接；默认账号邮箱不投递，链接随响应返回。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RegistrationData],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def register_admin(
    payload: RegistrationRequest,
    request: Request,
    store: CredentialStore = Depends(get_credential_store),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
):
    """注册管理员账号。"""
    return _register(payload, request, role=AccountRole.ADMIN, store=store, notifier=notifier, settings=settings)


@router.post(
    "/new",
    summary="注册普通账号",
    description="创建普通账号并发送邮箱确认链接；邮箱确认前无法登录。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RegistrationData],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def register_user(
    payload: RegistrationRequest,
    request: Request,
    store: CredentialStore = Depends(get_credential_store),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
):
    """注册普通账号。"""
    return _register(payload, request, role=AccountRole.USER, store=store, notifier=notifier, settings=settings)


@router.post(
    "/account/login",
    summary="账号登录",
    description="使用登录名或邮箱加密码登录，返回有效期 3 小时的 Bearer 访问令牌。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LoginData],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def login(
    payload: LoginRequest,
    request: Request,
    store: CredentialStore = Depends(get_credential_store),
    sessions: TokenSessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_app_settings),
):
    """登录并签发访问令牌，同时替换该账号此前的会话。"""
    ensure_valid(validate_credentials(payload))
    account = require_credentials(
        store,
        payload.username_or_email,
        payload.password,
        message=INVALID_CREDENTIALS_MESSAGE,
        require_confirmed=False,
    )
    if not account.email_confirmed:
        logger.info("login refused, email not confirmed user=%s", account.user_name)
        raise api_error(status.HTTP_409_CONFLICT, "EMAIL_NOT_CONFIRMED", EMAIL_NOT_CONFIRMED_MESSAGE)

    try:
        issued = issue_access_token(account.user_name, store.get_roles(account), settings=settings)
    except TokenIssueError:
        logger.exception("failed to sign access token user=%s", account.user_name)
        raise unauthorized(SIGN_IN_FAILED_MESSAGE) from None

    sessions.activate(str(account.id), issued.jti, issued.expires_at)
    logger.info("account signed in user=%s", account.user_name)
    return success(
        request,
        "Login successful. You are now authenticated.",
        {
            "token": issued.token,
            "token_type": "bearer",
            "expiration": issued.expires_at,
            "user": account.user_name,
            "email": account.email,
        },
    )


@router.delete(
    "/account/delete",
    summary="注销本人账号",
    description="`isConfirmed` 为 false 时视为用户取消，不做任何变更；默认系统账号不可注销。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[DeletionData],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def delete_account(
    payload: DeletionRequest,
    request: Request,
    store: CredentialStore = Depends(get_credential_store),
    notifier: Notifier = Depends(get_notifier),
    sessions: TokenSessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_app_settings),
):
    """注销账号并通知原邮箱。"""
    ensure_valid(validate_credentials(payload))
    if is_deletion_cancelled(payload):
        logger.info("account deletion canceled by the user")
        return success(
            request,
            "Account deletion process was canceled by the user.",
            {
                "deleted": False,
                "details": "No changes have been made to your account.",
                "help": "If you wish to delete your account in the future, please try again.",
            },
        )

    account = require_credentials(
        store,
        payload.username_or_email,
        payload.password,
        message="Lack the necessary permissions to delete this account.",
    )
    if is_default_account(settings, account):
        raise bad_request(
            "Default API accounts cannot be deleted.",
            code="ACCOUNT_CONFLICT",
            reason="The default API accounts must always exist.",
        )

    account_id = str(account.id)
    recipient = account.email
    with store_failure("Failed to delete account."):
        store.delete(account)
    sessions.clear_account(account_id)
    logger.info("account deleted account_id=%s", account_id)

    outcome = dispatch(
        notifier,
        info_message(
            recipient,
            "Account Deleted",
            "We are sorry to see you go. Account deleted by the user request.",
        ),
        settings,
    )
    return success(
        request,
        delivery_message("Your account has been successfully removed from our system.", outcome),
        {"deleted": True, "notifications": [outcome.as_dict()]},
    )


@router.put(
    "/account/password/reset",
    summary="修改本人密码",
    description="校验当前密码后设置新密码，并通知账号邮箱；该账号的现有会话随之失效。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AccountChangeData],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def change_password(
    payload: PasswordResetRequest,
    request: Request,
    store: CredentialStore = Depends(get_credential_store),
    notifier: Notifier = Depends(get_notifier),
    sessions: TokenSessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_app_settings),
):
    """修改本人密码。"""
    ensure_valid(validate_password_reset(payload))
    account = require_credentials(
        store,
        payload.username_or_email,
        payload.password,
        message="Lack the necessary permissions to change password for this account.",
    )

    with store_failure("Failed to change account password."):
        store.change_password(account, payload.password, payload.new_user_password)
    sessions.clear_account(str(account.id))
    logger.info("account password changed user=%s", account.user_name)

    outcome = dispatch(
        notifier,
        info_message(
            account.email,
            "The account password has been changed.",
            "Your account password has been changed. "
            "If you did not change the password, please contact the support team immediately.",
        ),
        settings,
    )
    return success(
        request,
        delivery_message("Password changed successfully.", outcome),
        account_change_data(account, [outcome]),
    )


@router.put(
    "/account/update",
    summary="修改本人登录名或邮箱",
    description="邮箱变更后需重新确认：通知发往原邮箱，确认链接发往新邮箱。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AccountChangeData],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def update_account(
    payload: AccountUpdateRequest,
    request: Request,
    store: CredentialStore = Depends(get_credential_store),
    notifier: Notifier = Depends(get_notifier),
    sessions: TokenSessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_app_settings),
):
    """修改本人登录名和/或邮箱。"""
    ensure_valid(validate_account_update(payload))
    account = require_credentials(
        store,
        payload.username_or_email,
        payload.password,
        message="Lack the necessary permissions to update this account.",
    )
    new_login, new_email = ensure_identity_change_allowed(
        store,
        settings,
        account,
        updated_login=payload.updated_login,
        updated_email=payload.updated_email_address,
    )

    previous_email = account.email
    with store_failure("Failed to update account."):
        store.update(account, user_name=new_login, email=new_email)
    sessions.clear_account(str(account.id))
    logger.info("account updated account_id=%s email_changed=%s", account.id, new_email is not None)

    with store_failure(CONFIRMATION_LINK_FAILED_MESSAGE):
        outcomes = notify_account_update(
            store,
            notifier,
            settings,
            account,
            previous_email=previous_email,
            base_url=request_base_url(request, settings),
        )
    message = (
        "Account updated successfully. Please check your new email for confirmation link. "
        "If you did not update your account please contact the support team."
        if new_email is not None
        else "Account updated successfully."
    )
    return success(request, delivery_message(message, *outcomes), account_change_data(account, outcomes))


@router.get(
    "/account/confirmemail",
    summary="确认邮箱",
    description="邮件中的确认链接，无需认证，也不区分接口版本。令牌一次有效。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[EmailConfirmationData],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def confirm_email(
    request: Request,
    user_id: str | None = Query(default=None, alias="userId", description="账号 ID。"),
    token: str | None = Query(default=None, description="确认令牌。"),
    store: CredentialStore = Depends(get_credential_store),
):
    """消费确认令牌，将账号邮箱标记为已确认。"""
    account = store.find_by_id(user_id) if user_id else None
    if account is None:
        raise not_found(ACCOUNT_NOT_FOUND_MESSAGE)

    with store_failure(CONFIRMATION_REQUEST_FAILED_MESSAGE):
        confirmed = store.confirm_email(account, token or "")
    if not confirmed:
        logger.warning("email confirmation token rejected account_id=%s", account.id)
        raise bad_request(CONFIRMATION_REQUEST_FAILED_MESSAGE)

    logger.info("email confirmed account_id=%s", account.id)
    return success(
        request,
        "The account successfully confirmed.",
        {"account_id": account.id, "email_confirmed": True},
    )


@router.post(
    "/account/confirmemail/resend",
    summary="重发确认邮件",
    description="请求体为邮箱字符串本身（JSON 字符串）。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[ResendConfirmationData],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def resend_confirmation(
    request: Request,
    email: str | None = Body(default=None, examples=["alice@example.com"]),
    store: CredentialStore = Depends(get_credential_store),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
):
    """为指定邮箱重新生成并投递确认链接。"""
    result = validate_email_address(email)
    if not result:
        logger.warning("resend confirmation rejected error=%s", result.error)
        raise bad_request(result.error, code="VALIDATION_ERROR")

    account = store.find_by_email(email)
    if account is None:
        logger.warning("resend confirmation for unknown account")
        raise not_found(ACCOUNT_NOT_FOUND_MESSAGE)

    with store_failure(CONFIRMATION_LINK_FAILED_MESSAGE):
        outcome = send_confirmation_link(
            store, notifier, settings, account, base_url=request_base_url(request, settings)
        )
    return success(
        request,
        delivery_message("Confirmation email sent. Please check your inbox.", outcome),
        {"notification": outcome.as_dict()},
    )


@router.post(
    "/account/logout",
    summary="登出",
    description="撤销当前 Bearer 令牌对应的服务端会话。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LogoutData],
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def logout(
    request: Request,
    session: AuthenticatedSession = Depends(get_current_session),
    sessions: TokenSessionStore = Depends(get_session_store),
):
    """登出当前会话。"""
    revoked = sessions.revoke(session.jti)
    logger.info("account signed out account_id=%s", session.account_id)
    return success(request, "Logout successful.", {"logged_out": True, "revoked": revoked})


@router.get(
    "/account/me",
    summary="当前登录账号",
    description="返回当前有效会话对应的账号信息。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[SessionData],
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def me(
    request: Request,
    session: AuthenticatedSession = Depends(get_current_session),
    store: CredentialStore = Depends(get_credential_store),
    sessions: TokenSessionStore = Depends(get_session_store),
):
    """查询当前登录账号。"""
    account = store.find_by_id(session.account_id)
    if account is None:
        # 账号已删除但会话仍在（例如 Redis 与数据库不同步）。
        sessions.revoke(session.jti)
        raise unauthorized("The session has ended. Please sign in again.")
    return success(
        request,
        "Account session is active.",
        {
            "account_id": account.id,
            "user": account.user_name,
            "email": account.email,
            "email_confirmed": account.email_confirmed,
            "roles": store.get_roles(account),
            "expiration": session.expires_at,
        },
    )
