"""管理员账号管理接口：修改其他账号的资料与密码。"""

import logging

from fastapi import APIRouter, Depends, Request, status

from bookshop_account.api.account import CONFIRMATION_LINK_FAILED_MESSAGE, account_change_data
from bookshop_account.core.config import Settings
from bookshop_account.core.security import TokenSessionStore
from bookshop_account.dependencies import get_app_settings, get_credential_store, get_notifier, get_session_store
from bookshop_account.schemas.account import AdminPasswordResetRequest, AdminUpdateRequest
from bookshop_account.schemas.common import ErrorResponse, SuccessResponse
from bookshop_account.schemas.responses import AccountChangeData
from bookshop_account.services.authorization import (
    ensure_identity_change_allowed,
    ensure_valid,
    require_admin,
    require_credentials,
    require_target,
    store_failure,
)
from bookshop_account.services.confirmation import (
    delivery_message,
    dispatch,
    info_message,
    notify_account_update,
    request_base_url,
)
from bookshop_account.services.credential_store import CredentialStore, CredentialStoreError
from bookshop_account.services.notifier import Notifier
from bookshop_account.services.validation import validate_admin_password_reset, validate_admin_update
from bookshop_account.utils.response import success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

ADMIN_UNAUTHORIZED_MESSAGE = "Lack the necessary permissions to manage this account."


@router.put(
    "/update/password",
    summary="管理员重置账号密码",
    description="管理员凭据校验通过后，为目标账号（邮箱或登录名）设置新密码并通知目标邮箱。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AccountChangeData],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def reset_password(
    payload: AdminPasswordResetRequest,
    request: Request,
    store: CredentialStore = Depends(get_credential_store),
    notifier: Notifier = Depends(get_notifier),
    sessions: TokenSessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_app_settings),
):
    """通过一次性重置令牌为目标账号设置新密码。"""
    ensure_valid(validate_admin_password_reset(payload))
    actor = require_credentials(
        store, payload.username_or_email, payload.password, message=ADMIN_UNAUTHORIZED_MESSAGE
    )
    require_admin(store, actor, message=ADMIN_UNAUTHORIZED_MESSAGE)
    target = require_target(store, payload.user_identifier)

    with store_failure("Failed to reset account password."):
        token = store.generate_password_reset_token(target)
        if not store.reset_password(target, token, payload.new_user_password):
            raise CredentialStoreError(f"password reset token rejected account_id={target.id}")
    sessions.clear_account(str(target.id))
    logger.info("account password reset by admin admin=%s target_id=%s", actor.user_name, target.id)

    outcome = dispatch(
        notifier,
        info_message(
            target.email,
            "The account password has been changed.",
            "Your account password has been reset by an administrator. "
            "If you did not request it, please contact the support team immediately.",
        ),
        settings,
    )
    return success(
        request,
        delivery_message("The account password was reset successfully.", outcome),
        account_change_data(target, [outcome]),
    )


@router.put(
    "/update",
    summary="管理员修改账号资料",
    description="修改目标账号的登录名和/或邮箱；邮箱变更后目标账号需重新确认。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AccountChangeData],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def update_account(
    payload: AdminUpdateRequest,
    request: Request,
    store: CredentialStore = Depends(get_credential_store),
    notifier: Notifier = Depends(get_notifier),
    sessions: TokenSessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_app_settings),
):
    """修改目标账号的登录名和/或邮箱。"""
    ensure_valid(validate_admin_update(payload))
    actor = require_credentials(
        store, payload.username_or_email, payload.password, message=ADMIN_UNAUTHORIZED_MESSAGE
    )
    require_admin(store, actor, message=ADMIN_UNAUTHORIZED_MESSAGE)
    target = require_target(store, payload.user_identifier)
    new_login, new_email = ensure_identity_change_allowed(
        store,
        settings,
        target,
        updated_login=payload.updated_login,
        updated_email=payload.updated_email_address,
    )

    previous_email = target.email
    with store_failure("Failed to update account."):
        store.update(target, user_name=new_login, email=new_email)
    sessions.clear_account(str(target.id))
    logger.info("account updated by admin admin=%s target_id=%s", actor.user_name, target.id)

    with store_failure(CONFIRMATION_LINK_FAILED_MESSAGE):
        outcomes = notify_account_update(
            store,
            notifier,
            settings,
            target,
            previous_email=previous_email,
            base_url=request_base_url(request, settings),
        )
    message = (
        "The account was updated successfully. A confirmation link was sent to the new email address."
        if new_email is not None
        else "The account was updated successfully."
    )
    return success(request, delivery_message(message, *outcomes), account_change_data(target, outcomes))
