"""应用异常处理注册。"""

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bookshop_account.utils.response import DEFAULT_ERROR_MESSAGE, error_payload

logger = logging.getLogger(__name__)

NULL_MODEL_MESSAGE = "Account model cannot be null."
INVALID_PAYLOAD_MESSAGE = "The request payload is invalid."


def api_error(status_code: int, code: str, message: str, **details: object) -> HTTPException:
    """构造带业务错误码的协议异常，附加字段（error/help/reason）进入 details。"""
    detail: dict[str, object] = {"code": code, "message": message}
    extra = {key: value for key, value in details.items() if value is not None}
    if extra:
        detail["details"] = extra
    return HTTPException(status_code=status_code, detail=detail)


def bad_request(message: str, *, code: str = "BAD_REQUEST", **details: object) -> HTTPException:
    return api_error(status.HTTP_400_BAD_REQUEST, code, message, **details)


def unauthorized(message: str, **details: object) -> HTTPException:
    return api_error(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", message, **details)


def not_found(message: str, **details: object) -> HTTPException:
    return api_error(status.HTTP_404_NOT_FOUND, "NOT_FOUND", message, **details)


def _default_http_error_code(status_code: int) -> str:
    if status_code == status.HTTP_400_BAD_REQUEST:
        return "BAD_REQUEST"
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return "UNAUTHORIZED"
    if status_code == status.HTTP_403_FORBIDDEN:
        return "FORBIDDEN"
    if status_code == status.HTTP_404_NOT_FOUND:
        return "NOT_FOUND"
    if status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        return "METHOD_NOT_ALLOWED"
    if status_code == status.HTTP_409_CONFLICT:
        return "CONFLICT"
    return "HTTP_ERROR"


def _default_http_message(status_code: int) -> str:
    if status_code == status.HTTP_400_BAD_REQUEST:
        return "The request is invalid."
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return "Authentication is required to access this resource."
    if status_code == status.HTTP_403_FORBIDDEN:
        return "Access to this resource is forbidden."
    if status_code == status.HTTP_404_NOT_FOUND:
        return "The requested resource was not found."
    if status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        return "The request method is not allowed for this resource."
    if status_code == status.HTTP_409_CONFLICT:
        return "The request conflicts with the current state of the account."
    return "The request could not be processed."


def _parse_http_detail(detail: object, status_code: int) -> tuple[str, str, dict[str, object]]:
    code = _default_http_error_code(status_code)
    message = _default_http_message(status_code)
    details: dict[str, object] = {"status_code": status_code}

    if isinstance(detail, dict):
        code = str(detail.get("code") or code)
        message = str(detail.get("message") or message)
        raw_details = detail.get("details")
        if isinstance(raw_details, dict):
            details.update(raw_details)
        elif raw_details is not None:
            details["details"] = raw_details
        return code, message, details

    # Starlette 默认的 404/405 等文本说明统一替换为固定文案。
    if detail is not None and not isinstance(detail, str):
        details["detail"] = detail
    return code, message, details


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """将协议异常统一包装为标准错误结构。"""
    code, message, details = _parse_http_detail(exc.detail, exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=code, message=message, details=details),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """请求结构不合法（缺失请求体、字段类型错误）统一返回 400。"""
    errors = exc.errors()
    normalized_errors = [
        {
            "field": ".".join(str(item) for item in err.get("loc", []) if item != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in errors
    ]
    body_missing = any(
        err.get("type") == "missing" and tuple(err.get("loc", ())) == ("body",) for err in errors
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_payload(
            request,
            code="VALIDATION_ERROR",
            message=NULL_MODEL_MESSAGE if body_missing else INVALID_PAYLOAD_MESSAGE,
            details={
                "status_code": status.HTTP_400_BAD_REQUEST,
                "errors": normalized_errors,
            },
        ),
    )


async def unexpected_exception_handler(request: Request, exc: Exception):
    """处理未捕获异常，避免内部细节泄露。"""
    logger.error(
        "unhandled error method=%s path=%s",
        request.method,
        request.url.path,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(
            request,
            code="INTERNAL_ERROR",
            message=DEFAULT_ERROR_MESSAGE,
            details={"status_code": status.HTTP_500_INTERNAL_SERVER_ERROR},
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """集中注册异常处理器。"""
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)
