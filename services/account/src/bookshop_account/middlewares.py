"""应用中间件注册。"""

import hmac
from time import perf_counter
import uuid

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from bookshop_account.utils.response import error_payload

API_VERSION_HEADER = "Api-Version"
SUPPORTED_VERSIONS_HEADER = "Api-Supported-Versions"
API_KEY_HEADER = "AuthApiKey"
# 不区分版本、不校验接口密钥的路径（确认链接直接在邮件中打开）。
_NEUTRAL_PATH = "/account/confirmemail"
_NEUTRAL_PREFIX = "/health/"


def _is_neutral_path(path: str) -> bool:
    return path == _NEUTRAL_PATH or path.startswith(_NEUTRAL_PREFIX)


def normalize_version(raw: str) -> str:
    """`1` 与 `1.0` 视为同一版本。"""
    value = raw.strip().lower().removeprefix("v")
    if value and "." not in value:
        value = f"{value}.0"
    return value


async def request_id_middleware(request: Request, call_next):
    """注入请求追踪 ID，并通过响应头返回。"""
    request.state.request_id = str(uuid.uuid4())
    request.state.request_started_at = perf_counter()
    response = await call_next(request)
    response.headers["X-Request-Id"] = request.state.request_id
    elapsed = perf_counter() - request.state.request_started_at
    response.headers["X-Process-Time-Ms"] = str(round(elapsed * 1000, 2))
    return response


async def api_version_middleware(request: Request, call_next):
    """按 Api-Version 请求头选择接口版本，缺省使用默认版本。"""
    settings = request.app.state.settings
    supported = settings.supported_versions
    advertised = ", ".join(supported)

    raw = request.headers.get(API_VERSION_HEADER)
    if raw is None or not raw.strip() or _is_neutral_path(request.url.path):
        request.state.api_version = supported[0]
    else:
        version = normalize_version(raw)
        if version not in {normalize_version(item) for item in supported}:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=error_payload(
                    request,
                    code="UNSUPPORTED_API_VERSION",
                    message=f"The API version '{raw.strip()}' is not supported.",
                    details={"status_code": status.HTTP_400_BAD_REQUEST, "supported_versions": supported},
                ),
                headers={SUPPORTED_VERSIONS_HEADER: advertised},
            )
        request.state.api_version = version

    response = await call_next(request)
    response.headers[SUPPORTED_VERSIONS_HEADER] = advertised
    return response


async def api_key_middleware(request: Request, call_next):
    """配置了接口密钥时，要求请求携带匹配的 AuthApiKey 头。"""
    expected = request.app.state.settings.auth_api_key
    if expected is None or _is_neutral_path(request.url.path):
        return await call_next(request)

    supplied = request.headers.get(API_KEY_HEADER, "")
    if not hmac.compare_digest(supplied.encode("utf-8"), expected.get_secret_value().encode("utf-8")):
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content=error_payload(
                request,
                code="UNAUTHORIZED",
                message="A valid API key is required.",
                details={"status_code": status.HTTP_401_UNAUTHORIZED},
            ),
        )
    return await call_next(request)


def register_middlewares(app: FastAPI) -> None:
    """集中注册中间件。后注册的在外层，请求 ID 需最先注入。"""
    app.middleware("http")(api_key_middleware)
    app.middleware("http")(api_version_middleware)
    app.middleware("http")(request_id_middleware)
