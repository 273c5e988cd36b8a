from fastapi import Request
from fastapi.responses import ORJSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from linecast.shared.api.errors import E_INTERNAL, E_METHOD_NOT_ALLOWED, E_NOT_FOUND
from linecast.shared.api.utils import ApiFailure, make_response
from linecast.utils.app_errors import AppError, AppErrorCode

_HTTP_STATUS_ERRCODES = {
    404: E_NOT_FOUND,
    405: E_METHOD_NOT_ALLOWED,
}


async def app_error_handler(request: Request, exc: AppError) -> ORJSONResponse:
    """
    Custom exception handler for AppError.
    Converts AppError to ApiFailure and returns via make_response.
    """
    # Log with the caller info captured when AppError was raised
    log_msg = f"{exc.errcode} {exc.erresid} msg={exc.errmesg} caller={exc.caller_info}"
    if exc.errcode == AppErrorCode.E_INTERNAL_ERROR.value or exc.status_code >= 500:
        logger.error(log_msg)
    else:
        logger.warning(log_msg)

    failure = ApiFailure(errcode=exc.errcode, errmesg=exc.errmesg, erresid=exc.erresid)
    return make_response(failure, status_code=exc.status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
    """
    Render routing errors (404, 405) with the same failure envelope.
    """
    errcode = _HTTP_STATUS_ERRCODES.get(exc.status_code, E_INTERNAL)

    logger.warning(
        "HTTP {} on {} {}: {}", exc.status_code, request.method, request.url.path, exc.detail
    )

    failure = ApiFailure(errcode=errcode, errmesg=str(exc.detail))
    response = make_response(failure, status_code=exc.status_code)
    if exc.headers:
        response.headers.update(exc.headers)
    return response
