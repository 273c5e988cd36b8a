"""Application error types.

Every failure the streaming core can report is an ``AppError`` carrying an
error code, a human readable message and the HTTP status used when it crosses
the signaling endpoint. The caller location is captured when the error is
created so logs point at the raise site rather than at the handler.
"""

from __future__ import annotations

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class HttpStatusCode(IntEnum):
    OK = 200
    BAD_REQUEST = 400
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    CONFLICT = 409
    PAYLOAD_TOO_LARGE = 413
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503


class AppErrorCode(str, Enum):
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_MALFORMED_DESCRIPTION = "E_MALFORMED_DESCRIPTION"
    E_PAYLOAD_TOO_LARGE = "E_PAYLOAD_TOO_LARGE"
    E_NEGOTIATION = "E_NEGOTIATION"
    E_NEGOTIATION_TIMEOUT = "E_NEGOTIATION_TIMEOUT"
    E_TRANSPORT = "E_TRANSPORT"
    E_FILE_IO = "E_FILE_IO"
    E_INVALID_STATE = "E_INVALID_STATE"
    E_DRAINING = "E_DRAINING"
    E_CONFIG = "E_CONFIG"

    def __str__(self) -> str:
        return self.value


def _caller_info(depth: int) -> str:
    try:
        frame = inspect.stack(0)[depth]
    except IndexError:
        return "unknown"
    module = inspect.getmodule(frame.frame)
    module_name = module.__name__ if module and getattr(module, "__name__", None) else frame.filename
    return f"{module_name}:{frame.function}:{frame.lineno}"


class AppError(Exception):
    """Base error with an error code, message and HTTP status."""

    default_errcode: AppErrorCode = AppErrorCode.E_INTERNAL_ERROR
    default_status_code: HttpStatusCode = HttpStatusCode.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        errmesg: str,
        *,
        errcode: AppErrorCode | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(errmesg)
        self.errmesg = errmesg
        self.errcode = str(errcode or self.default_errcode)
        self.status_code = int(status_code or self.default_status_code)
        self.erresid = uuid4().hex[:10]
        # skip this frame and any subclass __init__ frames
        depth = 2
        for klass in type(self).__mro__:
            if klass is AppError:
                break
            if "__init__" in klass.__dict__:
                depth += 1
        self.caller_info = _caller_info(depth)

    def __str__(self) -> str:
        return self.errmesg


class NegotiationError(AppError):
    """Offer/answer exchange was malformed, rejected or timed out."""

    default_errcode = AppErrorCode.E_NEGOTIATION


class MalformedDescriptionError(NegotiationError):
    """A serialized session description could not be parsed."""

    default_errcode = AppErrorCode.E_MALFORMED_DESCRIPTION
    default_status_code = HttpStatusCode.BAD_REQUEST


class TransportError(AppError):
    """Channel closed or a send/receive failed mid-stream."""

    default_errcode = AppErrorCode.E_TRANSPORT


class FileIOError(AppError):
    """Opening, creating, reading or writing a file failed."""

    default_errcode = AppErrorCode.E_FILE_IO


class LifecycleError(AppError):
    """An illegal lifecycle transition was requested."""

    default_errcode = AppErrorCode.E_INVALID_STATE
    default_status_code = HttpStatusCode.CONFLICT


class ConfigError(AppError):
    default_errcode = AppErrorCode.E_CONFIG
    default_status_code = HttpStatusCode.BAD_REQUEST


class EndOfStream(Exception):
    """Expected end of a line stream.

    Delivered on the error stream of a line source but treated as a normal,
    successful completion rather than a failure.
    """


__all__ = [
    "AppError",
    "AppErrorCode",
    "ConfigError",
    "EndOfStream",
    "FileIOError",
    "HttpStatusCode",
    "LifecycleError",
    "MalformedDescriptionError",
    "NegotiationError",
    "TransportError",
]
