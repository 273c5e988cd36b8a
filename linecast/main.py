import os
import time
import traceback
import uuid
from collections.abc import Callable
from contextlib import asynccontextmanager, contextmanager
from functools import partial

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from linecast.api.errors import app_error_handler, http_exception_handler
from linecast.api.signaling import router as signaling_router
from linecast.app_config import ServerSettings
from linecast.domain.lifecycle.server_lifecycle import ServerLifecycle
from linecast.domain.signaling.signaling_domain import SignalingService
from linecast.services.integrations.rtc_transport import create_rtc_transport
from linecast.shared.api.errors import E_INTERNAL, E_INVALID_PARAMS
from linecast.shared.api.utils import api_failure, log_routes
from linecast.utils.app_errors import AppError
from linecast.utils.signals import announce as print_marker
from linecast.utils.signals import install_shutdown_handlers


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000

            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000

            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=E_INTERNAL,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(
                status_code=500,
                content=failure.model_dump(),
            )


async def app_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()

    logger.warning(
        "Validation error: path={} method={} errors={}",
        request.url.path,
        request.method,
        errors,
    )

    failure = api_failure(E_INVALID_PARAMS, errmesg=str(errors))

    return ORJSONResponse(status_code=400, content=failure.model_dump())


@asynccontextmanager
async def lifespan(server: FastAPI):
    logger.info("Application startup...")

    log_routes(server)

    yield

    logger.info("Application shutdown...")

    # in-flight sessions finish before the process exits
    await server.state.signaling_service.lifecycle.drain()

    logger.info("Server shutdown complete")


def create_app(signaling_service: SignalingService) -> FastAPI:
    app = FastAPI(
        version="1.0",
        title="linecast signaling",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.signaling_service = signaling_service

    app.add_middleware(HTTPLoggingMiddleware)

    app.add_exception_handler(RequestValidationError, app_validation_exception_handler)  # type: ignore
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore

    app.include_router(signaling_router)

    return app


def build_signaling_service(settings: ServerSettings) -> SignalingService:
    lifecycle = ServerLifecycle(
        file_path=settings.file,
        delay_ms=settings.delay,
        open_timeout=settings.session_open_timeout,
        close_grace=settings.close_grace,
    )
    return SignalingService(
        lifecycle,
        partial(create_rtc_transport, settings.stun or None),
        gathering_timeout=settings.gathering_timeout,
        max_offer_bytes=settings.max_offer_bytes,
    )


class LinecastServer(uvicorn.Server):
    """uvicorn server whose shutdown is driven by the process lifecycle.

    Signal handling is left to ``serve()`` so that a signal first moves the
    lifecycle to draining, and ``on_started`` runs once the socket is bound.
    """

    def __init__(self, config: uvicorn.Config, on_started: Callable[[], None] | None = None):
        super().__init__(config)
        self._on_started = on_started

    @contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        return None

    async def startup(self, sockets=None) -> None:
        await super().startup(sockets=sockets)
        if self.started and self._on_started is not None:
            self._on_started()


async def serve(settings: ServerSettings, *, announce: Callable[[str], None] = print_marker) -> int:
    """Run the signaling server until SIGINT/SIGTERM and every session drained.

    Returns:
        Process exit code: 0, or 1 if a fatal error was reported
    """
    host, port = settings.listen

    service = build_signaling_service(settings)
    lifecycle = service.lifecycle
    app = create_app(service)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        lifespan="on",
        log_config=None,
        log_level="warning",
        access_log=False,
    )

    def on_started() -> None:
        lifecycle.mark_listening()
        logger.info("Server listening on {}:{}", host, port)
        logger.info("Streaming file: {} (delay {}ms)", settings.file, settings.delay)
        announce(f"SERVER_PID={os.getpid()}")

    server = LinecastServer(config, on_started=on_started)

    def on_signal() -> None:
        if lifecycle.request_shutdown():
            logger.info("Shutting down server...")
        else:
            logger.warning("Second shutdown signal, aborting active sessions")
            lifecycle.abort()
        server.should_exit = True

    remove_handlers = install_shutdown_handlers(on_signal)
    try:
        await server.serve()
    finally:
        remove_handlers()

    return lifecycle.exit_code
