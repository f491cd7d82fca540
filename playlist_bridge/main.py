from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from playlist_bridge.api.routes import router
from playlist_bridge.dependencies import get_settings, get_telemetry
from playlist_bridge.logging_config import configure_application_logging

LOGGER = logging.getLogger("playlist_bridge.http")
REQUEST_ID_HEADER = "X-Request-ID"

RequestHandler = Callable[[Request], Awaitable[Response]]


def health_check() -> dict[str, str]:
    return {"status": "ok"}


def _request_id_for(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
    return incoming or uuid4().hex


async def _track_request(request: Request, call_next: RequestHandler) -> Response:
    request_id = _request_id_for(request)
    path = request.url.path
    context_tokens = bind_contextvars(
        http_request_id=request_id,
        http_method=request.method,
        http_path=path,
    )
    try:
        with get_telemetry().span(
            "http.request",
            request_id=request_id,
            method=request.method,
            path=path,
        ) as span:
            response = await call_next(request)
            span["status_code"] = response.status_code
        response.headers[REQUEST_ID_HEADER] = request_id
        if response.status_code >= 500:
            LOGGER.warning(
                "request failed method=%s path=%s status=%s",
                request.method,
                path,
                response.status_code,
            )
        return response
    finally:
        reset_contextvars(**context_tokens)


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    log_file = configure_application_logging(get_settings())
    LOGGER.info("playlist bridge starting log_file=%s", log_file)
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="Playlist Bridge API",
        version="0.1.0",
        description="Copies playlists between Spotify and YouTube within provider quota.",
        lifespan=app_lifespan,
    )
    app.middleware("http")(_track_request)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        tags=["system"],
        operation_id="health_check",
    )
    return app


app = create_app()
