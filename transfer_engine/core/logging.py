from __future__ import annotations

import logging
import sys
import time
import uuid
from typing import Any, Dict

import structlog
from fastapi import Request


def _add_log_level(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    event_dict["level"] = method_name
    return event_dict


def configure_logging(env: str = "development", level: str = "INFO") -> None:
    """Configure structlog on top of stdlib logging, writing to stdout.

    Development gets the colored console renderer; staging and production
    get one JSON object per line.
    """
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_log_level,
        timestamper,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    # basicConfig is a no-op once handlers exist, so apply the level directly
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))

    renderer: Any
    if env == "development":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


REQUEST_ID_HEADER = "x-request-id"


def bind_request_context(request: Request) -> str:
    """Bind the caller's request id (or a fresh one) into structlog contextvars."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    return request_id


async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Tag every log line of a request with its id and log the request latency.

    The id is echoed back in the ``x-request-id`` response header so callers
    can correlate a matching run with the engine's stage logs.
    """
    started = time.perf_counter()
    request_id = bind_request_context(request)
    log = structlog.get_logger("http")

    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        log.info(
            "http.request",
            status=status_code,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        structlog.contextvars.clear_contextvars()

    response.headers[REQUEST_ID_HEADER] = request_id
    return response
