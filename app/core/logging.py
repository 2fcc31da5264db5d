import logging
import sys
import time

import structlog
from fastapi import Request

logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging and structlog on top of it. Call once at startup."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


async def log_requests(request: Request, call_next):
    # заголовки не пишем, там лежит api key
    start_time = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "request_failed",
            method=request.method,
            path=request.url.path,
            query=request.url.query,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        raise
    duration_ms = (time.perf_counter() - start_time) * 1000

    logger.info(
        "request_handled",
        method=request.method,
        path=request.url.path,
        query=request.url.query,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    return response
