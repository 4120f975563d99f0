import json
import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware

from score_analytics.config import logging_settings, settings
from score_analytics.dependencies.database import get_sessionmanager, initialize_db
from score_analytics.routers import analytics, students

# LogRecord attributes; anything else on a record came in through ``extra``
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class CustomFormatter(logging.Formatter):
    """Text or JSON lines; ``extra`` fields are appended as key=value pairs or merged into the JSON object."""

    def __init__(self, use_json: bool = False, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.use_json = use_json

    def format(self, record: logging.LogRecord) -> str:
        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}

        if not self.use_json:
            base = super().format(record)
            if not extra:
                return base
            return f"{base} | " + " ".join(f"{k}={v}" for k, v in extra.items())

        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **extra,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging() -> None:
    root = logging.getLogger()
    if any(isinstance(h.formatter, CustomFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(
        CustomFormatter(
            use_json=logging_settings.LOG_FORMAT == "json",
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    )
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging_settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context for application startup and shutdown."""
    setup_logging()

    sessionmanager = get_sessionmanager()
    async with initialize_db(sessionmanager):
        yield


app = FastAPI(title="Exam Score Analytics", lifespan=lifespan)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log one line per API request with its query string and timing.

    Every response carries ``X-Request-ID`` and ``X-Response-Time``. Errors
    that escape the routers are logged and, outside dev, answered with a JSON
    error body carrying the same request id.
    """

    logger = logging.getLogger("score_analytics.http")

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/health":
            return await call_next(request)

        request_id = uuid.uuid4().hex[:12]
        start_time = time.perf_counter()
        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "query": request.url.query or None,
        }

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            self.logger.error("request failed", exc_info=exc, extra={**context, "duration_ms": duration_ms})
            if logging_settings.ENV == "dev":
                raise
            response = JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
                    "message": "An unexpected error occurred",
                    "path": request.url.path,
                    "method": request.method,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "request_id": request_id,
                },
            )
        else:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            log = self.logger.warning if response.status_code >= 400 else self.logger.info
            log("request completed", extra={**context, "status": response.status_code, "duration_ms": duration_ms})

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response


app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include routers
app.include_router(analytics.router)
app.include_router(students.router)


@app.get("/health", status_code=status.HTTP_200_OK)
def health() -> dict[str, str]:
    return {"status": "healthy"}


@app.get("/", status_code=status.HTTP_200_OK)
def root() -> dict[str, Any]:
    return {"success": True, "service": "score-analytics"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
