import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, TypeVar

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from rulebooks.api import rulebooks_router, storage_router
from rulebooks.dependencies import get_database
from rulebooks.errors import RulebookError
from rulebooks.logging_config import configure_logging
from rulebooks.telemetry import emit_app_startup_event, emit_exception

configure_logging()

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _resolve_dependency(factory: Callable[[], T]) -> T:
    """Resolve a dependency while respecting FastAPI overrides."""

    override: Any | None = app.dependency_overrides.get(factory)
    resolved: Any = override if override is not None else factory
    return resolved() if callable(resolved) else resolved


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    emit_app_startup_event()
    _resolve_dependency(get_database).create_tables()
    yield


app = FastAPI(title="Rulebook Ingestion API", lifespan=lifespan)
app.include_router(rulebooks_router)
app.include_router(storage_router)


@app.exception_handler(RulebookError)
async def _handle_rulebook_error(request: Request, exc: RulebookError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    else:
        LOGGER.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(status_code=400, content={"error": "; ".join(messages) or "Invalid request"})


@app.exception_handler(Exception)
async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    emit_exception(module=__name__, error=exc, suggestion=f"{request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"
