"""
ClassDesk

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from classdesk.api.deps import get_request_id
from classdesk.api.middleware.request_id import RequestIdMiddleware
from classdesk.api.v1 import router as api_v1_router
from classdesk.config import Settings, get_settings
from classdesk.database import (
    close_db,
    create_engine_for_url,
    create_session_maker,
    init_db,
    is_memory_url,
)
from classdesk.kernel.errors import (
    ClassDeskError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TransientIOError,
    ValidationError,
)
from classdesk.kernel.storage.blob import LocalBlobStore
from classdesk.kernel.store import ChangeFeed, MemoryStore, SqlStore
from classdesk.logging_config import configure_logging, get_logger
from classdesk.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)

ERROR_STATUS = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ConflictError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    TransientIOError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def build_state(app: FastAPI, config: Settings) -> None:
    """Construct the feed, store and blob store shared by every request."""
    feed = ChangeFeed(maxsize=config.feed_queue_size)
    app.state.feed = feed
    app.state.engine = None
    if is_memory_url(config.database_url):
        app.state.store = MemoryStore(feed)
    else:
        engine = create_engine_for_url(config.database_url, echo=config.debug)
        await init_db(engine)
        app.state.engine = engine
        app.state.store = SqlStore(create_session_maker(engine), feed)
    app.state.blobs = LocalBlobStore(config.attachments_dir, config.attachments_base_url)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Runs startup and shutdown tasks.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await build_state(app, settings)
    logger.info("Store ready", extra={"store": type(app.state.store).__name__})

    yield

    logger.info("Shutting down...")
    if app.state.engine is not None:
        await close_db(app.state.engine)
        logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    ClassDesk

    Anonymous in-class questions and help calls, triaged live by SAs.

    ## Features

    - **Courses**: SAs create password-protected courses; participants join by code
    - **Threads**: one anonymous thread per participant, numbered per course
    - **Locks**: one SA owns a thread at a time; others cannot reply
    - **Read cursors**: per-role read state, never moving backwards
    - **Calls**: help calls grouped per thread, cleared in one step
    - **Feed**: Server-Sent Events of every committed change
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Last added = outermost; CORS wraps everything
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _headers(request: Request) -> dict:
    req_id = get_request_id(request)
    return {"X-Request-ID": req_id} if req_id else {}


@app.exception_handler(ClassDeskError)
async def classdesk_exception_handler(request: Request, exc: ClassDeskError):
    """Map domain errors to HTTP statuses; the viewer shows them as notices."""
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    content = {"detail": exc.message, "code": type(exc).__name__}
    if isinstance(exc, ValidationError) and exc.field:
        content["field"] = exc.field
    if isinstance(exc, ConflictError) and exc.owner_id:
        content["owner_id"] = exc.owner_id
        content["owner_name"] = exc.owner_name
    if status_code >= 500:
        content["request_id"] = get_request_id(request)
    return JSONResponse(status_code=status_code, content=content, headers=_headers(request))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    content = {"detail": exc.detail}
    req_id = get_request_id(request)
    if req_id and exc.status_code >= 500:
        content["request_id"] = req_id
    headers = {**(exc.headers or {}), **_headers(request)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    content = {"detail": "Validation error", "errors": errors}
    req_id = get_request_id(request)
    if req_id:
        content["request_id"] = req_id
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=content,
        headers=_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    req_id = get_request_id(request)
    if settings.debug:
        content = {"detail": str(exc), "type": type(exc).__name__, "request_id": req_id}
    else:
        content = {"detail": "Internal server error", "request_id": req_id}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=_headers(request),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Check application health."""
    store = getattr(request.app.state, "store", None)
    return HealthResponse(
        status="ok" if store is not None else "starting",
        version=settings.version,
        store=type(store).__name__ if store is not None else "none",
    )


app.include_router(api_v1_router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "classdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
