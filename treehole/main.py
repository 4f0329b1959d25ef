import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import (
    DatabaseError,
    DBAPIError,
    IntegrityError,
    OperationalError,
)
from sqlalchemy.exc import (
    TimeoutError as SQLAlchemyTimeoutError,
)

from treehole.api import favorites
from treehole.cache import close_redis
from treehole.db.connection import close_database, get_database
from treehole.db.models import Base
from treehole.schemas.error import ErrorType, ValidationErrorDetail
from treehole.services.favorites import (
    ConflictError,
    FavoritesError,
    ForbiddenError,
    NotFoundError,
)
from treehole.settings import get_settings
from treehole.utils.error_responses import (
    build_error_response,
    build_validation_error_response,
    error_json_response,
)
from treehole.utils.request_context import (
    RequestIdLogFilter,
    get_request_id,
    resolve_request_id,
    set_request_id,
)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level_numeric,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdLogFilter())
logger = logging.getLogger(__name__)

# Domain error -> (HTTP status, error type, headline)
_DOMAIN_ERRORS: dict[type[FavoritesError], tuple[int, ErrorType, str]] = {
    NotFoundError: (status.HTTP_404_NOT_FOUND, ErrorType.NOT_FOUND, "Resource not found"),
    ForbiddenError: (
        status.HTTP_403_FORBIDDEN,
        ErrorType.AUTHORIZATION_ERROR,
        "Operation not allowed",
    ),
    ConflictError: (status.HTTP_409_CONFLICT, ErrorType.CONFLICT, "Favorite already exists"),
}


def _sanitize_database_url(url: str) -> str:
    """Mask the password of a connection URL before it is logged."""
    if "://" not in url:
        return url

    scheme, rest = url.split("://", 1)
    if "@" in rest:
        auth, host_db = rest.split("@", 1)
        if ":" in auth:
            user, _ = auth.split(":", 1)
            return f"{scheme}://{user}:***@{host_db}"
    return url


def validate_environment() -> None:
    """Log warnings for optional configuration that is missing."""

    warnings = settings.optional_config_warnings()
    if warnings:
        logger.warning("Optional configuration is incomplete:")
        for warning in warnings:
            logger.warning("  - %s", warning)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Prepare storage on startup and release pools on shutdown."""
    validate_environment()

    logger.info(
        "Primary database: %s (%s), %d read replica(s)",
        _sanitize_database_url(settings.resolved_database_url),
        settings.database_type,
        len(settings.resolved_replica_urls),
    )

    database = get_database()
    if settings.database_type == "sqlite":
        # Local development has no migration step.
        async with database.primary.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    else:
        logger.info("PostgreSQL mode - ensure Alembic migrations are up to date")

    yield

    logger.info("Shutting down treehole favorites API")
    await close_redis()
    await close_database()


app = FastAPI(
    title="Treehole Favorites API",
    version="0.1.0",
    description="Favorite holes and favorite groups for the treehole forum.",
    lifespan=lifespan,
    redirect_slashes=False,
)

if settings.cors_allow_origins:
    logger.info("Configured CORS allow_origins: %s", ", ".join(settings.cors_allow_origins))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Tag the request with an id, reusing the gateway's when it sent one."""
    request_id = resolve_request_id(request.headers.get("X-Request-ID"))
    set_request_id(request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Exception handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Flatten pydantic errors into one entry per rejected field."""
    errors = [
        ValidationErrorDetail(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            value=error.get("input"),
        )
        for error in exc.errors()
    ]
    logger.warning("Validation failed for %s: %d error(s)", request.url.path, len(errors))

    return error_json_response(
        build_validation_error_response(errors=errors, path=str(request.url.path))
    )


@app.exception_handler(NotFoundError)
@app.exception_handler(ForbiddenError)
@app.exception_handler(ConflictError)
async def favorites_exception_handler(request: Request, exc: FavoritesError):
    """Render a favorites domain error with the status its class maps to."""
    status_code, error_type, message = next(
        _DOMAIN_ERRORS[cls] for cls in type(exc).__mro__ if cls in _DOMAIN_ERRORS
    )
    logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return error_json_response(
        build_error_response(
            error_type=error_type,
            message=message,
            detail=exc.message,
            status_code=status_code,
            path=str(request.url.path),
        )
    )


def _storage_error_response(
    request: Request,
    exc: Exception,
    *,
    error_type: ErrorType,
    message: str,
    detail: str,
    status_code: int,
    retry_after: int | None = None,
):
    logger.error(
        "%s for request %s to %s: %s",
        message,
        get_request_id(),
        request.url.path,
        exc,
    )
    return error_json_response(
        build_error_response(
            error_type=error_type,
            message=message,
            detail=detail,
            status_code=status_code,
            path=str(request.url.path),
            retry_after=retry_after,
        )
    )


@app.exception_handler(OperationalError)
@app.exception_handler(DBAPIError)
async def database_connection_exception_handler(request: Request, exc: Exception):
    """The primary or a replica could not be reached."""
    return _storage_error_response(
        request,
        exc,
        error_type=ErrorType.DATABASE_ERROR,
        message="Storage unavailable",
        detail="The favorites store is not reachable right now. Retry shortly.",
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        retry_after=5,
    )


@app.exception_handler(SQLAlchemyTimeoutError)
async def database_timeout_exception_handler(request: Request, exc: SQLAlchemyTimeoutError):
    """No pooled connection became free in time."""
    return _storage_error_response(
        request,
        exc,
        error_type=ErrorType.TIMEOUT_ERROR,
        message="Storage timed out",
        detail="The database did not answer in time. Please try again.",
        status_code=status.HTTP_504_GATEWAY_TIMEOUT,
        retry_after=3,
    )


@app.exception_handler(IntegrityError)
async def database_integrity_exception_handler(request: Request, exc: IntegrityError):
    """Constraint violations the repository did not translate into a domain error."""
    return _storage_error_response(
        request,
        exc,
        error_type=ErrorType.CONFLICT,
        message="Constraint violation",
        detail="The change conflicts with existing favorites data.",
        status_code=status.HTTP_409_CONFLICT,
    )


@app.exception_handler(DatabaseError)
async def database_generic_exception_handler(request: Request, exc: DatabaseError):
    """Any other driver error."""
    return _storage_error_response(
        request,
        exc,
        error_type=ErrorType.DATABASE_ERROR,
        message="Storage error",
        detail="Reading or writing favorites failed.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Last resort for bugs; the traceback goes to the log, not the client."""
    logger.exception("Unhandled %s on %s", type(exc).__name__, request.url.path)
    # Runs outside the request-id middleware, so the header is set here.
    response = error_json_response(
        build_error_response(
            error_type=ErrorType.INTERNAL_ERROR,
            message="Internal server error",
            detail=type(exc).__name__,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            path=str(request.url.path),
        )
    )
    request_id = get_request_id()
    if request_id:
        response.headers["X-Request-ID"] = request_id
    return response


@app.get("/health", tags=["system"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(favorites.router, prefix="/user", tags=["favorites"])
