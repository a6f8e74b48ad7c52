"""
minibank API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..config import MinibankConfig, get_config
from ..deadlines import deadline
from ..errors import (
    AuthError, BankingError, ConflictError, DeadlineExceededError, InsufficientFundsError,
    NotFoundError, PermissionDeniedError, StoreError, ValidationError
)
from ..logging_config import get_logger, log_action, setup_logging
from .accounts import router as accounts_router
from .auth import BankingSystem
from .sessions import router as sessions_router
from .transfers import router as transfers_router


logger = get_logger("api")

# Most specific classes first
ERROR_STATUS_CODES = [
    (PermissionDeniedError, 403),
    (AuthError, 401),
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (InsufficientFundsError, 400),
    (StoreError, 503),
    (DeadlineExceededError, 504),
]


def status_for_error(error: BankingError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 400


class RequestDeadline:
    """
    Middleware giving every request a deadline

    The deadline is enforced where work commits: a store refuses to commit
    once it has passed and rolls back, and the error handler answers 504.
    A request that commits in time is never reported as timed out.
    """

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds

    async def __call__(self, request: Request, call_next):
        with deadline(self.timeout_seconds):
            return await call_next(request)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def install_error_handlers(app: FastAPI) -> None:
    """Translate every failure into a JSON ``{"error": ...}`` body"""

    @app.exception_handler(BankingError)
    async def banking_error_handler(request: Request, exc: BankingError):
        status_code = status_for_error(exc)
        if isinstance(exc, StoreError):
            logger.error("Storage failure on %s: %s", request.url.path, exc)
            return _error_response(status_code, "Storage unavailable")
        if isinstance(exc, DeadlineExceededError):
            log_action(logger, "warning", "Request deadline exceeded, work rolled back",
                       action="timeout", path=request.url.path)
            return _error_response(status_code, "Request timed out")
        return _error_response(status_code, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            message = f"Invalid request: {location}: {first.get('msg', 'invalid value')}"
        else:
            message = "Invalid request"
        return _error_response(400, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return _error_response(500, "Internal server error")


def create_app(system: Optional[BankingSystem] = None,
               config: Optional[MinibankConfig] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    When ``system`` is omitted it is built from ``config`` at startup and
    closed at shutdown.
    """
    config = config or get_config()
    setup_logging(config.log_level, log_file=config.log_file)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, "banking_system", None) is None:
            owned = BankingSystem.from_config(config)
            app.state.banking_system = owned
            logger.info("Banking system initialized with %s storage", config.storage_backend)
        try:
            yield
        finally:
            if owned is not None:
                owned.close()
                app.state.banking_system = None

    app = FastAPI(
        title="minibank API",
        description="Accounts, session tokens and atomic balance transfers",
        version=__version__,
        lifespan=lifespan
    )
    app.state.banking_system = system

    app.middleware("http")(RequestDeadline(config.request_timeout_seconds))
    install_error_handlers(app)

    app.include_router(accounts_router, prefix="/account", tags=["Accounts"])
    app.include_router(transfers_router, prefix="/transfer", tags=["Transfers"])
    app.include_router(sessions_router, prefix="/login", tags=["Sessions"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "minibank",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "minibank API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "accounts": "/account",
                "transfer": "/transfer",
                "login": "/login",
            }
        }

    return app


def run_server(config: Optional[MinibankConfig] = None):
    """Run the API server with uvicorn"""
    config = config or get_config()
    uvicorn.run(
        create_app(config=config),
        host=config.api_host,
        port=config.api_port,
        log_level=config.log_level.lower()
    )
