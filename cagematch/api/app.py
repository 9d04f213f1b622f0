"""
FastAPI application for CageMatch.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..accounts import AccountManager, TokenService
from ..challenge import ChallengeManager
from ..config import AppConfig, DatabaseConfig, get_config, get_db_config
from ..database import ChallengeOps, DatabaseManager, UserOps, create_indexes
from ..errors import AppError
from .deps import Services
from .routes import challenges, fighters, users

logger = structlog.get_logger(__name__)


def build_services(database: AsyncIOMotorDatabase, config: AppConfig,
                   db_config: DatabaseConfig) -> Services:
    """Wire stores and managers around one database handle."""
    user_ops = UserOps(database, db_config)
    challenge_ops = ChallengeOps(database, db_config)
    tokens = TokenService(config)
    return Services(
        config=config,
        tokens=tokens,
        accounts=AccountManager(user_ops, tokens, config),
        challenges=ChallengeManager(challenge_ops, user_ops),
    )


def create_app(config: Optional[AppConfig] = None, db_config: Optional[DatabaseConfig] = None,
               database: Optional[AsyncIOMotorDatabase] = None) -> FastAPI:
    """Build the application.

    Pass `database` to run against an existing handle (tests); otherwise a
    MongoDB connection is opened from `config` during startup.
    """
    config = config or get_config()
    db_config = db_config or get_db_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db_manager: Optional[DatabaseManager] = None
        if database is None:
            db_manager = DatabaseManager(config, db_config)
            if not await db_manager.connect():
                raise RuntimeError("Failed to connect to database")
            db = db_manager.get_database()
        else:
            db = database
            if db_config.enable_indexes:
                await create_indexes(db, db_config)

        app.state.services = build_services(db, config, db_config)
        logger.info("CageMatch API started", environment=config.environment)
        try:
            yield
        finally:
            app.state.services = None
            if db_manager:
                await db_manager.disconnect()
            logger.info("CageMatch API stopped")

    app = FastAPI(title="CageMatch API", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "Request handled",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response

    _register_error_handlers(app, config)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "OK",
            "message": "CageMatch API is running",
            "timestamp": _timestamp(),
            "environment": config.environment,
            "version": __version__,
        }

    app.include_router(users.router, prefix="/api")
    app.include_router(fighters.router, prefix="/api")
    app.include_router(challenges.router, prefix="/api")

    return app


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_response(status_code: int, error: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "timestamp": _timestamp()},
    )


def _register_error_handlers(app: FastAPI, config: AppConfig):

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        logger.info("Request failed", path=request.url.path,
                    status_code=exc.status_code, code=exc.code)
        return _error_response(exc.status_code, exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = []
        for error in exc.errors():
            location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
            details.append({"field": ".".join(location), "message": error.get("msg", "Invalid value")})
        return _error_response(400, {
            "message": "Validation failed",
            "code": "VALIDATION_ERROR",
            "details": details,
        })

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error_response(404, {
                "message": f"Route {request.url.path} not found on this server",
                "code": "ROUTE_NOT_FOUND",
            })
        return _error_response(exc.status_code, {"message": str(exc.detail), "code": "HTTP_ERROR"})

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
        key_value = (exc.details or {}).get("keyValue") or {}
        field = next(iter(key_value), "value")
        return _error_response(409, {
            "message": f"{field[:1].upper()}{field[1:]} '{key_value.get(field, '')}' already exists",
            "code": "DUPLICATE_ERROR",
        })

    @app.exception_handler(InvalidId)
    async def invalid_id_handler(request: Request, exc: InvalidId):
        return _error_response(400, {"message": str(exc), "code": "INVALID_ID"})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error", path=request.url.path, method=request.method)
        error = {
            "message": "Something went wrong on our end. Please try again later.",
            "code": "INTERNAL_ERROR",
        }
        if config.is_development:
            error["type"] = type(exc).__name__
        return _error_response(500, error)
