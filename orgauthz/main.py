from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from orgauthz.db import filters as _filters  # noqa: F401  (register SQLAlchemy filters)
from orgauthz.db.init_db import init_db
from orgauthz.errors import (
    HierarchyIntegrityError,
    NotFoundError,
    OrgAuthzError,
    OrgTreeError,
    PermissionAdminError,
    PreconditionError,
)
from orgauthz.logging_config import configure_app_logging
from orgauthz.routers import assignments, authz, employees, health, lifecycle, org, permissions
from orgauthz.security.config import load_security_config
from orgauthz.security.dependencies import enforce_security
from orgauthz.services.permission_cache import reset_permission_cache
from orgauthz.settings import get_settings

logger = logging.getLogger(__name__)


def _error(status_code: int, exc: OrgAuthzError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"code": exc.code, "message": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc)

    @app.exception_handler(PreconditionError)
    async def _precondition(request: Request, exc: PreconditionError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(OrgTreeError)
    async def _tree_validation(request: Request, exc: OrgTreeError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc)

    @app.exception_handler(PermissionAdminError)
    async def _permission_admin(request: Request, exc: PermissionAdminError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc)

    @app.exception_handler(HierarchyIntegrityError)
    async def _integrity(request: Request, exc: HierarchyIntegrityError) -> JSONResponse:
        logger.exception("Corrupted hierarchy path=%s method=%s", request.url.path, request.method)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"code": "SYSTEM_ERROR", "message": "Internal error"},
        )

    @app.exception_handler(OrgAuthzError)
    async def _domain(request: Request, exc: OrgAuthzError) -> JSONResponse:
        # LifecycleError raised mid-transition (e.g. TRANSFER_INCOMPLETE) lands here.
        logger.error("Unhandled domain error path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc)

    @app.exception_handler(SQLAlchemyError)
    async def _database(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception("Database error path=%s method=%s", request.url.path, request.method)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"code": "SYSTEM_ERROR", "message": "Internal error"},
        )


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        app.state.security_config = load_security_config(settings.resolved_security_config_path())
        logger.info("Loaded security config: %s", settings.resolved_security_config_path())
        reset_permission_cache(settings.permission_cache_ttl_seconds)
        init_db()
        logger.info("Database initialized (tables ensured + seed if needed)")

        yield

    # Global dependency: route-level security without touching the handlers.
    app = FastAPI(title="orgauthz", dependencies=[Depends(enforce_security)], lifespan=lifespan)
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(employees.router)
    app.include_router(authz.router)
    app.include_router(org.router)
    app.include_router(assignments.router)
    app.include_router(lifecycle.router)
    app.include_router(permissions.router)

    return app


app = create_app()
