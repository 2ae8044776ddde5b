import os

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .config import settings
from .db import Base, engine, SessionLocal, atomic
from .errors import ResourceHubError
from .logging import setup_logging, RequestIdMiddleware
from .routes.catalog import router as catalog_router
from .routes.resources import router as resources_router
from .routes.employees import router as employees_router
from .services import audit, property_catalog, resource_types, resource_categories
from .services.employees import EmployeeLookupCache

logger = structlog.get_logger(__name__)


def seed_resource_structure(session_factory=SessionLocal) -> dict:
    """Seed system properties, types and categories. Idempotent."""
    db = session_factory()
    try:
        with atomic(db):
            counts = {
                "properties": property_catalog.seed_predefined_properties(db),
                "types": resource_types.seed_system_types(db),
                "categories": resource_categories.seed_system_categories(db),
            }
    finally:
        db.close()
    return counts


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)
    app.state.employee_cache = EmployeeLookupCache(settings.employee_cache_size)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    @app.exception_handler(ResourceHubError)
    async def _domain_error(request: Request, exc: ResourceHubError):
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, code=exc.code, exc_info=exc.__cause__ or exc)
        else:
            logger.info("request_rejected", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Routers
    app.include_router(catalog_router)
    app.include_router(resources_router)
    app.include_router(employees_router)

    # Audit/timeline sinks run after each commit
    audit.install_default_sinks()

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.on_event("startup")
    def _startup():
        logger.info("startup", environment=settings.environment)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
            logger.info("tables_verified", count=len(Base.metadata.tables))
        if settings.seed_on_startup:
            counts = seed_resource_structure()
            logger.info("resource_structure_seeded", **counts)

    return app


app = create_app()
