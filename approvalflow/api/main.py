from contextlib import asynccontextmanager

from fastapi import FastAPI

from approvalflow import __version__
from approvalflow.api.errors import register_exception_handlers
from approvalflow.api.middleware.logging import RequestLoggingMiddleware
from approvalflow.api.routers import approvals, flows, health, modules
from approvalflow.common.logger import setup_logger
from approvalflow.core.config import get_settings
from approvalflow.db.session import init_engine

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logger(settings, component="api")
    init_engine(settings.database_url)
    yield


app = FastAPI(
    title=settings.app_name,
    description="Approval flow resolution and execution engine",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Request logging middleware - logs all API requests
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

# Include routers
app.include_router(approvals.router, prefix="/api")
app.include_router(flows.router, prefix="/api")
app.include_router(modules.router, prefix="/api")
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
