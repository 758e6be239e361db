"""Main FastAPI application for the Data Moodboard API."""

import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from prometheus_client import make_asgi_app
from moodboard import __version__
from moodboard.config import settings
from moodboard.db import init_db, close_db
from moodboard.integrations.http import close_http_client
from moodboard.logging_config import logger
from moodboard.metrics import http_request_duration_seconds
from moodboard.ratelimit import limiter, rate_limit_exceeded_handler
# Import routers
from moodboard.account.routes import router as account_router
from moodboard.admin.routes import router as admin_router
from moodboard.ai.routes import router as ai_router
from moodboard.auth.routes import router as auth_router
from moodboard.billing.routes import router as billing_router
from moodboard.dashboards.routes import router as dashboards_router
from moodboard.data_tables.routes import router as data_tables_router
from moodboard.integrations.google_sheets import router as google_sheets_router
from moodboard.integrations.routes import router as integrations_router
from moodboard.integrations.shopify import router as shopify_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Data Moodboard API", version=__version__)
    await init_db()
    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down Data Moodboard API")
    await close_http_client()
    await close_db()
    logger.info("Application shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Data Moodboard API",
    description="Canvas dashboard builder with AI-assisted editing and data integrations",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Requests slower than this are logged
SLOW_REQUEST_SECONDS = 2.0


@app.middleware("http")
async def observe_requests(request: Request, call_next):
    """Time each request by route template and expose X-Process-Time."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    route = request.scope.get("route")
    template = getattr(route, "path", None) or "unmatched"
    http_request_duration_seconds.labels(
        method=request.method,
        route=template,
        status_code=str(response.status_code),
    ).observe(elapsed)
    response.headers["X-Process-Time"] = f"{elapsed * 1000:.1f}ms"

    if elapsed > SLOW_REQUEST_SECONDS:
        logger.warning(
            "Slow request",
            method=request.method,
            route=template,
            status_code=response.status_code,
            duration_ms=round(elapsed * 1000),
        )
    return response


# Exception handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors."""
    logger.warning(
        "Validation error",
        path=request.url.path,
        errors=[{key: value for key, value in error.items() if key != "input"} for error in jsonable_errors(exc)],
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx may hold exception instances that JSON cannot encode
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        error=str(exc),
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {
        "status": "healthy",
        "version": __version__,
        "features": {
            "ai": bool(settings.openai_api_key),
            "billing": bool(settings.stripe_secret_key),
            "auth": bool(settings.supabase_jwt_secret),
        },
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Data Moodboard API",
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }


# Mount Prometheus metrics endpoint
if settings.enable_prometheus:
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)


# Include routers
app.include_router(auth_router, prefix="/auth", tags=["Authentication"])
app.include_router(account_router, prefix="/account", tags=["Account"])
app.include_router(ai_router, prefix="/ai", tags=["AI"])
app.include_router(dashboards_router, prefix="/dashboards", tags=["Dashboards"])
app.include_router(data_tables_router, prefix="/data-tables", tags=["Data Tables"])
app.include_router(integrations_router, prefix="/integrations", tags=["Integrations"])
app.include_router(google_sheets_router, prefix="/google-sheets", tags=["Integrations"])
app.include_router(shopify_router, prefix="/shopify", tags=["Integrations"])
app.include_router(billing_router, prefix="/billing", tags=["Billing"])
app.include_router(admin_router, prefix="/admin", tags=["Admin"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "moodboard.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
