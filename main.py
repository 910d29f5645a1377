import os
import sys
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Ensure local imports resolve
sys.path.append(os.path.dirname(__file__))

# Core
from core.config import settings
from core.errors import DocControlError
from core.logging_config import logger

# -------------------------------------------------
# Routers
# -------------------------------------------------
from routers.auth import router as auth_router
from routers.sites import router as sites_router
from routers.permissions import router as permissions_router
from routers.rfa import router as rfa_router
from routers.work_requests import router as work_requests_router
from routers.invitations import router as invitations_router
from routers.notifications import router as notifications_router
from routers.uploads import router as uploads_router
from routers.admin import router as admin_router
from routers.health import router as health_router


# -------------------------------------------------
# Create the Application
# -------------------------------------------------
def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="1.0.0",
        description="Document control API: RFA and Work Request workflows on Supabase",
    )

    # -------------------------------------------------
    # CORS
    # -------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------
    # Startup / shutdown
    # -------------------------------------------------
    @app.on_event("startup")
    async def on_startup():
        logger.info(f"🚀 Starting {settings.PROJECT_NAME} ({settings.ENV})")
        for route in app.routes:
            methods = ",".join(getattr(route, "methods", None) or [])
            logger.debug(f"➡️ {methods:10s} {getattr(route, 'path', route)}")

        if settings.ENABLE_SCHEDULER:
            from core.scheduler import start_scheduler
            app.state.scheduler = start_scheduler()

    @app.on_event("shutdown")
    async def on_shutdown():
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler:
            scheduler.shutdown(wait=False)

    # -------------------------------------------------
    # Error handling
    # -------------------------------------------------
    @app.exception_handler(DocControlError)
    async def handle_doc_control(request: Request, exc: DocControlError):
        if exc.status_code >= 500:
            logger.error(f"HTTP {exc.status_code} at {request.url} — {exc.message}")
        elif exc.status_code in (401, 403):
            logger.warning(f"HTTP {exc.status_code} at {request.url} — {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error": type(exc).__name__},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (401, 403, 429, 500):
            logger.warning(
                f"HTTP {exc.status_code} at {request.url} — {exc.detail}"
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.error("Unhandled error at %s", request.url, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # -------------------------------------------------
    # Register Routers
    # -------------------------------------------------
    app.include_router(auth_router)
    app.include_router(sites_router)
    app.include_router(permissions_router)

    # Documents
    app.include_router(rfa_router)
    app.include_router(work_requests_router)
    app.include_router(uploads_router)

    # Users / push
    app.include_router(invitations_router)
    app.include_router(notifications_router)

    # Admin
    app.include_router(admin_router)

    # Health
    app.include_router(health_router)

    @app.get("/", include_in_schema=False)
    async def root():
        return RedirectResponse(settings.APP_URL)

    return app


# Create the global FastAPI instance
app = create_app()
