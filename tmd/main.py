"""
Main FastAPI application for the TMD System
"""
from fastapi import FastAPI, Request, HTTPException
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from starlette.middleware.sessions import SessionMiddleware
import asyncio
import logging
import logging.config

from tmd.config import settings
from tmd.database import engine, Base, SessionLocal
from tmd import models  # noqa: F401  註冊所有資料表

# Import API routes
from tmd.api import account, admin, staff, settings as api_settings, notifications
from tmd.services.account_service import AccountService
from tmd.services.notification_service import hub
from tmd.services.scheduler import start_scheduler, stop_scheduler
from tmd.services.settings_service import SettingsService
from tmd.utils.storage import get_upload_root
from tmd.utils.validators import ValidationError, NotFoundError, PermissionDeniedError

# Configure logging
logging.config.dictConfig(settings.get_logging_config())
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="HR management system: accounts, tasks, attendance, requests, payroll and settings",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_tags=[
        {
            "name": "account",
            "description": "Login, logout and account registration",
        },
        {
            "name": "admin",
            "description": "Administrator operations",
        },
        {
            "name": "staff",
            "description": "Staff self-service operations",
        },
        {
            "name": "settings",
            "description": "System settings and layout customization",
        },
        {
            "name": "notifications",
            "description": "Real-time WebSocket notifications",
        }
    ]
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SECRET_KEY,
    session_cookie=settings.SESSION_COOKIE,
    max_age=settings.SESSION_MAX_AGE
)

# Add trusted host middleware for security
if settings.is_production:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=["*"]  # Configure appropriately for production
    )

# Mount uploaded files
upload_root = get_upload_root()
upload_root.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(upload_root)), name="uploads")


# Error handlers
@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"success": False, "detail": exc.message})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    content = {"success": False, "detail": exc.message}
    if exc.field:
        content["field"] = exc.field
    return JSONResponse(status_code=400, content=content)


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    return JSONResponse(status_code=403, content={"success": False, "detail": exc.message})


@app.exception_handler(404)
async def not_found_handler(request: Request, exc: HTTPException):
    detail = getattr(exc, "detail", None) or "Not found"
    return JSONResponse(status_code=404, content={"success": False, "detail": detail})


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc: Exception):
    logger.error(f"Internal server error: {exc}")
    return JSONResponse(status_code=500, content={"success": False, "detail": "Internal server error"})


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    try:
        # Test database connection
        from sqlalchemy import text
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

        return {
            "status": "healthy",
            "database": "connected",
            "version": "1.0.0"
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")


# Root redirect
@app.get("/")
async def root(request: Request):
    """Redirect root to the dashboard of the logged in role"""
    role_name = request.session.get("role_name")
    if role_name is None:
        return RedirectResponse(url="/account/login", status_code=302)
    if role_name == "Admin":
        return RedirectResponse(url="/admin/dashboard", status_code=302)
    return RedirectResponse(url="/staff/dashboard", status_code=302)


# Include API routes
for api_router in (account.router, admin.router, staff.router, api_settings.router):
    app.include_router(api_router, prefix=settings.API_PREFIX)

app.include_router(notifications.router)


def bootstrap_database() -> None:
    """建立資料表、角色、預設管理員與預設系統設定"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        account_service = AccountService(db)
        account_service.ensure_roles()
        account_service.ensure_default_admin(
            settings.DEFAULT_ADMIN_USERNAME,
            settings.DEFAULT_ADMIN_PASSWORD,
            settings.DEFAULT_ADMIN_FULL_NAME
        )
        SettingsService(db).initialize_defaults()
    finally:
        db.close()


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    logger.info(f"Starting {settings.APP_NAME}")

    missing = settings.validate_required_settings()
    if missing:
        logger.warning(f"Missing or default settings: {', '.join(missing)}")

    # In production, use Alembic migrations instead
    bootstrap_database()
    logger.info("Database initialized")

    hub.bind_loop(asyncio.get_running_loop())
    start_scheduler()

    logger.info(f"{settings.APP_NAME} started successfully")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown"""
    logger.info(f"Shutting down {settings.APP_NAME}")
    stop_scheduler()


if __name__ == "__main__":
    import uvicorn

    # Development server
    uvicorn.run(
        "tmd.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
