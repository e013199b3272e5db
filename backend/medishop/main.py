import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded as SlowApiRateLimitExceeded
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from .config import settings
from .database import engine, Base
from .errors import AppError, Conflict, RateLimitExceeded, ServiceUnavailable, ValidationFailed
from .limiter import limiter
from .middleware.security import SecurityHeadersMiddleware

# Import all models (required for SQLAlchemy to create tables)
from .models import (  # noqa: F401
    Admin, User, Address, OTP, Product, Cart, CartItem,
    Order, OrderItem, Prescription, ReturnRequest, ReturnItem
)

# Import routes
from .routes import addresses, auth, cart, orders, prescriptions, products, profile, returns
from .routes.admin import auth as admin_auth
from .routes.admin import dashboard as admin_dashboard
from .routes.admin import orders as admin_orders
from .routes.admin import prescriptions as admin_prescriptions
from .routes.admin import products as admin_products
from .routes.admin import users as admin_users

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="MediShop pharmacy backend: catalog, cart, orders, prescriptions and returns",
    version="1.0.0",
    docs_url="/api/docs" if settings.ENABLE_API_DOCS else None,
    redoc_url="/api/redoc" if settings.ENABLE_API_DOCS else None,
    openapi_url="/api/openapi.json" if settings.ENABLE_API_DOCS else None
)

if settings.ENABLE_API_DOCS:
    print("📚 API Documentation: ENABLED (ensure this is disabled in production!)")
else:
    print("📚 API Documentation: DISABLED (production mode)")

app.state.limiter = limiter
print(f"⏱️ Rate limiting: {'Enabled' if settings.RATE_LIMIT_ENABLED else 'Disabled'} "
      f"({settings.RATE_LIMIT_STORAGE_URI.split(':')[0]} backend)")


# ========== ERROR HANDLERS ==========

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(loc) for loc in err["loc"] if loc != "body"),
            "message": err["msg"]
        }
        for err in exc.errors()
    ]
    error = ValidationFailed(errors=errors)
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


@app.exception_handler(SlowApiRateLimitExceeded)
async def rate_limit_handler(request: Request, exc: SlowApiRateLimitExceeded):
    logger.warning(f"Rate limit hit on {request.url.path} from {request.client.host if request.client else '?'}")
    error = RateLimitExceeded(f"Too many requests. Limit: {exc.detail}")
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


@app.exception_handler(OperationalError)
async def database_error_handler(request: Request, exc: OperationalError):
    logger.error(f"Database unavailable: {exc}")
    error = ServiceUnavailable()
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    error = Conflict()
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = f"Internal server error: {exc}" if settings.DEBUG else "Internal server error"
    return JSONResponse(status_code=500, content={"success": False, "message": message})


# CORS Middleware
if settings.APP_ENV == "development":
    ALLOWED_ORIGINS = [
        "http://localhost:3000",
        "http://localhost:5173",
    ] + settings.origins_list
    print("🌐 CORS: Development mode - localhost allowed")
else:
    ALLOWED_ORIGINS = settings.origins_list
    print(f"🌐 CORS: Production mode - {len(ALLOWED_ORIGINS)} origins allowed")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
    allow_headers=["*"],
    max_age=3600,
)

app.add_middleware(SecurityHeadersMiddleware)
print("🔒 Security headers middleware enabled")

# Uploaded prescriptions and order attachments
os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount(settings.MEDIA_URL_PREFIX, StaticFiles(directory=settings.UPLOAD_DIR), name="media")

# Include routers
app.include_router(auth.router, prefix="/api")
app.include_router(products.router, prefix="/api")
app.include_router(cart.router, prefix="/api")
app.include_router(orders.router, prefix="/api")
app.include_router(prescriptions.router, prefix="/api")
app.include_router(profile.router, prefix="/api")
app.include_router(addresses.router, prefix="/api")
app.include_router(returns.router, prefix="/api")
app.include_router(admin_auth.router, prefix="/api")
app.include_router(admin_products.router, prefix="/api")
app.include_router(admin_orders.router, prefix="/api")
app.include_router(admin_prescriptions.router, prefix="/api")
app.include_router(admin_users.router, prefix="/api")
app.include_router(admin_dashboard.router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    """Initialize database and create tables"""
    Base.metadata.create_all(bind=engine)
    print(f"✅ {settings.APP_NAME} Started Successfully")
    print(f"📍 Environment: {settings.APP_ENV}")
    print(f"📁 Upload Directory: {settings.UPLOAD_DIR}")
    print(f"📨 OTP provider: {settings.OTP_PROVIDER}")


@app.on_event("shutdown")
async def shutdown_event():
    print(f"🛑 {settings.APP_NAME} Shutting Down...")


@app.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": "1.0.0",
        "status": "running",
        "docs": "/api/docs" if settings.ENABLE_API_DOCS else "disabled"
    }


@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.APP_ENV
    }
