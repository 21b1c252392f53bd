from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import time
import logging
import os

from .api.v1.accounts import router as accounts_router
from .api.v1.practitioners import router as practitioners_router
from .api.v1.specialties import router as specialties_router
from .api.v1.bookings import router as bookings_router
from .api.v1.sessions import router as sessions_router
from .core.config import settings
from .core.database import init_db
from .core.exceptions import envelope

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the database on startup."""
    logger.info(f"Starting {settings.APP_NAME}...")

    db_url = settings.get_database_url
    db_type = "PostgreSQL" if "postgresql" in db_url else "SQLite" if "sqlite" in db_url else "Unknown"
    logger.info(f"Using {db_type} database")

    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}")
        raise

    logger.info("Application startup complete")
    yield
    logger.info(f"Shutting down {settings.APP_NAME}...")

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Medical appointment booking: patients, doctors, slots, bookings and consultation messaging",
    openapi_url="/api/v1/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Middleware setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Only add TrustedHostMiddleware in production, not in testing
if not os.getenv("TESTING"):
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver"]
    )

# Custom middleware for request logging and timing
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    logger.info(
        f"{request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Time: {process_time:.4f}s"
    )

    return response

# Exception handlers: every failure leaves as an envelope with success=false
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = "The requested resource was not found"
    else:
        message = str(exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(message, success=False, errors=getattr(exc, "errors", None)),
        headers=getattr(exc, "headers", None),
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body")
        errors.append(f"{field}: {error['msg']}" if field else error["msg"])

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=envelope("Validation error", success=False, errors=errors),
    )

@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.exception(f"Internal server error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=envelope(
            "Internal server error",
            success=False,
            errors=[str(exc)] if settings.DEBUG else None,
        ),
    )

# Include routers
app.include_router(accounts_router, prefix="/api/v1")
app.include_router(practitioners_router, prefix="/api/v1")
app.include_router(specialties_router, prefix="/api/v1")
app.include_router(bookings_router, prefix="/api/v1")
app.include_router(sessions_router, prefix="/api/v1")

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return envelope("Server is running", {
        "status": "healthy",
        "timestamp": time.time(),
        "version": settings.VERSION
    })

# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return envelope(f"Welcome to {settings.APP_NAME} API", {
        "version": settings.VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health"
    })

# API Info endpoint
@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return envelope("API information", {
        "name": settings.APP_NAME,
        "version": settings.VERSION,
        "endpoints": {
            "accounts": "/api/v1/accounts",
            "practitioners": "/api/v1/practitioners",
            "specialties": "/api/v1/specialties",
            "bookings": "/api/v1/bookings",
            "sessions": "/api/v1/sessions",
            "messages": "/api/v1/messages",
            "docs": "/docs",
            "openapi": "/api/v1/openapi.json"
        }
    })

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "medbook.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info"
    )
