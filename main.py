from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from core.config import settings
from core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from core.exceptions import BaseCustomException
from core.response import error_response
from database.connection import create_tables
from routers import auth, order, delivery, vendor_payment

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Marketplace Fulfillment API",
    description="Order splitting, delivery assignment and vendor settlement for a multi-vendor marketplace",
    version="1.0.0",
    debug=settings.DEBUG
)

# Global exception handler for domain exceptions
@app.exception_handler(BaseCustomException)
async def custom_exception_handler(request: Request, exc: BaseCustomException):
    """Map domain exceptions to the standard error envelope."""
    request_id = getattr(request.state, 'request_id', 'unknown')
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"{exc.__class__.__name__} [{request_id}] on {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_response(
            message=exc.message,
            error_code=exc.__class__.__name__,
            details=exc.details
        ))
    )

# Global exception handler for validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with per-field details."""
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(f"Validation error [{request_id}] on {request.method} {request.url.path}: {exc.errors()}")

    error_details = []
    for error in exc.errors():
        error_details.append({
            "field": '.'.join(str(x) for x in error['loc']),
            "message": error['msg'],
            "type": error['type']
        })

    return JSONResponse(
        status_code=422,
        content=error_response(
            message="Request validation failed",
            error_code="VALIDATION_ERROR",
            details={"errors": error_details}
        )
    )

# Global exception handler for HTTP exceptions (404 routes, 405 methods)
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(f"HTTP exception [{request_id}] on {request.method} {request.url.path}: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(
            message=str(exc.detail) if isinstance(exc.detail, str) else "HTTP error occurred",
            error_code="HTTP_ERROR",
            details={"status_code": exc.status_code}
        ),
        headers=getattr(exc, "headers", None)
    )

# Global exception handler for unexpected errors
@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Never leak stack traces; only the request id goes back to the caller."""
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(f"Unexpected error [{request_id}] on {request.method} {request.url.path}: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content=error_response(
            message="An unexpected error occurred. Please try again.",
            error_code="INTERNAL_SERVER_ERROR",
            details={"request_id": request_id}
        )
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time"],
)

# Order matters - first added is executed last
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(order.router, prefix="/api/orders", tags=["Orders"])
app.include_router(delivery.router, prefix="/api/delivery", tags=["Delivery"])
app.include_router(vendor_payment.router, prefix="/api/vendor-payments", tags=["Vendor Payments"])

# Delivery confirmation photos
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")

@app.on_event("startup")
async def startup_event():
    """Initialize the application on startup."""
    logger.info("Starting up Marketplace Fulfillment API...")
    create_tables()
    logger.info("Database tables created successfully")

@app.get("/api/health")
async def health_check():
    return {"status": "ok", "environment": settings.ENVIRONMENT}
