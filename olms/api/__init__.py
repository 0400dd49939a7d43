"""
Ornament Loan Management API Application Factory
"""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import LoanManagementSystem, get_system
from .customers import router as customers_router
from .ornaments import router as ornaments_router
from .loans import router as loans_router
from .payments import router as payments_router
from .rates import router as rates_router
from .settings import router as settings_router
from .dashboard import router as dashboard_router
from .imports import router as imports_router
from .branches import router as branches_router
from .notes import router as notes_router
from .notifications import router as notifications_router
from .audit import router as audit_router
from .users import auth_router, users_router
from ..config import get_config
from ..exceptions import (
    OLMSError, ValidationError, NotFoundError, ConflictError,
    AuthenticationError, PermissionDeniedError
)
from ..logging_config import get_logger


logger = get_logger("olms.api")

# Domain error -> HTTP status
ERROR_STATUS = {
    ValidationError: 400,
    ConflictError: 400,
    NotFoundError: 404,
    AuthenticationError: 401,
    PermissionDeniedError: 403,
}


def _error_status(exc: OLMSError) -> int:
    for error_class, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_class):
            return status_code
    return 400


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(OLMSError)
    async def domain_error_handler(request: Request, exc: OLMSError):
        return JSONResponse(status_code=_error_status(exc), content={"error": str(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail},
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        return JSONResponse(
            status_code=400,
            content={"error": f"{location}: {message}" if location else message}
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled error",
            exc_info=exc,
            extra={'resource': request.url.path, 'action': request.method}
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()
    app = FastAPI(
        title="Ornament Loan Management API",
        description="Gold loan origination, payments and risk tracking against pledged ornaments",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in config.cors_origins.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)

    # Include routers
    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(users_router, prefix="/users", tags=["Users"])
    app.include_router(customers_router, prefix="/customers", tags=["Customers"])
    app.include_router(ornaments_router, prefix="/ornaments", tags=["Ornaments"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(payments_router, prefix="/payments", tags=["Payments"])
    app.include_router(rates_router, prefix="/rates", tags=["Rates"])
    app.include_router(settings_router, prefix="/settings", tags=["Settings"])
    app.include_router(dashboard_router, prefix="/dashboard", tags=["Dashboard"])
    app.include_router(imports_router, prefix="/import", tags=["Import"])
    app.include_router(branches_router, prefix="/branches", tags=["Branches"])
    app.include_router(notes_router, prefix="/notes", tags=["Notes"])
    app.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
    app.include_router(audit_router, prefix="/audit", tags=["Audit"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "olms_api",
            "version": "1.0.0"
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Ornament Loan Management API",
            "version": "1.0.0",
            "description": "Loans secured by pledged gold, silver and platinum ornaments",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": "/auth/login",
                "users": "/users",
                "customers": "/customers",
                "ornaments": "/ornaments",
                "loans": "/loans",
                "payments": "/payments",
                "rates": "/rates",
                "settings": "/settings",
                "dashboard": "/dashboard",
                "import": "/import",
                "branches": "/branches",
                "notes": "/notes",
                "notifications": "/notifications",
                "audit": "/audit",
            }
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "olms.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )


__all__ = ["create_app", "run_server", "LoanManagementSystem", "get_system"]
