"""
Inteligencia - AI Content Generation Backend
Main FastAPI Application
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from inteligencia import __version__
from inteligencia.config import get_settings
from inteligencia.errors import InteligenciaError

logger = logging.getLogger(__name__)


def _is_serverless() -> bool:
    """Check if running in serverless environment"""
    return bool(os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME"))


def _configure_logging() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    from inteligencia.utils import init_db, close_db
    if not _is_serverless():
        await init_db()
    yield
    await close_db()


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def create_app() -> FastAPI:
    """Factory function to create FastAPI app"""
    settings = get_settings()
    _configure_logging()

    application = FastAPI(
        title="Inteligencia Generation API",
        description="""
        AI content generation for the Inteligencia marketing site

        ## Features
        - Multi-provider generation (OpenAI, Anthropic, Google, Perplexity)
        - Capability-aware provider selection with fallback
        - Branching generation trees with alternatives
        - Encrypted provider credentials and monthly budgets
        - Usage logging and daily analytics rollups
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc" if settings.is_development else None,
    )

    # CORS middleware
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(InteligenciaError)
    async def inteligencia_exception_handler(request: Request, exc: InteligenciaError):
        """Taxonomy errors carry their own status and a user-safe message"""
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        return _error_response(exc.status_code, exc.public_message)

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        return _error_response(400, f"{location}: {message}" if location else message)

    @application.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail))

    # Global exception handler
    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected errors"""
        logger.exception(f"Unhandled error on {request.url.path}")
        settings = get_settings()
        if settings.DEBUG:
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": str(exc), "type": type(exc).__name__},
            )
        return _error_response(500, "Internal server error")

    # Import and include API routes
    from inteligencia.api.routes import api_router
    application.include_router(api_router, prefix=f"/api/{settings.API_VERSION}")

    # Health check
    @application.get("/health")
    async def health_check():
        """Health check endpoint"""
        settings = get_settings()
        return {
            "status": "healthy",
            "version": __version__,
            "environment": settings.APP_ENV,
        }

    return application


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()

    uvicorn.run(
        "inteligencia.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        workers=1 if settings.is_development else settings.WORKERS,
    )
