from datetime import datetime
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
import uvicorn

# Load variables from .env before settings are read
load_dotenv()

from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.core.logging import setup_logging
from app.database import init_db
from app.middleware.auth_middleware import AuthMiddleware
from app.api.v1.api import api_router
from app.utils.async_utils import shutdown_executor

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc"
)

register_exception_handlers(app)

# Middleware order matters: CORS first, then auth
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AuthMiddleware)

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.PROJECT_NAME} v{settings.VERSION}")

    init_db()
    logger.info("Database initialized")

    oauth_providers = settings.OAUTH_PROVIDERS
    if oauth_providers:
        logger.info(f"Available OAuth providers: {list(oauth_providers.keys())}")
    else:
        logger.warning("No OAuth providers configured")


@app.on_event("shutdown")
async def shutdown_event():
    shutdown_executor()
    logger.info("Shutdown complete")


@app.get("/")
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": f"Welcome to {settings.PROJECT_NAME}",
        "version": settings.VERSION,
        "status": "running",
        "docs": "/docs",
        "redoc": "/redoc",
        "api": {
            "health": f"{settings.API_V1_STR}/system/health",
            "auth": f"{settings.API_V1_STR}/auth",
            "chat": f"{settings.API_V1_STR}/chat"
        }
    }


@app.get("/health")
def health_check():
    """
    Simple public health check.
    """
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "timestamp": datetime.utcnow().isoformat(),
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8001,
        reload=True,
        log_level="info"
    )
