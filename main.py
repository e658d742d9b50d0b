"""
Log Viewer Service
Serves the log query API and logs its own requests through the logging module
"""

from dotenv import load_dotenv

# Load environment variables from .env.local (or .env if not found)
load_dotenv('.env.local')
load_dotenv()  # Fallback to .env

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from contextlib import asynccontextmanager
import os

from shared_logging import (
    LoggerRegistry,
    create_logger,
    get_logger,
    install_logging,
    log_router,
    setup_logging,
)

setup_logging(log_dir=os.environ.get("LOG_DIR"), service_name="shared-logging")
logger = get_logger("shared-logging")

# settings are read inside the factory so a bad value degrades to a no-op logger
registry = LoggerRegistry()
logging_module = create_logger(registry=registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events
    """
    logger.info(f"Starting log viewer for {logging_module.component_name}...")
    logging_module.info({
        'context': 'lifespan',
        'message': 'log viewer started'
    })

    yield

    logger.info("Shutting down log viewer...")


app = FastAPI(
    title="Log Viewer API",
    description="Query structured log records written by the shared logging module",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)
app.state.logging_module = logging_module

app.include_router(log_router)
install_logging(app, logging_module)

# CORS configuration from environment variable
# In production, set CORS_ORIGINS="https://yourdomain.com,https://app.yourdomain.com"
ALLOWED_ORIGINS = os.environ.get(
    "CORS_ORIGINS",
    "http://localhost:3000"
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    initialized: bool


@app.get("/status_auth", response_model=HealthResponse)
async def health_check():
    """Health check endpoint, never logged by the request logger"""
    return HealthResponse(
        status="healthy",
        service=logging_module.component_name,
        initialized=logging_module.initialized
    )


if __name__ == "__main__":
    import uvicorn
    import logging

    # Suppress watchfiles "changes detected" messages
    logging.getLogger("watchfiles").setLevel(logging.WARNING)

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        reload=os.environ.get("RELOAD", "false").lower() == "true",
        log_level="info"
    )
