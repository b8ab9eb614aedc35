"""
Parley Backend API - FastAPI Application

Main FastAPI application with CORS, lifespan events, and route registration.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.api import chat
from backend.dependencies import (
    cleanup_resources,
    get_config_dependency,
    get_controller_dependency,
    initialize_resources,
)
from backend.websockets.chat import chat_websocket_endpoint
from parley import __version__
from parley.generation.controller import GenerationController
from parley.utilities.config import ParleyConfig
from parley.utilities.errors import ParleyError

logger = logging.getLogger(__name__)


# ========== LIFESPAN EVENTS ==========
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.

    Startup:
        - Load configuration and configure logging
        - Create the conversation store and generation controller

    Shutdown:
        - Stop any running generation
        - Close the shared HTTP client
    """
    logger.info("🚀 Starting Parley Backend API...")

    try:
        initialize_resources()
        logger.info("✅ Resources initialized successfully")
    except ParleyError as e:
        logger.error(f"❌ Failed to initialize resources: {e}")
        raise

    # Application is running
    yield

    logger.info("🛑 Shutting down Parley Backend API...")
    await cleanup_resources()
    logger.info("✅ Cleanup complete")


# ========== FASTAPI APP ==========
app = FastAPI(
    title="Parley Chat API",
    description="Backend API for Parley - streaming chat with OpenAI-compatible providers",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ========== CORS MIDDLEWARE ==========
# Allow frontend to communicate with backend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",  # Vite dev server
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========== EXCEPTION HANDLERS ==========
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for uncaught errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc),
            "type": type(exc).__name__,
        },
    )


# ========== ROOT ENDPOINTS ==========
@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "name": "Parley Chat API",
        "version": __version__,
        "status": "running",
        "docs": "/docs",
        "endpoints": {
            "health": "/health",
            "chat": "/api/chat/*",
            "websocket": "/ws/chat",
        },
    }


@app.get("/health", tags=["Root"])
async def health(config: ParleyConfig = Depends(get_config_dependency)):
    """Liveness check with the active backend and whether a key is configured."""
    return {
        "status": "healthy",
        "version": __version__,
        "backend": config.provider.backend.value,
        "api_key_configured": config.provider.is_api_key_configured,
    }


# ========== ROUTE REGISTRATION ==========
app.include_router(chat.router)


@app.websocket("/ws/chat")
async def websocket_chat(
    websocket: WebSocket,
    controller: GenerationController = Depends(get_controller_dependency),
):
    await chat_websocket_endpoint(websocket, controller)


if __name__ == "__main__":
    import uvicorn

    # Run with: python -m backend.app
    # Or: uvicorn backend.app:app --reload --host 0.0.0.0 --port 8000
    uvicorn.run(
        "backend.app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
