from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from datetime import datetime
from typing import Optional
import uvicorn
import asyncio
from dotenv import load_dotenv
import logging
from contextlib import asynccontextmanager

# Load environment variables before settings are read
load_dotenv()

from core.config import get_settings
from core.dependencies import get_container
from core.exceptions import AppException, app_exception_handler, generic_exception_handler
from core.logging import setup_logging
from core.middleware import setup_middleware
from api.chat_routes import router as chat_router

settings = get_settings()
setup_logging(level=settings.log_level, json_format=settings.log_json or settings.is_production, log_file=settings.log_file)
logger = logging.getLogger(__name__)

# Background session cleanup task
cleanup_task: Optional[asyncio.Task] = None


async def cleanup_expired_sessions_loop(interval_minutes: int):
    """Periodically delete sessions whose expiry time has passed"""
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            removed = get_container().sessions.cleanup_expired()
            if removed:
                logger.info(f"Session cleanup: removed {removed} expired session(s)")
        except Exception as e:
            logger.error(f"Session cleanup error: {str(e)}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup/shutdown"""
    global cleanup_task

    # Startup
    logger.info(f"{settings.app_name} v{settings.app_version} starting ({settings.environment})")
    container = get_container()
    logger.info(f"Model: {settings.openai_model} | Session store: {settings.session_store} | "
                f"Jobs loaded: {len(container.job_catalog)}")

    interval = settings.session_cleanup_interval_minutes
    if interval > 0:
        cleanup_task = asyncio.create_task(cleanup_expired_sessions_loop(interval))
        logger.info(f"Session cleanup: every {interval} minutes")
    else:
        logger.info("Session cleanup: DISABLED")

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")
    if cleanup_task:
        cleanup_task.cancel()
        cleanup_task = None
    await get_container().close()


app = FastAPI(
    title=settings.app_name,
    description="Recruitment chatbot: conversational screening with profile extraction and stage tracking",
    version=settings.app_version,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.include_router(chat_router)

setup_middleware(app, settings.rate_limit_requests, settings.rate_limit_window)

# CORS configuration - Environment-based
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,  # Cache preflight requests for 1 hour
)
logger.info(f"CORS enabled for: {', '.join(settings.cors_origins_list)}")


@app.get("/")
async def root():
    return {
        "message": settings.app_name,
        "version": settings.app_version,
        "status": "operational",
        "docs": "/docs" if settings.debug else None,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    container = get_container()
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "cleanup_running": cleanup_task is not None and not cleanup_task.done(),
        "llm_configured": bool(settings.openai_api_key),
        "sessions": container.sessions.get_statistics(),
    }


if __name__ == "__main__":
    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=settings.debug)
