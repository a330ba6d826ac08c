"""KOL Bot - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from database import engine
from models import Base
from routers import telegram_router

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - create tables on startup, dispose the pool on shutdown."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if not settings.socialdata_api_key and not settings.x_bearer_token:
        logger.warning("No SocialData key or X bearer token set - /submit cannot fetch posts")

    yield

    await engine.dispose()


app = FastAPI(
    title="KOL Bot API",
    description="Telegram bot webhook for KOL campaign submissions",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(telegram_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "kol-bot"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "KOL Bot API",
        "version": "0.1.0",
        "docs": "/docs",
    }
