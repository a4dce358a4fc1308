"""
SpendSmart Backend — FastAPI application entry‑point.
"""
import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from spendsmart.config import settings
from spendsmart.database import Base, engine

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s  %(name)-30s  %(levelname)-5s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure data dir + tables exist
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    # Import models so Base.metadata knows about them
    import spendsmart.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready (%s)", settings.DATABASE_URL)

    app.state.http_client = httpx.AsyncClient(
        base_url=settings.BACKEND_URL,
        timeout=settings.REQUEST_TIMEOUT,
    )
    logger.info("Backend proxy: %s", settings.BACKEND_URL)

    yield

    await app.state.http_client.aclose()
    logger.info("Shutting down")


app = FastAPI(
    title="SpendSmart",
    description="Receipt photo → AI extraction → reconciled, persisted expense record",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"service": "SpendSmart", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# ── Register API router ──────────────────────────────────────────────────
from spendsmart.routers.receipts import router as receipts_router  # noqa: E402

app.include_router(receipts_router, prefix="/api", tags=["Receipts"])
