"""
PlayedIt API — FastAPI application entry point.

Routers are registered here. Each service lives in playedit/api/.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from playedit.api import comparisons, predictions, rankings, recommendations, taste
from playedit.core.config import settings
from playedit.core.logging_setup import configure_logging
from playedit.db.session import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = configure_logging()
    if settings.is_dev:
        init_db()
    logger.info("PlayedIt API starting (env=%s)", settings.APP_ENV)
    yield


app = FastAPI(
    title="PlayedIt API",
    description="Ranking and prediction engine for the PlayedIt game ranking app.",
    version="0.1.0",
    docs_url="/docs" if settings.ENABLE_DOCS else None,
    redoc_url="/redoc" if settings.ENABLE_DOCS else None,
    lifespan=lifespan,
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(rankings.router,        prefix="/rankings",        tags=["rankings"])
app.include_router(comparisons.router,     prefix="/comparisons",     tags=["comparisons"])
app.include_router(taste.router,           prefix="/taste",           tags=["taste"])
app.include_router(predictions.router,     prefix="/predictions",     tags=["predictions"])
app.include_router(recommendations.router, prefix="/recommendations", tags=["recommendations"])


# ── Health check ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
def health_check() -> dict:
    """Liveness check. Returns 200 when the server is up."""
    return {"status": "ok", "version": "0.1.0", "env": settings.APP_ENV}
