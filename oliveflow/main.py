import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from oliveflow import __version__
from oliveflow.config import settings
from oliveflow.database import engine
from oliveflow.middleware.exceptions import register_exception_handlers
from oliveflow.routers import (
    boxes,
    collections,
    farmers,
    health,
    sessions,
    stock,
    transactions,
)
from oliveflow.utils.cache import close_redis

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("oliveflow")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release the Redis pool and DB connections on shutdown."""
    logger.info(f"OliveFlow starting ({settings.environment})")
    try:
        yield
    finally:
        await close_redis()
        await engine.dispose()
        logger.info("OliveFlow stopped")


app = FastAPI(
    title="OliveFlow",
    description="Olive mill box inventory, processing sessions and settlement",
    version=__version__,
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(boxes.router, prefix="/api/boxes", tags=["boxes"])
app.include_router(farmers.router, prefix="/api/farmers", tags=["farmers"])
app.include_router(sessions.router, prefix="/api/sessions", tags=["sessions"])
app.include_router(transactions.router, prefix="/api/transactions", tags=["transactions"])
app.include_router(stock.router, prefix="/api/stock", tags=["stock"])
app.include_router(collections.router, prefix="/api/collectors", tags=["collectors"])
