import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.middleware.exceptions import register_exception_handlers
from app.routers import health, identifiers, inspections, orders, pallets, panels, stations
from app.schemas.common import ErrorResponse
from app.utils.cache import close_redis, invalidate_cache

from app import services  # noqa: F401  (registers event subscribers)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("paneltrace")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("PanelTrace starting (%s)", settings.environment)
    # criteria ship with the code, so a restart may change the catalogue
    await invalidate_cache("stations:*")
    yield
    await close_redis()
    logger.info("PanelTrace stopped")


app = FastAPI(
    title="PanelTrace",
    description="Solar panel production workflow engine",
    version="0.1.0",
    lifespan=lifespan,
    responses={
        code: {"model": ErrorResponse} for code in (404, 409, 422, 503)
    },
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
app.include_router(identifiers.router, prefix="/api/identifiers", tags=["identifiers"])
app.include_router(stations.router, prefix="/api/stations", tags=["stations"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(panels.router, prefix="/api/panels", tags=["panels"])
app.include_router(inspections.router, prefix="/api/inspections", tags=["inspections"])
app.include_router(pallets.router, prefix="/api/pallets", tags=["pallets"])
