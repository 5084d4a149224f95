"""FastAPI application entry point for the ManxHive marketplace API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from manxhive.app.config import get_settings
from manxhive.domain.schemas import HealthResponse
from manxhive.infra.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database on startup."""
    await init_db()
    settings = get_settings()
    if not settings.stripe_configured:
        logger.warning("STRIPE_SECRET_KEY not set; checkout endpoints will return 501")
    yield


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="ManxHive API",
    lifespan=lifespan,
    debug=settings.debug,
)

_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from manxhive.app.routes.auth import router as auth_router
from manxhive.app.routes.billing import router as billing_router
from manxhive.app.routes.enquiries import router as enquiries_router
from manxhive.app.routes.marketplace import router as marketplace_router

app.include_router(auth_router)
app.include_router(enquiries_router)
app.include_router(marketplace_router)
app.include_router(billing_router)


@app.get("/health", tags=["health"], response_model=HealthResponse)
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "manxhive"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "manxhive.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
