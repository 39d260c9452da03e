"""FastAPI application entry point for the listing concierge API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from listing_concierge.app.config import get_settings
from listing_concierge.app.errors import register_error_handlers
from listing_concierge.infra.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database on startup."""
    await init_db()
    settings = get_settings()
    logger.info(
        "Listing concierge ready: source=%s, models=%s, scope=%s",
        settings.property_source,
        settings.model_chain_list,
        settings.model_fallback_scope,
    )
    yield


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Listing Concierge API",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS: the chat widget is embedded on tenant sites
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from listing_concierge.app.routes.chat import router as chat_router
from listing_concierge.app.routes.feedback import router as feedback_router
from listing_concierge.app.routes.notify import router as notify_router
from listing_concierge.app.routes.tenants import router as tenants_router

app.include_router(chat_router)
app.include_router(feedback_router)
app.include_router(tenants_router)
app.include_router(notify_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "listing-concierge"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "listing_concierge.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
