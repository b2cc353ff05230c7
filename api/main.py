"""
FastAPI Application

Main entry point for the Belief State Index API.
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from api.endpoints import API_VERSION, router
from belief_index.errors import InvalidConfiguration
from belief_index.logging_utils import LOG_DATEFMT, LOG_FORMAT
from market.engine import get_engine
from market.registry import get_registry
from utils.datetime_utils import now_seconds

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Belief State Index API starting up...")

    # Startup: create markets from the registry
    try:
        registry = get_registry()
        created = get_engine().load_registry(registry, now=now_seconds())
        logger.info(f"Loaded {len(created)} markets from registry")
    except (FileNotFoundError, InvalidConfiguration) as e:
        logger.error(f"Failed to load market registry: {e}")

    yield

    # Shutdown
    engine = get_engine()
    resolved = sum(1 for m in engine.list_markets() if m.inflection is not None)
    logger.info(f"API shutting down with {len(engine)} markets ({resolved} resolved)")


# Create FastAPI application
app = FastAPI(
    title="Belief State Index API",
    description="""
    Aggregates multi-source belief signals into a Belief State Index (BSI),
    confirms persistent inflections, and settles time-bucketed positions.

    ## Key Endpoints

    - `GET /markets` - List markets
    - `POST /markets` - Create a market
    - `GET /markets/{market_id}` - Market state and latest BSI
    - `POST /markets/{market_id}/signals` - Ingest signals
    - `POST /markets/{market_id}/cycle` - Run an aggregation cycle
    - `GET /markets/{market_id}/bsi` - Latest BSI
    - `GET /markets/{market_id}/inflection` - Confirmed inflection
    - `POST /markets/{market_id}/positions` - Place a position
    - `GET /markets/{market_id}/buckets` - Stake by time bucket
    - `POST /markets/{market_id}/settle` - Settle a resolved market
    """,
    version=API_VERSION,
    lifespan=lifespan
)

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api/v1")

# Also mount at root for convenience
app.include_router(router)


@app.get("/")
async def root():
    """API root endpoint."""
    return {
        "name": "Belief State Index API",
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health"
    }


# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8001,
        reload=True
    )
