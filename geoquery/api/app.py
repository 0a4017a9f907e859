"""FastAPI application factory."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

# Load .env file from project root (must be before other imports)
load_dotenv()
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from geoquery.api.routes import geo  # noqa: E402
from geoquery.config import GeoQueryConfig  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load geo query tuning from the environment on startup."""
    app.state.geo_config = GeoQueryConfig.from_env()
    logger.info(
        "Geo queries: buffer=%.3f max_precision=%d",
        app.state.geo_config.detection_range_buffer,
        app.state.geo_config.max_precision,
    )
    yield


app = FastAPI(
    title="geoquery API",
    description="Live geohash radius queries over Cloud Firestore",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(geo.router, prefix="/api")


@app.get("/api/health")
async def health():
    config = getattr(app.state, "geo_config", None)
    return {
        "status": "ok",
        "project": os.environ.get("GOOGLE_CLOUD_PROJECT"),
        "detection_range_buffer": config.detection_range_buffer if config else None,
    }
