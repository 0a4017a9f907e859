"""FastAPI dependency injection wiring."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, Request

from geoquery.config import GeoQueryConfig
from geoquery.persistence.firestore_client import get_firestore_client
from geoquery.persistence.geo_collection import GeoCollectionReference


def get_db() -> Any:
    return get_firestore_client()


def get_geo_config(request: Request) -> GeoQueryConfig:
    """Config loaded once at startup (``app.state``)."""
    return request.app.state.geo_config


def get_geo_collection(
    collection: str,
    db: Any = Depends(get_db),
    config: GeoQueryConfig = Depends(get_geo_config),
) -> GeoCollectionReference:
    """Geo wrapper around the ``collection`` path parameter (stateless, per request)."""
    return GeoCollectionReference(db.collection(collection), config=config)
