"""Tuning constants for geo queries, injectable per collection."""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field

from geoquery.geo.geohash import GEOHASH_CELL_SIZES_KM, MAX_GEOHASH_PRECISION

# Strict mode tolerance on the radius (haversine vs. float rounding at the edge)
DETECTION_RANGE_BUFFER = 1.02

# Seconds between liveness checks of a snapshot listener
LISTENER_POLL_INTERVAL = 0.25

# Sorts after every geohash character, so [prefix, prefix~] is the prefix's subtree
RANGE_SENTINEL = "~"


class GeoQueryConfig(BaseModel):
    """Per-collection geo query tuning.

    The defaults match what documents written by ``set_point`` expect;
    tests swap in other tunings instead of patching module globals.
    """

    detection_range_buffer: float = Field(default=DETECTION_RANGE_BUFFER, ge=1.0)
    max_precision: int = Field(default=MAX_GEOHASH_PRECISION, ge=1, le=MAX_GEOHASH_PRECISION)
    cell_sizes_km: dict[int, tuple[float, float]] = Field(
        default_factory=lambda: dict(GEOHASH_CELL_SIZES_KM)
    )
    range_sentinel: str = Field(default=RANGE_SENTINEL, min_length=1)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> "GeoQueryConfig":
        """Build a config from ``GEOQUERY_*`` environment variables."""
        overrides: dict[str, object] = {}
        buffer = os.environ.get("GEOQUERY_DETECTION_RANGE_BUFFER")
        if buffer:
            overrides["detection_range_buffer"] = float(buffer)
        precision = os.environ.get("GEOQUERY_MAX_PRECISION")
        if precision:
            overrides["max_precision"] = int(precision)
        return cls(**overrides)
