"""Plan the geohash prefixes that cover a radius query."""

from __future__ import annotations

import logging

from geoquery.config import GeoQueryConfig
from geoquery.contracts.geo_point import GeoFirePoint
from geoquery.geo.geohash import covers_radius, neighbor_geohashes, precision_for_radius
from geoquery.persistence.errors import InvalidQueryError

logger = logging.getLogger(__name__)


def plan_geohash_prefixes(
    center: GeoFirePoint,
    radius_in_km: float,
    config: GeoQueryConfig | None = None,
) -> list[str]:
    """Center cell plus its 8 neighbours at a radius-dependent precision.

    The result over-covers the circle (cell corners), which the distance
    filter resolves.  Center first, duplicates removed; fewer than 9 when
    neighbours collapse at the poles.
    """
    if not radius_in_km > 0:
        raise InvalidQueryError(f"radius_in_km must be > 0, got {radius_in_km}")
    config = config or GeoQueryConfig()

    precision = precision_for_radius(
        radius_in_km,
        center.latitude,
        cell_sizes_km=config.cell_sizes_km,
        max_precision=config.max_precision,
    )
    if not covers_radius(precision, radius_in_km, center.latitude, cell_sizes_km=config.cell_sizes_km):
        logger.warning(
            "No geohash precision covers %.3f km at latitude %.4f; "
            "falling back to precision %d, results may miss documents",
            radius_in_km, center.latitude, precision,
        )
    center_hash = center.geohash[:precision]
    prefixes = [center_hash]
    for neighbor in neighbor_geohashes(center_hash):
        if neighbor not in prefixes:
            prefixes.append(neighbor)

    logger.debug(
        "Planned %d prefixes at precision %d for %.3f km around %s",
        len(prefixes), precision, radius_in_km, center_hash,
    )
    return prefixes
