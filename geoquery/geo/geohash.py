"""Geohash math: precision selection, neighbour cells, great-circle distance.

String encoding is delegated to ``pygeohash``; everything here works on
top of ``encode`` / ``decode_exactly``.
"""

from __future__ import annotations

import math

import pygeohash as pgh

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 2 * math.pi * EARTH_RADIUS_KM / 360

# Length of the geohash stored on documents (~4.8 m cells).
MAX_GEOHASH_PRECISION = 9


def _cell_size_km(precision: int) -> tuple[float, float]:
    """(width at the equator, height) of a geohash cell, in km.

    A geohash of ``precision`` characters carries ``5 * precision`` bits,
    interleaved longitude first.
    """
    bits = 5 * precision
    lon_bits = (bits + 1) // 2
    lat_bits = bits // 2
    return (
        360.0 / 2**lon_bits * KM_PER_DEGREE,
        180.0 / 2**lat_bits * KM_PER_DEGREE,
    )


# precision -> (width_km at the equator, height_km)
GEOHASH_CELL_SIZES_KM: dict[int, tuple[float, float]] = {
    p: _cell_size_km(p) for p in range(1, MAX_GEOHASH_PRECISION + 1)
}

# N, NE, E, SE, S, SW, W, NW as (lat step, lon step)
_DIRECTIONS = (
    (1, 0),
    (1, 1),
    (0, 1),
    (-1, 1),
    (-1, 0),
    (-1, -1),
    (0, -1),
    (1, -1),
)


def encode_geohash(
    latitude: float, longitude: float, precision: int = MAX_GEOHASH_PRECISION
) -> str:
    """Canonical geohash of a coordinate."""
    return pgh.encode(latitude, longitude, precision=precision)


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in kilometers."""
    la1, lo1 = math.radians(lat1), math.radians(lon1)
    la2, lo2 = math.radians(lat2), math.radians(lon2)
    dlat = la2 - la1
    dlon = lo2 - lo1
    a = math.sin(dlat / 2) ** 2 + math.cos(la1) * math.cos(la2) * math.sin(dlon / 2) ** 2
    return 2 * math.asin(min(1.0, math.sqrt(a))) * EARTH_RADIUS_KM


def _covered_width_km(width_km: float, latitude: float) -> float:
    """Largest radius a 3x3 block of cells this wide covers east-west.

    A circle of radius ``r`` around a point at ``latitude`` spans at most
    ``asin(sin(r / R) / cos(latitude))`` radians of longitude.
    """
    width_rad = math.radians(width_km / KM_PER_DEGREE)
    if width_rad >= math.pi / 2:
        return EARTH_RADIUS_KM * math.pi / 2
    span = math.sin(width_rad) * math.cos(math.radians(latitude))
    return EARTH_RADIUS_KM * math.asin(max(0.0, min(1.0, span)))


def covers_radius(
    precision: int,
    radius_in_km: float,
    latitude: float = 0.0,
    *,
    cell_sizes_km: dict[int, tuple[float, float]] | None = None,
) -> bool:
    """Whether the 3x3 block at ``precision`` contains every point within the radius."""
    width_km, height_km = (cell_sizes_km or GEOHASH_CELL_SIZES_KM)[precision]
    return height_km >= radius_in_km and _covered_width_km(width_km, latitude) >= radius_in_km


def precision_for_radius(
    radius_in_km: float,
    latitude: float = 0.0,
    *,
    cell_sizes_km: dict[int, tuple[float, float]] | None = None,
    max_precision: int = MAX_GEOHASH_PRECISION,
) -> int:
    """Finest geohash precision whose 3x3 neighbourhood covers the radius.

    Monotonic in ``radius_in_km``: a larger radius never yields a longer
    prefix.  Falls back to the coarsest precision in the table, which may
    not cover the radius (see ``covers_radius``).
    """
    sizes = cell_sizes_km or GEOHASH_CELL_SIZES_KM
    for precision in sorted(sizes, reverse=True):
        if precision > max_precision:
            continue
        if covers_radius(precision, radius_in_km, latitude, cell_sizes_km=sizes):
            return precision
    return min(sizes)


def _wrap_longitude(longitude: float) -> float:
    return (longitude + 180.0) % 360.0 - 180.0


def neighbor_geohashes(geohash: str) -> list[str]:
    """The 8 cells around ``geohash`` at the same precision.

    Ordered N, NE, E, SE, S, SW, W, NW.  Longitude wraps around the
    antimeridian; rows past a pole do not exist and are skipped.
    """
    lat, lon, lat_err, lon_err = pgh.decode_exactly(geohash)
    precision = len(geohash)
    neighbors: list[str] = []
    for dlat, dlon in _DIRECTIONS:
        n_lat = lat + dlat * 2 * lat_err
        if not -90.0 < n_lat < 90.0:
            continue
        n_lon = _wrap_longitude(lon + dlon * 2 * lon_err)
        neighbors.append(pgh.encode(n_lat, n_lon, precision=precision))
    return neighbors
