"""Distance filter and ranking of merged geohash candidates."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from geoquery.config import DETECTION_RANGE_BUFFER
from geoquery.contracts.geo_point import GeoFirePoint
from geoquery.contracts.query import GeoDocumentSnapshot, GeopointFrom

logger = logging.getLogger(__name__)

# What a broken or missing geo field raises from an extractor
_EXTRACTION_ERRORS = (KeyError, TypeError, AttributeError, ValueError)


def document_identity(snapshot: Any) -> str:
    """Stable identity of a snapshot: its reference path, else its id."""
    reference = getattr(snapshot, "reference", None)
    path = getattr(reference, "path", None)
    return path if path else snapshot.id


def _distance_of(
    snapshot: Any, center: GeoFirePoint, geopoint_from: GeopointFrom
) -> float | None:
    """Distance of a candidate from the center, or None if it does not qualify."""
    if not snapshot.exists:
        return None
    try:
        data = snapshot.to_dict()
        geopoint = geopoint_from(data)
        latitude = float(geopoint.latitude)
        longitude = float(geopoint.longitude)
    except _EXTRACTION_ERRORS as exc:
        logger.debug("Excluding %s: unreadable geo field (%s)", snapshot.id, exc)
        return None
    if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
        logger.debug("Excluding %s: coordinates out of range", snapshot.id)
        return None
    return center.distance_between_in_km(latitude=latitude, longitude=longitude)


def rank_candidates(
    candidates: Iterable[Any],
    *,
    center: GeoFirePoint,
    radius_in_km: float,
    geopoint_from: GeopointFrom,
    strict_mode: bool = False,
    detection_range_buffer: float = DETECTION_RANGE_BUFFER,
) -> list[GeoDocumentSnapshot]:
    """Annotate candidates with their distance, filter and sort ascending.

    - Deleted documents and unreadable geo fields are dropped silently.
    - A document seen more than once (overlapping ranges) is kept once,
      first occurrence wins.
    - ``strict_mode`` drops anything farther than
      ``radius_in_km * detection_range_buffer``; otherwise every geohash
      match passes.
    - Sorting is stable, so equal distances keep their input order.
    """
    limit_km = radius_in_km * detection_range_buffer
    seen: set[str] = set()
    ranked: list[GeoDocumentSnapshot] = []

    for snapshot in candidates:
        identity = document_identity(snapshot)
        if identity in seen:
            continue
        distance = _distance_of(snapshot, center, geopoint_from)
        if distance is None or math.isnan(distance):
            continue
        seen.add(identity)
        if strict_mode and distance > limit_km:
            continue
        ranked.append(
            GeoDocumentSnapshot(
                document_snapshot=snapshot,
                distance_from_center_in_km=distance,
            )
        )

    ranked.sort(key=lambda result: result.distance_from_center_in_km)
    return ranked
