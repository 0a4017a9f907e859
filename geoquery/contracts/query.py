"""Runtime query objects: the query spec and its ranked results.

These wrap live Firestore objects (snapshots, query builders), so they
are frozen dataclasses rather than Firestore models.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable

from geoquery.contracts.geo_point import GeoFirePoint
from geoquery.persistence.errors import InvalidQueryError

# (document data) -> object with ``latitude`` / ``longitude``
GeopointFrom = Callable[[dict[str, Any]], Any]
# (query) -> query with extra filters; must not add its own ordering
QueryBuilder = Callable[[Any], Any]


def geopoint_from_field(field: str) -> GeopointFrom:
    """Default extractor: ``data[field]["geopoint"]``.

    ``field`` is a Firestore field path, so ``"meta.geo"`` reads
    ``data["meta"]["geo"]["geopoint"]``, matching the ``meta.geo.geohash``
    range query.
    """
    parts = field.split(".")

    def _extract(data: dict[str, Any]) -> Any:
        value: Any = data
        for part in parts:
            value = value[part]
        return value["geopoint"]

    return _extract


@dataclass(frozen=True)
class GeoQuerySpec:
    """One radius query. A new center or radius means a new spec."""

    center: GeoFirePoint
    radius_in_km: float
    field: str
    geopoint_from: GeopointFrom
    query_builder: QueryBuilder | None = None
    strict_mode: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.center, GeoFirePoint):
            raise InvalidQueryError("center must be a GeoFirePoint")
        if not isinstance(self.radius_in_km, (int, float)) or isinstance(self.radius_in_km, bool):
            raise InvalidQueryError(f"radius_in_km must be a number, got {self.radius_in_km!r}")
        if not math.isfinite(self.radius_in_km) or self.radius_in_km <= 0:
            raise InvalidQueryError(f"radius_in_km must be > 0, got {self.radius_in_km}")
        if not self.field or not self.field.strip():
            raise InvalidQueryError("field must be a non-empty field path")
        if not callable(self.geopoint_from):
            raise InvalidQueryError("geopoint_from must be callable")
        if self.query_builder is not None and not callable(self.query_builder):
            raise InvalidQueryError("query_builder must be callable")

    @classmethod
    def build(
        cls,
        *,
        center: GeoFirePoint,
        radius_in_km: float,
        field: str,
        geopoint_from: GeopointFrom | None = None,
        query_builder: QueryBuilder | None = None,
        strict_mode: bool = False,
    ) -> GeoQuerySpec:
        """Spec with the default ``data[field]["geopoint"]`` extractor."""
        return cls(
            center=center,
            radius_in_km=radius_in_km,
            field=field,
            geopoint_from=geopoint_from or geopoint_from_field(field),
            query_builder=query_builder,
            strict_mode=strict_mode,
        )


@dataclass(frozen=True)
class GeoDocumentSnapshot:
    """A Firestore ``DocumentSnapshot`` with its distance from the center."""

    document_snapshot: Any
    distance_from_center_in_km: float

    @property
    def id(self) -> str:
        return self.document_snapshot.id

    def to_dict(self) -> dict[str, Any] | None:
        return self.document_snapshot.to_dict()
