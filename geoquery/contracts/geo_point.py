"""GeoFirePoint and StoredGeoField — a location and its persisted form.

A ``GeoFirePoint`` is the caller-side value: coordinates plus their
canonical geohash.  A ``StoredGeoField`` is what lives on a document::

    {"<field>": {"geopoint": GeoPoint(lat, lon), "geohash": "xn76urx6h"}}

Range queries run on ``<field>.geohash``; distances are computed from
``<field>.geopoint``.
"""

from typing import Any

from google.cloud.firestore import GeoPoint as FirestoreGeoPoint
from pydantic import Field, computed_field, field_validator

from geoquery.contracts.common import FirestoreModel, GeoPoint
from geoquery.geo.geohash import MAX_GEOHASH_PRECISION, distance_km, encode_geohash


def _point_dict(value: Any) -> Any:
    """Accept Firestore GeoPoints and other lat/lon objects as plain dicts."""
    if isinstance(value, (dict, GeoPoint)):
        return value
    if hasattr(value, "latitude") and hasattr(value, "longitude"):
        return {"latitude": value.latitude, "longitude": value.longitude}
    return value


class GeoFirePoint(FirestoreModel):
    """A coordinate with its geohash at maximum precision. Immutable."""

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def geohash(self) -> str:
        """Canonical geohash of (latitude, longitude), 9 characters."""
        return encode_geohash(self.latitude, self.longitude, MAX_GEOHASH_PRECISION)

    @classmethod
    def from_geopoint(cls, geopoint: Any) -> "GeoFirePoint":
        """Build from anything exposing ``latitude`` / ``longitude``."""
        return cls(latitude=geopoint.latitude, longitude=geopoint.longitude)

    @property
    def geopoint(self) -> GeoPoint:
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)

    @property
    def data(self) -> dict[str, Any]:
        """Stored field form: Firestore GeoPoint plus geohash."""
        return StoredGeoField(geopoint=self.geopoint, geohash=self.geohash).to_firestore()

    def distance_between_in_km(self, *, latitude: float, longitude: float) -> float:
        """Great-circle distance from this point, in kilometers."""
        return distance_km(self.latitude, self.longitude, latitude, longitude)

    def distance_to(self, other: Any) -> float:
        """Distance to another point-like object, in kilometers."""
        return self.distance_between_in_km(latitude=other.latitude, longitude=other.longitude)


class StoredGeoField(FirestoreModel):
    """Persisted geo field: ``{geopoint, geohash}``."""

    geopoint: GeoPoint
    geohash: str = Field(..., min_length=1, max_length=12)

    @field_validator("geopoint", mode="before")
    @classmethod
    def coerce_geopoint(cls, v: Any) -> Any:
        return _point_dict(v)

    def to_firestore(self) -> dict[str, Any]:
        """Dump with a native Firestore GeoPoint so it is stored as a geo value."""
        return {
            "geopoint": FirestoreGeoPoint(self.geopoint.latitude, self.geopoint.longitude),
            "geohash": self.geohash,
        }

    @property
    def point(self) -> GeoFirePoint:
        return GeoFirePoint.from_geopoint(self.geopoint)
