"""geoquery data contracts.

Persisted (Firestore document field)
------------------------------------
- ``StoredGeoField`` — ``{"geopoint": GeoPoint, "geohash": str}`` under the
  document's geo field, written by ``GeoCollectionReference.set_point``

Caller-side values
------------------
- ``GeoPoint`` — plain WGS84 coordinate
- ``GeoFirePoint`` — coordinate plus its 9-character geohash

Calculated (never persisted)
----------------------------
- ``GeoQuerySpec`` — one radius query (center, radius, field, extractor,
  query builder, strict mode)
- ``GeoDocumentSnapshot`` — a document snapshot with its distance from the
  query center, recomputed on every update
"""

from geoquery.contracts.common import FirestoreModel, GeoPoint
from geoquery.contracts.geo_point import GeoFirePoint, StoredGeoField
from geoquery.contracts.query import (
    GeoDocumentSnapshot,
    GeopointFrom,
    GeoQuerySpec,
    QueryBuilder,
    geopoint_from_field,
)

__all__ = [
    # Common
    "FirestoreModel",
    "GeoPoint",
    # Geo points
    "GeoFirePoint",
    "StoredGeoField",
    # Queries
    "GeoDocumentSnapshot",
    "GeopointFrom",
    "GeoQuerySpec",
    "QueryBuilder",
    "geopoint_from_field",
]
