"""Base classes and shared types for geoquery contracts.

Unit conventions (all contracts and API responses):
- **Distances**: kilometers — suffix ``_km`` / ``_in_km``
- **Coordinates**: WGS84 decimal degrees
- **Geohashes**: lowercase base32 strings, at most ``MAX_GEOHASH_PRECISION``
  characters when stored on a document
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FirestoreModel(BaseModel):
    """Immutable base model for values stored in Firestore documents.

    - ``to_firestore()`` dumps in Python mode, so native Firestore values
      (``GeoPoint``, timestamps) pass through; computed fields are included.
    - ``from_firestore()`` hydrates from a document dict or sub-field.
    """

    model_config = ConfigDict(frozen=True)

    def to_firestore(self) -> dict[str, Any]:
        """Dump to a dict Firestore can store as-is."""
        return self.model_dump(exclude_none=True)

    @classmethod
    def from_firestore(cls, data: dict[str, Any]) -> "FirestoreModel":
        """Create model instance from Firestore document data."""
        return cls.model_validate(data)


class GeoPoint(BaseModel):
    """WGS84 geographic coordinate."""

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    model_config = ConfigDict(frozen=True)
