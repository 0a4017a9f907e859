"""Geo query and persistence exceptions."""


class GeoQueryError(Exception):
    """Base exception for all geoquery errors."""


class InvalidQueryError(GeoQueryError, ValueError):
    """Raised before any listener opens when a query cannot be planned."""


class DocumentNotFoundError(GeoQueryError):
    """Raised when a Firestore document does not exist."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} not found")


class ListenerClosedError(GeoQueryError):
    """Raised when a snapshot listener stops without being unsubscribed."""
