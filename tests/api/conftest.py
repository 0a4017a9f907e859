"""Shared fixtures for API tests."""

from __future__ import annotations

from unittest.mock import patch

import httpx
import pytest

from geoquery.api.app import app
from geoquery.config import GeoQueryConfig
from geoquery.contracts.geo_point import GeoFirePoint
from geoquery.geo.geohash import KM_PER_DEGREE
from tests.persistence.fake_firestore import FakeFirestoreClient

TOKYO_STATION = (35.681236, 139.767125)


@pytest.fixture
def fake_client():
    """In-memory Firestore fake, shared by every request in a single test."""
    return FakeFirestoreClient()


@pytest.fixture
def seeded_client(fake_client):
    """Four locations due north of Tokyo Station; B is hidden."""
    locations = fake_client.collection("locations")
    for doc_id, distance in (("D", 1.05), ("B", 0.9), ("A", 0.2), ("C", 1.01)):
        point = GeoFirePoint(
            latitude=TOKYO_STATION[0] + distance / KM_PER_DEGREE,
            longitude=TOKYO_STATION[1],
        )
        locations.document(doc_id).set({
            "name": doc_id,
            "isVisible": doc_id != "B",
            "geo": point.data,
        })
    return fake_client


@pytest.fixture
def test_app(fake_client):
    """FastAPI app wired to the fake Firestore client."""
    with patch("geoquery.api.deps.get_firestore_client", return_value=fake_client):
        # The lifespan does not run under ASGITransport
        app.state.geo_config = GeoQueryConfig()
        yield app


@pytest.fixture
async def client(test_app):
    """httpx AsyncClient wired to the test app."""
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
