"""Unit tests for GeoCollectionReference using FakeFirestoreClient."""

from __future__ import annotations

import asyncio
import math
from contextlib import aclosing

import pytest
from google.cloud.firestore_v1 import FieldFilter

from geoquery.config import GeoQueryConfig
from geoquery.contracts.geo_point import GeoFirePoint, StoredGeoField
from geoquery.geo.geohash import EARTH_RADIUS_KM, KM_PER_DEGREE
from geoquery.geo.planner import plan_geohash_prefixes
from geoquery.persistence.errors import (
    DocumentNotFoundError,
    InvalidQueryError,
    ListenerClosedError,
)
from geoquery.persistence.geo_collection import GeoCollectionReference, geohash_range_query
from tests.persistence.fake_firestore import FakeFirestoreClient

TOKYO_STATION = GeoFirePoint(latitude=35.681236, longitude=139.767125)


@pytest.fixture
def fake_client():
    return FakeFirestoreClient()


@pytest.fixture
def geo(fake_client):
    return GeoCollectionReference(fake_client.collection("locations"))


def _north(distance: float) -> tuple[float, float]:
    return TOKYO_STATION.latitude + distance / KM_PER_DEGREE, TOKYO_STATION.longitude


def _toward(bearing_deg: float, distance: float) -> tuple[float, float]:
    """Point ``distance`` km from Tokyo Station along ``bearing_deg``."""
    delta = distance / EARTH_RADIUS_KM
    theta = math.radians(bearing_deg)
    phi1 = math.radians(TOKYO_STATION.latitude)
    phi2 = math.asin(
        math.sin(phi1) * math.cos(delta)
        + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    )
    lambda2 = math.radians(TOKYO_STATION.longitude) + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    return math.degrees(phi2), math.degrees(lambda2)


async def _put(geo, doc_id: str, distance: float, **extra) -> None:
    lat, lon = _north(distance)
    point = GeoFirePoint(latitude=lat, longitude=lon)
    await geo.set_document(doc_id, {"name": doc_id, "geo": point.data, **extra})


async def _until(results, predicate, timeout: float = 2.0):
    """Read emissions until one satisfies ``predicate``; return it."""

    async def _read():
        while True:
            value = await results.__anext__()
            if predicate(value):
                return value

    return await asyncio.wait_for(_read(), timeout)


def _ids(documents):
    return [doc.id for doc in documents]


@pytest.fixture
async def tokyo_docs(geo):
    for doc_id, distance in (("D", 1.05), ("B", 0.9), ("A", 0.2), ("C", 1.01)):
        await _put(geo, doc_id, distance, isVisible=doc_id != "B")


class TestWrites:
    async def test_set_point_round_trip(self, geo):
        await geo.set_document("hq", {"name": "HQ"})
        await geo.set_point(id="hq", field="geo", latitude=35.681236, longitude=139.767125)

        snapshot = await geo.get_document("hq")
        data = snapshot.to_dict()
        assert data["name"] == "HQ"
        stored = StoredGeoField.from_firestore(data["geo"])
        assert stored.geopoint.latitude == pytest.approx(35.681236)
        assert stored.geopoint.longitude == pytest.approx(139.767125)
        assert stored.geohash == TOKYO_STATION.geohash

    async def test_set_point_rejects_invalid_coordinates(self, geo):
        with pytest.raises(ValueError):
            await geo.set_point(id="x", field="geo", latitude=91.0, longitude=0.0)

    async def test_add_returns_reference(self, geo, fake_client):
        doc_ref = await geo.add({"name": "new", "geo": TOKYO_STATION.data})
        assert f"locations/{doc_ref.id}" in fake_client.store

    async def test_get_missing_document(self, geo):
        snapshot = await geo.get_document("nope")
        assert not snapshot.exists
        with pytest.raises(DocumentNotFoundError) as excinfo:
            await geo.get_document("nope", required=True)
        assert excinfo.value.doc_id == "nope"

    async def test_delete(self, geo, fake_client):
        await _put(geo, "A", 0.2)
        await geo.delete("A")
        assert "locations/A" not in fake_client.store


class TestRangeQuery:
    async def test_prefix_bounds(self, geo, fake_client):
        await _put(geo, "A", 0.2)
        await geo.set_document("far", {"geo": GeoFirePoint(latitude=-33.86, longitude=151.2).data})
        query = geohash_range_query(fake_client.collection("locations"), "geo", TOKYO_STATION.geohash[:5])
        assert [doc.id for doc in query.get()] == ["A"]


class TestFetchWithin:
    async def test_non_strict_sorted(self, geo, tokyo_docs):
        results = await geo.fetch_within_with_distance(
            center=TOKYO_STATION, radius_in_km=1.0, field="geo"
        )
        assert _ids(results) == ["A", "B", "C", "D"]

    async def test_strict(self, geo, tokyo_docs):
        documents = await geo.fetch_within(
            center=TOKYO_STATION, radius_in_km=1.0, field="geo", strict_mode=True
        )
        assert _ids(documents) == ["A", "B", "C"]

    async def test_query_builder_filters(self, geo, tokyo_docs):
        documents = await geo.fetch_within(
            center=TOKYO_STATION,
            radius_in_km=1.0,
            field="geo",
            query_builder=lambda q: q.where(filter=FieldFilter("isVisible", "==", True)),
            strict_mode=True,
        )
        assert _ids(documents) == ["A", "C"]

    async def test_nested_geo_field(self, geo):
        await geo.set_document("a", {"name": "a", "meta": {"geo": TOKYO_STATION.data}})
        documents = await geo.fetch_within(
            center=TOKYO_STATION, radius_in_km=1.0, field="meta.geo", strict_mode=True
        )
        assert _ids(documents) == ["a"]

    async def test_set_point_nested_field(self, geo, fake_client):
        lat, lon = _north(0.3)
        await geo.set_document("b", {"meta": {"kind": "cafe"}})
        await geo.set_point(id="b", field="meta.geo", latitude=lat, longitude=lon)
        stored = fake_client.store["locations/b"]
        assert stored["meta"]["kind"] == "cafe"
        assert "meta.geo" not in stored

        results = await geo.fetch_within_with_distance(
            center=TOKYO_STATION, radius_in_km=1.0, field="meta.geo"
        )
        assert _ids(results) == ["b"]
        assert results[0].distance_from_center_in_km == pytest.approx(0.3, abs=1e-6)

    async def test_growing_radius_across_precision_change(self, geo):
        # 0.6 km plans 6-character prefixes, 2.5 km plans 5-character ones
        assert len(plan_geohash_prefixes(TOKYO_STATION, 0.6)[0]) > len(
            plan_geohash_prefixes(TOKYO_STATION, 2.5)[0]
        )
        placed = {
            "p010": (0, 0.1), "p030": (135, 0.3), "p055": (250, 0.55),
            "p090": (45, 0.9), "p150": (300, 1.5), "p200": (90, 2.0),
            "p240": (200, 2.4), "p280": (10, 2.8), "p350": (160, 3.5),
        }
        for doc_id, (bearing, distance) in placed.items():
            lat, lon = _toward(bearing, distance)
            await geo.set_point(id=doc_id, field="geo", latitude=lat, longitude=lon)

        small = await geo.fetch_within(
            center=TOKYO_STATION, radius_in_km=0.6, field="geo", strict_mode=True
        )
        large = await geo.fetch_within(
            center=TOKYO_STATION, radius_in_km=2.5, field="geo", strict_mode=True
        )
        assert set(_ids(small)) == {"p010", "p030", "p055"}
        assert set(_ids(large)) == {"p010", "p030", "p055", "p090", "p150", "p200", "p240"}
        assert set(_ids(small)) <= set(_ids(large))

    async def test_custom_config_buffer(self, fake_client, tokyo_docs):
        geo = GeoCollectionReference(
            fake_client.collection("locations"),
            config=GeoQueryConfig(detection_range_buffer=1.0),
        )
        documents = await geo.fetch_within(
            center=TOKYO_STATION, radius_in_km=1.0, field="geo", strict_mode=True
        )
        assert _ids(documents) == ["A", "B"]


class TestSubscribeWithin:
    async def test_first_emission_ranked(self, geo, tokyo_docs):
        async with aclosing(
            geo.subscribe_within_with_distance(
                center=TOKYO_STATION, radius_in_km=1.0, field="geo", strict_mode=True
            )
        ) as results:
            first = await _until(results, lambda value: True)
        assert _ids(first) == ["A", "B", "C"]
        assert [r.distance_from_center_in_km for r in first] == pytest.approx(
            [0.2, 0.9, 1.01], abs=1e-6
        )

    async def test_plain_documents(self, geo, tokyo_docs):
        async with aclosing(
            geo.subscribe_within(center=TOKYO_STATION, radius_in_km=1.0, field="geo")
        ) as results:
            first = await _until(results, lambda value: True)
        assert _ids(first) == ["A", "B", "C", "D"]
        assert first[0].to_dict()["name"] == "A"

    async def test_one_listener_per_prefix(self, geo, fake_client, tokyo_docs):
        async with aclosing(
            geo.subscribe_within(center=TOKYO_STATION, radius_in_km=1.0, field="geo")
        ) as results:
            await _until(results, lambda value: True)
            assert len(fake_client.active_listeners) == 9
        assert fake_client.active_listeners == []

    async def test_re_emits_on_new_document(self, geo, tokyo_docs):
        async with aclosing(
            geo.subscribe_within(
                center=TOKYO_STATION, radius_in_km=1.0, field="geo", strict_mode=True
            )
        ) as results:
            await _until(results, lambda value: True)
            lat, lon = _north(0.5)
            await geo.set_point(id="E", field="geo", latitude=lat, longitude=lon)
            updated = await _until(results, lambda value: "E" in _ids(value))
        assert _ids(updated) == ["A", "E", "B", "C"]

    async def test_moving_document_is_reranked(self, geo, tokyo_docs):
        async with aclosing(
            geo.subscribe_within(
                center=TOKYO_STATION, radius_in_km=1.0, field="geo", strict_mode=True
            )
        ) as results:
            await _until(results, lambda value: True)
            lat, lon = _north(0.1)
            await geo.set_point(id="B", field="geo", latitude=lat, longitude=lon)
            updated = await _until(results, lambda value: _ids(value)[0] == "B")
        assert _ids(updated) == ["B", "A", "C"]

    async def test_removed_geo_field_drops_document(self, geo, tokyo_docs):
        async with aclosing(
            geo.subscribe_within(center=TOKYO_STATION, radius_in_km=1.0, field="geo")
        ) as results:
            await _until(results, lambda value: "A" in _ids(value))
            await geo.set_document("A", {"name": "A"})
            updated = await _until(results, lambda value: "A" not in _ids(value))
        assert _ids(updated) == ["B", "C", "D"]

    async def test_broken_geopoint_excluded(self, geo, tokyo_docs):
        async with aclosing(
            geo.subscribe_within(center=TOKYO_STATION, radius_in_km=1.0, field="geo")
        ) as results:
            await _until(results, lambda value: "A" in _ids(value))
            await geo.set_document("A", {"geo": {"geohash": TOKYO_STATION.geohash}})
            updated = await _until(results, lambda value: "A" not in _ids(value))
        assert _ids(updated) == ["B", "C", "D"]

    async def test_deleted_document_drops_out(self, geo, tokyo_docs):
        async with aclosing(
            geo.subscribe_within(center=TOKYO_STATION, radius_in_km=1.0, field="geo")
        ) as results:
            await _until(results, lambda value: True)
            await geo.delete("C")
            updated = await _until(results, lambda value: "C" not in _ids(value))
        assert _ids(updated) == ["A", "B", "D"]

    async def test_subscriptions_are_independent(self, geo, fake_client, tokyo_docs):
        sydney = GeoFirePoint(latitude=-33.8568, longitude=151.2153)
        tokyo = geo.subscribe_within(center=TOKYO_STATION, radius_in_km=1.0, field="geo")
        other = geo.subscribe_within(center=sydney, radius_in_km=1.0, field="geo")
        try:
            assert _ids(await _until(tokyo, lambda value: True)) == ["A", "B", "C", "D"]
            assert await _until(other, lambda value: True) == []
            await tokyo.aclose()
            assert len(fake_client.active_listeners) == 9
        finally:
            await other.aclose()
        assert fake_client.active_listeners == []


class TestDedup:
    async def test_overlapping_ranges_yield_each_document_once(self, fake_client, tokyo_docs):
        collection = fake_client.collection("locations")

        async def listen_whole_collection(query):
            # Every range sees every document, as with fully overlapping prefixes
            yield collection.get()
            await asyncio.Event().wait()

        geo = GeoCollectionReference(collection, listen=listen_whole_collection)
        async with aclosing(
            geo.subscribe_within(center=TOKYO_STATION, radius_in_km=1.0, field="geo")
        ) as results:
            first = await _until(results, lambda value: True)
        assert _ids(first) == ["A", "B", "C", "D"]


class TestInvalidQueries:
    @pytest.mark.parametrize("radius", [0, -2.5, float("nan"), float("inf")])
    def test_invalid_radius_raises_immediately(self, geo, fake_client, radius):
        with pytest.raises(InvalidQueryError):
            geo.subscribe_within(center=TOKYO_STATION, radius_in_km=radius, field="geo")
        assert fake_client.active_listeners == []

    def test_empty_field(self, geo):
        with pytest.raises(InvalidQueryError):
            geo.subscribe_within(center=TOKYO_STATION, radius_in_km=1.0, field="")

    def test_center_must_be_geofirepoint(self, geo):
        with pytest.raises(InvalidQueryError):
            geo.subscribe_within(center=(35.0, 139.0), radius_in_km=1.0, field="geo")

    def test_builder_with_ordering_rejected(self, geo, fake_client):
        with pytest.raises(InvalidQueryError, match="order"):
            geo.subscribe_within(
                center=TOKYO_STATION,
                radius_in_km=1.0,
                field="geo",
                query_builder=lambda q: q.order_by("name"),
            )
        assert fake_client.active_listeners == []

    def test_builder_returning_none_rejected(self, geo):
        with pytest.raises(InvalidQueryError):
            geo.subscribe_within(
                center=TOKYO_STATION,
                radius_in_km=1.0,
                field="geo",
                query_builder=lambda q: None,
            )

    async def test_fetch_validates_too(self, geo):
        with pytest.raises(InvalidQueryError):
            await geo.fetch_within(center=TOKYO_STATION, radius_in_km=-1, field="geo")

    def test_invalid_query_error_is_value_error(self):
        assert issubclass(InvalidQueryError, ValueError)


class TestListenErrors:
    async def test_listener_closed_by_server_fails_subscription(self, geo, fake_client, tokyo_docs):
        results = geo.subscribe_within(center=TOKYO_STATION, radius_in_km=1.0, field="geo")
        try:
            await _until(results, lambda value: True)
            assert len(fake_client.active_listeners) == 9
            fake_client.active_listeners[4].die(PermissionError("missing index"))
            with pytest.raises(PermissionError, match="missing index"):
                await _until(results, lambda value: False)
        finally:
            await results.aclose()
        assert fake_client.active_listeners == []

    async def test_listener_closed_without_reason(self, geo, fake_client, tokyo_docs):
        results = geo.subscribe_within(center=TOKYO_STATION, radius_in_km=1.0, field="geo")
        try:
            await _until(results, lambda value: True)
            fake_client.active_listeners[0].die()
            with pytest.raises(ListenerClosedError):
                await _until(results, lambda value: False)
        finally:
            await results.aclose()
        assert fake_client.active_listeners == []

    async def test_registration_error_surfaces_and_cleans_up(self, geo, fake_client, tokyo_docs):
        fake_client.listen_error = PermissionError("missing index")
        results = geo.subscribe_within(center=TOKYO_STATION, radius_in_km=1.0, field="geo")
        with pytest.raises(PermissionError, match="missing index"):
            await asyncio.wait_for(results.__anext__(), 2)
        await results.aclose()
        assert fake_client.active_listeners == []

    async def test_error_after_first_emission(self, fake_client, tokyo_docs):
        collection = fake_client.collection("locations")
        fail = asyncio.Event()

        async def flaky_listen(query):
            yield query.get()
            await fail.wait()
            raise RuntimeError("stream reset")

        geo = GeoCollectionReference(collection, listen=flaky_listen)
        results = geo.subscribe_within(center=TOKYO_STATION, radius_in_km=1.0, field="geo")
        try:
            first = await _until(results, lambda value: True)
            assert _ids(first) == ["A", "B", "C", "D"]
            fail.set()
            with pytest.raises(RuntimeError, match="stream reset"):
                await _until(results, lambda value: False)
        finally:
            await results.aclose()
