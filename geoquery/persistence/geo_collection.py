"""Geo queries and geo-aware writes on a Firestore collection."""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable

from geoquery.config import RANGE_SENTINEL, GeoQueryConfig
from geoquery.contracts.geo_point import GeoFirePoint
from geoquery.contracts.query import (
    GeoDocumentSnapshot,
    GeopointFrom,
    GeoQuerySpec,
    QueryBuilder,
)
from geoquery.geo.planner import plan_geohash_prefixes
from geoquery.geo.ranker import rank_candidates
from geoquery.persistence.errors import DocumentNotFoundError, InvalidQueryError
from geoquery.streams.merge import combine_latest
from geoquery.streams.watch import watch_query

logger = logging.getLogger(__name__)

# (query) -> live stream of that query's document lists
Listen = Callable[[Any], AsyncIterator[list[Any]]]


def geohash_range_query(query: Any, field: str, prefix: str, sentinel: str = RANGE_SENTINEL) -> Any:
    """Documents whose ``<field>.geohash`` starts with ``prefix``.

    Applied last: the geohash bound is the query's ordering key.
    """
    return (
        query.order_by(f"{field}.geohash")
        .start_at([prefix])
        .end_at([prefix + sentinel])
    )


class GeoCollectionReference:
    """Wraps a Firestore ``CollectionReference`` with radius queries.

    Subscriptions return async iterators that re-emit the full ranked
    result on every change and only end when closed::

        geo = GeoCollectionReference(db.collection("locations"))
        async with aclosing(geo.subscribe_within(center=..., radius_in_km=1, field="geo")) as results:
            async for documents in results:
                ...

    Changing the center or radius means closing the iterator and
    subscribing again.
    """

    def __init__(
        self,
        collection_reference: Any,
        *,
        config: GeoQueryConfig | None = None,
        listen: Listen = watch_query,
    ):
        self._collection_reference = collection_reference
        self._config = config or GeoQueryConfig()
        self._listen = listen

    @property
    def collection_reference(self) -> Any:
        return self._collection_reference

    @property
    def _collection_id(self) -> str:
        return getattr(self._collection_reference, "id", "<collection>")

    @property
    def config(self) -> GeoQueryConfig:
        return self._config

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def add(self, data: dict[str, Any]) -> Any:
        """Create a document with an auto-generated ID. Returns its reference."""
        _update_time, doc_ref = await asyncio.to_thread(self._collection_reference.add, data)
        return doc_ref

    async def set_document(self, id: str, data: dict[str, Any], merge: bool = False) -> None:
        """Set (or merge into) the document ``id``."""
        doc_ref = self._collection_reference.document(id)
        await asyncio.to_thread(doc_ref.set, data, merge=merge)

    async def get_document(self, id: str, *, required: bool = False) -> Any:
        """Fetch the snapshot of ``id``.

        Check ``exists`` on the result, or pass ``required=True`` to raise
        ``DocumentNotFoundError`` for a missing document.
        """
        snapshot = await asyncio.to_thread(self._collection_reference.document(id).get)
        if required and not snapshot.exists:
            raise DocumentNotFoundError(self._collection_id, id)
        return snapshot

    async def delete(self, id: str) -> None:
        """Delete a document."""
        await asyncio.to_thread(self._collection_reference.document(id).delete)

    async def set_point(
        self, *, id: str, field: str, latitude: float, longitude: float
    ) -> None:
        """Merge ``{field: {geopoint, geohash}}`` into the document ``id``.

        A dotted ``field`` (``"meta.geo"``) is written as nested maps.
        """
        point = GeoFirePoint(latitude=latitude, longitude=longitude)
        data: dict[str, Any] = point.data
        for part in reversed(field.split(".")):
            data = {part: data}
        await self.set_document(id, data, merge=True)

    # ------------------------------------------------------------------
    # Live queries
    # ------------------------------------------------------------------

    def subscribe_within(
        self,
        *,
        center: GeoFirePoint,
        radius_in_km: float,
        field: str,
        geopoint_from: GeopointFrom | None = None,
        query_builder: QueryBuilder | None = None,
        strict_mode: bool = False,
    ) -> AsyncIterator[list[Any]]:
        """Live ``DocumentSnapshot`` lists sorted by distance from ``center``.

        * ``center`` Center point of detection.
        * ``radius_in_km`` Detection range in kilometers.
        * ``field`` Document field holding ``{geopoint, geohash}``.
        * ``geopoint_from`` Reads the geopoint from document data;
          defaults to ``data[field]["geopoint"]``.
        * ``query_builder`` Adds filters (e.g. ``where``) to the base query.
          It must not add an ordering.
        * ``strict_mode`` Whether to drop documents outside the radius.

        Raises ``InvalidQueryError`` immediately on invalid input.
        """
        ranked = self.subscribe_within_with_distance(
            center=center,
            radius_in_km=radius_in_km,
            field=field,
            geopoint_from=geopoint_from,
            query_builder=query_builder,
            strict_mode=strict_mode,
        )
        return self._documents_only(ranked)

    def subscribe_within_with_distance(
        self,
        *,
        center: GeoFirePoint,
        radius_in_km: float,
        field: str,
        geopoint_from: GeopointFrom | None = None,
        query_builder: QueryBuilder | None = None,
        strict_mode: bool = False,
    ) -> AsyncIterator[list[GeoDocumentSnapshot]]:
        """Like ``subscribe_within`` but yields ``GeoDocumentSnapshot`` lists."""
        spec = GeoQuerySpec.build(
            center=center,
            radius_in_km=radius_in_km,
            field=field,
            geopoint_from=geopoint_from,
            query_builder=query_builder,
            strict_mode=strict_mode,
        )
        queries = self._range_queries(spec)
        return self._ranked_stream(spec, queries)

    # ------------------------------------------------------------------
    # One-shot queries
    # ------------------------------------------------------------------

    async def fetch_within(
        self,
        *,
        center: GeoFirePoint,
        radius_in_km: float,
        field: str,
        geopoint_from: GeopointFrom | None = None,
        query_builder: QueryBuilder | None = None,
        strict_mode: bool = False,
    ) -> list[Any]:
        """Current ``DocumentSnapshot`` list within the radius, read once."""
        results = await self.fetch_within_with_distance(
            center=center,
            radius_in_km=radius_in_km,
            field=field,
            geopoint_from=geopoint_from,
            query_builder=query_builder,
            strict_mode=strict_mode,
        )
        return [result.document_snapshot for result in results]

    async def fetch_within_with_distance(
        self,
        *,
        center: GeoFirePoint,
        radius_in_km: float,
        field: str,
        geopoint_from: GeopointFrom | None = None,
        query_builder: QueryBuilder | None = None,
        strict_mode: bool = False,
    ) -> list[GeoDocumentSnapshot]:
        """Current ``GeoDocumentSnapshot`` list within the radius, read once."""
        spec = GeoQuerySpec.build(
            center=center,
            radius_in_km=radius_in_km,
            field=field,
            geopoint_from=geopoint_from,
            query_builder=query_builder,
            strict_mode=strict_mode,
        )
        queries = self._range_queries(spec)
        results = await asyncio.gather(
            *(asyncio.to_thread(_run_query, query) for query in queries)
        )
        candidates = [doc for docs in results for doc in docs]
        return self._rank(spec, candidates)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _query(self, query_builder: QueryBuilder | None) -> Any:
        """Base query with the caller's extra conditions, if any."""
        query = self._collection_reference
        if query_builder is None:
            return query
        query = query_builder(query)
        if query is None:
            raise InvalidQueryError("query_builder returned None")
        if getattr(query, "_orders", None):
            raise InvalidQueryError(
                "query_builder must not order the query; the geohash range is the ordering key"
            )
        return query

    def _range_queries(self, spec: GeoQuerySpec) -> list[Any]:
        prefixes = plan_geohash_prefixes(spec.center, spec.radius_in_km, self._config)
        base = self._query(spec.query_builder)
        return [
            geohash_range_query(base, spec.field, prefix, self._config.range_sentinel)
            for prefix in prefixes
        ]

    def _rank(self, spec: GeoQuerySpec, candidates: list[Any]) -> list[GeoDocumentSnapshot]:
        return rank_candidates(
            candidates,
            center=spec.center,
            radius_in_km=spec.radius_in_km,
            geopoint_from=spec.geopoint_from,
            strict_mode=spec.strict_mode,
            detection_range_buffer=self._config.detection_range_buffer,
        )

    async def _ranked_stream(
        self, spec: GeoQuerySpec, queries: list[Any]
    ) -> AsyncIterator[list[GeoDocumentSnapshot]]:
        logger.info(
            "Opening geo query: %d ranges, %.3f km around %s",
            len(queries), spec.radius_in_km, spec.center.geohash,
        )
        sources = [self._listen(query) for query in queries]
        try:
            async with aclosing(combine_latest(sources)) as merged:
                async for candidates in merged:
                    yield self._rank(spec, candidates)
        finally:
            logger.info("Closed geo query around %s", spec.center.geohash)

    @staticmethod
    async def _documents_only(
        ranked: AsyncIterator[list[GeoDocumentSnapshot]],
    ) -> AsyncIterator[list[Any]]:
        async with aclosing(ranked) as results:
            async for snapshots in results:
                yield [snapshot.document_snapshot for snapshot in snapshots]


def _run_query(query: Any) -> list[Any]:
    return list(query.get())
