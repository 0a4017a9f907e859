"""Radius search and geo field endpoints."""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
from google.cloud.firestore import GeoPoint as FirestoreGeoPoint
from pydantic import BaseModel, Field, ValidationError

from geoquery.api.deps import get_geo_collection
from geoquery.contracts.geo_point import GeoFirePoint
from geoquery.contracts.query import GeoDocumentSnapshot
from geoquery.persistence.errors import DocumentNotFoundError, InvalidQueryError
from geoquery.persistence.filters import equality_query_builder, parse_equality_filters
from geoquery.persistence.geo_collection import GeoCollectionReference

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/geo", tags=["geo"])

_ENCODERS = {
    FirestoreGeoPoint: lambda gp: {"latitude": gp.latitude, "longitude": gp.longitude},
}


class PointUpdate(BaseModel):
    field: str = Field(default="geo", min_length=1)
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class RadiusQuery(BaseModel):
    """Query-string parameters shared by the search endpoints."""

    latitude: float
    longitude: float
    radius_km: float
    field: str = "geo"
    strict: bool = False
    where: list[str] = Field(default_factory=list)


def _radius_query(
    latitude: float = Query(...),
    longitude: float = Query(...),
    radius_km: float = Query(...),
    field: str = Query("geo"),
    strict: bool = Query(False),
    where: list[str] = Query(default=[], description="Equality filters as field=value"),
) -> RadiusQuery:
    return RadiusQuery(
        latitude=latitude,
        longitude=longitude,
        radius_km=radius_km,
        field=field,
        strict=strict,
        where=where,
    )


def _query_kwargs(params: RadiusQuery) -> dict[str, Any]:
    """Translate query parameters into facade arguments, 422 on bad input."""
    try:
        center = GeoFirePoint(latitude=params.latitude, longitude=params.longitude)
        query_builder = equality_query_builder(parse_equality_filters(params.where))
    except (ValidationError, InvalidQueryError) as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {
        "center": center,
        "radius_in_km": params.radius_km,
        "field": params.field,
        "query_builder": query_builder,
        "strict_mode": params.strict,
    }


def _serialize(results: list[GeoDocumentSnapshot]) -> list[dict]:
    return [
        {
            "id": result.id,
            "distance_km": round(result.distance_from_center_in_km, 6),
            "data": jsonable_encoder(result.to_dict(), custom_encoder=_ENCODERS),
        }
        for result in results
    ]


@router.get("/{collection}/within")
async def search_within(
    params: RadiusQuery = Depends(_radius_query),
    geo: GeoCollectionReference = Depends(get_geo_collection),
) -> list[dict]:
    """One-shot radius search, nearest first."""
    kwargs = _query_kwargs(params)
    try:
        results = await geo.fetch_within_with_distance(**kwargs)
    except InvalidQueryError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return _serialize(results)


@router.get("/{collection}/stream")
async def stream_within(
    params: RadiusQuery = Depends(_radius_query),
    emissions: int | None = Query(None, ge=1, description="Stop after this many updates"),
    geo: GeoCollectionReference = Depends(get_geo_collection),
) -> StreamingResponse:
    """Live radius search as NDJSON: one ranked list per line, on every change."""
    kwargs = _query_kwargs(params)
    try:
        stream = geo.subscribe_within_with_distance(**kwargs)
    except InvalidQueryError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    async def _lines() -> AsyncIterator[str]:
        sent = 0
        async with aclosing(stream) as results:
            async for ranked in results:
                yield json.dumps(_serialize(ranked)) + "\n"
                sent += 1
                if emissions is not None and sent >= emissions:
                    break
        logger.info("Geo stream ended after %d updates", sent)

    return StreamingResponse(_lines(), media_type="application/x-ndjson")


@router.put("/{collection}/{doc_id}/point")
async def set_point(
    doc_id: str,
    update: PointUpdate,
    geo: GeoCollectionReference = Depends(get_geo_collection),
) -> dict:
    await geo.set_point(
        id=doc_id,
        field=update.field,
        latitude=update.latitude,
        longitude=update.longitude,
    )
    point = GeoFirePoint(latitude=update.latitude, longitude=update.longitude)
    return {"id": doc_id, "field": update.field, **point.to_firestore()}


@router.get("/{collection}/{doc_id}")
async def get_document(
    doc_id: str,
    geo: GeoCollectionReference = Depends(get_geo_collection),
) -> dict:
    try:
        snapshot = await geo.get_document(doc_id, required=True)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"id": doc_id, "data": jsonable_encoder(snapshot.to_dict(), custom_encoder=_ENCODERS)}


@router.delete("/{collection}/{doc_id}", status_code=204, response_class=Response)
async def delete_document(
    doc_id: str,
    geo: GeoCollectionReference = Depends(get_geo_collection),
) -> Response:
    await geo.delete(doc_id)
    return Response(status_code=204)
