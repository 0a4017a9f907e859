"""Equality filters given as ``field=value`` strings (API and CLI)."""

from __future__ import annotations

import json
from typing import Any

from google.cloud.firestore_v1 import FieldFilter

from geoquery.contracts.query import QueryBuilder
from geoquery.persistence.errors import InvalidQueryError


def _parse_value(raw: str) -> Any:
    """JSON scalars (``true``, ``3``, ``"x"``) as such, anything else as a string."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def parse_equality_filters(expressions: list[str] | None) -> list[tuple[str, Any]]:
    """``["isVisible=true", "kind=cafe"]`` -> ``[("isVisible", True), ("kind", "cafe")]``."""
    filters: list[tuple[str, Any]] = []
    for expression in expressions or []:
        field, sep, raw = expression.partition("=")
        if not sep or not field.strip():
            raise InvalidQueryError(f"Expected field=value, got {expression!r}")
        filters.append((field.strip(), _parse_value(raw.strip())))
    return filters


def equality_query_builder(filters: list[tuple[str, Any]]) -> QueryBuilder | None:
    """A query builder adding one ``==`` condition per filter, or None."""
    if not filters:
        return None

    def _build(query: Any) -> Any:
        for field, value in filters:
            query = query.where(filter=FieldFilter(field, "==", value))
        return query

    return _build
