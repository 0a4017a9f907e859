"""Tests for field=value equality filters."""

from __future__ import annotations

import pytest

from geoquery.persistence.errors import InvalidQueryError
from geoquery.persistence.filters import equality_query_builder, parse_equality_filters
from tests.persistence.fake_firestore import FakeFirestoreClient


class TestParseEqualityFilters:
    def test_json_scalars(self):
        assert parse_equality_filters(["isVisible=true", "rank=3", "score=1.5"]) == [
            ("isVisible", True),
            ("rank", 3),
            ("score", 1.5),
        ]

    def test_plain_strings(self):
        assert parse_equality_filters(["kind=cafe", 'label="quoted"']) == [
            ("kind", "cafe"),
            ("label", "quoted"),
        ]

    def test_value_may_contain_equals(self):
        assert parse_equality_filters(["expr=a=b"]) == [("expr", "a=b")]

    def test_empty(self):
        assert parse_equality_filters(None) == []
        assert parse_equality_filters([]) == []

    @pytest.mark.parametrize("expression", ["novalue", "=x", "  =1"])
    def test_malformed(self, expression):
        with pytest.raises(InvalidQueryError):
            parse_equality_filters([expression])


class TestEqualityQueryBuilder:
    def test_no_filters_no_builder(self):
        assert equality_query_builder([]) is None

    def test_builder_applies_every_filter(self):
        client = FakeFirestoreClient()
        places = client.collection("places")
        places.document("a").set({"kind": "cafe", "open": True})
        places.document("b").set({"kind": "cafe", "open": False})
        places.document("c").set({"kind": "bar", "open": True})

        builder = equality_query_builder([("kind", "cafe"), ("open", True)])
        query = builder(places)
        assert [doc.id for doc in query.get()] == ["a"]
        assert not query._orders
