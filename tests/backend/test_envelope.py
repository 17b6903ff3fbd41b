"""Tests for backend envelope decoding."""

from __future__ import annotations

import pytest

from ams.backend.envelope import decode_envelope, parse_records, unwrap, unwrap_one
from ams.backend.schemas import Criterion


class TestDecodeEnvelope:
    """Every supported shape decodes once; anything else is empty."""

    @pytest.mark.parametrize(
        ("payload", "kind", "items"),
        [
            ([1, 2], "array", [1, 2]),
            ({"$id": "1", "$values": [{"a": 1}]}, "$values", [{"a": 1}]),
            ({"values": ["x"]}, "values", ["x"]),
            ({"data": ["y"], "total": 1}, "data", ["y"]),
            ([], "array", []),
            (None, "empty", []),
            ("text", "empty", []),
            (42, "empty", []),
            ({"data": {"auditId": "a"}}, "empty", []),
        ],
    )
    def test_shapes(self, payload: object, kind: str, items: list) -> None:
        envelope = decode_envelope(payload)
        assert envelope.kind == kind
        assert envelope.items == items

    def test_wrapper_key_precedence(self) -> None:
        payload = {"data": ["d"], "values": ["v"], "$values": ["$"]}
        assert unwrap(payload) == ["$"]

    def test_non_list_wrapper_value_skipped(self) -> None:
        assert unwrap({"$values": None, "values": ["v"]}) == ["v"]

    def test_is_empty(self) -> None:
        assert decode_envelope({"$values": []}).is_empty
        assert not decode_envelope([0]).is_empty


class TestUnwrapOne:
    def test_inner_data_object(self) -> None:
        assert unwrap_one({"data": {"auditId": "a-1"}}) == {"auditId": "a-1"}

    def test_plain_object_returned_as_is(self) -> None:
        assert unwrap_one({"auditId": "a-1"}) == {"auditId": "a-1"}

    def test_scalar_returned_as_is(self) -> None:
        assert unwrap_one("a-1") == "a-1"


class TestParseRecords:
    def test_skips_non_objects(self) -> None:
        records = parse_records(Criterion, {"$values": [{"criteriaId": 1, "name": "ISO"}, "junk", None]})
        assert [c.criteria_id for c in records] == ["1"]

    def test_skips_invalid_records(self) -> None:
        records = parse_records(Criterion, [{"criteriaId": "c1", "name": {"bad": True}}, {"id": "c2"}])
        assert [c.criteria_id for c in records] == ["c2"]
