from __future__ import annotations

import json
from dataclasses import dataclass
from typing import List

import pytest

from xjmap.errors import MalformedResponse, MethodError
from xjmap.response import BatchResponse


@dataclass
class GetResult:
    account_id: str
    state: str
    list: List[dict]

    @classmethod
    def from_json(cls, json: dict) -> "GetResult":
        return cls(account_id=json["accountId"], state=json["state"], list=json["list"])


def test_parse_sample_response(response_json):
    response = BatchResponse.parse(json.dumps(response_json).encode("utf-8"))

    assert response.session_state == "75128aab4b1b"
    assert len(response) == 3
    assert [e.call_id for e in response] == ["t0", "t1", "t2"]

    entries = response.entries_for("t1")
    assert len(entries) == 1
    entry = entries[0]
    assert entry.method_name == "Email/get"
    assert entry.result()["accountId"] == "A1"
    assert len(entry.result()["list"]) == 2

    assert response.entries_for("nonexistent") == ()
    assert response.entry_for("nonexistent") is None


def test_entry_at(response_json):
    response = BatchResponse.from_json(response_json)
    assert response.entry_at(0).method_name == "Email/query"
    assert response.entry_at(-1).method_name == "Thread/get"
    with pytest.raises(IndexError):
        response.entry_at(3)


def test_entries_for_keeps_response_order():
    response = BatchResponse.from_json({
        "sessionState": "s1",
        "methodResponses": [
            ["Email/set", {"n": 2}, "b"],
            ["Email/get", {"n": 1}, "a"],
            ["Email/changes", {"n": 3}, "b"],
            ["Email/query", {"n": 4}, "b"],
        ],
    })
    assert [e.result()["n"] for e in response.entries_for("b")] == [2, 3, 4]
    assert [e.method_name for e in response.entries_for("b")] == [
        "Email/set", "Email/changes", "Email/query"
    ]


def test_method_error_entry():
    response = BatchResponse.from_json({
        "sessionState": "s1",
        "methodResponses": [
            ["Email/query", {"accountId": "A1", "ids": []}, "c0"],
            ["error", {"type": "invalidResultReference", "description": "bad path"}, "c1"],
        ],
    })
    entry = response.entry_for("c1")
    assert entry.is_error
    assert entry.error.type == "invalidResultReference"
    assert entry.error.description == "bad path"
    assert entry.error.call_id == "c1"

    with pytest.raises(MethodError) as info:
        entry.result()
    assert info.value.type == "invalidResultReference"

    assert response.entry_for("c0").result()["ids"] == []
    assert [e.type for e in response.method_errors()] == ["invalidResultReference"]


def test_result_type_decoding(response_json):
    response = BatchResponse.from_json(
        response_json, result_type={"Email/get": GetResult.from_json}
    )
    result = response.entry_for("t1").result()
    assert isinstance(result, GetResult)
    assert result.account_id == "A1"
    assert len(result.list) == 2

    # Not in the mapping, stays raw.
    assert response.entry_for("t0").result()["total"] == 101


def test_decode_failure_is_scoped_to_entry(response_json):
    # Email/query has no `state` or `list`, so decoding it fails; the rest stay usable.
    response = BatchResponse.from_json(response_json, result_type=GetResult.from_json)

    assert response.session_state == "75128aab4b1b"

    query = response.entry_for("t0")
    assert isinstance(query.decode_error, MalformedResponse)
    assert query.decode_error.call_id == "t0"
    with pytest.raises(MalformedResponse):
        query.result()
    assert query.payload["total"] == 101

    assert response.entry_for("t1").result().account_id == "A1"
    assert len(response.entry_for("t2").result().list) == 2


@pytest.mark.parametrize("body", [
    b"{not json",
    b"[]",
    b'{"methodResponses": []}',
    b'{"sessionState": 1, "methodResponses": []}',
    b'{"sessionState": "s1"}',
    b'{"sessionState": "s1", "methodResponses": {}}',
    b'{"sessionState": "s1", "methodResponses": [["Email/get", {}]]}',
    b'{"sessionState": "s1", "methodResponses": [["Email/get", [], "c0"]]}',
    b'{"sessionState": "s1", "methodResponses": [[1, {}, "c0"]]}',
    b'{"sessionState": "s1", "methodResponses": [["error", {"description": "x"}, "c0"]]}',
    b'{"sessionState": "s1", "methodResponses": [], "createdIds": []}',
])
def test_malformed_envelope(body):
    with pytest.raises(MalformedResponse):
        BatchResponse.parse(body)


def test_created_ids():
    response = BatchResponse.from_json({
        "sessionState": "s1",
        "methodResponses": [],
        "createdIds": {"k1": "M1"},
    })
    assert response.created_ids == {"k1": "M1"}
    assert len(response) == 0


def test_index_error_in_decoder_is_scoped_to_entry():
    response = BatchResponse.from_json(
        {
            "sessionState": "s1",
            "methodResponses": [
                ["Email/get", {"list": []}, "c0"],
                ["Email/get", {"list": [{"id": "m1"}]}, "c1"],
            ],
        },
        result_type=lambda json: json["list"][0],
    )

    assert response.session_state == "s1"
    assert isinstance(response.entry_for("c0").decode_error, MalformedResponse)
    assert response.entry_for("c1").result() == {"id": "m1"}


class InvalidEmail(Exception):
    pass


def _reject(json):
    raise InvalidEmail("no subject")


def test_custom_decoder_error_is_scoped_to_entry(response_json):
    response = BatchResponse.from_json(response_json, result_type={"Email/get": _reject})

    email = response.entry_for("t1")
    with pytest.raises(MalformedResponse) as info:
        email.result()
    assert "no subject" in str(info.value)
    assert response.entry_for("t0").result()["total"] == 101
