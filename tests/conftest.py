from __future__ import annotations

import copy

import pytest

SESSION_DOCUMENT = {
    "capabilities": {
        "urn:ietf:params:jmap:core": {
            "maxSizeUpload": 50000000,
            "maxConcurrentUpload": 4,
            "maxSizeRequest": 10000000,
            "maxConcurrentRequests": 4,
            "maxCallsInRequest": 16,
            "maxObjectsInGet": 500,
            "maxObjectsInSet": 500,
            "collationAlgorithms": ["i;ascii-numeric", "i;ascii-casemap"],
        },
        "urn:ietf:params:jmap:mail": {},
    },
    "accounts": {
        "A1": {
            "name": "john@example.com",
            "isPersonal": True,
            "isReadOnly": False,
            "accountCapabilities": {
                "urn:ietf:params:jmap:mail": {"maxMailboxesPerEmail": None},
                "urn:ietf:params:jmap:submission": {},
            },
        },
        "A2": {
            "name": "shared@example.com",
            "isPersonal": False,
            "isReadOnly": True,
            "accountCapabilities": {"urn:ietf:params:jmap:mail": {}},
        },
    },
    "primaryAccounts": {
        "urn:ietf:params:jmap:mail": "A1",
        "urn:ietf:params:jmap:submission": "A1",
    },
    "username": "john@example.com",
    "apiUrl": "https://jmap.example.com/api/",
    "downloadUrl": "https://jmap.example.com/download/{accountId}/{blobId}/{name}?accept={type}",
    "uploadUrl": "https://jmap.example.com/upload/{accountId}/",
    "eventSourceUrl": "https://jmap.example.com/eventsource/?types={types}&closeafter={closeafter}&ping={ping}",
    "state": "75128aab4b1b",
}

BATCH_RESPONSE = {
    "sessionState": "75128aab4b1b",
    "methodResponses": [
        ["Email/query", {
            "accountId": "A1",
            "queryState": "abcdefg",
            "canCalculateChanges": True,
            "position": 0,
            "total": 101,
            "ids": ["msg1023", "msg223", "msg110", "msg93", "msg91",
                    "msg38", "msg36", "msg33", "msg11", "msg1"],
        }, "t0"],
        ["Email/get", {
            "accountId": "A1",
            "state": "123456",
            "list": [
                {"id": "msg1023", "threadId": "trd194"},
                {"id": "msg223", "threadId": "trd114"},
            ],
            "notFound": [],
        }, "t1"],
        ["Thread/get", {
            "accountId": "A1",
            "state": "123456",
            "list": [
                {"id": "trd194", "emailIds": ["msg1020", "msg1021", "msg1023"]},
                {"id": "trd114", "emailIds": ["msg201", "msg223"]},
            ],
            "notFound": [],
        }, "t2"],
    ],
}


@pytest.fixture
def session_json():
    return copy.deepcopy(SESSION_DOCUMENT)


@pytest.fixture
def response_json():
    return copy.deepcopy(BATCH_RESPONSE)
