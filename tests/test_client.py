from __future__ import annotations

import base64
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

from xjmap import connect
from xjmap.auth import BasicAuth, BearerAuth, JmapAuth, credentials_from
from xjmap.client import ClientStatus, JmapClient
from xjmap.errors import (
    JmapError, MalformedResponse, MalformedSession, MissingVariable, ProtocolError, ServerError,
    TransportError
)
from xjmap.settings import DEFAULT_USER_AGENT, JmapSettings

SESSION_URL = "https://jmap.example.com/.well-known/jmap"
API_URL = "https://jmap.example.com/api/"


@pytest.fixture
def settings():
    return JmapSettings(timeout_ms=2000, headers={"X-Extra": "yes"})


@pytest.fixture
def session_adapter(requests_mock, session_json):
    return requests_mock.get(SESSION_URL, json=session_json)


@pytest.fixture
def client(session_adapter, settings):
    return JmapClient(SESSION_URL, "token-123", settings=settings).connect()


def test_connect(session_adapter, settings):
    client = JmapClient(SESSION_URL, "token-123", settings=settings)
    assert client.status == ClientStatus.DISCONNECTED
    assert client.session is None
    assert not client.is_connected

    assert client.connect() is client
    assert client.status == ClientStatus.READY
    assert client.is_session_updated()
    assert client.session.state == "75128aab4b1b"
    assert client.default_account_id == "A1"
    assert client.timeout == 2000

    assert session_adapter.call_count == 1
    headers = session_adapter.last_request.headers
    assert headers["Authorization"] == "Bearer token-123"
    assert headers["User-Agent"] == DEFAULT_USER_AGENT
    assert headers["X-Extra"] == "yes"
    assert session_adapter.last_request.timeout == 2


def test_connect_function_with_basic_auth(session_adapter, settings):
    client = connect(SESSION_URL, ("john", "secret"), settings=settings)
    expected = base64.b64encode(b"john:secret").decode("ascii")
    assert session_adapter.last_request.headers["Authorization"] == f"Basic {expected}"
    assert client.status == ClientStatus.READY


def test_default_account_id_from_settings(session_adapter):
    client = connect(SESSION_URL, settings=JmapSettings(default_account_id="A2"))
    assert client.default_account_id == "A2"
    assert "Authorization" not in session_adapter.last_request.headers


def test_send(requests_mock, client, response_json):
    api = requests_mock.post(API_URL, json=response_json)

    request = client.build()
    query_id = request.add_call("Email/query", {"accountId": client.default_account_id})
    request.add_call("Email/get", {
        "accountId": "A1", "ids": request.reference(query_id, "Email/query", "/ids")
    })
    response = request.send()

    assert api.call_count == 1
    assert api.last_request.headers["Content-Type"] == "application/json"
    assert api.last_request.headers["Authorization"] == "Bearer token-123"
    assert api.last_request.json() == {
        "using": ["urn:ietf:params:jmap:core", "urn:ietf:params:jmap:mail"],
        "methodCalls": [
            ["Email/query", {"accountId": "A1"}, "c0"],
            ["Email/get", {
                "accountId": "A1",
                "#ids": {"resultOf": "c0", "name": "Email/query", "path": "/ids"},
            }, "c1"],
        ],
    }

    assert response.entry_for("t1").method_name == "Email/get"
    assert client.is_session_updated()
    assert client.status == ClientStatus.READY


def test_stale_session_and_refresh(requests_mock, client, session_json, response_json):
    response_json["sessionState"] = "new-state"
    requests_mock.post(API_URL, json=response_json)

    response = client.send(client.build())
    assert response.session_state == "new-state"
    assert not client.is_session_updated()
    assert client.status == ClientStatus.STALE

    # Stale does not block sending.
    client.send(client.build())
    assert client.status == ClientStatus.STALE

    session_json["state"] = "new-state"
    session_json["apiUrl"] = "https://jmap2.example.com/api/"
    requests_mock.get(SESSION_URL, json=session_json)
    old_session = client.session

    new_session = client.refresh_session()
    assert client.session is new_session
    assert client.session is not old_session
    assert new_session.api_url == "https://jmap2.example.com/api/"
    assert old_session.api_url == API_URL
    assert client.is_session_updated()
    assert client.status == ClientStatus.READY

    api2 = requests_mock.post("https://jmap2.example.com/api/", json=response_json)
    client.send(client.build())
    assert api2.call_count == 1
    assert client.is_session_updated()


def test_refresh_always_clears_stale_flag(requests_mock, client, response_json):
    requests_mock.post(API_URL, json=response_json)
    client.send(client.build())
    assert client.is_session_updated()

    client.refresh_session()
    assert client.is_session_updated()


def test_problem_response(requests_mock, client):
    requests_mock.post(
        API_URL,
        status_code=400,
        headers={"Content-Type": "application/problem+json; charset=utf-8"},
        json={
            "type": "urn:ietf:params:jmap:error:limit",
            "title": "Too many calls",
            "status": 400,
            "limit": "maxCallsInRequest",
        },
    )
    with pytest.raises(ProtocolError) as info:
        client.send(client.build())

    error = info.value
    assert error.type == "urn:ietf:params:jmap:error:limit"
    assert error.title == "Too many calls"
    assert error.status == 400
    assert error.problem.limit == "maxCallsInRequest"
    assert client.is_session_updated()


def test_server_error_without_problem_document(requests_mock, client):
    requests_mock.post(API_URL, status_code=503, text="<html>down</html>")
    with pytest.raises(ServerError) as info:
        client.send(client.build())
    assert info.value.status_code == 503
    assert not isinstance(info.value, ProtocolError)


def test_unparsable_problem_document_is_server_error(requests_mock, client):
    requests_mock.post(
        API_URL,
        status_code=500,
        headers={"Content-Type": "application/problem+json"},
        text="not json",
    )
    with pytest.raises(ServerError):
        client.send(client.build())


def test_malformed_response(requests_mock, client):
    requests_mock.post(API_URL, text='{"methodResponses": []}')
    with pytest.raises(MalformedResponse):
        client.send(client.build())
    assert client.is_session_updated()


def test_timeout_is_transport_error(requests_mock, client):
    requests_mock.post(API_URL, exc=requests.exceptions.ConnectTimeout)
    session = client.session
    with pytest.raises(TransportError) as info:
        client.send(client.build())
    assert isinstance(info.value.__cause__, requests.exceptions.ConnectTimeout)
    assert client.session is session
    assert client.status == ClientStatus.READY


def test_connect_errors(requests_mock, settings):
    requests_mock.get(SESSION_URL, exc=requests.exceptions.ConnectionError)
    client = JmapClient(SESSION_URL, "token", settings=settings)
    with pytest.raises(TransportError):
        client.connect()
    assert client.status == ClientStatus.DISCONNECTED

    requests_mock.get(SESSION_URL, json={"apiUrl": API_URL})
    with pytest.raises(MalformedSession):
        client.connect()

    requests_mock.get(SESSION_URL, text="<html>")
    with pytest.raises(MalformedSession):
        client.connect()

    requests_mock.get(
        SESSION_URL,
        status_code=401,
        headers={"Content-Type": "application/problem+json"},
        json={"type": "about:blank", "title": "Unauthorized", "status": 401},
    )
    with pytest.raises(ProtocolError) as info:
        client.connect()
    assert info.value.status == 401
    assert client.status == ClientStatus.DISCONNECTED


def test_failed_refresh_keeps_session(requests_mock, client):
    session = client.session
    requests_mock.get(SESSION_URL, status_code=500)
    with pytest.raises(ServerError):
        client.refresh_session()
    assert client.session is session
    assert client.status == ClientStatus.READY


def test_send_before_connect(settings):
    client = JmapClient(SESSION_URL, "token", settings=settings)
    with pytest.raises(JmapError):
        client.send(client.build())


def test_endpoint_urls(client):
    assert client.upload_url() == "https://jmap.example.com/upload/A1/"
    assert client.upload_url(account_id="A2") == "https://jmap.example.com/upload/A2/"
    assert client.download_url("B1", "my file.txt", type="text/plain") == (
        "https://jmap.example.com/download/A1/B1/my%20file.txt?accept=text%2Fplain"
    )
    assert client.event_source_url(types=["Email", "Mailbox"], closeafter="state", ping=30) == (
        "https://jmap.example.com/eventsource/?types=Email,Mailbox&closeafter=state&ping=30"
    )
    assert client.event_source_url() == (
        "https://jmap.example.com/eventsource/?types=%2A&closeafter=no&ping=0"
    )

    client.default_account_id = None
    with pytest.raises(MissingVariable):
        client.upload_url()


def test_concurrent_sends(requests_mock, client, response_json):
    api = requests_mock.post(API_URL, json=response_json)

    def send_one(n):
        request = client.build()
        request.add_call("Core/echo", {"n": n})
        return client.send(request)

    with ThreadPoolExecutor(max_workers=4) as pool:
        responses = list(pool.map(send_one, range(8)))

    assert api.call_count == 8
    assert all(r.session_state == "75128aab4b1b" for r in responses)
    assert client.status == ClientStatus.READY


def test_timeout_setting(client):
    client.timeout = 500
    assert client.timeout == 500


def test_credentials_from():
    assert isinstance(credentials_from("abc"), BearerAuth)
    assert isinstance(credentials_from(("a", "b")), BasicAuth)
    assert type(credentials_from(None)) is JmapAuth
    auth = BearerAuth("x")
    assert credentials_from(auth) is auth
    assert "x" not in repr(auth)
    with pytest.raises(TypeError):
        credentials_from(123)


def test_settings_from_current_context(session_adapter):
    with JmapSettings(timeout_ms=1234, default_account_id="A2"):
        client = JmapClient(SESSION_URL, "token")
    assert client.timeout == 1234

    client.connect()
    assert session_adapter.last_request.timeout == 1.234
    assert client.default_account_id == "A2"


def test_decode_failure_still_marks_session_stale(requests_mock, client, response_json):
    response_json["sessionState"] = "changed"
    requests_mock.post(API_URL, json=response_json)

    def reject(json):
        raise LookupError("bad email")

    response = client.send(client.build(), result_type={"Email/get": reject})
    assert response.entry_for("t1").decode_error is not None
    assert not client.is_session_updated()
    assert client.status == ClientStatus.STALE
