import threading
from dataclasses import dataclass, replace
from enum import Enum
from logging import getLogger
from typing import Any, Dict, Iterable, Optional, Union

import requests
from requests.exceptions import ConnectionError, Timeout
from xsentinels import Default

from .auth import Credentials, JmapAuth, credentials_from
from .errors import JmapError, ProblemDetails, ProtocolError, ServerError, TransportError
from .http_session import HttpSession
from .request import Request, RequestBatch
from .response import BatchResponse, ResultType
from .session import Session
from .settings import JmapSettings

log = getLogger(__name__)

PROBLEM_CONTENT_TYPE = "application/problem+json"


class ClientStatus(Enum):
    DISCONNECTED = "disconnected"
    READY = "ready"
    STALE = "stale"


@dataclass(frozen=True)
class _ClientState:
    """ Everything shared between threads that use the same client.

        Always replaced as a whole (under `JmapClient._lock`), so a reader sees a session and
        the stale flag that belong together.
    """
    session: Optional[Session] = None
    outdated: bool = False


class JmapClient:
    """
    Talks to a JMAP server: fetches the session, sends batches and keeps track of whether
    the cached session is still current.

    >>> client = JmapClient("https://jmap.example.com/.well-known/jmap", ("user", "pass"))
    >>> client.connect()
    >>> request = client.build()
    >>> call_id = request.add_call("Mailbox/get", {"accountId": client.default_account_id})
    >>> response = request.send()
    >>> response.entry_for(call_id).result()

    States:

    - `ClientStatus.DISCONNECTED`: created, but `JmapClient.connect` not called yet.
    - `ClientStatus.READY`: have a session, and the last response agreed with its state.
    - `ClientStatus.STALE`: a response had a different `sessionState` than our session.

    Stale is only advisory. You can keep sending requests; call
    `JmapClient.refresh_session` when you want the new session. We never refresh by
    ourselves and never retry anything; each `connect`/`send`/`refresh_session` makes
    exactly one HTTP request.

    It's safe to share a client between threads. Each call makes its own request (with a
    per-thread `requests.Session`, see `xjmap.http_session.HttpSession`).
    """

    def __init__(
            self,
            url: str,
            credentials: Credentials = None,
            *,
            settings: JmapSettings = Default
    ):
        if settings is Default:
            settings = JmapSettings.grab()

        self._session_url = url
        self._auth: JmapAuth = credentials_from(credentials)
        self._timeout = settings.timeout_ms
        self._default_account_id = settings.default_account_id
        self._headers = {'User-Agent': settings.user_agent, **settings.headers}
        self._lock = threading.Lock()
        self._state = _ClientState()

    # ----------------------------------
    # --------- Session Methods ---------

    def connect(self) -> "JmapClient":
        """ Fetches the session; returns self so you can chain it after creating the client.

            Raises:
                TransportError: Network problem or timeout.
                ProtocolError: Server returned a problem document.
                ServerError: Server returned some other non-2xx response.
                MalformedSession: Session document was not usable.
        """
        session = self._fetch_session()
        with self._lock:
            self._state = _ClientState(session=session, outdated=False)
            if self._default_account_id is None:
                self._default_account_id = next(
                    (account_id for _, account_id in session.primary_accounts()), None
                )

        log.info(
            f"Connected to ({self._session_url}) with session state ({session.state}) "
            f"and api url ({session.api_url})."
        )
        return self

    def refresh_session(self) -> Session:
        """ Re-fetch the session and replace the cached one, clearing the stale flag.

            If fetching fails nothing is changed.
        """
        session = self._fetch_session()
        with self._lock:
            previous = self._state.session
            self._state = _ClientState(session=session, outdated=False)

        log.info(
            f"Refreshed session from ({self._session_url}), state changed from "
            f"({previous.state if previous else None}) to ({session.state})."
        )
        return session

    @property
    def session(self) -> Optional[Session]:
        return self._state.session

    @property
    def session_url(self) -> str:
        return self._session_url

    @property
    def is_connected(self) -> bool:
        return self._state.session is not None

    def is_session_updated(self) -> bool:
        """ False if a response told us our cached session is out of date. """
        return not self._state.outdated

    @property
    def status(self) -> ClientStatus:
        state = self._state
        if state.session is None:
            return ClientStatus.DISCONNECTED
        if state.outdated:
            return ClientStatus.STALE
        return ClientStatus.READY

    # ------------------------------
    # --------- Config Attrs ---------

    @property
    def timeout(self) -> int:
        """ Timeout in milliseconds for every network call. """
        return self._timeout

    @timeout.setter
    def timeout(self, value: int):
        self._timeout = value

    @property
    def default_account_id(self) -> Optional[str]:
        return self._default_account_id

    @default_account_id.setter
    def default_account_id(self, value: str):
        self._default_account_id = value

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._headers)

    @property
    def auth(self) -> JmapAuth:
        return self._auth

    # ------------------------------
    # --------- Send Methods ---------

    def build(self) -> Request:
        """ Start a new batch that will be sent via this client. """
        return Request(self)

    def send(
            self,
            request: Union[Request, RequestBatch],
            result_type: ResultType = Default
    ) -> BatchResponse:
        """
        POST a batch to the session's api url and parse the response.

        Args:
            request: Either a `xjmap.request.Request` (we build it) or an already built
                `xjmap.request.RequestBatch`.
            result_type: How to decode the successful results;
                see `xjmap.response.BatchResponse.from_json`.

        Raises:
            TransportError: Network problem or timeout.
            ProtocolError: Server rejected the whole request with a problem document.
            ServerError: Server returned some other non-2xx response.
            MalformedResponse: Response envelope was not usable.
        """
        session = self._require_session()
        batch = request.build() if isinstance(request, Request) else request
        body = batch.to_json()

        log.debug(
            f"Going to POST ({len(batch.method_calls)}) method calls to ({session.api_url}) "
            f"using ({', '.join(batch.using)})."
        )
        http_response = self._wrap_request(
            'POST', session.api_url, json=body, headers={'Content-Type': 'application/json'}
        )
        self._raise_for_error(http_response, session.api_url)

        response = BatchResponse.parse(http_response.content, result_type=result_type)
        self._check_session_state(response.session_state)
        return response

    # -------------------------------
    # --------- URL Methods ---------

    def upload_url(self, account_id: str = Default) -> str:
        return self._require_session().upload_url.expand(
            accountId=self._account_id_or_default(account_id)
        )

    def download_url(
            self,
            blob_id: str,
            name: str,
            type: str = "application/octet-stream",
            account_id: str = Default
    ) -> str:
        return self._require_session().download_url.expand(
            accountId=self._account_id_or_default(account_id),
            blobId=blob_id,
            name=name,
            type=type,
        )

    def event_source_url(
            self,
            types: Union[str, Iterable[str]] = "*",
            closeafter: str = "no",
            ping: int = 0
    ) -> str:
        if not isinstance(types, str):
            types = list(types)
        return self._require_session().event_source_url.expand(
            types=types, closeafter=closeafter, ping=ping
        )

    # ----------------------------------
    # --------- Internal Methods ---------

    def _fetch_session(self) -> Session:
        response = self._wrap_request('GET', self._session_url)
        self._raise_for_error(response, self._session_url)
        return Session.parse(response.content)

    def _check_session_state(self, session_state: str):
        with self._lock:
            state = self._state
            if state.session is None or state.outdated:
                return
            if session_state == state.session.state:
                return
            self._state = replace(state, outdated=True)

        log.warning(
            f"Response session state ({session_state}) differs from cached session state "
            f"({state.session.state}); session is out of date, call `refresh_session()`."
        )

    def _require_session(self) -> Session:
        session = self._state.session
        if session is None:
            raise JmapError(
                f"Client for ({self._session_url}) is not connected, call `connect()` first."
            )
        return session

    def _account_id_or_default(self, account_id: Any) -> Optional[str]:
        if account_id is Default:
            return self._default_account_id
        return account_id

    def _wrap_request(
            self, method: str, url: str, headers: Dict[str, str] = None, **kwargs
    ) -> requests.Response:
        """
        Used internally to make requests. Makes exactly one attempt.

        Any exception from `requests` is transformed into a `xjmap.errors.TransportError`.
        If it was a connection problem or a timeout we also reset the per-thread requests
        session so the next call gets a fresh connection.
        """
        all_headers = {**self._headers, **(headers or {})}
        try:
            return HttpSession.grab().requests_session.request(
                method=method,
                url=url,
                headers=all_headers,
                auth=self._auth,
                timeout=self._timeout / 1000,
                **kwargs
            )
        except (ConnectionError, Timeout) as e:
            log.warning(
                f"Had connection problem or timeout for ({method}) to ({url}) with "
                f"exception ({e}). Resetting requests session, not retrying."
            )
            HttpSession.grab().reset()
            raise TransportError(
                f"There was a problem connecting to ({url}), due to ({e}) via ({self})."
            ) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(
                f"There was a problem with the ({method}) request to ({url}), due to ({e})."
            ) from e

    # noinspection PyMethodMayBeStatic
    def _raise_for_error(self, response: requests.Response, url: str):
        status = response.status_code
        if 200 <= status < 300:
            return

        content_type = response.headers.get('Content-Type', '')
        if content_type.split(';')[0].strip().lower() == PROBLEM_CONTENT_TYPE:
            try:
                problem = response.json()
            except ValueError:
                problem = None

            if isinstance(problem, dict):
                details = ProblemDetails.from_json(problem)
                log.error(
                    f"Server returned problem ({details.type}) with status ({status}) for "
                    f"url ({url}) detail: ({details.detail})."
                )
                raise ProtocolError(details, status)

        log.error(
            f"Server returned status ({status}) for url ({url}) "
            f"with raw response text ({response.text})."
        )
        raise ServerError(status, url)

    def __repr__(self):
        return f"JmapClient({self._session_url!r}, status={self.status.value})"


def connect(
        url: str,
        credentials: Credentials = None,
        *,
        settings: JmapSettings = Default
) -> JmapClient:
    """ Create a `JmapClient` and connect it in one go. """
    return JmapClient(url, credentials, settings=settings).connect()
