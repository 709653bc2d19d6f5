import requests
from xinject import DependencyPerThread


class HttpSession(DependencyPerThread, attributes_to_skip_while_copying=['_requests_session']):
    """ Keeps track of a `requests.Session` per-thread.

        Each thread gets its own requests session, so clients shared between threads never
        share a connection for concurrent calls.

        For unit-tests that use a blank xinject context, a new `HttpSession` (and therefore a
        new requests-session) is created for each test. That is important when you mock the
        requests library.
    """
    # So we know if we lazily created the session yet or not.
    _requests_session = None

    def reset(self):
        """ Next time we are asked for the current requests Session, we will generate a new one.
            Used after a connection error so we don't try to reuse a broken connection.
        """
        session = self._requests_session
        self._requests_session = None
        if session is not None:
            session.close()

    @property
    def requests_session(self) -> requests.Session:
        session = self._requests_session
        if not session:
            session = requests.session()
            self._requests_session = session
        return session
