import base64
from typing import Tuple, Union

from requests import PreparedRequest
from requests.auth import AuthBase as Requests_AuthBase

__pdoc__ = {
    "JmapAuth.__call__": True
}


class JmapAuth(Requests_AuthBase):
    """ Base credentials type, usable directly with the `requests` library.

        By itself it sends no credentials at all (anonymous). See `BasicAuth` and
        `BearerAuth`, or use `credentials_from` to get the right one from a plain value.
    """

    @property
    def authorization(self) -> str:
        """ Value for the `Authorization` header, blank if there is none. """
        return ""

    def __call__(self, request: PreparedRequest):
        """ Called from requests library to add the `Authorization` header.

        Args:
            request (requests.PreparedRequest): Request that needs the authorization added.
        Returns:
            requests.PreparedRequest: The request object you passed in, modified as needed.
        """
        authorization = self.authorization
        if authorization:
            request.headers['Authorization'] = authorization
        return request


class BasicAuth(JmapAuth):
    def __init__(self, username: str, password: str):
        self.username = username
        self.password = password

    @property
    def authorization(self) -> str:
        user_pass = f"{self.username}:{self.password}".encode("utf-8")
        return f"Basic {base64.b64encode(user_pass).decode('ascii')}"

    def __repr__(self):
        # Never log out the password.
        return f"BasicAuth(username={self.username!r})"


class BearerAuth(JmapAuth):
    def __init__(self, token: str):
        self.token = token

    @property
    def authorization(self) -> str:
        return f"Bearer {self.token}"

    def __repr__(self):
        return "BearerAuth(token=***)"


Credentials = Union[JmapAuth, str, Tuple[str, str], None]


def credentials_from(credentials: Credentials) -> JmapAuth:
    """
    - `JmapAuth`: used as-is.
    - `str`: a bearer token.
    - `(username, password)`: basic auth.
    - None: no credentials.
    """
    if credentials is None:
        return JmapAuth()
    if isinstance(credentials, JmapAuth):
        return credentials
    if isinstance(credentials, str):
        return BearerAuth(credentials)
    if isinstance(credentials, tuple) and len(credentials) == 2:
        return BasicAuth(*credentials)
    raise TypeError(
        f"Credentials must be a JmapAuth, token string or (username, password) tuple, "
        f"got ({type(credentials).__name__})."
    )
