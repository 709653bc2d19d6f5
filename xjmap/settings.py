from dataclasses import dataclass, field
from typing import Dict, Optional

from xinject import Dependency

from .version import __version__

DEFAULT_TIMEOUT_MS = 10 * 1000
DEFAULT_USER_AGENT = f"xjmap/{__version__}"


@dataclass(eq=False)
class JmapSettings(Dependency):
    """
    Basic settings used by `xjmap.client.JmapClient`.

    If a client is not given settings directly, it grabs the current one from the
    `xinject.XContext` when it's created:

    >>> JmapSettings.grab().timeout_ms = 30 * 1000
    >>> client = JmapClient("https://jmap.example.com/.well-known/jmap", ("user", "pass"))
    >>> client.timeout
    30000

    You can also make your own instance and activate it for a block of code:

    >>> with JmapSettings(default_account_id="A1"):
    ...     client = xjmap.connect(url, token)

    A client copies what it needs when it's created, changing the settings later does not
    affect existing clients.
    """

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    """ Every network call is bounded by this (milliseconds). On timeout the call fails with
        `xjmap.errors.TransportError`.
    """

    default_account_id: Optional[str] = None
    """ If None (default): the client uses the first primary account from the session. """

    headers: Dict[str, str] = field(default_factory=dict)
    """ Additional static headers to send with every request. """

    user_agent: str = DEFAULT_USER_AGENT
