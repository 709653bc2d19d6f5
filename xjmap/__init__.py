"""
## JMAP Client

Important classes:

- `xjmap.client.JmapClient`: fetches the session, sends batches, tracks session staleness.
- `xjmap.request.Request`: builds a batch of method calls, with back-references.
- `xjmap.response.BatchResponse`: parsed response, look up results by call id.
- `xjmap.session.Session`: immutable snapshot of the server's session resource.
- `xjmap.url_template.URLTemplate`: upload/download/event-source url templates.

"""
from .auth import BasicAuth, BearerAuth, JmapAuth
from .capabilities import URI
from .client import ClientStatus, JmapClient, connect
from .errors import (
    DuplicateCallId, JmapError, MalformedResponse, MalformedSession, MalformedTemplate,
    MethodError, MissingVariable, ProblemDetails, ProtocolError, ServerError, TransportError
)
from .request import MethodCall, Request, RequestBatch, ResultReference
from .response import BatchResponse, ResponseEntry
from .session import Account, Session
from .settings import JmapSettings
from .url_template import URLTemplate
from .version import __version__

# Only these should be imported from here externally.
__all__ = (
    'Account',
    'BasicAuth',
    'BatchResponse',
    'BearerAuth',
    'ClientStatus',
    'DuplicateCallId',
    'JmapAuth',
    'JmapClient',
    'JmapError',
    'JmapSettings',
    'MalformedResponse',
    'MalformedSession',
    'MalformedTemplate',
    'MethodCall',
    'MethodError',
    'MissingVariable',
    'ProblemDetails',
    'ProtocolError',
    'Request',
    'RequestBatch',
    'ResponseEntry',
    'ResultReference',
    'ServerError',
    'Session',
    'TransportError',
    'URI',
    'URLTemplate',
    'connect',
    '__version__',
)
