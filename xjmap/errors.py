from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class JmapError(Exception):
    """ Base error for everything raised by `xjmap`.

        Catch this if you don't care about the specific reason a call failed.
    """
    pass


class TransportError(JmapError):
    """ Network, connection or timeout level problem. Nothing was parsed and no client
        state was changed. We never retry these ourselves.
    """
    pass


class MalformedSession(JmapError):
    """ The session document did not have the shape we need (missing/invalid fields). """
    pass


class MalformedResponse(JmapError):
    """ Raised for an invalid batch response envelope.

        Also used, without being raised, to describe a single
        `xjmap.response.ResponseEntry` whose payload could not be decoded;
        see `xjmap.response.ResponseEntry.decode_error`.
    """

    def __init__(self, message: str, call_id: Optional[str] = None):
        super().__init__(message)
        self.call_id = call_id


class MalformedTemplate(JmapError):
    """ URL template uses syntax we don't support, or a variable that is not allowed. """

    def __init__(self, message: str, template: str = None):
        super().__init__(message)
        self.template = template


class MissingVariable(JmapError):
    """ A required template variable was not supplied when expanding a URL template. """

    def __init__(self, name: str, template: str = None):
        super().__init__(
            f"Missing required variable ({name}) while expanding url template ({template})."
        )
        self.name = name
        self.template = template


class DuplicateCallId(JmapError, ValueError):
    """ The same call-id was given to more than one method call in the same request. """

    def __init__(self, call_id: str):
        super().__init__(f"Call id ({call_id}) is already used by another call in this request.")
        self.call_id = call_id


@dataclass(frozen=True)
class ProblemDetails:
    """ RFC 7807 problem document, as sent by the server with `application/problem+json`.

        JMAP uses `type` values such as `urn:ietf:params:jmap:error:notRequest` or
        `urn:ietf:params:jmap:error:limit` (the latter also sets `limit`).
    """
    type: str = "about:blank"
    title: Optional[str] = None
    status: Optional[int] = None
    detail: Optional[str] = None
    limit: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, json: Dict[str, Any]) -> "ProblemDetails":
        known = {'type', 'title', 'status', 'detail', 'limit'}
        status = json.get('status')
        return cls(
            type=json.get('type') or "about:blank",
            title=json.get('title'),
            status=status if isinstance(status, int) else None,
            detail=json.get('detail'),
            limit=json.get('limit'),
            extra={k: v for k, v in json.items() if k not in known},
        )


class ProtocolError(JmapError):
    """ The server rejected the request with a structured problem document.

        The server-supplied details are available unmodified via `ProtocolError.problem`.
    """

    def __init__(self, problem: ProblemDetails, status_code: int = None):
        message = problem.title or problem.type
        if problem.detail:
            message = f"{message}: {problem.detail}"
        super().__init__(f"Server problem ({problem.type}) status ({status_code}): {message}")
        self.problem = problem
        self.status_code = status_code if status_code is not None else problem.status

    @property
    def type(self) -> str:
        return self.problem.type

    @property
    def title(self) -> Optional[str]:
        return self.problem.title

    @property
    def status(self) -> Optional[int]:
        return self.status_code


class ServerError(JmapError):
    """ Non-2xx response without a recognized problem document; we only know the status. """

    def __init__(self, status_code: int, url: str = None):
        super().__init__(f"Server responded with status ({status_code}) for url ({url}).")
        self.status_code = status_code
        self.url = url


class MethodError(JmapError):
    """ A method-level error object from a batch response, ie:

        >>> ["error", {"type": "invalidResultReference"}, "c1"]

        The rest of the batch is unaffected. These are not raised while parsing; they are
        raised from `xjmap.response.ResponseEntry.result` if you ask for that entry's result.
    """

    def __init__(
            self,
            type: str,
            description: Optional[str] = None,
            call_id: Optional[str] = None,
            properties: Dict[str, Any] = None
    ):
        message = f"Method error ({type}) for call ({call_id})"
        if description:
            message = f"{message}: {description}"
        super().__init__(message)
        self.type = type
        self.description = description
        self.call_id = call_id
        self.properties = dict(properties or {})

    def to_json(self) -> Dict[str, Any]:
        json = {'type': self.type, **self.properties}
        if self.description is not None:
            json['description'] = self.description
        return json
