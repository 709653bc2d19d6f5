from copy import deepcopy
from dataclasses import dataclass
from logging import getLogger
from typing import (
    TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
)

from xloop import xloop
from xsentinels import Default

from .capabilities import URI, capability_for_method
from .errors import DuplicateCallId

if TYPE_CHECKING:
    # Only needed for type completion, avoids circular import with client.
    from .client import JmapClient
    from .response import BatchResponse

log = getLogger(__name__)

REFERENCE_PREFIX = "#"


@dataclass(frozen=True)
class ResultReference:
    """
    Use in place of an argument value to say "take `path` from the result of call
    `result_of`" instead of giving a literal.

    When the arguments are serialized, the argument name gets a `#` prefix and the value
    becomes `{"resultOf": ..., "name": ..., "path": ...}`. So this:

    >>> {"ids": ResultReference("c0", "Email/query", "/ids")}

    Goes out on the wire as:

    >>> {"#ids": {"resultOf": "c0", "name": "Email/query", "path": "/ids"}}

    Only valid for top-level arguments the method allows references for; that is up to the
    domain layer. The server responds with an `invalidResultReference` method error if it
    can't resolve it.
    """
    result_of: str
    name: str
    path: str

    def to_json(self) -> Dict[str, str]:
        return {"resultOf": self.result_of, "name": self.name, "path": self.path}

    @classmethod
    def from_json(cls, json: Mapping[str, Any]) -> "ResultReference":
        return cls(result_of=json['resultOf'], name=json['name'], path=json['path'])

    @staticmethod
    def looks_like_reference(value: Any) -> bool:
        return (
            isinstance(value, Mapping)
            and set(value) == {'resultOf', 'name', 'path'}
            and all(isinstance(v, str) for v in value.values())
        )


def serialize_arguments(arguments: Mapping[str, Any]) -> Dict[str, Any]:
    """ Literal values are passed through, `ResultReference` values are written as `#name`. """
    json = {}
    for name, value in arguments.items():
        if isinstance(value, ResultReference):
            json[f"{REFERENCE_PREFIX}{name}"] = value.to_json()
        else:
            json[name] = value
    return json


def deserialize_arguments(json: Mapping[str, Any]) -> Dict[str, Any]:
    arguments = {}
    for name, value in json.items():
        if name.startswith(REFERENCE_PREFIX) and ResultReference.looks_like_reference(value):
            arguments[name[len(REFERENCE_PREFIX):]] = ResultReference.from_json(value)
        else:
            arguments[name] = value
    return arguments


@dataclass(frozen=True)
class MethodCall:
    name: str
    arguments: Mapping[str, Any]
    call_id: str

    def to_json(self) -> List[Any]:
        return [self.name, serialize_arguments(self.arguments), self.call_id]

    @classmethod
    def from_json(cls, json: List[Any]) -> "MethodCall":
        name, arguments, call_id = json
        return cls(name=name, arguments=deserialize_arguments(arguments), call_id=call_id)


@dataclass(frozen=True)
class RequestBatch:
    """ What actually gets POSTed. Produced by `Request.build`, never changed afterwards. """
    using: Tuple[str, ...]
    method_calls: Tuple[MethodCall, ...]
    created_ids: Optional[Mapping[str, str]] = None

    def to_json(self) -> Dict[str, Any]:
        json = {
            "using": list(self.using),
            "methodCalls": [call.to_json() for call in self.method_calls],
        }
        if self.created_ids is not None:
            json["createdIds"] = dict(self.created_ids)
        return json

    @classmethod
    def from_json(cls, json: Mapping[str, Any]) -> "RequestBatch":
        created_ids = json.get("createdIds")
        return cls(
            using=tuple(json["using"]),
            method_calls=tuple(MethodCall.from_json(c) for c in json["methodCalls"]),
            created_ids=dict(created_ids) if created_ids is not None else None,
        )

    def call(self, call_id: str) -> Optional[MethodCall]:
        for call in self.method_calls:
            if call.call_id == call_id:
                return call
        return None


class Request:
    """
    Builder for a single batch of method calls.

    Normally you get one via `xjmap.client.JmapClient.build`, add calls and then send it:

    >>> request = client.build()
    >>> query_id = request.add_call("Email/query", {"accountId": "A1", "limit": 10})
    >>> request.add_call("Email/get", {
    ...     "accountId": "A1",
    ...     "ids": request.reference(query_id, "Email/query", "/ids"),
    ... })
    >>> response = request.send()

    The capabilities for `using` are collected from the method names as calls are added
    (see `xjmap.capabilities.METHOD_CAPABILITIES`); core is always included.

    A request does not hold on to any state from its client other than a reference to it,
    make a new one for each batch.
    """

    def __init__(self, client: "JmapClient" = None):
        self._client = client
        self._calls: List[MethodCall] = []
        self._call_ids = set()
        self._using: Dict[str, None] = {URI.CORE: None}
        self._next_id = 0
        self.created_ids: Optional[Dict[str, str]] = None

    @property
    def client(self) -> Optional["JmapClient"]:
        return self._client

    @property
    def default_account_id(self) -> Optional[str]:
        if self._client is None:
            return None
        return self._client.default_account_id

    @property
    def method_calls(self) -> Tuple[MethodCall, ...]:
        return tuple(self._calls)

    def add_call(
            self,
            name: str,
            arguments: Mapping[str, Any] = None,
            *,
            call_id: str = None,
            capability: Union[str, Iterable[str], None] = Default
    ) -> str:
        """
        Append a method call to the batch.

        Args:
            name: Method name, ie: `Email/query`.
            arguments: Argument dict; values can be `ResultReference` objects. It is deep
                copied, changing it afterwards does not change the request.
            call_id: If not provided we generate `c0`, `c1`, ... in the order calls are added.
            capability: Capability URI(s) the method needs.
                If Default (default): looked up from the method name, see
                    `xjmap.capabilities.capability_for_method`.
                If None: the method needs nothing beyond core.

        Returns:
            The call id, use it with `Request.reference` to refer to this call's result.

        Raises:
            DuplicateCallId: If `call_id` was already used in this request.
        """
        if call_id is None:
            call_id = self._generate_call_id()
        elif call_id in self._call_ids:
            raise DuplicateCallId(call_id)

        if capability is Default:
            capability = capability_for_method(name)

        if capability is not None:
            self.add_capability(capability)

        self._calls.append(
            MethodCall(name=name, arguments=deepcopy(dict(arguments or {})), call_id=call_id)
        )
        self._call_ids.add(call_id)
        return call_id

    def reference(self, call_id: str, method_name: str, path: str) -> ResultReference:
        """ We don't check `call_id` exists or comes first, the server will tell us. """
        return ResultReference(result_of=call_id, name=method_name, path=path)

    def add_capability(self, *uris: Union[str, Iterable[str]]) -> "Request":
        for uri in xloop(*uris):
            self._using.setdefault(uri, None)
        return self

    def capabilities_used(self) -> Tuple[str, ...]:
        return tuple(self._using)

    def build(self) -> RequestBatch:
        self._check_call_limit()
        return RequestBatch(
            using=self.capabilities_used(),
            method_calls=tuple(self._calls),
            created_ids=dict(self.created_ids) if self.created_ids is not None else None,
        )

    def to_json(self) -> Dict[str, Any]:
        return self.build().to_json()

    def send(self, result_type=Default) -> "BatchResponse":
        if self._client is None:
            raise RuntimeError("Request was built without a client, use client.send(request).")
        return self._client.send(self, result_type=result_type)

    def __len__(self):
        return len(self._calls)

    def _generate_call_id(self) -> str:
        while True:
            call_id = f"c{self._next_id}"
            self._next_id += 1
            if call_id not in self._call_ids:
                return call_id

    def _check_call_limit(self):
        if self._client is None or not self._client.is_connected:
            return

        limit = self._client.session.core_capabilities.max_calls_in_request
        if limit and len(self._calls) > limit:
            log.warning(
                f"Request has ({len(self._calls)}) method calls but the server only allows "
                f"({limit}) per request; expect a `limit` problem response."
            )
