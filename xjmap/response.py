import json
from logging import getLogger
from typing import (
    Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Union
)

from xsentinels import Default

from .errors import MalformedResponse, MethodError

log = getLogger(__name__)

ERROR_METHOD_NAME = "error"

ResultDecoder = Callable[[Dict[str, Any]], Any]
ResultType = Union[ResultDecoder, Mapping[str, ResultDecoder]]


class ResponseEntry:
    """
    One `[name, payload, callId]` triple from `methodResponses`.

    The payload is one of:

    - The successful result, decoded by the `result_type` given to `BatchResponse.parse`
      (or the plain JSON dict if none was given).
    - A `xjmap.errors.MethodError`, if the server sent back an `error` response for this call.

    If decoding a successful result failed, `ResponseEntry.decode_error` has a
    `xjmap.errors.MalformedResponse` describing it and the payload is the raw JSON dict;
    only this entry is affected.
    """

    def __init__(
            self,
            method_name: str,
            payload: Any,
            call_id: str,
            decode_error: MalformedResponse = None
    ):
        self.method_name = method_name
        self.payload = payload
        self.call_id = call_id
        self.decode_error = decode_error

    @property
    def is_error(self) -> bool:
        return isinstance(self.payload, MethodError)

    @property
    def error(self) -> Optional[MethodError]:
        return self.payload if self.is_error else None

    def result(self) -> Any:
        """ Returns the decoded result.

            Raises:
                MethodError: If the server returned an error for this call.
                MalformedResponse: If the result could not be decoded.
        """
        if self.is_error:
            raise self.payload
        if self.decode_error is not None:
            raise self.decode_error
        return self.payload

    def __repr__(self):
        return f"ResponseEntry({self.method_name!r}, {self.payload!r}, {self.call_id!r})"


class BatchResponse:
    """
    Parsed batch response.

    Entries are kept in the order the server sent them. The protocol does not promise this
    matches the request order, so look results up by call id via `BatchResponse.entries_for`;
    `BatchResponse.entry_at` is there for convenience when you know the layout.

    If the same call id was used for more than one call in the request, `entries_for` will
    return all of them (`xjmap.request.Request` refuses to build such a request, but a
    hand-made `xjmap.request.RequestBatch` could still do it).
    """

    def __init__(
            self,
            session_state: str,
            entries: Tuple[ResponseEntry, ...],
            created_ids: Optional[Dict[str, str]] = None
    ):
        self._session_state = session_state
        self._entries = tuple(entries)
        self._created_ids = created_ids

    @property
    def session_state(self) -> str:
        return self._session_state

    @property
    def entries(self) -> Tuple[ResponseEntry, ...]:
        return self._entries

    @property
    def created_ids(self) -> Optional[Dict[str, str]]:
        return self._created_ids

    def entries_for(self, call_id: str) -> Tuple[ResponseEntry, ...]:
        return tuple(e for e in self._entries if e.call_id == call_id)

    def entry_for(self, call_id: str) -> Optional[ResponseEntry]:
        """ First entry with `call_id`, or None. """
        for entry in self._entries:
            if entry.call_id == call_id:
                return entry
        return None

    def entry_at(self, index: int) -> ResponseEntry:
        return self._entries[index]

    def method_errors(self) -> List[MethodError]:
        return [e.error for e in self._entries if e.is_error]

    def __len__(self):
        return len(self._entries)

    def __iter__(self) -> Iterator[ResponseEntry]:
        return iter(self._entries)

    @classmethod
    def parse(cls, data: Union[bytes, str], result_type: ResultType = Default) -> "BatchResponse":
        try:
            doc = json.loads(data)
        except ValueError as e:
            raise MalformedResponse(f"Response is not valid JSON ({e}).") from e
        return cls.from_json(doc, result_type=result_type)

    @classmethod
    def from_json(cls, doc: Any, result_type: ResultType = Default) -> "BatchResponse":
        """
        Args:
            doc: Decoded JSON of the response body.
            result_type: Callable that decodes a successful result dict into whatever you want,
                or a mapping of method name to such a callable. Methods not in the mapping
                keep the raw dict. If Default: every result stays a raw dict.

        Raises:
            MalformedResponse: If the envelope or one of the triples has the wrong shape.
        """
        if not isinstance(doc, dict):
            raise MalformedResponse(
                f"Response must be a JSON object, got ({type(doc).__name__})."
            )

        session_state = doc.get('sessionState')
        if not isinstance(session_state, str):
            raise MalformedResponse("Response is missing a string `sessionState`.")

        method_responses = doc.get('methodResponses')
        if not isinstance(method_responses, list):
            raise MalformedResponse("Response is missing a `methodResponses` list.")

        created_ids = doc.get('createdIds')
        if created_ids is not None and not isinstance(created_ids, dict):
            raise MalformedResponse("Response `createdIds` must be an object.")

        entries = [
            _parse_entry(index, raw, result_type)
            for index, raw in enumerate(method_responses)
        ]
        return cls(session_state=session_state, entries=tuple(entries), created_ids=created_ids)


def _decoder_for(method_name: str, result_type: ResultType) -> Optional[ResultDecoder]:
    if result_type is Default or result_type is None:
        return None
    if isinstance(result_type, Mapping):
        return result_type.get(method_name)
    return result_type


def _parse_entry(index: int, raw: Any, result_type: ResultType) -> ResponseEntry:
    if not isinstance(raw, list) or len(raw) != 3:
        raise MalformedResponse(
            f"Method response at index ({index}) is not a [name, payload, callId] triple."
        )

    method_name, payload, call_id = raw
    if not isinstance(method_name, str) or not isinstance(call_id, str):
        raise MalformedResponse(
            f"Method response at index ({index}) must have a string name and call id."
        )
    if not isinstance(payload, dict):
        raise MalformedResponse(
            f"Method response ({method_name}) for call ({call_id}) has a non-object payload.",
            call_id
        )

    if method_name == ERROR_METHOD_NAME:
        error_type = payload.get('type')
        if not isinstance(error_type, str):
            raise MalformedResponse(
                f"Error response for call ({call_id}) has no string `type`.", call_id
            )
        description = payload.get('description')
        return ResponseEntry(
            method_name,
            MethodError(
                type=error_type,
                description=description if isinstance(description, str) else None,
                call_id=call_id,
                properties={k: v for k, v in payload.items() if k not in ('type', 'description')},
            ),
            call_id,
        )

    decoder = _decoder_for(method_name, result_type)
    if decoder is None:
        return ResponseEntry(method_name, payload, call_id)

    try:
        return ResponseEntry(method_name, decoder(payload), call_id)
    except Exception as e:
        log.warning(
            f"Could not decode result of ({method_name}) for call ({call_id}) with error ({e}); "
            f"keeping raw payload for this entry."
        )
        return ResponseEntry(
            method_name,
            payload,
            call_id,
            decode_error=MalformedResponse(
                f"Could not decode result of ({method_name}) for call ({call_id}): {e}", call_id
            ),
        )
