import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterator, Mapping, Optional, Tuple, Union

from .capabilities import URI
from .errors import MalformedSession, MalformedTemplate
from .url_template import (
    URLTemplate, UPLOAD_VARIABLES, DOWNLOAD_VARIABLES, EVENT_SOURCE_VARIABLES
)


JsonDict = Dict[str, Any]

_REQUIRED_FIELDS = (
    'apiUrl', 'downloadUrl', 'uploadUrl', 'eventSourceUrl', 'state', 'accounts',
    'primaryAccounts',
)


@dataclass(frozen=True)
class CoreCapabilities:
    """ Server limits from the `urn:ietf:params:jmap:core` capability.

        We don't enforce these, the server does; they are here so callers (and
        `xjmap.request.Request`) can warn or split work up ahead of time.
    """
    max_size_upload: Optional[int] = None
    max_concurrent_upload: Optional[int] = None
    max_size_request: Optional[int] = None
    max_concurrent_requests: Optional[int] = None
    max_calls_in_request: Optional[int] = None
    max_objects_in_get: Optional[int] = None
    max_objects_in_set: Optional[int] = None
    collation_algorithms: Tuple[str, ...] = ()

    @classmethod
    def from_json(cls, json: Optional[JsonDict]) -> "CoreCapabilities":
        json = json or {}
        return cls(
            max_size_upload=json.get('maxSizeUpload'),
            max_concurrent_upload=json.get('maxConcurrentUpload'),
            max_size_request=json.get('maxSizeRequest'),
            max_concurrent_requests=json.get('maxConcurrentRequests'),
            max_calls_in_request=json.get('maxCallsInRequest'),
            max_objects_in_get=json.get('maxObjectsInGet'),
            max_objects_in_set=json.get('maxObjectsInSet'),
            collation_algorithms=tuple(json.get('collationAlgorithms') or ()),
        )


@dataclass(frozen=True)
class Account:
    id: str
    name: str = ""
    is_personal: bool = False
    is_read_only: bool = False
    account_capabilities: Mapping[str, Any] = field(default_factory=dict)

    @property
    def capabilities(self) -> FrozenSet[str]:
        return frozenset(self.account_capabilities)

    def has_capability(self, uri: str) -> bool:
        return uri in self.account_capabilities


@dataclass(frozen=True)
class Session:
    """
    Immutable snapshot of the JMAP session resource (RFC 8620, section 2).

    Create one via `Session.from_json` or `Session.parse`. The client replaces its
    session wholesale when refreshing; nothing here is ever modified in place.

    The three endpoint templates are parsed when the session is created, so a bad template
    is reported right away (as a `xjmap.errors.MalformedSession`) instead of on first use.
    """
    api_url: str
    download_url: URLTemplate
    upload_url: URLTemplate
    event_source_url: URLTemplate
    state: str
    accounts: Mapping[str, Account]
    primary_account_map: Mapping[str, str]
    capabilities: Mapping[str, Any] = field(default_factory=dict)
    username: str = ""

    @classmethod
    def parse(cls, data: Union[bytes, str]) -> "Session":
        try:
            doc = json.loads(data)
        except ValueError as e:
            raise MalformedSession(f"Session document is not valid JSON ({e}).") from e
        return cls.from_json(doc)

    @classmethod
    def from_json(cls, doc: JsonDict) -> "Session":
        if not isinstance(doc, dict):
            raise MalformedSession(
                f"Session document must be a JSON object, got ({type(doc).__name__})."
            )

        missing = [name for name in _REQUIRED_FIELDS if name not in doc]
        if missing:
            raise MalformedSession(f"Session document is missing fields ({', '.join(missing)}).")

        for name in ('apiUrl', 'downloadUrl', 'uploadUrl', 'eventSourceUrl', 'state'):
            if not isinstance(doc[name], str):
                raise MalformedSession(f"Session field ({name}) must be a string.")

        for name in ('accounts', 'primaryAccounts'):
            if not isinstance(doc[name], dict):
                raise MalformedSession(f"Session field ({name}) must be an object.")

        capabilities = doc.get('capabilities') or {}
        if not isinstance(capabilities, dict):
            raise MalformedSession("Session field (capabilities) must be an object.")

        accounts = {}
        for account_id, account in doc['accounts'].items():
            if not isinstance(account, dict):
                raise MalformedSession(f"Account ({account_id}) must be an object.")
            accounts[account_id] = Account(
                id=account_id,
                name=account.get('name', ""),
                is_personal=bool(account.get('isPersonal', False)),
                is_read_only=bool(account.get('isReadOnly', False)),
                account_capabilities=MappingProxyType(
                    dict(account.get('accountCapabilities') or {})
                ),
            )

        try:
            download_url = URLTemplate(doc['downloadUrl'], DOWNLOAD_VARIABLES)
            upload_url = URLTemplate(doc['uploadUrl'], UPLOAD_VARIABLES)
            event_source_url = URLTemplate(doc['eventSourceUrl'], EVENT_SOURCE_VARIABLES)
        except MalformedTemplate as e:
            raise MalformedSession(f"Session has an invalid url template: {e}") from e

        return cls(
            api_url=doc['apiUrl'],
            download_url=download_url,
            upload_url=upload_url,
            event_source_url=event_source_url,
            state=doc['state'],
            accounts=MappingProxyType(accounts),
            primary_account_map=MappingProxyType(dict(doc['primaryAccounts'])),
            capabilities=MappingProxyType(dict(capabilities)),
            username=doc.get('username') or "",
        )

    def primary_accounts(self) -> Iterator[Tuple[str, str]]:
        """ Yields `(capability-uri, account-id)` pairs.

            A new generator is made from the stored mapping each call, so you can call this
            again to start over.
        """
        for capability, account_id in self.primary_account_map.items():
            yield capability, account_id

    def primary_account_id(self, capability: str = URI.MAIL) -> Optional[str]:
        return self.primary_account_map.get(capability)

    def account(self, account_id: str) -> Optional[Account]:
        return self.accounts.get(account_id)

    def has_capability(self, uri: str) -> bool:
        return uri in self.capabilities

    def capability(self, uri: str) -> Optional[Mapping[str, Any]]:
        return self.capabilities.get(uri)

    @property
    def core_capabilities(self) -> CoreCapabilities:
        return CoreCapabilities.from_json(self.capabilities.get(URI.CORE))
