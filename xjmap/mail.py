"""
Email data type helpers (RFC 8621): query filter conditions, sort comparators and functions
to add `Email/query`, `Email/get` and `Thread/get` calls to a `xjmap.request.Request`.

Filter conditions and comparator properties are closed sets; each member maps to the exact
property name the protocol uses on the wire.

>>> request = client.build()
>>> query_id = query_email(
...     request,
...     filter=FilterOperator.and_(
...         EmailFilter.in_mailbox("M1"), EmailFilter.has_keyword("$flagged")
...     ),
...     sort=[EmailComparator.received_at().descending()],
...     limit=10,
... )
>>> get_id = get_email(
...     request, ids=request.reference(query_id, "Email/query", "/ids"),
...     properties=["threadId", "subject"],
... )
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from xsentinels import Default

from .capabilities import URI
from .query import Comparator, FilterOperator, QueryArgument, to_json
from .request import Request, ResultReference

Ids = Union[Iterable[str], ResultReference, None]


def from_timestamp(timestamp: int) -> str:
    """ UTC date in the `UTCDate` format JMAP wants, ie: `2021-06-01T10:00:00Z`. """
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class FilterProperty(str, Enum):
    IN_MAILBOX = "inMailbox"
    IN_MAILBOX_OTHER_THAN = "inMailboxOtherThan"
    BEFORE = "before"
    AFTER = "after"
    MIN_SIZE = "minSize"
    MAX_SIZE = "maxSize"
    ALL_IN_THREAD_HAVE_KEYWORD = "allInThreadHaveKeyword"
    SOME_IN_THREAD_HAVE_KEYWORD = "someInThreadHaveKeyword"
    NONE_IN_THREAD_HAVE_KEYWORD = "noneInThreadHaveKeyword"
    HAS_KEYWORD = "hasKeyword"
    NOT_KEYWORD = "notKeyword"
    HAS_ATTACHMENT = "hasAttachment"
    TEXT = "text"
    FROM = "from"
    TO = "to"
    CC = "cc"
    BCC = "bcc"
    SUBJECT = "subject"
    BODY = "body"
    HEADER = "header"


@dataclass(frozen=True)
class EmailFilter(QueryArgument):
    """ A single `Email/query` filter condition, serialized as `{property: value}`.

        Use the class methods to create one, they make sure the value has the right type.
    """
    property: FilterProperty
    value: Any

    def to_json(self) -> Dict[str, Any]:
        value = self.value
        if isinstance(value, tuple):
            value = list(value)
        return {self.property.value: value}

    @classmethod
    def in_mailbox(cls, mailbox_id: str) -> "EmailFilter":
        return cls(FilterProperty.IN_MAILBOX, mailbox_id)

    @classmethod
    def in_mailbox_other_than(cls, mailbox_ids: Iterable[str]) -> "EmailFilter":
        return cls(FilterProperty.IN_MAILBOX_OTHER_THAN, tuple(mailbox_ids))

    @classmethod
    def before(cls, timestamp: int) -> "EmailFilter":
        return cls(FilterProperty.BEFORE, from_timestamp(timestamp))

    @classmethod
    def after(cls, timestamp: int) -> "EmailFilter":
        return cls(FilterProperty.AFTER, from_timestamp(timestamp))

    @classmethod
    def min_size(cls, size: int) -> "EmailFilter":
        return cls(FilterProperty.MIN_SIZE, int(size))

    @classmethod
    def max_size(cls, size: int) -> "EmailFilter":
        return cls(FilterProperty.MAX_SIZE, int(size))

    @classmethod
    def all_in_thread_have_keyword(cls, keyword: str) -> "EmailFilter":
        return cls(FilterProperty.ALL_IN_THREAD_HAVE_KEYWORD, keyword)

    @classmethod
    def some_in_thread_have_keyword(cls, keyword: str) -> "EmailFilter":
        return cls(FilterProperty.SOME_IN_THREAD_HAVE_KEYWORD, keyword)

    @classmethod
    def none_in_thread_have_keyword(cls, keyword: str) -> "EmailFilter":
        return cls(FilterProperty.NONE_IN_THREAD_HAVE_KEYWORD, keyword)

    @classmethod
    def has_keyword(cls, keyword: str) -> "EmailFilter":
        return cls(FilterProperty.HAS_KEYWORD, keyword)

    @classmethod
    def not_keyword(cls, keyword: str) -> "EmailFilter":
        return cls(FilterProperty.NOT_KEYWORD, keyword)

    @classmethod
    def has_attachment(cls, value: bool) -> "EmailFilter":
        return cls(FilterProperty.HAS_ATTACHMENT, bool(value))

    @classmethod
    def text(cls, value: str) -> "EmailFilter":
        return cls(FilterProperty.TEXT, value)

    @classmethod
    def from_(cls, value: str) -> "EmailFilter":
        return cls(FilterProperty.FROM, value)

    @classmethod
    def to(cls, value: str) -> "EmailFilter":
        return cls(FilterProperty.TO, value)

    @classmethod
    def cc(cls, value: str) -> "EmailFilter":
        return cls(FilterProperty.CC, value)

    @classmethod
    def bcc(cls, value: str) -> "EmailFilter":
        return cls(FilterProperty.BCC, value)

    @classmethod
    def subject(cls, value: str) -> "EmailFilter":
        return cls(FilterProperty.SUBJECT, value)

    @classmethod
    def body(cls, value: str) -> "EmailFilter":
        return cls(FilterProperty.BODY, value)

    @classmethod
    def header(cls, values: Iterable[str]) -> "EmailFilter":
        """ `[name]` or `[name, value]`. """
        values = tuple(values)
        if not 1 <= len(values) <= 2:
            raise ValueError(f"Header filter needs a name and optional value, got ({values}).")
        return cls(FilterProperty.HEADER, values)


class SortProperty(str, Enum):
    RECEIVED_AT = "receivedAt"
    SIZE = "size"
    FROM = "from"
    TO = "to"
    SUBJECT = "subject"
    SENT_AT = "sentAt"
    HAS_KEYWORD = "hasKeyword"
    ALL_IN_THREAD_HAVE_KEYWORD = "allInThreadHaveKeyword"
    SOME_IN_THREAD_HAVE_KEYWORD = "someInThreadHaveKeyword"


_KEYWORD_SORT_PROPERTIES = frozenset({
    SortProperty.HAS_KEYWORD,
    SortProperty.ALL_IN_THREAD_HAVE_KEYWORD,
    SortProperty.SOME_IN_THREAD_HAVE_KEYWORD,
})


@dataclass(frozen=True)
class EmailComparator(QueryArgument):
    """ Sort property for `Email/query`; the keyword ones also carry the keyword to sort by.

        The class methods return a `xjmap.query.Comparator` ready to use in `sort`.
    """
    property: SortProperty
    keyword: Optional[str] = None

    def __post_init__(self):
        if (self.property in _KEYWORD_SORT_PROPERTIES) != (self.keyword is not None):
            raise ValueError(
                f"Sort property ({self.property.value}) "
                f"{'needs' if self.property in _KEYWORD_SORT_PROPERTIES else 'does not take'} "
                f"a keyword."
            )

    def to_json(self) -> Dict[str, Any]:
        json = {"property": self.property.value}
        if self.keyword is not None:
            json["keyword"] = self.keyword
        return json

    @classmethod
    def received_at(cls) -> Comparator:
        return Comparator(cls(SortProperty.RECEIVED_AT))

    @classmethod
    def size(cls) -> Comparator:
        return Comparator(cls(SortProperty.SIZE))

    @classmethod
    def from_(cls) -> Comparator:
        return Comparator(cls(SortProperty.FROM))

    @classmethod
    def to(cls) -> Comparator:
        return Comparator(cls(SortProperty.TO))

    @classmethod
    def subject(cls) -> Comparator:
        return Comparator(cls(SortProperty.SUBJECT))

    @classmethod
    def sent_at(cls) -> Comparator:
        return Comparator(cls(SortProperty.SENT_AT))

    @classmethod
    def has_keyword(cls, keyword: str) -> Comparator:
        return Comparator(cls(SortProperty.HAS_KEYWORD, keyword))

    @classmethod
    def all_in_thread_have_keyword(cls, keyword: str) -> Comparator:
        return Comparator(cls(SortProperty.ALL_IN_THREAD_HAVE_KEYWORD, keyword))

    @classmethod
    def some_in_thread_have_keyword(cls, keyword: str) -> Comparator:
        return Comparator(cls(SortProperty.SOME_IN_THREAD_HAVE_KEYWORD, keyword))


# --------------------------------------
# --------- Request Helpers ------------

def _account_id(request: Request, account_id) -> str:
    if account_id is Default:
        account_id = request.default_account_id
    if not account_id:
        raise ValueError("No account id given and the request has no default account id.")
    return account_id


def _ids(ids: Ids) -> Union[List[str], ResultReference, None]:
    if ids is None or isinstance(ids, ResultReference):
        return ids
    return list(ids)


def query_email(
        request: Request,
        *,
        filter: Union[EmailFilter, FilterOperator, None] = None,
        sort: Optional[Iterable[Comparator]] = None,
        position: Optional[int] = None,
        anchor: Optional[str] = None,
        limit: Optional[int] = None,
        collapse_threads: Optional[bool] = None,
        calculate_total: Optional[bool] = None,
        account_id: str = Default,
        call_id: str = None
) -> str:
    """ Adds an `Email/query` call and returns its call id. """
    arguments: Dict[str, Any] = {"accountId": _account_id(request, account_id)}
    if filter is not None:
        arguments["filter"] = to_json(filter)
    if sort is not None:
        arguments["sort"] = [to_json(c) for c in sort]
    if position is not None:
        arguments["position"] = position
    if anchor is not None:
        arguments["anchor"] = anchor
    if limit is not None:
        arguments["limit"] = limit
    if collapse_threads is not None:
        arguments["collapseThreads"] = collapse_threads
    if calculate_total is not None:
        arguments["calculateTotal"] = calculate_total
    return request.add_call("Email/query", arguments, call_id=call_id, capability=URI.MAIL)


def get_email(
        request: Request,
        *,
        ids: Ids = None,
        properties: Optional[Iterable[str]] = None,
        account_id: str = Default,
        call_id: str = None
) -> str:
    """ Adds an `Email/get` call. `ids` can be a `ResultReference` to an earlier call. """
    arguments: Dict[str, Any] = {
        "accountId": _account_id(request, account_id),
        "ids": _ids(ids),
    }
    if properties is not None:
        arguments["properties"] = list(properties)
    return request.add_call("Email/get", arguments, call_id=call_id, capability=URI.MAIL)


def get_thread(
        request: Request,
        *,
        ids: Ids = None,
        account_id: str = Default,
        call_id: str = None
) -> str:
    """ Adds a `Thread/get` call. `ids` can be a `ResultReference` to an earlier call. """
    arguments = {
        "accountId": _account_id(request, account_id),
        "ids": _ids(ids),
    }
    return request.add_call("Thread/get", arguments, call_id=call_id, capability=URI.MAIL)
