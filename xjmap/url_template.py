"""
Parsing and expansion of the URL templates the server advertises in its session
(`downloadUrl`, `uploadUrl`, `eventSourceUrl`).

These are RFC 6570 templates. We support the parts of level 3/4 that JMAP servers actually
use:

- Simple expressions: `{blobId}`
- Reserved/fragment expansion: `{+path}`, `{#frag}`
- Label/path expansion: `{.ext}`, `{/segment}`
- Form-style query: `{?types,ping}`, `{&closeafter}`
- The explode modifier on any of the above: `{/path*}`

Anything else (path-style params `{;x}`, prefix modifiers `{x:3}`, reserved operators)
raises `xjmap.errors.MalformedTemplate` at parse time.

A template is parsed once (per session fetch/refresh) into a tuple of `URLPart` objects and
then expanded as many times as needed:

>>> template = URLTemplate("https://jmap.example.com/download/{accountId}/{blobId}/{name}")
>>> template.expand({"accountId": "A1", "blobId": "B2", "name": "a b.txt"})
'https://jmap.example.com/download/A1/B2/a%20b.txt'
"""
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple, Union, FrozenSet
from urllib.parse import quote

from xloop import xloop

from .errors import MalformedTemplate, MissingVariable

UPLOAD_VARIABLES = frozenset({"accountId"})
DOWNLOAD_VARIABLES = frozenset({"accountId", "blobId", "type", "name"})
EVENT_SOURCE_VARIABLES = frozenset({"types", "closeafter", "ping"})

_RESERVED_CHARS = ":/?#[]@!$&'()*+,;="
_UNSUPPORTED_OPERATORS = set(";=,!@|")
_VARNAME = re.compile(r'^(?:[A-Za-z0-9_]|%[0-9A-Fa-f]{2})(?:\.?(?:[A-Za-z0-9_]|%[0-9A-Fa-f]{2}))*$')
_PCT_TRIPLET = re.compile(r'(%[0-9A-Fa-f]{2})')


@dataclass(frozen=True)
class _Operator:
    first: str
    separator: str
    named: bool
    if_empty: str
    allow_reserved: bool
    required: bool


_OPERATORS = {
    "": _Operator("", ",", False, "", False, True),
    "+": _Operator("", ",", False, "", True, True),
    "#": _Operator("#", ",", False, "", True, True),
    ".": _Operator(".", ".", False, "", False, True),
    "/": _Operator("/", "/", False, "", False, True),
    # Form-style query variables are optional, they are left out when not supplied.
    "?": _Operator("?", "&", True, "=", False, False),
    "&": _Operator("&", "&", True, "=", False, False),
}


@dataclass(frozen=True)
class Variable:
    name: str
    explode: bool = False


@dataclass(frozen=True)
class Literal:
    """ Text outside of any `{...}` expression, copied verbatim during expansion. """
    text: str

    def expand(self, parameters: Mapping[str, Any], template: str = None) -> str:
        return self.text


@dataclass(frozen=True)
class Expression:
    """ A `{...}` expression: an operator plus one or more variable references. """
    operator: str
    variables: Tuple[Variable, ...]

    @property
    def required(self) -> bool:
        return _OPERATORS[self.operator].required

    def expand(self, parameters: Mapping[str, Any], template: str = None) -> str:
        op = _OPERATORS[self.operator]
        pieces = []
        for var in self.variables:
            value = parameters.get(var.name)
            if _is_undefined(value):
                if op.required:
                    raise MissingVariable(var.name, template)
                continue
            pieces.append(_expand_variable(op, var, value))

        if not pieces:
            return ""
        return op.first + op.separator.join(pieces)


URLPart = Union[Literal, Expression]


def parse(template: str, allowed: Optional[Iterable[str]] = None) -> Tuple[URLPart, ...]:
    """
    Parse `template` into a tuple of `URLPart` objects.

    Args:
        template: The template string, usually straight from the session document.
        allowed: If provided, every variable name in the template must be in here.

    Returns:
        Tuple of `Literal` and `Expression` parts, in template order.

    Raises:
        MalformedTemplate: On unsupported or broken syntax.
    """
    if not isinstance(template, str):
        raise MalformedTemplate(f"Url template must be a string, got ({template!r}).")

    allowed_names: Optional[FrozenSet[str]] = frozenset(allowed) if allowed is not None else None
    parts = []
    pos = 0
    length = len(template)
    while pos < length:
        start = template.find("{", pos)
        stray = template.find("}", pos)
        if stray != -1 and (start == -1 or stray < start):
            raise MalformedTemplate(
                f"Unexpected '}}' at position ({stray}) in url template ({template}).", template
            )

        if start == -1:
            parts.append(Literal(template[pos:]))
            break

        if start > pos:
            parts.append(Literal(template[pos:start]))

        end = template.find("}", start)
        if end == -1:
            raise MalformedTemplate(
                f"Unclosed '{{' at position ({start}) in url template ({template}).", template
            )

        parts.append(_parse_expression(template[start + 1:end], template, allowed_names))
        pos = end + 1

    return tuple(parts)


def expand(parts: Iterable[URLPart], parameters: Mapping[str, Any], template: str = None) -> str:
    """
    Expand previously parsed `parts` with `parameters`.

    Raises:
        MissingVariable: If a required variable is not in `parameters` (or is `None`).
    """
    return "".join(part.expand(parameters, template) for part in parts)


class URLTemplate:
    """ A parsed template plus the string it came from. Immutable and safe to share. """

    def __init__(self, template: str, allowed: Optional[Iterable[str]] = None):
        self._template = template
        self._parts = parse(template, allowed)

    @property
    def template(self) -> str:
        return self._template

    @property
    def parts(self) -> Tuple[URLPart, ...]:
        return self._parts

    @property
    def variable_names(self) -> Tuple[str, ...]:
        names = []
        for part in self._parts:
            if isinstance(part, Expression):
                names.extend(v.name for v in part.variables if v.name not in names)
        return tuple(names)

    def expand(self, parameters: Mapping[str, Any] = None, **kwargs) -> str:
        if kwargs:
            parameters = {**(parameters or {}), **kwargs}
        return expand(self._parts, parameters or {}, self._template)

    def __eq__(self, other):
        if not isinstance(other, URLTemplate):
            return NotImplemented
        return self._template == other._template

    def __hash__(self):
        return hash(self._template)

    def __str__(self):
        return self._template

    def __repr__(self):
        return f"URLTemplate({self._template!r})"


def _parse_expression(body: str, template: str, allowed: Optional[FrozenSet[str]]) -> Expression:
    if not body:
        raise MalformedTemplate(f"Empty expression in url template ({template}).", template)

    operator = ""
    if body[0] in "+#./?&":
        operator = body[0]
        body = body[1:]
    elif body[0] in _UNSUPPORTED_OPERATORS:
        raise MalformedTemplate(
            f"Unsupported operator ({body[0]}) in url template ({template}).", template
        )

    variables = []
    for spec in body.split(","):
        explode = spec.endswith("*")
        name = spec[:-1] if explode else spec
        if ":" in name:
            raise MalformedTemplate(
                f"Prefix modifiers ({spec}) are not supported in url template ({template}).",
                template
            )
        if not _VARNAME.match(name):
            raise MalformedTemplate(
                f"Invalid variable name ({spec!r}) in url template ({template}).", template
            )
        if allowed is not None and name not in allowed:
            raise MalformedTemplate(
                f"Variable ({name}) is not one of ({', '.join(sorted(allowed))}) "
                f"in url template ({template}).",
                template
            )
        variables.append(Variable(name=name, explode=explode))

    return Expression(operator=operator, variables=tuple(variables))


def _is_undefined(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, set, frozenset, Mapping)) and not value:
        return True
    return False


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _encode(value: Any, allow_reserved: bool) -> str:
    text = _to_text(value)
    if not allow_reserved:
        return quote(text, safe="")

    # Keep reserved characters and any existing pct-encoded triplets as-is.
    return "".join(
        piece if _PCT_TRIPLET.fullmatch(piece) else quote(piece, safe=_RESERVED_CHARS)
        for piece in _PCT_TRIPLET.split(text)
    )


def _named(op: _Operator, name: str, encoded: str) -> str:
    if not op.named:
        return encoded
    if not encoded:
        return f"{name}{op.if_empty}"
    return f"{name}={encoded}"


def _expand_variable(op: _Operator, var: Variable, value: Any) -> str:
    if isinstance(value, Mapping):
        pairs = [(_encode(k, op.allow_reserved), _encode(v, op.allow_reserved))
                 for k, v in value.items()]
        if var.explode:
            return op.separator.join(f"{k}={v}" for k, v in pairs)
        return _named(op, var.name, ",".join(f"{k},{v}" for k, v in pairs))

    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_encode(v, op.allow_reserved) for v in xloop(value)]
        if var.explode:
            return op.separator.join(_named(op, var.name, v) for v in items)
        return _named(op, var.name, ",".join(items))

    return _named(op, var.name, _encode(value, op.allow_reserved))
