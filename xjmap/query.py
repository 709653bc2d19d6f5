"""
Generic `*/query` argument types: sort comparators and filter operators.

Data-type specific filter conditions and comparator properties live with their
data type (see `xjmap.mail`).
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class QueryArgument:
    """ Base for filter conditions, filter operators, comparators and sort properties. """

    def to_json(self) -> Dict[str, Any]:
        raise NotImplementedError(f"{type(self).__name__} needs to implement `to_json`.")


class Operator(str, Enum):
    AND = "AND"
    OR = "OR"
    NOT = "NOT"


@dataclass(frozen=True)
class FilterOperator(QueryArgument):
    """ Combines filter conditions (or other operators):

        >>> FilterOperator.and_(EmailFilter.from_("alice"), EmailFilter.has_attachment(True))
    """
    operator: Operator
    conditions: Tuple[Any, ...] = ()

    @classmethod
    def and_(cls, *conditions) -> "FilterOperator":
        return cls(Operator.AND, tuple(conditions))

    @classmethod
    def or_(cls, *conditions) -> "FilterOperator":
        return cls(Operator.OR, tuple(conditions))

    @classmethod
    def not_(cls, *conditions) -> "FilterOperator":
        return cls(Operator.NOT, tuple(conditions))

    def to_json(self) -> Dict[str, Any]:
        return {
            "operator": self.operator.value,
            "conditions": [to_json(c) for c in self.conditions],
        }


@dataclass(frozen=True)
class Comparator(QueryArgument):
    """ Wraps a data-type specific sort property with the options every comparator has.

        The wrapped `property` is a `QueryArgument` whose `to_json()` returns at least
        `{"property": ...}`.
    """
    property: QueryArgument
    is_ascending: bool = True
    collation: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def descending(self) -> "Comparator":
        return replace(self, is_ascending=False)

    def ascending(self) -> "Comparator":
        return replace(self, is_ascending=True)

    def with_collation(self, collation: str) -> "Comparator":
        return replace(self, collation=collation)

    def to_json(self) -> Dict[str, Any]:
        json = {**self.property.to_json(), "isAscending": self.is_ascending}
        if self.collation is not None:
            json["collation"] = self.collation
        json.update(self.extra)
        return json


def to_json(value: Union[Any, None]) -> Any:
    """ Serialize a `QueryArgument`, passing plain JSON through. """
    if value is None:
        return None
    if isinstance(value, QueryArgument):
        return value.to_json()
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    return value
