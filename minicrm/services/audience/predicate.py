"""
Backend-neutral predicate tree.

A compiled audience rule is a small immutable tree of ``And`` / ``Or`` /
``Comparison`` / ``MatchAll`` nodes. Every node is callable on a
document-shaped record (see ``Customer.to_record``) and can be lowered to
SQL by ``query_builder.to_sqlalchemy``.

A comparison against a missing or null value never matches, whatever the
operator.
"""

from __future__ import annotations

import operator as op
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Tuple, Union


class CompareOp(str, Enum):
    EQ = "eq"
    NE = "ne"
    LT = "lt"
    LE = "le"
    GT = "gt"
    GE = "ge"
    ICONTAINS = "icontains"


def _icontains(value: Any, needle: Any) -> bool:
    return str(needle).lower() in str(value).lower()


_OPERATORS: Dict[CompareOp, Callable[[Any, Any], bool]] = {
    CompareOp.EQ: op.eq,
    CompareOp.NE: op.ne,
    CompareOp.LT: op.lt,
    CompareOp.LE: op.le,
    CompareOp.GT: op.gt,
    CompareOp.GE: op.ge,
    CompareOp.ICONTAINS: _icontains,
}


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes come back from SQLite; they were written as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_path(record: Mapping[str, Any], path: str) -> Any:
    """Look up a dotted path such as ``metadata.total_spend``."""
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


@dataclass(frozen=True)
class Comparison:
    path: str
    op: CompareOp
    operand: Any

    def __call__(self, record: Mapping[str, Any]) -> bool:
        value = resolve_path(record, self.path)
        if value is None:
            return False
        operand = self.operand
        if isinstance(value, datetime) and isinstance(operand, datetime):
            value, operand = _as_utc(value), _as_utc(operand)
        try:
            return bool(_OPERATORS[self.op](value, operand))
        except TypeError:
            # Mismatched types never match, as in the database
            return False


@dataclass(frozen=True)
class And:
    children: Tuple["Predicate", ...]

    def __call__(self, record: Mapping[str, Any]) -> bool:
        return all(child(record) for child in self.children)


@dataclass(frozen=True)
class Or:
    children: Tuple["Predicate", ...]

    def __call__(self, record: Mapping[str, Any]) -> bool:
        return any(child(record) for child in self.children)


@dataclass(frozen=True)
class MatchAll:
    """Selects every record; produced by an empty rule group."""

    def __call__(self, record: Mapping[str, Any]) -> bool:
        return True


Predicate = Union[Comparison, And, Or, MatchAll]
