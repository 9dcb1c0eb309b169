"""
Lowers predicate trees to SQLAlchemy filter expressions over ``customers``.
"""

from typing import Any, Dict

from sqlalchemy import Float, and_, false, literal, or_, true
from sqlalchemy.sql.elements import ColumnElement

from minicrm.models.customer import Customer
from minicrm.services.audience.predicate import (
    And,
    CompareOp,
    Comparison,
    MatchAll,
    Or,
    Predicate,
)

# Record paths that are backed by a column.
COLUMN_MAP: Dict[str, Any] = {
    "email": Customer.email,
    "metadata.last_visit": Customer.last_visit,
    "metadata.total_spend": Customer.total_spend,
    "metadata.visit_count": Customer.visit_count,
}


def _comparison(node: Comparison) -> ColumnElement:
    column = COLUMN_MAP.get(node.path)
    if column is None:
        # Nothing is stored under this path, so nothing can match
        return false()

    value = node.operand
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Integer columns are compared against float binds (visit_count > 2.5)
        value = literal(value, Float)

    if node.op is CompareOp.EQ:
        return column == value
    elif node.op is CompareOp.NE:
        return column != value
    elif node.op is CompareOp.LT:
        return column < value
    elif node.op is CompareOp.LE:
        return column <= value
    elif node.op is CompareOp.GT:
        return column > value
    elif node.op is CompareOp.GE:
        return column >= value
    elif node.op is CompareOp.ICONTAINS:
        return column.icontains(value, autoescape=True)
    raise ValueError(f"Unsupported comparison operator: {node.op}")


def to_sqlalchemy(predicate: Predicate) -> ColumnElement:
    """Recursively build the WHERE clause for a predicate."""
    if isinstance(predicate, MatchAll):
        return true()
    if isinstance(predicate, And):
        return and_(*(to_sqlalchemy(child) for child in predicate.children))
    if isinstance(predicate, Or):
        return or_(*(to_sqlalchemy(child) for child in predicate.children))
    if isinstance(predicate, Comparison):
        return _comparison(predicate)
    raise TypeError(f"Not a predicate: {predicate!r}")
