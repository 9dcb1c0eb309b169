"""
Audience Rule Model

Typed representation of the JSON rule tree sent by the campaign builder:

    {
        "combinator": "and",
        "rules": [
            {"field": "total_spend", "operator": ">", "value": "500"},
            {
                "combinator": "or",
                "rules": [
                    {"field": "visit_count", "operator": "<", "value": "3"},
                    {"field": "inactive_days", "operator": ">", "value": "90"}
                ]
            }
        ]
    }

Untrusted strings are parsed into closed enums here, so nothing downstream
ever sees a raw field or operator name. Parsing never stops at the first
problem: every offending node is reported in one RuleValidationError.

Numeric fields only accept numbers: ``contains`` on ``total_spend``,
``visit_count`` or ``inactive_days`` is rejected here instead of being
compiled into a substring test that could never match. Numbers larger in
magnitude than MAX_RULE_NUMBER (the largest integer a float represents
exactly) are rejected as out of range.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from minicrm.exceptions import ErrorCode, ValidationError

DEFAULT_MAX_DEPTH = 32
MAX_RULE_NUMBER = 2 ** 53


class RuleField(str, Enum):
    """Fields a rule may test."""

    TOTAL_SPEND = "total_spend"
    VISIT_COUNT = "visit_count"
    INACTIVE_DAYS = "inactive_days"
    EMAIL = "email"

    @property
    def is_numeric(self) -> bool:
        return self is not RuleField.EMAIL


class RuleOperator(str, Enum):
    EQ = "="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    CONTAINS = "contains"


class Combinator(str, Enum):
    AND = "and"
    OR = "or"


class RuleValidationError(ValidationError):
    """Raised with every problem found in a rule tree."""

    def __init__(self, errors: List[Dict[str, Any]]):
        self.rule_errors = errors
        noun = "problem" if len(errors) == 1 else "problems"
        super().__init__(
            detail=f"Invalid audience rules: {len(errors)} {noun} found",
            errors=errors,
            code=ErrorCode.INVALID_RULES,
        )


@dataclass(frozen=True)
class RuleLeaf:
    """A single comparison: ``field operator value``."""

    field: RuleField
    operator: RuleOperator
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field.value, "operator": self.operator.value, "value": self.value}


@dataclass(frozen=True)
class RuleGroup:
    """AND/OR combination of leaves and nested groups."""

    combinator: Combinator
    rules: Tuple["RuleNode", ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "combinator": self.combinator.value,
            "rules": [rule.to_dict() for rule in self.rules],
        }


RuleNode = Union[RuleLeaf, RuleGroup]


def parse_number(text: str) -> Optional[float]:
    """Parse a rule value as a finite number, or return None."""
    try:
        number = float(text.strip())
    except (AttributeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _error(path: str, message: str, error_type: str) -> Dict[str, Any]:
    return {"path": path or "$", "message": message, "type": error_type}


def out_of_range_error(path: str, field: RuleField, value: str) -> Dict[str, Any]:
    return _error(path, f"Value {value!r} is out of range for field '{field.value}'", "value_out_of_range")


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


class _RuleTreeParser:
    """Walks raw JSON once, building nodes and collecting errors."""

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        self.errors: List[Dict[str, Any]] = []

    def group(self, data: Any, path: str, depth: int) -> Optional[RuleGroup]:
        if not isinstance(data, dict):
            self.errors.append(_error(path, "Rule group must be an object", "type_error"))
            return None
        if depth > self.max_depth:
            self.errors.append(
                _error(path, f"Rule tree is nested deeper than {self.max_depth} levels", "depth_exceeded")
            )
            return None

        combinator = None
        raw_combinator = data.get("combinator")
        try:
            combinator = Combinator(raw_combinator)
        except ValueError:
            self.errors.append(
                _error(
                    _join(path, "combinator"),
                    f"Unknown combinator {raw_combinator!r}; expected 'and' or 'or'",
                    "unknown_combinator",
                )
            )

        raw_rules = data.get("rules")
        if not isinstance(raw_rules, list):
            self.errors.append(_error(_join(path, "rules"), "Rule group needs a 'rules' list", "type_error"))
            return None

        children = []
        for index, raw in enumerate(raw_rules):
            child_path = _join(path, f"rules[{index}]")
            if isinstance(raw, dict) and ("rules" in raw or "combinator" in raw):
                child = self.group(raw, child_path, depth + 1)
            else:
                child = self.leaf(raw, child_path)
            if child is not None:
                children.append(child)

        if combinator is None:
            return None
        return RuleGroup(combinator=combinator, rules=tuple(children))

    def leaf(self, data: Any, path: str) -> Optional[RuleLeaf]:
        if not isinstance(data, dict):
            self.errors.append(_error(path, "Rule must be an object", "type_error"))
            return None

        field = operator = value = None
        ok = True

        raw_field = data.get("field")
        try:
            field = RuleField(raw_field)
        except ValueError:
            ok = False
            self.errors.append(
                _error(_join(path, "field"), f"Unknown field {raw_field!r}", "unknown_field")
            )

        raw_operator = data.get("operator")
        try:
            operator = RuleOperator(raw_operator)
        except ValueError:
            ok = False
            self.errors.append(
                _error(_join(path, "operator"), f"Unknown operator {raw_operator!r}", "unknown_operator")
            )

        raw_value = data.get("value")
        if isinstance(raw_value, bool) or not isinstance(raw_value, (str, int, float)):
            ok = False
            self.errors.append(
                _error(_join(path, "value"), "Rule value must be a string or number", "type_error")
            )
        else:
            value = raw_value if isinstance(raw_value, str) else str(raw_value)

        if field is not None and operator is not None and value is not None:
            ok = self._check_operand(field, operator, value, path) and ok

        if not ok:
            return None
        return RuleLeaf(field=field, operator=operator, value=value)

    def _check_operand(self, field: RuleField, operator: RuleOperator, value: str, path: str) -> bool:
        if field.is_numeric and operator is RuleOperator.CONTAINS:
            self.errors.append(
                _error(
                    _join(path, "operator"),
                    f"Operator 'contains' is not supported for numeric field '{field.value}'",
                    "unsupported_operator",
                )
            )
            return False
        if not field.is_numeric:
            return True
        number = parse_number(value)
        if number is None:
            self.errors.append(
                _error(
                    _join(path, "value"),
                    f"Field '{field.value}' needs a numeric value, got {value!r}",
                    "not_a_number",
                )
            )
            return False
        if abs(number) > MAX_RULE_NUMBER:
            self.errors.append(out_of_range_error(_join(path, "value"), field, value))
            return False
        return True


def parse_rule_tree(data: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> RuleGroup:
    """Parse a raw JSON rule tree.

    Raises:
        RuleValidationError: listing every malformed node in the tree.
    """
    parser = _RuleTreeParser(max_depth)
    tree = parser.group(data, "", 1)
    if parser.errors:
        raise RuleValidationError(parser.errors)
    return tree
