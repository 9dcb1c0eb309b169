"""
Predicate Compiler

Lowers a rule tree into a backend-neutral predicate tree. Used identically by
audience preview and campaign targeting, so both always agree on who matches.

Lowering rules:
- a group becomes And/Or over its compiled children (its own combinator);
  an empty group becomes MatchAll
- ``email`` is a top-level attribute, every other field lives under
  ``metadata.<field>``
- ``contains`` is a case-insensitive substring test
- ``inactive_days > N`` is rewritten to ``metadata.last_visit < now - N days``.
  Other operators on ``inactive_days`` compare against
  ``metadata.inactive_days``, which is never stored, so they match nobody.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from minicrm.services.audience.predicate import (
    And,
    CompareOp,
    Comparison,
    MatchAll,
    Or,
    Predicate,
)
from minicrm.services.audience.rule_model import (
    DEFAULT_MAX_DEPTH,
    MAX_RULE_NUMBER,
    Combinator,
    RuleField,
    RuleGroup,
    RuleLeaf,
    RuleOperator,
    RuleValidationError,
    out_of_range_error,
    parse_number,
    parse_rule_tree,
)

OPERATOR_MAP: Dict[RuleOperator, CompareOp] = {
    RuleOperator.EQ: CompareOp.EQ,
    RuleOperator.NE: CompareOp.NE,
    RuleOperator.LT: CompareOp.LT,
    RuleOperator.LE: CompareOp.LE,
    RuleOperator.GT: CompareOp.GT,
    RuleOperator.GE: CompareOp.GE,
    RuleOperator.CONTAINS: CompareOp.ICONTAINS,
}

LAST_VISIT_PATH = "metadata.last_visit"


def field_path(field: RuleField) -> str:
    """Record path a rule field is compared against."""
    if field is RuleField.EMAIL:
        return "email"
    return f"metadata.{field.value}"


class PredicateCompiler:
    """Compiles one rule tree; collects leaf errors across the whole tree."""

    def __init__(self, now: datetime):
        self.now = now
        self.errors: List[Dict[str, Any]] = []

    def compile_group(self, group: RuleGroup, path: str = "") -> Predicate:
        if not group.rules:
            return MatchAll()
        children = tuple(
            self.compile_node(rule, f"{path}.rules[{index}]" if path else f"rules[{index}]")
            for index, rule in enumerate(group.rules)
        )
        if group.combinator is Combinator.OR:
            return Or(children)
        return And(children)

    def compile_node(self, node: Union[RuleGroup, RuleLeaf], path: str) -> Predicate:
        if isinstance(node, RuleGroup):
            return self.compile_group(node, path)
        return self.compile_leaf(node, path)

    def compile_leaf(self, leaf: RuleLeaf, path: str) -> Predicate:
        compare = OPERATOR_MAP[leaf.operator]

        if leaf.field is RuleField.EMAIL:
            return Comparison(field_path(leaf.field), compare, leaf.value)

        if compare is CompareOp.ICONTAINS:
            self.errors.append({
                "path": f"{path}.operator",
                "message": f"Operator 'contains' is not supported for numeric field '{leaf.field.value}'",
                "type": "unsupported_operator",
            })
            return MatchAll()

        number = parse_number(leaf.value)
        if number is None:
            self.errors.append({
                "path": f"{path}.value",
                "message": f"Field '{leaf.field.value}' needs a numeric value, got {leaf.value!r}",
                "type": "not_a_number",
            })
            return MatchAll()
        if abs(number) > MAX_RULE_NUMBER:
            self.errors.append(out_of_range_error(f"{path}.value", leaf.field, leaf.value))
            return MatchAll()
        if number.is_integer():
            number = int(number)

        if leaf.field is RuleField.INACTIVE_DAYS and compare is CompareOp.GT:
            try:
                cutoff = self.now - timedelta(days=number)
            except OverflowError:
                # Further back than datetime can represent
                self.errors.append(out_of_range_error(f"{path}.value", leaf.field, leaf.value))
                return MatchAll()
            return Comparison(LAST_VISIT_PATH, CompareOp.LT, cutoff)

        return Comparison(field_path(leaf.field), compare, number)


def compile_rules(
    rules: Union[RuleGroup, Any],
    now: Optional[datetime] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Predicate:
    """Compile a rule tree (parsed or raw JSON) into a predicate.

    Pure apart from reading the clock when ``now`` is not given.

    Raises:
        RuleValidationError: the tree is malformed or a value cannot be coerced.
    """
    tree = rules if isinstance(rules, RuleGroup) else parse_rule_tree(rules, max_depth=max_depth)
    compiler = PredicateCompiler(now or datetime.now(timezone.utc))
    predicate = compiler.compile_group(tree)
    if compiler.errors:
        raise RuleValidationError(compiler.errors)
    return predicate
