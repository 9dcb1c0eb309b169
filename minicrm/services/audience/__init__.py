"""Audience rules: parsing, compilation and resolution against the customer store."""

from minicrm.services.audience.rule_model import (
    Combinator,
    RuleField,
    RuleGroup,
    RuleLeaf,
    RuleOperator,
    RuleValidationError,
    parse_rule_tree,
)
from minicrm.services.audience.predicate import (
    And,
    CompareOp,
    Comparison,
    MatchAll,
    Or,
    Predicate,
    resolve_path,
)
from minicrm.services.audience.predicate_compiler import compile_rules
from minicrm.services.audience.query_builder import to_sqlalchemy
from minicrm.services.audience.resolver import AudienceResolver

__all__ = [
    "Combinator",
    "RuleField",
    "RuleGroup",
    "RuleLeaf",
    "RuleOperator",
    "RuleValidationError",
    "parse_rule_tree",
    "And",
    "CompareOp",
    "Comparison",
    "MatchAll",
    "Or",
    "Predicate",
    "resolve_path",
    "compile_rules",
    "to_sqlalchemy",
    "AudienceResolver",
]
