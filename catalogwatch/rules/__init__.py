"""
Rule catalog and product snapshot types used by drift detection.
"""

from catalogwatch.rules.snapshot import ProductSnapshot, ProductImage, ProductCollection
from catalogwatch.rules.catalog import (
    RuleKind,
    RuleDefinition,
    RULE_DEFINITIONS,
    get_rule_definition,
    normalize_configuration,
)
from catalogwatch.rules.evaluators import evaluate_rule, EVALUATORS
from catalogwatch.rules.templates import RULE_TEMPLATES, RuleTemplate, get_template

__all__ = [
    "ProductSnapshot",
    "ProductImage",
    "ProductCollection",
    "RuleKind",
    "RuleDefinition",
    "RULE_DEFINITIONS",
    "get_rule_definition",
    "normalize_configuration",
    "evaluate_rule",
    "EVALUATORS",
    "RULE_TEMPLATES",
    "RuleTemplate",
    "get_template",
]
