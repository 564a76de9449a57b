"""
Pre-built rule templates for quick setup.

Applying a template creates one enabled, applies-to-all CatalogRule per
entry, named after the rule kind's catalog label.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from catalogwatch.exceptions import UnknownTemplateError
from catalogwatch.rules.catalog import RuleKind


@dataclass(frozen=True)
class TemplateRule:
    kind: RuleKind
    configuration: Dict[str, Any]
    severity: str


@dataclass(frozen=True)
class RuleTemplate:
    key: str
    name: str
    rules: Tuple[TemplateRule, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "rules": [
                {"kind": r.kind.value, "configuration": dict(r.configuration), "severity": r.severity}
                for r in self.rules
            ],
        }


RULE_TEMPLATES: Dict[str, RuleTemplate] = {
    "ecommerce_basic": RuleTemplate(
        key="ecommerce_basic",
        name="E-commerce Basic Standards",
        rules=(
            TemplateRule(RuleKind.MIN_IMAGES, {"min": 3}, "medium"),
            TemplateRule(RuleKind.ALT_TEXT_REQUIRED, {}, "high"),
            TemplateRule(RuleKind.MIN_DESCRIPTION_LENGTH, {"min": 50}, "medium"),
            TemplateRule(RuleKind.COLLECTION_REQUIRED, {}, "low"),
        ),
    ),
    "seo_optimized": RuleTemplate(
        key="seo_optimized",
        name="SEO Optimized",
        rules=(
            TemplateRule(RuleKind.SEO_TITLE_LENGTH, {"min": 40, "max": 60}, "high"),
            TemplateRule(RuleKind.SEO_DESCRIPTION_LENGTH, {"min": 120, "max": 160}, "high"),
            TemplateRule(RuleKind.ALT_TEXT_REQUIRED, {}, "high"),
            TemplateRule(RuleKind.MIN_DESCRIPTION_LENGTH, {"min": 100}, "medium"),
        ),
    ),
    "premium_catalog": RuleTemplate(
        key="premium_catalog",
        name="Premium Catalog",
        rules=(
            TemplateRule(RuleKind.MIN_IMAGES, {"min": 6}, "high"),
            TemplateRule(RuleKind.ALT_TEXT_REQUIRED, {}, "high"),
            TemplateRule(RuleKind.SEO_TITLE_LENGTH, {"min": 40, "max": 60}, "high"),
            TemplateRule(RuleKind.SEO_DESCRIPTION_LENGTH, {"min": 120, "max": 160}, "high"),
            TemplateRule(RuleKind.MIN_DESCRIPTION_LENGTH, {"min": 200}, "medium"),
            TemplateRule(RuleKind.COLLECTION_REQUIRED, {}, "medium"),
        ),
    ),
}


def get_template(template_key: str) -> RuleTemplate:
    try:
        return RULE_TEMPLATES[template_key]
    except KeyError:
        raise UnknownTemplateError(template_key)


def list_templates() -> List[Dict[str, Any]]:
    return [t.to_dict() for t in RULE_TEMPLATES.values()]
