"""
Rule catalog: the closed set of custom rule kinds.

Each kind has a label, a description, a configuration schema with defaults
and a default severity. Evaluators live in catalogwatch.rules.evaluators,
one per kind; that module refuses to import if a kind has no evaluator.

Usage:
    from catalogwatch.rules.catalog import RuleKind, normalize_configuration

    config = normalize_configuration("min_images", {"min": 3})  # {"min": 3}
    config = normalize_configuration("seo_title_length", {})    # {"min": 40, "max": 60}
"""

import copy
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from catalogwatch.exceptions import RuleConfigError


class RuleKind(str, Enum):
    """Custom rule kinds."""
    MIN_IMAGES = "min_images"
    MAX_IMAGES = "max_images"
    MIN_DESCRIPTION_LENGTH = "min_description_length"
    MAX_DESCRIPTION_LENGTH = "max_description_length"
    MIN_TITLE_LENGTH = "min_title_length"
    MAX_TITLE_LENGTH = "max_title_length"
    SEO_TITLE_LENGTH = "seo_title_length"
    SEO_DESCRIPTION_LENGTH = "seo_description_length"
    REQUIRED_TAGS = "required_tags"
    TAG_GROUP = "tag_group"
    REQUIRED_METAFIELDS = "required_metafields"
    ALT_TEXT_REQUIRED = "alt_text_required"
    COLLECTION_REQUIRED = "collection_required"
    CUSTOM_REGEX = "custom_regex"


# Product fields a custom_regex rule may target
REGEX_TARGET_FIELDS: Tuple[str, ...] = ("title", "description", "seo_title", "seo_description")


@dataclass(frozen=True)
class FieldSpec:
    """One configuration key of a rule kind."""
    key: str
    label: str
    type: str  # number | array | groups | select | string | pattern
    default: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "type": self.type,
            "default": copy.deepcopy(self.default),
        }


@dataclass(frozen=True)
class RuleDefinition:
    kind: RuleKind
    label: str
    description: str
    schema_type: str  # number | range | tags | metafields | regex | flag
    fields: Tuple[FieldSpec, ...] = ()
    default_severity: str = "medium"

    def defaults(self) -> Dict[str, Any]:
        return {f.key: copy.deepcopy(f.default) for f in self.fields}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "label": self.label,
            "description": self.description,
            "schema_type": self.schema_type,
            "fields": [f.to_dict() for f in self.fields],
            "default_severity": self.default_severity,
        }


RULE_DEFINITIONS: Dict[RuleKind, RuleDefinition] = {
    RuleKind.MIN_IMAGES: RuleDefinition(
        kind=RuleKind.MIN_IMAGES,
        label="Minimum Images",
        description="Products must have at least this many images",
        schema_type="number",
        fields=(FieldSpec("min", "Minimum count", "number", 6),),
    ),
    RuleKind.MAX_IMAGES: RuleDefinition(
        kind=RuleKind.MAX_IMAGES,
        label="Maximum Images",
        description="Products should not exceed this many images",
        schema_type="number",
        fields=(FieldSpec("max", "Maximum count", "number", 20),),
        default_severity="low",
    ),
    RuleKind.MIN_DESCRIPTION_LENGTH: RuleDefinition(
        kind=RuleKind.MIN_DESCRIPTION_LENGTH,
        label="Minimum Description Length",
        description="Product descriptions must be at least this long",
        schema_type="number",
        fields=(FieldSpec("min", "Minimum characters", "number", 100),),
    ),
    RuleKind.MAX_DESCRIPTION_LENGTH: RuleDefinition(
        kind=RuleKind.MAX_DESCRIPTION_LENGTH,
        label="Maximum Description Length",
        description="Product descriptions should not exceed this length",
        schema_type="number",
        fields=(FieldSpec("max", "Maximum characters", "number", 5000),),
        default_severity="low",
    ),
    RuleKind.MIN_TITLE_LENGTH: RuleDefinition(
        kind=RuleKind.MIN_TITLE_LENGTH,
        label="Minimum Title Length",
        description="Product titles must be at least this long",
        schema_type="number",
        fields=(FieldSpec("min", "Minimum characters", "number", 10),),
    ),
    RuleKind.MAX_TITLE_LENGTH: RuleDefinition(
        kind=RuleKind.MAX_TITLE_LENGTH,
        label="Maximum Title Length",
        description="Product titles should not exceed this length",
        schema_type="number",
        fields=(FieldSpec("max", "Maximum characters", "number", 100),),
        default_severity="low",
    ),
    RuleKind.SEO_TITLE_LENGTH: RuleDefinition(
        kind=RuleKind.SEO_TITLE_LENGTH,
        label="SEO Title Length Range",
        description="SEO titles should be within this character range",
        schema_type="range",
        fields=(
            FieldSpec("min", "Minimum", "number", 40),
            FieldSpec("max", "Maximum", "number", 60),
        ),
        default_severity="high",
    ),
    RuleKind.SEO_DESCRIPTION_LENGTH: RuleDefinition(
        kind=RuleKind.SEO_DESCRIPTION_LENGTH,
        label="SEO Description Length Range",
        description="Meta descriptions should be within this character range",
        schema_type="range",
        fields=(
            FieldSpec("min", "Minimum", "number", 120),
            FieldSpec("max", "Maximum", "number", 160),
        ),
        default_severity="high",
    ),
    RuleKind.REQUIRED_TAGS: RuleDefinition(
        kind=RuleKind.REQUIRED_TAGS,
        label="Required Tags",
        description="Products must include all of these tags",
        schema_type="tags",
        fields=(FieldSpec("tags", "Required tags", "array", []),),
    ),
    RuleKind.TAG_GROUP: RuleDefinition(
        kind=RuleKind.TAG_GROUP,
        label="Tag Group (At Least One)",
        description="Products must have at least one tag from each group",
        schema_type="tags",
        fields=(FieldSpec("groups", "Tag groups", "groups", []),),
    ),
    RuleKind.REQUIRED_METAFIELDS: RuleDefinition(
        kind=RuleKind.REQUIRED_METAFIELDS,
        label="Required Metafields",
        description="Products must have these metafields populated",
        schema_type="metafields",
        fields=(FieldSpec("metafields", "Required metafields", "array", []),),
    ),
    RuleKind.ALT_TEXT_REQUIRED: RuleDefinition(
        kind=RuleKind.ALT_TEXT_REQUIRED,
        label="Alt Text Required",
        description="All product images must have alt text",
        schema_type="flag",
        default_severity="high",
    ),
    RuleKind.COLLECTION_REQUIRED: RuleDefinition(
        kind=RuleKind.COLLECTION_REQUIRED,
        label="Collection Required",
        description="Products must belong to at least one collection",
        schema_type="flag",
        default_severity="low",
    ),
    RuleKind.CUSTOM_REGEX: RuleDefinition(
        kind=RuleKind.CUSTOM_REGEX,
        label="Custom Regex Pattern",
        description="Product field must match a custom regex pattern",
        schema_type="regex",
        fields=(
            FieldSpec("field", "Target field", "select", "title"),
            FieldSpec("pattern", "Regex pattern", "pattern", ""),
            FieldSpec("message", "Error message", "string", "Pattern not matched"),
        ),
    ),
}


def parse_rule_kind(rule_kind: Any) -> RuleKind:
    """Return the RuleKind for a string, raising RuleConfigError if unknown."""
    if isinstance(rule_kind, RuleKind):
        return rule_kind
    try:
        return RuleKind(rule_kind)
    except ValueError:
        raise RuleConfigError(f"Unknown rule kind: {rule_kind}", rule_kind=str(rule_kind))


def get_rule_definition(rule_kind: Any) -> RuleDefinition:
    return RULE_DEFINITIONS[parse_rule_kind(rule_kind)]


def list_rule_definitions() -> List[Dict[str, Any]]:
    """Definitions in catalog order, for the rule builder UI."""
    return [RULE_DEFINITIONS[kind].to_dict() for kind in RuleKind]


# =============================================================================
# Configuration validation
# =============================================================================

def _validate_number(kind: RuleKind, key: str, value: Any) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuleConfigError(f"'{key}' must be a number", rule_kind=kind.value, field=key)
    if isinstance(value, float) and not value.is_integer():
        raise RuleConfigError(f"'{key}' must be a whole number", rule_kind=kind.value, field=key)
    if value < 0:
        raise RuleConfigError(f"'{key}' must not be negative", rule_kind=kind.value, field=key)
    return int(value)


def _validate_string_list(kind: RuleKind, key: str, value: Any) -> List[str]:
    if not isinstance(value, list):
        raise RuleConfigError(f"'{key}' must be a list of strings", rule_kind=kind.value, field=key)
    cleaned = []
    for item in value:
        if not isinstance(item, str):
            raise RuleConfigError(f"'{key}' must be a list of strings", rule_kind=kind.value, field=key)
        item = item.strip()
        if item:
            cleaned.append(item)
    return cleaned


def _validate_groups(kind: RuleKind, key: str, value: Any) -> List[List[str]]:
    if not isinstance(value, list):
        raise RuleConfigError(f"'{key}' must be a list of tag lists", rule_kind=kind.value, field=key)
    groups = []
    for group in value:
        tags = _validate_string_list(kind, key, group)
        if not tags:
            raise RuleConfigError(f"'{key}' must not contain empty groups", rule_kind=kind.value, field=key)
        groups.append(tags)
    return groups


def _validate_field(kind: RuleKind, spec: FieldSpec, value: Any) -> Any:
    if spec.type == "number":
        return _validate_number(kind, spec.key, value)
    if spec.type == "array":
        return _validate_string_list(kind, spec.key, value)
    if spec.type == "groups":
        return _validate_groups(kind, spec.key, value)
    if spec.type == "select":
        if value not in REGEX_TARGET_FIELDS:
            raise RuleConfigError(
                f"'{spec.key}' must be one of {', '.join(REGEX_TARGET_FIELDS)}",
                rule_kind=kind.value,
                field=spec.key,
            )
        return value
    if spec.type == "pattern":
        if not isinstance(value, str) or not value:
            raise RuleConfigError(f"'{spec.key}' must be a non-empty pattern", rule_kind=kind.value, field=spec.key)
        try:
            re.compile(value)
        except re.error as e:
            raise RuleConfigError(f"Invalid regex pattern: {e}", rule_kind=kind.value, field=spec.key)
        return value
    if not isinstance(value, str):
        raise RuleConfigError(f"'{spec.key}' must be a string", rule_kind=kind.value, field=spec.key)
    return value


def normalize_configuration(rule_kind: Any, configuration: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Validate a rule configuration and fill in catalog defaults.

    Args:
        rule_kind: RuleKind or its string value
        configuration: Raw configuration from the caller (None means empty)

    Returns:
        New dict containing exactly the kind's configuration keys

    Raises:
        RuleConfigError: unknown kind, unknown key, wrong type or empty range
    """
    definition = get_rule_definition(rule_kind)
    kind = definition.kind
    configuration = configuration or {}

    if not isinstance(configuration, dict):
        raise RuleConfigError("Configuration must be an object", rule_kind=kind.value)

    known = {f.key for f in definition.fields}
    unknown = sorted(set(configuration) - known)
    if unknown:
        raise RuleConfigError(
            f"Unknown configuration keys for {kind.value}: {', '.join(unknown)}",
            rule_kind=kind.value,
            field=unknown[0],
        )

    normalized = definition.defaults()
    for spec in definition.fields:
        if configuration.get(spec.key) is not None:
            normalized[spec.key] = _validate_field(kind, spec, configuration[spec.key])

    if kind == RuleKind.CUSTOM_REGEX and not normalized["pattern"]:
        raise RuleConfigError("'pattern' is required", rule_kind=kind.value, field="pattern")

    if definition.schema_type == "range" and normalized["min"] > normalized["max"]:
        raise RuleConfigError("'min' must not exceed 'max'", rule_kind=kind.value, field="min")

    return normalized
