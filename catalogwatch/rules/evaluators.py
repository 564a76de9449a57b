"""
Custom rule evaluators, one per RuleKind.

An evaluator receives the rule's configuration (catalog defaults already
merged in) and the current product snapshot. It returns None when the
product satisfies the rule, or a dict of violation details that becomes
the drift's current_value.

Custom rules are stateless: they only look at the current snapshot.
"""

import logging
import re
from typing import Any, Callable, Dict, Optional

from catalogwatch.exceptions import RuleConfigError
from catalogwatch.rules.catalog import RuleKind, get_rule_definition
from catalogwatch.rules.snapshot import ProductSnapshot, clean_text

logger = logging.getLogger(__name__)

Evaluator = Callable[[Dict[str, Any], ProductSnapshot], Optional[Dict[str, Any]]]

EVALUATORS: Dict[RuleKind, Evaluator] = {}


def evaluator(kind: RuleKind) -> Callable[[Evaluator], Evaluator]:
    """Register a function as the evaluator for a rule kind."""
    def decorator(func: Evaluator) -> Evaluator:
        if kind in EVALUATORS:
            raise RuntimeError(f"Duplicate evaluator for rule kind {kind.value}")
        EVALUATORS[kind] = func
        return func
    return decorator


@evaluator(RuleKind.MIN_IMAGES)
def _min_images(config, snapshot):
    count = snapshot.image_count
    if count < config["min"]:
        return {"count": count, "required": config["min"]}
    return None


@evaluator(RuleKind.MAX_IMAGES)
def _max_images(config, snapshot):
    count = snapshot.image_count
    if count > config["max"]:
        return {"count": count, "max": config["max"]}
    return None


@evaluator(RuleKind.MIN_DESCRIPTION_LENGTH)
def _min_description_length(config, snapshot):
    length = len(clean_text(snapshot.description))
    if length < config["min"]:
        return {"length": length, "required": config["min"]}
    return None


@evaluator(RuleKind.MAX_DESCRIPTION_LENGTH)
def _max_description_length(config, snapshot):
    length = len(clean_text(snapshot.description))
    if length > config["max"]:
        return {"length": length, "max": config["max"]}
    return None


@evaluator(RuleKind.MIN_TITLE_LENGTH)
def _min_title_length(config, snapshot):
    length = len(clean_text(snapshot.title))
    if length < config["min"]:
        return {"length": length, "required": config["min"]}
    return None


@evaluator(RuleKind.MAX_TITLE_LENGTH)
def _max_title_length(config, snapshot):
    length = len(clean_text(snapshot.title))
    if length > config["max"]:
        return {"length": length, "max": config["max"]}
    return None


def _length_range(value: Optional[str], config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    length = len(clean_text(value))
    if length < config["min"] or length > config["max"]:
        return {"length": length, "min": config["min"], "max": config["max"]}
    return None


@evaluator(RuleKind.SEO_TITLE_LENGTH)
def _seo_title_length(config, snapshot):
    return _length_range(snapshot.seo_title, config)


@evaluator(RuleKind.SEO_DESCRIPTION_LENGTH)
def _seo_description_length(config, snapshot):
    return _length_range(snapshot.seo_description, config)


@evaluator(RuleKind.REQUIRED_TAGS)
def _required_tags(config, snapshot):
    current = snapshot.clean_tags
    present = {t.lower() for t in current}
    missing = [t for t in config["tags"] if t.lower() not in present]
    if missing:
        return {"missing": missing, "current": current}
    return None


@evaluator(RuleKind.TAG_GROUP)
def _tag_group(config, snapshot):
    present = {t.lower() for t in snapshot.clean_tags}
    missing_groups = [
        group for group in config["groups"]
        if not any(t.lower() in present for t in group)
    ]
    if missing_groups:
        return {"missing_groups": missing_groups}
    return None


@evaluator(RuleKind.REQUIRED_METAFIELDS)
def _required_metafields(config, snapshot):
    missing = [
        key for key in config["metafields"]
        if not clean_text(snapshot.metafields.get(key))
    ]
    if missing:
        return {"missing": missing}
    return None


@evaluator(RuleKind.ALT_TEXT_REQUIRED)
def _alt_text_required(config, snapshot):
    missing = snapshot.missing_alt_text_count
    if missing > 0:
        return {"missing": missing, "total": snapshot.image_count}
    return None


@evaluator(RuleKind.COLLECTION_REQUIRED)
def _collection_required(config, snapshot):
    if not snapshot.collections:
        return {"has_collection": False}
    return None


@evaluator(RuleKind.CUSTOM_REGEX)
def _custom_regex(config, snapshot):
    pattern = config.get("pattern")
    if not pattern:
        return None
    value = clean_text(getattr(snapshot, config["field"], None))
    try:
        matched = re.search(pattern, value) is not None
    except re.error as e:
        raise RuleConfigError(
            f"Invalid regex pattern: {e}",
            rule_kind=RuleKind.CUSTOM_REGEX.value,
            field="pattern",
        )
    if not matched:
        return {"field": config["field"], "value": value[:200], "message": config["message"]}
    return None


_missing_evaluators = [kind.value for kind in RuleKind if kind not in EVALUATORS]
if _missing_evaluators:
    raise RuntimeError(f"Rule kinds without evaluator: {', '.join(_missing_evaluators)}")


def evaluate_rule(
    rule_kind: Any,
    configuration: Optional[Dict[str, Any]],
    snapshot: ProductSnapshot,
) -> Optional[Dict[str, Any]]:
    """
    Evaluate one custom rule against a snapshot.

    Stored configuration is merged over the kind's defaults, so rules saved
    before a configuration key existed still evaluate.

    Raises:
        RuleConfigError: rule kind not in the catalog, or unusable configuration
    """
    definition = get_rule_definition(rule_kind)
    config = definition.defaults()
    config.update({k: v for k, v in (configuration or {}).items() if v is not None})
    return EVALUATORS[definition.kind](config, snapshot)
