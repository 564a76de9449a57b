"""
Custom rule store: per-shop CRUD over catalog rules and template application.

Configuration is validated against the rule catalog and normalized (defaults
filled in) on every create and update. Unknown shops yield empty results or
None rather than errors.

Usage:
    service = CatalogRulesService(db_session=session)
    rule = service.create_rule(
        "mystore.myshopify.com",
        name="At least 4 images",
        rule_kind="min_images",
        configuration={"min": 4},
        severity="high",
    )
    service.apply_template("mystore.myshopify.com", "seo_optimized")
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalogwatch.exceptions import RuleConfigError
from catalogwatch.models.catalog_rule import CatalogRule, Severity
from catalogwatch.models.compliance_drift import ComplianceDrift, DriftKind
from catalogwatch.repositories.base_repo import get_shop_by_domain
from catalogwatch.repositories.catalog_rules import CatalogRuleRepository
from catalogwatch.rules.catalog import get_rule_definition, normalize_configuration
from catalogwatch.rules.templates import get_template

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = (
    "name",
    "description",
    "rule_kind",
    "configuration",
    "severity",
    "is_enabled",
    "applies_to_all",
    "product_filter",
)


def _validate_severity(severity: Any) -> str:
    try:
        return Severity(severity).value
    except ValueError:
        raise RuleConfigError(f"Invalid severity: {severity}", field="severity")


class CatalogRulesService:
    """CRUD and templates for merchant catalog rules."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def _repo(self, shop_domain: str) -> Optional[CatalogRuleRepository]:
        shop = get_shop_by_domain(self.db, shop_domain)
        if not shop:
            return None
        return CatalogRuleRepository(self.db, shop.id)

    def list_rules(self, shop_domain: str) -> List[CatalogRule]:
        """All rules of a shop, newest first."""
        repo = self._repo(shop_domain)
        if not repo:
            return []
        return repo.list_newest_first()

    def get_rule(self, shop_domain: str, rule_id: str) -> Optional[CatalogRule]:
        repo = self._repo(shop_domain)
        if not repo:
            return None
        return repo.get_by_id(rule_id)

    def create_rule(
        self,
        shop_domain: str,
        name: str,
        rule_kind: str,
        configuration: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
        description: Optional[str] = None,
        is_enabled: bool = True,
        applies_to_all: bool = True,
        product_filter: Optional[Dict[str, Any]] = None,
    ) -> Optional[CatalogRule]:
        """
        Create a rule for a shop.

        Severity defaults to the catalog's default severity for the kind.

        Returns:
            Created rule, or None for an unknown shop

        Raises:
            RuleConfigError: Unknown kind, invalid configuration or severity
        """
        definition = get_rule_definition(rule_kind)
        normalized = normalize_configuration(definition.kind, configuration)
        severity = _validate_severity(severity or definition.default_severity)

        name = (name or "").strip()
        if not name:
            raise RuleConfigError("Rule name is required", rule_kind=definition.kind.value, field="name")

        repo = self._repo(shop_domain)
        if not repo:
            return None

        return repo.create({
            "name": name,
            "description": description,
            "rule_kind": definition.kind.value,
            "configuration": normalized,
            "severity": severity,
            "is_enabled": is_enabled,
            "applies_to_all": applies_to_all,
            "product_filter": product_filter,
        })

    def update_rule(
        self,
        shop_domain: str,
        rule_id: str,
        updates: Dict[str, Any],
    ) -> Optional[CatalogRule]:
        """
        Partially update a rule.

        When the kind or configuration changes, the resulting configuration is
        re-validated against the (possibly new) kind.

        Returns:
            Updated rule, or None if the shop or rule does not exist
        """
        repo = self._repo(shop_domain)
        if not repo:
            return None
        rule = repo.get_by_id(rule_id)
        if not rule:
            return None

        unknown = sorted(set(updates) - set(_UPDATABLE_FIELDS))
        if unknown:
            raise RuleConfigError(f"Fields cannot be updated: {', '.join(unknown)}", field=unknown[0])

        changes = dict(updates)
        if "rule_kind" in changes or "configuration" in changes:
            kind = changes.get("rule_kind", rule.rule_kind)
            if "configuration" in changes:
                configuration = changes["configuration"]
            elif "rule_kind" in changes and changes["rule_kind"] != rule.rule_kind:
                # A new kind does not inherit the old kind's configuration
                configuration = {}
            else:
                configuration = rule.configuration
            definition = get_rule_definition(kind)
            changes["rule_kind"] = definition.kind.value
            changes["configuration"] = normalize_configuration(definition.kind, configuration)

        if "severity" in changes:
            changes["severity"] = _validate_severity(changes["severity"])
        if "name" in changes:
            changes["name"] = (changes["name"] or "").strip()
            if not changes["name"]:
                raise RuleConfigError("Rule name is required", field="name")

        return repo.update(rule_id, changes)

    def toggle_rule(self, shop_domain: str, rule_id: str, enabled: bool) -> Optional[CatalogRule]:
        """Enable or disable a rule."""
        repo = self._repo(shop_domain)
        if not repo:
            return None
        return repo.update(rule_id, {"is_enabled": bool(enabled)})

    def delete_rule(self, shop_domain: str, rule_id: str) -> bool:
        """Hard delete. Drifts raised by the rule keep their row with source_rule_id cleared."""
        repo = self._repo(shop_domain)
        if not repo:
            return False
        rule = repo.get_by_id(rule_id)
        if not rule:
            return False

        # SQLite does not enforce ON DELETE SET NULL without the foreign_keys pragma
        self.db.query(ComplianceDrift).filter(
            ComplianceDrift.source_rule_id == rule_id
        ).update({ComplianceDrift.source_rule_id: None}, synchronize_session=False)
        return repo.delete(rule_id)

    def apply_template(self, shop_domain: str, template_key: str) -> List[CatalogRule]:
        """
        Create one enabled, applies-to-all rule per template entry.

        All rules of the template are committed together.

        Raises:
            UnknownTemplateError: If template_key is not a known template
        """
        template = get_template(template_key)

        shop = get_shop_by_domain(self.db, shop_domain)
        if not shop:
            return []

        created = []
        for entry in template.rules:
            definition = get_rule_definition(entry.kind)
            created.append(CatalogRule(
                shop_id=shop.id,
                name=definition.label,
                description=definition.description,
                rule_kind=entry.kind.value,
                configuration=normalize_configuration(entry.kind, entry.configuration),
                severity=entry.severity,
                is_enabled=True,
                applies_to_all=True,
            ))

        try:
            self.db.add_all(created)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to apply rule template",
                extra={"shop_id": shop.id, "template_key": template_key, "error": str(e)},
            )
            raise

        logger.info(
            "Rule template applied",
            extra={"shop_id": shop.id, "template_key": template_key, "rule_count": len(created)},
        )
        return created

    def get_rule_violation_summary(self, shop_domain: str) -> Dict[str, int]:
        """Rule counts plus unresolved custom-rule violations."""
        shop = get_shop_by_domain(self.db, shop_domain)
        if not shop:
            return {"total_rules": 0, "enabled_rules": 0, "violations": 0}

        repo = CatalogRuleRepository(self.db, shop.id)
        violations = (
            self.db.query(ComplianceDrift)
            .filter(
                ComplianceDrift.shop_id == shop.id,
                ComplianceDrift.drift_kind == DriftKind.CUSTOM_RULE_VIOLATED.value,
                ComplianceDrift.is_resolved.is_(False),
            )
            .count()
        )
        return {
            "total_rules": repo.count(),
            "enabled_rules": repo.count_enabled(),
            "violations": violations,
        }
