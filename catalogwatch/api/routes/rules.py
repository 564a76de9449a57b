"""
Custom catalog rule routes.

Everything except the definitions listing requires a plan that includes
custom rules; denials are 403 with the gate result as detail.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from catalogwatch.api.dependencies import require_custom_rules
from catalogwatch.api.schemas.rules import (
    ApplyTemplateRequest,
    CreateRuleRequest,
    RuleDefinitionsResponse,
    RuleListResponse,
    RuleResponse,
    ToggleRuleRequest,
    UpdateRuleRequest,
)
from catalogwatch.database.session import get_db_session
from catalogwatch.exceptions import RuleConfigError, UnknownTemplateError
from catalogwatch.rules.catalog import list_rule_definitions
from catalogwatch.rules.templates import list_templates
from catalogwatch.services.catalog_rules_service import CatalogRulesService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rules", tags=["rules"])


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found")


@router.get("/definitions", response_model=RuleDefinitionsResponse)
def get_rule_definitions():
    """Rule kinds with their configuration schema, plus the rule templates."""
    return RuleDefinitionsResponse(definitions=list_rule_definitions(), templates=list_templates())


@router.get("", response_model=RuleListResponse)
def list_rules(
    shop_domain: str = Depends(require_custom_rules),
    db: Session = Depends(get_db_session),
):
    service = CatalogRulesService(db)
    summary = service.get_rule_violation_summary(shop_domain)
    rules = [RuleResponse.model_validate(r) for r in service.list_rules(shop_domain)]
    return RuleListResponse(rules=rules, **summary)


@router.post("", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
def create_rule(
    body: CreateRuleRequest,
    shop_domain: str = Depends(require_custom_rules),
    db: Session = Depends(get_db_session),
):
    try:
        rule = CatalogRulesService(db).create_rule(
            shop_domain,
            name=body.name,
            rule_kind=body.rule_kind,
            configuration=body.configuration,
            severity=body.severity.value if body.severity else None,
            description=body.description,
            is_enabled=body.is_enabled,
            applies_to_all=body.applies_to_all,
            product_filter=body.product_filter,
        )
    except RuleConfigError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict())
    if rule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shop not found")
    return rule


@router.get("/{rule_id}", response_model=RuleResponse)
def get_rule(
    rule_id: str,
    shop_domain: str = Depends(require_custom_rules),
    db: Session = Depends(get_db_session),
):
    rule = CatalogRulesService(db).get_rule(shop_domain, rule_id)
    if not rule:
        raise _not_found()
    return rule


@router.patch("/{rule_id}", response_model=RuleResponse)
def update_rule(
    rule_id: str,
    body: UpdateRuleRequest,
    shop_domain: str = Depends(require_custom_rules),
    db: Session = Depends(get_db_session),
):
    updates = body.model_dump(exclude_unset=True)
    if updates.get("severity") is not None:
        updates["severity"] = updates["severity"].value
    try:
        rule = CatalogRulesService(db).update_rule(shop_domain, rule_id, updates)
    except RuleConfigError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict())
    if not rule:
        raise _not_found()
    return rule


@router.post("/{rule_id}/toggle", response_model=RuleResponse)
def toggle_rule(
    rule_id: str,
    body: ToggleRuleRequest,
    shop_domain: str = Depends(require_custom_rules),
    db: Session = Depends(get_db_session),
):
    rule = CatalogRulesService(db).toggle_rule(shop_domain, rule_id, body.enabled)
    if not rule:
        raise _not_found()
    return rule


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: str,
    shop_domain: str = Depends(require_custom_rules),
    db: Session = Depends(get_db_session),
):
    if not CatalogRulesService(db).delete_rule(shop_domain, rule_id):
        raise _not_found()


@router.post("/templates", response_model=RuleListResponse, status_code=status.HTTP_201_CREATED)
def apply_template(
    body: ApplyTemplateRequest,
    shop_domain: str = Depends(require_custom_rules),
    db: Session = Depends(get_db_session),
):
    """Create the template's rules. The response lists only the new rules."""
    service = CatalogRulesService(db)
    try:
        created = service.apply_template(shop_domain, body.template_key)
    except UnknownTemplateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    summary = service.get_rule_violation_summary(shop_domain)
    return RuleListResponse(rules=[RuleResponse.model_validate(r) for r in created], **summary)
