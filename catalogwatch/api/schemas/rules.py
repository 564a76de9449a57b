"""
Request/response schemas for the custom rules API.

Configuration is validated by the rule catalog in the service layer, not
here; these models only check shape.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from catalogwatch.models.catalog_rule import Severity


# =============================================================================
# Request Models
# =============================================================================

class CreateRuleRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    rule_kind: str = Field(..., description="Rule kind from /api/rules/definitions")
    configuration: Dict[str, Any] = Field(default_factory=dict)
    severity: Optional[Severity] = Field(None, description="Defaults to the kind's default severity")
    description: Optional[str] = None
    is_enabled: bool = True
    applies_to_all: bool = True
    product_filter: Optional[Dict[str, Any]] = None


class UpdateRuleRequest(BaseModel):
    """Partial update; only fields that are set are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    rule_kind: Optional[str] = None
    configuration: Optional[Dict[str, Any]] = None
    severity: Optional[Severity] = None
    description: Optional[str] = None
    is_enabled: Optional[bool] = None
    applies_to_all: Optional[bool] = None
    product_filter: Optional[Dict[str, Any]] = None


class ToggleRuleRequest(BaseModel):
    enabled: bool


class ApplyTemplateRequest(BaseModel):
    template_key: str = Field(..., min_length=1)


# =============================================================================
# Response Models
# =============================================================================

class RuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    shop_id: str
    name: str
    description: Optional[str] = None
    rule_kind: str
    configuration: Dict[str, Any]
    severity: str
    is_enabled: bool
    applies_to_all: bool
    product_filter: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime


class RuleListResponse(BaseModel):
    rules: List[RuleResponse]
    total_rules: int
    enabled_rules: int
    violations: int


class RuleDefinitionsResponse(BaseModel):
    definitions: List[Dict[str, Any]]
    templates: List[Dict[str, Any]]
