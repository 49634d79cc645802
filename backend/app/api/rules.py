"""
Rule table API endpoints.

List, add and remove best-practice rules at runtime. Changes apply to the
shared rule table used by every analysis request; they are not written back
to the YAML files.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query

from ..models.analysis import RuleListResponse
from ..models.linting import Dialect
from ..models.rules import RuleDefinition
from ..services.rule_set import RuleDefinitionError
from ..services.shared import enforcer

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=RuleListResponse)
async def list_rules(dialect: Optional[str] = Query(None, description="Only rules for this dialect")):
    if dialect:
        try:
            resolved = Dialect.parse(dialect)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unsupported dialect: {dialect}")
        rules = enforcer.get_rules_for_language(resolved)
    else:
        rules = list(enforcer.rule_set)
    return RuleListResponse(total=len(rules), rules=rules)


@router.post("", response_model=RuleDefinition, status_code=201)
async def add_rule(rule: Dict[str, Any]):
    """
    Register a custom rule (same fields as the YAML rule tables).

    A rule with an existing id replaces the previous definition.
    """
    try:
        return enforcer.add_custom_rule(rule)
    except RuleDefinitionError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{rule_id}")
async def remove_rule(rule_id: str):
    if not enforcer.remove_rule(rule_id):
        raise HTTPException(status_code=404, detail=f"Rule {rule_id} not found")
    return {"rule_id": rule_id, "removed": True}
