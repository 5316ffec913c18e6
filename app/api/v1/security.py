"""WAF and security API endpoints"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_waf_service
from app.core.exceptions import NotFoundError, ValidationError
from app.schemas.waf import (
    FirewallRule,
    FirewallRuleCreate,
    FirewallRuleUpdate,
    InspectRequest,
    InspectResponse,
)
from app.services.waf_service import WAFService

router = APIRouter()


# ==================== Inspection ====================

@router.post("/requests/inspect", response_model=InspectResponse)
async def inspect_request(
    request_data: InspectRequest,
    service: WAFService = Depends(get_waf_service)
):
    """Classify a request and record the decision"""
    return await service.process_request(request_data)


# ==================== WAF Rules ====================

@router.get("/waf/rules", response_model=List[FirewallRule])
async def get_waf_rules(service: WAFService = Depends(get_waf_service)):
    """Get WAF rules in evaluation order"""
    return service.list_rules()


@router.post("/waf/rules", response_model=FirewallRule, status_code=status.HTTP_201_CREATED)
async def create_waf_rule(
    rule_data: FirewallRuleCreate,
    service: WAFService = Depends(get_waf_service)
):
    """Create WAF rule"""
    try:
        return await service.add_rule(rule_data)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.to_dict()
        )


@router.patch("/waf/rules/{rule_id}", response_model=FirewallRule)
async def update_waf_rule(
    rule_id: str,
    rule_data: FirewallRuleUpdate,
    service: WAFService = Depends(get_waf_service)
):
    """Update WAF rule"""
    try:
        return await service.update_rule(rule_id, rule_data)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=e.to_dict()
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.to_dict()
        )


@router.delete("/waf/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_waf_rule(
    rule_id: str,
    service: WAFService = Depends(get_waf_service)
):
    """Delete WAF rule"""
    success = await service.delete_rule(rule_id)
    if not success:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="WAF rule not found"
        )


# ==================== Blocklist ====================

@router.get("/blocklist", response_model=List[str])
async def get_blocklist(service: WAFService = Depends(get_waf_service)):
    """Get blocked source identifiers"""
    return sorted(service.list_blocked())


@router.get("/blocklist/{identifier}")
async def get_block_status(
    identifier: str,
    service: WAFService = Depends(get_waf_service)
):
    """Check whether a source identifier is blocked"""
    return {"identifier": identifier, "blocked": service.is_blocked(identifier)}


@router.put("/blocklist/{identifier}")
async def block_identifier(
    identifier: str,
    service: WAFService = Depends(get_waf_service)
):
    """Block a source identifier"""
    await service.block(identifier)
    return {"identifier": identifier, "blocked": True}


@router.delete("/blocklist/{identifier}")
async def unblock_identifier(
    identifier: str,
    service: WAFService = Depends(get_waf_service)
):
    """Unblock a source identifier"""
    await service.unblock(identifier)
    return {"identifier": identifier, "blocked": False}
