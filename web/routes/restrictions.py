"""
Restriction 라우트

제한 주식 설정 및 조회 API
"""

from fastapi import APIRouter, Depends, Path, Query

from core.ledger.service import LedgerService
from core.types import Principal
from web.dependencies import get_ledger_service, get_principal, get_read_service
from web.models.requests import RestrictionRequest
from web.models.responses import RestrictionResponse

router = APIRouter(prefix="/api/restrictions", tags=["Restrictions"])


@router.post("", response_model=RestrictionResponse)
async def set_restriction(
    request: RestrictionRequest,
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_ledger_service),
) -> RestrictionResponse:
    """제한 수량 설정 (현재 포지션 초과 시 400)"""
    restriction = await service.set_restriction(
        principal,
        request.shareholder_id,
        request.security_id,
        request.quantity,
        restriction_code=request.restriction_code,
        legend=request.legend,
    )
    return RestrictionResponse(**restriction.to_dict())


@router.get("/{issuer_id}", response_model=list[RestrictionResponse])
async def list_restrictions(
    issuer_id: str = Path(..., description="발행사 ID"),
    needs_review: bool | None = Query(default=None, description="검토 필요 항목만"),
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_read_service),
) -> list[RestrictionResponse]:
    """제한 주식 목록 + 현재 포지션"""
    holdings = await service.list_restrictions(principal, issuer_id, needs_review=needs_review)
    return [RestrictionResponse(**h.to_dict()) for h in holdings]
