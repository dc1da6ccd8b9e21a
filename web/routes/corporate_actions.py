"""
Corporate action 라우트

비율 등록/조회와 파생 수량 계산 API
"""

from fastapi import APIRouter, Depends, Path, Query

from core.ledger.service import LedgerService
from core.types import Principal
from web.dependencies import get_ledger_service, get_principal, get_read_service
from web.models.requests import CorporateActionRequest
from web.models.responses import CorporateActionResponse, DerivedQuantityResponse

router = APIRouter(prefix="/api/corporate-actions", tags=["Corporate Actions"])


@router.post("", response_model=CorporateActionResponse)
async def apply_corporate_action(
    request: CorporateActionRequest,
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_ledger_service),
) -> CorporateActionResponse:
    """Corporate action 등록/수정

    발행사 + 카테고리당 하나만 유지되며 재제출 시 버전이 증가.
    비율은 소수점 1자리까지만 허용 (반올림 없이 거부).
    """
    action = await service.apply_corporate_action(
        principal,
        request.issuer_id,
        request.category,
        request.ratios,
    )
    return CorporateActionResponse(**action.to_dict())


@router.get("/{issuer_id}", response_model=list[CorporateActionResponse])
async def list_corporate_actions(
    issuer_id: str = Path(..., description="발행사 ID"),
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_read_service),
) -> list[CorporateActionResponse]:
    """발행사 corporate action 목록"""
    actions = await service.list_corporate_actions(principal, issuer_id)
    return [CorporateActionResponse(**a.to_dict()) for a in actions]


@router.get("/{issuer_id}/{category}/derive", response_model=list[DerivedQuantityResponse])
async def derive_quantities(
    issuer_id: str = Path(..., description="발행사 ID"),
    category: str = Path(..., description="Corporate action 카테고리"),
    units: int = Query(..., ge=0, description="기준 Units 수량"),
    transaction_category: str | None = Query(
        default=None,
        description="거래 카테고리 (지정 시 해당 카테고리의 파생 증권만)",
    ),
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_read_service),
) -> list[DerivedQuantityResponse]:
    """Units 수량 → 파생 증권 수량 (내림 + 나머지 보고)"""
    derived = await service.derive_from_corporate_action(
        principal,
        issuer_id,
        category,
        units,
        transaction_category=transaction_category,
    )
    return [DerivedQuantityResponse(**d.to_dict()) for d in derived]
