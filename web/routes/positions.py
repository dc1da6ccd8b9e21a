"""
포지션 라우트

주주별 포지션 조회 및 보유자 현황 API.
현재 포지션 조회는 캐시 불일치 시 복구 쓰기가 있으므로 쓰기 가능 DB 사용.
보유자 현황은 원장에서 재계산만 하므로 읽기 전용 DB 사용.
"""

from datetime import date

from fastapi import APIRouter, Depends, Path, Query

from core.ledger.service import LedgerService
from core.types import Principal
from web.dependencies import get_ledger_service, get_principal, get_read_service
from web.models.responses import HoldersResponse, PositionResponse

router = APIRouter(prefix="/api/positions", tags=["Positions"])


@router.get("/{issuer_id}/{shareholder_id}/{security_id}", response_model=PositionResponse)
async def get_position(
    issuer_id: str = Path(..., description="발행사 ID"),
    shareholder_id: str = Path(..., description="주주 ID"),
    security_id: str = Path(..., description="증권 ID"),
    as_of: date | None = Query(default=None, description="기준일 (해당일 포함)"),
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_ledger_service),
) -> PositionResponse:
    """포지션 조회 (0 이상)"""
    balance = await service.get_position_balance(
        principal,
        issuer_id,
        shareholder_id,
        security_id,
        as_of=as_of,
    )
    return PositionResponse(**balance.to_display())


@router.get("/{issuer_id}", response_model=HoldersResponse)
async def get_holders(
    issuer_id: str = Path(..., description="발행사 ID"),
    security_id: str | None = Query(default=None, description="증권 ID"),
    as_of: date | None = Query(default=None, description="기준일 (해당일 포함)"),
    include_zero: bool = Query(default=False, description="보유 수량 0 포함"),
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_read_service),
) -> HoldersResponse:
    """보유자 현황"""
    holders = await service.get_holders(
        principal,
        issuer_id,
        security_id=security_id,
        as_of=as_of,
        include_zero=include_zero,
    )
    return HoldersResponse(
        issuer_id=issuer_id,
        security_id=security_id,
        as_of=as_of.isoformat() if as_of else None,
        total=sum(h.display_total for h in holders),
        holders=[PositionResponse(**h.to_display()) for h in holders],
    )
