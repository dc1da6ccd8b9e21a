"""
Reconciliation 라우트

부호 오류 탐지/정정 실행 API (admin 이상)
"""

from fastapi import APIRouter, Depends

from core.ledger.service import LedgerService
from core.types import Principal
from web.dependencies import get_ledger_service, get_principal
from web.models.requests import ReconciliationRequest
from web.models.responses import ReconciliationResponse

router = APIRouter(prefix="/api/reconciliation", tags=["Reconciliation"])


@router.post("/run", response_model=ReconciliationResponse)
async def run_reconciliation(
    request: ReconciliationRequest,
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_ledger_service),
) -> ReconciliationResponse:
    """부호 정정 실행

    dry_run=True(기본)면 계획만 반환하고 쓰기 없음.
    expected_total 지정 시 정정 후 합계가 다르면 409.
    """
    report = await service.run_reconciliation(
        principal,
        request.issuer_id,
        security_id=request.security_id,
        dry_run=request.dry_run,
        expected_total=request.expected_total,
    )
    return ReconciliationResponse(**report.to_dict())
