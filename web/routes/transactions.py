"""
거래 라우트

거래 입력, 일괄 입력, 이체 원장 조회, void API
"""

from datetime import date

from fastapi import APIRouter, Depends, Path, Query

from core.constants import Defaults
from core.ledger.service import LedgerService
from core.types import Principal, TransactionSource
from web.dependencies import get_ledger_service, get_principal, get_read_service
from web.models.requests import BulkTransactionRequest, TransactionCreateRequest, VoidRequest
from web.models.responses import BulkIngestResponse, TransactionResponse

router = APIRouter(prefix="/api/transactions", tags=["Transactions"])


@router.post("", response_model=TransactionResponse, status_code=201)
async def create_transaction(
    request: TransactionCreateRequest,
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_ledger_service),
) -> TransactionResponse:
    """거래 입력

    부호는 category(와 explicit_direction)로 결정되며 quantity는 크기만 사용.
    같은 submission_id로 재시도하면 기존 거래를 반환.
    """
    txn = await service.ingest(
        principal,
        issuer_id=request.issuer_id,
        shareholder_id=request.shareholder_id,
        security_id=request.security_id,
        category=request.category,
        quantity=request.quantity,
        transaction_date=request.transaction_date,
        explicit_direction=request.explicit_direction,
        note=request.note,
        submission_id=request.submission_id,
    )
    return TransactionResponse(**txn.to_dict())


@router.post("/bulk", response_model=BulkIngestResponse)
async def bulk_create_transactions(
    request: BulkTransactionRequest,
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_ledger_service),
) -> BulkIngestResponse:
    """거래 일괄 입력 (항목별 성공/실패 반환)"""
    result = await service.bulk_ingest(
        principal,
        request.issuer_id,
        [entry.model_dump() for entry in request.entries],
        source=TransactionSource.API,
    )
    return BulkIngestResponse(**result.to_dict())


@router.get("")
async def list_transactions(
    issuer_id: str = Query(..., description="발행사 ID"),
    security_id: str | None = Query(default=None, description="증권 ID"),
    shareholder_id: str | None = Query(default=None, description="주주 ID"),
    start_date: date | None = Query(default=None, description="시작일"),
    end_date: date | None = Query(default=None, description="종료일"),
    limit: int = Query(default=Defaults.LIST_LIMIT, ge=1, le=Defaults.LIST_LIMIT_MAX),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_read_service),
):
    """이체 원장 조회 (최신순)"""
    transactions = await service.list_transactions(
        principal,
        issuer_id,
        security_id=security_id,
        shareholder_id=shareholder_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    return {
        "issuer_id": issuer_id,
        "transactions": transactions,
        "limit": limit,
        "offset": offset,
    }


@router.post("/{transaction_id}/void", response_model=list[TransactionResponse])
async def void_transaction(
    request: VoidRequest,
    transaction_id: str = Path(..., description="거래 ID"),
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_ledger_service),
) -> list[TransactionResponse]:
    """거래 void (연결된 정정 거래 포함)"""
    voided = await service.void_transaction(principal, transaction_id, request.reason)
    return [TransactionResponse(**txn.to_dict()) for txn in voided]
