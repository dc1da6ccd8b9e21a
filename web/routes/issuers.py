"""
발행사 라우트

발행사 온보딩, 상태 변경, 증권/주주 등록 API
"""

from fastapi import APIRouter, Depends, Path

from core.ledger.service import LedgerService
from core.types import Principal
from web.dependencies import get_ledger_service, get_principal, get_read_service
from web.models.requests import (
    IssuerCreateRequest,
    IssuerStatusRequest,
    SecurityCreateRequest,
    ShareholderCreateRequest,
)
from web.models.responses import IssuerResponse, SecurityResponse, ShareholderResponse

router = APIRouter(prefix="/api/issuers", tags=["Issuers"])


@router.post("", response_model=IssuerResponse, status_code=201)
async def create_issuer(
    request: IssuerCreateRequest,
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_ledger_service),
) -> IssuerResponse:
    """발행사 생성 (pending 상태)"""
    issuer = await service.create_issuer(principal, request.name, issuer_id=request.issuer_id)
    return IssuerResponse(**issuer)


@router.get("/{issuer_id}", response_model=IssuerResponse)
async def get_issuer(
    issuer_id: str = Path(..., description="발행사 ID"),
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_read_service),
) -> IssuerResponse:
    """발행사 조회"""
    issuer = await service.get_issuer(principal, issuer_id)
    return IssuerResponse(**issuer)


@router.post("/{issuer_id}/status", response_model=IssuerResponse)
async def set_issuer_status(
    request: IssuerStatusRequest,
    issuer_id: str = Path(..., description="발행사 ID"),
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_ledger_service),
) -> IssuerResponse:
    """발행사 상태 변경 (superadmin)

    허용 전이: pending → active/suspended, active → suspended, suspended → active
    """
    issuer = await service.set_issuer_status(principal, issuer_id, request.status, reason=request.reason)
    return IssuerResponse(**issuer)


@router.post("/{issuer_id}/securities", response_model=SecurityResponse, status_code=201)
async def add_security(
    request: SecurityCreateRequest,
    issuer_id: str = Path(..., description="발행사 ID"),
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_ledger_service),
) -> SecurityResponse:
    """증권 등록"""
    security = await service.add_security(
        principal,
        issuer_id,
        cusip=request.cusip,
        security_class=request.security_class,
        name=request.name,
    )
    return SecurityResponse(**security)


@router.post("/{issuer_id}/shareholders", response_model=ShareholderResponse, status_code=201)
async def add_shareholder(
    request: ShareholderCreateRequest,
    issuer_id: str = Path(..., description="발행사 ID"),
    principal: Principal = Depends(get_principal),
    service: LedgerService = Depends(get_ledger_service),
) -> ShareholderResponse:
    """주주 등록"""
    shareholder = await service.add_shareholder(
        principal,
        issuer_id,
        account_number=request.account_number,
        name=request.name,
        external_id=request.external_id,
    )
    return ShareholderResponse(**shareholder)
