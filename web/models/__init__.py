"""
Web 모델 패키지

Pydantic 스키마 정의
"""

from web.models.requests import (
    BulkTransactionRequest,
    CorporateActionRequest,
    IssuerCreateRequest,
    IssuerStatusRequest,
    ReconciliationRequest,
    RestrictionRequest,
    SecurityCreateRequest,
    ShareholderCreateRequest,
    TransactionCreateRequest,
    TransactionEntry,
    VoidRequest,
)
from web.models.responses import (
    BulkEntryResponse,
    BulkIngestResponse,
    CorporateActionResponse,
    DerivedQuantityResponse,
    ErrorResponse,
    HealthResponse,
    HoldersResponse,
    IssuerResponse,
    PositionResponse,
    ReconciliationResponse,
    RestrictionResponse,
    SecurityResponse,
    ShareholderResponse,
    TransactionResponse,
)

__all__ = [
    # Requests
    "BulkTransactionRequest",
    "CorporateActionRequest",
    "IssuerCreateRequest",
    "IssuerStatusRequest",
    "ReconciliationRequest",
    "RestrictionRequest",
    "SecurityCreateRequest",
    "ShareholderCreateRequest",
    "TransactionCreateRequest",
    "TransactionEntry",
    "VoidRequest",
    # Responses
    "BulkEntryResponse",
    "BulkIngestResponse",
    "CorporateActionResponse",
    "DerivedQuantityResponse",
    "ErrorResponse",
    "HealthResponse",
    "HoldersResponse",
    "IssuerResponse",
    "PositionResponse",
    "ReconciliationResponse",
    "RestrictionResponse",
    "SecurityResponse",
    "ShareholderResponse",
    "TransactionResponse",
]
