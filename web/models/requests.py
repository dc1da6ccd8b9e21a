"""
요청 스키마 (Pydantic)

Web API 요청 데이터 검증.
수량/비율의 의미 검증(부호, 정밀도)은 원장 서비스가 수행.
"""

from typing import Any

from pydantic import BaseModel, Field


class IssuerCreateRequest(BaseModel):
    """발행사 생성 요청 (pending 상태로 생성)"""

    name: str = Field(..., description="발행사 이름")
    issuer_id: str | None = Field(default=None, description="발행사 ID (None이면 자동 생성)")


class IssuerStatusRequest(BaseModel):
    """발행사 상태 변경 요청"""

    status: str = Field(..., description="새 상태 (pending/active/suspended)")
    reason: str | None = Field(default=None, description="변경 사유")


class SecurityCreateRequest(BaseModel):
    """증권 등록 요청"""

    cusip: str = Field(..., description="CUSIP")
    security_class: str = Field(..., description="증권 종류 (common/unit/class_a/warrant/right/preferred)")
    name: str | None = Field(default=None, description="증권 이름")


class ShareholderCreateRequest(BaseModel):
    """주주 등록 요청"""

    account_number: str = Field(..., description="계좌번호 (발행사 내 유일)")
    name: str = Field(..., description="주주 이름")
    external_id: str | None = Field(default=None, description="외부 시스템 ID")


class TransactionEntry(BaseModel):
    """거래 항목 (일괄 입력용)

    필수 항목 누락도 원장 서비스가 항목별 ValidationError로 보고하므로
    여기서는 모두 선택 항목으로 받는다.
    """

    shareholder_id: str | None = Field(default=None, description="주주 ID")
    security_id: str | None = Field(default=None, description="증권 ID")
    category: str | None = Field(default=None, description="거래 카테고리 (IPO, DWAC Withdrawal 등)")
    quantity: int | float | str | None = Field(default=None, description="수량 (크기만, 부호는 카테고리로 결정)")
    transaction_date: str | None = Field(default=None, description="거래일 (YYYY-MM-DD)")
    explicit_direction: str | None = Field(
        default=None,
        description="방향 명시 (Conversion/Correction은 필수)",
    )
    note: str | None = Field(default=None, description="메모")
    submission_id: str | None = Field(default=None, description="제출 ID (재시도 식별)")


class TransactionCreateRequest(TransactionEntry):
    """거래 입력 요청"""

    issuer_id: str = Field(..., description="발행사 ID")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "issuer_id": "issuer-1",
                    "shareholder_id": "holder-1",
                    "security_id": "sec-units",
                    "category": "IPO",
                    "quantity": 7906132,
                    "transaction_date": "2024-01-02",
                },
                {
                    "issuer_id": "issuer-1",
                    "shareholder_id": "holder-1",
                    "security_id": "sec-units",
                    "category": "DWAC Withdrawal",
                    "quantity": 20000,
                    "transaction_date": "2024-03-01",
                    "submission_id": "batch-2024-03-01-001",
                },
            ]
        }
    }


class BulkTransactionRequest(BaseModel):
    """거래 일괄 입력 요청 (항목별 결과 반환)"""

    issuer_id: str = Field(..., description="발행사 ID")
    entries: list[TransactionEntry] = Field(..., description="거래 항목 목록")


class VoidRequest(BaseModel):
    """거래 void 요청"""

    reason: str = Field(..., description="void 사유")


class CorporateActionRequest(BaseModel):
    """Corporate action 등록 요청"""

    issuer_id: str = Field(..., description="발행사 ID")
    category: str = Field(..., description="카테고리 (separation/split/reverse_split)")
    ratios: dict[str, Any] = Field(..., description="증권 종류별 비율 (소수점 1자리까지)")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "issuer_id": "issuer-1",
                    "category": "separation",
                    "ratios": {"class_a": "1", "right": "0.1"},
                },
            ]
        }
    }


class ReconciliationRequest(BaseModel):
    """부호 정정 실행 요청"""

    issuer_id: str = Field(..., description="발행사 ID")
    security_id: str | None = Field(default=None, description="특정 증권만")
    dry_run: bool = Field(default=True, description="True면 계획만 반환 (쓰기 없음)")
    expected_total: int | None = Field(
        default=None,
        description="정정 후 기대 합계 (security_id 필수)",
    )


class RestrictionRequest(BaseModel):
    """제한 수량 설정 요청"""

    shareholder_id: str = Field(..., description="주주 ID")
    security_id: str = Field(..., description="증권 ID")
    quantity: int | float | str = Field(..., description="제한 수량 (현재 포지션 이하)")
    restriction_code: str | None = Field(default=None, description="제한 코드")
    legend: str | None = Field(default=None, description="Legend 문구")
