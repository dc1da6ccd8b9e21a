"""
응답 스키마 (Pydantic)

Web API 응답 데이터 직렬화
"""

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """헬스 체크 응답"""

    status: str = Field(default="ok", description="서비스 상태")
    mode: str = Field(..., description="배포 모드 (production/sandbox)")
    version: str = Field(..., description="애플리케이션 버전")


class ErrorResponse(BaseModel):
    """오류 응답

    admin 미만 호출자에게는 일반 메시지만 전달.
    """

    kind: str = Field(..., description="오류 종류 (validation/not_found/authorization/consistency/transient)")
    message: str = Field(..., description="오류 메시지")
    retryable: bool = Field(default=False, description="재시도 가능 여부")
    detail: dict[str, Any] | None = Field(default=None, description="상세 정보")


class IssuerResponse(BaseModel):
    """발행사 응답"""

    issuer_id: str = Field(..., description="발행사 ID")
    name: str = Field(..., description="발행사 이름")
    status: str = Field(..., description="상태")
    created_by: str = Field(..., description="생성자")
    created_at: str = Field(..., description="생성 시간")
    updated_at: str = Field(..., description="마지막 변경 시간")


class SecurityResponse(BaseModel):
    """증권 응답"""

    security_id: str = Field(..., description="증권 ID")
    issuer_id: str = Field(..., description="발행사 ID")
    cusip: str = Field(..., description="CUSIP")
    security_class: str = Field(..., description="증권 종류")
    name: str | None = Field(default=None, description="증권 이름")
    created_at: str = Field(..., description="생성 시간")


class ShareholderResponse(BaseModel):
    """주주 응답"""

    shareholder_id: str = Field(..., description="주주 ID")
    issuer_id: str = Field(..., description="발행사 ID")
    account_number: str = Field(..., description="계좌번호")
    name: str = Field(..., description="주주 이름")
    external_id: str | None = Field(default=None, description="외부 시스템 ID")
    created_at: str = Field(..., description="생성 시간")


class TransactionResponse(BaseModel):
    """거래 응답"""

    transaction_id: str = Field(..., description="거래 ID")
    issuer_id: str = Field(..., description="발행사 ID")
    shareholder_id: str = Field(..., description="주주 ID")
    security_id: str = Field(..., description="증권 ID")
    category: str = Field(..., description="카테고리")
    quantity: int = Field(..., description="수량 (크기)")
    signed_quantity: int = Field(..., description="부호 적용 수량")
    direction: str = Field(..., description="방향 (CREDIT/DEBIT)")
    explicit_direction: str | None = Field(default=None, description="명시된 방향")
    transaction_date: str = Field(..., description="거래일")
    note: str | None = Field(default=None, description="메모")
    status: str = Field(..., description="상태 (active/void)")
    source: str = Field(..., description="입력 경로")
    corrects_transaction_id: str | None = Field(default=None, description="정정 대상 거래 ID")
    created_by: str = Field(..., description="입력자")
    created_at: str | None = Field(default=None, description="입력 시간")
    seq: int | None = Field(default=None, description="생성 순서")


class BulkEntryResponse(BaseModel):
    """일괄 입력 항목 결과"""

    index: int = Field(..., description="입력 순서")
    ok: bool = Field(..., description="성공 여부")
    transaction_id: str | None = Field(default=None, description="거래 ID")
    created: bool = Field(default=False, description="신규 생성 여부 (False면 재시도)")
    error: dict[str, Any] | None = Field(default=None, description="실패 사유")


class BulkIngestResponse(BaseModel):
    """일괄 입력 결과"""

    total: int = Field(..., description="전체 항목 수")
    succeeded: int = Field(..., description="성공 수")
    failed: int = Field(..., description="실패 수")
    results: list[BulkEntryResponse] = Field(default_factory=list, description="항목별 결과")


class PositionResponse(BaseModel):
    """포지션 응답 (0 이상)"""

    issuer_id: str = Field(..., description="발행사 ID")
    shareholder_id: str = Field(..., description="주주 ID")
    security_id: str = Field(..., description="증권 ID")
    quantity: int = Field(..., description="보유 수량")
    as_of: str | None = Field(default=None, description="기준일 (None이면 현재)")


class HoldersResponse(BaseModel):
    """보유자 현황 응답"""

    issuer_id: str = Field(..., description="발행사 ID")
    security_id: str | None = Field(default=None, description="증권 ID")
    as_of: str | None = Field(default=None, description="기준일")
    total: int = Field(..., description="보유 수량 합계")
    holders: list[PositionResponse] = Field(default_factory=list, description="보유자 목록")


class CorporateActionResponse(BaseModel):
    """Corporate action 응답"""

    action_id: str = Field(..., description="ID")
    issuer_id: str = Field(..., description="발행사 ID")
    category: str = Field(..., description="카테고리")
    ratios: dict[str, str] = Field(..., description="증권 종류별 비율")
    version: int = Field(..., description="버전")
    updated_by: str = Field(..., description="마지막 변경자")
    updated_at: str | None = Field(default=None, description="마지막 변경 시간")


class DerivedQuantityResponse(BaseModel):
    """파생 수량 응답"""

    security_class: str = Field(..., description="증권 종류")
    ratio: str = Field(..., description="비율")
    base_units: int = Field(..., description="기준 Units 수량")
    exact: str = Field(..., description="계산 값 (소수 포함)")
    quantity: int = Field(..., description="파생 수량 (내림)")
    remainder: str = Field(..., description="내림으로 버려진 소수")


class ReconciliationResponse(BaseModel):
    """부호 정정 보고서"""

    run_id: str = Field(..., description="실행 ID")
    issuer_id: str = Field(..., description="발행사 ID")
    security_id: str | None = Field(default=None, description="증권 ID")
    strategy: str = Field(..., description="정정 방식")
    dry_run: bool = Field(..., description="Dry run 여부")
    anomaly_count: int = Field(..., description="이상 거래 수")
    anomalies: list[dict[str, Any]] = Field(default_factory=list, description="이상 거래 목록")
    affected_transaction_ids: list[str] = Field(default_factory=list, description="대상 거래 ID")
    unclassifiable: list[str] = Field(default_factory=list, description="분류 불가 거래 ID")
    security_totals: dict[str, dict[str, int]] = Field(default_factory=dict, description="증권별 합계")
    old_total: int = Field(..., description="정정 전 합계")
    projected_total: int = Field(..., description="정정 후 예상 합계")
    new_total: int | None = Field(default=None, description="정정 후 실제 합계")
    expected_total: int | None = Field(default=None, description="기대 합계")
    writes: int = Field(..., description="쓰기 수")
    verified: bool = Field(..., description="검증 통과 여부")


class RestrictionResponse(BaseModel):
    """제한 주식 응답"""

    restriction_id: str = Field(..., description="ID")
    issuer_id: str = Field(..., description="발행사 ID")
    shareholder_id: str = Field(..., description="주주 ID")
    security_id: str = Field(..., description="증권 ID")
    restricted_quantity: int = Field(..., description="제한 수량")
    restriction_code: str | None = Field(default=None, description="제한 코드")
    legend: str | None = Field(default=None, description="Legend 문구")
    needs_review: bool = Field(..., description="검토 필요 (포지션이 제한 수량 미만)")
    created_by: str = Field(..., description="생성자")
    updated_at: str | None = Field(default=None, description="마지막 변경 시간")
    position: int | None = Field(default=None, description="현재 포지션")
    unrestricted: int | None = Field(default=None, description="자유 거래 가능 수량")
