"""
원장 타입 정의

거래 카테고리(닫힌 집합)와 원장에서 사용하는 dataclass 정의
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from core.types import (
    Direction,
    PositionKey,
    SecurityClass,
    TransactionSource,
    TransactionStatus,
)


class TransactionCategory(str, Enum):
    """거래 카테고리 (닫힌 집합)

    Classifier가 아는 카테고리만 원장에 저장될 수 있다.
    str을 상속하여 JSON 직렬화 가능.
    """

    # 유입
    IPO = "IPO"
    DWAC_DEPOSIT = "DWAC Deposit"
    TRANSFER_CREDIT = "Transfer Credit"
    ISSUANCE = "Issuance"

    # 유출
    DWAC_WITHDRAWAL = "DWAC Withdrawal"
    TRANSFER_DEBIT = "Transfer Debit"
    CANCELLATION = "Cancellation"

    # 방향 명시 필요
    CONVERSION = "Conversion"
    CORRECTION = "Correction"


# 카테고리 자체가 유입을 의미
INFLOW_CATEGORIES: frozenset[TransactionCategory] = frozenset({
    TransactionCategory.IPO,
    TransactionCategory.DWAC_DEPOSIT,
    TransactionCategory.TRANSFER_CREDIT,
    TransactionCategory.ISSUANCE,
})

# 카테고리 자체가 유출을 의미
OUTFLOW_CATEGORIES: frozenset[TransactionCategory] = frozenset({
    TransactionCategory.DWAC_WITHDRAWAL,
    TransactionCategory.TRANSFER_DEBIT,
    TransactionCategory.CANCELLATION,
})

# 방향을 명시해야만 분류 가능
DIRECTION_REQUIRED_CATEGORIES: frozenset[TransactionCategory] = frozenset({
    TransactionCategory.CONVERSION,
    TransactionCategory.CORRECTION,
})

# 카테고리별 파생 증권 종류 (Units 기준 per-unit 표시용)
CATEGORY_DERIVED_CLASSES: dict[TransactionCategory, tuple[SecurityClass, ...]] = {
    TransactionCategory.IPO: (SecurityClass.CLASS_A,),
    TransactionCategory.DWAC_DEPOSIT: (SecurityClass.CLASS_A, SecurityClass.RIGHT),
    TransactionCategory.DWAC_WITHDRAWAL: (SecurityClass.CLASS_A, SecurityClass.RIGHT),
    TransactionCategory.TRANSFER_CREDIT: (SecurityClass.CLASS_A,),
    TransactionCategory.TRANSFER_DEBIT: (SecurityClass.CLASS_A,),
}

# Corporate action 카테고리 (separation = Units → Class A + Rights)
CORPORATE_ACTION_CATEGORIES: frozenset[str] = frozenset({
    "separation",
    "split",
    "reverse_split",
})


@dataclass
class LedgerTransaction:
    """원장 거래

    커밋 후 불변 (void 처리와 감사 로그가 남는 in-place 정정만 예외).
    signed_quantity는 Classifier가 계산한 값이며 집계 시 그대로 합산된다.
    """

    transaction_id: str
    issuer_id: str
    shareholder_id: str
    security_id: str
    category: str
    quantity: int  # 크기 (항상 양수)
    signed_quantity: int
    direction: str  # CREDIT or DEBIT
    transaction_date: date
    submission_key: str

    explicit_direction: str | None = None
    note: str | None = None
    status: str = TransactionStatus.ACTIVE.value
    source: str = TransactionSource.API.value
    corrects_transaction_id: str | None = None
    created_by: str = "system"
    created_at: datetime | None = None
    seq: int | None = None  # 생성 순서 (DB 할당)

    @property
    def key(self) -> PositionKey:
        """포지션 키"""
        return PositionKey(self.issuer_id, self.shareholder_id, self.security_id)

    @property
    def is_active(self) -> bool:
        """활성 거래 여부"""
        return self.status == TransactionStatus.ACTIVE.value

    def to_dict(self) -> dict[str, Any]:
        """응답용 dict"""
        return {
            "transaction_id": self.transaction_id,
            "issuer_id": self.issuer_id,
            "shareholder_id": self.shareholder_id,
            "security_id": self.security_id,
            "category": self.category,
            "quantity": self.quantity,
            "signed_quantity": self.signed_quantity,
            "direction": self.direction,
            "explicit_direction": self.explicit_direction,
            "transaction_date": self.transaction_date.isoformat(),
            "note": self.note,
            "status": self.status,
            "source": self.source,
            "corrects_transaction_id": self.corrects_transaction_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "seq": self.seq,
        }


@dataclass(frozen=True)
class PositionBalance:
    """포지션 잔고

    signed_total은 감사용 실제 합계 (음수 가능).
    display_total은 표시 정책 (0 미만은 0으로 표시).
    """

    key: PositionKey
    signed_total: int
    as_of: date | None = None
    transaction_count: int = 0

    @property
    def display_total(self) -> int:
        """표시용 잔고 (0 미만 불가)"""
        return max(0, self.signed_total)

    @property
    def is_negative(self) -> bool:
        """원장 합계가 음수인지 (데이터 점검 대상)"""
        return self.signed_total < 0

    def to_display(self) -> dict[str, Any]:
        """표시용 dict (signed_total 미포함)"""
        return {
            "issuer_id": self.key.issuer_id,
            "shareholder_id": self.key.shareholder_id,
            "security_id": self.key.security_id,
            "quantity": self.display_total,
            "as_of": self.as_of.isoformat() if self.as_of else None,
        }


@dataclass
class CorporateAction:
    """Corporate action (발행사 + 카테고리당 하나)"""

    action_id: str
    issuer_id: str
    category: str
    ratios: dict[str, Decimal] = field(default_factory=dict)
    version: int = 1
    updated_by: str = "system"
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "issuer_id": self.issuer_id,
            "category": self.category,
            "ratios": {k: str(v) for k, v in self.ratios.items()},
            "version": self.version,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at,
        }


@dataclass
class Restriction:
    """제한 주식 (법적 보호예수 등)

    restricted_quantity ≤ 설정 시점 포지션
    이후 포지션이 줄어들면 needs_review로 표시 (자동 축소 없음)
    """

    restriction_id: str
    issuer_id: str
    shareholder_id: str
    security_id: str
    restricted_quantity: int
    restriction_code: str | None = None
    legend: str | None = None
    needs_review: bool = False
    created_by: str = "system"
    updated_at: str | None = None

    @property
    def key(self) -> PositionKey:
        return PositionKey(self.issuer_id, self.shareholder_id, self.security_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "restriction_id": self.restriction_id,
            "issuer_id": self.issuer_id,
            "shareholder_id": self.shareholder_id,
            "security_id": self.security_id,
            "restricted_quantity": self.restricted_quantity,
            "restriction_code": self.restriction_code,
            "legend": self.legend,
            "needs_review": self.needs_review,
            "created_by": self.created_by,
            "updated_at": self.updated_at,
        }


def direction_for_sign(sign: int) -> Direction:
    """부호 → 방향"""
    return Direction.DEBIT if sign < 0 else Direction.CREDIT
