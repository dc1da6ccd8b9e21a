"""
거래 생성기

입력 요청 / 레거시 레코드 / 정정 항목을 LedgerTransaction으로 변환.
부호는 반드시 classifier를 통해 계산한다 (레거시 이관은 저장된 부호 보존).
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any
from uuid import uuid4

from core.constants import Defaults
from core.errors import ValidationError
from core.ledger.classifier import classify, normalize_category
from core.ledger.types import LedgerTransaction, TransactionCategory, direction_for_sign
from core.types import Direction, TransactionSource, TransactionStatus
from core.utils.dedup import make_correction_key, make_legacy_key, make_submission_key
from core.utils.timezone import now_utc, parse_date

logger = logging.getLogger(__name__)


def parse_magnitude(value: Any, field: str = "quantity") -> int:
    """수량 크기 파싱

    정수 주식만 허용. 부호는 무시하고 크기만 사용 (부호는 classifier 담당).

    Raises:
        ValidationError: 누락, 정수 아님, 0
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", field=field, rule="required")

    if isinstance(value, int):
        magnitude = abs(value)
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be a whole number of shares", field=field, rule="integer")
        magnitude = abs(int(value))
    else:
        text = str(value).strip().replace(",", "")
        try:
            magnitude = abs(int(text))
        except ValueError as e:
            raise ValidationError(
                f"{field} must be a whole number of shares: '{value}'",
                field=field,
                rule="integer",
            ) from e

    if magnitude == 0:
        raise ValidationError(f"{field} must be greater than zero", field=field, rule="positive")
    check_quantity_limit(magnitude, field)
    return magnitude


def check_quantity_limit(magnitude: int, field: str = "quantity") -> None:
    """수량 상한 확인 (Defaults.MAX_QUANTITY)

    Raises:
        ValidationError: 상한 초과 (rule=max_quantity)
    """
    if magnitude > Defaults.MAX_QUANTITY:
        raise ValidationError(
            f"{field} exceeds the maximum of {Defaults.MAX_QUANTITY} shares",
            field=field,
            rule="max_quantity",
            maximum=Defaults.MAX_QUANTITY,
        )


def _require_id(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field, rule="required")
    return str(value).strip()


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


class TransactionBuilder:
    """LedgerTransaction 생성기

    사용 예시:
    ```python
    txn = TransactionBuilder.from_request(
        issuer_id=issuer_id,
        shareholder_id=holder_id,
        security_id=security_id,
        category="DWAC Withdrawal",
        quantity=20000,
        transaction_date="2024-03-01",
        created_by="admin-1",
    )
    assert txn.signed_quantity == -20000
    ```
    """

    @staticmethod
    def from_request(
        issuer_id: str,
        shareholder_id: str,
        security_id: str,
        category: str,
        quantity: Any,
        transaction_date: str | date | None,
        created_by: str,
        explicit_direction: str | None = None,
        note: str | None = None,
        submission_id: str | None = None,
        source: TransactionSource = TransactionSource.API,
    ) -> LedgerTransaction:
        """입력 요청 → 거래

        Raises:
            ValidationError: 필드 누락, 알 수 없는 카테고리, 분류 불가
        """
        issuer_id = _require_id(issuer_id, "issuer_id")
        shareholder_id = _require_id(shareholder_id, "shareholder_id")
        security_id = _require_id(security_id, "security_id")
        normalized = normalize_category(category)
        magnitude = parse_magnitude(quantity)
        day = parse_date(transaction_date)
        explicit = _clean_optional(explicit_direction)
        note = _clean_optional(note)

        classification = classify(normalized, explicit)

        return LedgerTransaction(
            transaction_id=str(uuid4()),
            issuer_id=issuer_id,
            shareholder_id=shareholder_id,
            security_id=security_id,
            category=normalized.value,
            quantity=magnitude,
            signed_quantity=classification.apply(magnitude),
            direction=classification.direction.value,
            explicit_direction=explicit,
            transaction_date=day,
            note=note,
            status=TransactionStatus.ACTIVE.value,
            source=source.value,
            submission_key=make_submission_key(
                issuer_id,
                shareholder_id,
                security_id,
                day,
                normalized.value,
                note,
                submission_id=_clean_optional(submission_id),
            ),
            created_by=created_by,
            created_at=now_utc(),
        )

    @staticmethod
    def from_legacy_record(
        record: dict[str, Any],
        issuer_id: str,
        created_by: str,
    ) -> LedgerTransaction:
        """레거시 레코드 이관 (저장된 부호 그대로 보존)

        기존 시스템의 부호 오류도 그대로 옮기고, 이후 정정(reconciliation)으로 복구.
        카테고리는 닫힌 집합이어야 한다.

        Args:
            record: {legacy_id, shareholder_id, security_id, category,
                     signed_quantity, transaction_date, explicit_direction?, note?}
        """
        legacy_id = _require_id(record.get("legacy_id"), "legacy_id")
        normalized = normalize_category(record.get("category", ""))
        stored = record.get("signed_quantity")
        if stored is None or isinstance(stored, bool):
            raise ValidationError("signed_quantity is required", field="signed_quantity", rule="required")
        try:
            signed = int(stored)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"signed_quantity must be an integer: '{stored}'",
                field="signed_quantity",
                rule="integer",
            ) from e
        if signed == 0:
            raise ValidationError("signed_quantity must not be zero", field="signed_quantity", rule="non_zero")
        check_quantity_limit(abs(signed), "signed_quantity")

        return LedgerTransaction(
            transaction_id=str(uuid4()),
            issuer_id=_require_id(issuer_id, "issuer_id"),
            shareholder_id=_require_id(record.get("shareholder_id"), "shareholder_id"),
            security_id=_require_id(record.get("security_id"), "security_id"),
            category=normalized.value,
            quantity=abs(signed),
            signed_quantity=signed,
            direction=direction_for_sign(signed).value,
            explicit_direction=_clean_optional(record.get("explicit_direction")),
            transaction_date=parse_date(record.get("transaction_date")),
            note=_clean_optional(record.get("note")),
            status=TransactionStatus.ACTIVE.value,
            source=TransactionSource.LEGACY.value,
            submission_key=make_legacy_key(issuer_id, legacy_id),
            created_by=created_by,
            created_at=now_utc(),
        )

    @staticmethod
    def offsetting_correction(
        original: LedgerTransaction,
        delta: int,
        run_id: str,
        created_by: str,
    ) -> LedgerTransaction:
        """정정 거래 생성 (offsetting 방식)

        원 거래와 같은 거래일로 기록하여 기준일 조회 이력도 함께 정정.

        Args:
            original: 부호 오류 거래
            delta: 적용할 정정 수량 (-2 × 유효 수량)
            run_id: reconciliation 실행 ID
            created_by: 운영자 ID
        """
        if delta == 0:
            raise ValueError("Correction delta must not be zero")

        direction = Direction.DEBIT if delta < 0 else Direction.CREDIT
        classification = classify(TransactionCategory.CORRECTION, direction.value)

        return LedgerTransaction(
            transaction_id=str(uuid4()),
            issuer_id=original.issuer_id,
            shareholder_id=original.shareholder_id,
            security_id=original.security_id,
            category=TransactionCategory.CORRECTION.value,
            quantity=abs(delta),
            signed_quantity=classification.apply(delta),
            direction=classification.direction.value,
            explicit_direction=direction.value,
            transaction_date=original.transaction_date,
            note=f"Sign correction for {original.transaction_id} ({original.category})",
            status=TransactionStatus.ACTIVE.value,
            source=TransactionSource.RECONCILIATION.value,
            submission_key=make_correction_key(run_id, original.transaction_id),
            corrects_transaction_id=original.transaction_id,
            created_by=created_by,
            created_at=now_utc(),
        )
