"""
거래 분류기

카테고리와 (선택) 명시적 방향으로부터 부호(+1/-1)와 방향을 결정.
수량 부호를 계산하는 유일한 곳이며, 입력 시점과 정정(reconciliation)
시점 모두 이 함수를 사용한다. I/O 없음.

우선순위:
1. 명시적 방향이 있으면 우선 ("debit"/"withdrawal" 포함 시 -1, 그 외 +1)
2. 카테고리로 분류 (유출 카테고리 / "withdrawal", "debit" 포함 → -1,
   유입 카테고리 / "deposit", "credit" 포함 → +1)
3. 분류 불가 → ValidationError (절대 +1로 기본 처리하지 않음)
"""

from dataclasses import dataclass

from core.errors import ValidationError
from core.ledger.types import (
    DIRECTION_REQUIRED_CATEGORIES,
    INFLOW_CATEGORIES,
    OUTFLOW_CATEGORIES,
    TransactionCategory,
    direction_for_sign,
)
from core.types import Direction

_OUTFLOW_MARKERS = ("withdrawal", "debit")
_INFLOW_MARKERS = ("deposit", "credit")

# 소문자 이름 → 카테고리
_CATEGORY_LOOKUP: dict[str, TransactionCategory] = {
    c.value.lower(): c for c in TransactionCategory
}


@dataclass(frozen=True)
class Classification:
    """분류 결과"""

    sign: int
    direction: Direction
    rule: str  # explicit_direction | category | category_keyword
    category: TransactionCategory | None = None

    def apply(self, magnitude: int) -> int:
        """크기에 부호 적용"""
        return self.sign * abs(magnitude)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = " ".join(str(value).split())
    return cleaned or None


def normalize_category(raw: str | TransactionCategory) -> TransactionCategory:
    """카테고리 정규화 (대소문자, 공백 무시)

    Args:
        raw: 입력 카테고리 문자열

    Returns:
        TransactionCategory

    Raises:
        ValidationError: 닫힌 집합에 없는 카테고리

    Example:
        >>> normalize_category("  dwac   withdrawal ")
        <TransactionCategory.DWAC_WITHDRAWAL: 'DWAC Withdrawal'>
    """
    if isinstance(raw, TransactionCategory):
        return raw

    cleaned = _clean(raw)
    if cleaned is None:
        raise ValidationError(
            "category is required",
            field="category",
            rule="required",
        )

    category = _CATEGORY_LOOKUP.get(cleaned.lower())
    if category is None:
        raise ValidationError(
            f"Unknown transaction category: '{cleaned}'",
            field="category",
            rule="closed_category_set",
            allowed=[c.value for c in TransactionCategory],
        )
    return category


def _sign_from_direction(explicit_direction: str) -> int:
    lowered = explicit_direction.lower()
    if any(marker in lowered for marker in _OUTFLOW_MARKERS):
        return -1
    return 1


def classify(
    category: str | TransactionCategory,
    explicit_direction: str | None = None,
) -> Classification:
    """거래 부호 분류

    Args:
        category: 거래 카테고리
        explicit_direction: 명시적 방향 (예: "credit", "Debit", "withdrawal")

    Returns:
        Classification (sign, direction)

    Raises:
        ValidationError: 분류 불가 (알 수 없는 카테고리, 방향 필수 카테고리에 방향 없음)

    Example:
        >>> classify("DWAC Withdrawal").sign
        -1
        >>> classify("DWAC Withdrawal", "credit").sign
        1
    """
    category_value = category.value if isinstance(category, TransactionCategory) else _clean(category)
    known = _CATEGORY_LOOKUP.get(category_value.lower()) if category_value else None

    # 1. 명시적 방향 우선
    direction_value = _clean(explicit_direction)
    if direction_value is not None:
        sign = _sign_from_direction(direction_value)
        return Classification(
            sign=sign,
            direction=direction_for_sign(sign),
            rule="explicit_direction",
            category=known,
        )

    if category_value is None:
        raise ValidationError(
            "category is required",
            field="category",
            rule="required",
        )

    # 2. 카테고리 분류
    if known is not None:
        if known in OUTFLOW_CATEGORIES:
            return Classification(-1, Direction.DEBIT, "category", known)
        if known in INFLOW_CATEGORIES:
            return Classification(1, Direction.CREDIT, "category", known)
        if known in DIRECTION_REQUIRED_CATEGORIES:
            raise ValidationError(
                f"Category '{known.value}' requires an explicit direction",
                field="explicit_direction",
                rule="direction_required",
            )

    lowered = category_value.lower()
    if any(marker in lowered for marker in _OUTFLOW_MARKERS):
        return Classification(-1, Direction.DEBIT, "category_keyword", known)
    if any(marker in lowered for marker in _INFLOW_MARKERS):
        return Classification(1, Direction.CREDIT, "category_keyword", known)

    # 3. 분류 불가
    raise ValidationError(
        f"Cannot classify category '{category_value}' without an explicit direction",
        field="category",
        rule="unclassifiable",
    )


def signed_quantity(
    magnitude: int,
    category: str | TransactionCategory,
    explicit_direction: str | None = None,
) -> int:
    """크기 + 분류 → 부호 있는 수량

    Example:
        >>> signed_quantity(20000, "DWAC Withdrawal")
        -20000
    """
    return classify(category, explicit_direction).apply(magnitude)
