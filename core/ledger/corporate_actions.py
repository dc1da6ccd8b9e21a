"""
Corporate Action 비율 엔진

Separation 등 corporate action의 비율로 파생 증권 수량을 계산.
예: Units 7,886,132 × (Class A 1.0, Rights 1.0) → Class A 7,886,132, Rights 7,886,132

- 비율은 소수점 1자리까지 (그 이상은 반올림하지 않고 거부)
- 파생 수량은 정수 주식으로 내림, 나머지는 별도로 보고
- 저장된 거래 수량은 절대 변경하지 않음 (표시/파생 계산 전용)
"""

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Mapping

from core.constants import RatioPrecision
from core.errors import ValidationError
from core.ledger.types import (
    CATEGORY_DERIVED_CLASSES,
    CORPORATE_ACTION_CATEGORIES,
    CorporateAction,
)
from core.ledger.classifier import normalize_category
from core.types import SecurityClass

_RATIO_QUANTUM = Decimal(1).scaleb(-RatioPrecision.MAX_FRACTIONAL_DIGITS)

# 외부 입력 키 별칭 → SecurityClass
_RATIO_KEY_ALIASES: dict[str, SecurityClass] = {
    "class_a_ratio": SecurityClass.CLASS_A,
    "classa": SecurityClass.CLASS_A,
    "class_a": SecurityClass.CLASS_A,
    "rights_ratio": SecurityClass.RIGHT,
    "rights": SecurityClass.RIGHT,
    "right": SecurityClass.RIGHT,
    "warrants": SecurityClass.WARRANT,
    "warrant_ratio": SecurityClass.WARRANT,
}


@dataclass(frozen=True)
class DerivedQuantity:
    """파생 수량

    exact = base_units × ratio
    quantity = floor(exact), remainder = exact - quantity
    """

    security_class: str
    ratio: Decimal
    base_units: int
    exact: Decimal
    quantity: int
    remainder: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "security_class": self.security_class,
            "ratio": str(self.ratio),
            "base_units": self.base_units,
            "exact": str(self.exact),
            "quantity": self.quantity,
            "remainder": str(self.remainder),
        }


def parse_ratio(value: Any, field: str = "ratio") -> Decimal:
    """비율 파싱

    Args:
        value: str / int / float / Decimal
        field: 오류 보고용 필드 이름

    Returns:
        소수점 1자리로 정규화된 Decimal

    Raises:
        ValidationError: 숫자 아님, 음수, 무한대, 소수점 1자리 초과

    Example:
        >>> parse_ratio("1.0")
        Decimal('1.0')
        >>> parse_ratio("0.50")
        Decimal('0.5')
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a decimal number", field=field, rule="decimal")

    try:
        ratio = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(
            f"{field} is not a valid decimal: {value!r}",
            field=field,
            rule="decimal",
        ) from e

    if not ratio.is_finite():
        raise ValidationError(f"{field} must be finite", field=field, rule="decimal")

    if ratio < 0:
        raise ValidationError(f"{field} must not be negative", field=field, rule="non_negative")

    try:
        quantized = ratio.quantize(_RATIO_QUANTUM)
    except InvalidOperation as e:
        raise ValidationError(f"{field} is out of range", field=field, rule="decimal") from e

    if quantized != ratio:
        raise ValidationError(
            f"{field} {value} exceeds {RatioPrecision.MAX_FRACTIONAL_DIGITS} fractional digit(s)",
            field=field,
            rule="ratio_precision",
        )
    return quantized


def normalize_ratio_key(raw: str) -> SecurityClass:
    """비율 키 → SecurityClass"""
    cleaned = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
    if cleaned in _RATIO_KEY_ALIASES:
        return _RATIO_KEY_ALIASES[cleaned]
    try:
        return SecurityClass(cleaned)
    except ValueError as e:
        raise ValidationError(
            f"Unknown security class in ratios: '{raw}'",
            field="ratios",
            rule="security_class",
            allowed=[c.value for c in SecurityClass],
        ) from e


def parse_ratios(raw: Mapping[str, Any]) -> dict[str, Decimal]:
    """비율 집합 검증

    Returns:
        {security_class: Decimal}

    Raises:
        ValidationError: 비어 있음, 알 수 없는 키, 정밀도 초과
    """
    if not raw:
        raise ValidationError("ratios must not be empty", field="ratios", rule="required")

    ratios: dict[str, Decimal] = {}
    for key, value in raw.items():
        security_class = normalize_ratio_key(key)
        if security_class.value in ratios:
            raise ValidationError(
                f"Duplicate ratio for '{security_class.value}'",
                field="ratios",
                rule="duplicate",
            )
        ratios[security_class.value] = parse_ratio(value, field=f"ratios.{security_class.value}")
    return ratios


def normalize_action_category(raw: str) -> str:
    """Corporate action 카테고리 정규화

    Raises:
        ValidationError: 지원하지 않는 카테고리
    """
    cleaned = str(raw or "").strip().lower().replace("-", "_").replace(" ", "_")
    if cleaned not in CORPORATE_ACTION_CATEGORIES:
        raise ValidationError(
            f"Unknown corporate action category: '{raw}'",
            field="category",
            rule="corporate_action_category",
            allowed=sorted(CORPORATE_ACTION_CATEGORIES),
        )
    return cleaned


def derive_quantity(security_class: str, ratio: Decimal, base_units: int) -> DerivedQuantity:
    """단일 파생 수량 계산"""
    exact = Decimal(base_units) * ratio
    quantity = int(exact.to_integral_value(rounding=ROUND_FLOOR))
    return DerivedQuantity(
        security_class=security_class,
        ratio=ratio,
        base_units=base_units,
        exact=exact,
        quantity=quantity,
        remainder=exact - Decimal(quantity),
    )


def _check_units(base_units: int) -> None:
    if isinstance(base_units, bool) or not isinstance(base_units, int):
        raise ValidationError("base_units must be an integer", field="units", rule="integer")
    if base_units < 0:
        raise ValidationError("base_units must not be negative", field="units", rule="non_negative")


def derive_quantities(
    ratios: Mapping[str, Decimal],
    base_units: int,
) -> list[DerivedQuantity]:
    """비율 집합 전체에 대한 파생 수량

    Args:
        ratios: {security_class: ratio}
        base_units: 기준 Units 수량

    Returns:
        DerivedQuantity 목록 (security_class 순)
    """
    _check_units(base_units)
    return [
        derive_quantity(security_class, ratio, base_units)
        for security_class, ratio in sorted(ratios.items())
    ]


def derive_for_category(
    action: CorporateAction,
    transaction_category: str,
    base_units: int,
) -> list[DerivedQuantity]:
    """거래 카테고리에 해당하는 파생 증권만 계산

    예: DWAC Deposit → Class A + Rights, IPO → Class A

    Raises:
        ValidationError: 파생 대상이 없는 카테고리, 비율 누락
    """
    _check_units(base_units)
    category = normalize_category(transaction_category)
    classes = CATEGORY_DERIVED_CLASSES.get(category)
    if not classes:
        raise ValidationError(
            f"Category '{category.value}' has no derived security classes",
            field="category",
            rule="no_derived_classes",
        )

    derived = []
    for security_class in classes:
        ratio = action.ratios.get(security_class.value)
        if ratio is None:
            raise ValidationError(
                f"Corporate action '{action.category}' has no ratio for '{security_class.value}'",
                field="ratios",
                rule="missing_ratio",
            )
        derived.append(derive_quantity(security_class.value, ratio, base_units))
    return derived
