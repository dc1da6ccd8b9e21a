"""
시간 유틸리티

내부 저장: UTC ISO 8601 | 거래일: date (YYYY-MM-DD)
"""

from datetime import date, datetime, timezone

from core.errors import ValidationError


def now_utc() -> datetime:
    """현재 UTC 시간 반환 (타임존 명시)

    datetime.now(timezone.utc)의 축약형.

    Returns:
        현재 UTC 시간 (tzinfo=timezone.utc)
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """naive datetime은 UTC로 간주"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_utc(value: str | datetime | None) -> datetime | None:
    """DB 문자열 → UTC datetime

    SQLite datetime('now') 형식("2026-02-21 01:00:00")과 ISO 8601 모두 허용.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value).replace(" ", "T")))


def parse_date(value: str | date | datetime | None, field: str = "transaction_date") -> date:
    """거래일 파싱

    Args:
        value: "YYYY-MM-DD" 문자열, date, datetime
        field: 오류 보고용 필드 이름

    Returns:
        date

    Raises:
        ValidationError: 누락 또는 형식 오류

    Example:
        >>> parse_date("2024-01-02")
        datetime.date(2024, 1, 2)
    """
    if value is None or value == "":
        raise ValidationError(f"{field} is required", field=field, rule="required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        # "2024-01-02T00:00:00" 형식도 허용
        return date.fromisoformat(text[:10])
    except ValueError as e:
        raise ValidationError(
            f"{field} must be an ISO date (YYYY-MM-DD): '{value}'",
            field=field,
            rule="iso_date",
        ) from e
