"""
core/utils/timezone.py 테스트
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from core.errors import ValidationError
from core.utils.timezone import ensure_utc, now_utc, parse_date, parse_utc


class TestParseDate:
    """거래일 파싱"""

    @pytest.mark.parametrize(
        "value",
        ["2024-01-02", " 2024-01-02 ", "2024-01-02T15:30:00", date(2024, 1, 2), datetime(2024, 1, 2, 23, 59)],
    )
    def test_valid(self, value: object) -> None:
        assert parse_date(value) == date(2024, 1, 2)

    @pytest.mark.parametrize("value", [None, ""])
    def test_required(self, value: object) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_date(value)
        assert exc_info.value.rule == "required"
        assert exc_info.value.field == "transaction_date"

    def test_invalid(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_date("2024-13-01", field="as_of")
        assert exc_info.value.rule == "iso_date"
        assert exc_info.value.field == "as_of"


class TestUtc:
    """UTC 변환"""

    def test_now_utc_is_aware(self) -> None:
        assert now_utc().tzinfo == timezone.utc

    def test_ensure_utc_naive(self) -> None:
        assert ensure_utc(datetime(2024, 1, 1, 0, 0)).tzinfo == timezone.utc

    def test_ensure_utc_converts(self) -> None:
        kst = timezone(timedelta(hours=9))
        result = ensure_utc(datetime(2024, 1, 1, 9, 0, tzinfo=kst))
        assert result == datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)

    def test_parse_sqlite_format(self) -> None:
        """SQLite datetime('now') 형식"""
        assert parse_utc("2026-02-21 01:00:00") == datetime(2026, 2, 21, 1, 0, tzinfo=timezone.utc)

    def test_parse_iso(self) -> None:
        assert parse_utc("2026-02-21T01:00:00+00:00") == datetime(2026, 2, 21, 1, 0, tzinfo=timezone.utc)

    def test_parse_none(self) -> None:
        assert parse_utc(None) is None
