"""
유틸리티 패키지

submission_key 생성, 시간 처리 등 공통 유틸리티
"""

from core.utils.dedup import (
    make_correction_key,
    make_legacy_key,
    make_submission_key,
    note_hash,
)
from core.utils.timezone import (
    ensure_utc,
    now_utc,
    parse_date,
    parse_utc,
)

__all__ = [
    "make_correction_key",
    "make_legacy_key",
    "make_submission_key",
    "note_hash",
    "ensure_utc",
    "now_utc",
    "parse_date",
    "parse_utc",
]
