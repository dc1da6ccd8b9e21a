"""
Natural Key 생성 유틸리티

재시도 안전한 쓰기를 위한 submission_key 생성 함수 제공.
같은 입력은 항상 같은 키를 만들고, 원장은 키당 한 건만 저장한다.
"""

import hashlib
from datetime import date


def note_hash(note: str | None) -> str:
    """메모 해시 (sha256 앞 16자리)

    Example:
        >>> note_hash(None) == note_hash("")
        True
    """
    return hashlib.sha256((note or "").encode("utf-8")).hexdigest()[:16]


def make_submission_key(
    issuer_id: str,
    shareholder_id: str,
    security_id: str,
    transaction_date: date | str,
    category: str,
    note: str | None = None,
    submission_id: str | None = None,
) -> str:
    """거래 입력용 submission_key 생성

    명시적 submission_id가 있으면 우선 사용.

    Args:
        issuer_id: 발행사 ID
        shareholder_id: 주주 ID
        security_id: 증권 ID
        transaction_date: 거래일
        category: 거래 카테고리
        note: 메모 (해시로 포함)
        submission_id: 호출자가 지정한 제출 ID

    Returns:
        submission_key

    Example:
        >>> make_submission_key("iss1", "sh1", "sec1", "2024-01-02", "IPO", submission_id="abc")
        'sub:iss1:abc'
    """
    if submission_id:
        return f"sub:{issuer_id}:{submission_id}"

    day = transaction_date.isoformat() if isinstance(transaction_date, date) else str(transaction_date)
    return f"{issuer_id}:{shareholder_id}:{security_id}:{day}:{category}:{note_hash(note)}"


def make_correction_key(run_id: str, transaction_id: str) -> str:
    """정정 거래용 submission_key 생성

    Example:
        >>> make_correction_key("run1", "txn1")
        'correction:run1:txn1'
    """
    return f"correction:{run_id}:{transaction_id}"


def make_legacy_key(issuer_id: str, legacy_id: str) -> str:
    """레거시 데이터 이관용 submission_key

    Example:
        >>> make_legacy_key("iss1", "42")
        'legacy:iss1:42'
    """
    return f"legacy:{issuer_id}:{legacy_id}"
