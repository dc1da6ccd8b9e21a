"""
포지션 집계기

(issuer, shareholder, security) 키의 거래를 순서대로 합산.
저장된 signed_quantity를 그대로 합산하며 재분류하지 않는다.

정렬 기준: transaction_date → seq (생성 순서)
표시 정책(0 미만은 0)은 PositionBalance.display_total에만 존재.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING, AsyncIterator, Iterable, Iterator

from core.constants import Defaults
from core.ledger.types import LedgerTransaction, PositionBalance
from core.types import PositionKey

if TYPE_CHECKING:
    from core.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


def order_key(txn: LedgerTransaction) -> tuple[date, int]:
    """정렬 키 (거래일, 생성 순서)"""
    return (txn.transaction_date, txn.seq if txn.seq is not None else 0)


def _included(txn: LedgerTransaction, as_of: date | None) -> bool:
    if not txn.is_active:
        return False
    if as_of is not None and txn.transaction_date > as_of:
        return False
    return True


def running_balances(
    transactions: Iterable[LedgerTransaction],
    as_of: date | None = None,
) -> Iterator[tuple[LedgerTransaction, int]]:
    """거래별 누적 잔고

    Args:
        transactions: 한 키의 거래 목록 (순서 무관, 내부에서 정렬)
        as_of: 기준일 (포함)

    Yields:
        (거래, 누적 signed 합계)
    """
    running = 0
    for txn in sorted(transactions, key=order_key):
        if not _included(txn, as_of):
            continue
        running += txn.signed_quantity
        yield txn, running


def fold(
    key: PositionKey,
    transactions: Iterable[LedgerTransaction],
    as_of: date | None = None,
) -> PositionBalance:
    """거래 목록 → 포지션

    Args:
        key: 포지션 키
        transactions: 해당 키의 거래 목록
        as_of: 기준일 (None이면 전체)

    Returns:
        PositionBalance (signed_total 보존)
    """
    total = 0
    count = 0
    for txn in transactions:
        if txn.key != key:
            raise ValueError(f"Transaction {txn.transaction_id} does not belong to {key}")
        if not _included(txn, as_of):
            continue
        total += txn.signed_quantity
        count += 1

    return PositionBalance(
        key=key,
        signed_total=total,
        as_of=as_of,
        transaction_count=count,
    )


async def iter_positions(
    store: LedgerStore,
    issuer_id: str,
    security_id: str | None = None,
    as_of: date | None = None,
    page_size: int = Defaults.POSITION_PAGE_SIZE,
) -> AsyncIterator[PositionBalance]:
    """발행사 전체 포지션 순회 (지연, 재시작 가능)

    (shareholder, security) 쌍 단위 keyset 페이지네이션.
    호출할 때마다 처음부터 다시 순회한다.

    Args:
        store: LedgerStore
        issuer_id: 발행사 ID
        security_id: 특정 증권만 (None이면 전체)
        as_of: 기준일
        page_size: 페이지 크기

    Yields:
        PositionBalance
    """
    after: tuple[str, str] | None = None
    while True:
        keys = await store.iter_position_keys(
            issuer_id=issuer_id,
            security_id=security_id,
            after=after,
            limit=page_size,
        )
        if not keys:
            return

        for key in keys:
            transactions = await store.get_key_transactions(key)
            yield fold(key, transactions, as_of=as_of)

        if len(keys) < page_size:
            return
        last = keys[-1]
        after = (last.shareholder_id, last.security_id)
