"""
원장 저장소

거래 append-only 저장 + 포지션 캐시(materialized) 관리.
거래 저장과 포지션 캐시 갱신은 하나의 트랜잭션으로 커밋된다.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from core.constants import Defaults
from core.errors import ConsistencyError, NotFoundError, ValidationError
from core.ledger.aggregator import fold
from core.ledger.types import (
    CorporateAction,
    LedgerTransaction,
    PositionBalance,
    Restriction,
    TransactionCategory,
    direction_for_sign,
)
from core.storage.audit_store import AuditStore
from core.storage.metadata_store import check_issuer_writable
from core.types import AuditAction, PositionKey, TransactionStatus
from core.utils.timezone import parse_date, parse_utc

if TYPE_CHECKING:
    from adapters.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)

_TXN_INSERT_COLUMNS = """
    transaction_id, issuer_id, shareholder_id, security_id,
    category, quantity, signed_quantity, direction, explicit_direction,
    transaction_date, note, status, source, submission_key,
    corrects_transaction_id, created_by, created_at
"""

_TXN_COLUMNS = "seq," + _TXN_INSERT_COLUMNS

_RESTRICTION_COLUMNS = """
    restriction_id, issuer_id, shareholder_id, security_id, restricted_quantity,
    restriction_code, legend, needs_review, created_by, updated_at
"""


@dataclass(frozen=True)
class AppendResult:
    """append 결과

    created=False면 같은 submission_key의 기존 거래 (재시도)
    """

    transaction: LedgerTransaction
    created: bool
    position: PositionBalance


@dataclass(frozen=True)
class PositionCheck:
    """캐시 검증 결과"""

    key: PositionKey
    cached: int | None
    recomputed: int
    drift: bool
    healed: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "issuer_id": self.key.issuer_id,
            "shareholder_id": self.key.shareholder_id,
            "security_id": self.key.security_id,
            "cached": self.cached,
            "recomputed": self.recomputed,
            "drift": self.drift,
            "healed": self.healed,
        }


def _same_submission(existing: LedgerTransaction, txn: LedgerTransaction) -> bool:
    """같은 submission_key의 재시도인지 (내용 동일)"""
    return (
        existing.shareholder_id == txn.shareholder_id
        and existing.security_id == txn.security_id
        and existing.category == txn.category
        and existing.signed_quantity == txn.signed_quantity
        and existing.transaction_date == txn.transaction_date
    )


class LedgerStore:
    """원장 저장소

    거래를 저장하고 조회하는 클래스.
    position_cache는 원장에서 항상 재계산 가능한 Projection으로 관리됨.

    Args:
        db: SQLite 어댑터
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db
        self.audit = AuditStore(db)

    # -------------------------------------------------------------------------
    # 거래 저장
    # -------------------------------------------------------------------------

    async def append(self, txn: LedgerTransaction) -> AppendResult:
        """거래 저장

        하나의 트랜잭션 안에서:
        1. 발행사 상태 확인 (active만 허용)
        2. 증권/주주 소속 확인
        3. submission_key 중복이면 기존 거래 반환
        4. 거래 저장 → 포지션 캐시 재계산 → 제한 주식 초과 표시

        Args:
            txn: 저장할 거래

        Returns:
            AppendResult

        Raises:
            AuthorizationError: 발행사 상태가 거래 쓰기를 허용하지 않음
            NotFoundError: 발행사/증권/주주 없음
            ValidationError: 같은 submission_key에 다른 내용
        """
        async with self.db.transaction():
            await check_issuer_writable(self.db, txn.issuer_id, transactions=True, operation="append")
            await self._check_references(txn)

            existing = await self._get_by_submission_key(txn.submission_key)
            if existing is not None:
                if not _same_submission(existing, txn):
                    raise ValidationError(
                        "A different transaction was already submitted with this key; "
                        "supply a distinct submission_id",
                        field="submission_id",
                        rule="duplicate_submission",
                        existing_transaction_id=existing.transaction_id,
                    )
                logger.info(
                    f"중복 제출 (기존 거래 반환): {existing.transaction_id}",
                    extra={"submission_key": txn.submission_key},
                )
                position = await self.recompute_position(existing.key)
                return AppendResult(existing, created=False, position=position)

            cursor = await self.db.execute(
                f"""
                INSERT INTO ledger_transaction ({_TXN_INSERT_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    txn.transaction_id,
                    txn.issuer_id,
                    txn.shareholder_id,
                    txn.security_id,
                    txn.category,
                    txn.quantity,
                    txn.signed_quantity,
                    txn.direction,
                    txn.explicit_direction,
                    txn.transaction_date.isoformat(),
                    txn.note,
                    txn.status,
                    txn.source,
                    txn.submission_key,
                    txn.corrects_transaction_id,
                    txn.created_by,
                    txn.created_at.isoformat() if txn.created_at else None,
                ),
            )
            txn.seq = cursor.lastrowid

            position = await self.refresh_position(txn.key)
            await self.flag_restrictions(txn.key, position.signed_total, actor_id=txn.created_by)

        logger.info(
            f"거래 저장: {txn.transaction_id} {txn.category} {txn.signed_quantity:+d} "
            f"→ 포지션 {position.signed_total}",
            extra={"issuer_id": txn.issuer_id, "submission_key": txn.submission_key},
        )
        return AppendResult(txn, created=True, position=position)

    async def _check_references(self, txn: LedgerTransaction) -> None:
        """증권/주주가 같은 발행사 소속인지 확인"""
        row = await self.db.fetchone(
            "SELECT issuer_id FROM security WHERE security_id = ?",
            (txn.security_id,),
        )
        if row is None or row[0] != txn.issuer_id:
            raise NotFoundError(
                f"Security {txn.security_id} not found for issuer {txn.issuer_id}",
                field="security_id",
                rule="exists",
            )

        row = await self.db.fetchone(
            "SELECT issuer_id FROM shareholder WHERE shareholder_id = ?",
            (txn.shareholder_id,),
        )
        if row is None or row[0] != txn.issuer_id:
            raise NotFoundError(
                f"Shareholder {txn.shareholder_id} not found for issuer {txn.issuer_id}",
                field="shareholder_id",
                rule="exists",
            )

    # -------------------------------------------------------------------------
    # 거래 조회
    # -------------------------------------------------------------------------

    async def get_transaction(self, transaction_id: str) -> LedgerTransaction | None:
        """거래 조회"""
        row = await self.db.fetchone(
            f"SELECT {_TXN_COLUMNS} FROM ledger_transaction WHERE transaction_id = ?",
            (transaction_id,),
        )
        return self._row_to_transaction(row) if row else None

    async def require_transaction(self, transaction_id: str) -> LedgerTransaction:
        """거래 조회 (없으면 NotFoundError)"""
        txn = await self.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(
                f"Transaction not found: {transaction_id}",
                field="transaction_id",
                rule="exists",
            )
        return txn

    async def _get_by_submission_key(self, submission_key: str) -> LedgerTransaction | None:
        row = await self.db.fetchone(
            f"SELECT {_TXN_COLUMNS} FROM ledger_transaction WHERE submission_key = ?",
            (submission_key,),
        )
        return self._row_to_transaction(row) if row else None

    async def get_key_transactions(
        self,
        key: PositionKey,
        include_void: bool = True,
    ) -> list[LedgerTransaction]:
        """포지션 키의 거래 목록 (거래일 → 생성 순서)"""
        sql = f"""
            SELECT {_TXN_COLUMNS} FROM ledger_transaction
            WHERE issuer_id = ? AND shareholder_id = ? AND security_id = ?
        """
        if not include_void:
            sql += " AND status = 'active'"
        sql += " ORDER BY transaction_date, seq"

        rows = await self.db.fetchall(sql, (key.issuer_id, key.shareholder_id, key.security_id))
        return [self._row_to_transaction(row) for row in rows]

    async def list_transactions(
        self,
        issuer_id: str,
        security_id: str | None = None,
        shareholder_id: str | None = None,
        status: TransactionStatus | str | None = None,
        category: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[LedgerTransaction]:
        """거래 목록 (거래일 → 생성 순서)"""
        sql = f"SELECT {_TXN_COLUMNS} FROM ledger_transaction WHERE issuer_id = ?"
        params: list[Any] = [issuer_id]

        if security_id:
            sql += " AND security_id = ?"
            params.append(security_id)
        if shareholder_id:
            sql += " AND shareholder_id = ?"
            params.append(shareholder_id)
        if status:
            sql += " AND status = ?"
            params.append(status.value if isinstance(status, TransactionStatus) else status)
        if category:
            sql += " AND category = ?"
            params.append(category)

        sql += " ORDER BY transaction_date, seq"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        rows = await self.db.fetchall(sql, tuple(params))
        return [self._row_to_transaction(row) for row in rows]

    async def list_journal(
        self,
        issuer_id: str,
        security_id: str | None = None,
        shareholder_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """이체 원장 조회 (v_transfer_journal, 최신순)"""
        sql = """
            SELECT seq, transaction_id, transaction_date, category, quantity,
                   signed_quantity, direction, status, source, note,
                   corrects_transaction_id, shareholder_id, account_number,
                   shareholder_name, security_id, cusip, security_class
            FROM v_transfer_journal
            WHERE issuer_id = ?
        """
        params: list[Any] = [issuer_id]

        if security_id:
            sql += " AND security_id = ?"
            params.append(security_id)
        if shareholder_id:
            sql += " AND shareholder_id = ?"
            params.append(shareholder_id)
        if start_date:
            sql += " AND transaction_date >= ?"
            params.append(start_date.isoformat())
        if end_date:
            sql += " AND transaction_date <= ?"
            params.append(end_date.isoformat())

        sql += " ORDER BY transaction_date DESC, seq DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        rows = await self.db.fetchall(sql, tuple(params))
        return [
            {
                "seq": row[0],
                "transaction_id": row[1],
                "transaction_date": row[2],
                "category": row[3],
                "quantity": row[4],
                "signed_quantity": row[5],
                "direction": row[6],
                "status": row[7],
                "source": row[8],
                "note": row[9],
                "corrects_transaction_id": row[10],
                "shareholder_id": row[11],
                "account_number": row[12],
                "shareholder_name": row[13],
                "security_id": row[14],
                "cusip": row[15],
                "security_class": row[16],
            }
            for row in rows
        ]

    async def get_corrections_for(self, transaction_id: str) -> list[LedgerTransaction]:
        """원 거래를 참조하는 활성 정정 거래 목록"""
        rows = await self.db.fetchall(
            f"""
            SELECT {_TXN_COLUMNS} FROM ledger_transaction
            WHERE corrects_transaction_id = ? AND status = 'active'
            ORDER BY seq
            """,
            (transaction_id,),
        )
        return [self._row_to_transaction(row) for row in rows]

    # -------------------------------------------------------------------------
    # 포지션
    # -------------------------------------------------------------------------

    async def recompute_position(self, key: PositionKey, as_of: date | None = None) -> PositionBalance:
        """원장에서 포지션 재계산 (캐시 미사용)"""
        transactions = await self.get_key_transactions(key)
        return fold(key, transactions, as_of=as_of)

    async def get_cached_position(self, key: PositionKey) -> int | None:
        """캐시된 포지션 (없으면 None)"""
        row = await self.db.fetchone(
            """
            SELECT signed_total FROM position_cache
            WHERE issuer_id = ? AND shareholder_id = ? AND security_id = ?
            """,
            (key.issuer_id, key.shareholder_id, key.security_id),
        )
        return int(row[0]) if row else None

    async def refresh_position(self, key: PositionKey) -> PositionBalance:
        """원장에서 재계산하여 캐시 Upsert

        재계산은 순수 fold이므로 반복 실행해도 안전.
        호출자 트랜잭션이 있으면 합류.
        """
        async with self.db.transaction():
            transactions = await self.get_key_transactions(key)
            position = fold(key, transactions)
            last_seq = max((t.seq or 0 for t in transactions), default=None)
            if abs(position.signed_total) > Defaults.MAX_POSITION:
                raise ValidationError(
                    f"Position total for {key} would exceed the storable range",
                    field="quantity",
                    rule="max_position",
                    signed_total=position.signed_total,
                )

            await self.db.execute(
                """
                INSERT INTO position_cache (
                    issuer_id, shareholder_id, security_id,
                    signed_total, transaction_count, last_seq
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(issuer_id, shareholder_id, security_id) DO UPDATE SET
                    signed_total = excluded.signed_total,
                    transaction_count = excluded.transaction_count,
                    last_seq = excluded.last_seq,
                    updated_at = datetime('now')
                """,
                (
                    key.issuer_id,
                    key.shareholder_id,
                    key.security_id,
                    position.signed_total,
                    position.transaction_count,
                    last_seq,
                ),
            )
        return position

    async def check_position(
        self,
        key: PositionKey,
        actor_id: str = "system",
        strict: bool = False,
    ) -> PositionCheck:
        """캐시 검증 및 자가 복구

        캐시와 재계산 값이 다르면 ERROR 로그 + 감사 로그(POSITION_DRIFT)를 남기고
        원장 값으로 캐시를 덮어쓴다.

        Args:
            key: 포지션 키
            actor_id: 감사 로그 기록자
            strict: True면 복구 후 ConsistencyError 발생

        Returns:
            PositionCheck

        Raises:
            ConsistencyError: strict=True이고 불일치가 있었던 경우
        """
        async with self.db.transaction():
            cached = await self.get_cached_position(key)
            position = await self.recompute_position(key)
            recomputed = position.signed_total

            # 거래가 없는 키의 캐시 부재는 불일치가 아님
            drift = cached != recomputed and not (cached is None and position.transaction_count == 0)

            if drift:
                logger.error(
                    f"포지션 캐시 불일치: {key} cached={cached} recomputed={recomputed}",
                    extra={"key": str(key), "cached": cached, "recomputed": recomputed},
                )
                await self.audit.record(
                    actor_id=actor_id,
                    action=AuditAction.POSITION_DRIFT,
                    entity_type="position",
                    entity_id=str(key),
                    issuer_id=key.issuer_id,
                    before={"signed_total": cached},
                    after={"signed_total": recomputed},
                )
                await self.refresh_position(key)

        result = PositionCheck(
            key=key,
            cached=cached,
            recomputed=recomputed,
            drift=drift,
            healed=drift,
        )

        if drift and strict:
            raise ConsistencyError(
                f"Position cache drift for {key}",
                key=str(key),
                cached=cached,
                recomputed=recomputed,
            )
        return result

    async def iter_position_keys(
        self,
        issuer_id: str,
        security_id: str | None = None,
        after: tuple[str, str] | None = None,
        limit: int = 500,
    ) -> list[PositionKey]:
        """(shareholder, security) 키 페이지 (keyset)

        Args:
            issuer_id: 발행사 ID
            security_id: 특정 증권만
            after: 이전 페이지 마지막 (shareholder_id, security_id)
            limit: 페이지 크기
        """
        sql = """
            SELECT DISTINCT shareholder_id, security_id
            FROM ledger_transaction
            WHERE issuer_id = ?
        """
        params: list[Any] = [issuer_id]

        if security_id:
            sql += " AND security_id = ?"
            params.append(security_id)
        if after is not None:
            sql += " AND (shareholder_id > ? OR (shareholder_id = ? AND security_id > ?))"
            params.extend([after[0], after[0], after[1]])

        sql += " ORDER BY shareholder_id, security_id LIMIT ?"
        params.append(limit)

        rows = await self.db.fetchall(sql, tuple(params))
        return [PositionKey(issuer_id, row[0], row[1]) for row in rows]

    # -------------------------------------------------------------------------
    # 기존 거래 변경 (감사 로그 필수)
    # -------------------------------------------------------------------------

    async def correct_in_place(
        self,
        transaction_id: str,
        new_signed_quantity: int,
        actor_id: str,
        details: dict[str, Any] | None = None,
    ) -> LedgerTransaction:
        """거래 수량 직접 정정 (in_place 방식)

        before/after와 운영자를 감사 로그에 기록하고 포지션을 재계산.
        호출자 트랜잭션이 있으면 합류.
        """
        if new_signed_quantity == 0:
            raise ValueError("Corrected quantity must not be zero")

        async with self.db.transaction():
            txn = await self.require_transaction(transaction_id)
            before = {
                "signed_quantity": txn.signed_quantity,
                "quantity": txn.quantity,
                "direction": txn.direction,
            }
            direction = direction_for_sign(new_signed_quantity).value

            await self.db.execute(
                """
                UPDATE ledger_transaction
                SET signed_quantity = ?, quantity = ?, direction = ?
                WHERE transaction_id = ?
                """,
                (new_signed_quantity, abs(new_signed_quantity), direction, transaction_id),
            )
            await self.audit.record(
                actor_id=actor_id,
                action=AuditAction.SIGN_CORRECTION,
                entity_type="transaction",
                entity_id=transaction_id,
                issuer_id=txn.issuer_id,
                before=before,
                after={
                    "signed_quantity": new_signed_quantity,
                    "quantity": abs(new_signed_quantity),
                    "direction": direction,
                },
                details=details,
            )
            position = await self.refresh_position(txn.key)
            await self.flag_restrictions(txn.key, position.signed_total, actor_id=actor_id)

        txn.signed_quantity = new_signed_quantity
        txn.quantity = abs(new_signed_quantity)
        txn.direction = direction
        logger.warning(
            f"거래 직접 정정: {transaction_id} {before['signed_quantity']} → {new_signed_quantity}",
            extra={"actor_id": actor_id, "issuer_id": txn.issuer_id},
        )
        return txn

    async def void_transaction(
        self,
        transaction_id: str,
        actor_id: str,
        reason: str,
    ) -> list[LedgerTransaction]:
        """거래 void 처리

        원 거래를 참조하는 활성 정정 거래도 함께 void.
        발행사가 active일 때만 허용.

        Returns:
            void 처리된 거래 목록 (원 거래 먼저)

        Raises:
            ValidationError: 사유 누락, 이미 void
        """
        if not reason or not reason.strip():
            raise ValidationError("reason is required", field="reason", rule="required")

        async with self.db.transaction():
            txn = await self.require_transaction(transaction_id)
            await check_issuer_writable(self.db, txn.issuer_id, transactions=True, operation="void_transaction")

            if not txn.is_active:
                raise ValidationError(
                    f"Transaction already void: {transaction_id}",
                    field="transaction_id",
                    rule="already_void",
                )

            voided = [txn] + await self.get_corrections_for(transaction_id)
            for item in voided:
                await self.db.execute(
                    "UPDATE ledger_transaction SET status = ? WHERE transaction_id = ?",
                    (TransactionStatus.VOID.value, item.transaction_id),
                )
                await self.audit.record(
                    actor_id=actor_id,
                    action=AuditAction.TRANSACTION_VOIDED,
                    entity_type="transaction",
                    entity_id=item.transaction_id,
                    issuer_id=item.issuer_id,
                    before={"status": item.status},
                    after={"status": TransactionStatus.VOID.value},
                    details={
                        "reason": reason.strip(),
                        "cascade_from": transaction_id if item is not txn else None,
                    },
                )
                item.status = TransactionStatus.VOID.value

            position = await self.refresh_position(txn.key)
            await self.flag_restrictions(txn.key, position.signed_total, actor_id=actor_id)

        logger.warning(
            f"거래 void: {transaction_id} (연쇄 {len(voided) - 1}건)",
            extra={"actor_id": actor_id, "issuer_id": txn.issuer_id},
        )
        return voided

    # -------------------------------------------------------------------------
    # Corporate action
    # -------------------------------------------------------------------------

    async def upsert_corporate_action(
        self,
        issuer_id: str,
        category: str,
        ratios: dict[str, Decimal],
        actor_id: str,
    ) -> tuple[CorporateAction, bool]:
        """Corporate action Upsert (natural key = issuer + category)

        같은 비율 재제출은 쓰기 없이 기존 레코드 반환.

        Returns:
            (CorporateAction, changed)
        """
        ratios_json = json.dumps({k: str(v) for k, v in sorted(ratios.items())})

        async with self.db.transaction():
            await check_issuer_writable(self.db, issuer_id, transactions=False, operation="apply_corporate_action")

            existing = await self.get_corporate_action(issuer_id, category)
            if existing is not None and existing.ratios == ratios:
                return existing, False

            await self.db.execute(
                """
                INSERT INTO corporate_action (action_id, issuer_id, category, ratios_json, version, updated_by)
                VALUES (?, ?, ?, ?, 1, ?)
                ON CONFLICT(issuer_id, category) DO UPDATE SET
                    ratios_json = excluded.ratios_json,
                    version = corporate_action.version + 1,
                    updated_by = excluded.updated_by,
                    updated_at = datetime('now')
                """,
                (str(uuid4()), issuer_id, category, ratios_json, actor_id),
            )
            await self.audit.record(
                actor_id=actor_id,
                action=AuditAction.CORPORATE_ACTION_UPSERT,
                entity_type="corporate_action",
                entity_id=f"{issuer_id}:{category}",
                issuer_id=issuer_id,
                before=existing.to_dict() if existing else None,
                after={"ratios": {k: str(v) for k, v in ratios.items()}},
            )
            action = await self.get_corporate_action(issuer_id, category)
            assert action is not None

        logger.info(
            f"Corporate action 저장: {issuer_id} {category} v{action.version}",
            extra={"ratios": ratios_json},
        )
        return action, True

    async def get_corporate_action(self, issuer_id: str, category: str) -> CorporateAction | None:
        """Corporate action 조회"""
        row = await self.db.fetchone(
            """
            SELECT action_id, issuer_id, category, ratios_json, version, updated_by, updated_at
            FROM corporate_action WHERE issuer_id = ? AND category = ?
            """,
            (issuer_id, category),
        )
        return self._row_to_action(row) if row else None

    async def list_corporate_actions(self, issuer_id: str) -> list[CorporateAction]:
        """발행사 corporate action 목록"""
        rows = await self.db.fetchall(
            """
            SELECT action_id, issuer_id, category, ratios_json, version, updated_by, updated_at
            FROM corporate_action WHERE issuer_id = ? ORDER BY category
            """,
            (issuer_id,),
        )
        return [self._row_to_action(row) for row in rows]

    # -------------------------------------------------------------------------
    # Restriction
    # -------------------------------------------------------------------------

    async def upsert_restriction(
        self,
        key: PositionKey,
        restricted_quantity: int,
        actor_id: str,
        restriction_code: str | None = None,
        legend: str | None = None,
    ) -> tuple[Restriction, Restriction | None]:
        """제한 주식 Upsert (needs_review 해제)

        호출자 트랜잭션에 합류하며, 포지션 검증은 호출자 책임.

        Returns:
            (저장된 Restriction, 이전 Restriction)
        """
        async with self.db.transaction():
            previous = await self.get_restriction(key)
            await self.db.execute(
                """
                INSERT INTO restriction (
                    restriction_id, issuer_id, shareholder_id, security_id,
                    restricted_quantity, restriction_code, legend, needs_review, created_by
                ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?)
                ON CONFLICT(issuer_id, shareholder_id, security_id) DO UPDATE SET
                    restricted_quantity = excluded.restricted_quantity,
                    restriction_code = COALESCE(excluded.restriction_code, restriction.restriction_code),
                    legend = COALESCE(excluded.legend, restriction.legend),
                    needs_review = 0,
                    updated_at = datetime('now')
                """,
                (
                    str(uuid4()),
                    key.issuer_id,
                    key.shareholder_id,
                    key.security_id,
                    restricted_quantity,
                    restriction_code,
                    legend,
                    actor_id,
                ),
            )
            restriction = await self.get_restriction(key)
            assert restriction is not None
        return restriction, previous

    async def get_restriction(self, key: PositionKey) -> Restriction | None:
        """제한 주식 조회"""
        row = await self.db.fetchone(
            f"""
            SELECT {_RESTRICTION_COLUMNS} FROM restriction
            WHERE issuer_id = ? AND shareholder_id = ? AND security_id = ?
            """,
            (key.issuer_id, key.shareholder_id, key.security_id),
        )
        return self._row_to_restriction(row) if row else None

    async def list_restrictions(
        self,
        issuer_id: str,
        needs_review: bool | None = None,
    ) -> list[Restriction]:
        """발행사 제한 주식 목록"""
        sql = f"SELECT {_RESTRICTION_COLUMNS} FROM restriction WHERE issuer_id = ?"
        params: list[Any] = [issuer_id]
        if needs_review is not None:
            sql += " AND needs_review = ?"
            params.append(1 if needs_review else 0)
        sql += " ORDER BY shareholder_id, security_id"

        rows = await self.db.fetchall(sql, tuple(params))
        return [self._row_to_restriction(row) for row in rows]

    async def flag_restrictions(self, key: PositionKey, signed_total: int, actor_id: str) -> bool:
        """포지션이 제한 수량 아래로 내려가면 검토 대상으로 표시

        자동 축소하지 않는다. 이미 표시된 경우 다시 기록하지 않음.

        Returns:
            새로 표시했으면 True
        """
        restriction = await self.get_restriction(key)
        if restriction is None or restriction.needs_review:
            return False
        if restriction.restricted_quantity <= max(0, signed_total):
            return False

        await self.db.execute(
            """
            UPDATE restriction SET needs_review = 1, updated_at = datetime('now')
            WHERE restriction_id = ?
            """,
            (restriction.restriction_id,),
        )
        await self.audit.record(
            actor_id=actor_id,
            action=AuditAction.RESTRICTION_REVIEW_FLAGGED,
            entity_type="restriction",
            entity_id=restriction.restriction_id,
            issuer_id=key.issuer_id,
            before={"needs_review": False},
            after={"needs_review": True},
            details={
                "restricted_quantity": restriction.restricted_quantity,
                "position": signed_total,
            },
        )
        logger.warning(
            f"제한 수량이 포지션 초과 (검토 필요): {key} "
            f"restricted={restriction.restricted_quantity} position={signed_total}",
        )
        return True

    # -------------------------------------------------------------------------
    # Row 변환
    # -------------------------------------------------------------------------

    def _row_to_transaction(self, row: tuple[Any, ...]) -> LedgerTransaction:
        return LedgerTransaction(
            seq=row[0],
            transaction_id=row[1],
            issuer_id=row[2],
            shareholder_id=row[3],
            security_id=row[4],
            category=row[5],
            quantity=int(row[6]),
            signed_quantity=int(row[7]),
            direction=row[8],
            explicit_direction=row[9],
            transaction_date=parse_date(row[10]),
            note=row[11],
            status=row[12],
            source=row[13],
            submission_key=row[14],
            corrects_transaction_id=row[15],
            created_by=row[16],
            created_at=parse_utc(row[17]),
        )

    def _row_to_action(self, row: tuple[Any, ...]) -> CorporateAction:
        return CorporateAction(
            action_id=row[0],
            issuer_id=row[1],
            category=row[2],
            ratios={k: Decimal(v) for k, v in json.loads(row[3]).items()},
            version=row[4],
            updated_by=row[5],
            updated_at=row[6],
        )

    def _row_to_restriction(self, row: tuple[Any, ...]) -> Restriction:
        return Restriction(
            restriction_id=row[0],
            issuer_id=row[1],
            shareholder_id=row[2],
            security_id=row[3],
            restricted_quantity=int(row[4]),
            restriction_code=row[5],
            legend=row[6],
            needs_review=bool(row[7]),
            created_by=row[8],
            updated_at=row[9],
        )


def is_correction(txn: LedgerTransaction) -> bool:
    """정정 거래 여부"""
    return txn.category == TransactionCategory.CORRECTION.value and txn.corrects_transaction_id is not None
