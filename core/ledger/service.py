"""
원장 서비스

UI/API 계층이 호출하는 진입점.
권한 확인 → 입력 검증 → 저장소 호출 순서로 처리하며,
부호 계산은 TransactionBuilder(classifier)만 수행한다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.errors import LedgerError, NotFoundError, ValidationError
from core.ledger.aggregator import iter_positions
from core.ledger.corporate_actions import (
    DerivedQuantity,
    derive_for_category,
    derive_quantities,
    normalize_action_category,
    parse_ratios,
)
from core.ledger.entry_builder import TransactionBuilder
from core.ledger.permissions import Operation, require
from core.ledger.reconciliation import ReconciliationEngine, ReconciliationReport
from core.ledger.restrictions import RestrictedHolding, RestrictionOverlay
from core.ledger.store import AppendResult, LedgerStore, PositionCheck
from core.ledger.types import CorporateAction, LedgerTransaction, PositionBalance, Restriction
from core.storage.metadata_store import MetadataStore
from core.types import (
    CorrectionStrategy,
    IssuerStatus,
    PositionKey,
    Principal,
    SecurityClass,
    TransactionSource,
)

logger = logging.getLogger(__name__)


@dataclass
class BulkEntryResult:
    """일괄 입력 항목별 결과"""

    index: int
    ok: bool
    transaction_id: str | None = None
    created: bool = False
    error: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "ok": self.ok,
            "transaction_id": self.transaction_id,
            "created": self.created,
            "error": self.error,
        }


@dataclass
class BulkIngestResult:
    """일괄 입력 결과 (전체 롤백 없음, 항목별 성공/실패)"""

    results: list[BulkEntryResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": len(self.results),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }


class LedgerService:
    """원장 서비스

    Args:
        db: SQLite 어댑터 (쓰기 가능)
        strategy: 정정 방식 (배포 설정)

    사용 예시:
    ```python
    async with SQLiteAdapter(db_path) as db:
        service = LedgerService(db, settings.correction_strategy)
        txn = await service.ingest(
            principal,
            issuer_id=issuer_id,
            shareholder_id=holder_id,
            security_id=security_id,
            category="IPO",
            quantity=7906132,
            transaction_date="2024-01-02",
        )
        qty = await service.get_position(principal, issuer_id, holder_id, security_id)
    ```
    """

    def __init__(self, db: SQLiteAdapter, strategy: CorrectionStrategy = CorrectionStrategy.OFFSETTING):
        self.db = db
        self.store = LedgerStore(db)
        self.metadata = MetadataStore(db)
        self.restrictions = RestrictionOverlay(self.store)
        self.engine = ReconciliationEngine(self.store, strategy)

    # -------------------------------------------------------------------------
    # 조회 보조
    # -------------------------------------------------------------------------

    async def _require_security(self, issuer_id: str, security_id: str) -> dict[str, Any]:
        security = await self.metadata.get_security(security_id)
        if security is None or security["issuer_id"] != issuer_id:
            raise NotFoundError(
                f"Security {security_id} not found for issuer {issuer_id}",
                field="security_id",
                rule="exists",
            )
        return security

    async def _require_shareholder(self, shareholder_id: str, issuer_id: str | None = None) -> dict[str, Any]:
        shareholder = await self.metadata.get_shareholder(shareholder_id)
        if shareholder is None or (issuer_id is not None and shareholder["issuer_id"] != issuer_id):
            raise NotFoundError(
                f"Shareholder not found: {shareholder_id}",
                field="shareholder_id",
                rule="exists",
            )
        return shareholder

    async def _require_key(self, issuer_id: str, shareholder_id: str, security_id: str) -> PositionKey:
        await self.metadata.require_issuer(issuer_id)
        await self._require_shareholder(shareholder_id, issuer_id)
        await self._require_security(issuer_id, security_id)
        return PositionKey(issuer_id, shareholder_id, security_id)

    # -------------------------------------------------------------------------
    # 메타데이터
    # -------------------------------------------------------------------------

    async def create_issuer(self, principal: Principal, name: str, issuer_id: str | None = None) -> dict[str, Any]:
        """발행사 온보딩 (pending 상태로 생성)"""
        require(principal, Operation.MANAGE_METADATA)
        return await self.metadata.create_issuer(name, created_by=principal.principal_id, issuer_id=issuer_id)

    async def get_issuer(self, principal: Principal, issuer_id: str) -> dict[str, Any]:
        """발행사 조회"""
        require(principal, Operation.READ)
        return await self.metadata.require_issuer(issuer_id)

    async def set_issuer_status(
        self,
        principal: Principal,
        issuer_id: str,
        status: IssuerStatus | str,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """발행사 상태 변경 (superadmin)"""
        require(principal, Operation.CHANGE_ISSUER_STATUS)
        return await self.metadata.set_issuer_status(issuer_id, status, principal.principal_id, reason)

    async def add_security(
        self,
        principal: Principal,
        issuer_id: str,
        cusip: str,
        security_class: SecurityClass | str,
        name: str | None = None,
    ) -> dict[str, Any]:
        """증권 등록"""
        require(principal, Operation.MANAGE_METADATA)
        return await self.metadata.add_security(issuer_id, cusip, security_class, name)

    async def add_shareholder(
        self,
        principal: Principal,
        issuer_id: str,
        account_number: str,
        name: str,
        external_id: str | None = None,
    ) -> dict[str, Any]:
        """주주 등록"""
        require(principal, Operation.MANAGE_METADATA)
        return await self.metadata.add_shareholder(issuer_id, account_number, name, external_id)

    # -------------------------------------------------------------------------
    # 거래 입력
    # -------------------------------------------------------------------------

    async def _ingest(
        self,
        principal: Principal,
        issuer_id: str,
        shareholder_id: str,
        security_id: str,
        category: str,
        quantity: Any,
        transaction_date: str | date | None,
        explicit_direction: str | None = None,
        note: str | None = None,
        submission_id: str | None = None,
        source: TransactionSource = TransactionSource.API,
    ) -> AppendResult:
        txn = TransactionBuilder.from_request(
            issuer_id=issuer_id,
            shareholder_id=shareholder_id,
            security_id=security_id,
            category=category,
            quantity=quantity,
            transaction_date=transaction_date,
            created_by=principal.principal_id,
            explicit_direction=explicit_direction,
            note=note,
            submission_id=submission_id,
            source=source,
        )
        return await self.store.append(txn)

    async def ingest(
        self,
        principal: Principal,
        issuer_id: str,
        shareholder_id: str,
        security_id: str,
        category: str,
        quantity: Any,
        transaction_date: str | date | None,
        explicit_direction: str | None = None,
        note: str | None = None,
        submission_id: str | None = None,
    ) -> LedgerTransaction:
        """거래 입력

        Raises:
            AuthorizationError: 역할 부족, 발행사 상태
            ValidationError: 입력 오류
        """
        require(principal, Operation.INGEST)
        result = await self._ingest(
            principal,
            issuer_id=issuer_id,
            shareholder_id=shareholder_id,
            security_id=security_id,
            category=category,
            quantity=quantity,
            transaction_date=transaction_date,
            explicit_direction=explicit_direction,
            note=note,
            submission_id=submission_id,
        )
        return result.transaction

    async def bulk_ingest(
        self,
        principal: Principal,
        issuer_id: str,
        entries: list[dict[str, Any]],
        source: TransactionSource = TransactionSource.IMPORT,
    ) -> BulkIngestResult:
        """일괄 입력

        항목마다 단건 입력 경로를 그대로 사용하고 항목별 결과를 반환.
        실패한 항목이 있어도 성공한 항목은 유지된다.
        """
        require(principal, Operation.INGEST)

        outcome = BulkIngestResult()
        for index, entry in enumerate(entries):
            try:
                result = await self._ingest(
                    principal,
                    issuer_id=issuer_id,
                    shareholder_id=entry.get("shareholder_id"),
                    security_id=entry.get("security_id"),
                    category=entry.get("category"),
                    quantity=entry.get("quantity"),
                    transaction_date=entry.get("transaction_date"),
                    explicit_direction=entry.get("explicit_direction"),
                    note=entry.get("note"),
                    submission_id=entry.get("submission_id"),
                    source=source,
                )
            except LedgerError as e:
                logger.warning(f"일괄 입력 실패 [{index}]: {e.message}", extra={"issuer_id": issuer_id})
                outcome.results.append(BulkEntryResult(index=index, ok=False, error=e.to_dict()))
                continue

            outcome.results.append(BulkEntryResult(
                index=index,
                ok=True,
                transaction_id=result.transaction.transaction_id,
                created=result.created,
            ))

        logger.info(
            f"일괄 입력 완료: {issuer_id} 성공 {outcome.succeeded} / 실패 {outcome.failed}",
        )
        return outcome

    async def import_legacy(
        self,
        principal: Principal,
        issuer_id: str,
        records: list[dict[str, Any]],
    ) -> BulkIngestResult:
        """레거시 데이터 이관 (저장된 부호 보존)

        부호 오류는 이후 run_reconciliation으로 정정.
        """
        require(principal, Operation.INGEST)

        outcome = BulkIngestResult()
        for index, record in enumerate(records):
            try:
                txn = TransactionBuilder.from_legacy_record(record, issuer_id, created_by=principal.principal_id)
                result = await self.store.append(txn)
            except LedgerError as e:
                outcome.results.append(BulkEntryResult(index=index, ok=False, error=e.to_dict()))
                continue
            outcome.results.append(BulkEntryResult(
                index=index,
                ok=True,
                transaction_id=result.transaction.transaction_id,
                created=result.created,
            ))
        return outcome

    async def void_transaction(self, principal: Principal, transaction_id: str, reason: str) -> list[LedgerTransaction]:
        """거래 void (연결된 정정 거래 포함)"""
        require(principal, Operation.VOID_TRANSACTION)
        return await self.store.void_transaction(transaction_id, principal.principal_id, reason)

    async def list_transactions(
        self,
        principal: Principal,
        issuer_id: str,
        security_id: str | None = None,
        shareholder_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """이체 원장 조회"""
        require(principal, Operation.READ)
        await self.metadata.require_issuer(issuer_id)
        return await self.store.list_journal(
            issuer_id,
            security_id=security_id,
            shareholder_id=shareholder_id,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=offset,
        )

    # -------------------------------------------------------------------------
    # 포지션
    # -------------------------------------------------------------------------

    async def get_position_balance(
        self,
        principal: Principal,
        issuer_id: str,
        shareholder_id: str,
        security_id: str,
        as_of: date | None = None,
    ) -> PositionBalance:
        """포지션 조회 (PositionBalance)

        현재 포지션은 캐시를 검증하고 불일치 시 원장 값으로 복구.
        """
        require(principal, Operation.READ)
        key = await self._require_key(issuer_id, shareholder_id, security_id)

        if as_of is not None:
            return await self.store.recompute_position(key, as_of=as_of)

        check = await self.store.check_position(key, actor_id=principal.principal_id)
        return PositionBalance(key=key, signed_total=check.recomputed)

    async def get_position(
        self,
        principal: Principal,
        issuer_id: str,
        shareholder_id: str,
        security_id: str,
        as_of: date | None = None,
    ) -> int:
        """포지션 조회 (0 이상 정수)"""
        balance = await self.get_position_balance(principal, issuer_id, shareholder_id, security_id, as_of)
        return balance.display_total

    async def get_holders(
        self,
        principal: Principal,
        issuer_id: str,
        security_id: str | None = None,
        as_of: date | None = None,
        include_zero: bool = False,
    ) -> list[PositionBalance]:
        """보유자 현황 (기준일 지원)"""
        require(principal, Operation.READ)
        await self.metadata.require_issuer(issuer_id)
        if security_id:
            await self._require_security(issuer_id, security_id)

        holders = []
        async for position in iter_positions(self.store, issuer_id, security_id=security_id, as_of=as_of):
            if include_zero or position.display_total > 0:
                holders.append(position)
        return holders

    async def verify_positions(self, principal: Principal, issuer_id: str) -> list[PositionCheck]:
        """발행사 전체 포지션 캐시 검증 및 복구

        키마다 캐시를 원장 값과 비교해 복구한 뒤 제한 수량 초과 여부도 다시 확인.
        """
        require(principal, Operation.RUN_RECONCILIATION)
        await self.metadata.require_issuer(issuer_id)

        checks: list[PositionCheck] = []
        after: tuple[str, str] | None = None
        while True:
            keys = await self.store.iter_position_keys(issuer_id, after=after)
            if not keys:
                break
            for key in keys:
                checks.append(await self.store.check_position(key, actor_id=principal.principal_id))
                await self.restrictions.flag_if_exceeds(key, actor_id=principal.principal_id)
            after = (keys[-1].shareholder_id, keys[-1].security_id)

        drifted = sum(1 for c in checks if c.drift)
        logger.info(f"포지션 검증 완료: {issuer_id} {len(checks)}건 중 불일치 {drifted}건")
        return checks

    # -------------------------------------------------------------------------
    # Corporate action
    # -------------------------------------------------------------------------

    async def apply_corporate_action(
        self,
        principal: Principal,
        issuer_id: str,
        category: str,
        ratios: dict[str, Any],
    ) -> CorporateAction:
        """Corporate action 등록/수정 (issuer + category당 하나)"""
        require(principal, Operation.APPLY_CORPORATE_ACTION)
        normalized = normalize_action_category(category)
        parsed = parse_ratios(ratios)
        await self.metadata.require_issuer(issuer_id)
        action, _ = await self.store.upsert_corporate_action(
            issuer_id,
            normalized,
            parsed,
            actor_id=principal.principal_id,
        )
        return action

    async def list_corporate_actions(self, principal: Principal, issuer_id: str) -> list[CorporateAction]:
        """Corporate action 목록"""
        require(principal, Operation.READ)
        return await self.store.list_corporate_actions(issuer_id)

    async def derive_from_corporate_action(
        self,
        principal: Principal,
        issuer_id: str,
        category: str,
        units: int,
        transaction_category: str | None = None,
    ) -> list[DerivedQuantity]:
        """Units 수량 → 파생 증권 수량"""
        require(principal, Operation.READ)
        normalized = normalize_action_category(category)
        action = await self.store.get_corporate_action(issuer_id, normalized)
        if action is None:
            raise NotFoundError(
                f"No corporate action '{normalized}' for issuer {issuer_id}",
                field="category",
                rule="exists",
            )
        if transaction_category:
            return derive_for_category(action, transaction_category, units)
        return derive_quantities(action.ratios, units)

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    async def run_reconciliation(
        self,
        principal: Principal,
        issuer_id: str,
        security_id: str | None = None,
        dry_run: bool = True,
        expected_total: int | None = None,
    ) -> ReconciliationReport:
        """부호 이상 정정 (admin 이상)"""
        require(principal, Operation.RUN_RECONCILIATION)
        await self.metadata.require_issuer(issuer_id)
        if security_id:
            await self._require_security(issuer_id, security_id)
        if expected_total is not None and (isinstance(expected_total, bool) or not isinstance(expected_total, int)):
            raise ValidationError("expected_total must be an integer", field="expected_total", rule="integer")

        return await self.engine.run(
            issuer_id,
            security_id=security_id,
            dry_run=dry_run,
            expected_total=expected_total,
            operator_id=principal.principal_id,
        )

    # -------------------------------------------------------------------------
    # Restriction
    # -------------------------------------------------------------------------

    async def set_restriction(
        self,
        principal: Principal,
        shareholder_id: str,
        security_id: str,
        quantity: Any,
        restriction_code: str | None = None,
        legend: str | None = None,
    ) -> Restriction:
        """제한 수량 설정 (발행사는 주주 소속으로 결정)"""
        require(principal, Operation.SET_RESTRICTION)
        shareholder = await self._require_shareholder(shareholder_id)
        issuer_id = shareholder["issuer_id"]
        await self._require_security(issuer_id, security_id)

        return await self.restrictions.set_restriction(
            PositionKey(issuer_id, shareholder_id, security_id),
            quantity,
            actor_id=principal.principal_id,
            restriction_code=restriction_code,
            legend=legend,
        )

    async def list_restrictions(
        self,
        principal: Principal,
        issuer_id: str,
        needs_review: bool | None = None,
    ) -> list[RestrictedHolding]:
        """제한 주식 + 포지션"""
        require(principal, Operation.READ)
        await self.metadata.require_issuer(issuer_id)
        return await self.restrictions.list_with_positions(issuer_id, needs_review=needs_review)
