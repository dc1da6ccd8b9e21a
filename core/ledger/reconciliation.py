"""
Reconciliation Engine

저장된 부호가 classifier 결과와 다른 거래를 찾아 정정.

상태 전이 (이상 항목별):
- DETECTED: 유효 수량 부호 ≠ classifier 부호 (활성 거래만)
- PLANNED: correction = -2 × 유효 수량, dry-run 보고 (읽기 전용)
- APPLIED: 쓰기 트랜잭션 안에서 재검증 후 커밋 (offsetting 또는 in_place)
- SKIPPED: 재검증 시 이미 해소됨
- VERIFIED: 재계산 합계가 기대값과 일치 (기대값 없으면 잔여 이상 항목 0건)

유효 수량 = 저장 수량 + 해당 거래를 참조하는 활성 정정 거래 합계.
두 번째 실행은 이상 항목 0건, 쓰기 0건이어야 한다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from core.domain.state_machines import AnomalyState, AnomalyStateMachine
from core.errors import ConsistencyError, LedgerError, ValidationError
from core.ledger.aggregator import iter_positions
from core.ledger.classifier import classify
from core.ledger.entry_builder import TransactionBuilder
from core.ledger.store import is_correction
from core.ledger.types import LedgerTransaction
from core.storage.metadata_store import check_issuer_writable
from core.types import AuditAction, CorrectionStrategy, TransactionStatus

if TYPE_CHECKING:
    from core.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


@dataclass
class Anomaly:
    """부호 이상 항목"""

    transaction: LedgerTransaction
    correction_total: int
    expected_sign: int
    machine: AnomalyStateMachine = field(default_factory=AnomalyStateMachine)
    correction: int | None = None
    applied_transaction_id: str | None = None

    @property
    def transaction_id(self) -> str:
        return self.transaction.transaction_id

    @property
    def stored_quantity(self) -> int:
        return self.transaction.signed_quantity

    @property
    def effective_quantity(self) -> int:
        return self.transaction.signed_quantity + self.correction_total

    @property
    def state(self) -> str:
        return self.machine.state

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "shareholder_id": self.transaction.shareholder_id,
            "security_id": self.transaction.security_id,
            "category": self.transaction.category,
            "transaction_date": self.transaction.transaction_date.isoformat(),
            "stored_quantity": self.stored_quantity,
            "effective_quantity": self.effective_quantity,
            "expected_sign": self.expected_sign,
            "correction": self.correction,
            "state": self.state,
            "applied_transaction_id": self.applied_transaction_id,
        }


@dataclass
class ReconciliationReport:
    """정정 실행 보고서"""

    run_id: str
    issuer_id: str
    security_id: str | None
    strategy: str
    dry_run: bool
    anomalies: list[Anomaly] = field(default_factory=list)
    unclassifiable: list[str] = field(default_factory=list)
    security_totals: dict[str, dict[str, int]] = field(default_factory=dict)
    old_total: int = 0
    projected_total: int = 0
    new_total: int | None = None
    expected_total: int | None = None
    writes: int = 0
    verified: bool = False

    @property
    def anomaly_count(self) -> int:
        return len(self.anomalies)

    @property
    def affected_transaction_ids(self) -> list[str]:
        return [a.transaction_id for a in self.anomalies]

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "issuer_id": self.issuer_id,
            "security_id": self.security_id,
            "strategy": self.strategy,
            "dry_run": self.dry_run,
            "anomaly_count": self.anomaly_count,
            "anomalies": [a.to_dict() for a in self.anomalies],
            "affected_transaction_ids": self.affected_transaction_ids,
            "unclassifiable": self.unclassifiable,
            "security_totals": self.security_totals,
            "old_total": self.old_total,
            "projected_total": self.projected_total,
            "new_total": self.new_total,
            "expected_total": self.expected_total,
            "writes": self.writes,
            "verified": self.verified,
        }


class ReconciliationEngine:
    """부호 이상 감지 및 정정

    Args:
        store: LedgerStore
        strategy: 정정 방식 (배포 단위로 하나)

    사용 예시:
    ```python
    engine = ReconciliationEngine(store, CorrectionStrategy.OFFSETTING)

    # dry-run (쓰기 없음)
    report = await engine.run(issuer_id, security_id, dry_run=True, operator_id="admin-1")

    # 실제 적용
    report = await engine.run(issuer_id, security_id, dry_run=False, operator_id="admin-1")
    ```
    """

    def __init__(self, store: LedgerStore, strategy: CorrectionStrategy = CorrectionStrategy.OFFSETTING):
        self.store = store
        self.strategy = CorrectionStrategy(strategy)

    # -------------------------------------------------------------------------
    # DETECTED
    # -------------------------------------------------------------------------

    async def detect(
        self,
        issuer_id: str,
        security_id: str | None = None,
    ) -> tuple[list[Anomaly], list[str], list[LedgerTransaction]]:
        """범위 내 부호 이상 감지 (읽기 전용)

        Returns:
            (이상 항목, 분류 불가 거래 ID, 범위 내 활성 거래)
        """
        transactions = await self.store.list_transactions(
            issuer_id,
            security_id=security_id,
            status=TransactionStatus.ACTIVE,
        )

        corrections: dict[str, int] = {}
        for txn in transactions:
            if is_correction(txn):
                corrections[txn.corrects_transaction_id] = (
                    corrections.get(txn.corrects_transaction_id, 0) + txn.signed_quantity
                )

        anomalies: list[Anomaly] = []
        unclassifiable: list[str] = []
        for txn in transactions:
            if is_correction(txn):
                continue

            try:
                expected = classify(txn.category, txn.explicit_direction).sign
            except ValidationError:
                logger.warning(
                    f"분류 불가 거래 (정정 대상 제외): {txn.transaction_id} {txn.category}",
                    extra={"issuer_id": issuer_id},
                )
                unclassifiable.append(txn.transaction_id)
                continue

            effective = txn.signed_quantity + corrections.get(txn.transaction_id, 0)
            if effective != 0 and _sign(effective) != expected:
                anomalies.append(Anomaly(
                    transaction=txn,
                    correction_total=corrections.get(txn.transaction_id, 0),
                    expected_sign=expected,
                ))

        return anomalies, unclassifiable, transactions

    # -------------------------------------------------------------------------
    # PLANNED
    # -------------------------------------------------------------------------

    def plan(
        self,
        report: ReconciliationReport,
        anomalies: list[Anomaly],
        transactions: list[LedgerTransaction],
    ) -> None:
        """정정 수량 계산 및 예상 합계 (읽기 전용)"""
        security_totals: dict[str, dict[str, int]] = {}
        for txn in transactions:
            totals = security_totals.setdefault(txn.security_id, {"old_total": 0, "projected_total": 0})
            totals["old_total"] += txn.signed_quantity
            totals["projected_total"] += txn.signed_quantity

        for anomaly in anomalies:
            anomaly.correction = -2 * anomaly.effective_quantity
            anomaly.machine.transition(AnomalyState.PLANNED)
            security_totals[anomaly.transaction.security_id]["projected_total"] += anomaly.correction

        report.anomalies = anomalies
        report.security_totals = security_totals
        report.old_total = sum(t["old_total"] for t in security_totals.values())
        report.projected_total = sum(t["projected_total"] for t in security_totals.values())

    # -------------------------------------------------------------------------
    # APPLIED
    # -------------------------------------------------------------------------

    async def _apply(self, anomaly: Anomaly, run_id: str, operator_id: str) -> bool:
        """이상 항목 하나를 자체 트랜잭션으로 적용

        커밋 직전 재검증하여 이미 해소된 경우 건너뜀.

        Returns:
            쓰기 발생 여부
        """
        db = self.store.db
        async with db.transaction():
            current = await self.store.require_transaction(anomaly.transaction_id)
            await check_issuer_writable(db, current.issuer_id, transactions=True, operation="run_reconciliation")

            if not current.is_active:
                anomaly.machine.transition(AnomalyState.SKIPPED)
                return False

            corrections = await self.store.get_corrections_for(current.transaction_id)
            effective = current.signed_quantity + sum(c.signed_quantity for c in corrections)
            expected = classify(current.category, current.explicit_direction).sign

            if effective == 0 or _sign(effective) == expected:
                logger.info(
                    f"이미 해소된 이상 항목 (건너뜀): {current.transaction_id}",
                    extra={"run_id": run_id},
                )
                anomaly.machine.transition(AnomalyState.SKIPPED)
                return False

            delta = -2 * effective
            anomaly.correction = delta
            details = {
                "run_id": run_id,
                "strategy": self.strategy.value,
                "category": current.category,
                "correction": delta,
            }

            if self.strategy == CorrectionStrategy.OFFSETTING:
                correction_txn = TransactionBuilder.offsetting_correction(
                    original=current,
                    delta=delta,
                    run_id=run_id,
                    created_by=operator_id,
                )
                result = await self.store.append(correction_txn)
                anomaly.applied_transaction_id = result.transaction.transaction_id
                await self.store.audit.record(
                    actor_id=operator_id,
                    action=AuditAction.SIGN_CORRECTION,
                    entity_type="transaction",
                    entity_id=current.transaction_id,
                    issuer_id=current.issuer_id,
                    before={"effective_quantity": effective},
                    after={"effective_quantity": effective + delta},
                    details={**details, "correction_transaction_id": anomaly.applied_transaction_id},
                )
            else:
                await self.store.correct_in_place(
                    transaction_id=current.transaction_id,
                    new_signed_quantity=current.signed_quantity + delta,
                    actor_id=operator_id,
                    details=details,
                )
                anomaly.applied_transaction_id = current.transaction_id

            anomaly.machine.transition(AnomalyState.APPLIED)

        logger.info(
            f"부호 정정 적용: {anomaly.transaction_id} {effective:+d} → {effective + delta:+d}",
            extra={"run_id": run_id, "strategy": self.strategy.value},
        )
        return True

    # -------------------------------------------------------------------------
    # VERIFIED
    # -------------------------------------------------------------------------

    async def _scope_total(self, issuer_id: str, security_id: str | None) -> int:
        """범위 내 포지션 재계산 합계"""
        total = 0
        async for position in iter_positions(self.store, issuer_id, security_id=security_id):
            total += position.signed_total
        return total

    async def _verify(self, report: ReconciliationReport, operator_id: str) -> None:
        """재계산 검증

        Raises:
            ConsistencyError: 기대 합계 불일치 또는 잔여 이상 항목
        """
        report.new_total = await self._scope_total(report.issuer_id, report.security_id)

        if report.expected_total is not None:
            if report.new_total != report.expected_total:
                await self._verify_failed(
                    report,
                    operator_id,
                    f"Recomputed total {report.new_total} does not match expected {report.expected_total}",
                )
        else:
            remaining, _, _ = await self.detect(report.issuer_id, report.security_id)
            affected = set(report.affected_transaction_ids)
            still_wrong = [a.transaction_id for a in remaining if a.transaction_id in affected]
            if still_wrong:
                await self._verify_failed(
                    report,
                    operator_id,
                    f"Sign anomalies remain after correction: {still_wrong}",
                )

        for anomaly in report.anomalies:
            anomaly.machine.transition(AnomalyState.VERIFIED)
        report.verified = True

    async def _verify_failed(self, report: ReconciliationReport, operator_id: str, message: str) -> None:
        logger.error(
            f"정정 검증 실패: {message}",
            extra={
                "run_id": report.run_id,
                "issuer_id": report.issuer_id,
                "security_id": report.security_id,
                "expected_total": report.expected_total,
                "new_total": report.new_total,
            },
        )
        await self.store.audit.record(
            actor_id=operator_id,
            action=AuditAction.RECONCILIATION_VERIFY_FAILED,
            entity_type="reconciliation_run",
            entity_id=report.run_id,
            issuer_id=report.issuer_id,
            before={"old_total": report.old_total},
            after={"new_total": report.new_total},
            details={"expected_total": report.expected_total, "message": message},
        )
        raise ConsistencyError(
            message,
            key=f"{report.issuer_id}:{report.security_id or '*'}",
            cached=report.expected_total,
            recomputed=report.new_total,
            run_id=report.run_id,
        )

    # -------------------------------------------------------------------------
    # 실행
    # -------------------------------------------------------------------------

    async def run(
        self,
        issuer_id: str,
        security_id: str | None = None,
        dry_run: bool = True,
        expected_total: int | None = None,
        operator_id: str = "system",
    ) -> ReconciliationReport:
        """정정 실행

        Args:
            issuer_id: 발행사 ID
            security_id: 증권 ID (None이면 발행사 전체)
            dry_run: True면 PLANNED까지만 (쓰기 없음)
            expected_total: 외부 기대 합계 (security_id 필수)
            operator_id: 운영자 ID (감사 로그)

        Returns:
            ReconciliationReport

        Raises:
            ValidationError: expected_total에 security_id 누락
            ConsistencyError: 검증 실패
        """
        if expected_total is not None and not security_id:
            raise ValidationError(
                "expected_total requires security_id",
                field="security_id",
                rule="required_with_expected_total",
            )

        report = ReconciliationReport(
            run_id=str(uuid4()),
            issuer_id=issuer_id,
            security_id=security_id,
            strategy=self.strategy.value,
            dry_run=dry_run,
            expected_total=expected_total,
        )

        anomalies, unclassifiable, transactions = await self.detect(issuer_id, security_id)
        report.unclassifiable = unclassifiable
        self.plan(report, anomalies, transactions)

        logger.info(
            f"정정 계획: {issuer_id}/{security_id or '*'} 이상 {len(anomalies)}건, "
            f"합계 {report.old_total} → {report.projected_total} (dry_run={dry_run})",
            extra={"run_id": report.run_id},
        )

        if dry_run:
            return report

        try:
            for anomaly in anomalies:
                if await self._apply(anomaly, report.run_id, operator_id):
                    report.writes += 1
        except LedgerError:
            logger.error(
                f"정정 적용 중단: {report.writes}/{len(anomalies)}건 적용됨",
                extra={"run_id": report.run_id, "issuer_id": issuer_id},
            )
            raise

        await self._verify(report, operator_id)

        if report.writes > 0:
            await self.store.audit.record(
                actor_id=operator_id,
                action=AuditAction.RECONCILIATION_RUN,
                entity_type="reconciliation_run",
                entity_id=report.run_id,
                issuer_id=issuer_id,
                before={"total": report.old_total},
                after={"total": report.new_total},
                details={
                    "security_id": security_id,
                    "strategy": self.strategy.value,
                    "anomaly_count": report.anomaly_count,
                    "writes": report.writes,
                    "affected_transaction_ids": report.affected_transaction_ids,
                    "expected_total": expected_total,
                },
            )

        logger.info(
            f"정정 완료: {issuer_id}/{security_id or '*'} 쓰기 {report.writes}건, "
            f"합계 {report.old_total} → {report.new_total}",
            extra={"run_id": report.run_id},
        )
        return report
