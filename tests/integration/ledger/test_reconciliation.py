"""
ReconciliationEngine 통합 테스트

레거시 이관 시 부호가 뒤집힌 출고 거래(DWAC Withdrawal +20,000) 정정
"""

from datetime import date

import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.state_machines import AnomalyState
from core.errors import AuthorizationError, ConsistencyError, ValidationError
from core.ledger.reconciliation import ReconciliationEngine, ReconciliationReport
from core.ledger.store import LedgerStore
from core.storage.metadata_store import MetadataStore
from core.types import AuditAction, CorrectionStrategy, IssuerStatus, TransactionStatus
from tests.utils.helpers import LedgerFixture, legacy_txn, request_txn


async def seed_inverted_withdrawal(store: LedgerStore, ledger: LedgerFixture) -> str:
    """IPO 7,906,132 + 부호 오류 DWAC Withdrawal(+20,000)"""
    await store.append(request_txn(ledger))
    result = await store.append(legacy_txn(ledger, "1001", "DWAC Withdrawal", 20_000, "2024-03-01"))
    return result.transaction.transaction_id


class TestDryRun:
    """dry-run은 읽기 전용"""

    @pytest.mark.asyncio
    async def test_reports_plan_without_writes(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        store = LedgerStore(db)
        bad_id = await seed_inverted_withdrawal(store, ledger)
        engine = ReconciliationEngine(store)

        report = await engine.run(ledger.issuer_id, ledger.units_id, dry_run=True, operator_id="admin-1")

        assert report.anomaly_count == 1
        anomaly = report.anomalies[0]
        assert anomaly.transaction_id == bad_id
        assert anomaly.effective_quantity == 20_000
        assert anomaly.correction == -40_000
        assert anomaly.state == AnomalyState.PLANNED.value
        assert report.old_total == 7_926_132
        assert report.projected_total == 7_886_132
        assert report.security_totals[ledger.units_id] == {
            "old_total": 7_926_132,
            "projected_total": 7_886_132,
        }
        assert report.writes == 0
        assert report.new_total is None

        # 쓰기 없음
        assert await store.get_cached_position(ledger.units_key) == 7_926_132
        assert len(await store.list_transactions(ledger.issuer_id)) == 2
        assert await store.audit.count(AuditAction.RECONCILIATION_RUN) == 0

    @pytest.mark.asyncio
    async def test_to_dict(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        store = LedgerStore(db)
        bad_id = await seed_inverted_withdrawal(store, ledger)

        data = (await ReconciliationEngine(store).run(ledger.issuer_id)).to_dict()

        assert data["dry_run"] is True
        assert data["affected_transaction_ids"] == [bad_id]
        assert data["anomalies"][0]["stored_quantity"] == 20_000
        assert data["anomalies"][0]["transaction_date"] == "2024-03-01"


class TestOffsettingApply:
    """정정 거래 방식"""

    @pytest.mark.asyncio
    async def test_apply_and_second_run(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        """적용 후 포지션 -40,000 이동, 재실행은 이상 0건 / 쓰기 0건"""
        store = LedgerStore(db)
        bad_id = await seed_inverted_withdrawal(store, ledger)
        engine = ReconciliationEngine(store, CorrectionStrategy.OFFSETTING)

        report = await engine.run(ledger.issuer_id, ledger.units_id, dry_run=False, operator_id="admin-1")

        assert report.writes == 1
        assert report.verified is True
        assert report.new_total == 7_886_132
        assert report.anomalies[0].state == AnomalyState.VERIFIED.value
        assert await store.get_cached_position(ledger.units_key) == 7_886_132

        # 원 거래는 그대로, 정정 거래가 추가됨
        original = await store.require_transaction(bad_id)
        assert original.signed_quantity == 20_000
        corrections = await store.get_corrections_for(bad_id)
        assert len(corrections) == 1
        assert corrections[0].signed_quantity == -40_000
        assert corrections[0].transaction_date == date(2024, 3, 1)
        assert corrections[0].transaction_id == report.anomalies[0].applied_transaction_id

        assert await store.audit.count(AuditAction.SIGN_CORRECTION) == 1
        assert await store.audit.count(AuditAction.RECONCILIATION_RUN) == 1

        second = await engine.run(ledger.issuer_id, ledger.units_id, dry_run=False, operator_id="admin-1")
        assert second.anomaly_count == 0
        assert second.writes == 0
        assert second.verified is True
        assert len(await store.list_transactions(ledger.issuer_id)) == 3
        assert await store.audit.count(AuditAction.RECONCILIATION_RUN) == 1

    @pytest.mark.asyncio
    async def test_history_as_of(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        """정정 거래는 원 거래일로 기록되어 기준일 이력도 정정"""
        store = LedgerStore(db)
        await seed_inverted_withdrawal(store, ledger)
        await ReconciliationEngine(store).run(ledger.issuer_id, dry_run=False, operator_id="admin-1")

        before = await store.recompute_position(ledger.units_key, as_of=date(2024, 2, 1))
        after = await store.recompute_position(ledger.units_key, as_of=date(2024, 3, 1))
        assert before.signed_total == 7_906_132
        assert after.signed_total == 7_886_132

    @pytest.mark.asyncio
    async def test_stale_anomaly_skipped(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        """계획 이후 다른 실행이 먼저 정정하면 SKIPPED"""
        store = LedgerStore(db)
        await seed_inverted_withdrawal(store, ledger)
        engine = ReconciliationEngine(store)

        anomalies, _, transactions = await engine.detect(ledger.issuer_id)
        engine.plan(
            ReconciliationReport("stale", ledger.issuer_id, None, "offsetting", False),
            anomalies,
            transactions,
        )
        await engine.run(ledger.issuer_id, dry_run=False, operator_id="admin-1")

        wrote = await engine._apply(anomalies[0], "stale", "admin-2")

        assert wrote is False
        assert anomalies[0].state == AnomalyState.SKIPPED.value
        assert await store.get_cached_position(ledger.units_key) == 7_886_132


class TestInPlaceApply:
    """직접 정정 방식"""

    @pytest.mark.asyncio
    async def test_rewrites_original(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        store = LedgerStore(db)
        bad_id = await seed_inverted_withdrawal(store, ledger)
        engine = ReconciliationEngine(store, CorrectionStrategy.IN_PLACE)

        report = await engine.run(ledger.issuer_id, ledger.units_id, dry_run=False, operator_id="admin-1")

        assert report.writes == 1
        assert report.anomalies[0].applied_transaction_id == bad_id
        corrected = await store.require_transaction(bad_id)
        assert corrected.signed_quantity == -20_000
        assert corrected.direction == "DEBIT"
        assert len(await store.list_transactions(ledger.issuer_id)) == 2
        assert await store.get_cached_position(ledger.units_key) == 7_886_132

        records = await store.audit.list_for_entity("transaction", bad_id)
        assert records[-1].action == AuditAction.SIGN_CORRECTION.value
        assert records[-1].before["signed_quantity"] == 20_000
        assert records[-1].details["strategy"] == "in_place"

        second = await engine.run(ledger.issuer_id, ledger.units_id, dry_run=False, operator_id="admin-1")
        assert second.anomaly_count == 0


class TestVerification:
    """기대 합계 검증"""

    @pytest.mark.asyncio
    async def test_expected_total_matches(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        store = LedgerStore(db)
        await seed_inverted_withdrawal(store, ledger)

        report = await ReconciliationEngine(store).run(
            ledger.issuer_id,
            ledger.units_id,
            dry_run=False,
            expected_total=7_886_132,
            operator_id="admin-1",
        )
        assert report.verified is True

    @pytest.mark.asyncio
    async def test_expected_total_mismatch(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        """기대 합계 불일치 → ConsistencyError + 감사 로그 (정정은 커밋된 상태)"""
        store = LedgerStore(db)
        await seed_inverted_withdrawal(store, ledger)

        with pytest.raises(ConsistencyError) as exc_info:
            await ReconciliationEngine(store).run(
                ledger.issuer_id,
                ledger.units_id,
                dry_run=False,
                expected_total=7_906_132,
                operator_id="admin-1",
            )

        assert exc_info.value.cached == 7_906_132
        assert exc_info.value.recomputed == 7_886_132
        assert await store.audit.count(AuditAction.RECONCILIATION_VERIFY_FAILED) == 1
        assert await store.get_cached_position(ledger.units_key) == 7_886_132

    @pytest.mark.asyncio
    async def test_expected_total_requires_security(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        store = LedgerStore(db)
        with pytest.raises(ValidationError) as exc_info:
            await ReconciliationEngine(store).run(ledger.issuer_id, expected_total=1)
        assert exc_info.value.rule == "required_with_expected_total"


class TestScope:
    """범위 / 대상 선별"""

    @pytest.mark.asyncio
    async def test_other_security_untouched(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        """증권 범위 밖의 이상 항목은 정정하지 않음"""
        store = LedgerStore(db)
        await store.append(request_txn(ledger, security_id=ledger.class_a_id))
        await store.append(
            legacy_txn(ledger, "2001", "Transfer Debit", 500, "2024-03-01", security_id=ledger.class_a_id)
        )
        engine = ReconciliationEngine(store)

        units = await engine.run(ledger.issuer_id, ledger.units_id, dry_run=False, operator_id="admin-1")
        assert units.anomaly_count == 0
        assert units.writes == 0

        whole = await engine.run(ledger.issuer_id, dry_run=True)
        assert whole.anomaly_count == 1
        assert whole.anomalies[0].transaction.security_id == ledger.class_a_id

    @pytest.mark.asyncio
    async def test_void_transactions_ignored(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        store = LedgerStore(db)
        bad_id = await seed_inverted_withdrawal(store, ledger)
        await store.void_transaction(bad_id, actor_id="admin-1", reason="duplicate import")

        report = await ReconciliationEngine(store).run(ledger.issuer_id, dry_run=True)

        assert report.anomaly_count == 0
        assert report.old_total == 7_906_132
        voided = await store.list_transactions(ledger.issuer_id, status=TransactionStatus.VOID)
        assert [t.transaction_id for t in voided] == [bad_id]

    @pytest.mark.asyncio
    async def test_unclassifiable_reported(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        """방향 없는 Conversion은 분류 불가로 보고하고 정정하지 않음"""
        store = LedgerStore(db)
        await store.append(request_txn(ledger))
        conversion = await store.append(legacy_txn(ledger, "3001", "Conversion", -100, "2024-04-01"))

        report = await ReconciliationEngine(store).run(ledger.issuer_id, dry_run=False, operator_id="admin-1")

        assert report.unclassifiable == [conversion.transaction.transaction_id]
        assert report.anomaly_count == 0
        assert report.writes == 0

    @pytest.mark.asyncio
    async def test_suspended_issuer_rejects_apply(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        """suspended 발행사는 dry-run만 가능"""
        store = LedgerStore(db)
        await seed_inverted_withdrawal(store, ledger)
        await MetadataStore(db).set_issuer_status(ledger.issuer_id, IssuerStatus.SUSPENDED, actor_id="super-1")
        engine = ReconciliationEngine(store)

        dry = await engine.run(ledger.issuer_id, dry_run=True)
        assert dry.anomaly_count == 1

        with pytest.raises(AuthorizationError) as exc_info:
            await engine.run(ledger.issuer_id, dry_run=False, operator_id="admin-1")
        assert exc_info.value.reason == "issuer_suspended"
        assert await store.get_cached_position(ledger.units_key) == 7_926_132
