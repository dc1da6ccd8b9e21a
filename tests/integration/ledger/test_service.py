"""
LedgerService 통합 테스트

실제 SPAC 원장 흐름:
- A: DWAC Withdrawal 20,000 입력 → -20,000 저장
- B: 레거시 +20,000 DWAC Withdrawal → 정정 -40,000
- C: IPO 7,906,132 - DWAC Withdrawal 20,000 = 7,886,132
- D: separation 1.0/1.0 → Class A / Rights 각 7,886,132
"""

from datetime import date
from decimal import Decimal

import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.errors import AuthorizationError, NotFoundError, ValidationError
from core.ledger.service import LedgerService
from core.types import AuditAction, IssuerStatus, Principal
from tests.utils.helpers import LedgerFixture


async def ingest(service: LedgerService, principal: Principal, ledger: LedgerFixture, **overrides):
    params = {
        "issuer_id": ledger.issuer_id,
        "shareholder_id": ledger.holder_id,
        "security_id": ledger.units_id,
        "category": "IPO",
        "quantity": 7_906_132,
        "transaction_date": "2024-01-02",
    }
    params.update(overrides)
    return await service.ingest(principal, **params)


class TestScenarios:
    """기본 시나리오"""

    @pytest.mark.asyncio
    async def test_withdrawal_is_negative(
        self, service: LedgerService, ledger: LedgerFixture, admin: Principal
    ) -> None:
        """A: 출고 카테고리는 양수 입력도 음수로 저장"""
        txn = await ingest(service, admin, ledger, category="DWAC Withdrawal", quantity=20_000)

        assert txn.signed_quantity == -20_000
        assert txn.quantity == 20_000
        assert txn.direction == "DEBIT"
        assert txn.created_by == "admin-1"

    @pytest.mark.asyncio
    async def test_ipo_minus_withdrawal(
        self, service: LedgerService, ledger: LedgerFixture, admin: Principal, reader: Principal
    ) -> None:
        """C: 7,906,132 - 20,000 = 7,886,132"""
        await ingest(service, admin, ledger)
        await ingest(service, admin, ledger, category="DWAC Withdrawal", quantity="20,000", transaction_date="2024-03-01")

        quantity = await service.get_position(reader, ledger.issuer_id, ledger.holder_id, ledger.units_id)
        assert quantity == 7_886_132

        as_of = await service.get_position(
            reader, ledger.issuer_id, ledger.holder_id, ledger.units_id, as_of=date(2024, 2, 1)
        )
        assert as_of == 7_906_132

    @pytest.mark.asyncio
    async def test_legacy_inversion_corrected(
        self, service: LedgerService, ledger: LedgerFixture, admin: Principal, reader: Principal
    ) -> None:
        """B: 레거시 이관 후 정정으로 포지션 -40,000 이동"""
        await ingest(service, admin, ledger)
        imported = await service.import_legacy(admin, ledger.issuer_id, [
            {
                "legacy_id": "L-77",
                "shareholder_id": ledger.holder_id,
                "security_id": ledger.units_id,
                "category": "DWAC Withdrawal",
                "signed_quantity": 20_000,
                "transaction_date": "2024-03-01",
            },
        ])
        assert imported.succeeded == 1

        before = await service.get_position(reader, ledger.issuer_id, ledger.holder_id, ledger.units_id)
        dry = await service.run_reconciliation(admin, ledger.issuer_id, ledger.units_id, dry_run=True)
        assert dry.anomalies[0].correction == -40_000
        assert dry.projected_total == 7_886_132

        applied = await service.run_reconciliation(
            admin, ledger.issuer_id, ledger.units_id, dry_run=False, expected_total=7_886_132
        )
        after = await service.get_position(reader, ledger.issuer_id, ledger.holder_id, ledger.units_id)

        assert applied.verified is True
        assert before - after == 40_000
        assert after == 7_886_132

        again = await service.run_reconciliation(admin, ledger.issuer_id, ledger.units_id, dry_run=False)
        assert again.anomaly_count == 0
        assert again.writes == 0

    @pytest.mark.asyncio
    async def test_separation_derivation(
        self, service: LedgerService, ledger: LedgerFixture, admin: Principal, reader: Principal
    ) -> None:
        """D: Units 7,886,132 → Class A / Rights 각 7,886,132"""
        action = await service.apply_corporate_action(
            admin, ledger.issuer_id, "Separation", {"class_a_ratio": "1.0", "rights_ratio": "1.0"}
        )
        assert action.category == "separation"
        assert action.ratios == {"class_a": Decimal("1.0"), "right": Decimal("1.0")}

        derived = await service.derive_from_corporate_action(reader, ledger.issuer_id, "separation", 7_886_132)
        assert [(d.security_class, d.quantity) for d in derived] == [
            ("class_a", 7_886_132),
            ("right", 7_886_132),
        ]
        assert all(d.remainder == 0 for d in derived)

        # 같은 비율 재제출은 버전 변화 없음
        same = await service.apply_corporate_action(
            admin, ledger.issuer_id, "separation", {"class_a": "1.0", "right": "1.0"}
        )
        assert same.version == 1

    @pytest.mark.asyncio
    async def test_derivation_by_transaction_category(
        self, service: LedgerService, ledger: LedgerFixture, admin: Principal, reader: Principal
    ) -> None:
        """거래 카테고리별 파생 대상 제한 (Transfer Credit → Class A만)"""
        await service.apply_corporate_action(
            admin, ledger.issuer_id, "separation", {"class_a": "1.0", "right": "0.1"}
        )

        derived = await service.derive_from_corporate_action(
            reader, ledger.issuer_id, "separation", 7_886_132, transaction_category="Transfer Credit"
        )
        assert [d.security_class for d in derived] == ["class_a"]

        rights = await service.derive_from_corporate_action(
            reader, ledger.issuer_id, "separation", 7_886_132, transaction_category="DWAC Deposit"
        )
        right = next(d for d in rights if d.security_class == "right")
        assert right.quantity == 788_613
        assert right.remainder == Decimal("0.2")

    @pytest.mark.asyncio
    async def test_derivation_without_action(
        self, service: LedgerService, ledger: LedgerFixture, reader: Principal
    ) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await service.derive_from_corporate_action(reader, ledger.issuer_id, "split", 100)
        assert exc_info.value.field == "category"


class TestAuthorization:
    """역할별 권한"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("principal_fixture", ["reader", "broker"])
    async def test_non_admin_cannot_ingest(
        self, request, service: LedgerService, ledger: LedgerFixture, principal_fixture: str
    ) -> None:
        principal = request.getfixturevalue(principal_fixture)
        with pytest.raises(AuthorizationError) as exc_info:
            await ingest(service, principal, ledger)
        assert exc_info.value.operation == "ingest"
        assert exc_info.value.role == principal.role.value

    @pytest.mark.asyncio
    async def test_issuer_status_requires_superadmin(
        self, service: LedgerService, admin: Principal, superadmin: Principal
    ) -> None:
        issuer = await service.create_issuer(admin, "Beta Acquisition Corp")
        assert issuer["status"] == "pending"

        with pytest.raises(AuthorizationError):
            await service.set_issuer_status(admin, issuer["issuer_id"], "active")

        updated = await service.set_issuer_status(superadmin, issuer["issuer_id"], "active", reason="onboarded")
        assert updated["status"] == "active"

    @pytest.mark.asyncio
    async def test_broker_can_read(
        self, service: LedgerService, ledger: LedgerFixture, admin: Principal, broker: Principal
    ) -> None:
        await ingest(service, admin, ledger)
        assert await service.get_position(broker, ledger.issuer_id, ledger.holder_id, ledger.units_id) == 7_906_132

    @pytest.mark.asyncio
    async def test_reader_cannot_reconcile(
        self, service: LedgerService, ledger: LedgerFixture, reader: Principal
    ) -> None:
        with pytest.raises(AuthorizationError):
            await service.run_reconciliation(reader, ledger.issuer_id, dry_run=True)


class TestIngestValidation:
    """입력 검증"""

    @pytest.mark.asyncio
    async def test_unknown_category(self, service: LedgerService, ledger: LedgerFixture, admin: Principal) -> None:
        """닫힌 카테고리 집합 밖은 방향이 있어도 거부"""
        with pytest.raises(ValidationError) as exc_info:
            await ingest(service, admin, ledger, category="Gift", explicit_direction="CREDIT")
        assert exc_info.value.rule == "closed_category_set"

    @pytest.mark.asyncio
    async def test_conversion_requires_direction(
        self, service: LedgerService, ledger: LedgerFixture, admin: Principal
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await ingest(service, admin, ledger, category="Conversion", quantity=10)
        assert exc_info.value.rule == "direction_required"

        txn = await ingest(service, admin, ledger, category="Conversion", quantity=10, explicit_direction="DEBIT")
        assert txn.signed_quantity == -10

    @pytest.mark.asyncio
    async def test_foreign_shareholder(self, service: LedgerService, ledger: LedgerFixture, admin: Principal) -> None:
        with pytest.raises(NotFoundError):
            await ingest(service, admin, ledger, shareholder_id="missing")


class TestBulkIngest:
    """일괄 입력"""

    @pytest.mark.asyncio
    async def test_per_entry_results(self, service: LedgerService, ledger: LedgerFixture, admin: Principal) -> None:
        """실패 항목이 있어도 성공 항목은 유지"""
        base = {
            "shareholder_id": ledger.holder_id,
            "security_id": ledger.units_id,
            "transaction_date": "2024-01-02",
        }
        entries = [
            {**base, "category": "IPO", "quantity": 1_000},
            {**base, "category": "Airdrop", "quantity": 5},
            {**base, "category": "Transfer Debit", "quantity": 0},
        ]

        result = await service.bulk_ingest(admin, ledger.issuer_id, entries)

        assert result.succeeded == 1
        assert result.failed == 2
        data = result.to_dict()
        assert data["total"] == 3
        assert data["results"][1]["error"]["rule"] == "closed_category_set"
        assert data["results"][2]["error"]["rule"] == "positive"
        assert await service.get_position(admin, ledger.issuer_id, ledger.holder_id, ledger.units_id) == 1_000

        retry = await service.bulk_ingest(admin, ledger.issuer_id, entries[:1])
        assert retry.results[0].ok is True
        assert retry.results[0].created is False
        assert retry.results[0].transaction_id == result.results[0].transaction_id

    @pytest.mark.asyncio
    async def test_oversized_entry_does_not_stop_batch(
        self, service: LedgerService, ledger: LedgerFixture, admin: Principal
    ) -> None:
        """상한 초과 항목만 실패하고 이후 항목은 계속 처리"""
        base = {
            "shareholder_id": ledger.holder_id,
            "security_id": ledger.units_id,
            "transaction_date": "2024-01-02",
        }
        entries = [
            {**base, "category": "IPO", "quantity": "99999999999999999999"},
            {**base, "category": "DWAC Deposit", "quantity": 5},
        ]

        result = await service.bulk_ingest(admin, ledger.issuer_id, entries)

        assert result.succeeded == 1
        assert result.results[0].error["rule"] == "max_quantity"
        assert result.results[0].error["field"] == "quantity"
        assert result.results[1].ok is True
        assert await service.get_position(admin, ledger.issuer_id, ledger.holder_id, ledger.units_id) == 5

    @pytest.mark.asyncio
    async def test_legacy_oversized_record(
        self, service: LedgerService, ledger: LedgerFixture, admin: Principal
    ) -> None:
        base = {
            "shareholder_id": ledger.holder_id,
            "security_id": ledger.units_id,
            "category": "IPO",
            "transaction_date": "2024-01-02",
        }
        records = [
            {**base, "legacy_id": "L-1", "signed_quantity": -(10**16)},
            {**base, "legacy_id": "L-2", "signed_quantity": 100},
        ]

        result = await service.import_legacy(admin, ledger.issuer_id, records)

        assert result.results[0].error["rule"] == "max_quantity"
        assert result.results[0].error["field"] == "signed_quantity"
        assert result.results[1].ok is True


class TestPositions:
    """포지션 / 보유자 현황"""

    @pytest.mark.asyncio
    async def test_negative_displayed_as_zero(
        self, service: LedgerService, ledger: LedgerFixture, admin: Principal
    ) -> None:
        await ingest(service, admin, ledger, category="Transfer Debit", quantity=50)

        balance = await service.get_position_balance(admin, ledger.issuer_id, ledger.holder_id, ledger.units_id)
        assert balance.signed_total == -50
        assert balance.is_negative is True
        assert balance.display_total == 0

    @pytest.mark.asyncio
    async def test_holders(self, service: LedgerService, ledger: LedgerFixture, admin: Principal) -> None:
        await ingest(service, admin, ledger)
        await ingest(service, admin, ledger, shareholder_id=ledger.other_holder_id, quantity=100)
        await ingest(
            service, admin, ledger,
            shareholder_id=ledger.other_holder_id,
            category="Transfer Debit",
            quantity=100,
            transaction_date="2024-02-01",
        )

        holders = await service.get_holders(admin, ledger.issuer_id, ledger.units_id)
        assert [(h.key.shareholder_id, h.display_total) for h in holders] == [(ledger.holder_id, 7_906_132)]

        with_zero = await service.get_holders(admin, ledger.issuer_id, ledger.units_id, include_zero=True)
        assert len(with_zero) == 2

        historical = await service.get_holders(admin, ledger.issuer_id, as_of=date(2024, 1, 31))
        assert len(historical) == 2

    @pytest.mark.asyncio
    async def test_verify_positions_heals(
        self, db: SQLiteAdapter, service: LedgerService, ledger: LedgerFixture, admin: Principal
    ) -> None:
        await ingest(service, admin, ledger)
        await ingest(service, admin, ledger, security_id=ledger.class_a_id, quantity=10)
        await db.execute(
            "UPDATE position_cache SET signed_total = 0 WHERE security_id = ?",
            (ledger.class_a_id,),
        )
        await db.commit()

        checks = await service.verify_positions(admin, ledger.issuer_id)

        assert len(checks) == 2
        drifted = [c for c in checks if c.drift]
        assert len(drifted) == 1
        assert drifted[0].key.security_id == ledger.class_a_id
        assert await service.store.audit.count(AuditAction.POSITION_DRIFT) == 1
        assert all(not c.drift for c in await service.verify_positions(admin, ledger.issuer_id))

    @pytest.mark.asyncio
    async def test_verify_positions_rechecks_restrictions(
        self, db: SQLiteAdapter, service: LedgerService, ledger: LedgerFixture, admin: Principal
    ) -> None:
        """검토 표시가 빠진 제한 수량도 검증 시 다시 표시"""
        await ingest(service, admin, ledger, quantity=1_000)
        await service.set_restriction(admin, ledger.holder_id, ledger.units_id, 1_000)
        await ingest(
            service, admin, ledger, category="Transfer Debit", quantity=100, transaction_date="2024-02-01"
        )
        await db.execute("UPDATE restriction SET needs_review = 0")
        await db.commit()

        await service.verify_positions(admin, ledger.issuer_id)

        flagged = await service.list_restrictions(admin, ledger.issuer_id, needs_review=True)
        assert len(flagged) == 1
        assert flagged[0].position == 900
        assert await service.store.audit.count(AuditAction.RESTRICTION_REVIEW_FLAGGED) == 2

    @pytest.mark.asyncio
    async def test_unknown_issuer(self, service: LedgerService, reader: Principal) -> None:
        with pytest.raises(NotFoundError):
            await service.get_holders(reader, "missing")


class TestTransactions:
    """이체 원장 / void"""

    @pytest.mark.asyncio
    async def test_list_and_void(self, service: LedgerService, ledger: LedgerFixture, admin: Principal) -> None:
        ipo = await ingest(service, admin, ledger)
        debit = await ingest(
            service, admin, ledger, category="Transfer Debit", quantity=6, transaction_date="2024-02-01"
        )

        journal = await service.list_transactions(admin, ledger.issuer_id)
        assert [row["transaction_id"] for row in journal] == [debit.transaction_id, ipo.transaction_id]

        voided = await service.void_transaction(admin, debit.transaction_id, reason="wrong holder")
        assert [t.status for t in voided] == ["void"]
        assert await service.get_position(admin, ledger.issuer_id, ledger.holder_id, ledger.units_id) == 7_906_132


class TestRestrictions:
    """제한 주식"""

    @pytest.mark.asyncio
    async def test_set_and_list(self, service: LedgerService, ledger: LedgerFixture, admin: Principal) -> None:
        await ingest(service, admin, ledger, quantity=1_000)

        restriction = await service.set_restriction(admin, ledger.holder_id, ledger.units_id, 400)
        assert restriction.issuer_id == ledger.issuer_id

        holdings = await service.list_restrictions(admin, ledger.issuer_id)
        assert holdings[0].unrestricted == 600

    @pytest.mark.asyncio
    async def test_unknown_shareholder(self, service: LedgerService, ledger: LedgerFixture, admin: Principal) -> None:
        with pytest.raises(NotFoundError):
            await service.set_restriction(admin, "missing", ledger.units_id, 1)

    @pytest.mark.asyncio
    async def test_broker_cannot_set(self, service: LedgerService, ledger: LedgerFixture, broker: Principal) -> None:
        with pytest.raises(AuthorizationError):
            await service.set_restriction(broker, ledger.holder_id, ledger.units_id, 1)


class TestIssuerLifecycle:
    """발행사 온보딩"""

    @pytest.mark.asyncio
    async def test_pending_then_active(
        self, service: LedgerService, admin: Principal, superadmin: Principal
    ) -> None:
        issuer = await service.create_issuer(admin, "Gamma Acquisition Corp", issuer_id="issuer-g")
        security = await service.add_security(admin, "issuer-g", "g0000u101", "unit")
        holder = await service.add_shareholder(admin, "issuer-g", "ACCT-9", "Cede & Co")

        with pytest.raises(AuthorizationError):
            await service.ingest(
                admin, issuer["issuer_id"], holder["shareholder_id"], security["security_id"],
                "IPO", 100, "2024-01-02",
            )

        await service.set_issuer_status(superadmin, "issuer-g", IssuerStatus.ACTIVE)
        txn = await service.ingest(
            admin, issuer["issuer_id"], holder["shareholder_id"], security["security_id"],
            "IPO", 100, "2024-01-02",
        )
        assert txn.signed_quantity == 100
        assert security["cusip"] == "G0000U101"
