"""RestrictionOverlay 통합 테스트"""

import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.errors import AuthorizationError, ValidationError
from core.ledger.restrictions import RestrictionOverlay, parse_restricted_quantity
from core.ledger.store import LedgerStore
from core.storage.metadata_store import MetadataStore
from core.types import AuditAction, IssuerStatus
from tests.utils.helpers import LedgerFixture, create_issuer_set, request_txn


class TestParseRestrictedQuantity:
    """제한 수량 파싱"""

    def test_zero_allowed(self) -> None:
        assert parse_restricted_quantity(0) == 0
        assert parse_restricted_quantity("250") == 250

    @pytest.mark.parametrize(
        "value,rule",
        [
            (None, "required"),
            (True, "required"),
            (1.5, "integer"),
            ("abc", "integer"),
            (-1, "non_negative"),
            (10**15 + 1, "max_quantity"),
        ],
    )
    def test_invalid(self, value, rule: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_restricted_quantity(value)
        assert exc_info.value.rule == rule
        assert exc_info.value.field == "quantity"


class TestSetRestriction:
    """제한 수량 설정"""

    @pytest.mark.asyncio
    async def test_up_to_position(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        """포지션과 같은 수량까지 허용, 초과는 거부"""
        store = LedgerStore(db)
        await store.append(request_txn(ledger, quantity=1_000))
        overlay = RestrictionOverlay(store)

        restriction = await overlay.set_restriction(
            ledger.units_key, 1_000, actor_id="admin-1", restriction_code="LOCKUP", legend="Rule 144"
        )
        assert restriction.restricted_quantity == 1_000
        assert restriction.needs_review is False

        with pytest.raises(ValidationError) as exc_info:
            await overlay.set_restriction(ledger.units_key, 1_001, actor_id="admin-1")
        assert exc_info.value.rule == "exceeds_position"
        assert exc_info.value.context["position"] == 1_000

        # 거부된 설정은 저장되지 않음
        stored = await store.get_restriction(ledger.units_key)
        assert stored.restricted_quantity == 1_000
        assert await store.audit.count(AuditAction.RESTRICTION_SET) == 1

    @pytest.mark.asyncio
    async def test_update_keeps_code_and_legend(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        store = LedgerStore(db)
        await store.append(request_txn(ledger, quantity=1_000))
        overlay = RestrictionOverlay(store)
        await overlay.set_restriction(ledger.units_key, 500, actor_id="admin-1", restriction_code="LOCKUP")

        updated = await overlay.set_restriction(ledger.units_key, 300, actor_id="admin-1")

        assert updated.restricted_quantity == 300
        assert updated.restriction_code == "LOCKUP"
        records = await store.audit.list_for_entity("restriction", updated.restriction_id)
        assert records[-1].before["restricted_quantity"] == 500
        assert records[-1].after["restricted_quantity"] == 300

    @pytest.mark.asyncio
    async def test_no_position(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        """포지션 없으면 0만 허용"""
        overlay = RestrictionOverlay(LedgerStore(db))
        await overlay.set_restriction(ledger.units_key, 0, actor_id="admin-1")
        with pytest.raises(ValidationError):
            await overlay.set_restriction(ledger.units_key, 1, actor_id="admin-1")

    @pytest.mark.asyncio
    async def test_negative_ledger_sum(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        """원장 합계가 음수면 표시 포지션 0 기준으로 판단"""
        store = LedgerStore(db)
        await store.append(request_txn(ledger, category="Transfer Debit", quantity=50))
        overlay = RestrictionOverlay(store)

        restriction = await overlay.set_restriction(ledger.units_key, 0, actor_id="admin-1")
        assert restriction.restricted_quantity == 0

        with pytest.raises(ValidationError) as exc_info:
            await overlay.set_restriction(ledger.units_key, 1, actor_id="admin-1")
        assert exc_info.value.message == "Restricted quantity 1 exceeds current position 0"
        assert exc_info.value.context["position"] == 0
        assert exc_info.value.context["signed_total"] == -50

        # 0 제한은 음수 포지션에서도 검토 대상 아님
        await store.append(request_txn(
            ledger, category="Transfer Debit", quantity=5, transaction_date="2024-02-01"
        ))
        assert (await store.get_restriction(ledger.units_key)).needs_review is False

    @pytest.mark.asyncio
    async def test_pending_issuer_allowed(self, db: SQLiteAdapter) -> None:
        pending = await create_issuer_set(db, "issuer-p", status=IssuerStatus.PENDING)
        overlay = RestrictionOverlay(LedgerStore(db))
        restriction = await overlay.set_restriction(pending.units_key, 0, actor_id="admin-1")
        assert restriction.issuer_id == pending.issuer_id

    @pytest.mark.asyncio
    async def test_suspended_issuer_rejected(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        store = LedgerStore(db)
        await store.append(request_txn(ledger, quantity=1_000))
        await MetadataStore(db).set_issuer_status(ledger.issuer_id, IssuerStatus.SUSPENDED, actor_id="super-1")

        with pytest.raises(AuthorizationError) as exc_info:
            await RestrictionOverlay(store).set_restriction(ledger.units_key, 10, actor_id="admin-1")
        assert exc_info.value.reason == "issuer_suspended"


class TestNeedsReview:
    """포지션 감소 시 검토 표시"""

    @pytest.mark.asyncio
    async def test_debit_below_restriction_flags(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        """제한 수량 아래로 출고되면 needs_review (자동 축소 없음)"""
        store = LedgerStore(db)
        await store.append(request_txn(ledger, quantity=1_000))
        overlay = RestrictionOverlay(store)
        await overlay.set_restriction(ledger.units_key, 1_000, actor_id="admin-1")

        await store.append(request_txn(
            ledger, category="Transfer Debit", quantity=100, transaction_date="2024-02-01"
        ))

        flagged = await overlay.list_with_positions(ledger.issuer_id, needs_review=True)
        assert len(flagged) == 1
        holding = flagged[0]
        assert holding.restriction.restricted_quantity == 1_000
        assert holding.position == 900
        assert holding.unrestricted == 0
        assert holding.to_dict()["needs_review"] is True
        assert await store.audit.count(AuditAction.RESTRICTION_REVIEW_FLAGGED) == 1

        # 이미 표시된 경우 다시 기록하지 않음
        await store.append(request_txn(
            ledger, category="Transfer Debit", quantity=10, transaction_date="2024-02-02"
        ))
        assert await store.audit.count(AuditAction.RESTRICTION_REVIEW_FLAGGED) == 1

        # 재설정하면 해제
        cleared = await overlay.set_restriction(ledger.units_key, 800, actor_id="admin-1")
        assert cleared.needs_review is False
        holdings = await overlay.list_with_positions(ledger.issuer_id)
        assert holdings[0].unrestricted == 90
        assert await overlay.list_with_positions(ledger.issuer_id, needs_review=True) == []

    @pytest.mark.asyncio
    async def test_flag_if_exceeds_without_change(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        store = LedgerStore(db)
        await store.append(request_txn(ledger, quantity=1_000))
        overlay = RestrictionOverlay(store)
        await overlay.set_restriction(ledger.units_key, 500, actor_id="admin-1")

        assert await overlay.flag_if_exceeds(ledger.units_key) is False

    @pytest.mark.asyncio
    async def test_void_can_flag(self, db: SQLiteAdapter, ledger: LedgerFixture) -> None:
        """입고 거래 void로 포지션이 줄어도 표시"""
        store = LedgerStore(db)
        await store.append(request_txn(ledger, quantity=1_000))
        credit = await store.append(request_txn(
            ledger, category="Transfer Credit", quantity=500, transaction_date="2024-02-01"
        ))
        overlay = RestrictionOverlay(store)
        await overlay.set_restriction(ledger.units_key, 1_200, actor_id="admin-1")

        await store.void_transaction(credit.transaction.transaction_id, actor_id="admin-1", reason="reversed")

        restriction = await store.get_restriction(ledger.units_key)
        assert restriction.needs_review is True
