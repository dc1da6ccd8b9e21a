"""
Restriction Overlay

주주 + 증권 포지션 중 제한(보호예수) 수량 관리.
- 설정 시점 포지션을 초과하면 거부 (자동 축소 없음)
- 이후 포지션 감소로 초과되면 needs_review 표시 (LedgerStore가 쓰기마다 확인)
- 부호 계산에는 관여하지 않음
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from core.errors import ValidationError
from core.ledger.entry_builder import check_quantity_limit
from core.ledger.types import Restriction
from core.storage.metadata_store import check_issuer_writable
from core.types import AuditAction, PositionKey

if TYPE_CHECKING:
    from core.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestrictedHolding:
    """제한 주식 + 현재 포지션 (표시용)"""

    restriction: Restriction
    position: int  # 표시용 (0 미만은 0)

    @property
    def unrestricted(self) -> int:
        """자유 거래 가능 수량"""
        return max(0, self.position - self.restriction.restricted_quantity)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.restriction.to_dict(),
            "position": self.position,
            "unrestricted": self.unrestricted,
        }


def parse_restricted_quantity(value: Any) -> int:
    """제한 수량 파싱 (0 이상 정수)"""
    if value is None or isinstance(value, bool):
        raise ValidationError("quantity is required", field="quantity", rule="required")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError("quantity must be a whole number of shares", field="quantity", rule="integer")
    try:
        quantity = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"quantity must be a whole number of shares: '{value}'",
            field="quantity",
            rule="integer",
        ) from e
    if quantity < 0:
        raise ValidationError("quantity must not be negative", field="quantity", rule="non_negative")
    check_quantity_limit(quantity)
    return quantity


class RestrictionOverlay:
    """제한 주식 관리

    Args:
        store: LedgerStore
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    async def set_restriction(
        self,
        key: PositionKey,
        quantity: Any,
        actor_id: str,
        restriction_code: str | None = None,
        legend: str | None = None,
    ) -> Restriction:
        """제한 수량 설정 (생성 또는 수정)

        포지션 확인과 저장은 같은 트랜잭션에서 수행.

        Raises:
            ValidationError: 수량 형식 오류, 포지션 초과 (rule=exceeds_position)
            AuthorizationError: 발행사 suspended
        """
        restricted = parse_restricted_quantity(quantity)
        db = self.store.db

        async with db.transaction():
            await check_issuer_writable(db, key.issuer_id, transactions=False, operation="set_restriction")

            position = await self.store.recompute_position(key)
            if restricted > position.display_total:
                raise ValidationError(
                    f"Restricted quantity {restricted} exceeds current position {position.display_total}",
                    field="quantity",
                    rule="exceeds_position",
                    position=position.display_total,
                    signed_total=position.signed_total,
                )

            restriction, previous = await self.store.upsert_restriction(
                key,
                restricted,
                actor_id=actor_id,
                restriction_code=restriction_code,
                legend=legend,
            )
            await self.store.audit.record(
                actor_id=actor_id,
                action=AuditAction.RESTRICTION_SET,
                entity_type="restriction",
                entity_id=restriction.restriction_id,
                issuer_id=key.issuer_id,
                before=previous.to_dict() if previous else None,
                after=restriction.to_dict(),
                details={"position": position.signed_total},
            )

        logger.info(
            f"제한 수량 설정: {key} {restricted} (포지션 {position.signed_total})",
            extra={"actor_id": actor_id},
        )
        return restriction

    async def flag_if_exceeds(self, key: PositionKey, actor_id: str = "system") -> bool:
        """현재 포지션 기준으로 검토 필요 여부 재확인

        Returns:
            새로 표시했으면 True
        """
        async with self.store.db.transaction():
            position = await self.store.recompute_position(key)
            return await self.store.flag_restrictions(key, position.signed_total, actor_id=actor_id)

    async def list_with_positions(
        self,
        issuer_id: str,
        needs_review: bool | None = None,
    ) -> list[RestrictedHolding]:
        """제한 주식 목록 + 현재 포지션"""
        holdings = []
        for restriction in await self.store.list_restrictions(issuer_id, needs_review=needs_review):
            position = await self.store.recompute_position(restriction.key)
            holdings.append(RestrictedHolding(restriction=restriction, position=position.display_total))
        return holdings
