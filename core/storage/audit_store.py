"""
AuditStore - 감사 로그 저장소

원장에 영향을 주는 모든 변경(정정, void, 비율 변경, 제한 설정, 상태 변경)을
append-only로 기록. 호출자의 트랜잭션에 참여하므로 쓰기와 감사 로그가
함께 커밋되거나 함께 롤백된다.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.types import AuditAction
from core.utils.timezone import now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditRecord:
    """감사 로그 레코드"""

    audit_id: str
    ts: str
    actor_id: str
    action: str
    entity_type: str
    entity_id: str
    issuer_id: str | None
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    details: dict[str, Any] | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "audit_id": self.audit_id,
            "ts": self.ts,
            "actor_id": self.actor_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "issuer_id": self.issuer_id,
            "before": self.before,
            "after": self.after,
            "details": self.details,
        }


def _dumps(value: dict[str, Any] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str, sort_keys=True)


def _loads(value: str | None) -> dict[str, Any] | None:
    if value is None:
        return None
    return json.loads(value)


class AuditStore:
    """감사 로그 저장소

    Args:
        db: SQLiteAdapter 인스턴스

    사용 예시:
    ```python
    audit = AuditStore(db)
    async with db.transaction():
        await db.execute("UPDATE ...")
        await audit.record(
            actor_id="admin-1",
            action=AuditAction.SIGN_CORRECTION,
            entity_type="transaction",
            entity_id=txn_id,
            before={"signed_quantity": 20000},
            after={"signed_quantity": -20000},
        )
    ```
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    async def record(
        self,
        actor_id: str,
        action: AuditAction | str,
        entity_type: str,
        entity_id: str,
        issuer_id: str | None = None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> str:
        """감사 로그 기록

        트랜잭션 밖에서 호출되면 즉시 커밋.

        Returns:
            audit_id
        """
        audit_id = str(uuid4())
        action_value = action.value if isinstance(action, AuditAction) else action

        await self.db.execute(
            """
            INSERT INTO audit_log (
                audit_id, ts, actor_id, action, entity_type, entity_id,
                issuer_id, before_json, after_json, details_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                audit_id,
                now_utc().isoformat(),
                actor_id,
                action_value,
                entity_type,
                entity_id,
                issuer_id,
                _dumps(before),
                _dumps(after),
                _dumps(details),
            ),
        )
        await self.db.commit()

        logger.info(
            f"감사 로그 기록: {action_value} {entity_type}={entity_id}",
            extra={"audit_id": audit_id, "actor_id": actor_id, "issuer_id": issuer_id},
        )
        return audit_id

    async def list_for_entity(self, entity_type: str, entity_id: str) -> list[AuditRecord]:
        """엔티티별 감사 로그 (오래된 순)"""
        rows = await self.db.fetchall(
            """
            SELECT audit_id, ts, actor_id, action, entity_type, entity_id,
                   issuer_id, before_json, after_json, details_json
            FROM audit_log
            WHERE entity_type = ? AND entity_id = ?
            ORDER BY seq
            """,
            (entity_type, entity_id),
        )
        return [self._row_to_record(row) for row in rows]

    async def list_for_issuer(
        self,
        issuer_id: str,
        action: AuditAction | str | None = None,
        limit: int = 100,
    ) -> list[AuditRecord]:
        """발행사별 감사 로그 (최신순)"""
        sql = """
            SELECT audit_id, ts, actor_id, action, entity_type, entity_id,
                   issuer_id, before_json, after_json, details_json
            FROM audit_log
            WHERE issuer_id = ?
        """
        params: list[Any] = [issuer_id]

        if action is not None:
            sql += " AND action = ?"
            params.append(action.value if isinstance(action, AuditAction) else action)

        sql += " ORDER BY seq DESC LIMIT ?"
        params.append(limit)

        rows = await self.db.fetchall(sql, tuple(params))
        return [self._row_to_record(row) for row in rows]

    async def count(self, action: AuditAction | str | None = None) -> int:
        """감사 로그 건수"""
        if action is None:
            row = await self.db.fetchone("SELECT COUNT(*) FROM audit_log")
        else:
            action_value = action.value if isinstance(action, AuditAction) else action
            row = await self.db.fetchone(
                "SELECT COUNT(*) FROM audit_log WHERE action = ?",
                (action_value,),
            )
        return row[0] if row else 0

    def _row_to_record(self, row: tuple[Any, ...]) -> AuditRecord:
        return AuditRecord(
            audit_id=row[0],
            ts=row[1],
            actor_id=row[2],
            action=row[3],
            entity_type=row[4],
            entity_id=row[5],
            issuer_id=row[6],
            before=_loads(row[7]),
            after=_loads(row[8]),
            details=_loads(row[9]),
        )
