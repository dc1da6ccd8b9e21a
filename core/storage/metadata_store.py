"""
MetadataStore - 발행사 / 증권 / 주주 저장소

원장 계산에 필요한 메타데이터(발행사 상태, 증권 존재/종류, 주주 존재) 제공.
삭제 API 없음 (거래가 참조하는 레코드는 영구 보존).
"""

import logging
from typing import Any
from uuid import uuid4

import aiosqlite

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.state_machines import (
    IssuerStateMachine,
    StateMachineError,
    check_issuer_allows,
)
from core.errors import AuthorizationError, NotFoundError, ValidationError
from core.storage.audit_store import AuditStore
from core.types import AuditAction, IssuerStatus, SecurityClass

logger = logging.getLogger(__name__)


async def check_issuer_writable(
    db: SQLiteAdapter,
    issuer_id: str,
    transactions: bool,
    operation: str,
) -> str:
    """발행사 상태 기반 쓰기 허용 확인

    반드시 쓰기와 같은 트랜잭션 안에서 호출해야 한다.

    Args:
        db: SQLiteAdapter (트랜잭션 진행 중)
        issuer_id: 발행사 ID
        transactions: True면 거래 쓰기 (active만 허용)
        operation: 오류 보고용 작업 이름

    Returns:
        현재 상태

    Raises:
        NotFoundError: 발행사 없음
        AuthorizationError: 상태가 쓰기를 허용하지 않음
    """
    row = await db.fetchone("SELECT status FROM issuer WHERE issuer_id = ?", (issuer_id,))
    if row is None:
        raise NotFoundError(f"Issuer not found: {issuer_id}", field="issuer_id", rule="exists")

    status = row[0]
    reason = check_issuer_allows(status, transactions=transactions)
    if reason is not None:
        raise AuthorizationError(
            f"Write rejected: {reason}",
            operation=operation,
            reason=f"issuer_{status}",
            issuer_id=issuer_id,
        )
    return status


class MetadataStore:
    """메타데이터 저장소

    Args:
        db: SQLiteAdapter 인스턴스
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db
        self.audit = AuditStore(db)

    # -------------------------------------------------------------------------
    # Issuer
    # -------------------------------------------------------------------------

    async def create_issuer(
        self,
        name: str,
        created_by: str,
        status: IssuerStatus = IssuerStatus.PENDING,
        issuer_id: str | None = None,
    ) -> dict[str, Any]:
        """발행사 생성 (온보딩)"""
        if not name or not name.strip():
            raise ValidationError("name is required", field="name", rule="required")

        issuer_id = issuer_id or str(uuid4())
        try:
            async with self.db.transaction():
                await self.db.execute(
                    """
                    INSERT INTO issuer (issuer_id, name, status, created_by)
                    VALUES (?, ?, ?, ?)
                    """,
                    (issuer_id, name.strip(), IssuerStatus(status).value, created_by),
                )
        except aiosqlite.IntegrityError as e:
            raise ValidationError(
                f"Issuer already exists: {issuer_id}",
                field="issuer_id",
                rule="unique",
            ) from e

        logger.info(f"발행사 생성: {issuer_id} ({name})")
        issuer = await self.get_issuer(issuer_id)
        assert issuer is not None
        return issuer

    async def get_issuer(self, issuer_id: str) -> dict[str, Any] | None:
        """발행사 조회"""
        row = await self.db.fetchone(
            """
            SELECT issuer_id, name, status, created_by, created_at, updated_at
            FROM issuer WHERE issuer_id = ?
            """,
            (issuer_id,),
        )
        if row is None:
            return None
        return {
            "issuer_id": row[0],
            "name": row[1],
            "status": row[2],
            "created_by": row[3],
            "created_at": row[4],
            "updated_at": row[5],
        }

    async def require_issuer(self, issuer_id: str) -> dict[str, Any]:
        """발행사 조회 (없으면 NotFoundError)"""
        issuer = await self.get_issuer(issuer_id)
        if issuer is None:
            raise NotFoundError(f"Issuer not found: {issuer_id}", field="issuer_id", rule="exists")
        return issuer

    async def set_issuer_status(
        self,
        issuer_id: str,
        new_status: IssuerStatus | str,
        actor_id: str,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """발행사 상태 변경

        Raises:
            ValidationError: 허용되지 않은 전이
        """
        try:
            target = IssuerStatus(str(new_status.value if isinstance(new_status, IssuerStatus) else new_status).lower())
        except ValueError as e:
            raise ValidationError(
                f"Unknown issuer status: '{new_status}'",
                field="status",
                rule="issuer_status",
                allowed=[s.value for s in IssuerStatus],
            ) from e

        async with self.db.transaction():
            row = await self.db.fetchone(
                "SELECT status FROM issuer WHERE issuer_id = ?",
                (issuer_id,),
            )
            if row is None:
                raise NotFoundError(f"Issuer not found: {issuer_id}", field="issuer_id", rule="exists")

            machine = IssuerStateMachine(row[0])
            try:
                machine.transition(target)
            except StateMachineError as e:
                raise ValidationError(
                    f"Issuer status cannot change from {row[0]} to {target.value}",
                    field="status",
                    rule="issuer_transition",
                ) from e

            await self.db.execute(
                """
                UPDATE issuer SET status = ?, updated_at = datetime('now')
                WHERE issuer_id = ?
                """,
                (target.value, issuer_id),
            )
            await self.audit.record(
                actor_id=actor_id,
                action=AuditAction.ISSUER_STATUS_CHANGED,
                entity_type="issuer",
                entity_id=issuer_id,
                issuer_id=issuer_id,
                before={"status": row[0]},
                after={"status": target.value},
                details={"reason": reason} if reason else None,
            )

        logger.info(f"발행사 상태 변경: {issuer_id} {row[0]} → {target.value}")
        return await self.require_issuer(issuer_id)

    # -------------------------------------------------------------------------
    # Security
    # -------------------------------------------------------------------------

    async def add_security(
        self,
        issuer_id: str,
        cusip: str,
        security_class: SecurityClass | str,
        name: str | None = None,
        security_id: str | None = None,
    ) -> dict[str, Any]:
        """증권 등록 (pending/active 발행사만)"""
        cusip = (cusip or "").strip().upper()
        if not cusip:
            raise ValidationError("cusip is required", field="cusip", rule="required")
        try:
            klass = SecurityClass(str(security_class.value if isinstance(security_class, SecurityClass) else security_class).lower())
        except ValueError as e:
            raise ValidationError(
                f"Unknown security class: '{security_class}'",
                field="security_class",
                rule="security_class",
                allowed=[c.value for c in SecurityClass],
            ) from e

        security_id = security_id or str(uuid4())
        try:
            async with self.db.transaction():
                await check_issuer_writable(self.db, issuer_id, transactions=False, operation="add_security")
                await self.db.execute(
                    """
                    INSERT INTO security (security_id, issuer_id, cusip, security_class, name)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (security_id, issuer_id, cusip, klass.value, name),
                )
        except aiosqlite.IntegrityError as e:
            raise ValidationError(
                f"CUSIP {cusip} already registered for issuer {issuer_id}",
                field="cusip",
                rule="unique",
            ) from e

        logger.info(f"증권 등록: {issuer_id} {cusip} ({klass.value})")
        security = await self.get_security(security_id)
        assert security is not None
        return security

    async def get_security(self, security_id: str) -> dict[str, Any] | None:
        """증권 조회"""
        row = await self.db.fetchone(
            """
            SELECT security_id, issuer_id, cusip, security_class, name, created_at
            FROM security WHERE security_id = ?
            """,
            (security_id,),
        )
        return self._security_row(row) if row else None

    async def list_securities(self, issuer_id: str) -> list[dict[str, Any]]:
        """발행사 증권 목록"""
        rows = await self.db.fetchall(
            """
            SELECT security_id, issuer_id, cusip, security_class, name, created_at
            FROM security WHERE issuer_id = ? ORDER BY cusip
            """,
            (issuer_id,),
        )
        return [self._security_row(row) for row in rows]

    def _security_row(self, row: tuple[Any, ...]) -> dict[str, Any]:
        return {
            "security_id": row[0],
            "issuer_id": row[1],
            "cusip": row[2],
            "security_class": row[3],
            "name": row[4],
            "created_at": row[5],
        }

    # -------------------------------------------------------------------------
    # Shareholder
    # -------------------------------------------------------------------------

    async def add_shareholder(
        self,
        issuer_id: str,
        account_number: str,
        name: str,
        external_id: str | None = None,
        shareholder_id: str | None = None,
    ) -> dict[str, Any]:
        """주주 등록 (pending/active 발행사만)"""
        account_number = (account_number or "").strip()
        if not account_number:
            raise ValidationError("account_number is required", field="account_number", rule="required")
        if not name or not name.strip():
            raise ValidationError("name is required", field="name", rule="required")

        shareholder_id = shareholder_id or str(uuid4())
        try:
            async with self.db.transaction():
                await check_issuer_writable(self.db, issuer_id, transactions=False, operation="add_shareholder")
                await self.db.execute(
                    """
                    INSERT INTO shareholder (shareholder_id, issuer_id, account_number, name, external_id)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (shareholder_id, issuer_id, account_number, name.strip(), external_id),
                )
        except aiosqlite.IntegrityError as e:
            raise ValidationError(
                f"Account number {account_number} already registered for issuer {issuer_id}",
                field="account_number",
                rule="unique",
            ) from e

        logger.info(f"주주 등록: {issuer_id} {account_number}")
        shareholder = await self.get_shareholder(shareholder_id)
        assert shareholder is not None
        return shareholder

    async def get_shareholder(self, shareholder_id: str) -> dict[str, Any] | None:
        """주주 조회"""
        row = await self.db.fetchone(
            """
            SELECT shareholder_id, issuer_id, account_number, name, external_id, created_at
            FROM shareholder WHERE shareholder_id = ?
            """,
            (shareholder_id,),
        )
        return self._shareholder_row(row) if row else None

    async def get_shareholder_by_account(self, issuer_id: str, account_number: str) -> dict[str, Any] | None:
        """계좌번호로 주주 조회"""
        row = await self.db.fetchone(
            """
            SELECT shareholder_id, issuer_id, account_number, name, external_id, created_at
            FROM shareholder WHERE issuer_id = ? AND account_number = ?
            """,
            (issuer_id, account_number.strip()),
        )
        return self._shareholder_row(row) if row else None

    async def list_shareholders(self, issuer_id: str) -> list[dict[str, Any]]:
        """발행사 주주 목록"""
        rows = await self.db.fetchall(
            """
            SELECT shareholder_id, issuer_id, account_number, name, external_id, created_at
            FROM shareholder WHERE issuer_id = ? ORDER BY account_number
            """,
            (issuer_id,),
        )
        return [self._shareholder_row(row) for row in rows]

    def _shareholder_row(self, row: tuple[Any, ...]) -> dict[str, Any]:
        return {
            "shareholder_id": row[0],
            "issuer_id": row[1],
            "account_number": row[2],
            "name": row[3],
            "external_id": row[4],
            "created_at": row[5],
        }
