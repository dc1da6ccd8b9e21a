"""
SQLite 어댑터

WAL 모드로 SQLite 연결 관리.
Web과 운영 스크립트가 동시에 접근 가능하도록 설정.

모든 I/O는 타임아웃을 가지며, 만료 또는 lock 경합 시
TransientStoreError(재시도 가능)로 변환된다.

주의: SQLite alias로 time, count 사용 금지 (예약어)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, TypeVar

import aiosqlite

from core.constants import Defaults, Paths
from core.errors import TransientStoreError
from core.types import DeploymentMode

logger = logging.getLogger(__name__)

T = TypeVar("T")

# OperationalError 중 재시도 가능한 메시지
_TRANSIENT_MARKERS = ("locked", "busy", "unable to open", "disk i/o")


def get_db_path(mode: DeploymentMode | str) -> Path:
    """모드에 따른 DB 경로 반환

    Args:
        mode: 배포 모드 (PRODUCTION/SANDBOX)

    Returns:
        DB 파일 경로 (Path 타입)
    """
    if isinstance(mode, str):
        mode = DeploymentMode(mode.lower())

    if mode == DeploymentMode.PRODUCTION:
        return Paths.PROD_DB
    return Paths.SANDBOX_DB


async def create_connection(
    db_path: Path | str,
    readonly: bool = False,
    busy_timeout_ms: int = Defaults.BUSY_TIMEOUT_MS,
) -> aiosqlite.Connection:
    """SQLite 연결 생성 (WAL 모드)

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부
        busy_timeout_ms: lock 대기 시간

    Returns:
        aiosqlite 연결 객체
    """
    db_path_str = str(db_path)

    # 디렉토리가 없으면 생성
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    if readonly:
        conn = await aiosqlite.connect(f"file:{db_path_str}?mode=ro", uri=True)
    else:
        conn = await aiosqlite.connect(db_path_str)

    # WAL 모드 설정 (읽기 전용 연결은 기존 모드를 따름)
    if not readonly:
        await conn.execute("PRAGMA journal_mode=WAL")

    # 동시 접근 설정
    await conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")

    # 외래 키 제약 활성화
    await conn.execute("PRAGMA foreign_keys=ON")

    logger.info(
        "SQLite 연결 생성",
        extra={"db_path": db_path_str, "readonly": readonly},
    )

    return conn


class SQLiteAdapter:
    """SQLite 어댑터

    WAL 모드로 SQLite 연결 관리.
    트랜잭션 컨텍스트 매니저 제공.

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부 (Web 조회용)
        timeout_sec: 구문별 타임아웃 (초)
        busy_timeout_ms: SQLite busy_timeout

    사용 예시:
    ```python
    adapter = SQLiteAdapter(db_path)
    await adapter.connect()

    async with adapter.transaction():
        await adapter.execute("INSERT INTO ...")

    await adapter.close()
    ```
    """

    def __init__(
        self,
        db_path: Path | str,
        readonly: bool = False,
        timeout_sec: float = Defaults.STORE_TIMEOUT_SEC,
        busy_timeout_ms: int = Defaults.BUSY_TIMEOUT_MS,
    ):
        self.db_path = Path(db_path)
        self.readonly = readonly
        self.timeout_sec = timeout_sec
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: aiosqlite.Connection | None = None
        self._tx_lock = asyncio.Lock()
        self._tx_owner: asyncio.Task[Any] | None = None

    @property
    def is_connected(self) -> bool:
        """연결 상태 확인"""
        return self._conn is not None

    @property
    def in_transaction(self) -> bool:
        """명시적 트랜잭션 진행 여부"""
        return self._tx_owner is not None

    async def connect(self) -> None:
        """연결 생성"""
        if self._conn is not None:
            return

        self._conn = await self._guard(
            create_connection(self.db_path, self.readonly, self.busy_timeout_ms),
            "connect",
        )

    async def close(self) -> None:
        """연결 종료"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite 연결 종료")

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Not connected to database")
        return self._conn

    async def _guard(self, awaitable: Awaitable[T], operation: str) -> T:
        """타임아웃 적용 및 일시적 오류 변환

        Raises:
            TransientStoreError: 타임아웃, lock/busy
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_sec)
        except asyncio.TimeoutError as e:
            logger.error(
                f"Store 타임아웃: {operation} ({self.timeout_sec}s)",
                extra={"db_path": str(self.db_path), "operation": operation},
            )
            raise TransientStoreError(
                f"Store operation timed out after {self.timeout_sec}s",
                operation=operation,
                cause="timeout",
            ) from e
        except aiosqlite.OperationalError as e:
            message = str(e).lower()
            if any(marker in message for marker in _TRANSIENT_MARKERS):
                logger.error(
                    f"Store 일시 오류: {operation}: {e}",
                    extra={"db_path": str(self.db_path), "operation": operation},
                )
                raise TransientStoreError(
                    f"Store temporarily unavailable: {e}",
                    operation=operation,
                    cause=str(e),
                ) from e
            raise

    async def execute(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> aiosqlite.Cursor:
        """SQL 실행"""
        conn = self._require_conn()

        if parameters:
            return await self._guard(conn.execute(sql, parameters), "execute")
        return await self._guard(conn.execute(sql), "execute")

    async def executemany(
        self,
        sql: str,
        parameters: list[tuple[Any, ...]],
    ) -> aiosqlite.Cursor:
        """SQL 다중 실행"""
        conn = self._require_conn()

        return await self._guard(conn.executemany(sql, parameters), "executemany")

    async def fetchone(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> tuple[Any, ...] | None:
        """단일 행 조회"""
        cursor = await self.execute(sql, parameters)
        return await self._guard(cursor.fetchone(), "fetchone")

    async def fetchall(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> list[tuple[Any, ...]]:
        """전체 행 조회"""
        cursor = await self.execute(sql, parameters)
        return list(await self._guard(cursor.fetchall(), "fetchall"))

    async def commit(self) -> None:
        """커밋 (명시적 트랜잭션 내부에서는 무시)"""
        if self._conn is not None and not self.in_transaction:
            await self._guard(self._conn.commit(), "commit")

    async def rollback(self) -> None:
        """롤백"""
        if self._conn is not None:
            await self._conn.rollback()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """트랜잭션 컨텍스트 매니저

        BEGIN IMMEDIATE로 시작하여 쓰기 lock을 먼저 확보.
        같은 Task 안에서 중첩 호출하면 바깥 트랜잭션에 합류하고,
        커밋/롤백은 가장 바깥 트랜잭션만 수행.
        성공 시 자동 커밋, 예외 시 자동 롤백.

        사용 예시:
        ```python
        async with adapter.transaction():
            await adapter.execute("INSERT INTO ...")
            # 성공 시 자동 커밋
        ```
        """
        conn = self._require_conn()
        task = asyncio.current_task()

        if task is not None and self._tx_owner is task:
            # 바깥 트랜잭션에 합류
            yield conn
            return

        async with self._tx_lock:
            if conn.in_transaction:
                # 암묵적으로 열린 트랜잭션(이전 DML)은 먼저 확정
                await self._guard(conn.commit(), "commit")
            await self._guard(conn.execute("BEGIN IMMEDIATE"), "begin")
            self._tx_owner = task
            try:
                yield conn
                await self._guard(conn.commit(), "commit")
            except BaseException:
                await conn.rollback()
                raise
            finally:
                self._tx_owner = None

    async def table_exists(self, table_name: str) -> bool:
        """테이블 존재 여부 확인"""
        result = await self.fetchone(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,),
        )
        return result is not None

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SQLiteAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def init_schema(adapter: SQLiteAdapter) -> None:
    """스키마 초기화 (테이블 생성)

    메타데이터(issuer, security, shareholder), 감사 로그,
    원장 테이블을 모두 생성.

    Args:
        adapter: 연결된 SQLiteAdapter
    """
    from core.ledger.schema import init_ledger_schema

    # issuer (발행사, 테넌트)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS issuer (
            issuer_id        TEXT PRIMARY KEY,
            name             TEXT NOT NULL,
            status           TEXT NOT NULL DEFAULT 'pending',
            created_by       TEXT NOT NULL,
            created_at       TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at       TEXT NOT NULL DEFAULT (datetime('now')),
            CHECK (status IN ('pending', 'active', 'suspended'))
        )
    """)

    # security (CUSIP은 발행사 내에서 유일)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS security (
            security_id      TEXT PRIMARY KEY,
            issuer_id        TEXT NOT NULL,
            cusip            TEXT NOT NULL,
            security_class   TEXT NOT NULL,
            name             TEXT,
            created_at       TEXT NOT NULL DEFAULT (datetime('now')),
            UNIQUE(issuer_id, cusip),
            FOREIGN KEY (issuer_id) REFERENCES issuer(issuer_id)
        )
    """)

    # shareholder (계좌번호는 발행사 내에서 유일, 삭제 불가)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS shareholder (
            shareholder_id   TEXT PRIMARY KEY,
            issuer_id        TEXT NOT NULL,
            account_number   TEXT NOT NULL,
            name             TEXT NOT NULL,
            external_id      TEXT,
            created_at       TEXT NOT NULL DEFAULT (datetime('now')),
            UNIQUE(issuer_id, account_number),
            FOREIGN KEY (issuer_id) REFERENCES issuer(issuer_id)
        )
    """)

    # audit_log (감사 로그, append-only)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS audit_log (
            seq              INTEGER PRIMARY KEY AUTOINCREMENT,
            audit_id         TEXT NOT NULL UNIQUE,
            ts               TEXT NOT NULL,
            actor_id         TEXT NOT NULL,
            action           TEXT NOT NULL,
            entity_type      TEXT NOT NULL,
            entity_id        TEXT NOT NULL,
            issuer_id        TEXT,
            before_json      TEXT,
            after_json       TEXT,
            details_json     TEXT
        )
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_security_issuer
        ON security(issuer_id)
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_shareholder_issuer
        ON shareholder(issuer_id)
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_audit_log_entity
        ON audit_log(entity_type, entity_id)
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_audit_log_issuer
        ON audit_log(issuer_id, action)
    """)

    await adapter.commit()

    await init_ledger_schema(adapter)

    logger.info("스키마 초기화 완료")
