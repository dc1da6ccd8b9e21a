"""
의존성 주입

FastAPI의 Depends를 사용한 의존성 관리.
"""

from typing import AsyncGenerator

from fastapi import Depends, Header

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import Settings, get_settings
from core.errors import AuthorizationError
from core.ledger.service import LedgerService
from core.types import Principal


def get_app_settings() -> Settings:
    """애플리케이션 설정 반환"""
    return get_settings()


async def get_db() -> AsyncGenerator[SQLiteAdapter, None]:
    """DB 세션 반환 (읽기 전용)

    원장 조회 전용. 포지션 조회는 캐시 복구 쓰기가 있으므로 get_db_write 사용.
    """
    settings = get_settings()
    async with SQLiteAdapter(
        settings.db_path,
        readonly=True,
        timeout_sec=settings.store_timeout_sec,
        busy_timeout_ms=settings.busy_timeout_ms,
    ) as db:
        yield db


async def get_db_write() -> AsyncGenerator[SQLiteAdapter, None]:
    """DB 세션 반환 (쓰기 가능)

    거래 입력, 정정, 메타데이터 변경, 포지션 조회 시 사용.
    """
    settings = get_settings()
    async with SQLiteAdapter(
        settings.db_path,
        readonly=False,
        timeout_sec=settings.store_timeout_sec,
        busy_timeout_ms=settings.busy_timeout_ms,
    ) as db:
        yield db


def get_principal(
    x_principal_id: str | None = Header(default=None, description="호출자 ID"),
    x_principal_role: str | None = Header(default=None, description="호출자 역할"),
) -> Principal:
    """요청 호출자

    인증은 앞단 Identity provider가 수행하고, 확인된 ID/역할을 헤더로 전달.

    Raises:
        AuthorizationError: 헤더 누락, 알 수 없는 역할
    """
    if not x_principal_id or not x_principal_role:
        raise AuthorizationError(
            "Missing principal headers",
            reason="unauthenticated",
        )
    try:
        return Principal.create(x_principal_id, x_principal_role)
    except ValueError as e:
        raise AuthorizationError(
            f"Unknown role: '{x_principal_role}'",
            role=x_principal_role,
            reason="unknown_role",
        ) from e


def get_ledger_service(
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
) -> LedgerService:
    """원장 서비스 (쓰기 가능 DB)"""
    return LedgerService(db, settings.correction_strategy)


def get_read_service(
    db: SQLiteAdapter = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> LedgerService:
    """원장 서비스 (읽기 전용 DB)"""
    return LedgerService(db, settings.correction_strategy)
