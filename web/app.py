"""
FastAPI 애플리케이션

라우터 등록, 오류 응답 변환 및 앱 설정.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config.loader import get_settings
from core.constants import APP_VERSION
from core.errors import (
    AuthorizationError,
    ConsistencyError,
    LedgerError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)
from core.ledger.permissions import can_see_internal_errors
from core.logging import setup_logging
from core.types import Principal

# 로깅 설정 (콘솔 + 파일)
setup_logging("web")

from web.routes import (
    corporate_actions,
    health,
    issuers,
    positions,
    reconciliation,
    restrictions,
    transactions,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """앱 생명주기 관리"""
    from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema

    settings = get_settings()

    # 시작 시 - DB 스키마 자동 초기화
    async with SQLiteAdapter(
        settings.db_path,
        timeout_sec=settings.store_timeout_sec,
        busy_timeout_ms=settings.busy_timeout_ms,
    ) as db:
        await init_schema(db)

    logger.info(
        f"Web 시작: mode={settings.mode.value}, strategy={settings.correction_strategy.value}",
    )
    yield


app = FastAPI(
    title="ShareLedger API",
    description="발행사 주주 명부 및 주식 소유 원장 API",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS 설정 (개발용)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =========================================================================
# 오류 응답 변환
# =========================================================================

_STATUS_CODES: list[tuple[type[LedgerError], int]] = [
    (NotFoundError, 404),
    (ValidationError, 400),
    (AuthorizationError, 403),
    (ConsistencyError, 409),
    (TransientStoreError, 503),
]


def _status_code(exc: LedgerError) -> int:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _include_internal(request: Request) -> bool:
    """요청자에게 내부 상세를 노출할지 (admin 이상 또는 설정)"""
    if get_settings().web.expose_internal_errors:
        return True

    principal_id = request.headers.get("x-principal-id")
    role = request.headers.get("x-principal-role")
    if not principal_id or not role:
        return False
    try:
        principal = Principal.create(principal_id, role)
    except ValueError:
        return False
    return can_see_internal_errors(principal)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """원장 오류 → HTTP 응답

    ValidationError/AuthorizationError는 상세 포함,
    ConsistencyError/TransientStoreError는 admin 미만에게 일반 메시지만 전달.
    """
    status_code = _status_code(exc)

    if isinstance(exc, (ConsistencyError, TransientStoreError)):
        logger.error(
            f"{exc.kind}: {request.method} {request.url.path}: {exc.message}",
            extra={"context": exc.to_dict(include_internal=True)},
        )

    body = exc.to_dict(include_internal=_include_internal(request))
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


# =========================================================================
# API 라우터 등록
# =========================================================================

app.include_router(health.router)
app.include_router(issuers.router)
app.include_router(transactions.router)
app.include_router(positions.router)
app.include_router(corporate_actions.router)
app.include_router(reconciliation.router)
app.include_router(restrictions.router)
