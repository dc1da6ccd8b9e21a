"""
pytest 공통 fixture 정의

임시 DB, 설정 파일, 역할별 Principal, 기본 발행사/증권/주주 세트
"""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from core.config.loader import Settings
from core.ledger.service import LedgerService
from core.types import CorrectionStrategy, Principal, Role
from tests.utils.helpers import LedgerFixture, create_issuer_set


@pytest.fixture
def temp_dir() -> Path:
    """OS 독립적인 임시 디렉토리 생성"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings_file(temp_dir: Path) -> Path:
    """테스트용 settings.yaml (sandbox, 임시 DB)"""
    content = f"""# 테스트용 settings.yaml
mode: sandbox

database:
  path: {(temp_dir / "settings_test.db").as_posix()}
  timeout_sec: 5
  busy_timeout_ms: 1000

reconciliation:
  strategy: offsetting

web:
  host: 127.0.0.1
  port: 8000
  expose_internal_errors: false
"""
    path = temp_dir / "settings.yaml"
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def settings(settings_file: Path) -> Settings:
    """Settings 싱글턴 (테스트 종료 시 초기화)"""
    Settings.reset()
    instance = Settings(settings_file)
    yield instance
    Settings.reset()


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> SQLiteAdapter:
    """스키마가 초기화된 임시 DB"""
    adapter = SQLiteAdapter(tmp_path / "ledger_test.db")
    await adapter.connect()
    await init_schema(adapter)
    yield adapter
    await adapter.close()


# =========================================================================
# Principal
# =========================================================================


@pytest.fixture
def superadmin() -> Principal:
    return Principal("super-1", Role.SUPERADMIN)


@pytest.fixture
def admin() -> Principal:
    return Principal("admin-1", Role.ADMIN)


@pytest.fixture
def broker() -> Principal:
    return Principal("broker-1", Role.BROKER)


@pytest.fixture
def reader() -> Principal:
    return Principal("reader-1", Role.READ_ONLY)


# =========================================================================
# 기본 발행사 세트
# =========================================================================


@pytest_asyncio.fixture
async def ledger(db: SQLiteAdapter) -> LedgerFixture:
    """active 발행사 세트"""
    return await create_issuer_set(db)


@pytest_asyncio.fixture
async def service(db: SQLiteAdapter) -> LedgerService:
    """원장 서비스 (offsetting)"""
    return LedgerService(db, CorrectionStrategy.OFFSETTING)
