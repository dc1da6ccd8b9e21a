"""
DB 스키마 초기화

사용법:
    python -m scripts.init_db --mode sandbox
    python -m scripts.init_db --mode production
    python -m scripts.init_db --db data/custom.db
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from adapters.db.sqlite_adapter import SQLiteAdapter, get_db_path, init_schema
from core.logging import setup_logging
from core.types import DeploymentMode

logger = logging.getLogger(__name__)

REQUIRED_TABLES = [
    "issuer",
    "security",
    "shareholder",
    "audit_log",
    "ledger_transaction",
    "position_cache",
    "corporate_action",
    "restriction",
]


async def main(db_path: Path) -> bool:
    """스키마 생성 및 검증

    Returns:
        검증 통과 여부
    """
    logger.info(f"스키마 초기화 시작: {db_path}")

    async with SQLiteAdapter(db_path) as db:
        await init_schema(db)

        missing = [t for t in REQUIRED_TABLES if not await db.table_exists(t)]
        if missing:
            logger.error(f"테이블 누락: {', '.join(missing)}")
            return False

    logger.info(f"스키마 초기화 완료 ({len(REQUIRED_TABLES)} tables)")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="원장 DB 스키마 초기화")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in DeploymentMode],
        default=DeploymentMode.SANDBOX.value,
        help="배포 모드 (기본: sandbox)",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="DB 파일 경로 (지정 시 --mode 무시)",
    )
    args = parser.parse_args()

    setup_logging("cli")
    path = args.db or get_db_path(args.mode)
    ok = asyncio.run(main(path))
    sys.exit(0 if ok else 1)
