"""
포지션 캐시 검증

발행사의 모든 (주주, 증권) 캐시를 원장에서 재계산하여 비교.
불일치는 원장 값으로 복구하고 감사 로그(POSITION_DRIFT)에 기록.

사용법:
    python -m scripts.check_positions --issuer ISSUER_ID
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import get_settings
from core.ledger.service import LedgerService
from core.logging import setup_logging
from core.types import Principal, Role

logger = logging.getLogger(__name__)


async def main(issuer_id: str, operator: str) -> int:
    """검증 실행

    Returns:
        종료 코드 (0: 불일치 없음, 1: 불일치 복구됨)
    """
    settings = get_settings()
    principal = Principal(operator, Role.ADMIN)

    async with SQLiteAdapter(
        settings.db_path,
        timeout_sec=settings.store_timeout_sec,
        busy_timeout_ms=settings.busy_timeout_ms,
    ) as db:
        service = LedgerService(db, settings.correction_strategy)
        checks = await service.verify_positions(principal, issuer_id)

    drifted = [c for c in checks if c.drift]
    for check in drifted:
        print(f"  DRIFT {check.key}: cached={check.cached} recomputed={check.recomputed} (healed)")
    print(f"checked={len(checks)} drifted={len(drifted)}")

    return 1 if drifted else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="포지션 캐시 검증")
    parser.add_argument("--issuer", required=True, help="발행사 ID")
    parser.add_argument("--operator", default="cli:check", help="운영자 ID (감사 로그 기록)")
    args = parser.parse_args()

    setup_logging("cli")
    sys.exit(asyncio.run(main(args.issuer, args.operator)))
