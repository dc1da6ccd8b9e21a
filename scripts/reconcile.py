"""
부호 오류 정정 (운영자용)

기본은 dry run (계획만 출력, 쓰기 없음). --apply 지정 시 정정 실행.

사용법:
    python -m scripts.reconcile --issuer ISSUER_ID
    python -m scripts.reconcile --issuer ISSUER_ID --security SECURITY_ID --apply --expected-total 7886132
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import get_settings
from core.errors import LedgerError
from core.ledger.service import LedgerService
from core.logging import setup_logging
from core.types import Principal, Role

logger = logging.getLogger(__name__)


async def main(
    issuer_id: str,
    security_id: str | None,
    apply: bool,
    expected_total: int | None,
    operator: str,
) -> int:
    """정정 실행

    Returns:
        종료 코드 (0: 성공, 2: 원장 오류)
    """
    settings = get_settings()
    principal = Principal(operator, Role.ADMIN)

    logger.info(
        f"Reconciliation 시작: issuer={issuer_id} security={security_id} "
        f"apply={apply} strategy={settings.correction_strategy.value}",
    )

    async with SQLiteAdapter(
        settings.db_path,
        timeout_sec=settings.store_timeout_sec,
        busy_timeout_ms=settings.busy_timeout_ms,
    ) as db:
        service = LedgerService(db, settings.correction_strategy)
        try:
            report = await service.run_reconciliation(
                principal,
                issuer_id,
                security_id=security_id,
                dry_run=not apply,
                expected_total=expected_total,
            )
        except LedgerError as e:
            logger.error(f"Reconciliation 실패: {e.message}")
            print(json.dumps(e.to_dict(), indent=2, ensure_ascii=False))
            return 2

    print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))

    if report.dry_run:
        logger.info(f"(Dry Run) 이상 거래 {report.anomaly_count}건, 예상 합계 {report.projected_total}")
    else:
        logger.info(f"정정 완료: 쓰기 {report.writes}건, 합계 {report.old_total} → {report.new_total}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="부호 오류 정정")
    parser.add_argument("--issuer", required=True, help="발행사 ID")
    parser.add_argument("--security", default=None, help="증권 ID (지정 시 해당 증권만)")
    parser.add_argument(
        "--apply",
        action="store_true",
        help="정정 실행 (미지정 시 dry run)",
    )
    parser.add_argument(
        "--expected-total",
        type=int,
        default=None,
        help="정정 후 기대 합계 (--security 필수)",
    )
    parser.add_argument("--operator", default="cli:operator", help="운영자 ID (감사 로그 기록)")
    args = parser.parse_args()

    setup_logging("cli")
    sys.exit(asyncio.run(main(args.issuer, args.security, args.apply, args.expected_total, args.operator)))
