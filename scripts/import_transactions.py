"""
거래 일괄 입력 (CSV)

스프레드시트에서 내보낸 CSV를 읽어 일괄 입력 경로로 저장.
각 행은 단건 입력과 같은 검증을 거치며, 실패한 행은 건너뛰고 보고.

CSV 컬럼:
    shareholder_id 또는 account_number
    security_id 또는 cusip
    category, quantity, transaction_date
    explicit_direction, note, submission_id (선택)

레거시 이관(--legacy)은 legacy_id, signed_quantity 컬럼을 사용하며 저장된 부호를 보존.

사용법:
    python -m scripts.import_transactions --issuer ISSUER_ID --file export.csv
    python -m scripts.import_transactions --issuer ISSUER_ID --file legacy.csv --legacy
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import pandas as pd

# 프로젝트 루트를 Python 경로에 추가
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import get_settings
from core.errors import LedgerError
from core.ledger.service import BulkIngestResult, LedgerService
from core.logging import setup_logging
from core.storage.metadata_store import MetadataStore
from core.types import Principal, Role

logger = logging.getLogger(__name__)

OPTIONAL_COLUMNS = ["explicit_direction", "note", "submission_id"]


def load_rows(path: Path) -> list[dict[str, Any]]:
    """CSV → 행 목록

    모든 값은 문자열로 읽고 빈 칸은 None으로 변환 (수량의 천 단위 쉼표는 입력 단계에서 처리).
    """
    frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    frame.columns = [str(c).strip().lower() for c in frame.columns]

    rows = []
    for record in frame.to_dict(orient="records"):
        rows.append({k: (v.strip() or None) if isinstance(v, str) else v for k, v in record.items()})
    return rows


async def resolve_references(
    metadata: MetadataStore,
    issuer_id: str,
    rows: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """account_number / cusip → shareholder_id / security_id

    찾지 못한 참조는 그대로 두어 입력 단계에서 행별 오류로 보고되게 한다.
    """
    securities = {s["cusip"]: s["security_id"] for s in await metadata.list_securities(issuer_id)}

    resolved = []
    for row in rows:
        entry = dict(row)
        if not entry.get("shareholder_id") and entry.get("account_number"):
            holder = await metadata.get_shareholder_by_account(issuer_id, entry["account_number"])
            if holder is not None:
                entry["shareholder_id"] = holder["shareholder_id"]
        if not entry.get("security_id") and entry.get("cusip"):
            entry["security_id"] = securities.get(entry["cusip"].upper())
        for column in OPTIONAL_COLUMNS:
            entry.setdefault(column, None)
        resolved.append(entry)
    return resolved


def print_result(result: BulkIngestResult) -> None:
    """행별 결과 출력"""
    for item in result.results:
        if item.ok:
            status = "created" if item.created else "existing"
            print(f"  row {item.index + 1}: OK {item.transaction_id} ({status})")
        else:
            print(f"  row {item.index + 1}: FAILED {json.dumps(item.error, ensure_ascii=False)}")
    print(f"total={len(result.results)} succeeded={result.succeeded} failed={result.failed}")


async def main(issuer_id: str, path: Path, legacy: bool, operator: str) -> int:
    """일괄 입력 실행

    Returns:
        종료 코드 (0: 전체 성공, 1: 일부 실패, 2: 실행 불가)
    """
    if not path.exists():
        logger.error(f"파일이 존재하지 않습니다: {path}")
        return 2

    rows = load_rows(path)
    logger.info(f"CSV 로드: {path} ({len(rows)}행)")

    settings = get_settings()
    principal = Principal(operator, Role.ADMIN)

    async with SQLiteAdapter(
        settings.db_path,
        timeout_sec=settings.store_timeout_sec,
        busy_timeout_ms=settings.busy_timeout_ms,
    ) as db:
        service = LedgerService(db, settings.correction_strategy)
        entries = await resolve_references(service.metadata, issuer_id, rows)
        try:
            if legacy:
                result = await service.import_legacy(principal, issuer_id, entries)
            else:
                result = await service.bulk_ingest(principal, issuer_id, entries)
        except LedgerError as e:
            logger.error(f"일괄 입력 실패: {e.message}")
            return 2

    print_result(result)
    return 0 if result.failed == 0 else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="거래 일괄 입력 (CSV)")
    parser.add_argument("--issuer", required=True, help="발행사 ID")
    parser.add_argument("--file", required=True, type=Path, help="CSV 파일 경로")
    parser.add_argument(
        "--legacy",
        action="store_true",
        help="레거시 이관 (signed_quantity 그대로 저장)",
    )
    parser.add_argument("--operator", default="cli:import", help="입력자 ID")
    args = parser.parse_args()

    setup_logging("cli")
    sys.exit(asyncio.run(main(args.issuer, args.file, args.legacy, args.operator)))
