"""
주식 소유 원장 (Securities Ownership Ledger)

발행사별 주주 보유 수량을 거래 원장으로부터 계산하는 시스템.
거래는 append-only로 저장되며, 포지션 캐시는 원장에서 항상 재계산 가능.

사용 예시:
```python
from core.ledger import LedgerService

service = LedgerService(db, settings.correction_strategy)

# 거래 입력 (부호는 category로 결정)
txn = await service.ingest(
    principal,
    issuer_id=issuer_id,
    shareholder_id=holder_id,
    security_id=security_id,
    category="DWAC Withdrawal",
    quantity=20000,
    transaction_date="2024-03-01",
)

# 포지션 조회
qty = await service.get_position(principal, issuer_id, holder_id, security_id)

# 부호 이상 탐지 (dry run)
report = await service.run_reconciliation(principal, issuer_id, dry_run=True)
```
"""

from core.ledger.classifier import Classification, classify, normalize_category
from core.ledger.entry_builder import TransactionBuilder
from core.ledger.reconciliation import ReconciliationEngine, ReconciliationReport
from core.ledger.restrictions import RestrictionOverlay
from core.ledger.service import BulkIngestResult, LedgerService
from core.ledger.store import LedgerStore
from core.ledger.types import (
    CorporateAction,
    LedgerTransaction,
    PositionBalance,
    Restriction,
    TransactionCategory,
)

__all__ = [
    # 핵심 클래스
    "LedgerService",
    "LedgerStore",
    "TransactionBuilder",
    "ReconciliationEngine",
    "RestrictionOverlay",
    # 분류
    "Classification",
    "classify",
    "normalize_category",
    # 데이터
    "LedgerTransaction",
    "PositionBalance",
    "CorporateAction",
    "Restriction",
    "ReconciliationReport",
    "BulkIngestResult",
    # Enum
    "TransactionCategory",
]
