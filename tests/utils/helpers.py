"""
테스트 헬퍼

기본 발행사 세트 생성, 원장 거래 생성
"""

from dataclasses import dataclass

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.ledger.entry_builder import TransactionBuilder
from core.ledger.types import LedgerTransaction
from core.storage.metadata_store import MetadataStore
from core.types import IssuerStatus, PositionKey


@dataclass
class LedgerFixture:
    """발행사 + Units/Class A 증권 + 주주 2명"""

    issuer_id: str
    units_id: str
    class_a_id: str
    holder_id: str
    other_holder_id: str

    @property
    def units_key(self) -> PositionKey:
        return PositionKey(self.issuer_id, self.holder_id, self.units_id)


async def create_issuer_set(
    db: SQLiteAdapter,
    issuer_id: str = "issuer-1",
    status: IssuerStatus = IssuerStatus.ACTIVE,
) -> LedgerFixture:
    """발행사 세트 생성"""
    metadata = MetadataStore(db)
    await metadata.create_issuer("Acme Acquisition Corp", created_by="test", issuer_id=issuer_id)
    units = await metadata.add_security(issuer_id, f"{issuer_id[-1]}0000U101", "unit", "Units")
    class_a = await metadata.add_security(issuer_id, f"{issuer_id[-1]}0000A101", "class_a", "Class A")
    holder = await metadata.add_shareholder(issuer_id, "ACCT-001", "Cede & Co")
    other = await metadata.add_shareholder(issuer_id, "ACCT-002", "Sponsor LLC")
    if status != IssuerStatus.PENDING:
        await metadata.set_issuer_status(issuer_id, status, actor_id="test")

    return LedgerFixture(
        issuer_id=issuer_id,
        units_id=units["security_id"],
        class_a_id=class_a["security_id"],
        holder_id=holder["shareholder_id"],
        other_holder_id=other["shareholder_id"],
    )


def request_txn(ledger: LedgerFixture, **overrides) -> LedgerTransaction:
    """API 요청 경로 거래 (기본: Units IPO 7,906,132)"""
    params = {
        "issuer_id": ledger.issuer_id,
        "shareholder_id": ledger.holder_id,
        "security_id": ledger.units_id,
        "category": "IPO",
        "quantity": 7_906_132,
        "transaction_date": "2024-01-02",
        "created_by": "admin-1",
    }
    params.update(overrides)
    return TransactionBuilder.from_request(**params)


def legacy_txn(
    ledger: LedgerFixture,
    legacy_id: str,
    category: str,
    signed_quantity: int,
    transaction_date: str,
    security_id: str | None = None,
) -> LedgerTransaction:
    """이관 경로 거래 (저장된 부호 그대로)"""
    return TransactionBuilder.from_legacy_record(
        {
            "legacy_id": legacy_id,
            "shareholder_id": ledger.holder_id,
            "security_id": security_id or ledger.units_id,
            "category": category,
            "signed_quantity": signed_quantity,
            "transaction_date": transaction_date,
        },
        issuer_id=ledger.issuer_id,
        created_by="migration",
    )
