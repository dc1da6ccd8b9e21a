"""
원장 스키마 초기화

Web/CLI 시작 시 자동으로 원장 테이블과 View 생성.
CREATE IF NOT EXISTS / DROP VIEW IF EXISTS 패턴으로 안전하게 동작.

주의: issuer/security/shareholder/audit_log는 adapters.db.sqlite_adapter.init_schema에서 생성
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from adapters.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


async def init_ledger_schema(db: "SQLiteAdapter") -> None:
    """원장 스키마 초기화 (테이블 + View)

    이미 존재하는 경우 안전하게 건너뜀 (IF NOT EXISTS).

    Args:
        db: SQLiteAdapter 인스턴스
    """
    await _create_ledger_tables(db)
    await _create_ledger_views(db)
    logger.info("원장 스키마 초기화 완료")


async def _create_ledger_tables(db: "SQLiteAdapter") -> None:
    """원장 테이블 생성"""

    # ledger_transaction (append-only, seq = 생성 순서)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS ledger_transaction (
            seq                      INTEGER PRIMARY KEY AUTOINCREMENT,
            transaction_id           TEXT NOT NULL UNIQUE,
            issuer_id                TEXT NOT NULL,
            shareholder_id           TEXT NOT NULL,
            security_id              TEXT NOT NULL,

            category                 TEXT NOT NULL,
            quantity                 INTEGER NOT NULL,
            signed_quantity          INTEGER NOT NULL,
            direction                TEXT NOT NULL,
            explicit_direction       TEXT,

            transaction_date         TEXT NOT NULL,
            note                     TEXT,
            status                   TEXT NOT NULL DEFAULT 'active',
            source                   TEXT NOT NULL DEFAULT 'API',
            submission_key           TEXT NOT NULL UNIQUE,
            corrects_transaction_id  TEXT,

            created_by               TEXT NOT NULL,
            created_at               TEXT NOT NULL,

            CHECK (quantity > 0),
            CHECK (status IN ('active', 'void')),
            FOREIGN KEY (issuer_id) REFERENCES issuer(issuer_id),
            FOREIGN KEY (shareholder_id) REFERENCES shareholder(shareholder_id),
            FOREIGN KEY (security_id) REFERENCES security(security_id),
            FOREIGN KEY (corrects_transaction_id) REFERENCES ledger_transaction(transaction_id)
        )
    """)

    # position_cache (원장에서 항상 재계산 가능한 materialized 값)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS position_cache (
            issuer_id          TEXT NOT NULL,
            shareholder_id     TEXT NOT NULL,
            security_id        TEXT NOT NULL,
            signed_total       INTEGER NOT NULL DEFAULT 0,
            transaction_count  INTEGER NOT NULL DEFAULT 0,
            last_seq           INTEGER,
            updated_at         TEXT NOT NULL DEFAULT (datetime('now')),
            PRIMARY KEY (issuer_id, shareholder_id, security_id)
        )
    """)

    # corporate_action (발행사 + 카테고리당 하나)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS corporate_action (
            action_id        TEXT PRIMARY KEY,
            issuer_id        TEXT NOT NULL,
            category         TEXT NOT NULL,
            ratios_json      TEXT NOT NULL,
            version          INTEGER NOT NULL DEFAULT 1,
            updated_by       TEXT NOT NULL,
            created_at       TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at       TEXT NOT NULL DEFAULT (datetime('now')),
            UNIQUE(issuer_id, category),
            FOREIGN KEY (issuer_id) REFERENCES issuer(issuer_id)
        )
    """)

    # restriction (주주 + 증권당 하나)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS restriction (
            restriction_id       TEXT PRIMARY KEY,
            issuer_id            TEXT NOT NULL,
            shareholder_id       TEXT NOT NULL,
            security_id          TEXT NOT NULL,
            restricted_quantity  INTEGER NOT NULL,
            restriction_code     TEXT,
            legend               TEXT,
            needs_review         INTEGER NOT NULL DEFAULT 0,
            created_by           TEXT NOT NULL,
            created_at           TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at           TEXT NOT NULL DEFAULT (datetime('now')),
            CHECK (restricted_quantity >= 0),
            UNIQUE(issuer_id, shareholder_id, security_id),
            FOREIGN KEY (shareholder_id) REFERENCES shareholder(shareholder_id),
            FOREIGN KEY (security_id) REFERENCES security(security_id)
        )
    """)

    # 인덱스
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_ledger_txn_key "
        "ON ledger_transaction(issuer_id, shareholder_id, security_id, transaction_date, seq)"
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_ledger_txn_scope "
        "ON ledger_transaction(issuer_id, security_id, status)"
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_ledger_txn_corrects "
        "ON ledger_transaction(corrects_transaction_id)"
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_restriction_review "
        "ON restriction(issuer_id, needs_review)"
    )

    await db.commit()
    logger.debug("원장 테이블 생성 완료")


async def _create_ledger_views(db: "SQLiteAdapter") -> None:
    """조회용 View 생성

    View는 항상 DROP 후 CREATE하여 스키마 변경 시에도 안전.
    """

    # 이체 원장 View (v_transfer_journal)
    await db.execute("DROP VIEW IF EXISTS v_transfer_journal")
    await db.execute("""
        CREATE VIEW v_transfer_journal AS
        SELECT
            t.seq,
            t.transaction_id,
            t.issuer_id,
            t.transaction_date,
            t.category,
            t.quantity,
            t.signed_quantity,
            t.direction,
            t.status,
            t.source,
            t.note,
            t.corrects_transaction_id,
            t.shareholder_id,
            sh.account_number,
            sh.name AS shareholder_name,
            t.security_id,
            s.cusip,
            s.security_class
        FROM ledger_transaction t
        JOIN shareholder sh ON sh.shareholder_id = t.shareholder_id
        JOIN security s ON s.security_id = t.security_id
    """)

    await db.commit()
    logger.debug("원장 View 생성 완료")
