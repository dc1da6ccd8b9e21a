"""
스토리지 모듈

메타데이터(발행사/증권/주주) 저장소와 감사 로그 저장소 제공
"""

from core.storage.audit_store import AuditRecord, AuditStore
from core.storage.metadata_store import MetadataStore, check_issuer_writable

__all__ = [
    "AuditRecord",
    "AuditStore",
    "MetadataStore",
    "check_issuer_writable",
]
