"""
타입 정의 모듈

Enum, Dataclass 등 핵심 타입 정의
모든 Enum은 str을 상속하여 문자열 직렬화 가능
"""

from dataclasses import dataclass
from enum import Enum


class DeploymentMode(str, Enum):
    """배포 모드 (운영 / 샌드박스)"""

    PRODUCTION = "production"
    SANDBOX = "sandbox"


class IssuerStatus(str, Enum):
    """발행사 상태

    - pending: 메타데이터 설정만 가능 (거래 입력 불가)
    - active: 모든 쓰기 가능
    - suspended: 모든 쓰기 불가
    """

    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class SecurityClass(str, Enum):
    """증권 종류 (Corporate action 파생 계산에 사용)"""

    COMMON = "common"
    UNIT = "unit"
    CLASS_A = "class_a"
    WARRANT = "warrant"
    RIGHT = "right"
    PREFERRED = "preferred"


class TransactionStatus(str, Enum):
    """거래 상태"""

    ACTIVE = "active"
    VOID = "void"


class Direction(str, Enum):
    """수량 방향 (+ 유입 / - 유출)"""

    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class TransactionSource(str, Enum):
    """거래 출처"""

    API = "API"
    IMPORT = "IMPORT"
    LEGACY = "LEGACY"
    RECONCILIATION = "RECONCILIATION"


class CorrectionStrategy(str, Enum):
    """부호 오류 정정 방식 (배포 단위로 하나만 사용)"""

    OFFSETTING = "offsetting"
    IN_PLACE = "in_place"


class Role(str, Enum):
    """권한 역할 (Identity provider가 전달하는 문자열)"""

    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    BROKER = "broker"
    READ_ONLY = "read_only"

    @property
    def rank(self) -> int:
        """권한 순위 (클수록 상위)"""
        return _ROLE_RANK[self]

    def at_least(self, other: "Role") -> bool:
        """other 이상의 권한인지 확인"""
        return self.rank >= other.rank


_ROLE_RANK: dict[Role, int] = {
    Role.READ_ONLY: 0,
    Role.BROKER: 1,
    Role.ADMIN: 2,
    Role.SUPERADMIN: 3,
}


class AuditAction(str, Enum):
    """감사 로그 액션"""

    TRANSACTION_VOIDED = "TRANSACTION_VOIDED"
    SIGN_CORRECTION = "SIGN_CORRECTION"
    RECONCILIATION_RUN = "RECONCILIATION_RUN"
    RECONCILIATION_VERIFY_FAILED = "RECONCILIATION_VERIFY_FAILED"
    POSITION_DRIFT = "POSITION_DRIFT"
    CORPORATE_ACTION_UPSERT = "CORPORATE_ACTION_UPSERT"
    RESTRICTION_SET = "RESTRICTION_SET"
    RESTRICTION_REVIEW_FLAGGED = "RESTRICTION_REVIEW_FLAGGED"
    ISSUER_STATUS_CHANGED = "ISSUER_STATUS_CHANGED"


@dataclass(frozen=True)
class PositionKey:
    """포지션 키 (불변)

    (issuer, shareholder, security) 조합으로 포지션 캐시를 식별
    """

    issuer_id: str
    shareholder_id: str
    security_id: str

    def __str__(self) -> str:
        return f"{self.issuer_id}:{self.shareholder_id}:{self.security_id}"


@dataclass(frozen=True)
class Principal:
    """인증된 호출자 (불변)

    Identity provider가 전달한 principal id와 role을 그대로 신뢰
    """

    principal_id: str
    role: Role

    @classmethod
    def create(cls, principal_id: str, role: str | Role) -> "Principal":
        """문자열 role로 Principal 생성

        Raises:
            ValueError: 알 수 없는 role
        """
        if isinstance(role, str) and not isinstance(role, Role):
            role = Role(role.strip().lower())
        return cls(principal_id=principal_id, role=role)

    @classmethod
    def system(cls, name: str = "system") -> "Principal":
        """내부 작업용 Principal (CLI 등)"""
        return cls(principal_id=f"system:{name}", role=Role.SUPERADMIN)
