"""
작업별 권한 검사

Identity provider가 전달한 role 문자열을 신뢰하고 작업별 최소 권한만 확인.
"""

import logging
from enum import Enum

from core.errors import AuthorizationError
from core.types import Principal, Role

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """권한 검사 대상 작업"""

    READ = "read"
    INGEST = "ingest"
    VOID_TRANSACTION = "void_transaction"
    SET_RESTRICTION = "set_restriction"
    APPLY_CORPORATE_ACTION = "apply_corporate_action"
    RUN_RECONCILIATION = "run_reconciliation"
    MANAGE_METADATA = "manage_metadata"
    CHANGE_ISSUER_STATUS = "change_issuer_status"


# 작업별 최소 권한
MINIMUM_ROLE: dict[Operation, Role] = {
    Operation.READ: Role.READ_ONLY,
    Operation.INGEST: Role.ADMIN,
    Operation.VOID_TRANSACTION: Role.ADMIN,
    Operation.SET_RESTRICTION: Role.ADMIN,
    Operation.APPLY_CORPORATE_ACTION: Role.ADMIN,
    Operation.RUN_RECONCILIATION: Role.ADMIN,
    Operation.MANAGE_METADATA: Role.ADMIN,
    Operation.CHANGE_ISSUER_STATUS: Role.SUPERADMIN,
}


def is_allowed(principal: Principal, operation: Operation) -> bool:
    """권한 여부"""
    return principal.role.at_least(MINIMUM_ROLE[operation])


def require(principal: Principal, operation: Operation) -> None:
    """권한 확인

    Raises:
        AuthorizationError: 역할 부족
    """
    if is_allowed(principal, operation):
        return

    required = MINIMUM_ROLE[operation]
    logger.warning(
        f"권한 거부: {principal.principal_id} ({principal.role.value}) → {operation.value}",
        extra={"required_role": required.value},
    )
    raise AuthorizationError(
        f"Role '{principal.role.value}' may not perform '{operation.value}' "
        f"(requires {required.value} or above)",
        operation=operation.value,
        role=principal.role.value,
        reason="insufficient_role",
        required_role=required.value,
    )


def can_see_internal_errors(principal: Principal | None) -> bool:
    """내부 오류 상세 노출 여부 (admin 이상)"""
    return principal is not None and principal.role.at_least(Role.ADMIN)
