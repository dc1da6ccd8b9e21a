"""
예외 정의

Ledger 코어가 호출자에게 전달하는 오류 분류.
- ValidationError: 입력 오류 (어느 필드, 어느 규칙인지 포함)
- AuthorizationError: 권한 부족 / 발행사 상태로 인한 쓰기 거부
- ConsistencyError: 캐시와 재계산 값 불일치
- TransientStoreError: 타임아웃, 연결 실패 (재시도 가능)

ValidationError와 AuthorizationError는 상세 내용을 그대로 반환.
ConsistencyError와 TransientStoreError는 로그에 전체 상태를 남기고
호출자에게는 일반 메시지만 노출 (관리자 제외).
"""

from typing import Any


class LedgerError(Exception):
    """Ledger 오류 기본 클래스"""

    kind: str = "ledger_error"
    retryable: bool = False
    public_message: str = "Ledger operation failed"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self, include_internal: bool = True) -> dict[str, Any]:
        """응답용 dict 변환

        Args:
            include_internal: False면 일반 메시지만 포함
        """
        if not include_internal:
            return {
                "kind": self.kind,
                "message": self.public_message,
                "retryable": self.retryable,
            }
        return {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
            **{k: _jsonable(v) for k, v in self.context.items()},
        }


class ValidationError(LedgerError):
    """입력 검증 오류

    Args:
        message: 오류 메시지
        field: 문제가 된 필드
        rule: 위반한 규칙 이름
    """

    kind = "validation_error"
    public_message = "Invalid input"

    def __init__(self, message: str, field: str | None = None, rule: str | None = None, **context: Any):
        super().__init__(message, field=field, rule=rule, **context)
        self.field = field
        self.rule = rule

    def to_dict(self, include_internal: bool = True) -> dict[str, Any]:
        # 입력 오류는 호출자가 고칠 수 있도록 항상 상세 포함
        return super().to_dict(include_internal=True)


class NotFoundError(ValidationError):
    """참조 대상 없음 (issuer, security, shareholder, transaction)"""

    kind = "not_found"


class AuthorizationError(LedgerError):
    """권한 오류

    역할 부족 또는 발행사 상태(pending/suspended)로 인한 쓰기 거부.
    """

    kind = "authorization_error"
    public_message = "Operation not permitted"

    def __init__(self, message: str, operation: str | None = None, role: str | None = None, reason: str | None = None, **context: Any):
        super().__init__(message, operation=operation, role=role, reason=reason, **context)
        self.operation = operation
        self.role = role
        self.reason = reason

    def to_dict(self, include_internal: bool = True) -> dict[str, Any]:
        return super().to_dict(include_internal=True)


class ConsistencyError(LedgerError):
    """캐시/원장 불일치

    Args:
        key: 포지션 키 또는 검증 범위
        cached: 캐시(또는 기대) 값
        recomputed: 원장 재계산 값
    """

    kind = "consistency_error"
    public_message = "Ledger state inconsistent, retry or escalate"

    def __init__(self, message: str, key: str | None = None, cached: int | None = None, recomputed: int | None = None, **context: Any):
        super().__init__(message, key=key, cached=cached, recomputed=recomputed, **context)
        self.key = key
        self.cached = cached
        self.recomputed = recomputed


class TransientStoreError(LedgerError):
    """일시적 저장소 오류 (타임아웃, lock, 연결 실패)

    재시도 안전 (쓰기는 natural key로 멱등)
    """

    kind = "transient_store_error"
    retryable = True
    public_message = "Temporary storage failure, retry later"

    def __init__(self, message: str, operation: str | None = None, cause: str | None = None, **context: Any):
        super().__init__(message, operation=operation, cause=cause, **context)
        self.operation = operation
        self.cause = cause


def _jsonable(value: Any) -> Any:
    """응답 직렬화용 값 변환"""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)
