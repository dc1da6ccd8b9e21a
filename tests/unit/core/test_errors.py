"""
core/errors.py 테스트

오류 분류와 호출자 노출 범위 검증
"""

from core.errors import (
    AuthorizationError,
    ConsistencyError,
    LedgerError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)


class TestErrorKinds:
    """오류 분류"""

    def test_hierarchy(self) -> None:
        assert issubclass(NotFoundError, ValidationError)
        for error_type in (ValidationError, AuthorizationError, ConsistencyError, TransientStoreError):
            assert issubclass(error_type, LedgerError)

    def test_only_transient_is_retryable(self) -> None:
        assert TransientStoreError("timeout").retryable is True
        assert ConsistencyError("drift").retryable is False
        assert ValidationError("bad").retryable is False


class TestToDict:
    """응답 변환"""

    def test_validation_always_detailed(self) -> None:
        """입력 오류는 일반 사용자에게도 필드/규칙 전달"""
        error = ValidationError("quantity must be greater than zero", field="quantity", rule="positive")
        data = error.to_dict(include_internal=False)
        assert data["kind"] == "validation_error"
        assert data["field"] == "quantity"
        assert data["rule"] == "positive"
        assert data["message"] == "quantity must be greater than zero"

    def test_authorization_always_detailed(self) -> None:
        error = AuthorizationError("denied", operation="ingest", role="broker", reason="insufficient_role")
        data = error.to_dict(include_internal=False)
        assert data["reason"] == "insufficient_role"
        assert data["role"] == "broker"

    def test_not_found_kind(self) -> None:
        assert NotFoundError("missing", field="issuer_id", rule="exists").to_dict()["kind"] == "not_found"

    def test_consistency_hidden_from_non_admin(self) -> None:
        """불일치 상세는 일반 메시지로 대체"""
        error = ConsistencyError("Position cache drift for i:s:x", key="i:s:x", cached=1, recomputed=2)
        public = error.to_dict(include_internal=False)
        assert public == {
            "kind": "consistency_error",
            "message": ConsistencyError.public_message,
            "retryable": False,
        }

        internal = error.to_dict(include_internal=True)
        assert internal["cached"] == 1
        assert internal["recomputed"] == 2
        assert internal["key"] == "i:s:x"

    def test_transient_public(self) -> None:
        error = TransientStoreError("timed out", operation="execute", cause="timeout")
        public = error.to_dict(include_internal=False)
        assert public["retryable"] is True
        assert "cause" not in public

    def test_context_values_are_jsonable(self) -> None:
        error = ValidationError("bad", field="x", rule="y", allowed=("a", "b"), extra={1: object})
        data = error.to_dict()
        assert data["allowed"] == ["a", "b"]
        assert list(data["extra"].keys()) == ["1"]
        assert isinstance(data["extra"]["1"], str)
