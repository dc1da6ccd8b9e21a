"""
core/types.py 테스트

Enum 직렬화, 역할 순위, Principal, PositionKey
"""

import pytest

from core.types import (
    CorrectionStrategy,
    DeploymentMode,
    IssuerStatus,
    PositionKey,
    Principal,
    Role,
)


class TestEnums:
    """str Enum 테스트"""

    def test_values(self) -> None:
        assert DeploymentMode.PRODUCTION.value == "production"
        assert IssuerStatus("suspended") == IssuerStatus.SUSPENDED
        assert CorrectionStrategy("in_place") == CorrectionStrategy.IN_PLACE

    def test_str_comparison(self) -> None:
        assert IssuerStatus.ACTIVE == "active"


class TestRole:
    """역할 순위"""

    def test_ranking(self) -> None:
        """superadmin > admin > broker > read_only"""
        assert Role.SUPERADMIN.at_least(Role.ADMIN)
        assert Role.ADMIN.at_least(Role.ADMIN)
        assert Role.ADMIN.at_least(Role.BROKER)
        assert not Role.BROKER.at_least(Role.ADMIN)
        assert not Role.READ_ONLY.at_least(Role.BROKER)

    def test_rank_order(self) -> None:
        ranks = [r.rank for r in (Role.READ_ONLY, Role.BROKER, Role.ADMIN, Role.SUPERADMIN)]
        assert ranks == sorted(ranks)


class TestPrincipal:
    """Principal 테스트"""

    def test_create_from_string(self) -> None:
        principal = Principal.create("user-1", " Admin ")
        assert principal.role == Role.ADMIN

    def test_create_unknown_role(self) -> None:
        with pytest.raises(ValueError):
            Principal.create("user-1", "owner")

    def test_system(self) -> None:
        principal = Principal.system("cli")
        assert principal.principal_id == "system:cli"
        assert principal.role == Role.SUPERADMIN

    def test_immutable(self) -> None:
        principal = Principal("user-1", Role.BROKER)
        with pytest.raises(AttributeError):
            principal.role = Role.ADMIN  # type: ignore[misc]


class TestPositionKey:
    """PositionKey 테스트"""

    def test_str_and_hash(self) -> None:
        key = PositionKey("issuer-1", "holder-1", "sec-units")
        assert str(key) == "issuer-1:holder-1:sec-units"
        assert {key: 1}[PositionKey("issuer-1", "holder-1", "sec-units")] == 1
