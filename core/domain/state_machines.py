"""
State Machines

발행사 상태, 정정(reconciliation) 이상 항목의 상태 전이 관리.
"""

import logging
from enum import Enum

from core.types import IssuerStatus

logger = logging.getLogger(__name__)


class StateMachineError(Exception):
    """상태 전이 오류"""
    pass


class AnomalyState(str, Enum):
    """부호 이상 항목 상태

    전이 규칙:
    - DETECTED → PLANNED: 정정 수량 계산 (dry-run 보고)
    - PLANNED → APPLIED: 정정 커밋
    - PLANNED → SKIPPED: 적용 직전 재검증 시 이미 해소됨
    - APPLIED → VERIFIED: 재계산 검증 통과
    - SKIPPED → VERIFIED: 재계산 검증 통과
    """
    DETECTED = "DETECTED"
    PLANNED = "PLANNED"
    APPLIED = "APPLIED"
    SKIPPED = "SKIPPED"
    VERIFIED = "VERIFIED"


class StateMachine:
    """상태 머신 기본 클래스

    Args:
        initial_state: 초기 상태
        transitions: 허용된 전이 정의 {from_state: [to_states]}
        name: 머신 이름 (로깅용)
    """

    def __init__(
        self,
        initial_state: str | Enum,
        transitions: dict[str, list[str]],
        name: str = "StateMachine",
    ):
        self._state = initial_state.value if isinstance(initial_state, Enum) else initial_state
        self._transitions = transitions
        self._name = name
        self._history: list[tuple[str, str]] = []

    @property
    def state(self) -> str:
        """현재 상태"""
        return self._state

    def can_transition(self, to_state: str | Enum) -> bool:
        """전이 가능 여부 확인"""
        target = to_state.value if isinstance(to_state, Enum) else to_state
        allowed = self._transitions.get(self._state, [])
        return target in allowed

    def transition(self, to_state: str | Enum) -> str:
        """상태 전이

        Args:
            to_state: 목표 상태

        Returns:
            새 상태

        Raises:
            StateMachineError: 허용되지 않은 전이
        """
        target = to_state.value if isinstance(to_state, Enum) else to_state

        if not self.can_transition(target):
            allowed = self._transitions.get(self._state, [])
            raise StateMachineError(
                f"{self._name}: Cannot transition from {self._state} to {target}. "
                f"Allowed: {allowed}"
            )

        old_state = self._state
        self._state = target
        self._history.append((old_state, target))

        logger.debug(f"{self._name}: {old_state} → {target}")

        return target

    @property
    def history(self) -> list[tuple[str, str]]:
        """상태 전이 이력"""
        return self._history.copy()


class IssuerStateMachine(StateMachine):
    """발행사 상태 머신

    hard delete 없음. suspended는 재활성화만 가능.
    """

    TRANSITIONS: dict[str, list[str]] = {
        "pending": ["active", "suspended"],
        "active": ["suspended"],
        "suspended": ["active"],
    }

    def __init__(self, initial_state: str | IssuerStatus = IssuerStatus.PENDING):
        super().__init__(
            initial_state=initial_state,
            transitions=self.TRANSITIONS,
            name="IssuerStateMachine",
        )

    @property
    def allows_transactions(self) -> bool:
        """거래 입력 가능 여부"""
        return self._state == IssuerStatus.ACTIVE.value

    @property
    def allows_metadata(self) -> bool:
        """메타데이터 설정 가능 여부"""
        return self._state in (IssuerStatus.PENDING.value, IssuerStatus.ACTIVE.value)


class AnomalyStateMachine(StateMachine):
    """부호 이상 항목 상태 머신"""

    TRANSITIONS: dict[str, list[str]] = {
        "DETECTED": ["PLANNED"],
        "PLANNED": ["APPLIED", "SKIPPED"],
        "APPLIED": ["VERIFIED"],
        "SKIPPED": ["VERIFIED"],
    }

    def __init__(self, initial_state: str | AnomalyState = AnomalyState.DETECTED):
        super().__init__(
            initial_state=initial_state,
            transitions=self.TRANSITIONS,
            name="AnomalyStateMachine",
        )

    @property
    def is_terminal(self) -> bool:
        """종료 상태 여부"""
        return self._state == AnomalyState.VERIFIED.value


def check_issuer_allows(status: str | IssuerStatus, transactions: bool) -> str | None:
    """발행사 상태가 쓰기를 허용하는지 확인

    Args:
        status: 현재 발행사 상태
        transactions: True면 거래 쓰기, False면 메타데이터 쓰기

    Returns:
        거부 사유 (허용이면 None)
    """
    machine = IssuerStateMachine(status)
    if transactions and not machine.allows_transactions:
        return f"issuer is {machine.state}; transaction writes require active"
    if not transactions and not machine.allows_metadata:
        return f"issuer is {machine.state}; writes are not permitted"
    return None
