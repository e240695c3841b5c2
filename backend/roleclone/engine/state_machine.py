"""
roleclone/engine/state_machine.py

状态机引擎 - 驱动克隆会话的状态转换
"""
from typing import Dict, List, Optional
from dataclasses import dataclass, field
from enum import Enum
import logging
import time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateTransition:
    """
    状态转换定义

    Attributes:
        from_state: 源状态
        to_state: 目标状态
        trigger: 触发动作
    """

    from_state: str
    to_state: str
    trigger: str


@dataclass
class StateMachineConfig:
    """
    状态机配置

    Attributes:
        name: 状态机名称
        states: 所有状态的列表
        transitions: 转换列表
        initial_state: 初始状态
    """

    name: str
    states: List[str]
    transitions: List[StateTransition]
    initial_state: str

    def __post_init__(self):
        if self.initial_state not in self.states:
            raise ValueError(f"Initial state {self.initial_state!r} is not a declared state")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"Transition {t.trigger!r} references an undeclared state")


@dataclass
class StateMachineSnapshot:
    """
    转换记录（用于审计）

    Attributes:
        previous_state: 转换前状态
        current_state: 转换后状态
        trigger: 触发动作
        timestamp: 转换时间
    """

    previous_state: str
    current_state: str
    trigger: str
    timestamp: float = field(default_factory=time.time)


class InvalidTransition(Exception):
    """当前状态不允许该触发动作"""

    def __init__(self, machine: str, state: str, trigger: str):
        self.machine = machine
        self.state = state
        self.trigger = trigger
        super().__init__(f"{machine}: trigger '{trigger}' is not allowed in state '{state}'")


class StateMachine:
    """
    状态机

    特性：
    - 按 (当前状态, 触发动作) 查找转换
    - 历史记录（用于审计）

    Example:
        >>> machine = StateMachine(StateMachineConfig(
        ...     name="Door",
        ...     states=["open", "closed"],
        ...     transitions=[StateTransition("open", "closed", "close")],
        ...     initial_state="open",
        ... ))
        >>> machine.fire("close")
        'closed'
    """

    def __init__(self, config: StateMachineConfig):
        self._config = config
        self._current_state = config.initial_state
        self._history: List[StateMachineSnapshot] = []
        self._transition_map: Dict[str, Dict[str, StateTransition]] = {}

        # (from_state, trigger) -> transition
        for t in config.transitions:
            self._transition_map.setdefault(t.from_state, {})[t.trigger] = t

    @property
    def current_state(self) -> str:
        return self._current_state

    @property
    def config(self) -> StateMachineConfig:
        return self._config

    def can_fire(self, trigger: str) -> bool:
        return trigger in self._transition_map.get(self._current_state, {})

    def fire(self, trigger: str) -> str:
        """
        执行触发动作

        Args:
            trigger: 触发动作

        Returns:
            转换后的状态

        Raises:
            InvalidTransition: 当前状态不允许该动作
        """
        transition = self._transition_map.get(self._current_state, {}).get(trigger)
        if transition is None:
            logger.warning(
                f"{self._config.name}: invalid trigger '{trigger}' in state '{self._current_state}'"
            )
            raise InvalidTransition(self._config.name, self._current_state, trigger)

        previous_state = self._current_state
        self._current_state = transition.to_state
        self._history.append(StateMachineSnapshot(
            previous_state=previous_state,
            current_state=transition.to_state,
            trigger=trigger,
        ))

        if previous_state != transition.to_state:
            logger.info(
                f"{self._config.name}: {previous_state} -> {transition.to_state} (trigger: {trigger})"
            )
        return self._current_state

    def get_history(self) -> List[StateMachineSnapshot]:
        return list(self._history)

    def reset(self, state: Optional[str] = None) -> None:
        """
        重置状态机

        Args:
            state: 要重置到的状态，如果为 None 则使用初始状态
        """
        target = state if state is not None else self._config.initial_state
        if target not in self._config.states:
            raise ValueError(f"Unknown state {target!r}")
        self._current_state = target
        self._history.clear()


# ============== 克隆会话状态机 ==============

class CloneSessionState(str, Enum):
    IDLE = "idle"
    CONFIGURING = "configuring"
    PREVIEWING = "previewing"
    CONFIRMING = "confirming"
    EXECUTED = "executed"
    CANCELLED = "cancelled"


_S = CloneSessionState
_ACTIVE = (_S.CONFIGURING, _S.PREVIEWING, _S.CONFIRMING)


def _clone_session_transitions() -> List[StateTransition]:
    transitions = [StateTransition(_S.IDLE.value, _S.CONFIGURING.value, "start")]
    for state in _ACTIVE:
        transitions += [
            StateTransition(state.value, _S.CONFIGURING.value, "update"),
            StateTransition(state.value, _S.PREVIEWING.value, "preview"),
            StateTransition(state.value, _S.EXECUTED.value, "execute"),
        ]
    transitions.append(StateTransition(_S.PREVIEWING.value, _S.CONFIRMING.value, "confirm"))
    for state in CloneSessionState:
        if state != _S.CANCELLED:
            transitions.append(StateTransition(state.value, _S.CANCELLED.value, "cancel"))
    transitions += [
        StateTransition(_S.EXECUTED.value, _S.IDLE.value, "reset"),
        StateTransition(_S.CANCELLED.value, _S.IDLE.value, "reset"),
    ]
    return transitions


def build_clone_session_machine() -> StateMachine:
    """idle -> configuring -> previewing -> confirming -> (executed | cancelled)"""
    return StateMachine(StateMachineConfig(
        name="CloneSession",
        states=[s.value for s in CloneSessionState],
        transitions=_clone_session_transitions(),
        initial_state=_S.IDLE.value,
    ))


__all__ = [
    "StateTransition",
    "StateMachineConfig",
    "StateMachineSnapshot",
    "InvalidTransition",
    "StateMachine",
    "CloneSessionState",
    "build_clone_session_machine",
]
