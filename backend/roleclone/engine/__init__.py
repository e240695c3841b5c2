"""
roleclone/engine - 通用引擎组件

- state_machine: 状态机（驱动克隆会话）
- event_bus: 事件总线（克隆生命周期事件）
"""

from roleclone.engine.event_bus import Event, EventBus, PublishResult, event_bus
from roleclone.engine.state_machine import (
    CloneSessionState,
    InvalidTransition,
    StateMachine,
    StateMachineConfig,
    StateMachineSnapshot,
    StateTransition,
    build_clone_session_machine,
)

__all__ = [
    "Event",
    "EventBus",
    "PublishResult",
    "event_bus",
    "CloneSessionState",
    "InvalidTransition",
    "StateMachine",
    "StateMachineConfig",
    "StateMachineSnapshot",
    "StateTransition",
    "build_clone_session_machine",
]
