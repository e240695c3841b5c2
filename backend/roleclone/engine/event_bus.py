"""
roleclone/engine/event_bus.py

克隆事件总线 - 内存级发布/订阅
处理器异常互相隔离，只记录日志，不影响发布方。
"""
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from collections import deque
import logging
import threading
import uuid

from roleclone.config import settings

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], None]

# 单个克隆
CLONE_STARTED = "role.clone_started"
CLONE_COMPLETED = "role.clone_completed"
CLONE_FAILED = "role.clone_failed"
CLONE_CANCELLED = "role.clone_cancelled"
# 批量克隆
BULK_CLONE_STARTED = "role.bulk_clone_started"
BULK_CLONE_COMPLETED = "role.bulk_clone_completed"
BULK_CLONE_FAILED = "role.bulk_clone_failed"


def _generate_event_id() -> str:
    return f"{datetime.now().strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8]}"


@dataclass
class Event:
    """
    事件

    Attributes:
        event_type: 事件类型（如 "role.clone_completed"）
        data: 事件数据（source_role_id, target_role_id, clone_type ...）
        timestamp: 事件时间
        source: 触发来源
        event_id: 唯一事件ID
        correlation_id: 关联ID（同一会话的事件共享 session_id）
    """

    event_type: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)
    source: str = ""
    event_id: str = field(default_factory=_generate_event_id)
    correlation_id: Optional[str] = None


@dataclass
class PublishResult:
    event_type: str
    subscriber_count: int
    success_count: int = 0
    failure_count: int = 0
    errors: List[Tuple[EventHandler, Exception]] = field(default_factory=list)


class EventBus:
    """
    事件总线

    Example:
        >>> bus = EventBus()
        >>> bus.subscribe(CLONE_COMPLETED, lambda e: print(e.data["target_role_id"]))
        >>> bus.publish(Event(event_type=CLONE_COMPLETED, data={"target_role_id": "r2"}))
    """

    def __init__(self, history_size: Optional[int] = None):
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self._history: deque = deque(maxlen=history_size or settings.EVENT_HISTORY_SIZE)
        self._lock = threading.RLock()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
                logger.info(f"Handler {getattr(handler, '__name__', handler)} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Event) -> PublishResult:
        """
        发布事件（同步执行所有处理器）

        Returns:
            PublishResult，处理器异常收集在 errors 中
        """
        self._history.append(event)
        with self._lock:
            handlers = list(self._subscribers.get(event.event_type, []))

        result = PublishResult(event_type=event.event_type, subscriber_count=len(handlers))
        for handler in handlers:
            try:
                handler(event)
                result.success_count += 1
            except Exception as e:
                result.failure_count += 1
                result.errors.append((handler, e))
                logger.error(
                    f"Event handler {getattr(handler, '__name__', handler)} error for {event.event_type}: {e}",
                    exc_info=True,
                )
        return result

    def get_history(self, event_type: Optional[str] = None, limit: int = 50) -> List[Event]:
        """事件历史（最新的在前）"""
        history = list(self._history)
        if event_type:
            history = [e for e in history if e.event_type == event_type]
        return list(reversed(history))[:limit]

    def clear(self) -> None:
        """清空订阅和历史（用于测试）"""
        with self._lock:
            self._subscribers.clear()
        self._history.clear()


# 全局事件总线实例
event_bus = EventBus()


__all__ = [
    "EventHandler",
    "CLONE_STARTED",
    "CLONE_COMPLETED",
    "CLONE_FAILED",
    "CLONE_CANCELLED",
    "BULK_CLONE_STARTED",
    "BULK_CLONE_COMPLETED",
    "BULK_CLONE_FAILED",
    "Event",
    "PublishResult",
    "EventBus",
    "event_bus",
]
