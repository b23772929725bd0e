"""
应用事件系统

每种事件类型一个 EventChannel，订阅返回取消函数。
发布是同步扇出：按订阅顺序逐个调用，单个处理器抛出的异常只记录日志，不影响其余订阅者。
"""

from typing import Any, Callable, Generic, List, TypeVar

from app.core.logging import get_logger

T = TypeVar("T")

Unsubscribe = Callable[[], None]

events_logger = get_logger("events")


class Subscription(Generic[T]):
    """单个订阅句柄，同一个函数订阅两次得到两个独立句柄"""

    __slots__ = ("handler", "active")

    def __init__(self, handler: Callable[[T], Any]):
        self.handler = handler
        self.active = True


class EventChannel(Generic[T]):
    """类型化的事件通道"""

    def __init__(self, name: str):
        self.name = name
        self._subscriptions: List[Subscription[T]] = []

    def subscribe(self, handler: Callable[[T], Any]) -> Unsubscribe:
        """注册处理器，返回幂等的取消订阅函数"""
        subscription = Subscription(handler)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            self._subscriptions.remove(subscription)

        return unsubscribe

    def publish(self, payload: T) -> None:
        """同步发布事件"""
        # 处理器内部可能取消订阅，遍历快照
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                subscription.handler(payload)
            except Exception as e:
                events_logger.opt(exception=e).error(
                    f"Event handler error for '{self.name}': {e!r}"
                )

    def clear(self) -> None:
        for subscription in self._subscriptions:
            subscription.active = False
        self._subscriptions.clear()

    def __len__(self) -> int:
        return len(self._subscriptions)
