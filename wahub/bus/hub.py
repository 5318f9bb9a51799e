"""
事件扇出中心模块 - 推送通道的核心实现。

本模块实现了 EventHub 类：把任意会话产生的事件广播给所有已连接的订阅者。
每个订阅者持有一个独立的 asyncio.Queue，发布方只做同步的 put_nowait，
订阅方（通常是某个 Socket.IO 连接的泵任务）按 FIFO 顺序异步消费。

发布流程：
  Session → publish(session_id, kind, payload) → 每个订阅者的队列 → 推送线路

【Java 开发者类比】
- asyncio.Queue 类似于 Java 的 LinkedBlockingQueue
- predicate 订阅过滤类似于 Spring 的 @EventListener(condition = ...)

【核心设计】
- publish 不包含任何 await，因此同一会话的事件顺序与发布顺序严格一致
- 队列无界，订阅期间不会丢事件
- 默认谓词接受所有事件：任意订阅者都能收到所有会话的事件（目前没有租户隔离）
"""

import asyncio
from typing import AsyncIterator, Callable

from loguru import logger

from wahub.bus.events import CONNECT_CONFIRMATION, SessionEvent
from wahub.utils.helpers import new_id

EventPredicate = Callable[[SessionEvent], bool]


def accept_all(event: SessionEvent) -> bool:
    """默认订阅谓词：接受所有会话的事件。"""
    return True


def for_session(session_id: str) -> EventPredicate:
    """构造只接受指定会话事件（以及连接确认等非会话事件）的谓词。"""
    def predicate(event: SessionEvent) -> bool:
        return event.session_id is None or event.session_id == session_id
    return predicate


class Subscriber:
    """
    订阅者 - 一个连接到事件中心的外部参与者。

    属性:
        id: 订阅者唯一标识（连接 ID）
        predicate: 事件过滤谓词
        queue: 待投递事件队列
    """

    def __init__(self, subscriber_id: str, predicate: EventPredicate = accept_all):
        self.id = subscriber_id
        self.predicate = predicate
        self.queue: asyncio.Queue[SessionEvent | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """尚未被消费的事件数量。"""
        return self.queue.qsize()

    def deliver(self, event: SessionEvent) -> bool:
        """
        尝试向该订阅者投递事件（同步、不阻塞）。

        返回:
            True 表示事件已入队，False 表示已关闭或被谓词过滤
        """
        if self._closed or not self.predicate(event):
            return False
        self.queue.put_nowait(event)
        return True

    def close(self) -> None:
        """关闭订阅：放入结束哨兵，迭代器在消费完已入队事件后退出。"""
        if self._closed:
            return
        self._closed = True
        self.queue.put_nowait(None)

    async def get(self) -> SessionEvent | None:
        """获取下一条事件；订阅关闭后返回 None。"""
        return await self.queue.get()

    async def __aiter__(self) -> AsyncIterator[SessionEvent]:
        while True:
            event = await self.queue.get()
            if event is None:
                return
            yield event


class EventHub:
    """
    事件中心 - 会话事件的扇出路由器。

    属性:
        _subscribers: 当前连接的订阅者字典 {订阅者 ID: Subscriber}
    """

    def __init__(self):
        self._subscribers: dict[str, Subscriber] = {}

    def connect(
        self,
        predicate: EventPredicate | None = None,
        subscriber_id: str | None = None,
    ) -> Subscriber:
        """
        注册一个新的订阅者。

        新订阅者队列中的第一条事件一定是连接确认：
        {"status": "connected", "socketId": <订阅者 ID>}

        参数:
            predicate: 可选的事件过滤谓词，默认接受所有事件
            subscriber_id: 可选的订阅者 ID（如 Socket.IO 连接 ID），缺省时随机生成

        返回:
            新建的订阅者
        """
        subscriber = Subscriber(subscriber_id or new_id(), predicate or accept_all)
        self._subscribers[subscriber.id] = subscriber
        subscriber.queue.put_nowait(SessionEvent(
            session_id=None,
            kind=CONNECT_CONFIRMATION,
            payload={"status": "connected", "socketId": subscriber.id},
        ))
        logger.debug(f"Subscriber connected: {subscriber.id}")
        return subscriber

    def disconnect(self, subscriber: Subscriber) -> None:
        """注销订阅者并停止投递。重复调用无副作用。"""
        if self._subscribers.pop(subscriber.id, None) is not None:
            logger.debug(f"Subscriber disconnected: {subscriber.id}")
        subscriber.close()

    def publish(self, session_id: str, kind: str, payload=None) -> SessionEvent:
        """
        向所有订阅者广播一条会话事件。

        参数:
            session_id: 事件所属会话 ID
            kind: 事件类型
            payload: 事件载荷

        返回:
            已发布的事件信封
        """
        event = SessionEvent(session_id=session_id, kind=kind, payload=payload)
        delivered = 0
        for subscriber in list(self._subscribers.values()):
            if subscriber.deliver(event):
                delivered += 1
        logger.debug(f"Published {event.name} to {delivered} subscriber(s)")
        return event

    def get(self, subscriber_id: str) -> Subscriber | None:
        return self._subscribers.get(subscriber_id)

    @property
    def subscriber_count(self) -> int:
        """当前连接的订阅者数量。"""
        return len(self._subscribers)
