"""
事件总线模块 - 实现会话与推送通道之间的解耦通信。

事件流向：
  引擎事件 → Session 状态机 → EventHub.publish() → 订阅者队列 → Socket.IO 连接

【Java 开发者类比】
- EventHub 类似于 Spring 的 ApplicationEventPublisher
- SessionEvent 类似于一个带类型的事件 DTO
"""

from wahub.bus.events import SessionEvent
from wahub.bus.hub import EventHub, Subscriber

__all__ = ["EventHub", "Subscriber", "SessionEvent"]
