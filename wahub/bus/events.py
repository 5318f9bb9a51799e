"""
事件类型定义模块 - 定义事件中心（EventHub）中传输的数据结构。

本模块定义了推送通道上唯一的"货币"：SessionEvent。
所有会话生命周期事件（二维码、认证、就绪、断线、错误）和入站消息
都被封装成 SessionEvent 后交给事件中心扇出给订阅者。

【Java 开发者类比】
- 使用 Python 的 @dataclass(frozen=True)，等价于 Java 的 record 类
- @property 等价于 Java 的 getter 方法

【设计要点】
- 旧的推送协议用 "kind_sessionId" 拼接字符串作为事件名寻址，
  这里改为显式的 session_id / kind / payload 三元组，
  name 属性只在写入线路（Socket.IO）时才拼接出来
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# 连接确认事件名（不属于任何会话）
CONNECT_CONFIRMATION = "connect_confirmation"


@dataclass(frozen=True)
class SessionEvent:
    """
    会话事件 - 事件中心中流转的类型化信封。

    属性:
        session_id: 事件所属会话 ID；连接确认等非会话事件为 None
        kind: 事件类型（'qr'、'authenticated'、'ready'、'disconnected'、'error'、'message'）
        payload: 事件载荷（字符串、字典或 None，原样写入推送线路）
        created_at: 事件创建时间
    """

    session_id: str | None
    kind: str
    payload: Any = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def name(self) -> str:
        """
        推送线路上的事件名。

        会话事件格式为 "kind_sessionId"，例如 "ready_abc"；
        非会话事件直接使用 kind。
        """
        if self.session_id is None:
            return self.kind
        return f"{self.kind}_{self.session_id}"
