"""
推送通道模块 - 基于 Socket.IO 的实时事件推送。

每个 Socket.IO 连接对应事件中心的一个订阅者：
1. 连接建立 → hub.connect() 创建订阅者，并启动一个"泵"任务
2. 泵任务按顺序从订阅者队列取事件，以 event.name（如 "ready_abc"）发给该连接
3. 连接断开 → hub.disconnect() 注销订阅者，取消泵任务

客户端可以发送一条命令：
- create_session（载荷：会话 ID 字符串）→ 注册表创建会话；
  若会话已存在，仅向请求方回复 "error_<id>"

【Java 开发者类比】
- socketio.AsyncServer 相当于 Netty-SocketIO 的 SocketIOServer
- sio.on("create_session", ...) 相当于 @OnEvent("create_session")
"""

import asyncio
from typing import Any

import socketio
from loguru import logger

from wahub.bus.hub import EventHub, Subscriber
from wahub.config.schema import ServerConfig
from wahub.session.errors import SessionAlreadyExistsError
from wahub.session.registry import SessionRegistry


class PushServer:
    """
    Socket.IO 推送服务器。

    属性:
        sio: Socket.IO 异步服务器实例
        registry: 会话注册表
        hub: 事件中心
        _subscribers: 连接 ID → 订阅者
        _pumps: 连接 ID → 泵任务
    """

    def __init__(self, registry: SessionRegistry, hub: EventHub, config: ServerConfig):
        self.registry = registry
        self.hub = hub
        self.config = config
        origins = "*" if "*" in config.cors_origins else config.cors_origins
        self.sio = socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=origins,
            ping_timeout=config.ping_timeout,
            ping_interval=config.ping_interval,
            max_http_buffer_size=config.max_http_buffer_size,
        )
        self._subscribers: dict[str, Subscriber] = {}
        self._pumps: dict[str, asyncio.Task] = {}

        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on("create_session", self.on_create_session)

    async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
        logger.info(f"Client connected with ID: {sid}")
        subscriber = self.hub.connect(subscriber_id=sid)
        self._subscribers[sid] = subscriber
        self._pumps[sid] = asyncio.create_task(self._pump(sid, subscriber))

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        logger.info(f"Client disconnected: {sid} Reason: {reason}")
        subscriber = self._subscribers.pop(sid, None)
        if subscriber:
            self.hub.disconnect(subscriber)
        pump = self._pumps.pop(sid, None)
        if pump:
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass

    async def on_create_session(self, sid: str, data: Any) -> None:
        """
        处理 create_session 命令。

        载荷可以是会话 ID 字符串，也可以是 {"sessionId": ...} / {"clientId": ...}。
        创建是异步的：结果通过后续的 qr / ready / error 事件推送。
        """
        if isinstance(data, dict):
            data = data.get("sessionId") or data.get("clientId")
        session_id = str(data).strip() if data else ""
        if not session_id:
            await self.sio.emit("error", "Session ID is required", to=sid)
            return

        logger.info(f"Creating new session for client: {session_id}")
        try:
            await self.registry.create(session_id)
        except SessionAlreadyExistsError as e:
            await self.sio.emit(f"error_{session_id}", e.message, to=sid)
        except Exception as e:
            logger.error(f"Error creating session for {session_id}: {e}")
            await self.sio.emit(f"error_{session_id}", "Failed to create WhatsApp session", to=sid)

    async def _pump(self, sid: str, subscriber: Subscriber) -> None:
        """把订阅者队列中的事件按顺序写入对应连接。"""
        async for event in subscriber:
            try:
                await self.sio.emit(event.name, event.payload, to=sid)
            except Exception as e:
                logger.error(f"Error emitting {event.name} to {sid}: {e}")

    @property
    def connection_count(self) -> int:
        return len(self._subscribers)

    async def close(self) -> None:
        """断开所有订阅并停止泵任务。"""
        for sid in list(self._subscribers):
            await self.on_disconnect(sid, "server shutdown")
