"""
会话实现模块 - 单个 WhatsApp 自动化会话及其生命周期状态机。

一个 Session 包装一个引擎实例（BaseEngine），负责：
1. 启动引擎并消费引擎的生命周期事件序列
2. 按状态机推进自身状态（created → initializing → awaiting_auth → authenticated → ready）
3. 把状态变化和入站消息发布到事件中心
4. 在不可恢复的情况下请求注册表把自己移除，并尽力销毁引擎

【状态机】
  created ──start──> initializing ──qr──> awaiting_auth ──authenticated──> authenticated ──ready──> ready
  任何非终止状态 ──失败──> failed ──移除──> destroyed
  任何状态 ──显式销毁 / LOGOUT / UNPAIRED──> destroyed

【Java 开发者类比】
- SessionStatus 相当于 Java 的 enum
- _consume() 相当于一个专属的事件消费线程，但运行在同一个事件循环里，
  因此同一会话的事件处理天然是串行的，不需要额外加锁
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger

from wahub.bus.hub import EventHub
from wahub.engine.base import (
    AUTH_FAILURE,
    AUTHENTICATED,
    DISCONNECTED,
    LOADING,
    MESSAGE,
    QR,
    QR_MAX_RETRIES,
    READY,
    TERMINAL_DISCONNECT_REASONS,
    BaseEngine,
    EngineEvent,
    EngineMessage,
)
from wahub.session.errors import (
    AuthFailureError,
    InitializationError,
    SendFailureError,
    SessionError,
    SessionNotReadyError,
    TeardownError,
)
from wahub.utils.helpers import normalize_address

if TYPE_CHECKING:
    from wahub.session.registry import SessionRegistry


class SessionStatus(str, Enum):
    """会话状态。除失败/销毁外只能向前推进。"""
    CREATED = "created"
    INITIALIZING = "initializing"
    AWAITING_AUTH = "awaiting_auth"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    FAILED = "failed"
    DESTROYED = "destroyed"


# 非终止状态的先后顺序
_RANK = {
    SessionStatus.CREATED: 0,
    SessionStatus.INITIALIZING: 1,
    SessionStatus.AWAITING_AUTH: 2,
    SessionStatus.AUTHENTICATED: 3,
    SessionStatus.READY: 4,
}

TERMINAL_STATUSES = frozenset({SessionStatus.FAILED, SessionStatus.DESTROYED})


class Session:
    """
    单个自动化会话。

    属性:
        id: 会话 ID（外部提供）
        engine: 独占的引擎实例
        hub: 事件中心
        registry: 所属注册表（只用于请求移除自己和记录失败）
        status: 当前状态
        last_error: 最近一次生命周期错误信息
        qr_count: 已产生的扫码挑战次数
        created_at: 创建时间
    """

    def __init__(
        self,
        session_id: str,
        engine: BaseEngine,
        hub: EventHub,
        registry: SessionRegistry,
    ):
        self.id = session_id
        self.engine = engine
        self.hub = hub
        self.registry = registry
        self.status = SessionStatus.CREATED
        self.last_error: str | None = None
        self.qr_count = 0
        self.created_at = datetime.now()
        self._task: asyncio.Task | None = None

    @property
    def account_id(self) -> str | None:
        """就绪后的账号手机号；未就绪时为 None。"""
        info = self.engine.info
        return info.user if info else None

    @property
    def is_ready(self) -> bool:
        return self.status == SessionStatus.READY

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def start(self) -> asyncio.Task:
        """在后台启动会话生命周期任务。"""
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"session:{self.id}")
        return self._task

    async def wait_closed(self) -> None:
        """等待生命周期任务结束（主要用于测试与停机）。"""
        if self._task:
            await asyncio.wait({self._task})

    async def close(self) -> None:
        """
        显式销毁：立即进入终止状态，尽力销毁引擎，并停止生命周期任务。

        由注册表在条目移除之后调用。
        """
        self.status = SessionStatus.DESTROYED
        await self.teardown()
        task = self._task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def teardown(self) -> bool:
        """
        尽力销毁引擎。

        失败只记录日志和失败历史，不向上抛出。

        返回:
            True 表示引擎销毁成功
        """
        try:
            await self.engine.destroy()
            return True
        except Exception as e:
            logger.error(f"[{self.id}] Error destroying client: {e}")
            self.registry.record_failure(TeardownError(self.id, str(e)))
            return False

    # ------------------------------------------------------------------
    # 对外操作
    # ------------------------------------------------------------------

    async def send_message(self, to: str, body: str) -> str:
        """
        向指定地址发送文本消息。

        参数:
            to: 接收者手机号或聊天 ID（自动补全 @c.us）
            body: 消息正文

        返回:
            新消息的 ID

        异常:
            SessionNotReadyError: 会话尚未就绪
            SendFailureError: 引擎发送失败
        """
        self._require_ready()
        try:
            return await self.engine.send_message(normalize_address(to), body)
        except Exception as e:
            logger.error(f"[{self.id}] Error sending message: {e}")
            raise SendFailureError(self.id, str(e) or None) from e

    async def fetch_history(self, address: str, limit: int = 100) -> list[EngineMessage]:
        """拉取与指定地址的最近 limit 条聊天记录。"""
        self._require_ready()
        try:
            return await self.engine.fetch_messages(normalize_address(address), limit)
        except Exception as e:
            logger.error(f"[{self.id}] Error fetching chat history: {e}")
            raise SendFailureError(self.id, str(e) or "Failed to fetch chat history") from e

    def to_dict(self) -> dict[str, Any]:
        """会话列表中的一项。"""
        return {
            "sessionId": self.id,
            "status": "connected" if self.is_ready else "disconnected",
            "state": self.status.value,
        }

    def _require_ready(self) -> None:
        if not self.is_ready:
            raise SessionNotReadyError(self.id)

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    def _advance(self, new: SessionStatus) -> bool:
        """
        推进状态。终止状态不再变化，非终止状态只能向前（或原地）移动。

        返回:
            True 表示状态已更新
        """
        if self.is_terminal:
            logger.debug(f"[{self.id}] Ignoring transition to {new.value}: session is {self.status.value}")
            return False
        if new not in TERMINAL_STATUSES and _RANK[new] < _RANK[self.status]:
            logger.warning(f"[{self.id}] Ignoring backwards transition {self.status.value} -> {new.value}")
            return False
        self.status = new
        return True

    async def _run(self) -> None:
        """
        生命周期主任务。

        先启动事件消费者，再等待引擎初始化；初始化失败时移除会话。
        事件消费者一直运行到引擎事件序列结束。
        """
        self._advance(SessionStatus.INITIALIZING)
        consumer = asyncio.create_task(self._consume())

        try:
            try:
                await self.engine.initialize()
            except Exception as e:
                # 初始化完成前会话可能已被显式销毁，此时不再重复处理
                if not self.is_terminal:
                    logger.error(f"[{self.id}] Error during initialization: {e}")
                    await self._retire(
                        InitializationError(self.id, str(e) or None),
                        event="error",
                        payload=InitializationError.default_message,
                    )

            if not self.is_terminal:
                await consumer
        except Exception as e:
            logger.error(f"[{self.id}] Session task failed: {e}")
        finally:
            if not consumer.done():
                consumer.cancel()

    async def _consume(self) -> None:
        """
        按顺序消费引擎事件，直到序列结束或会话终止。

        序列在会话仍存活时结束（正常结束或抛出异常）都视为引擎丢失，会话被移除。
        """
        reason = "WhatsApp engine stopped unexpectedly"
        try:
            async for event in self.engine.events():
                try:
                    await self._handle_event(event)
                except Exception as e:
                    logger.error(f"[{self.id}] Error handling {event.kind}: {e}")
                if self.is_terminal:
                    return
        except Exception as e:
            logger.error(f"[{self.id}] Engine event stream failed: {e}")
            reason = f"{reason}: {e}" if str(e) else reason

        if not self.is_terminal:
            logger.warning(f"[{self.id}] Engine event stream ended unexpectedly")
            await self._retire(
                SessionError(self.id, reason),
                event="error",
                payload="WhatsApp engine stopped unexpectedly. Session removed.",
            )

    async def _handle_event(self, event: EngineEvent) -> None:
        kind = event.kind
        data = event.data

        if kind == QR:
            if self._advance(SessionStatus.AWAITING_AUTH):
                self.qr_count += 1
                logger.info(f"[{self.id}] QR Code received")
                self.hub.publish(self.id, "qr", data.get("qr"))

        elif kind == QR_MAX_RETRIES:
            logger.info(f"[{self.id}] Maximum QR code retries reached")
            await self._retire(
                AuthFailureError(self.id, "Maximum QR code retries reached"),
                event="error",
                payload="Maximum QR code retries reached. Session removed.",
            )

        elif kind == AUTHENTICATED:
            if self._advance(SessionStatus.AUTHENTICATED):
                logger.info(f"[{self.id}] Client is authenticated!")
                self.hub.publish(self.id, "authenticated")

        elif kind == READY:
            if self._advance(SessionStatus.READY):
                logger.info(f"[{self.id}] Client is ready!")
                self.hub.publish(self.id, "ready", self.account_id)

        elif kind == AUTH_FAILURE:
            logger.error(f"[{self.id}] Authentication failure: {data.get('message')}")
            await self._retire(
                AuthFailureError(self.id, data.get("message") or None),
                event="error",
                payload=AuthFailureError.default_message,
            )

        elif kind == DISCONNECTED:
            reason = str(data.get("reason", ""))
            logger.info(f"[{self.id}] Client was disconnected: {reason}")
            if reason in TERMINAL_DISCONNECT_REASONS:
                # 账号被解绑：不可恢复，移除会话
                await self._retire(None, event="disconnected", payload=reason)
                logger.info(f"[{self.id}] Session removed due to unlinking")
            else:
                # 其他原因（网络抖动等）底层传输可能自行恢复，会话保留
                self.hub.publish(self.id, "disconnected", reason)

        elif kind == MESSAGE:
            message = EngineMessage.from_dict(data)
            logger.info(f"[{self.id}] Message received from {message.sender}")
            self.hub.publish(self.id, "message", {
                "from": message.sender,
                "body": message.body,
                "timestamp": message.timestamp,
                "phoneNumber": normalize_address(message.sender),
                "myNumber": self.account_id,
            })

        elif kind == LOADING:
            logger.debug(f"[{self.id}] Loading: {data.get('percent')}% {data.get('message', '')}")

        else:
            logger.debug(f"[{self.id}] Ignoring engine event: {kind}")

    async def _retire(
        self,
        error: SessionError | None,
        event: str | None = None,
        payload: Any = None,
    ) -> None:
        """
        终止会话：移除注册表条目 → 发布事件 → 尽力销毁引擎。

        参数:
            error: 导致终止的错误；None 表示非失败的终止（如账号解绑）
            event: 要发布的事件类型
            payload: 事件载荷
        """
        if self.is_terminal:
            return
        if error is not None:
            self.status = SessionStatus.FAILED
            self.last_error = error.message
        else:
            self.status = SessionStatus.DESTROYED

        await self.registry.retire(self, error)
        self.status = SessionStatus.DESTROYED

        if event:
            self.hub.publish(self.id, event, payload)
        await self.teardown()
