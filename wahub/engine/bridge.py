"""
桥接引擎实现 - 基于 Node.js 桥接服务的 WhatsApp 自动化引擎。

本模块实现了 BaseEngine 的生产版本：
- 每个会话单独建立一条到桥接服务的 WebSocket 连接
- 桥接服务为该连接启动一个 whatsapp-web.js 客户端（无头 Chromium）
- 凭据目录由 wahub 计算并在首次使用时创建，内容由桥接服务读写

架构特点：
- 桥接模式：Python <-> WebSocket <-> Node.js Bridge <-> WhatsApp Web
- 请求/响应通过 id 关联：每个命令携带随机 id，桥接服务回复同 id 的 result
- 生命周期事件写入内部队列，由 events() 惰性地产出

消息协议（Python <-> Bridge）：
- auth：发送认证令牌
- init / send / history / destroy：命令，回复为 {"type": "result", "id", "ok", "data"|"error"}
- qr / qr_max_retries / authenticated / auth_failure / ready / disconnected / message / loading：事件
- error：桥接服务报告的错误

依赖：
- websockets：Python WebSocket 客户端库
"""

import asyncio
import json
from typing import Any, AsyncIterator

from loguru import logger

from wahub.config.schema import EngineConfig
from wahub.engine.base import (
    AUTH_FAILURE,
    AUTHENTICATED,
    DISCONNECTED,
    LOADING,
    MESSAGE,
    QR,
    QR_MAX_RETRIES,
    READY,
    AccountInfo,
    BaseEngine,
    EngineEvent,
    EngineMessage,
)
from wahub.utils.helpers import get_auth_path, new_id

# 桥接服务会推送的生命周期事件类型
EVENT_KINDS = frozenset({
    QR, QR_MAX_RETRIES, AUTHENTICATED, AUTH_FAILURE, READY, DISCONNECTED, MESSAGE, LOADING,
})

# 桥接连接意外关闭时上报的断线原因
BRIDGE_CLOSED = "BRIDGE_CLOSED"


class BridgeError(Exception):
    """桥接服务对某个命令回复了失败结果。"""


class BridgeEngine(BaseEngine):
    """
    WhatsApp 桥接引擎 - 通过 Node.js 桥接服务驱动一个 WhatsApp Web 客户端。

    属性:
        config: 引擎配置（桥接地址、令牌、凭据目录、超时等）
        _ws: WebSocket 连接对象
        _reader: 读取桥接消息的后台任务
        _events: 待产出的生命周期事件队列（None 为结束哨兵）
        _pending: 等待回复的命令 {请求 id: Future}
    """

    def __init__(self, session_id: str, config: EngineConfig):
        super().__init__(session_id)
        self.config = config
        self._ws = None
        self._reader: asyncio.Task | None = None
        self._events: asyncio.Queue[EngineEvent | None] = asyncio.Queue()
        self._pending: dict[str, asyncio.Future] = {}
        self._info: AccountInfo | None = None
        self._closing = False
        self._finished = False

    @property
    def info(self) -> AccountInfo | None:
        return self._info

    async def initialize(self) -> None:
        """
        连接桥接服务并启动 WhatsApp 客户端。

        流程：
        1. 计算并创建凭据目录
        2. 建立 WebSocket 连接，如配置了令牌则先认证
        3. 启动后台读取任务
        4. 发送 init 命令并等待桥接服务确认（无超时，扫码可能需要较长时间）
        """
        import websockets

        auth_path = get_auth_path(self.config.auth_dir, self.session_id)
        logger.info(f"[{self.session_id}] Connecting to bridge at {self.config.bridge_url}...")

        self._ws = await websockets.connect(self.config.bridge_url)
        if self.config.bridge_token:
            await self._ws.send(json.dumps({"type": "auth", "token": self.config.bridge_token}))
        self._reader = asyncio.create_task(self._read_loop())

        await self._request(
            "init",
            {
                "sessionId": self.session_id,
                "dataPath": str(auth_path),
                "options": {
                    "qrMaxRetries": self.config.qr_max_retries,
                    "authTimeoutMs": self.config.auth_timeout_ms,
                    "takeoverOnConflict": self.config.takeover_on_conflict,
                    "headless": self.config.headless,
                },
            },
            timeout=None,
        )

    async def destroy(self) -> None:
        """
        销毁引擎：请求桥接服务关闭客户端，然后断开连接。

        桥接服务的 destroy 失败只记录日志，连接仍然会被关闭。
        """
        self._closing = True
        ws = self._ws
        if ws is None:
            self._finish()
            return

        try:
            await self._request("destroy", {}, timeout=self.config.request_timeout)
        except Exception as e:
            logger.warning(f"[{self.session_id}] Bridge destroy failed: {e}")
        finally:
            self._ws = None
            await ws.close()
            if self._reader:
                try:
                    await self._reader
                except asyncio.CancelledError:
                    pass
            self._finish()

    async def send_message(self, to: str, body: str) -> str:
        data = await self._request(
            "send", {"to": to, "text": body}, timeout=self.config.request_timeout
        )
        return EngineMessage.from_dict(data or {}).id

    async def fetch_messages(self, chat_id: str, limit: int = 100) -> list[EngineMessage]:
        data = await self._request(
            "history", {"chatId": chat_id, "limit": limit}, timeout=self.config.request_timeout
        )
        if isinstance(data, dict):
            data = data.get("messages", [])
        return [EngineMessage.from_dict(m) for m in data or []]

    async def events(self) -> AsyncIterator[EngineEvent]:
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    async def _request(self, kind: str, payload: dict[str, Any], timeout: float | None) -> Any:
        """
        发送一条命令并等待同 id 的 result 回复。

        异常:
            ConnectionError: 桥接连接不可用或在等待期间断开
            BridgeError: 桥接服务回复 ok=false
            asyncio.TimeoutError: 超时未收到回复
        """
        if self._ws is None:
            raise ConnectionError("WhatsApp bridge not connected")

        request_id = new_id()
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._ws.send(json.dumps({"type": kind, "id": request_id, **payload}))
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self._pending.pop(request_id, None)

    async def _read_loop(self) -> None:
        """持续读取桥接消息，直到连接关闭。"""
        import websockets

        try:
            async for raw in self._ws:
                try:
                    self._handle_bridge_message(raw)
                except Exception as e:
                    logger.error(f"[{self.session_id}] Error handling bridge message: {e}")
        except websockets.ConnectionClosed as e:
            logger.warning(f"[{self.session_id}] Bridge connection closed: {e}")
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(ConnectionError("WhatsApp bridge connection closed"))
            if not self._closing:
                self._events.put_nowait(EngineEvent(DISCONNECTED, {"reason": BRIDGE_CLOSED}))
                self._finish()

    def _handle_bridge_message(self, raw: str | bytes) -> None:
        """
        处理一条桥接消息。

        - result：唤醒对应的等待中的命令
        - ready：记录账号信息后作为事件转发
        - 其他生命周期事件：原样转发到事件队列
        - error：桥接服务报告的错误，仅记录日志
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[{self.session_id}] Invalid JSON from bridge: {str(raw)[:100]}")
            return

        msg_type = data.pop("type", None)

        if msg_type == "result":
            future = self._pending.get(data.get("id"))
            if future is None or future.done():
                return
            if data.get("ok", True):
                future.set_result(data.get("data"))
            else:
                future.set_exception(BridgeError(data.get("error") or "bridge request failed"))

        elif msg_type in EVENT_KINDS:
            if msg_type == READY:
                self._info = AccountInfo.from_dict(data.get("info") or data)
            self._events.put_nowait(EngineEvent(msg_type, data))

        elif msg_type == "error":
            logger.error(f"[{self.session_id}] WhatsApp bridge error: {data.get('error')}")

        else:
            logger.debug(f"[{self.session_id}] Ignoring bridge message type: {msg_type}")

    def _finish(self) -> None:
        """结束事件序列（只生效一次）。"""
        if not self._finished:
            self._finished = True
            self._events.put_nowait(None)
