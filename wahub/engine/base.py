"""
引擎基类模块 - 定义自动化引擎的统一能力接口。

本模块提供了 BaseEngine 抽象基类。一个引擎实例代表"一个"远端账号上的
一个活动自动化会话（例如一个无头浏览器里的 WhatsApp Web 客户端）。
wahub 核心只通过以下窄接口使用引擎：

- initialize(): 启动引擎（异步，可能耗时数十秒）
- destroy(): 销毁引擎，释放浏览器等资源
- send_message(): 发送文本消息，返回消息 ID
- fetch_messages(): 拉取某个聊天的最近消息
- events(): 引擎生命周期事件的惰性异步序列
- info: 就绪后的账号信息

【Java 开发者类比】
- BaseEngine 相当于 Java 的 interface，Session 只依赖这个接口
- events() 返回的异步迭代器相当于 Java 的 Flow.Publisher / Reactor 的 Flux
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator


# 引擎事件类型
QR = "qr"                          # 产生新的扫码认证挑战
QR_MAX_RETRIES = "qr_max_retries"  # 扫码挑战次数耗尽
AUTHENTICATED = "authenticated"    # 认证成功
AUTH_FAILURE = "auth_failure"      # 认证失败（凭据失效等）
READY = "ready"                    # 客户端就绪，可收发消息
DISCONNECTED = "disconnected"      # 与远端断开
MESSAGE = "message"                # 收到入站消息
LOADING = "loading"                # 加载进度

# 表示账号被主动解绑的断线原因，会话需要被移除
TERMINAL_DISCONNECT_REASONS = frozenset({"LOGOUT", "UNPAIRED"})


@dataclass
class EngineEvent:
    """
    引擎事件 - 引擎事件序列中的一个元素。

    属性:
        kind: 事件类型（见本模块顶部的常量）
        data: 事件数据（如 qr 字符串、断线原因、消息字典等）
    """
    kind: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class AccountInfo:
    """就绪后的账号信息。user 为账号手机号（不带后缀）。"""
    user: str
    pushname: str | None = None
    platform: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AccountInfo":
        """从桥接协议的 info 字典解析，兼容 {"wid": {"user": ...}} 与扁平格式。"""
        wid = data.get("wid") or {}
        user = wid.get("user") if isinstance(wid, dict) else None
        return cls(
            user=str(user or data.get("user") or ""),
            pushname=data.get("pushname"),
            platform=data.get("platform"),
        )


@dataclass
class EngineMessage:
    """
    一条聊天消息（入站或历史记录）。

    属性:
        id: 消息 ID
        sender: 发送者地址
        body: 消息正文
        timestamp: Unix 时间戳（秒）
        to: 接收者地址（可选）
    """
    id: str
    sender: str
    body: str
    timestamp: int | float | None = None
    to: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineMessage":
        msg_id = data.get("id")
        # whatsapp-web.js 的消息 ID 是对象，取序列化后的字符串形式
        if isinstance(msg_id, dict):
            msg_id = msg_id.get("_serialized") or msg_id.get("id")
        return cls(
            id=str(msg_id or ""),
            sender=str(data.get("from", "")),
            body=str(data.get("body", "")),
            timestamp=data.get("timestamp"),
            to=data.get("to"),
        )

    def to_dict(self) -> dict[str, Any]:
        """转换为对外 API 的消息格式。"""
        return {
            "id": self.id,
            "from": self.sender,
            "body": self.body,
            "timestamp": self.timestamp,
        }


class BaseEngine(ABC):
    """
    自动化引擎抽象基类。

    每个 Session 独占一个引擎实例，引擎之间互不共享资源。
    """

    def __init__(self, session_id: str):
        self.session_id = session_id

    @property
    @abstractmethod
    def info(self) -> AccountInfo | None:
        """账号信息；引擎就绪前为 None。"""

    @abstractmethod
    async def initialize(self) -> None:
        """
        启动引擎。

        启动过程中产生的生命周期事件通过 events() 投递；
        启动失败时应抛出异常。
        """

    @abstractmethod
    async def destroy(self) -> None:
        """销毁引擎并释放资源。完成后 events() 序列应当结束。"""

    @abstractmethod
    async def send_message(self, to: str, body: str) -> str:
        """
        发送文本消息。

        参数:
            to: 规范化后的接收者地址
            body: 消息正文

        返回:
            新消息的 ID
        """

    @abstractmethod
    async def fetch_messages(self, chat_id: str, limit: int = 100) -> list[EngineMessage]:
        """拉取指定聊天最近的 limit 条消息。"""

    @abstractmethod
    def events(self) -> AsyncIterator[EngineEvent]:
        """引擎生命周期事件的惰性异步序列。引擎关闭后序列结束。"""
