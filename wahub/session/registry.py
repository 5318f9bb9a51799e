"""
会话注册表模块 - 进程内唯一的会话 ID → Session 映射。

注册表是唯一有权插入/移除会话的对象：
- create：原子地"检查是否存在 + 插入"，并在后台启动会话
- destroy：移除条目并尽力销毁引擎，拆除失败不影响移除
- retire：会话在生命周期中遇到不可恢复情况时请求移除自己
- remove：幂等地移除条目

【并发模型】
所有修改映射的操作都在 `async with self._lock` 中完成，且临界区内不包含任何 await，
因此同一会话 ID 的并发 create 只会有一个成功，后到者得到 SessionAlreadyExistsError。
引擎的初始化与销毁都发生在锁外，不会阻塞其它会话。

【Java 开发者类比】
- SessionRegistry 类似于一个用 ReentrantLock 保护的 HashMap
- engine_factory 类似于 Spring 的 ObjectFactory<Engine>，用于依赖注入
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from loguru import logger

from wahub.bus.hub import EventHub
from wahub.engine.base import BaseEngine
from wahub.session.errors import (
    SessionAlreadyExistsError,
    SessionError,
    SessionNotFoundError,
)
from wahub.session.session import Session

EngineFactory = Callable[[str], BaseEngine]


@dataclass
class SessionFailure:
    """一条生命周期失败记录。"""
    session_id: str
    kind: str
    message: str
    at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "kind": self.kind,
            "message": self.message,
            "at": self.at.isoformat(),
        }


class SessionRegistry:
    """
    会话注册表。

    属性:
        hub: 事件中心（注入到每个新会话）
        engine_factory: 根据会话 ID 构造引擎实例的工厂
        _sessions: 会话映射 {会话 ID: Session}
        _lock: 保护映射修改的互斥锁
        _failures: 最近的生命周期失败记录（新记录在前）
    """

    def __init__(
        self,
        hub: EventHub,
        engine_factory: EngineFactory,
        failure_history: int = 100,
    ):
        self.hub = hub
        self.engine_factory = engine_factory
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._failures: deque[SessionFailure] = deque(maxlen=failure_history)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Session | None:
        """按 ID 查找会话，无副作用。"""
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        """按 ID 查找会话，不存在时抛出 SessionNotFoundError。"""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list_sessions(self) -> list[Session]:
        """当前所有会话（无顺序保证）。"""
        return list(self._sessions.values())

    async def create(self, session_id: str) -> Session:
        """
        创建并在后台启动一个新会话。

        已存在同 ID 会话时抛出 SessionAlreadyExistsError；
        若已存在的会话已经就绪，先补发一次 ready 事件（幂等信号）。

        参数:
            session_id: 会话 ID

        返回:
            新建的会话（状态为 created / initializing）
        """
        async with self._lock:
            existing = self._sessions.get(session_id)
            if existing is None:
                session = Session(session_id, self.engine_factory(session_id), self.hub, self)
                self._sessions[session_id] = session

        if existing is not None:
            logger.info(f"Session {session_id} already exists ({existing.status.value})")
            if existing.is_ready:
                self.hub.publish(session_id, "ready", existing.account_id)
            raise SessionAlreadyExistsError(session_id)

        logger.info(f"Creating new session for client: {session_id}")
        session.start()
        return session

    async def remove(self, session_id: str) -> None:
        """移除条目（不触碰引擎）。不存在时为空操作。"""
        async with self._lock:
            self._sessions.pop(session_id, None)

    async def destroy(self, session_id: str) -> None:
        """
        显式销毁会话：先移除条目，再尽力销毁引擎。

        异常:
            SessionNotFoundError: 会话不存在
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id, "Session not found")

        logger.info(f"[{session_id}] Destroying session")
        await session.close()

    async def retire(self, session: Session, error: SessionError | None = None) -> bool:
        """
        生命周期驱动的移除：只有当条目仍然是这个 Session 对象时才移除。

        迟到的回调（例如销毁之后才完成的初始化）因此不会误删同 ID 的新会话。

        参数:
            session: 请求移除的会话
            error: 导致移除的错误；非 None 时记录到失败历史

        返回:
            True 表示确实移除了条目
        """
        async with self._lock:
            removed = self._sessions.get(session.id) is session
            if removed:
                del self._sessions[session.id]

        if error is not None:
            self.record_failure(error)
        if removed:
            logger.info(f"[{session.id}] Session removed from registry")
        return removed

    def record_failure(self, error: SessionError) -> None:
        """记录一条生命周期失败。"""
        self._failures.appendleft(SessionFailure(error.session_id, error.code, error.message))

    def recent_failures(self, limit: int | None = None) -> list[SessionFailure]:
        """最近的失败记录，新记录在前。"""
        failures = list(self._failures)
        return failures[:limit] if limit is not None else failures

    async def shutdown(self) -> None:
        """销毁所有会话（进程退出时调用）。"""
        for session_id in list(self._sessions):
            try:
                await self.destroy(session_id)
            except SessionNotFoundError:
                continue
        logger.info("All sessions destroyed")
