"""
会话管理模块 - 多会话生命周期管理的核心。

- Session：单个自动化会话，驱动生命周期状态机
- SessionRegistry：会话 ID → Session 的唯一所有者
- errors：会话错误类型（AlreadyExists / NotFound / NotReady / ...）

【架构定位】
注册表位于边界适配器（REST、Socket.IO）与引擎之间：
- 边界适配器只通过注册表按 ID 定位会话
- 会话消费引擎事件并通过事件中心推送给订阅者
"""

from wahub.session.registry import SessionRegistry, SessionFailure
from wahub.session.session import Session, SessionStatus

__all__ = ["SessionRegistry", "SessionFailure", "Session", "SessionStatus"]
