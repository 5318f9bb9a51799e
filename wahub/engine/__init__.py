"""
自动化引擎模块 - 把外部浏览器自动化能力适配为统一接口。

- BaseEngine：引擎能力契约（initialize / destroy / send_message / fetch_messages / events / info）
- BridgeEngine：通过 WebSocket 连接 Node.js 桥接服务的生产实现

【二开提示】
接入其它自动化后端（例如直接驱动 Playwright）时，只需继承 BaseEngine，
并通过 SessionRegistry 的 engine_factory 注入即可，会话状态机无需改动。
"""

from wahub.engine.base import AccountInfo, BaseEngine, EngineEvent, EngineMessage
from wahub.engine.bridge import BridgeEngine, BridgeError

__all__ = [
    "AccountInfo",
    "BaseEngine",
    "BridgeEngine",
    "BridgeError",
    "EngineEvent",
    "EngineMessage",
]
