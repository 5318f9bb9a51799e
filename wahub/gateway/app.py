"""
网关组装模块 - 在进程启动时一次性构建事件中心、会话注册表和两个边界适配器。

组件关系：
  Gateway
  ├── hub       EventHub         事件扇出中心
  ├── registry  SessionRegistry  会话注册表（注入 hub 与引擎工厂）
  ├── api       FastAPI          REST 接口
  ├── push      PushServer       Socket.IO 推送通道
  └── app       socketio.ASGIApp 合并后的 ASGI 应用（交给 uvicorn 运行）
"""

import socketio
from loguru import logger

from wahub.bus.hub import EventHub
from wahub.config.schema import Config
from wahub.engine.base import BaseEngine
from wahub.engine.bridge import BridgeEngine
from wahub.gateway.api import create_api
from wahub.gateway.push import PushServer
from wahub.session.registry import EngineFactory, SessionRegistry


class Gateway:
    """
    wahub 网关：进程内唯一的组件容器。

    参数:
        config: 全局配置
        engine_factory: 可选的引擎工厂；缺省时为每个会话创建 BridgeEngine
    """

    def __init__(self, config: Config, engine_factory: EngineFactory | None = None):
        self.config = config
        self.hub = EventHub()
        self.registry = SessionRegistry(
            self.hub,
            engine_factory or self._make_engine,
            failure_history=config.sessions.failure_history,
        )
        self.push = PushServer(self.registry, self.hub, config.server)
        self.api = create_api(self.registry, config, on_shutdown=self.shutdown)
        self.app = socketio.ASGIApp(
            self.push.sio,
            other_asgi_app=self.api,
            socketio_path=config.server.socket_path,
        )

    def _make_engine(self, session_id: str) -> BaseEngine:
        return BridgeEngine(session_id, self.config.engine)

    async def shutdown(self) -> None:
        """关闭推送连接并销毁所有会话。"""
        logger.info("Shutting down gateway...")
        await self.push.close()
        await self.registry.shutdown()
