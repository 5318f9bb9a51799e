"""
边界适配器模块 - 把外部调用翻译为注册表 / 事件中心操作。

- api：FastAPI REST 接口（请求/响应）
- push：Socket.IO 推送通道（订阅 + create_session 命令）
- app：Gateway 组件容器，组装上述两者
"""

from wahub.gateway.app import Gateway

__all__ = ["Gateway"]
