"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 wahub 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── server    - HTTP / Socket.IO 服务配置（监听地址、CORS、心跳参数等）
├── engine    - 自动化引擎配置（桥接服务地址、凭据目录、二维码重试次数等）
└── sessions  - 会话注册表配置（失败记录容量、聊天记录默认条数）

对于 Java 开发者：
- Pydantic 的 BaseModel 类似于 Java 的 POJO/Record，但自带字段验证和默认值
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
"""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseModel):
    """HTTP API 与 Socket.IO 推送通道的服务配置。"""
    host: str = "0.0.0.0"  # 监听地址（0.0.0.0 表示监听所有网卡）
    port: int = 3000  # 监听端口
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])  # 允许的跨域来源
    ping_timeout: int = 120  # Socket.IO 心跳超时（秒）
    ping_interval: int = 25  # Socket.IO 心跳间隔（秒）
    max_http_buffer_size: int = 100_000_000  # 单条推送消息的最大字节数
    socket_path: str = "socket.io"  # Socket.IO 挂载路径


class EngineConfig(BaseModel):
    """
    自动化引擎配置。

    wahub 不直接驱动浏览器，而是通过 WebSocket 连接到 Node.js 桥接服务，
    由桥接服务为每个会话启动一个 WhatsApp Web 客户端。
    """
    bridge_url: str = "ws://localhost:3001"  # 桥接服务的 WebSocket 地址
    bridge_token: str = ""  # 桥接认证令牌（可选但推荐设置）
    auth_dir: str = "~/.wahub/auth"  # 各会话凭据的根目录（每个会话一个子目录）
    qr_max_retries: int = 5  # 二维码最多刷新次数，超过后会话被移除
    auth_timeout_ms: int = 60000  # 认证超时（毫秒）
    takeover_on_conflict: bool = True  # 账号在别处登录时是否抢占
    headless: bool = True  # 浏览器是否以无头模式运行
    request_timeout: float = 60.0  # 单个桥接请求（发送/拉取记录/销毁）的超时（秒）


class SessionsConfig(BaseModel):
    """会话注册表配置。"""
    failure_history: int = 100  # 保留的最近生命周期失败记录条数
    history_limit: int = 100  # 拉取聊天记录时的默认条数


class Config(BaseSettings):
    """
    wahub 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: WAHUB_
    - 嵌套分隔符: __ (双下划线)
    - 示例: WAHUB_SERVER__PORT=8080 可覆盖 server.port
    """
    server: ServerConfig = Field(default_factory=ServerConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)

    model_config = SettingsConfigDict(
        env_prefix="WAHUB_",
        env_nested_delimiter="__"
    )
