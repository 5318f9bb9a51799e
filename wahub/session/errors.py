"""
会话错误类型定义。

所有错误都继承自 SessionError，携带出错的会话 ID 和对应的 HTTP 状态码，
REST 层据此统一生成 {"success": false, "error": ..., "code": ...} 响应。

生命周期中的错误（初始化失败、认证失败、拆除失败）不会抛给调用方，
而是作为 error 事件推送并记录在注册表的失败历史中。
"""


class SessionError(Exception):
    """会话相关错误的基类。"""

    status_code: int = 500
    default_message: str = "Session error"

    def __init__(self, session_id: str, message: str | None = None):
        self.session_id = session_id
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        """稳定的错误代码（类名），用于对外响应。"""
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class SessionAlreadyExistsError(SessionError):
    """创建会话时 ID 已被占用（非致命，仅提示）。"""
    status_code = 409
    default_message = "Session already exists"


class SessionNotFoundError(SessionError):
    """操作的会话不存在。"""
    status_code = 404
    default_message = "WhatsApp client not found"


class SessionNotReadyError(SessionError):
    """会话尚未完成认证，不能收发消息。"""
    status_code = 409
    default_message = "WhatsApp client is not initialized yet"


class InitializationError(SessionError):
    """引擎启动失败。"""
    default_message = "Failed to initialize WhatsApp client"


class AuthFailureError(SessionError):
    """认证失败（凭据失效、扫码次数耗尽等）。"""
    status_code = 401
    default_message = "Authentication failed. Please try again."


class SendFailureError(SessionError):
    """引擎发送消息或拉取记录失败。"""
    status_code = 502
    default_message = "Failed to send message"


class TeardownError(SessionError):
    """引擎销毁失败。只记录日志，永远不作为 destroy 的主要失败返回。"""
    default_message = "Failed to destroy WhatsApp client"
