"""
REST 接口模块 - 把 HTTP 请求翻译为会话注册表操作。

接口一览：
- GET    /health              健康检查
- POST   /api/send-message    发送文本消息
- GET    /api/sessions        列出所有会话
- DELETE /api/session/{id}    销毁会话
- POST   /api/chat-history    拉取聊天记录
- GET    /api/failures        最近的生命周期失败记录

所有失败响应都使用统一结构：{"success": false, "error": <说明>, "code": <错误名>}。
SessionError 子类由异常处理器统一映射为对应的 HTTP 状态码。

【Java 开发者类比】
- APIRouter 相当于 Spring MVC 的 @RestController
- Depends(get_registry) 相当于 @Autowired 注入
- exception_handler 相当于 @ControllerAdvice
"""

from contextlib import asynccontextmanager
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import AliasChoices, BaseModel, Field

from wahub.config.schema import Config
from wahub.session.errors import SessionError
from wahub.session.registry import SessionRegistry

router = APIRouter()


class SendMessageRequest(BaseModel):
    """发送消息请求体。会话 ID 同时接受 sessionId 和旧字段名 clientId。"""
    session_id: str = Field(min_length=1, validation_alias=AliasChoices("sessionId", "clientId"))
    to: str = Field(min_length=1)
    message: str = Field(min_length=1)


class ChatHistoryRequest(BaseModel):
    """聊天记录请求体。limit 缺省时使用配置中的 sessions.history_limit。"""
    session_id: str = Field(min_length=1, validation_alias=AliasChoices("sessionId", "clientId"))
    phone_number: str = Field(min_length=1, validation_alias=AliasChoices("phoneNumber", "address"))
    limit: int | None = Field(default=None, ge=1, le=1000)


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_config(request: Request) -> Config:
    return request.app.state.config


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.post("/api/send-message")
async def send_message(body: SendMessageRequest, registry: SessionRegistry = Depends(get_registry)):
    session = registry.require(body.session_id)
    message_id = await session.send_message(body.to, body.message)
    return {"success": True, "messageId": message_id}


@router.get("/api/sessions")
async def list_sessions(registry: SessionRegistry = Depends(get_registry)):
    return {"sessions": [s.to_dict() for s in registry.list_sessions()]}


@router.delete("/api/session/{session_id}")
async def destroy_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    await registry.destroy(session_id)
    return {"success": True}


@router.post("/api/chat-history")
async def chat_history(
    body: ChatHistoryRequest,
    registry: SessionRegistry = Depends(get_registry),
    config: Config = Depends(get_config),
):
    session = registry.require(body.session_id)
    messages = await session.fetch_history(
        body.phone_number, body.limit or config.sessions.history_limit
    )
    return {"success": True, "messages": [m.to_dict() for m in messages]}


@router.get("/api/failures")
async def list_failures(limit: int | None = None, registry: SessionRegistry = Depends(get_registry)):
    return {"failures": [f.to_dict() for f in registry.recent_failures(limit)]}


async def _session_error_handler(request: Request, exc: SessionError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"[{exc.session_id}] {request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())[1:])
        details.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid request: " + "; ".join(details),
            "code": "ValidationError",
        },
    )


def create_api(
    registry: SessionRegistry,
    config: Config,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    """
    构建 FastAPI 应用。

    参数:
        registry: 会话注册表（注入到 app.state）
        config: 全局配置
        on_shutdown: 进程关闭时执行的清理协程（通常是销毁全部会话）

    返回:
        FastAPI 应用实例
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if on_shutdown:
            await on_shutdown()

    app = FastAPI(title="wahub", lifespan=lifespan)
    app.state.registry = registry
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
        allow_credentials=True,
    )
    app.add_exception_handler(SessionError, _session_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(router)
    return app
