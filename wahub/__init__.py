"""
wahub - 多会话 WhatsApp 自动化网关

模块概述：
    本文件是 wahub 包的入口文件（__init__.py），定义了包的元信息。
    wahub 在一个进程内托管多个相互独立的 WhatsApp 自动化会话，
    每个会话绑定一个远端账号，并对外提供两种接口：

    - REST 请求/响应接口（发送消息、查询会话、拉取聊天记录、销毁会话）
    - Socket.IO 推送通道（二维码、就绪、断线、入站消息等生命周期事件）

    核心只有三块：会话（Session）、会话注册表（SessionRegistry）、
    事件扇出中心（EventHub）。浏览器自动化引擎作为外部能力接入。
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "📱"
