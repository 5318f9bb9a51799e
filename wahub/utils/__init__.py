"""
工具函数模块 - 提供 wahub 项目全局通用的辅助函数。

本模块包含：
- ensure_dir：确保目录存在
- get_auth_path：会话凭据目录
- normalize_address：WhatsApp 地址规范化（补全 @c.us 后缀）
"""

from wahub.utils.helpers import ensure_dir, get_auth_path, normalize_address

__all__ = ["ensure_dir", "get_auth_path", "normalize_address"]
