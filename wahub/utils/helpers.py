"""
工具函数集合 - wahub 项目全局通用的辅助函数。

函数分类：
- 路径管理：ensure_dir, get_auth_path
- 字符串工具：safe_filename, normalize_address
- 标识工具：new_id
"""

import uuid
from pathlib import Path

# WhatsApp 个人账号的规范地址后缀（如 15551234567@c.us）
CONTACT_SUFFIX = "@c.us"


def ensure_dir(path: Path) -> Path:
    """
    确保目录存在，不存在则递归创建。

    参数:
        path: 目标目录路径

    返回:
        创建后的目录路径（原样返回）
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_auth_path(root: str | Path, session_id: str) -> Path:
    """
    获取某个会话的凭据目录（<root>/<安全化的会话 ID>），首次使用时创建。

    凭据内容由自动化引擎自行读写，wahub 只负责给出目录位置。

    参数:
        root: 凭据根目录（支持 ~ 展开）
        session_id: 会话 ID

    返回:
        会话凭据目录路径
    """
    return ensure_dir(Path(root).expanduser() / safe_filename(session_id))


def safe_filename(name: str) -> str:
    """
    将字符串转换为安全的文件名（移除/替换不安全字符）。

    替换的不安全字符包括：< > : " / \\ | ? *
    """
    unsafe = '<>:"/\\|?*'
    for char in unsafe:
        name = name.replace(char, "_")
    return name.strip()


def normalize_address(address: str) -> str:
    """
    将手机号或聊天 ID 规范化为带 @c.us 后缀的形式。

    已经包含后缀的地址原样返回，因此重复调用结果不变：
    "15551234567" → "15551234567@c.us"，"15551234567@c.us" → 不变。

    参数:
        address: 原始地址

    返回:
        规范化后的地址
    """
    address = str(address).strip()
    if CONTACT_SUFFIX in address:
        return address
    return f"{address}{CONTACT_SUFFIX}"


def new_id() -> str:
    """生成一个随机的 32 位十六进制标识（用于订阅者 ID、请求 ID 等）。"""
    return uuid.uuid4().hex
