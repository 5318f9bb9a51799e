"""
配置加载工具模块 (config/loader.py)
=================================
负责 ~/.wahub/config.json 的读写。

- 文件中使用 camelCase 键名（与 REST / Socket.IO 载荷风格一致），模型内部使用 snake_case
- 文件缺失时使用默认配置；文件损坏时记录警告后同样回退到默认配置
- 环境变量（WAHUB_*）的覆盖由 Config(BaseSettings) 自身处理
"""

import json
import re
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from wahub.config.schema import Config

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def get_config_path() -> Path:
    """默认配置文件路径: ~/.wahub/config.json"""
    return Path.home() / ".wahub" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    读取配置文件并构造 Config。

    参数:
        config_path: 配置文件路径，缺省为 get_config_path()

    返回:
        Config 实例（文件缺失或无效时为默认配置）
    """
    path = config_path or get_config_path()
    if not path.exists():
        return Config()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return Config.model_validate(convert_keys(raw))
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning(f"Ignoring invalid config at {path}: {e}")
        return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """以 camelCase 键名写出配置（会创建父目录）。"""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(convert_to_camel(config.model_dump()), indent=2), encoding="utf-8")
    logger.debug(f"Config written to {path}")


def _rename_keys(data: Any, rename: Callable[[str], str]) -> Any:
    """递归地对嵌套字典/列表中的所有键名应用 rename。"""
    if isinstance(data, dict):
        return {rename(k): _rename_keys(v, rename) for k, v in data.items()}
    if isinstance(data, list):
        return [_rename_keys(item, rename) for item in data]
    return data


def convert_keys(data: Any) -> Any:
    """camelCase → snake_case，例: {"qrMaxRetries": 5} → {"qr_max_retries": 5}"""
    return _rename_keys(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    return _rename_keys(data, snake_to_camel)


def camel_to_snake(name: str) -> str:
    """例: bridgeUrl → bridge_url"""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def snake_to_camel(name: str) -> str:
    """例: bridge_url → bridgeUrl"""
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)
