"""
CLI 命令模块 - wahub 的所有命令行命令定义。

本模块使用 Typer 框架定义 wahub 的 CLI 命令体系：
- onboard：初始化配置文件与凭据目录
- serve：启动网关服务（REST 接口 + Socket.IO 推送通道）
- status：查看配置状态
- sessions：查询 / 销毁运行中网关上的会话（通过 HTTP 调用）

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格等）
- httpx：调用运行中的网关 REST 接口
- uvicorn：ASGI 服务器
"""

import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from wahub import __logo__, __version__

app = typer.Typer(
    name="wahub",
    help=f"{__logo__} wahub - Multi-session WhatsApp gateway",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    """版本号回调：当用户传入 --version/-v 参数时，打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} wahub v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """wahub CLI 根命令回调。处理全局选项（如 --version）。"""
    pass


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """
    初始化 wahub 配置。

    执行流程：
    1. 在 ~/.wahub/ 下创建默认配置文件 config.json
    2. 创建会话凭据根目录
    """
    from wahub.config.loader import get_config_path, save_config
    from wahub.config.schema import Config
    from wahub.utils.helpers import ensure_dir

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config()
    save_config(config)
    console.print(f"[green]✓[/green] Created config at {config_path}")

    auth_dir = ensure_dir(Path(config.engine.auth_dir).expanduser())
    console.print(f"[green]✓[/green] Created auth directory at {auth_dir}")

    console.print(f"\n{__logo__} wahub is ready!")
    console.print("\nNext steps:")
    console.print(f"  1. Start the WhatsApp bridge at [cyan]{config.engine.bridge_url}[/cyan]")
    console.print("  2. Run: [cyan]wahub serve[/cyan]")


# ============================================================================
# Gateway / Server
# ============================================================================


def _setup_logging(verbose: bool) -> None:
    """配置 loguru：默认 INFO，--verbose 时输出 DEBUG。"""
    from loguru import logger

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


@app.command()
def serve(
    port: int = typer.Option(None, "--port", "-p", help="Gateway port (defaults to server.port)"),
    host: str = typer.Option(None, "--host", help="Bind address (defaults to server.host)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    启动 wahub 网关服务。

    编排流程：
    1. 加载配置并配置日志
    2. 构建 Gateway（事件中心 + 会话注册表 + REST + Socket.IO）
    3. 交给 uvicorn 运行合并后的 ASGI 应用
    """
    import uvicorn

    from wahub.config.loader import load_config
    from wahub.gateway.app import Gateway

    _setup_logging(verbose)
    config = load_config()
    host = host or config.server.host
    port = port or config.server.port

    gateway = Gateway(config)

    console.print(f"{__logo__} Starting wahub gateway on {host}:{port}...")
    console.print(f"[green]✓[/green] Bridge: {config.engine.bridge_url}")
    console.print(f"[green]✓[/green] Health check: http://localhost:{port}/health")

    uvicorn.run(gateway.app, host=host, port=port, log_level="debug" if verbose else "info")


# ============================================================================
# Session Commands
# ============================================================================


sessions_app = typer.Typer(help="Manage sessions on a running gateway")
app.add_typer(sessions_app, name="sessions")


def _gateway_url(url: str | None) -> str:
    from wahub.config.loader import load_config

    if url:
        return url.rstrip("/")
    config = load_config()
    return f"http://localhost:{config.server.port}"


@sessions_app.command("list")
def sessions_list(
    url: str = typer.Option(None, "--url", help="Gateway base URL"),
):
    """列出运行中网关上的所有会话。"""
    import httpx

    base = _gateway_url(url)
    try:
        response = httpx.get(f"{base}/api/sessions", timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]Failed to reach gateway at {base}: {e}[/red]")
        raise typer.Exit(1)

    sessions = response.json().get("sessions", [])
    if not sessions:
        console.print("No sessions.")
        return

    table = Table(title="Sessions")
    table.add_column("Session", style="cyan")
    table.add_column("Status")
    table.add_column("State", style="dim")

    for s in sessions:
        connected = s.get("status") == "connected"
        table.add_row(
            s.get("sessionId", ""),
            "[green]connected[/green]" if connected else "[yellow]disconnected[/yellow]",
            s.get("state", ""),
        )

    console.print(table)


@sessions_app.command("destroy")
def sessions_destroy(
    session_id: str = typer.Argument(..., help="Session ID to destroy"),
    url: str = typer.Option(None, "--url", help="Gateway base URL"),
):
    """销毁运行中网关上的一个会话。"""
    import httpx

    base = _gateway_url(url)
    try:
        response = httpx.delete(f"{base}/api/session/{session_id}", timeout=30.0)
    except httpx.HTTPError as e:
        console.print(f"[red]Failed to reach gateway at {base}: {e}[/red]")
        raise typer.Exit(1)

    if response.status_code == 404:
        console.print(f"[red]Session {session_id} not found[/red]")
        raise typer.Exit(1)
    if response.is_error:
        console.print(f"[red]Failed to destroy {session_id}: {response.text}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Destroyed session {session_id}")


# ============================================================================
# Status Commands
# ============================================================================


@app.command()
def status():
    """
    显示 wahub 配置状态。

    展示内容：
    - 配置文件路径和状态
    - 凭据目录路径和状态
    - 服务与桥接配置
    """
    from wahub.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()
    auth_dir = Path(config.engine.auth_dir).expanduser()

    console.print(f"{__logo__} wahub Status\n")

    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Auth dir: {auth_dir} {'[green]✓[/green]' if auth_dir.exists() else '[red]✗[/red]'}")

    table = Table(title="Gateway")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Listen", f"{config.server.host}:{config.server.port}")
    table.add_row("Bridge", config.engine.bridge_url)
    table.add_row("Bridge token", "[green]✓[/green]" if config.engine.bridge_token else "[dim]not set[/dim]")
    table.add_row("QR max retries", str(config.engine.qr_max_retries))
    table.add_row("CORS origins", ", ".join(config.server.cors_origins))

    console.print(table)


if __name__ == "__main__":
    app()
