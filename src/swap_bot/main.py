"""CLI 入口模块 - Swap Bot 命令行接口。"""

import signal
import sys
from datetime import datetime
from pathlib import Path
from types import FrameType

import click

from swap_bot import __version__
from swap_bot.config import BotProfile, get_settings
from swap_bot.factory import build_controller
from swap_bot.replay import load_price_csv, run_replay, write_replay_artifacts
from swap_bot.utils.logging import get_logger, setup_logging


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="显示版本号")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """Swap Bot - 带风控的 Solana 兑换交易机器人。

    轮询聚合器价格，生成均值回归/阈值信号，经风控与熔断后执行兑换。
    """
    if version:
        click.echo(f"swap-bot version {__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
def once() -> None:
    """执行单次交易循环。

    拉取价格 → 生成信号 → 风控检查 → 熔断保护下执行 → 记录
    """
    setup_logging()
    logger = get_logger("swap_bot.main")
    settings = get_settings()

    # 确保目录存在
    settings.ensure_directories()

    logger.info(
        "starting_single_run",
        mode=settings.mode.value,
        strategy=settings.strategy.value,
        timestamp=datetime.now().isoformat(),
    )

    try:
        controller = build_controller(settings)
    except ValueError as e:
        logger.error("invalid_configuration", error=str(e), hint="请检查 .env 配置")
        sys.exit(1)

    result = controller.run_iteration()
    logger.info(
        "run_completed",
        status=result.status,
        elapsed_ms=round(result.elapsed_ms, 2),
        reasons=result.reasons,
    )
    click.echo(f"{result.status}: {'; '.join(result.reasons)}")


@cli.command()
@click.option(
    "--interval-sec",
    "-i",
    type=float,
    default=None,
    help="轮询间隔（秒），默认使用 profile 预设",
)
@click.option(
    "--profile",
    "-p",
    type=click.Choice([p.value for p in BotProfile]),
    default=None,
    help="参数预设",
)
def run(interval_sec: float | None, profile: str | None) -> None:
    """循环执行交易。

    按轮询间隔持续运行，使用 Ctrl+C 停止。
    """
    setup_logging()
    logger = get_logger("swap_bot.main")
    settings = get_settings()

    # 命令行参数覆盖环境配置
    overrides: dict[str, object] = {}
    if interval_sec is not None:
        overrides["poll_interval_seconds"] = interval_sec
    if profile is not None:
        overrides["profile"] = BotProfile(profile)
    if overrides:
        settings = settings.model_copy(update=overrides)

    settings.ensure_directories()

    try:
        controller = build_controller(settings)
    except ValueError as e:
        logger.error("invalid_configuration", error=str(e), hint="请检查 .env 配置")
        sys.exit(1)

    def _handle_sigterm(signum: int, frame: FrameType | None) -> None:
        controller.stop()

    signal.signal(signal.SIGTERM, _handle_sigterm)

    logger.info(
        "starting_loop",
        mode=settings.mode.value,
        profile=settings.profile.value,
        poll_interval_seconds=controller.config.poll_interval_seconds,
    )

    try:
        iterations = controller.run_forever()
    except KeyboardInterrupt:
        logger.info("loop_interrupted", message="User stopped loop")
        sys.exit(0)

    logger.info("loop_finished", total_iterations=iterations)


@cli.command()
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="回放结果输出目录",
)
def replay(csv_path: Path, output: Path | None) -> None:
    """用历史价格 CSV 回放交易循环（模拟时钟 + 纸交易钱包）。"""
    setup_logging()
    settings = get_settings()

    try:
        prices = load_price_csv(csv_path)
    except ValueError as e:
        click.echo(f"[ERROR] {e}")
        sys.exit(1)

    summary = run_replay(settings, prices)
    if output is not None:
        write_replay_artifacts(output, summary)

    win_rate = "n/a" if summary.win_rate is None else f"{summary.win_rate * 100:.1f}%"
    click.echo("=" * 50)
    click.echo("Swap Bot - Replay Summary")
    click.echo("=" * 50)
    click.echo(f"   Ticks: {summary.ticks}")
    click.echo(f"   Buys / Sells: {summary.buys} / {summary.sells}")
    click.echo(f"   Win rate: {win_rate}")
    click.echo(f"   Realized P&L: ${summary.realized_pnl_usd:.2f}")
    click.echo(f"   Max drawdown: {summary.max_drawdown_pct:.2f}%")
    click.echo(f"   Portfolio: ${summary.start_value:.2f} -> ${summary.final_value:.2f}")
    if output is not None:
        click.echo(f"   Artifacts: {output}")
    click.echo("=" * 50)


@cli.command()
def status() -> None:
    """显示系统状态和配置摘要。"""
    setup_logging()
    settings = get_settings()
    risk = settings.risk_parameters()
    loop = settings.loop_config()

    click.echo("=" * 50)
    click.echo("Swap Bot - Status")
    click.echo("=" * 50)
    click.echo()

    # 运行模式
    mode_marker = "[PAPER]" if settings.is_paper_mode else "[LIVE]"
    mode_text = "Paper Trading" if settings.is_paper_mode else "Live Trading"
    click.echo(f"{mode_marker} Mode: {mode_text}")
    click.echo(f"   Profile: {settings.profile.value}")
    click.echo(f"   Strategy: {settings.strategy.value}")
    click.echo(f"   Pair: {loop.pair_id}")
    click.echo(f"   Poll interval: {loop.poll_interval_seconds:g}s")
    click.echo(f"   Error backoff: {loop.error_backoff_seconds:g}s")
    click.echo()

    # 外部服务配置
    click.echo("[Integrations]")
    wallet_status = "[OK] Configured" if settings.wallet_public_key else "[--] Not configured"
    telegram_status = (
        "[OK] Configured"
        if settings.telegram_bot_token and settings.telegram_chat_id
        else "[--] Not configured"
    )
    click.echo(f"   Jupiter API: {settings.jupiter_api_url}")
    click.echo(f"   Solana RPC: {settings.solana_rpc_url}")
    click.echo(f"   Wallet: {wallet_status}")
    click.echo(f"   Telegram: {telegram_status}")
    click.echo()

    # 风控参数
    click.echo("[Risk Parameters]")
    click.echo(f"   Max position size: {risk.max_position_size_pct}%")
    click.echo(f"   Max daily loss: ${risk.max_daily_loss_usd}")
    click.echo(f"   Max slippage: {risk.max_slippage_bps}bps")
    click.echo(f"   Cooldown: {risk.cooldown_seconds:g}s")
    click.echo(f"   Max drawdown: {risk.max_drawdown_pct}%")
    click.echo(f"   Emergency stop loss: {risk.emergency_stop_loss_pct}%")
    click.echo(f"   Max trades per day: {risk.max_trades_per_day}")
    click.echo()

    # 日志配置
    click.echo("[Logging]")
    click.echo(f"   Log level: {settings.log_level}")
    click.echo(f"   Log format: {settings.log_format.value}")
    click.echo(f"   Journal dir: {settings.journal_dir}")
    click.echo()

    # 验证状态
    if settings.is_live_mode:
        missing = settings.validate_for_live()
        if missing:
            click.echo("[ERROR] Live mode configuration incomplete, missing:")
            for key in missing:
                click.echo(f"   - {key}")
        else:
            click.echo("[OK] Live mode configuration complete (external signer required)")
    else:
        click.echo("[INFO] Paper mode simulates fills with a local wallet")

    click.echo()
    click.echo("=" * 50)


@cli.command()
def check() -> None:
    """检查系统依赖和配置。"""
    setup_logging()
    logger = get_logger("swap_bot.main")

    click.echo("Checking system dependencies...")
    click.echo()

    all_ok = True

    # 检查必要的包
    packages = [
        ("pydantic", "Configuration validation"),
        ("pydantic_settings", "Settings loading"),
        ("httpx", "HTTP client"),
        ("pandas", "Replay data processing"),
        ("structlog", "Structured logging"),
        ("click", "CLI framework"),
        ("tenacity", "Retry mechanism"),
    ]

    for pkg_name, desc in packages:
        try:
            __import__(pkg_name)
            click.echo(f"  [OK] {pkg_name} - {desc}")
        except ImportError:
            click.echo(f"  [MISSING] {pkg_name} - {desc}")
            all_ok = False

    click.echo()

    # 检查配置文件
    env_file = Path(".env")
    if env_file.exists():
        click.echo("  [OK] .env configuration file exists")
    else:
        click.echo("  [WARN] .env file not found (using defaults)")

    click.echo()

    if all_ok:
        click.echo("[OK] All dependency checks passed")
    else:
        click.echo("[ERROR] Some dependencies missing. Run: pip install -e .")

    logger.info("dependency_check_completed", all_ok=all_ok)


# 支持 python -m swap_bot.main 调用
if __name__ == "__main__":
    cli()
