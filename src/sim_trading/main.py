"""CLI 入口模块 - Simulated Trading 命令行接口。"""

import asyncio
import sys
from datetime import datetime
from decimal import Decimal

import click

from sim_trading import __version__
from sim_trading.config import get_settings
from sim_trading.data.feed import RandomWalkFeed
from sim_trading.journal.stats import summarize_trades
from sim_trading.journal.store import JournalStore
from sim_trading.session import run_simulation
from sim_trading.utils.logging import get_logger, setup_logging


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="显示版本号")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """Simulated Trading - 模拟杠杆交易账户。

    现货/合约模拟撮合、保证金与强平、策略信号与自动交易。
    """
    if version:
        click.echo(f"sim-trading version {__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option("--ticks", "-n", type=click.IntRange(min=1), default=200, help="模拟行情条数")
@click.option(
    "--strategy",
    type=click.Choice(["momentum", "mean_reversion", "trend_following"]),
    default=None,
    help="信号策略（默认读取配置）",
)
@click.option(
    "--category",
    type=click.Choice(["spot", "futures"]),
    default=None,
    help="标的类别（默认读取配置）",
)
@click.option("--leverage", type=click.IntRange(1, 100), default=None, help="合约杠杆倍数")
@click.option("--base-price", type=str, default="50000", help="随机游走起始价格")
@click.option("--volatility", type=click.FloatRange(0.0, 0.5), default=0.01, help="单步最大波动比例")
@click.option("--seed", type=int, default=None, help="随机种子（行情与信号）")
@click.option(
    "--tick-interval",
    type=click.FloatRange(min=0.0),
    default=0.0,
    help="行情推送间隔秒数（0 表示不等待）",
)
@click.option("--journal/--no-journal", default=False, help="是否写入 JSONL 交易日志")
def simulate(
    ticks: int,
    strategy: str | None,
    category: str | None,
    leverage: int | None,
    base_price: str,
    volatility: float,
    seed: int | None,
    tick_interval: float,
    journal: bool,
) -> None:
    """用随机游走行情运行一次自动交易会话。

    行情 → 信号 → 风控 → 下单 → 汇总
    """
    setup_logging()
    logger = get_logger("sim_trading.main")

    overrides: dict[str, object] = {}
    if strategy is not None:
        overrides["strategy"] = strategy
    if category is not None:
        overrides["instrument_category"] = category
    if leverage is not None:
        overrides["default_leverage"] = leverage
    if seed is not None:
        overrides["random_seed"] = seed
    settings = get_settings().model_copy(update=overrides)

    store: JournalStore | None = None
    if journal:
        settings.ensure_directories()
        store = JournalStore(settings.journal_dir)

    logger.info(
        "starting_simulation",
        symbol=settings.instrument_symbol,
        category=settings.instrument_category,
        strategy=settings.strategy,
        ticks=ticks,
        timestamp=datetime.now().isoformat(),
    )

    try:
        feed = RandomWalkFeed(
            Decimal(base_price),
            volatility=volatility,
            seed=seed,
            interval_sec=tick_interval,
        )
        result = asyncio.run(run_simulation(settings, feed, ticks, journal=store))
    except KeyboardInterrupt:
        logger.info("simulation_interrupted", message="User interrupted")
        sys.exit(0)
    except Exception as e:
        logger.exception("simulation_failed", error=str(e))
        sys.exit(1)

    account = result.account
    stats = result.stats
    click.echo("=" * 50)
    click.echo(f"Simulation - {account.symbol} ({settings.instrument_category})")
    click.echo("=" * 50)
    click.echo(f"   Ticks: {result.ticks}")
    click.echo(f"   Signals: {len(result.signals)}")
    click.echo(f"   Trades: {stats.total_trades}")
    click.echo(f"   Win rate: {stats.win_rate:.2f}%")
    click.echo(f"   Realized profit: {stats.total_profit:.2f}")
    click.echo(f"   Cash: {account.cash_balance:.2f}")
    click.echo(f"   Total assets: {account.total_assets:.2f}")
    click.echo(f"   Return: {account.return_pct:.2f}%")
    click.echo(f"   Auto trader: {result.auto_trader_state.value}")
    click.echo()

    summary = summarize_trades(result.trades)
    if summary:
        click.echo("[By Strategy]")
        for name, row in summary.items():
            click.echo(
                f"   {name}: trades={row['trade_count']} closed={row['closed_count']} "
                f"win_rate={row['win_rate_pct']:.2f}% profit={row['realized_profit']:.2f}"
            )
        click.echo()

    logger.info(
        "simulation_completed",
        trades=stats.total_trades,
        total_assets=account.total_assets,
        auto_trader=result.auto_trader_state.value,
    )


@cli.command()
def status() -> None:
    """显示系统状态和配置摘要。"""
    setup_logging()
    settings = get_settings()

    click.echo("=" * 50)
    click.echo("Simulated Trading - Status")
    click.echo("=" * 50)
    click.echo()

    # 账户配置
    click.echo("[Account]")
    click.echo(f"   Symbol: {settings.instrument_symbol}")
    click.echo(f"   Category: {settings.instrument_category}")
    click.echo(f"   Initial cash: {settings.initial_cash}")
    if settings.is_futures:
        click.echo(f"   Default leverage: {settings.default_leverage}x")
        click.echo(f"   Maintenance margin rate: {settings.maintenance_margin_rate}")
    click.echo()

    # 信号配置
    click.echo("[Signals]")
    click.echo(f"   Strategy: {settings.strategy}")
    click.echo(f"   Analysis interval: {settings.analysis_interval_sec}s")
    click.echo(f"   Signal cooldown: {settings.signal_cooldown_sec}s")
    click.echo(f"   Stochastic fallback: {'Yes' if settings.stochastic_fallback else 'No'}")
    click.echo()

    # 风控参数
    click.echo("[Risk Parameters]")
    click.echo(f"   Stop loss: {settings.stop_loss_pct}%")
    click.echo(f"   Take profit: {settings.take_profit_pct}%")
    click.echo(f"   Max loss: {settings.max_loss_pct}%")
    click.echo(f"   Position size: {settings.position_size_pct}%")
    click.echo()

    # 日志配置
    click.echo("[Logging]")
    click.echo(f"   Log level: {settings.log_level}")
    click.echo(f"   Log format: {settings.log_format.value}")
    click.echo(f"   Journal dir: {settings.journal_dir}")
    click.echo()
    click.echo("=" * 50)


@cli.command()
def check() -> None:
    """检查系统依赖和配置。"""
    setup_logging()
    logger = get_logger("sim_trading.main")

    click.echo("Checking system dependencies...")
    click.echo()

    all_ok = True

    # 检查必要的包
    packages = [
        ("pydantic", "Configuration validation"),
        ("pydantic_settings", "Settings loading"),
        ("pandas", "Data processing"),
        ("structlog", "Structured logging"),
        ("click", "CLI framework"),
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
    from pathlib import Path

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


# 支持 python -m sim_trading.main 调用
if __name__ == "__main__":
    cli()
