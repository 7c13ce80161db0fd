"""配置加载模块 - 从环境变量和 .env 文件加载配置。"""

from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogFormat(str, Enum):
    """日志格式枚举。"""

    JSON = "json"
    CONSOLE = "console"


class Settings(BaseSettings):
    """系统配置设置。

    从环境变量和 .env 文件加载配置。
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== 账户 ====================
    initial_cash: Decimal = Field(
        default=Decimal("5000"),
        gt=0,
        description="会话初始现金（同时作为收益率基准）",
    )
    instrument_symbol: str = Field(default="BTCUSDT", description="交易标的")
    instrument_category: Literal["spot", "futures"] = Field(
        default="spot",
        description="标的类别: spot 或 futures",
    )
    default_leverage: int = Field(default=10, ge=1, le=100, description="默认杠杆倍数")
    maintenance_margin_rate: Decimal = Field(
        default=Decimal("0.01"),
        gt=0,
        lt=1,
        description="维持保证金率",
    )

    # ==================== 信号与自动交易 ====================
    strategy: Literal["momentum", "mean_reversion", "trend_following"] = Field(
        default="momentum",
        description="当前信号策略",
    )
    analysis_interval_sec: float = Field(
        default=2.0,
        gt=0,
        le=3600,
        description="信号分析周期（秒）",
    )
    signal_cooldown_sec: float = Field(
        default=2.0,
        ge=0,
        le=3600,
        description="同一策略两次信号的最小间隔（秒）",
    )
    price_history_size: int = Field(default=50, ge=20, le=1000, description="价格窗口长度")
    stochastic_fallback: bool = Field(
        default=True,
        description="低波动时是否允许随机信号（演示用）",
    )
    random_seed: int | None = Field(default=None, description="随机信号种子")

    # ==================== 风控参数 ====================
    stop_loss_pct: float = Field(default=5.0, gt=0, le=100, description="止损百分比")
    take_profit_pct: float = Field(default=10.0, gt=0, le=1000, description="止盈百分比")
    max_loss_pct: float = Field(default=20.0, gt=0, le=100, description="账户最大亏损百分比")
    position_size_pct: float = Field(
        default=10.0,
        gt=0,
        le=100,
        description="自动交易单笔仓位（可用资金/持仓百分比）",
    )

    # ==================== 会话容量 ====================
    trade_history_limit: int = Field(default=50, ge=1, le=1000, description="成交记录保留条数")
    signal_history_limit: int = Field(default=20, ge=1, le=1000, description="信号记录保留条数")
    notification_limit: int = Field(default=10, ge=1, le=100, description="同时显示的通知数")
    notification_ttl_sec: float = Field(default=3.0, gt=0, le=60, description="通知过期时间（秒）")
    command_queue_size: int = Field(default=1000, ge=1, le=100_000, description="命令队列容量")

    # ==================== 日志配置 ====================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="日志级别",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="日志输出格式",
    )

    # ==================== 数据存储 ====================
    journal_dir: Path = Field(
        default=Path("data/journal"),
        description="交易日志存储目录",
    )

    @field_validator("journal_dir", mode="before")
    @classmethod
    def parse_journal_dir(cls, v: str | Path) -> Path:
        """将字符串转换为 Path 对象。"""
        return Path(v) if isinstance(v, str) else v

    def ensure_directories(self) -> None:
        """确保必要的目录存在。"""
        self.journal_dir.mkdir(parents=True, exist_ok=True)

    @property
    def is_futures(self) -> bool:
        """是否为合约交易。"""
        return self.instrument_category == "futures"


# 全局配置实例（延迟初始化）
_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局配置实例。"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
