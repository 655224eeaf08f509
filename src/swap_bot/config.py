"""配置加载模块 - 从环境变量和 .env 文件加载配置。"""

from enum import Enum
from pathlib import Path
from typing import Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class RunMode(str, Enum):
    """运行模式枚举。"""

    PAPER = "paper"  # 纸交易
    LIVE = "live"  # 实盘


class LogFormat(str, Enum):
    """日志格式枚举。"""

    JSON = "json"
    CONSOLE = "console"


class BotProfile(str, Enum):
    """预设参数组。"""

    STANDARD = "standard"
    PRODUCTION = "production"
    QUICK_SCALP = "quick_scalp"  # 15 秒快速剥头皮


class StrategyKind(str, Enum):
    """信号策略类型。"""

    MEAN_REVERSION = "mean_reversion"
    THRESHOLD = "threshold"
    COMBINED = "combined"  # 均值回归优先，阈值兜底


# ==================== 组件配置 ====================


class RiskParameters(BaseModel):
    """风控限额。运行期间只能通过 RiskManager.update_risk_parameters 修改。"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_position_size_pct: float = Field(default=5.0, gt=0, le=100)
    max_daily_loss_usd: float = Field(default=100.0, gt=0)
    max_slippage_bps: int = Field(default=100, ge=0, le=10_000)
    cooldown_seconds: float = Field(default=60.0, ge=0)
    emergency_stop_loss_pct: float = Field(default=20.0, gt=0, le=100)
    max_drawdown_pct: float = Field(default=15.0, gt=0, le=100)
    max_trades_per_day: int = Field(default=50, ge=1)
    min_liquidity_usd: float = Field(default=1_000.0, ge=0)


class MeanReversionConfig(BaseModel):
    """均值回归策略参数。"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    drop_threshold_pct: float = Field(default=0.15, gt=0)
    bounce_threshold_pct: float = Field(default=0.15, gt=0)
    monitor_window_ms: int = Field(default=120_000, gt=0)
    max_position_time_ms: int = Field(default=300_000, gt=0)
    trade_amount_quote: float = Field(default=10.0, gt=0)
    max_slippage_bps: int = Field(default=50, ge=0, le=10_000)
    stop_loss_pct: float = Field(default=1.0, gt=0)
    take_profit_pct: float = Field(default=0.5, gt=0)


class ThresholdConfig(BaseModel):
    """阈值策略参数。设置 buy_below/sell_above 时使用固定阈值，否则使用波动带。"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    buy_below: float | None = Field(default=None, gt=0)
    sell_above: float | None = Field(default=None, gt=0)
    base_spread: float = Field(default=0.5, gt=0)
    volatility_multiplier: float = Field(default=2.0, ge=0)
    min_spread: float = Field(default=0.3, gt=0)
    max_spread: float = Field(default=2.0, gt=0)
    rebase_interval_ms: int = Field(default=900_000, gt=0)
    rebase_move_pct: float = Field(default=5.0, gt=0)
    trade_amount_quote: float = Field(default=10.0, gt=0)
    max_slippage_bps: int = Field(default=50, ge=0, le=10_000)

    @model_validator(mode="after")
    def check_thresholds(self) -> "ThresholdConfig":
        """校验阈值顺序。"""
        if (self.buy_below is None) != (self.sell_above is None):
            raise ValueError("buy_below and sell_above must be set together")
        if self.buy_below is not None and self.sell_above is not None:
            if self.buy_below >= self.sell_above:
                raise ValueError("buy_below must be lower than sell_above")
        if self.min_spread > self.max_spread:
            raise ValueError("min_spread must not exceed max_spread")
        return self


class CircuitBreakerConfig(BaseModel):
    """熔断器参数。"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    failure_threshold: int = Field(default=5, ge=1)
    timeout_ms: int = Field(default=60_000, gt=0)


class LoopConfig(BaseModel):
    """交易循环参数。"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pair_id: str = Field(default="SOL/USDC", pattern=r"^[A-Z0-9]+/[A-Z0-9]+$")
    poll_interval_seconds: float = Field(default=60.0, gt=0)
    error_backoff_seconds: float = Field(default=30.0, gt=0)
    min_confidence: float = Field(default=70.0, ge=0, le=100)
    min_balance_usd: float = Field(default=2.0, ge=0)
    fee_estimate: float = Field(default=0.001, ge=0)
    volatility_sizing: bool = True

    @model_validator(mode="after")
    def check_backoff(self) -> "LoopConfig":
        """失败退避必须短于轮询间隔。"""
        if self.error_backoff_seconds >= self.poll_interval_seconds:
            raise ValueError("error_backoff_seconds must be shorter than poll_interval_seconds")
        return self


# 各预设的风控/策略/轮询参数
_PROFILE_RISK: dict[BotProfile, RiskParameters] = {
    BotProfile.STANDARD: RiskParameters(),
    BotProfile.PRODUCTION: RiskParameters(
        max_position_size_pct=5.0,
        max_daily_loss_usd=1_000.0,
        max_slippage_bps=50,
        cooldown_seconds=300.0,
        emergency_stop_loss_pct=10.0,
        max_drawdown_pct=8.0,
        max_trades_per_day=20,
        min_liquidity_usd=10_000.0,
    ),
    BotProfile.QUICK_SCALP: RiskParameters(
        max_position_size_pct=15.0,
        max_daily_loss_usd=50.0,
        max_slippage_bps=50,
        cooldown_seconds=15.0,
        emergency_stop_loss_pct=5.0,
        max_drawdown_pct=8.0,
        max_trades_per_day=200,
        min_liquidity_usd=1_000.0,
    ),
}

_PROFILE_MEAN_REVERSION: dict[BotProfile, MeanReversionConfig] = {
    BotProfile.STANDARD: MeanReversionConfig(),
    BotProfile.PRODUCTION: MeanReversionConfig(max_slippage_bps=30),
    BotProfile.QUICK_SCALP: MeanReversionConfig(
        drop_threshold_pct=0.12,
        bounce_threshold_pct=0.12,
        monitor_window_ms=90_000,
        max_position_time_ms=240_000,
        trade_amount_quote=15.0,
        max_slippage_bps=30,
        stop_loss_pct=0.8,
        take_profit_pct=0.4,
    ),
}

_PROFILE_POLL_SECONDS: dict[BotProfile, float] = {
    BotProfile.STANDARD: 60.0,
    BotProfile.PRODUCTION: 30.0,
    BotProfile.QUICK_SCALP: 15.0,
}

_PROFILE_ERROR_BACKOFF_SECONDS: dict[BotProfile, float] = {
    BotProfile.STANDARD: 30.0,
    BotProfile.PRODUCTION: 15.0,
    BotProfile.QUICK_SCALP: 5.0,
}


class Settings(BaseSettings):
    """系统配置设置。

    从环境变量和 .env 文件加载配置。风控和策略字段为 None 时使用 profile 预设值。
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== 运行模式 ====================
    mode: RunMode = Field(default=RunMode.PAPER, description="运行模式: paper 或 live")
    profile: BotProfile = Field(default=BotProfile.STANDARD, description="参数预设")
    strategy: StrategyKind = Field(
        default=StrategyKind.MEAN_REVERSION,
        description="信号策略",
    )
    pair_id: str = Field(default="SOL/USDC", description="交易对")

    # ==================== Solana / Jupiter ====================
    solana_rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com",
        description="Solana RPC 地址",
    )
    wallet_public_key: str = Field(default="", description="钱包公钥")
    jupiter_api_url: str = Field(
        default="https://quote-api.jup.ag/v6",
        description="Jupiter 聚合器 API 地址",
    )
    http_timeout: float = Field(default=10.0, gt=0, description="HTTP 调用超时（秒）")
    confirm_timeout: float = Field(default=60.0, gt=0, description="交易确认超时（秒）")
    priority_fee_micro_lamports: int = Field(default=1_000_000, ge=0, description="优先费")

    # ==================== Telegram ====================
    telegram_bot_token: str = Field(default="", description="Telegram Bot Token")
    telegram_chat_id: str = Field(default="", description="Telegram Chat ID")

    # ==================== 风控参数（None 表示使用预设） ====================
    max_position_size_pct: float | None = Field(default=None, description="单笔最大仓位（%）")
    max_daily_loss_usd: float | None = Field(default=None, description="日最大亏损（USD）")
    max_slippage_bps: int | None = Field(default=None, description="最大滑点（bps）")
    cooldown_seconds: float | None = Field(default=None, description="交易冷却（秒）")
    emergency_stop_loss_pct: float | None = Field(default=None, description="紧急止损回撤（%）")
    max_drawdown_pct: float | None = Field(default=None, description="最大回撤（%）")
    max_trades_per_day: int | None = Field(default=None, description="日最大交易次数")
    min_liquidity_usd: float | None = Field(default=None, description="最低流动性（USD）")

    # ==================== 策略参数（None 表示使用预设） ====================
    drop_threshold_pct: float | None = Field(default=None, description="买入下跌阈值（%）")
    bounce_threshold_pct: float | None = Field(default=None, description="反弹阈值（%）")
    monitor_window_ms: int | None = Field(default=None, description="监控窗口（毫秒）")
    max_position_time_ms: int | None = Field(default=None, description="最长持仓（毫秒）")
    trade_amount_quote: float | None = Field(default=None, description="单笔金额（计价币）")
    swap_slippage_bps: int | None = Field(default=None, description="下单滑点上限（bps）")
    stop_loss_pct: float | None = Field(default=None, description="止损（%）")
    take_profit_pct: float | None = Field(default=None, description="止盈（%）")
    threshold_buy_below: float | None = Field(default=None, description="固定买入价")
    threshold_sell_above: float | None = Field(default=None, description="固定卖出价")

    # ==================== 循环参数 ====================
    poll_interval_seconds: float | None = Field(default=None, description="轮询间隔（秒）")
    error_backoff_seconds: float | None = Field(
        default=None,
        gt=0,
        description="失败后退避（秒），None 时取预设值与半个轮询间隔中的较小者",
    )
    min_confidence: float = Field(default=70.0, ge=0, le=100, description="最低信号置信度")
    min_balance_usd: float = Field(default=2.0, ge=0, description="最低钱包余额（USD）")
    volatility_sizing: bool = Field(default=True, description="高波动时缩减仓位")
    circuit_failure_threshold: int = Field(default=5, ge=1, description="熔断失败次数")
    circuit_timeout_ms: int = Field(default=60_000, gt=0, description="熔断冷却（毫秒）")

    # ==================== 纸交易 ====================
    paper_base_balance: float = Field(default=1.0, ge=0, description="纸交易初始基础币")
    paper_quote_balance: float = Field(default=100.0, ge=0, description="纸交易初始计价币")
    paper_slippage_bps: float = Field(default=5.0, ge=0, description="纸交易模拟滑点")

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
    def is_paper_mode(self) -> bool:
        """是否为纸交易模式。"""
        return self.mode == RunMode.PAPER

    @property
    def is_live_mode(self) -> bool:
        """是否为实盘模式。"""
        return self.mode == RunMode.LIVE

    def validate_for_live(self) -> list[str]:
        """验证实盘模式的必要配置，返回缺失项列表。"""
        missing = []
        if not self.solana_rpc_url:
            missing.append("SOLANA_RPC_URL")
        if not self.wallet_public_key:
            missing.append("WALLET_PUBLIC_KEY")
        if not self.jupiter_api_url:
            missing.append("JUPITER_API_URL")
        return missing

    def risk_parameters(self) -> RiskParameters:
        """合并预设与显式配置的风控参数。"""
        preset = _PROFILE_RISK[self.profile]
        return _merge(preset, self, list(RiskParameters.model_fields))

    def mean_reversion_config(self) -> MeanReversionConfig:
        """合并预设与显式配置的均值回归参数。"""
        preset = _PROFILE_MEAN_REVERSION[self.profile]
        fields = [
            "drop_threshold_pct",
            "bounce_threshold_pct",
            "monitor_window_ms",
            "max_position_time_ms",
            "trade_amount_quote",
            "stop_loss_pct",
            "take_profit_pct",
        ]
        merged = _merge(preset, self, fields)
        if self.swap_slippage_bps is not None:
            merged = MeanReversionConfig.model_validate(
                {**merged.model_dump(), "max_slippage_bps": self.swap_slippage_bps}
            )
        return merged

    def threshold_config(self) -> ThresholdConfig:
        """阈值策略参数。"""
        payload: dict[str, object] = {
            "buy_below": self.threshold_buy_below,
            "sell_above": self.threshold_sell_above,
        }
        if self.trade_amount_quote is not None:
            payload["trade_amount_quote"] = self.trade_amount_quote
        if self.swap_slippage_bps is not None:
            payload["max_slippage_bps"] = self.swap_slippage_bps
        return ThresholdConfig.model_validate(payload)

    def circuit_breaker_config(self) -> CircuitBreakerConfig:
        """熔断器参数。"""
        return CircuitBreakerConfig(
            failure_threshold=self.circuit_failure_threshold,
            timeout_ms=self.circuit_timeout_ms,
        )

    def loop_config(self) -> LoopConfig:
        """交易循环参数。"""
        poll = self.poll_interval_seconds
        if poll is None:
            poll = _PROFILE_POLL_SECONDS[self.profile]
        backoff = self.error_backoff_seconds
        if backoff is None:
            backoff = min(_PROFILE_ERROR_BACKOFF_SECONDS[self.profile], poll / 2)
        return LoopConfig(
            pair_id=self.pair_id,
            poll_interval_seconds=poll,
            error_backoff_seconds=backoff,
            min_confidence=self.min_confidence,
            min_balance_usd=self.min_balance_usd,
            volatility_sizing=self.volatility_sizing,
        )


def _merge(preset: _ModelT, settings: Settings, fields: list[str]) -> _ModelT:
    overrides = {
        name: getattr(settings, name)
        for name in fields
        if getattr(settings, name, None) is not None
    }
    return type(preset).model_validate({**preset.model_dump(), **overrides})


# 全局配置实例（延迟初始化）
_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局配置实例。"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """重新加载配置。"""
    global _settings
    _settings = Settings()
    return _settings
