"""
Load configuration from config.yaml and .env. API keys only from env.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, List, Optional

import yaml
from dotenv import load_dotenv


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def _split_symbols(raw: Any) -> List[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    return [str(s).strip().upper() for s in (raw or []) if str(s).strip()]


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns Config."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    def env(key: str, default: str = "") -> str:
        return os.getenv(key, default).strip()

    def env_bool(key: str, default: bool = False) -> bool:
        return os.getenv(key, str(default)).lower() in ("true", "1", "yes")

    def env_int(key: str, default: int = 0) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    def env_float(key: str, default: float = 0.0) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    api = data.get("api", {})
    market = data.get("market", {})
    strategy = data.get("strategy", {})
    risk = data.get("risk", {})
    execution = data.get("execution", {})
    telegram = data.get("telegram", {})
    logging_cfg = data.get("logging", {})
    backtest = data.get("backtest", {})

    use_testnet = env_bool("USE_TESTNET", api.get("use_testnet", True))
    if use_testnet:
        binance_api_key = env("BINANCE_TESTNET_API_KEY") or env("BINANCE_API_KEY")
        binance_api_secret = env("BINANCE_TESTNET_API_SECRET") or env("BINANCE_API_SECRET")
    else:
        binance_api_key = env("BINANCE_MAINNET_API_KEY") or env("BINANCE_API_KEY")
        binance_api_secret = env("BINANCE_MAINNET_API_SECRET") or env("BINANCE_API_SECRET")

    symbols = _split_symbols(os.getenv("SYMBOLS") or market.get("symbols", ["BTCUSDT"]))

    return Config(
        binance_api_key=binance_api_key,
        binance_api_secret=binance_api_secret,
        use_testnet=use_testnet,
        symbols=symbols,
        fast_timeframe=env("FAST_TIMEFRAME", market.get("fast_timeframe", "15m")),
        slow_timeframe=env("SLOW_TIMEFRAME", market.get("slow_timeframe", "4h")),
        fast_history_cap=int(market.get("fast_history_cap", 1000)),
        slow_history_cap=int(market.get("slow_history_cap", 500)),
        warmup_bars=int(market.get("warmup_bars", 500)),
        leverage=env_int("LEVERAGE", execution.get("leverage", 5)),
        # Strategy
        strategy_name=strategy.get("name", "vegas_tunnel"),
        short_ema=env_int("SHORT_EMA", strategy.get("short_ema", 12)),
        mid_tunnel_1=env_int("MID_TUNNEL_1", strategy.get("mid_tunnel_1", 144)),
        mid_tunnel_2=env_int("MID_TUNNEL_2", strategy.get("mid_tunnel_2", 169)),
        long_tunnel_1=env_int("LONG_TUNNEL_1", strategy.get("long_tunnel_1", 288)),
        long_tunnel_2=env_int("LONG_TUNNEL_2", strategy.get("long_tunnel_2", 338)),
        near_tolerance=env_float("NEAR_TOLERANCE", strategy.get("near_tolerance", 0.002)),
        stop_buffer=env_float("STOP_BUFFER", strategy.get("stop_buffer", 0.002)),
        risk_reward_ratio=env_float("RISK_REWARD_RATIO", strategy.get("risk_reward_ratio", 2.0)),
        stop_loss_pct=env_float("STOP_LOSS_PCT", strategy.get("stop_loss_pct", 0.02)),
        take_profit_pct=env_float("TAKE_PROFIT_PCT", strategy.get("take_profit_pct", 0.04)),
        min_confidence=env_float("MIN_CONFIDENCE", strategy.get("min_confidence", 0.6)),
        # Risk
        risk_per_trade_usd=env_float("RISK_PER_TRADE_USD", risk.get("risk_per_trade_usd", 10.0)),
        max_daily_loss_usd=env_float("MAX_DAILY_LOSS_USD", risk.get("max_daily_loss_usd", 50.0)),
        max_drawdown_pct=env_float("MAX_DRAWDOWN_PCT", risk.get("max_drawdown_pct", 20.0)),
        min_notional=env_float("MIN_NOTIONAL", risk.get("min_notional", 5.0)),
        max_position_pct_capital=env_float("MAX_POSITION_PCT_CAPITAL", risk.get("max_position_pct_capital", 100.0)),
        min_risk_reward=env_float("MIN_RISK_REWARD", risk.get("min_risk_reward", 1.0)),
        # Execution
        protective_order_delay_s=float(execution.get("protective_order_delay_s", 2.0)),
        slippage_bps=env_float("SLIPPAGE_BPS", execution.get("slippage_bps", 5.0)),
        fee_bps=env_float("FEE_BPS", execution.get("fee_bps", 4.0)),
        # Telegram
        telegram_bot_token=env("TELEGRAM_BOT_TOKEN", telegram.get("bot_token", "")),
        telegram_chat_id=env("TELEGRAM_CHAT_ID", str(telegram.get("chat_id", ""))),
        # Logging
        log_level=env("LOG_LEVEL", logging_cfg.get("level", "INFO")),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "tunnel_bot.log"),
        log_max_bytes=int(logging_cfg.get("max_bytes", 10 * 1024 * 1024)),
        log_backup_count=int(logging_cfg.get("backup_count", 5)),
        # Backtest
        backtest_limit=int(backtest.get("limit", 1500)),
        backtest_initial_capital=float(backtest.get("initial_capital", 10000.0)),
    )


class Config:
    """Unified configuration. Treated as read-only after load."""

    __slots__ = (
        "binance_api_key", "binance_api_secret", "use_testnet",
        "symbols", "fast_timeframe", "slow_timeframe",
        "fast_history_cap", "slow_history_cap", "warmup_bars", "leverage",
        "strategy_name", "short_ema", "mid_tunnel_1", "mid_tunnel_2", "long_tunnel_1", "long_tunnel_2",
        "near_tolerance", "stop_buffer", "risk_reward_ratio", "stop_loss_pct", "take_profit_pct",
        "min_confidence",
        "risk_per_trade_usd", "max_daily_loss_usd", "max_drawdown_pct", "min_notional",
        "max_position_pct_capital", "min_risk_reward",
        "protective_order_delay_s", "slippage_bps", "fee_bps",
        "telegram_bot_token", "telegram_chat_id",
        "log_level", "log_dir", "log_file", "log_max_bytes", "log_backup_count",
        "backtest_limit", "backtest_initial_capital",
    )

    def __init__(
        self,
        binance_api_key: str = "",
        binance_api_secret: str = "",
        use_testnet: bool = True,
        symbols: Optional[List[str]] = None,
        fast_timeframe: str = "15m",
        slow_timeframe: str = "4h",
        fast_history_cap: int = 1000,
        slow_history_cap: int = 500,
        warmup_bars: int = 500,
        leverage: int = 5,
        strategy_name: str = "vegas_tunnel",
        short_ema: int = 12,
        mid_tunnel_1: int = 144,
        mid_tunnel_2: int = 169,
        long_tunnel_1: int = 288,
        long_tunnel_2: int = 338,
        near_tolerance: float = 0.002,
        stop_buffer: float = 0.002,
        risk_reward_ratio: float = 2.0,
        stop_loss_pct: float = 0.02,
        take_profit_pct: float = 0.04,
        min_confidence: float = 0.6,
        risk_per_trade_usd: float = 10.0,
        max_daily_loss_usd: float = 50.0,
        max_drawdown_pct: float = 20.0,
        min_notional: float = 5.0,
        max_position_pct_capital: float = 100.0,
        min_risk_reward: float = 1.0,
        protective_order_delay_s: float = 2.0,
        slippage_bps: float = 5.0,
        fee_bps: float = 4.0,
        telegram_bot_token: str = "",
        telegram_chat_id: str = "",
        log_level: str = "INFO",
        log_dir: Optional[Path] = None,
        log_file: str = "tunnel_bot.log",
        log_max_bytes: int = 10 * 1024 * 1024,
        log_backup_count: int = 5,
        backtest_limit: int = 1500,
        backtest_initial_capital: float = 10000.0,
    ):
        self.binance_api_key = binance_api_key
        self.binance_api_secret = binance_api_secret
        self.use_testnet = use_testnet
        self.symbols = list(symbols) if symbols else ["BTCUSDT"]
        self.fast_timeframe = fast_timeframe
        self.slow_timeframe = slow_timeframe
        self.fast_history_cap = fast_history_cap
        self.slow_history_cap = slow_history_cap
        self.warmup_bars = warmup_bars
        self.leverage = leverage
        self.strategy_name = strategy_name
        self.short_ema = short_ema
        self.mid_tunnel_1 = mid_tunnel_1
        self.mid_tunnel_2 = mid_tunnel_2
        self.long_tunnel_1 = long_tunnel_1
        self.long_tunnel_2 = long_tunnel_2
        self.near_tolerance = near_tolerance
        self.stop_buffer = stop_buffer
        self.risk_reward_ratio = risk_reward_ratio
        self.stop_loss_pct = stop_loss_pct
        self.take_profit_pct = take_profit_pct
        self.min_confidence = min_confidence
        self.risk_per_trade_usd = risk_per_trade_usd
        self.max_daily_loss_usd = max_daily_loss_usd
        self.max_drawdown_pct = max_drawdown_pct
        self.min_notional = min_notional
        self.max_position_pct_capital = max_position_pct_capital
        self.min_risk_reward = min_risk_reward
        self.protective_order_delay_s = protective_order_delay_s
        self.slippage_bps = slippage_bps
        self.fee_bps = fee_bps
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file
        self.log_max_bytes = log_max_bytes
        self.log_backup_count = log_backup_count
        self.backtest_limit = backtest_limit
        self.backtest_initial_capital = backtest_initial_capital

    @property
    def history_caps(self) -> dict[str, int]:
        return {self.fast_timeframe: self.fast_history_cap, self.slow_timeframe: self.slow_history_cap}
