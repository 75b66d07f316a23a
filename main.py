#!/usr/bin/env python3
"""
Vegas tunnel bot CLI: backtest | live
Usage:
  python main.py backtest [--config config.yaml]
  python main.py live [--config config.yaml]
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tunnel_bot.core.config import Config, load_config
from tunnel_bot.core.errors import InvalidParameters
from tunnel_bot.core.logger import setup_logging
from tunnel_bot.core.types import bars_from_frame
from tunnel_bot.backtesting.engine import BacktestEngine
from tunnel_bot.data.series_store import SeriesStore
from tunnel_bot.engine.core import SignalCore
from tunnel_bot.engine.live import LiveTrader
from tunnel_bot.execution.binance_futures import BinanceFuturesClient
from tunnel_bot.execution.executor import TradeExecutor
from tunnel_bot.risk.manager import RiskManager
from tunnel_bot.strategies.registry import StrategyRegistry
from tunnel_bot.strategies.vegas_tunnel import VegasTunnelParams, VegasTunnelStrategy
from tunnel_bot.stream.feed import BinanceKlineSockets, KlineStream
from tunnel_bot.utils.telegram import TelegramNotifier

logger = logging.getLogger("tunnel_bot")

STATUS_INTERVAL_S = 55 * 60


def build_strategy(config: Config) -> VegasTunnelStrategy:
    """Raises InvalidParameters on a bad configuration."""
    params = VegasTunnelParams(
        short_period=config.short_ema,
        mid_periods=(config.mid_tunnel_1, config.mid_tunnel_2),
        long_periods=(config.long_tunnel_1, config.long_tunnel_2),
        near_tolerance=config.near_tolerance,
        stop_buffer=config.stop_buffer,
        risk_reward_ratio=config.risk_reward_ratio,
        stop_loss_pct=config.stop_loss_pct,
        take_profit_pct=config.take_profit_pct,
        fast_timeframe=config.fast_timeframe,
        slow_timeframe=config.slow_timeframe,
    )
    return VegasTunnelStrategy(params)


def build_registry(config: Config) -> StrategyRegistry:
    registry = StrategyRegistry()
    registry.register(config.strategy_name, build_strategy(config))
    return registry


def build_core(config: Config, strategy: VegasTunnelStrategy) -> SignalCore:
    """Raises InvalidParameters when history caps or warm-up depth cannot define the tunnels."""
    core = SignalCore(strategy, SeriesStore(config.history_caps))
    if config.warmup_bars < core.warmup_bars:
        raise InvalidParameters(f"warmup_bars {config.warmup_bars} is below the {core.warmup_bars} bars the tunnels need")
    return core


def build_risk_manager(config: Config, symbol_info: Optional[dict] = None) -> RiskManager:
    return RiskManager(
        risk_per_trade_usd=config.risk_per_trade_usd,
        max_daily_loss_usd=config.max_daily_loss_usd,
        max_drawdown_pct=config.max_drawdown_pct,
        min_notional=config.min_notional,
        max_position_pct_capital=config.max_position_pct_capital,
        min_risk_reward=config.min_risk_reward,
        min_confidence=config.min_confidence,
        symbol_info=symbol_info,
    )


def _load(config_path: Path | None) -> Config:
    config = load_config(config_path, ROOT)
    setup_logging(
        config.log_level, config.log_dir, config.log_file,
        max_bytes=config.log_max_bytes, backup_count=config.log_backup_count,
    )
    return config


def run_backtest(config_path: Path | None) -> int:
    """Backtest every configured symbol on recent closed klines."""
    config = _load(config_path)
    try:
        registry = build_registry(config)
        strategy = registry.get(config.strategy_name)
        build_core(config, strategy)
    except InvalidParameters as e:
        logger.error("Invalid strategy parameters: %s", e)
        return 1
    if not config.binance_api_key or not config.binance_api_secret:
        logger.error("Backtest needs API keys to fetch klines. Set BINANCE_API_KEY and BINANCE_API_SECRET in .env")
        return 1
    client = BinanceFuturesClient(config.binance_api_key, config.binance_api_secret, testnet=config.use_testnet)

    for symbol in config.symbols:
        engine = BacktestEngine(
            strategy=strategy,
            risk_manager=build_risk_manager(config, client.get_symbol_info(symbol)),
            initial_capital=config.backtest_initial_capital,
            slippage_bps=config.slippage_bps,
            fee_bps=config.fee_bps,
            history_caps=config.history_caps,
        )
        fast_df = client.get_klines(symbol, strategy.fast_timeframe, limit=config.backtest_limit)
        slow_df = client.get_klines(symbol, strategy.slow_timeframe, limit=config.backtest_limit)
        result = engine.run(fast_df, slow_df, symbol=symbol)
        m = result.metrics
        print(f"\n--- Backtest Results: {symbol} ---")
        print(f"Signals: {len(result.signals)}")
        print(f"Total trades: {m.total_trades} (wins: {m.winning_trades}, losses: {m.losing_trades})")
        print(f"Long/short: {m.long_trades}/{m.short_trades}")
        print(f"Total return: {m.total_return_pct:.2f}%")
        print(f"Sharpe ratio: {m.sharpe_ratio:.2f}")
        print(f"Sortino ratio: {m.sortino_ratio:.2f}")
        print(f"Max drawdown: {m.max_drawdown_pct:.2f}%")
        print(f"Win rate: {m.win_rate*100:.1f}%")
        print(f"Profit factor: {m.profit_factor:.2f}")
        print(f"Expectancy: {m.expectancy:.2f} USD/trade ({m.avg_r_multiple:.2f}R)")
        print(f"Exits: {m.exit_reasons}")
    return 0


async def _warm_up(core: SignalCore, client: BinanceFuturesClient, symbols, limit: int) -> None:
    for symbol in symbols:
        for tf in (core.slow_timeframe, core.fast_timeframe):
            df = await asyncio.to_thread(client.get_klines, symbol, tf, limit)
            added = core.seed(symbol, tf, bars_from_frame(df, symbol))
            logger.info("Warm-up %s %s: %d bars", symbol, tf, added)
        if not core.ready(symbol):
            logger.warning("%s: not enough history yet, signals start once the tunnels are defined", symbol)


async def _adopt_positions(
    strategy: VegasTunnelStrategy,
    client: BinanceFuturesClient,
    executor: TradeExecutor,
    symbols,
) -> None:
    for symbol in symbols:
        pos = await asyncio.to_thread(client.get_open_position, symbol)
        if pos is None:
            continue
        stop, target = strategy.default_levels(pos.entry_price, pos.is_long)
        executor.adopt(pos, stop, target)


async def _live(config: Config, core: SignalCore) -> int:
    strategy = core.strategy
    client = BinanceFuturesClient(config.binance_api_key, config.binance_api_secret, testnet=config.use_testnet)
    for symbol in config.symbols:
        await asyncio.to_thread(client.set_leverage, symbol, config.leverage)

    notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id)
    executor = TradeExecutor(
        client,
        build_risk_manager(config),
        protective_delay_s=config.protective_order_delay_s,
        notifier=notifier,
    )
    trader = LiveTrader(core, executor, client, notifier=notifier)

    await _warm_up(core, client, config.symbols, config.warmup_bars)
    await _adopt_positions(strategy, client, executor, config.symbols)

    sockets = BinanceKlineSockets(config.binance_api_key, config.binance_api_secret, testnet=config.use_testnet)
    await sockets.open()
    stream = KlineStream(core, config.symbols, sockets, on_fast_bar=trader.on_fast_bar)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    await asyncio.to_thread(
        notifier.notify,
        f"Tunnel bot starting | {','.join(config.symbols)} | "
        f"{strategy.fast_tag}/{strategy.slow_tag} | testnet={config.use_testnet} | leverage={config.leverage}x",
    )
    stream.start()
    status = asyncio.create_task(trader.run_status(config.symbols, STATUS_INTERVAL_S, stop))
    try:
        await stop.wait()
        logger.info("Shutdown requested")
    finally:
        await stream.stop()
        await status
        await executor.shutdown()
        await sockets.close()
        await asyncio.to_thread(notifier.notify, "Tunnel bot stopped.")
        notifier.close()
    return 0


def run_live(config_path: Path | None) -> int:
    """Run the streaming live trader until SIGINT/SIGTERM."""
    config = _load(config_path)
    if not config.binance_api_key or not config.binance_api_secret:
        logger.error("Missing BINANCE_API_KEY or BINANCE_API_SECRET in .env")
        return 1
    try:
        registry = build_registry(config)
        core = build_core(config, registry.get(config.strategy_name))
    except InvalidParameters as e:
        logger.error("Invalid strategy parameters: %s", e)
        return 1
    try:
        return asyncio.run(_live(config, core))
    except KeyboardInterrupt:
        logger.info("Shutdown by user")
        return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Vegas tunnel bot CLI")
    parser.add_argument("mode", choices=["backtest", "live"], help="Run backtest or live")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    args = parser.parse_args()
    if args.mode == "backtest":
        return run_backtest(args.config)
    return run_live(args.config)


if __name__ == "__main__":
    sys.exit(main())
