"""
Kline subscriptions: one asyncio task per (symbol, timeframe).

Closed klines go to SignalCore.on_closed_bar. When a fast-timeframe bar is
appended the on_fast_bar callback runs inside the same task, so a symbol's
evaluation always sees its own fast bar. stop() is cooperative: tasks stop
reading new messages and any callback already running completes. A socket
that stays open but goes quiet for two bar lengths is reopened.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from binance import AsyncClient, BinanceSocketManager

from tunnel_bot.core.types import PriceBar
from tunnel_bot.data.series_store import AppendResult
from tunnel_bot.engine.core import SignalCore
from tunnel_bot.utils.timeframes import timeframe_delta

logger = logging.getLogger("tunnel_bot.stream.feed")

FastBarCallback = Callable[[str], Awaitable[Any]]
SocketFactory = Callable[[str, str], Any]


class BinanceKlineSockets:
    """Socket factory backed by python-binance futures kline streams."""

    def __init__(self, api_key: str = "", api_secret: str = "", testnet: bool = True):
        self._api_key = api_key
        self._api_secret = api_secret
        self._testnet = testnet
        self._client: Optional[AsyncClient] = None
        self._bsm: Optional[BinanceSocketManager] = None

    async def open(self) -> None:
        self._client = await AsyncClient.create(self._api_key, self._api_secret, testnet=self._testnet)
        self._bsm = BinanceSocketManager(self._client)

    def __call__(self, symbol: str, interval: str):
        if self._bsm is None:
            raise RuntimeError("BinanceKlineSockets.open() must be awaited first")
        return self._bsm.kline_futures_socket(symbol=symbol, interval=interval)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close_connection()
            self._client = None
            self._bsm = None


class KlineStream:
    """Feeds closed bars into the core and triggers fast-bar evaluation."""

    def __init__(
        self,
        core: SignalCore,
        symbols: Iterable[str],
        socket_factory: SocketFactory,
        on_fast_bar: Optional[FastBarCallback] = None,
        recv_timeout: float = 5.0,
        reconnect_delay: float = 5.0,
        stale_after_s: Optional[float] = None,
    ):
        self._core = core
        self._symbols = [s.upper() for s in symbols]
        self._socket_factory = socket_factory
        self._on_fast_bar = on_fast_bar
        self._recv_timeout = recv_timeout
        self._reconnect_delay = reconnect_delay
        self._stale_after_s = stale_after_s
        self._last_data: Dict[Tuple[str, str], float] = {}
        self._stop = asyncio.Event()
        self._tasks: Dict[Tuple[str, str], asyncio.Task] = {}

    @property
    def subscriptions(self) -> List[Tuple[str, str]]:
        return sorted(self._tasks)

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks.values())

    def last_data_age(self, symbol: str, timeframe: str) -> Optional[float]:
        """Seconds since the subscription last received a message, or None before the first."""
        last = self._last_data.get((symbol.upper(), timeframe))
        if last is None:
            return None
        return asyncio.get_running_loop().time() - last

    def _stale_limit(self, timeframe: str) -> float:
        if self._stale_after_s is not None:
            return self._stale_after_s
        return 2 * timeframe_delta(timeframe).total_seconds()

    def start(self) -> None:
        """Spawn one consumer task per symbol and timeframe."""
        self._stop.clear()
        for symbol in self._symbols:
            for tf in (self._core.slow_timeframe, self._core.fast_timeframe):
                key = (symbol, tf)
                if key in self._tasks and not self._tasks[key].done():
                    continue
                self._tasks[key] = asyncio.create_task(self._consume(symbol, tf), name=f"kline-{symbol}-{tf}")
                logger.info("Subscribed %s %s", symbol, tf)

    async def stop(self) -> None:
        """Stop consuming; wait for tasks to drain."""
        self._stop.set()
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        logger.info("Kline stream stopped (%d subscriptions)", len(self._tasks))

    async def wait_stopped(self) -> None:
        await self._stop.wait()

    async def _consume(self, symbol: str, timeframe: str) -> None:
        loop = asyncio.get_running_loop()
        key = (symbol, timeframe)
        stale_limit = self._stale_limit(timeframe)
        while not self._stop.is_set():
            try:
                async with self._socket_factory(symbol, timeframe) as stream:
                    self._last_data[key] = loop.time()
                    while not self._stop.is_set():
                        try:
                            msg = await asyncio.wait_for(stream.recv(), timeout=self._recv_timeout)
                        except asyncio.TimeoutError:
                            quiet = loop.time() - self._last_data[key]
                            if quiet > stale_limit:
                                logger.warning("No data for %s %s in %.0fs, reconnecting", symbol, timeframe, quiet)
                                break
                            continue
                        self._last_data[key] = loop.time()
                        await self.handle_message(symbol, timeframe, msg)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("%s %s stream error: %s", symbol, timeframe, e)
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self._reconnect_delay)
                except asyncio.TimeoutError:
                    pass

    async def handle_message(self, symbol: str, timeframe: str, msg: Any) -> Optional[AppendResult]:
        """Parse one socket message; returns the append result for kline payloads."""
        if not isinstance(msg, dict):
            logger.warning("%s %s unexpected message type %s", symbol, timeframe, type(msg).__name__)
            return None
        payload = msg.get("data", msg)
        if payload.get("e") == "error":
            logger.warning("%s %s stream error message: %s", symbol, timeframe, payload.get("m"))
            return None
        k = payload.get("k")
        if not k:
            return None
        try:
            bar = PriceBar.from_kline_payload(symbol, k)
        except (KeyError, ValueError, ArithmeticError) as e:
            logger.warning("%s %s malformed kline: %s", symbol, timeframe, e)
            return None
        if not bar.closed:
            return AppendResult.IGNORED

        result = self._core.on_closed_bar(symbol, timeframe, bar)
        if result == AppendResult.APPENDED and timeframe == self._core.fast_timeframe and self._on_fast_bar:
            try:
                await self._on_fast_bar(symbol)
            except Exception as e:
                logger.exception("%s fast-bar handler failed: %s", symbol, e)
        return result
