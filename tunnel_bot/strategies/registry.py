"""
Named strategy registry. Owned by the composition root and passed to whatever
needs a lookup; there is no module-level instance.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from tunnel_bot.core.types import PriceBar, TradingSignal
from tunnel_bot.strategies.vegas_tunnel import VegasTunnelStrategy

logger = logging.getLogger("tunnel_bot.strategies.registry")


@dataclass
class StrategyResult:
    """Outcome of running one registered strategy for one symbol."""
    strategy_name: str
    symbol: str
    signal: Optional[TradingSignal] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class StrategyRegistry:
    """Thread-safe name -> strategy map. Parameters are validated on register."""

    def __init__(self):
        self._strategies: Dict[str, VegasTunnelStrategy] = {}
        self._lock = threading.RLock()

    def register(self, name: str, strategy: VegasTunnelStrategy) -> None:
        strategy.params.validate()
        with self._lock:
            if name in self._strategies:
                raise ValueError(f"strategy {name} already registered")
            self._strategies[name] = strategy
        logger.info("Strategy registered: %s", name)

    def unregister(self, name: str) -> None:
        with self._lock:
            if name not in self._strategies:
                raise KeyError(f"strategy {name} not found")
            del self._strategies[name]
        logger.info("Strategy unregistered: %s", name)

    def get(self, name: str) -> VegasTunnelStrategy:
        with self._lock:
            try:
                return self._strategies[name]
            except KeyError:
                raise KeyError(f"strategy {name} not found") from None

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._strategies)

    def info(self) -> Dict[str, dict]:
        with self._lock:
            return {name: s.info() for name, s in self._strategies.items()}

    def evaluate_all(
        self,
        symbol: str,
        fast_bars: Sequence[PriceBar],
        slow_bars: Sequence[PriceBar],
    ) -> List[StrategyResult]:
        """Run every registered strategy on the same windows. A failing strategy is reported, not raised."""
        with self._lock:
            items = list(self._strategies.items())
        results = []
        for name, strategy in items:
            try:
                signal = strategy.evaluate(symbol, fast_bars, slow_bars)
            except Exception as e:
                logger.exception("Strategy %s failed for %s: %s", name, symbol, e)
                results.append(StrategyResult(strategy_name=name, symbol=symbol, error=str(e)))
                continue
            if signal is not None:
                logger.info("Strategy %s signal for %s: %s at %s", name, symbol, signal.type.value, signal.price)
            results.append(StrategyResult(strategy_name=name, symbol=symbol, signal=signal))
        return results


def filter_by_confidence(results: Sequence[StrategyResult], min_confidence: float) -> List[StrategyResult]:
    """Results that carry a signal at or above min_confidence."""
    return [r for r in results if r.signal is not None and r.signal.confidence >= min_confidence]


def best_signal(results: Sequence[StrategyResult]) -> Optional[StrategyResult]:
    """Result with the highest-confidence signal, or None."""
    best: Optional[StrategyResult] = None
    for r in results:
        if r.signal is None:
            continue
        if best is None or r.signal.confidence > best.signal.confidence:
            best = r
    return best
