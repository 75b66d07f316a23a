"""
Risk manager: position sizing, daily loss cap, max drawdown, risk-reward and
confidence gates. Position size = risk_usd / stop_distance, so hitting the
stop loses exactly risk_usd before fees.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from tunnel_bot.core.types import TradingSignal, to_decimal
from tunnel_bot.utils.exchange_filters import parse_symbol_filters, round_quantity

logger = logging.getLogger("tunnel_bot.risk")


@dataclass
class RiskResult:
    """Result of risk check: allowed or rejected + reason."""
    allowed: bool
    quantity: Decimal = Decimal(0)
    reason: str = ""


class RiskManager:
    """
    Enforces: risk per trade (dollar loss at stop), daily loss cap,
    max drawdown, min notional, capital cap, min risk-reward, min confidence.
    """

    def __init__(
        self,
        risk_per_trade_usd: Any,
        max_daily_loss_usd: Any,
        max_drawdown_pct: Any,
        min_notional: Any,
        max_position_pct_capital: Any,
        min_risk_reward: Any,
        min_confidence: float = 0.0,
        symbol_info: Optional[dict] = None,
    ):
        self.risk_per_trade_usd = to_decimal(risk_per_trade_usd)
        self.max_daily_loss_usd = to_decimal(max_daily_loss_usd)
        self.max_drawdown_pct = to_decimal(max_drawdown_pct)
        self.min_notional = to_decimal(min_notional)
        self.max_position_pct_capital = to_decimal(max_position_pct_capital)
        self.min_risk_reward = to_decimal(min_risk_reward)
        self.min_confidence = float(min_confidence)
        self._min_qty, self._lot_step, self._price_tick = parse_symbol_filters(symbol_info)
        self._daily_loss = Decimal(0)
        self._daily_reset_date: Optional[date] = None
        self._peak_equity = Decimal(0)
        self._current_equity = Decimal(0)
        self._consecutive_losses = 0

    @property
    def consecutive_losses(self) -> int:
        return self._consecutive_losses

    def set_equity(self, equity: Any) -> None:
        """Update current equity for drawdown check."""
        equity = to_decimal(equity)
        self._current_equity = equity
        if equity > self._peak_equity:
            self._peak_equity = equity

    def set_daily_loss(self, loss_usd: Any, as_of_date: Optional[date] = None) -> None:
        """Set daily realized loss (e.g. from exchange). Reset if date changed."""
        as_of_date = as_of_date or datetime.now(timezone.utc).date()
        if self._daily_reset_date != as_of_date:
            self._daily_reset_date = as_of_date
        self._daily_loss = max(Decimal(0), to_decimal(loss_usd))

    def record_trade_pnl(self, pnl: Any) -> None:
        """Record closed trade PnL for daily loss and consecutive loss count."""
        pnl = to_decimal(pnl)
        if pnl < 0:
            self._daily_loss += -pnl
            self._consecutive_losses += 1
        else:
            self._consecutive_losses = 0

    def check_daily_loss(self) -> bool:
        """Return False if daily loss cap reached."""
        if self._daily_loss >= self.max_daily_loss_usd:
            logger.warning("Daily loss cap reached: %s >= %s", self._daily_loss, self.max_daily_loss_usd)
            return False
        return True

    def check_drawdown(self) -> bool:
        """Return False if max drawdown exceeded."""
        if self._peak_equity <= 0:
            return True
        dd_pct = (self._peak_equity - self._current_equity) / self._peak_equity * 100
        if dd_pct >= self.max_drawdown_pct:
            logger.warning("Max drawdown exceeded: %.2f%% >= %s%%", dd_pct, self.max_drawdown_pct)
            return False
        return True

    @staticmethod
    def risk_reward_ratio(entry: Decimal, stop: Decimal, target: Decimal) -> Decimal:
        """Reward / risk; zero when the stop distance is zero."""
        risk = abs(entry - stop)
        if risk <= 0:
            return Decimal(0)
        return abs(target - entry) / risk

    def validate_signal(self, signal: TradingSignal, equity: Optional[Any] = None) -> RiskResult:
        """Validate an entry signal and compute the allowed quantity."""
        if not signal.is_entry:
            return RiskResult(allowed=False, reason=f"not an entry signal: {signal.type.value}")
        if signal.stop_loss is None or signal.take_profit is None:
            return RiskResult(allowed=False, reason="missing stop or target")
        if signal.confidence < self.min_confidence:
            return RiskResult(allowed=False, reason=f"confidence {signal.confidence:.2f} < {self.min_confidence:.2f}")

        entry = signal.price
        dist = abs(entry - signal.stop_loss)
        if dist <= 0:
            return RiskResult(allowed=False, reason="zero stop distance")

        rr = self.risk_reward_ratio(entry, signal.stop_loss, signal.take_profit)
        if rr < self.min_risk_reward:
            return RiskResult(allowed=False, reason=f"risk_reward {rr:.2f} < {self.min_risk_reward}")

        qty = round_quantity(self.risk_per_trade_usd / dist, self._min_qty, self._lot_step)
        if qty <= 0:
            return RiskResult(allowed=False, reason="qty rounded to 0")

        notional = qty * entry
        if notional < self.min_notional:
            return RiskResult(allowed=False, reason=f"notional {notional:.2f} < min {self.min_notional}")

        if equity is not None:
            equity = to_decimal(equity)
            if equity > 0:
                max_notional = equity * self.max_position_pct_capital / 100
                if notional > max_notional:
                    qty = round_quantity(max_notional / entry, self._min_qty, self._lot_step)
                    if qty < self._min_qty:
                        return RiskResult(allowed=False, reason="position would exceed capital limit")

        if not self.check_daily_loss():
            return RiskResult(allowed=False, reason="daily loss cap")
        if equity is not None and not self.check_drawdown():
            return RiskResult(allowed=False, reason="max drawdown")

        return RiskResult(allowed=True, quantity=qty)

    def update_symbol_info(self, symbol_info: Optional[dict]) -> None:
        """Update lot/price filters when symbol or exchange info changes."""
        self._min_qty, self._lot_step, self._price_tick = parse_symbol_filters(symbol_info)
