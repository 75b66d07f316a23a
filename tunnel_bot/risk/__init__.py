"""Risk management: position sizing, daily loss, drawdown, confidence gate."""

from tunnel_bot.risk.manager import RiskManager, RiskResult

__all__ = ["RiskManager", "RiskResult"]
