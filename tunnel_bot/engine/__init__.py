"""Engine: signal core entry points and the live runner."""

from tunnel_bot.engine.core import SignalCore

__all__ = ["SignalCore"]
