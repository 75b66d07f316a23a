"""
Error taxonomy. Ingestion errors are handled inside the series store;
parameter errors stop strategy activation.
"""


class TunnelBotError(Exception):
    """Base class for errors raised by tunnel_bot."""


class InsufficientHistory(TunnelBotError):
    """Not enough bars for the configured periods (normal during warm-up)."""


class InvalidBar(TunnelBotError, ValueError):
    """Bar breaks low <= open/close <= high or has negative values."""


class OutOfOrderBar(TunnelBotError, ValueError):
    """Bar open time is not after the last appended bar."""


class InvalidParameters(TunnelBotError, ValueError):
    """Strategy configuration violates period ordering or ratio bounds."""
