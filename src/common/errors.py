"""Error taxonomy shared by the feed, venue adapters and simulator."""

from __future__ import annotations


class TerminalError(Exception):
    """Base class for all errors raised by the terminal core."""


class TransportError(TerminalError):
    """Connection to a venue failed or was dropped."""


class ParseError(TerminalError):
    """Inbound venue payload did not match the expected schema."""


class OrderValidationError(TerminalError, ValueError):
    """A simulated order was rejected before simulation ran."""


class EmptyBookError(TerminalError):
    """The book side an order needs to walk has no levels."""


__all__ = [
    "EmptyBookError",
    "OrderValidationError",
    "ParseError",
    "TerminalError",
    "TransportError",
]
