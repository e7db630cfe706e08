"""Common utilities shared across the orderbook terminal."""

from .bus import EventBus  # noqa: F401
from .config import Settings, build_settings, load_config  # noqa: F401
from .errors import (  # noqa: F401
    EmptyBookError,
    OrderValidationError,
    ParseError,
    TerminalError,
    TransportError,
)
from .logging import setup_logging  # noqa: F401
from .models import (  # noqa: F401
    CanonicalBook,
    ConnectionState,
    FeedUpdate,
    PriceLevel,
    Venue,
)

__all__ = [
    "CanonicalBook",
    "ConnectionState",
    "EmptyBookError",
    "EventBus",
    "FeedUpdate",
    "OrderValidationError",
    "ParseError",
    "PriceLevel",
    "Settings",
    "TerminalError",
    "TransportError",
    "Venue",
    "build_settings",
    "load_config",
    "setup_logging",
]
