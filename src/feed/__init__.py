"""Live feed transport and session management."""

from .session import FeedSessionManager, TransportFactory, VenueSession  # noqa: F401
from .transport import AiohttpTransport, Transport  # noqa: F401

__all__ = [
    "AiohttpTransport",
    "FeedSessionManager",
    "Transport",
    "TransportFactory",
    "VenueSession",
]
