"""Protocol adapters for the supported venues.

Each adapter knows its venue's subscription frames, keep-alive protocol and
book payload layout, and maps inbound frames to a canonical book.
"""

from __future__ import annotations

from common.models import Venue

from .base import RawMessage, VenueAdapter  # noqa: F401
from .bybit import BybitBookAdapter  # noqa: F401
from .deribit import DeribitBookAdapter  # noqa: F401
from .okx import OkxBookAdapter  # noqa: F401

ADAPTERS: dict[Venue, type[VenueAdapter]] = {
    Venue.OKX: OkxBookAdapter,
    Venue.BYBIT: BybitBookAdapter,
    Venue.DERIBIT: DeribitBookAdapter,
}


def get_adapter(venue: Venue | str) -> VenueAdapter:
    """Instantiate the adapter registered for ``venue``."""

    return ADAPTERS[Venue.parse(venue)]()


__all__ = [
    "ADAPTERS",
    "BybitBookAdapter",
    "DeribitBookAdapter",
    "OkxBookAdapter",
    "RawMessage",
    "VenueAdapter",
    "get_adapter",
]
