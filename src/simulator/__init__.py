"""Order impact simulation and delayed execution scheduling."""

from .impact import (  # noqa: F401
    ImpactResult,
    OrderSide,
    OrderType,
    SimulatedOrder,
    locate_in_book,
    reference_price,
    simulate_impact,
)
from .scheduler import OrderSimulator, SimulationReport  # noqa: F401

__all__ = [
    "ImpactResult",
    "OrderSide",
    "OrderSimulator",
    "OrderType",
    "SimulatedOrder",
    "SimulationReport",
    "locate_in_book",
    "reference_price",
    "simulate_impact",
]
