"""Flight module - Single-flight deduplication of origin calls."""

from roadrender_core.flight.coordinator import (
    SingleFlightCoordinator,
    FlightHandle,
    FlightStats,
    RevalidationJob,
)

__all__ = [
    "SingleFlightCoordinator",
    "FlightHandle",
    "FlightStats",
    "RevalidationJob",
]
