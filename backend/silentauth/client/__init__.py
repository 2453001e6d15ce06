"""Client side of the silent renewal protocol."""

from .renewal import (
    AuthRequestError,
    LoggedOutError,
    RenewalClient,
    RenewalState,
    RenewalUnavailableError,
    SingleFlight,
)

__all__ = [
    "AuthRequestError",
    "LoggedOutError",
    "RenewalClient",
    "RenewalState",
    "RenewalUnavailableError",
    "SingleFlight",
]
