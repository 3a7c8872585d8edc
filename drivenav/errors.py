"""Error types shared by the navigation components."""

from enum import Enum


class RoutingError(Enum):
    """Recoverable routing failure, passed to callbacks as a value"""
    NO_ROUTE_FOUND = "no_route_found"
    INVALID_PARAMETER = "invalid_parameter"
    NETWORK_ERROR = "network_error"
    TIMED_OUT = "timed_out"
    SERVER_ERROR = "server_error"
    PARSING_ERROR = "parsing_error"
    ROUTE_HANDLE_MISSING = "route_handle_missing"


class EngineInitializationError(RuntimeError):
    """A navigation collaborator could not be constructed. Not retried."""
