"""
Typed engine errors.

Each error carries the HTTP status the API layer maps it to; messages are
terse and meant to be shown to the acting user as-is.
"""


class EngineError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(EngineError):
    status_code = 400


class Forbidden(EngineError):
    status_code = 403


class NotFound(EngineError):
    status_code = 404


class InvalidTransition(EngineError):
    status_code = 409

    def __init__(self, trip_id: str, current: str, action: str):
        super().__init__(f"Cannot {action} trip {trip_id} while it is {current}")
        self.trip_id = trip_id
        self.current = current
        self.action = action


class ConcurrentAssignment(EngineError):
    status_code = 409


class TransactionConflict(EngineError):
    status_code = 409


class RoutingUnavailable(EngineError):
    """Raised by the routing client; callers degrade instead of failing."""

    status_code = 503
