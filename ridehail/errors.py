"""
Typed failures raised by the dispatch engine.

Every error carries a stable `code` for clients, the HTTP status it maps to,
and whether retrying with different input (e.g. another driver) can succeed.
"""


class DispatchError(Exception):
    code = "dispatch_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__doc__ or self.code)

    @property
    def message(self) -> str:
        return str(self)


# ============================================================================
# Not found
# ============================================================================

class NotFound(DispatchError):
    code = "not_found"
    status_code = 404


class TripNotFound(NotFound):
    """Trip not found"""
    code = "trip_not_found"


class DriverNotFound(NotFound):
    """Driver not found"""
    code = "driver_not_found"


# ============================================================================
# Precondition failures
# ============================================================================

class PreconditionFailed(DispatchError):
    code = "precondition_failed"
    status_code = 409


class DriverNotAvailable(PreconditionFailed):
    """Driver is not online"""
    code = "driver_not_available"
    retryable = True


class DriverNotVerified(PreconditionFailed):
    """Driver is not verified"""
    code = "driver_not_verified"


class DriverSuspended(PreconditionFailed):
    """Driver is suspended"""
    code = "driver_suspended"


class DriverBusy(PreconditionFailed):
    """Driver is on an active trip"""
    code = "driver_busy"


class TripAlreadyAssigned(PreconditionFailed):
    """Trip has already been assigned to a driver"""
    code = "trip_already_assigned"


class TripNotAssignable(PreconditionFailed):
    """Trip is no longer waiting for a driver"""
    code = "trip_not_assignable"


class IllegalTransition(PreconditionFailed):
    """Trip status transition is not allowed"""
    code = "illegal_transition"


# ============================================================================
# Input / configuration
# ============================================================================

class InvalidInput(DispatchError):
    code = "invalid_input"
    status_code = 422


class InvalidParameter(InvalidInput):
    """Invalid parameter"""
    code = "invalid_parameter"


class ConfigurationMissing(DispatchError):
    code = "configuration_missing"
    status_code = 422


class FareConfigMissing(ConfigurationMissing):
    """No active fare entry for this booking and vehicle category"""
    code = "fare_config_missing"


# ============================================================================
# Infrastructure
# ============================================================================

class UpstreamTimeout(DispatchError):
    """Store call timed out"""
    code = "upstream_timeout"
    status_code = 504
    retryable = True


class LocationUnavailable(DispatchError):
    """No position fix could be obtained"""
    code = "location_unavailable"
    status_code = 503
    retryable = True
