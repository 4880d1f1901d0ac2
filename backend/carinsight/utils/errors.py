# /carinsight/utils/errors.py

# Error taxonomy shared by every component. None of these is allowed to end a
# conversation session: callers catch them at the component boundary and
# apply the local fallback.


class CarInsightError(Exception):
    """Base class for all domain errors."""


class UserInputError(CarInsightError):
    """A customer-supplied field could not be parsed. Handled with a reprompt."""

    def __init__(self, field: str, value: object, message: str | None = None):
        self.field = field
        self.value = value
        super().__init__(message or f"Could not parse {field!r} from {value!r}")


class ExternalServiceError(CarInsightError):
    """Classifier, embedding provider, lead sink or rule source is unreachable."""

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service}: {message}")


class CircuitOpenError(ExternalServiceError):
    """The circuit breaker is blocking calls to a failing provider."""


class DataIntegrityError(CarInsightError):
    """A recommendation references a vehicle that is missing or unavailable."""

    def __init__(self, vehicle_id: str, reason: str):
        self.vehicle_id = vehicle_id
        self.reason = reason
        super().__init__(f"Vehicle {vehicle_id}: {reason}")


class ConfigurationError(CarInsightError):
    """A required credential or setting for an optional integration is missing."""


class DimensionMismatchError(CarInsightError, ValueError):
    """Two vectors of different lengths were compared."""

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"Vector dimensions differ: {left} != {right}")


class InvalidTransitionError(CarInsightError):
    """A stage change not allowed by the transition table was requested."""


class RuleRefreshError(CarInsightError):
    """An eligibility rule refresh was rejected; the previous rule set is kept."""
