"""
Custom Application Exceptions
Typed business errors raised by the yard services
"""
from typing import Any, Dict, Optional


class YardException(Exception):
    """Base exception for the pipe yard application"""

    error_code = "yard_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self._details = details

    def details(self) -> Dict[str, Any]:
        """Structured data for callers to render a precise message"""
        return dict(self._details)


class NotFoundError(YardException):
    """Raised when a referenced rack, load, request or inventory item does not exist"""

    error_code = "not_found"

    def __init__(self, entity: str, identifier: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{entity} {identifier} not found",
            entity=entity,
            identifier=identifier,
        )
        self.entity = entity
        self.identifier = identifier


class AlreadyCompletedError(YardException):
    """Raised when a completion is repeated after it already succeeded"""

    error_code = "already_completed"

    def __init__(self, load_id: Any, status: str):
        super().__init__(
            f"Load {load_id} is already {status}",
            load_id=load_id,
            status=status,
        )
        self.load_id = load_id
        self.status = status


class CrossTenantViolationError(YardException):
    """Raised when the claimed company -> request -> load chain does not hold"""

    error_code = "cross_tenant_violation"


class ManifestMismatchError(YardException):
    """Raised when a declared total and an entered actual quantity disagree"""

    error_code = "manifest_mismatch"

    def __init__(self, declared: int, actual: int, message: Optional[str] = None):
        super().__init__(
            message or (
                f"Quantity mismatch: manifest declares {declared} joints "
                f"but {actual} were entered"
            ),
            declared=declared,
            actual=actual,
        )
        self.declared = declared
        self.actual = actual


class CapacityExceededError(YardException):
    """Raised when a rack (or set of racks) cannot take the requested quantity"""

    error_code = "capacity_exceeded"

    def __init__(self, requested, available, rack_id: Optional[str] = None,
                 message: Optional[str] = None, dimension: str = "joints"):
        where = f" on rack {rack_id}" if rack_id else ""
        unit = "joints" if dimension == "joints" else "m"
        super().__init__(
            message or f"Requested {requested} {unit}{where} but only {available} {unit} available",
            requested=requested,
            available=available,
            rack_id=rack_id,
            dimension=dimension,
        )
        self.requested = requested
        self.available = available
        self.rack_id = rack_id
        self.dimension = dimension


class InvalidAdjustmentError(YardException):
    """Raised when a manual rack adjustment fails validation"""

    error_code = "invalid_adjustment"


class InvalidStateTransitionError(YardException):
    """Raised when a request or load is not in a state that allows the operation"""

    error_code = "invalid_state_transition"

    def __init__(self, entity: str, identifier: Any, current: str, target: str,
                 message: Optional[str] = None):
        super().__init__(
            message or f"{entity} {identifier} cannot move from {current} to {target}",
            entity=entity,
            identifier=identifier,
            current=current,
            target=target,
        )
        self.current = current
        self.target = target


class InvalidAllocationError(YardException):
    """Raised when the allocation guard is called with a meaningless delta"""

    error_code = "invalid_allocation"


class InsufficientPermissionsError(YardException):
    """Raised when user lacks required permissions"""

    error_code = "insufficient_permissions"


class ValidationError(YardException):
    """Raised when data validation fails"""

    error_code = "validation_error"


class IntegrationError(YardException):
    """Raised when external system integration fails"""

    error_code = "integration_error"
