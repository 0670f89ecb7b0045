"""
Layered error taxonomy for the sync pipeline.

Error kinds, innermost first:
- ValidationError (FetchError, MappingError): malformed upstream data or transport failure
- NotFoundError: expected absence on a read path
- PersistenceError: raised by repositories
- CacheError: raised by the cache store
- DomainError: business-rule violations inside workflows
- ServiceError: the only kind that crosses the pipeline boundary

Translation is one-directional. Each inner kind has exactly one translator
into the next kind up, and every translator keeps the original error as
``cause``:

    PersistenceError ──┐
    CacheError ────────┼─> DomainError ─> ServiceError
    NotFoundError ─────┘                      ^
    ValidationError ──────────────────────────┘

Callers at the boundary use ``to_service_error`` which routes any exception
through the chain.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class PersistenceErrorCode(str, Enum):
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    OPERATION_ERROR = "OPERATION_ERROR"


class CacheErrorCode(str, Enum):
    CONNECTION_ERROR = "CONNECTION_ERROR"
    OPERATION_ERROR = "OPERATION_ERROR"
    SERIALIZATION_ERROR = "SERIALIZATION_ERROR"


class DomainErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    CACHE_ERROR = "CACHE_ERROR"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"


class ServiceErrorCode(str, Enum):
    INTEGRATION_ERROR = "INTEGRATION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    CACHE_ERROR = "CACHE_ERROR"
    OPERATION_ERROR = "OPERATION_ERROR"


class PipelineError(Exception):
    """
    Base class for every pipeline error.

    Attributes:
        code: Machine-readable error code (an enum member or string)
        message: Human-readable message
        cause: The error this one wraps, if any
        details: Optional structured context for diagnostics
        timestamp: When the error was raised (UTC)
    """

    default_code: Any = "PIPELINE_ERROR"

    def __init__(
        self,
        message: str,
        code: Any = None,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.cause = cause
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        if cause is not None:
            self.__cause__ = cause

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        code = self.code.value if isinstance(self.code, Enum) else self.code
        data: Dict[str, Any] = {
            "kind": self.kind,
            "code": code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.details:
            data["details"] = self.details
        if self.cause is not None:
            if isinstance(self.cause, PipelineError):
                data["cause"] = self.cause.to_dict()
            else:
                data["cause"] = {"kind": type(self.cause).__name__, "message": str(self.cause)}
        return data

    def __repr__(self) -> str:
        return f"{self.kind}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# Inner kinds
# =============================================================================

class ValidationError(PipelineError):
    """Input that cannot be accepted (malformed payload, missing scope id)."""

    default_code = "VALIDATION_ERROR"


class FetchError(ValidationError):
    """The upstream API could not be reached or returned an unusable response."""

    default_code = "FETCH_ERROR"


class MappingError(ValidationError):
    """A validated payload violates a domain invariant (id out of range, bad timestamp)."""

    default_code = "MAPPING_ERROR"


class NotFoundError(PipelineError):
    """An expected record or collection is absent."""

    default_code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Any, cause: Optional[BaseException] = None):
        super().__init__(
            f"{resource} not found: {identifier}",
            cause=cause,
            details={"resource": resource, "identifier": identifier},
        )
        self.resource = resource
        self.identifier = identifier


class PersistenceError(PipelineError):
    """A repository operation failed; carries the operation name."""

    default_code = PersistenceErrorCode.OPERATION_ERROR

    def __init__(
        self,
        message: str,
        operation: str,
        code: PersistenceErrorCode = PersistenceErrorCode.OPERATION_ERROR,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        details.setdefault("operation", operation)
        super().__init__(message, code=code, cause=cause, details=details)
        self.operation = operation


class CacheError(PipelineError):
    """A cache backend operation failed."""

    default_code = CacheErrorCode.OPERATION_ERROR


class DomainError(PipelineError):
    """A business rule was violated inside a workflow."""

    default_code = DomainErrorCode.BUSINESS_RULE_VIOLATION


class ServiceError(PipelineError):
    """The single error kind returned across the pipeline boundary."""

    default_code = ServiceErrorCode.OPERATION_ERROR

    _HTTP_STATUS = {
        ServiceErrorCode.VALIDATION_ERROR: 400,
        ServiceErrorCode.NOT_FOUND: 404,
    }

    @property
    def http_status(self) -> int:
        """Conventional response status for the HTTP layer."""
        return self._HTTP_STATUS.get(self.code, 500)

    @property
    def root_cause(self) -> BaseException:
        """Innermost wrapped error (self when nothing is wrapped)."""
        current: BaseException = self
        while isinstance(current, PipelineError) and current.cause is not None:
            current = current.cause
        return current


# =============================================================================
# Translators
# =============================================================================

def persistence_to_domain(error: PersistenceError) -> DomainError:
    return DomainError(
        f"Persistence failure during {error.operation}: {error.message}",
        code=DomainErrorCode.PERSISTENCE_ERROR,
        cause=error,
    )


def cache_to_domain(error: CacheError) -> DomainError:
    return DomainError(
        f"Cache failure: {error.message}",
        code=DomainErrorCode.CACHE_ERROR,
        cause=error,
    )


def not_found_to_domain(error: NotFoundError) -> DomainError:
    return DomainError(error.message, code=DomainErrorCode.NOT_FOUND, cause=error)


_DOMAIN_TO_SERVICE = {
    DomainErrorCode.VALIDATION_ERROR: ServiceErrorCode.VALIDATION_ERROR,
    DomainErrorCode.NOT_FOUND: ServiceErrorCode.NOT_FOUND,
    DomainErrorCode.PERSISTENCE_ERROR: ServiceErrorCode.PERSISTENCE_ERROR,
    DomainErrorCode.CACHE_ERROR: ServiceErrorCode.CACHE_ERROR,
    DomainErrorCode.BUSINESS_RULE_VIOLATION: ServiceErrorCode.OPERATION_ERROR,
}


def domain_to_service(error: DomainError) -> ServiceError:
    code = _DOMAIN_TO_SERVICE.get(error.code, ServiceErrorCode.OPERATION_ERROR)
    return ServiceError(error.message, code=code, cause=error)


def validation_to_service(error: ValidationError) -> ServiceError:
    """Upstream failures are integration errors; anything else is caller input."""
    if isinstance(error, (FetchError, MappingError)):
        code = ServiceErrorCode.INTEGRATION_ERROR
    else:
        code = ServiceErrorCode.VALIDATION_ERROR
    return ServiceError(error.message, code=code, cause=error)


def to_service_error(error: BaseException) -> ServiceError:
    """
    Translate any exception into a ServiceError by walking the lattice.

    Unknown exceptions become OPERATION_ERROR with the exception as cause.
    """
    if isinstance(error, ServiceError):
        return error
    if isinstance(error, DomainError):
        return domain_to_service(error)
    if isinstance(error, PersistenceError):
        return domain_to_service(persistence_to_domain(error))
    if isinstance(error, CacheError):
        return domain_to_service(cache_to_domain(error))
    if isinstance(error, NotFoundError):
        return domain_to_service(not_found_to_domain(error))
    if isinstance(error, ValidationError):
        return validation_to_service(error)
    return ServiceError(
        f"Unexpected error: {error}",
        code=ServiceErrorCode.OPERATION_ERROR,
        cause=error,
    )
