"""
Schema Contract Exceptions

Error taxonomy shared by the dimension registry, fact registry, validator
and loaders. Each error carries the row disposition a loader applies when
it sees it, and whether the row may succeed on a later attempt.
"""

from datetime import date
from enum import Enum
from typing import Any, Optional


class Disposition(str, Enum):
    """What a loader does with a row that raised the error"""
    REJECT = "reject"
    QUARANTINE = "quarantine"
    RETRY = "retry"


class StarSchemaError(Exception):
    """Base exception for all schema contract errors."""

    disposition: Disposition = Disposition.REJECT
    retryable: bool = False


class InvalidAttributeError(StarSchemaError):
    """A required attribute is missing or an attribute value is malformed."""

    def __init__(
        self,
        message: str,
        dimension: Optional[str] = None,
        field: Optional[str] = None,
        value: Any = None,
    ):
        self.dimension = dimension
        self.field = field
        self.value = value

        parts = [message]
        if dimension:
            parts.append(f"Dimension: {dimension}")
        if field:
            parts.append(f"Field: {field}")
        if value is not None:
            parts.append(f"Value: {value!r}")

        super().__init__(" | ".join(parts))


class VersionConflictError(StarSchemaError):
    """A new version would not start after the current version."""

    def __init__(self, dimension: str, business_key: Any, as_of: date, current_start: date):
        self.dimension = dimension
        self.business_key = business_key
        self.as_of = as_of
        self.current_start = current_start
        super().__init__(
            f"{dimension} '{business_key}': change dated {as_of.isoformat()} does not "
            f"follow current version starting {current_start.isoformat()}"
        )


class NoMatchingVersionError(StarSchemaError):
    """The business key is known but no version is effective at the date."""

    disposition = Disposition.QUARANTINE
    retryable = True

    def __init__(self, dimension: str, business_key: Any, as_of: date):
        self.dimension = dimension
        self.business_key = business_key
        self.as_of = as_of
        super().__init__(
            f"{dimension} '{business_key}' has no version effective at {as_of.isoformat()}"
        )


class UnresolvedReferenceError(StarSchemaError):
    """The referenced business key has not been loaded yet."""

    disposition = Disposition.RETRY
    retryable = True

    def __init__(self, dimension: str, business_key: Any):
        self.dimension = dimension
        self.business_key = business_key
        super().__init__(f"{dimension} '{business_key}' is not registered")


class DuplicateFactError(StarSchemaError):
    """A fact with the same order line and transaction type already exists."""

    def __init__(self, order_id: str, line_number: int, transaction_type: str):
        self.order_id = order_id
        self.line_number = line_number
        self.transaction_type = transaction_type
        super().__init__(
            f"Fact already exists for order {order_id} line {line_number} ({transaction_type})"
        )


class QuantityInconsistencyError(StarSchemaError):
    """Shipped or returned quantities exceed what the row allows."""

    disposition = Disposition.QUARANTINE


class TimestampOrderError(StarSchemaError):
    """Business process timestamps are not in order/payment/ship/delivery order."""

    disposition = Disposition.QUARANTINE


class FactValidationError(StarSchemaError):
    """Raised when a fact row is offered for acceptance but fails validation."""

    def __init__(self, result: "ValidationResult"):  # noqa: F821
        self.result = result
        self.disposition = result.disposition
        self.retryable = result.retryable
        reasons = "; ".join(f"{issue.field}: {issue.reason}" for issue in result.errors)
        super().__init__(f"Fact row failed validation: {reasons}")


class BatchFormatError(StarSchemaError):
    """The batch as a whole cannot be read; fatal to the batch."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        if source:
            message = f"{message} (source: {source})"
        super().__init__(message)
