"""
Referential Validator

Row-level validation of incoming sales transactions before acceptance.

Checks:
- Row shape (types, required columns, non-negative measures)
- Referential integrity: each dimension reference resolves to the version
  effective at the order timestamp
- Quantity consistency: shipped <= ordered, returned <= shipped
- Timestamp ordering: order <= payment <= ship <= delivery

All failures of a row are collected; nothing fails fast. The caller
decides whether to reject, quarantine or retry the row.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Type, Union

import structlog
from pydantic import ValidationError

from starschema.exceptions import (
    Disposition,
    InvalidAttributeError,
    QuantityInconsistencyError,
    StarSchemaError,
    TimestampOrderError,
)
from starschema.schema.facts import FACT_REFERENCES, PROCESS_TIMESTAMPS, SalesTransactionRow
from starschema.transformation.time_dimension import utcnow

if TYPE_CHECKING:
    from starschema.registry.dimension_registry import DimensionRegistry

logger = structlog.get_logger(__name__)


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"


@dataclass
class ValidationIssue:
    """Single failed check on a row"""
    field: str
    reason: str
    error_type: Type[StarSchemaError]

    @property
    def code(self) -> str:
        return self.error_type.__name__

    @property
    def disposition(self) -> Disposition:
        return self.error_type.disposition

    @property
    def retryable(self) -> bool:
        return self.error_type.retryable

    def as_pair(self) -> Tuple[str, str]:
        return (self.field, self.reason)

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "reason": self.reason, "error": self.code}


@dataclass
class ValidationResult:
    """Outcome of validating one fact row"""
    errors: List[ValidationIssue] = field(default_factory=list)
    row: Optional[SalesTransactionRow] = None
    resolved_keys: Dict[str, int] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=utcnow)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def status(self) -> ValidationStatus:
        return ValidationStatus.PASSED if self.ok else ValidationStatus.FAILED

    @property
    def retryable(self) -> bool:
        """Every failure may clear once dimensions backfill"""
        return bool(self.errors) and all(issue.retryable for issue in self.errors)

    @property
    def disposition(self) -> Optional[Disposition]:
        """Strictest disposition across the failures"""
        if self.ok:
            return None
        dispositions = {issue.disposition for issue in self.errors}
        for candidate in (Disposition.REJECT, Disposition.QUARANTINE, Disposition.RETRY):
            if candidate in dispositions:
                return candidate
        return Disposition.REJECT

    @property
    def error_types(self) -> List[Type[StarSchemaError]]:
        return [issue.error_type for issue in self.errors]

    def pairs(self) -> List[Tuple[str, str]]:
        """Failures as (field, reason) pairs"""
        return [issue.as_pair() for issue in self.errors]

    def has_error(self, error_type: Type[StarSchemaError]) -> bool:
        return any(issubclass(t, error_type) for t in self.error_types)


class ReferentialValidator:
    """
    Validates fact rows against the dimension registries.

    Example:
        validator = ReferentialValidator(warehouse.dimensions)
        result = validator.validate(row)
        if not result.ok:
            print(result.pairs())
    """

    def __init__(self, dimensions: Mapping[str, "DimensionRegistry"]):
        self.dimensions = dimensions

    def parse_row(
        self, row: Union[SalesTransactionRow, Mapping[str, Any]]
    ) -> Tuple[Optional[SalesTransactionRow], List[ValidationIssue]]:
        """Coerce a mapping into a SalesTransactionRow, collecting shape errors"""
        if isinstance(row, SalesTransactionRow):
            return row, []
        try:
            return SalesTransactionRow.model_validate(dict(row)), []
        except ValidationError as e:
            issues = []
            for error in e.errors():
                loc = ".".join(str(part) for part in error.get("loc", ())) or "row"
                issues.append(ValidationIssue(loc, error.get("msg", "invalid value"), InvalidAttributeError))
            return None, issues

    def _check_references(self, row: SalesTransactionRow, result: ValidationResult) -> None:
        for reference in FACT_REFERENCES:
            business_key = getattr(row, reference.field)
            if business_key is None:
                # ship_date absent: shipping has not occurred yet
                continue

            registry = self.dimensions.get(reference.dimension)
            if registry is None:
                result.errors.append(ValidationIssue(
                    reference.field,
                    f"no registry for dimension '{reference.dimension}'",
                    InvalidAttributeError,
                ))
                continue

            try:
                result.resolved_keys[reference.surrogate_key] = registry.resolve(
                    business_key, row.order_timestamp
                )
            except StarSchemaError as e:
                result.errors.append(ValidationIssue(reference.field, str(e), type(e)))

    def _check_quantities(self, row: SalesTransactionRow, result: ValidationResult) -> None:
        shipped = row.quantity_shipped
        returned = row.quantity_returned

        if shipped is not None and shipped > row.quantity_ordered:
            result.errors.append(ValidationIssue(
                "quantity_shipped",
                f"quantity_shipped {shipped} exceeds quantity_ordered {row.quantity_ordered}",
                QuantityInconsistencyError,
            ))
        if shipped is not None and returned is not None and returned > shipped:
            result.errors.append(ValidationIssue(
                "quantity_returned",
                f"quantity_returned {returned} exceeds quantity_shipped {shipped}",
                QuantityInconsistencyError,
            ))

    def _check_timestamps(self, row: SalesTransactionRow, result: ValidationResult) -> None:
        present = [
            (name, getattr(row, name))
            for name in PROCESS_TIMESTAMPS
            if getattr(row, name) is not None
        ]
        for (earlier_name, earlier), (later_name, later) in zip(present, present[1:]):
            if later < earlier:
                result.errors.append(ValidationIssue(
                    later_name,
                    f"{later_name} {later.isoformat()} precedes {earlier_name} {earlier.isoformat()}",
                    TimestampOrderError,
                ))

    def validate(self, row: Union[SalesTransactionRow, Mapping[str, Any]]) -> ValidationResult:
        """
        Run every check on a fact row.

        Args:
            row: SalesTransactionRow or a raw mapping

        Returns:
            ValidationResult with all failures and the resolved surrogate keys
        """
        parsed, issues = self.parse_row(row)
        result = ValidationResult(errors=issues, row=parsed)
        if parsed is None:
            logger.warning("Fact row malformed", errors=[i.to_dict() for i in issues])
            return result

        self._check_references(parsed, result)
        self._check_quantities(parsed, result)
        self._check_timestamps(parsed, result)

        if not result.ok:
            logger.warning(
                "Fact row failed validation",
                order_id=parsed.order_id,
                line_number=parsed.line_number,
                errors=[i.to_dict() for i in result.errors],
            )
        return result
