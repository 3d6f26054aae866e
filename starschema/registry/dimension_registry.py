"""
Dimension Registry

Holds the rows of one dimension, assigns surrogate keys and maintains the
version history of each business key.

SCD Type 2 dimensions close the current version and open a new one when
attributes change; other dimensions overwrite attributes in place and keep
their surrogate key. For every business key the versions are ordered by
effective_start, contiguous, non-overlapping, and exactly the last one is
open-ended and current.

Writers for one business key are serialized with a per-key lock; the
version history of a key is swapped as a whole, so readers always observe
either the state before or after a transition.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from itertools import count
from threading import Lock
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import structlog
from pydantic import ValidationError

from starschema.exceptions import (
    InvalidAttributeError,
    NoMatchingVersionError,
    UnresolvedReferenceError,
    VersionConflictError,
)
from starschema.registry.locks import KeyedLocks
from starschema.schema.dimensions import DimensionAttributes, DimensionSpec, coerce_date
from starschema.transformation.time_dimension import utcnow

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DimensionVersion:
    """One row of a dimension table"""
    surrogate_key: int
    business_key: Any
    attributes: DimensionAttributes
    effective_start: date
    effective_end: Optional[date] = None  # None = open
    is_current: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_open(self) -> bool:
        return self.effective_end is None

    def contains(self, as_of: date) -> bool:
        """Effective interval is [effective_start, effective_end)"""
        if as_of < self.effective_start:
            return False
        return self.effective_end is None or as_of < self.effective_end

    def to_record(self, spec: DimensionSpec) -> Dict[str, Any]:
        """Flatten into the dimension table's column layout"""
        record = {
            spec.surrogate_key: self.surrogate_key,
            spec.business_key: self.business_key,
        }
        record.update(self.attributes.model_dump())
        if spec.scd_tracked:
            record.update(
                effective_start_date=self.effective_start,
                effective_end_date=self.effective_end,
                is_current=self.is_current,
            )
        if spec.audited:
            record.update(
                created_timestamp=self.created_at,
                updated_timestamp=self.updated_at,
            )
        return record


class DimensionRegistry:
    """
    Registry for a single dimension.

    Example:
        customers = DimensionRegistry(CUSTOMER)
        sk = customers.register("C1", {"customer_name": "Ann"}, date(2024, 1, 1))
        customers.resolve("C1", date(2024, 3, 1)) == sk
    """

    def __init__(self, spec: DimensionSpec, first_key: int = 1):
        self.spec = spec
        self._versions: Dict[Any, Tuple[DimensionVersion, ...]] = {}
        self._by_surrogate: Dict[int, DimensionVersion] = {}
        self._sequence = count(first_key)
        self._sequence_lock = Lock()
        self._locks = KeyedLocks()

    @property
    def name(self) -> str:
        return self.spec.name

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    def parse_key(self, business_key: Any) -> Any:
        """Normalize a business key or raise InvalidAttributeError"""
        try:
            return self.spec.parse_key(business_key)
        except (TypeError, ValueError) as e:
            raise InvalidAttributeError(
                str(e), dimension=self.name, field=self.spec.business_key, value=business_key
            ) from e

    def _parse_date(self, value: Any, field_name: str) -> date:
        try:
            return coerce_date(value)
        except ValueError as e:
            raise InvalidAttributeError(
                "non-parseable date", dimension=self.name, field=field_name, value=value
            ) from e

    def _validate_attributes(
        self,
        business_key: Any,
        attributes: Union[DimensionAttributes, Mapping[str, Any], None],
    ) -> DimensionAttributes:
        model = self.spec.attributes_model
        if isinstance(attributes, model):
            return attributes

        raw = dict(attributes or {})
        if self.spec.build_attributes is not None:
            raw = dict(self.spec.build_attributes(business_key, raw))

        try:
            return model.model_validate(raw)
        except ValidationError as e:
            first = e.errors()[0]
            field_name = ".".join(str(part) for part in first.get("loc", ())) or None
            raise InvalidAttributeError(
                first.get("msg", "invalid attribute"),
                dimension=self.name,
                field=field_name,
                value=first.get("input") if field_name else None,
            ) from e

    def _next_key(self, business_key: Any) -> int:
        if self.spec.smart_key is not None:
            return self.spec.smart_key(business_key)
        with self._sequence_lock:
            return next(self._sequence)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def register(
        self,
        business_key: Any,
        attributes: Union[DimensionAttributes, Mapping[str, Any], None],
        as_of_date: Any = None,
    ) -> int:
        """
        Register a dimension member as of a date.

        - New business key: a fresh surrogate key and an open, current version
        - Unchanged attributes: the current surrogate key is returned
        - Changed attributes, SCD Type 2: the current version is closed at
          as_of_date and a new version with a new surrogate key is opened
        - Changed attributes, other dimensions: overwritten in place

        Args:
            business_key: Natural key of the member
            attributes: Descriptive attributes (mapping or attribute model)
            as_of_date: Effective date of these attributes (default: today)

        Returns:
            Surrogate key of the current version

        Raises:
            InvalidAttributeError: Missing or malformed attribute or key
            VersionConflictError: SCD change not dated after the current version
        """
        key = self.parse_key(business_key)
        as_of = date.today() if as_of_date is None else self._parse_date(as_of_date, "as_of_date")
        model = self._validate_attributes(key, attributes)

        with self._locks.hold(key):
            history = self._versions.get(key, ())

            if not history:
                version = DimensionVersion(
                    surrogate_key=self._next_key(key),
                    business_key=key,
                    attributes=model,
                    effective_start=as_of,
                )
                self._by_surrogate[version.surrogate_key] = version
                self._versions[key] = (version,)
                logger.info(
                    "Registered dimension member",
                    dimension=self.name,
                    business_key=str(key),
                    surrogate_key=version.surrogate_key,
                )
                return version.surrogate_key

            current = history[-1]
            if current.attributes == model:
                return current.surrogate_key

            now = utcnow()

            if not self.spec.scd_tracked:
                updated = replace(current, attributes=model, updated_at=now)
                self._by_surrogate[updated.surrogate_key] = updated
                self._versions[key] = history[:-1] + (updated,)
                logger.info(
                    "Updated dimension member in place",
                    dimension=self.name,
                    business_key=str(key),
                    surrogate_key=updated.surrogate_key,
                )
                return updated.surrogate_key

            if as_of <= current.effective_start:
                raise VersionConflictError(self.name, key, as_of, current.effective_start)

            closed = replace(current, effective_end=as_of, is_current=False, updated_at=now)
            opened = DimensionVersion(
                surrogate_key=self._next_key(key),
                business_key=key,
                attributes=model,
                effective_start=as_of,
                created_at=now,
                updated_at=now,
            )
            self._by_surrogate[closed.surrogate_key] = closed
            self._by_surrogate[opened.surrogate_key] = opened
            self._versions[key] = history[:-1] + (closed, opened)

            logger.info(
                "Opened new dimension version",
                dimension=self.name,
                business_key=str(key),
                previous_surrogate_key=closed.surrogate_key,
                surrogate_key=opened.surrogate_key,
                effective_start=as_of.isoformat(),
            )
            return opened.surrogate_key

    def register_row(self, row: Mapping[str, Any], as_of_date: Any = None) -> int:
        """Register from a flat row holding the business key column and attributes"""
        if self.spec.business_key not in row or row[self.spec.business_key] is None:
            raise InvalidAttributeError(
                "business key missing", dimension=self.name, field=self.spec.business_key
            )
        attributes = {k: v for k, v in row.items() if k != self.spec.business_key}
        return self.register(row[self.spec.business_key], attributes, as_of_date)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def resolve(self, business_key: Any, as_of_date: Any) -> int:
        """
        Surrogate key of the version effective at as_of_date.

        Non-versioned dimensions resolve their single row for any date.

        Raises:
            UnresolvedReferenceError: The business key was never registered
            NoMatchingVersionError: No version's interval contains the date
        """
        key = self.parse_key(business_key)
        history = self._versions.get(key)
        if not history:
            raise UnresolvedReferenceError(self.name, key)

        if not self.spec.scd_tracked:
            return history[-1].surrogate_key

        as_of = self._parse_date(as_of_date, "as_of_date")
        for version in reversed(history):
            if version.contains(as_of):
                return version.surrogate_key
        raise NoMatchingVersionError(self.name, key, as_of)

    def get(self, surrogate_key: int) -> Optional[DimensionVersion]:
        """Row by surrogate key"""
        return self._by_surrogate.get(surrogate_key)

    def current(self, business_key: Any) -> Optional[DimensionVersion]:
        """Current version of a business key"""
        history = self._versions.get(self.parse_key(business_key))
        return history[-1] if history else None

    def versions(self, business_key: Any) -> List[DimensionVersion]:
        """All versions of a business key ordered by effective_start"""
        return list(self._versions.get(self.parse_key(business_key), ()))

    def business_keys(self) -> List[Any]:
        return list(self._versions.keys())

    def rows(self) -> Iterator[DimensionVersion]:
        """All rows ordered by surrogate key"""
        for surrogate_key in sorted(self._by_surrogate):
            yield self._by_surrogate[surrogate_key]

    def __contains__(self, business_key: Any) -> bool:
        try:
            return self.parse_key(business_key) in self._versions
        except InvalidAttributeError:
            return False

    def __len__(self) -> int:
        return len(self._by_surrogate)
