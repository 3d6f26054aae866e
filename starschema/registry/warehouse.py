"""
Sales Warehouse

Load-time facade over the dimension registries, the fact registry, the
referential validator and the measure calculator. Dimension rows must be
registered before the facts that reference them are accepted.
"""

from typing import Any, Dict, Mapping, Optional, Union

import structlog

from starschema.exceptions import FactValidationError
from starschema.measures.calculator import compute
from starschema.quality.validators import ReferentialValidator, ValidationResult
from starschema.registry.dimension_registry import DimensionRegistry
from starschema.registry.fact_registry import FactRegistry
from starschema.schema.dimensions import DIMENSIONS, DimensionSpec
from starschema.schema.facts import SalesFact, SalesTransactionRow

logger = structlog.get_logger(__name__)


class SalesWarehouse:
    """
    Star schema for sales transactions.

    Example:
        warehouse = SalesWarehouse()
        warehouse.register_dimension("customer", "C1", {"customer_name": "Ann"}, "2024-01-01")
        ...
        fact = warehouse.accept(row)
    """

    def __init__(self, specs: Optional[Mapping[str, DimensionSpec]] = None):
        specs = specs or DIMENSIONS
        self.dimensions: Dict[str, DimensionRegistry] = {
            name: DimensionRegistry(spec) for name, spec in specs.items()
        }
        self.facts = FactRegistry()
        self.validator = ReferentialValidator(self.dimensions)

    def dimension(self, name: str) -> DimensionRegistry:
        try:
            return self.dimensions[name]
        except KeyError:
            raise KeyError(f"Unknown dimension: {name}") from None

    @property
    def customers(self) -> DimensionRegistry:
        return self.dimension("customer")

    @property
    def products(self) -> DimensionRegistry:
        return self.dimension("product")

    @property
    def stores(self) -> DimensionRegistry:
        return self.dimension("store")

    @property
    def calendar(self) -> DimensionRegistry:
        return self.dimension("time")

    def register_dimension(
        self,
        name: str,
        business_key: Any,
        attributes: Optional[Mapping[str, Any]] = None,
        as_of_date: Any = None,
    ) -> int:
        """Register a member of the named dimension; returns its surrogate key"""
        return self.dimension(name).register(business_key, attributes, as_of_date)

    def validate(self, row: Union[SalesTransactionRow, Mapping[str, Any]]) -> ValidationResult:
        return self.validator.validate(row)

    def accept(self, row: Union[SalesTransactionRow, Mapping[str, Any]]) -> SalesFact:
        """
        Validate, compute measures and append a fact row.

        Raises:
            FactValidationError: The row failed validation (all failures attached)
            DuplicateFactError: The order line already has this transaction type
        """
        result = self.validator.validate(row)
        if not result.ok:
            raise FactValidationError(result)

        measures = compute(result.row.raw_measures())
        transaction_sk = self.facts.insert(result.row, result.resolved_keys, measures)
        return self.facts.get(transaction_sk)

    def summary(self) -> Dict[str, int]:
        """Row counts per table"""
        counts = {registry.spec.table_name: len(registry) for registry in self.dimensions.values()}
        counts["fact_sales_transactions"] = len(self.facts)
        return counts
