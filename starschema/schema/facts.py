"""
Fact Definitions

The SalesTransaction fact: one row per order line and transaction type.
Incoming rows carry business keys for their dimensions; accepted facts are
frozen records bound to the surrogate keys effective at order time, with
derived measures computed by the measure calculator.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from starschema.measures.calculator import DerivedMeasures, RawMeasures
from starschema.transformation.time_dimension import to_naive_utc, utcnow

DERIVED_MEASURE_FIELDS = (
    "gross_sales_amount",
    "net_sales_amount",
    "total_cost",
    "gross_profit",
    "discount_percentage",
    "profit_margin_percentage",
)

# order, payment, ship, delivery
PROCESS_TIMESTAMPS = (
    "order_timestamp",
    "payment_timestamp",
    "ship_timestamp",
    "delivery_timestamp",
)


class TransactionType(str, Enum):
    """Transaction type enumeration"""
    SALE = "Sale"
    RETURN = "Return"
    EXCHANGE = "Exchange"


@dataclass(frozen=True)
class DimensionReference:
    """A fact column that references a dimension by business key"""
    field: str
    dimension: str
    surrogate_key: str
    required: bool = True


FACT_REFERENCES: Tuple[DimensionReference, ...] = (
    DimensionReference("customer_id", "customer", "customer_sk"),
    DimensionReference("product_id", "product", "product_sk"),
    DimensionReference("store_id", "store", "store_sk"),
    DimensionReference("order_date", "time", "order_date_sk"),
    DimensionReference("ship_date", "time", "ship_date_sk", required=False),
)


class SalesTransactionRow(BaseModel):
    """
    Incoming sales transaction line.

    Measures derived by the calculator may not be supplied; quantities and
    currency amounts must be non-negative. Process timestamps are naive UTC.
    """

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
        populate_by_name=True,
    )

    # Dimension business keys
    customer_id: str = Field(min_length=1, max_length=50)
    product_id: str = Field(min_length=1, max_length=50)
    store_id: str = Field(min_length=1, max_length=50)
    order_date: Optional[date] = None  # defaults to the order timestamp's date
    ship_date: Optional[date] = None

    # Degenerate dimensions
    order_id: str = Field(min_length=1, max_length=50)
    line_number: int = Field(ge=1, validation_alias=AliasChoices("line_number", "order_line_number"))
    transaction_type: TransactionType = TransactionType.SALE
    payment_method: Optional[str] = Field(default=None, max_length=50)
    promotion_code: Optional[str] = Field(default=None, max_length=50)

    # Additive measures
    quantity_ordered: int = Field(ge=0)
    quantity_shipped: Optional[int] = Field(default=None, ge=0)
    quantity_returned: Optional[int] = Field(default=None, ge=0)
    unit_price: Decimal = Field(ge=0)
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    tax_amount: Optional[Decimal] = Field(default=None, ge=0)
    shipping_amount: Optional[Decimal] = Field(default=None, ge=0)

    # Semi-additive measure
    inventory_quantity: Optional[int] = None

    # Business process timestamps
    order_timestamp: datetime
    payment_timestamp: Optional[datetime] = None
    ship_timestamp: Optional[datetime] = None
    delivery_timestamp: Optional[datetime] = None

    # Row metadata, set by the loader
    source_system: Optional[str] = Field(default=None, max_length=50)
    data_quality_score: Optional[Decimal] = Field(default=None, ge=0, le=1)
    is_processed: bool = False

    @model_validator(mode="before")
    @classmethod
    def reject_derived_measures(cls, data: Any) -> Any:
        """Derived measures are always computed, never accepted from input"""
        if isinstance(data, dict):
            supplied = [
                name for name in DERIVED_MEASURE_FIELDS
                if data.get(name) is not None
            ]
            if supplied:
                raise ValueError(f"derived measures cannot be supplied: {supplied}")
        return data

    @field_validator("transaction_type", mode="before")
    @classmethod
    def normalize_transaction_type(cls, v: Any) -> Any:
        """Accept any casing of Sale/Return/Exchange"""
        if v is None:
            return TransactionType.SALE
        if isinstance(v, str):
            return v.strip().capitalize()
        return v

    @field_validator(*PROCESS_TIMESTAMPS, mode="after")
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Offset-aware timestamps are stored as naive UTC"""
        return to_naive_utc(v) if v is not None else v

    @model_validator(mode="after")
    def default_order_date(self) -> "SalesTransactionRow":
        if self.order_date is None:
            # frozen model: bypass __setattr__ for the derived default
            object.__setattr__(self, "order_date", self.order_timestamp.date())
        return self

    @property
    def uniqueness_key(self) -> Tuple[str, int, TransactionType]:
        """(order_id, line_number, transaction_type)"""
        return (self.order_id, self.line_number, self.transaction_type)

    def raw_measures(self) -> RawMeasures:
        """Inputs for the measure calculator"""
        return RawMeasures(
            unit_price=self.unit_price,
            quantity_ordered=self.quantity_ordered,
            quantity_returned=self.quantity_returned or 0,
            discount_amount=self.discount_amount or Decimal("0"),
            unit_cost=self.unit_cost,
        )


@dataclass(frozen=True)
class SalesFact:
    """Accepted, immutable fact row"""
    transaction_sk: int
    customer_sk: int
    product_sk: int
    store_sk: int
    order_date_sk: int
    ship_date_sk: Optional[int]
    row: SalesTransactionRow
    measures: DerivedMeasures
    created_at: datetime = field(default_factory=utcnow)

    @property
    def uniqueness_key(self) -> Tuple[str, int, TransactionType]:
        return self.row.uniqueness_key

    def to_record(self) -> Dict[str, Any]:
        """Flatten into the fact table's column layout"""
        record = self.row.model_dump(
            exclude={"customer_id", "product_id", "store_id", "order_date", "ship_date", "line_number"}
        )
        record.update(
            transaction_sk=self.transaction_sk,
            customer_sk=self.customer_sk,
            product_sk=self.product_sk,
            store_sk=self.store_sk,
            order_date_sk=self.order_date_sk,
            ship_date_sk=self.ship_date_sk,
            order_line_number=self.row.line_number,
            transaction_type=self.row.transaction_type.value,
            created_timestamp=self.created_at,
        )
        record.update(self.measures.to_dict())
        return record
