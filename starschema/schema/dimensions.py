"""
Dimension Definitions

Attribute models and registry specifications for the four dimensions of
the sales star schema:

- Customer: SCD Type 2, history preserved by inserting new versions
- Product: overwritten in place
- Store: overwritten in place
- Time: calendar dimension keyed by YYYYMMDD, overwritten in place
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from starschema.transformation.time_dimension import date_key, derive_calendar_attributes


class DimensionAttributes(BaseModel):
    """Base class for descriptive dimension attributes"""

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
    )


class CustomerAttributes(DimensionAttributes):
    """Customer master data"""
    customer_name: str = Field(min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=20)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(default=None, max_length=10)
    customer_segment: Optional[str] = Field(default=None, max_length=50)  # Premium, Standard, Basic
    customer_status: Optional[str] = Field(default=None, max_length=20)  # Active, Inactive, Suspended
    registration_date: Optional[date] = None
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=20)


class ProductAttributes(DimensionAttributes):
    """Product catalog entry with its category hierarchy"""
    product_name: str = Field(min_length=1, max_length=200)
    product_description: Optional[str] = None
    category_level_1: Optional[str] = Field(default=None, max_length=100)
    category_level_2: Optional[str] = Field(default=None, max_length=100)
    category_level_3: Optional[str] = Field(default=None, max_length=100)
    brand: Optional[str] = Field(default=None, max_length=100)
    manufacturer: Optional[str] = Field(default=None, max_length=100)
    product_color: Optional[str] = Field(default=None, max_length=50)
    product_size: Optional[str] = Field(default=None, max_length=50)
    product_weight: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    standard_cost: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    list_price: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    product_status: Optional[str] = Field(default=None, max_length=20)  # Active, Discontinued, Seasonal
    launch_date: Optional[date] = None


class StoreAttributes(DimensionAttributes):
    """Store and its geographic hierarchy"""
    store_name: str = Field(min_length=1, max_length=200)
    store_type: Optional[str] = Field(default=None, max_length=50)  # Physical, Online, Hybrid
    store_address: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    region: Optional[str] = Field(default=None, max_length=100)
    district: Optional[str] = Field(default=None, max_length=100)
    store_size_sqft: Optional[int] = Field(default=None, ge=0)
    opening_date: Optional[date] = None
    store_manager: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = Field(default=None, max_length=200)
    store_status: Optional[str] = Field(default=None, max_length=20)  # Open, Closed, Under Renovation


class TimeAttributes(DimensionAttributes):
    """Calendar hierarchy for a single day"""
    day_of_month: int = Field(ge=1, le=31)
    day_of_week: int = Field(ge=1, le=7)
    day_of_year: int = Field(ge=1, le=366)
    day_name: str
    day_name_short: str
    week_of_month: int = Field(ge=1, le=6)
    week_of_year: int = Field(ge=1, le=53)
    week_start_date: date
    week_end_date: date
    month_number: int = Field(ge=1, le=12)
    month_name: str
    month_name_short: str
    month_start_date: date
    month_end_date: date
    quarter_number: int = Field(ge=1, le=4)
    quarter_name: str
    quarter_start_date: date
    quarter_end_date: date
    year_number: int
    is_weekend: bool
    is_holiday: bool = False
    holiday_name: Optional[str] = Field(default=None, max_length=200)
    is_business_day: bool
    fiscal_month: int = Field(ge=1, le=12)
    fiscal_quarter: int = Field(ge=1, le=4)
    fiscal_year: int


# =============================================================================
# BUSINESS KEY PARSING
# =============================================================================

def coerce_date(value: Any) -> date:
    """Parse a date from a date, datetime or ISO-8601 string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    raise ValueError(f"not a date: {value!r}")


def parse_text_key(value: Any) -> str:
    """Natural keys are non-empty strings; integers are accepted as text"""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"invalid business key: {value!r}")
    text = str(value).strip()
    if not text:
        raise ValueError("business key is empty")
    return text


FISCAL_COLUMNS = ("fiscal_month", "fiscal_quarter", "fiscal_year")


def _time_attributes(full_date: date, raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Derive calendar parts from the date.

    Holiday flags and fiscal columns come from the source when present, so
    a batch generated for another fiscal start keeps its fiscal calendar.
    """
    is_holiday = raw.get("is_holiday") or False
    if isinstance(is_holiday, str):
        is_holiday = is_holiday.strip().lower() in ("true", "t", "1", "yes", "y")
    attributes = derive_calendar_attributes(
        full_date,
        is_holiday=bool(is_holiday),
        holiday_name=raw.get("holiday_name"),
    )
    attributes.update(
        (column, raw[column]) for column in FISCAL_COLUMNS
        if raw.get(column) is not None
    )
    return attributes


# =============================================================================
# DIMENSION SPECIFICATIONS
# =============================================================================

@dataclass(frozen=True)
class DimensionSpec:
    """
    Static description of a dimension.

    Attributes:
        name: Dimension name used in error messages and reports
        table_name: Logical table name
        business_key: Column holding the natural key
        surrogate_key: Column holding the surrogate key
        attributes_model: Pydantic model validating descriptive attributes
        scd_tracked: Preserve history with new versions (SCD Type 2)
        parse_key: Normalizes an incoming business key
        smart_key: Derives the surrogate key from the business key instead
            of drawing it from the registry sequence
        build_attributes: Completes raw attributes before validation
        audited: Table carries created/updated timestamps
    """
    name: str
    table_name: str
    business_key: str
    surrogate_key: str
    attributes_model: Type[DimensionAttributes]
    scd_tracked: bool = False
    parse_key: Callable[[Any], Any] = parse_text_key
    smart_key: Optional[Callable[[Any], int]] = None
    build_attributes: Optional[Callable[[Any, Mapping[str, Any]], Mapping[str, Any]]] = None
    audited: bool = True


CUSTOMER = DimensionSpec(
    name="customer",
    table_name="dim_customers",
    business_key="customer_id",
    surrogate_key="customer_sk",
    attributes_model=CustomerAttributes,
    scd_tracked=True,
)

PRODUCT = DimensionSpec(
    name="product",
    table_name="dim_products",
    business_key="product_id",
    surrogate_key="product_sk",
    attributes_model=ProductAttributes,
)

STORE = DimensionSpec(
    name="store",
    table_name="dim_stores",
    business_key="store_id",
    surrogate_key="store_sk",
    attributes_model=StoreAttributes,
)

TIME = DimensionSpec(
    name="time",
    table_name="dim_time",
    business_key="full_date",
    surrogate_key="time_sk",
    attributes_model=TimeAttributes,
    parse_key=coerce_date,
    smart_key=date_key,
    build_attributes=_time_attributes,
    audited=False,
)

DIMENSIONS: Dict[str, DimensionSpec] = {
    spec.name: spec for spec in (CUSTOMER, PRODUCT, STORE, TIME)
}
