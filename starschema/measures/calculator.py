"""
Measure Calculator

Single source of truth for the derived measures of a sales transaction.
All arithmetic is done in Decimal; currency results keep two decimal places
and percentages are rounded half-to-even to two places. Ratios whose
denominator is not positive are reported as None rather than raising.
"""

from dataclasses import asdict, dataclass
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Any, Dict, Mapping, Optional, Union

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


@dataclass(frozen=True)
class RawMeasures:
    """Inputs the derived measures are computed from"""
    unit_price: Decimal
    quantity_ordered: int
    quantity_returned: int = 0
    discount_amount: Decimal = ZERO
    unit_cost: Optional[Decimal] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RawMeasures":
        """Build from a row mapping; missing optional inputs count as zero"""
        unit_cost = data.get("unit_cost")
        return cls(
            unit_price=_to_decimal(data["unit_price"]),
            quantity_ordered=int(data["quantity_ordered"]),
            quantity_returned=int(data.get("quantity_returned") or 0),
            discount_amount=_to_decimal(data.get("discount_amount") or 0),
            unit_cost=None if unit_cost is None else _to_decimal(unit_cost),
        )


@dataclass(frozen=True)
class DerivedMeasures:
    """Computed revenue, cost and ratio measures"""
    gross_sales_amount: Decimal
    net_sales_amount: Decimal
    total_cost: Optional[Decimal]
    gross_profit: Optional[Decimal]
    discount_percentage: Optional[Decimal]
    profit_margin_percentage: Optional[Decimal]

    def to_dict(self) -> Dict[str, Optional[Decimal]]:
        return asdict(self)


def _to_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps floats from leaking binary representation error
    return Decimal(str(value))


def _currency(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_EVEN)


def _percentage(numerator: Decimal, denominator: Decimal) -> Optional[Decimal]:
    if denominator <= ZERO:
        return None
    return (numerator / denominator * HUNDRED).quantize(CENT, rounding=ROUND_HALF_EVEN)


def compute(raw: Union[RawMeasures, Mapping[str, Any]]) -> DerivedMeasures:
    """
    Derive the sales measures for one transaction line.

    gross_sales = unit_price * quantity_ordered
    net_sales = gross_sales - discount_amount - unit_price * quantity_returned
    total_cost = unit_cost * quantity_ordered (None without a unit cost)
    gross_profit = net_sales - total_cost (None without a total cost)
    discount_percentage = discount_amount / gross_sales * 100 (gross_sales > 0)
    profit_margin_percentage = gross_profit / net_sales * 100 (net_sales > 0)

    Args:
        raw: RawMeasures or a mapping with the same keys

    Returns:
        DerivedMeasures
    """
    if not isinstance(raw, RawMeasures):
        raw = RawMeasures.from_mapping(raw)

    gross_sales = raw.unit_price * raw.quantity_ordered
    returned_value = raw.unit_price * raw.quantity_returned
    net_sales = gross_sales - raw.discount_amount - returned_value

    total_cost = None
    gross_profit = None
    if raw.unit_cost is not None:
        total_cost = raw.unit_cost * raw.quantity_ordered
        gross_profit = net_sales - total_cost

    margin = None
    if gross_profit is not None:
        margin = _percentage(gross_profit, net_sales)

    return DerivedMeasures(
        gross_sales_amount=_currency(gross_sales),
        net_sales_amount=_currency(net_sales),
        total_cost=None if total_cost is None else _currency(total_cost),
        gross_profit=None if gross_profit is None else _currency(gross_profit),
        discount_percentage=_percentage(raw.discount_amount, gross_sales),
        profit_margin_percentage=margin,
    )
