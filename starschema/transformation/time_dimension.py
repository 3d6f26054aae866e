"""
Time Dimension Builder

Derives the calendar hierarchy for the Time dimension from a date:
day, week, month, quarter and year parts, period boundaries, business
day flags and the fiscal calendar.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

import polars as pl
import structlog

from starschema.config import get_settings

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are taken as UTC"""
    if value.tzinfo is None or value.utcoffset() is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def date_key(d: date) -> int:
    """Smart surrogate key in YYYYMMDD form"""
    return int(d.strftime("%Y%m%d"))


def _quarter_bounds(d: date) -> tuple:
    quarter = (d.month - 1) // 3 + 1
    first_month = 3 * (quarter - 1) + 1
    last_month = first_month + 2
    start = date(d.year, first_month, 1)
    end = date(d.year, last_month, calendar.monthrange(d.year, last_month)[1])
    return quarter, start, end


def fiscal_parts(d: date, fiscal_year_start_month: int) -> Dict[str, int]:
    """
    Fiscal month, quarter and year for a date.

    The fiscal year is named after the calendar year in which it ends, so
    with a July start, 2024-07-01 falls in fiscal year 2025.
    """
    fiscal_month = (d.month - fiscal_year_start_month) % 12 + 1
    fiscal_year = d.year
    if fiscal_year_start_month != 1 and d.month >= fiscal_year_start_month:
        fiscal_year += 1
    return {
        "fiscal_month": fiscal_month,
        "fiscal_quarter": (fiscal_month - 1) // 3 + 1,
        "fiscal_year": fiscal_year,
    }


def derive_calendar_attributes(
    d: date,
    fiscal_year_start_month: Optional[int] = None,
    is_holiday: bool = False,
    holiday_name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build every Time dimension attribute for a single date.

    Args:
        d: Calendar date (the business key)
        fiscal_year_start_month: Override for the configured fiscal start
        is_holiday: Holiday flag supplied by the loader
        holiday_name: Holiday label supplied by the loader

    Returns:
        Mapping of attribute name to value
    """
    if fiscal_year_start_month is None:
        fiscal_year_start_month = get_settings().ingestion.fiscal_year_start_month

    month_start = date(d.year, d.month, 1)
    month_end = date(d.year, d.month, calendar.monthrange(d.year, d.month)[1])
    week_start = d - timedelta(days=d.weekday())
    quarter, quarter_start, quarter_end = _quarter_bounds(d)
    is_weekend = d.weekday() >= 5

    attributes = {
        "day_of_month": d.day,
        "day_of_week": d.isoweekday(),  # 1=Monday, 7=Sunday
        "day_of_year": d.timetuple().tm_yday,
        "day_name": calendar.day_name[d.weekday()],
        "day_name_short": calendar.day_abbr[d.weekday()],
        "week_of_month": (d.day - 1 + month_start.weekday()) // 7 + 1,
        "week_of_year": d.isocalendar()[1],
        "week_start_date": week_start,
        "week_end_date": week_start + timedelta(days=6),
        "month_number": d.month,
        "month_name": calendar.month_name[d.month],
        "month_name_short": calendar.month_abbr[d.month],
        "month_start_date": month_start,
        "month_end_date": month_end,
        "quarter_number": quarter,
        "quarter_name": f"Q{quarter}",
        "quarter_start_date": quarter_start,
        "quarter_end_date": quarter_end,
        "year_number": d.year,
        "is_weekend": is_weekend,
        "is_holiday": is_holiday,
        "holiday_name": holiday_name if is_holiday else None,
        "is_business_day": not is_weekend and not is_holiday,
    }
    attributes.update(fiscal_parts(d, fiscal_year_start_month))
    return attributes


def generate_time_dimension(
    start_date: date,
    end_date: date,
    holidays: Optional[Mapping[date, str]] = None,
    fiscal_year_start_month: Optional[int] = None,
) -> pl.DataFrame:
    """
    Generate a Time dimension batch covering an inclusive date range.

    The frame carries the business key column ``full_date`` plus holiday
    flags, ready to hand to the batch loader.
    """
    if end_date < start_date:
        raise ValueError("end_date must not precede start_date")

    holidays = holidays or {}
    rows = []
    for offset in range((end_date - start_date).days + 1):
        d = start_date + timedelta(days=offset)
        row = {"full_date": d, "time_sk": date_key(d)}
        row.update(
            derive_calendar_attributes(
                d,
                fiscal_year_start_month=fiscal_year_start_month,
                is_holiday=d in holidays,
                holiday_name=holidays.get(d),
            )
        )
        rows.append(row)

    logger.info(
        "Generated time dimension",
        start=start_date.isoformat(),
        end=end_date.isoformat(),
        days=len(rows),
    )
    return pl.DataFrame(rows)
