"""
Data Transformation Module
"""
from .time_dimension import date_key, derive_calendar_attributes, generate_time_dimension

__all__ = [
    "date_key",
    "derive_calendar_attributes",
    "generate_time_dimension",
]
