"""
Measure Calculation Module
"""
from .calculator import DerivedMeasures, RawMeasures, compute

__all__ = [
    "DerivedMeasures",
    "RawMeasures",
    "compute",
]
