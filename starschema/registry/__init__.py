"""
Registry Module
"""
from .dimension_registry import DimensionRegistry, DimensionVersion
from .fact_registry import FactRegistry
from .warehouse import SalesWarehouse

__all__ = [
    "DimensionRegistry",
    "DimensionVersion",
    "FactRegistry",
    "SalesWarehouse",
]
