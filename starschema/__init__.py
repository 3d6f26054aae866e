"""
Sales Star Schema

Dimensional schema contract for sales analytics: dimension and fact
registries, referential validation, derived measures and loaders.
"""
from starschema.registry import SalesWarehouse

__version__ = "1.0.0"

__all__ = ["SalesWarehouse", "__version__"]
