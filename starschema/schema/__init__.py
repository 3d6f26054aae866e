"""
Schema Definitions Module
"""
from .dimensions import (
    CUSTOMER,
    DIMENSIONS,
    PRODUCT,
    STORE,
    TIME,
    CustomerAttributes,
    DimensionSpec,
    ProductAttributes,
    StoreAttributes,
    TimeAttributes,
)
from .facts import FACT_REFERENCES, SalesFact, SalesTransactionRow, TransactionType

__all__ = [
    "CUSTOMER",
    "DIMENSIONS",
    "PRODUCT",
    "STORE",
    "TIME",
    "CustomerAttributes",
    "DimensionSpec",
    "ProductAttributes",
    "StoreAttributes",
    "TimeAttributes",
    "FACT_REFERENCES",
    "SalesFact",
    "SalesTransactionRow",
    "TransactionType",
]
