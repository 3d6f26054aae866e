"""
Database Models - Sales Star Schema

Persistent layout of the sales star schema. Surrogate keys are assigned by
the registries, never by the database, so every primary key is supplied on
insert.

Fact Tables:
- FactSalesTransaction: One row per order line and transaction type

Dimension Tables:
- DimCustomer: Customer master data (SCD Type 2)
- DimProduct: Product catalog with category hierarchy
- DimStore: Store and geographic hierarchy
- DimTime: Calendar dimension keyed by YYYYMMDD
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Dict, Optional, Type

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class DimCustomer(Base):
    """
    Customer Dimension Table

    SCD Type 2: a change of attributes closes the current row and inserts a
    new one, so one customer_id may own several rows with contiguous
    effective date ranges.
    """
    __tablename__ = "dim_customers"

    customer_sk: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    customer_id: Mapped[str] = mapped_column(String(50), nullable=False)

    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200))
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date)
    gender: Mapped[Optional[str]] = mapped_column(String(10))
    customer_segment: Mapped[Optional[str]] = mapped_column(String(50))
    customer_status: Mapped[Optional[str]] = mapped_column(String(20))
    registration_date: Mapped[Optional[date]] = mapped_column(Date)

    # Geographic
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(100))
    country: Mapped[Optional[str]] = mapped_column(String(100))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))

    # SCD Type 2 fields
    effective_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    effective_end_date: Mapped[Optional[date]] = mapped_column(Date)
    is_current: Mapped[bool] = mapped_column(Boolean, default=True)

    # Audit
    created_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_dim_customers_business_key", "customer_id", "is_current"),
        Index("ix_dim_customers_effective", "customer_id", "effective_start_date"),
        Index("ix_dim_customers_segment", "customer_segment"),
    )


class DimProduct(Base):
    """
    Product Dimension Table

    Attribute changes overwrite the row in place.
    """
    __tablename__ = "dim_products"

    product_sk: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    product_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    product_description: Mapped[Optional[str]] = mapped_column(Text)

    # Category hierarchy
    category_level_1: Mapped[Optional[str]] = mapped_column(String(100))
    category_level_2: Mapped[Optional[str]] = mapped_column(String(100))
    category_level_3: Mapped[Optional[str]] = mapped_column(String(100))

    brand: Mapped[Optional[str]] = mapped_column(String(100))
    manufacturer: Mapped[Optional[str]] = mapped_column(String(100))
    product_color: Mapped[Optional[str]] = mapped_column(String(50))
    product_size: Mapped[Optional[str]] = mapped_column(String(50))
    product_weight: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))

    # Pricing
    standard_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    list_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))

    product_status: Mapped[Optional[str]] = mapped_column(String(20))
    launch_date: Mapped[Optional[date]] = mapped_column(Date)

    # Audit
    created_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_dim_products_category", "category_level_1", "category_level_2"),
        Index("ix_dim_products_brand", "brand"),
    )


class DimStore(Base):
    """
    Store Dimension Table

    Attribute changes overwrite the row in place.
    """
    __tablename__ = "dim_stores"

    store_sk: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    store_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    store_name: Mapped[str] = mapped_column(String(200), nullable=False)
    store_type: Mapped[Optional[str]] = mapped_column(String(50))
    store_address: Mapped[Optional[str]] = mapped_column(String(500))

    # Geographic hierarchy
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(100))
    country: Mapped[Optional[str]] = mapped_column(String(100))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))
    region: Mapped[Optional[str]] = mapped_column(String(100))
    district: Mapped[Optional[str]] = mapped_column(String(100))

    store_size_sqft: Mapped[Optional[int]] = mapped_column(Integer)
    opening_date: Mapped[Optional[date]] = mapped_column(Date)
    store_manager: Mapped[Optional[str]] = mapped_column(String(200))
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    email: Mapped[Optional[str]] = mapped_column(String(200))
    store_status: Mapped[Optional[str]] = mapped_column(String(20))

    # Audit
    created_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_dim_stores_region", "region", "district"),
    )


class DimTime(Base):
    """
    Time Dimension Table

    One row per calendar day; time_sk is the date in YYYYMMDD form.
    """
    __tablename__ = "dim_time"

    time_sk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    full_date: Mapped[date] = mapped_column(Date, unique=True, nullable=False)

    # Day
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 1=Monday
    day_of_year: Mapped[int] = mapped_column(Integer, nullable=False)
    day_name: Mapped[str] = mapped_column(String(20), nullable=False)
    day_name_short: Mapped[str] = mapped_column(String(3), nullable=False)

    # Week
    week_of_month: Mapped[int] = mapped_column(Integer, nullable=False)
    week_of_year: Mapped[int] = mapped_column(Integer, nullable=False)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    week_end_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Month
    month_number: Mapped[int] = mapped_column(Integer, nullable=False)
    month_name: Mapped[str] = mapped_column(String(20), nullable=False)
    month_name_short: Mapped[str] = mapped_column(String(3), nullable=False)
    month_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    month_end_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Quarter and year
    quarter_number: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter_name: Mapped[str] = mapped_column(String(10), nullable=False)
    quarter_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    quarter_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    year_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Flags
    is_weekend: Mapped[bool] = mapped_column(Boolean, default=False)
    is_holiday: Mapped[bool] = mapped_column(Boolean, default=False)
    holiday_name: Mapped[Optional[str]] = mapped_column(String(200))
    is_business_day: Mapped[bool] = mapped_column(Boolean, default=True)

    # Fiscal calendar
    fiscal_month: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_dim_time_year_month", "year_number", "month_number"),
        Index("ix_dim_time_fiscal", "fiscal_year", "fiscal_quarter"),
    )


# =============================================================================
# FACT TABLES
# =============================================================================

class FactSalesTransaction(Base):
    """
    Sales Transaction Fact Table

    Grain: one order line per transaction type. Corrections are appended as
    Return or Exchange rows; existing rows are never updated.
    """
    __tablename__ = "fact_sales_transactions"

    transaction_sk: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    # Dimension foreign keys
    customer_sk: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("dim_customers.customer_sk"), nullable=False
    )
    product_sk: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("dim_products.product_sk"), nullable=False
    )
    store_sk: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("dim_stores.store_sk"), nullable=False
    )
    order_date_sk: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_time.time_sk"), nullable=False
    )
    ship_date_sk: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("dim_time.time_sk")
    )

    # Degenerate dimensions
    order_id: Mapped[str] = mapped_column(String(50), nullable=False)
    order_line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50))
    promotion_code: Mapped[Optional[str]] = mapped_column(String(50))

    # Additive measures
    quantity_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_shipped: Mapped[Optional[int]] = mapped_column(Integer)
    quantity_returned: Mapped[Optional[int]] = mapped_column(Integer)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    discount_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    tax_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    shipping_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))

    # Derived measures
    gross_sales_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    net_sales_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    gross_profit: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    discount_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 2))
    profit_margin_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 2))

    # Semi-additive measure
    inventory_quantity: Mapped[Optional[int]] = mapped_column(Integer)

    # Business process timestamps
    order_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    payment_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime)
    ship_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime)
    delivery_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Metadata
    source_system: Mapped[Optional[str]] = mapped_column(String(50))
    data_quality_score: Mapped[Optional[Decimal]] = mapped_column(Numeric(3, 2))
    is_processed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "order_id", "order_line_number", "transaction_type",
            name="uq_fact_sales_order_line_type",
        ),
        Index("ix_fact_sales_customer_date", "customer_sk", "order_date_sk"),
        Index("ix_fact_sales_product_date", "product_sk", "order_date_sk"),
        Index("ix_fact_sales_store_date", "store_sk", "order_date_sk"),
        Index("ix_fact_sales_order", "order_id"),
    )


# Registry table name -> model
TABLE_MODELS: Dict[str, Type[Base]] = {
    model.__tablename__: model
    for model in (DimCustomer, DimProduct, DimStore, DimTime, FactSalesTransaction)
}
