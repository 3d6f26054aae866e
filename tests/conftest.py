"""
Test Suite Configuration
"""
from datetime import date, datetime
from typing import Any, AsyncGenerator, Dict

import polars as pl
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from starschema.database.models import Base
from starschema.registry.warehouse import SalesWarehouse


@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite engine with the star schema created"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def customers_df() -> pl.DataFrame:
    """Customer batch: C1 changes segment on 2024-06-01"""
    return pl.DataFrame({
        "customer_id": ["C1", "C2", "C1"],
        "customer_name": ["Ann Lee", "Bo Chen", "Ann Lee"],
        "customer_segment": ["Standard", "Basic", "Premium"],
        "city": ["Austin", "Denver", "Austin"],
        "effective_start_date": [date(2024, 1, 1), date(2024, 1, 1), date(2024, 6, 1)],
    })


@pytest.fixture
def products_df() -> pl.DataFrame:
    return pl.DataFrame({
        "product_id": ["P1", "P2"],
        "product_name": ["Desk Lamp", "Office Chair"],
        "category_level_1": ["Home", "Furniture"],
        "brand": ["Lumo", "Sitwell"],
        "list_price": ["100.00", "250.00"],
        "standard_cost": ["60.00", "140.00"],
    })


@pytest.fixture
def stores_df() -> pl.DataFrame:
    return pl.DataFrame({
        "store_id": ["S1", "S2"],
        "store_name": ["Downtown", "Online"],
        "store_type": ["Physical", "Online"],
        "region": ["South", "Web"],
    })


@pytest.fixture
def sample_fact() -> Dict[str, Any]:
    """A valid Sale line; 300 gross, 190 net after a 10 discount and 1 return"""
    return {
        "customer_id": "C1",
        "product_id": "P1",
        "store_id": "S1",
        "order_id": "101",
        "line_number": 1,
        "transaction_type": "Sale",
        "quantity_ordered": 3,
        "quantity_shipped": 3,
        "quantity_returned": 1,
        "unit_price": "100.00",
        "unit_cost": "60.00",
        "discount_amount": "10.00",
        "order_timestamp": datetime(2024, 3, 15, 10, 0),
        "payment_timestamp": datetime(2024, 3, 15, 10, 5),
        "ship_timestamp": datetime(2024, 3, 16, 9, 0),
        "ship_date": date(2024, 3, 16),
    }


@pytest.fixture
def warehouse() -> SalesWarehouse:
    """Warehouse with C1 (Standard then Premium), C2, P1, P2, S1, S2 and March 2024"""
    wh = SalesWarehouse()
    wh.register_dimension("customer", "C1", {"customer_name": "Ann Lee", "customer_segment": "Standard"}, "2024-01-01")
    wh.register_dimension("customer", "C1", {"customer_name": "Ann Lee", "customer_segment": "Premium"}, "2024-06-01")
    wh.register_dimension("customer", "C2", {"customer_name": "Bo Chen"}, "2024-01-01")
    wh.register_dimension("product", "P1", {"product_name": "Desk Lamp", "list_price": "100.00"}, "2024-01-01")
    wh.register_dimension("product", "P2", {"product_name": "Office Chair"}, "2024-01-01")
    wh.register_dimension("store", "S1", {"store_name": "Downtown"}, "2024-01-01")
    wh.register_dimension("store", "S2", {"store_name": "Online"}, "2024-01-01")
    for day in range(1, 32):
        wh.register_dimension("time", date(2024, 3, day))
    return wh
