"""
Unit Tests - Persistence
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from starschema.database import (
    DimCustomer,
    DimTime,
    FactSalesTransaction,
    WarehouseRepository,
    close_database,
    create_schema,
    get_db,
    init_database,
)


class TestWarehouseRepository:
    """Tests for WarehouseRepository.save"""

    @pytest.mark.asyncio
    async def test_save_counts(self, test_db, warehouse, sample_fact):
        """Test every registry row is written"""
        warehouse.accept(sample_fact)

        counts = await WarehouseRepository(test_db).save(warehouse)

        assert counts == {
            "dim_customers": 3,
            "dim_products": 2,
            "dim_stores": 2,
            "dim_time": 31,
            "fact_sales_transactions": 1,
        }

    @pytest.mark.asyncio
    async def test_customer_history_persisted(self, test_db, warehouse):
        """Test both versions of C1 are stored with their intervals"""
        await WarehouseRepository(test_db).save(warehouse)

        result = await test_db.execute(
            select(DimCustomer)
            .where(DimCustomer.customer_id == "C1")
            .order_by(DimCustomer.effective_start_date)
        )
        rows = result.scalars().all()

        assert [r.customer_segment for r in rows] == ["Standard", "Premium"]
        assert rows[0].effective_end_date == date(2024, 6, 1)
        assert rows[0].is_current is False
        assert rows[1].effective_end_date is None
        assert rows[1].is_current is True

    @pytest.mark.asyncio
    async def test_fact_persisted_with_measures(self, test_db, warehouse, sample_fact):
        """Test a fact row keeps its keys and derived measures"""
        fact = warehouse.accept(sample_fact)
        await WarehouseRepository(test_db).save(warehouse)

        stored = await test_db.get(FactSalesTransaction, fact.transaction_sk)

        assert stored.customer_sk == fact.customer_sk
        assert stored.order_date_sk == 20240315
        assert stored.order_line_number == 1
        assert stored.transaction_type == "Sale"
        assert stored.gross_sales_amount == Decimal("300.00")
        assert stored.profit_margin_percentage == Decimal("5.26")

    @pytest.mark.asyncio
    async def test_save_is_idempotent(self, test_db, warehouse, sample_fact):
        """Test saving twice leaves row counts unchanged"""
        warehouse.accept(sample_fact)
        repository = WarehouseRepository(test_db)

        await repository.save(warehouse)
        await repository.save(warehouse)

        assert await repository.count(FactSalesTransaction) == 1
        assert await repository.count(DimTime) == 31

    @pytest.mark.asyncio
    async def test_closed_version_updated_on_resave(self, test_db, warehouse):
        """Test a version closed after the first save is updated in place"""
        repository = WarehouseRepository(test_db)
        await repository.save(warehouse)

        warehouse.register_dimension("customer", "C2", {"customer_name": "Bo Chen", "city": "Boise"}, "2024-04-01")
        await repository.save(warehouse)

        result = await test_db.execute(
            select(DimCustomer).where(DimCustomer.customer_id == "C2", DimCustomer.effective_end_date.is_(None))
        )
        current = result.scalars().one()
        assert current.city == "Boise"
        assert await repository.count(DimCustomer) == 4


class TestConnection:
    """Tests for engine and session management"""

    @pytest.mark.asyncio
    async def test_get_db_before_init(self):
        """Test get_db refuses to run without an engine"""
        with pytest.raises(RuntimeError):
            async with get_db():
                pass

    @pytest.mark.asyncio
    async def test_round_trip_through_file_database(self, tmp_path, warehouse, sample_fact):
        """Test init, schema creation, save and read back through get_db"""
        warehouse.accept(sample_fact)
        await init_database(f"sqlite+aiosqlite:///{tmp_path / 'warehouse.db'}")
        try:
            await create_schema()
            async with get_db() as db:
                await WarehouseRepository(db).save(warehouse)
            async with get_db() as db:
                assert await WarehouseRepository(db).count(FactSalesTransaction) == 1
        finally:
            await close_database()
