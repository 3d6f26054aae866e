"""
Warehouse Repository

Writes the in-memory registries to the star schema tables. Rows are merged
on their surrogate keys, so saving the same warehouse twice leaves the
tables unchanged; closed customer versions are updated in place.
"""

from typing import Any, Dict, List, Type

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from starschema.database.models import Base, FactSalesTransaction, TABLE_MODELS
from starschema.registry.warehouse import SalesWarehouse

logger = structlog.get_logger(__name__)


class WarehouseRepository:
    """
    Persists a SalesWarehouse through an async session.

    Example:
        async with get_db() as db:
            counts = await WarehouseRepository(db).save(warehouse)
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _merge(self, model: Type[Base], records: List[Dict[str, Any]]) -> int:
        for record in records:
            await self.session.merge(model(**record))
        return len(records)

    async def save(self, warehouse: SalesWarehouse) -> Dict[str, int]:
        """
        Merge every dimension row and fact into the database.

        Dimensions are flushed before facts so foreign keys resolve.

        Returns:
            Rows written per table
        """
        counts: Dict[str, int] = {}

        for registry in warehouse.dimensions.values():
            table = registry.spec.table_name
            records = [version.to_record(registry.spec) for version in registry.rows()]
            counts[table] = await self._merge(TABLE_MODELS[table], records)
        await self.session.flush()

        facts = [fact.to_record() for fact in warehouse.facts]
        counts[FactSalesTransaction.__tablename__] = await self._merge(FactSalesTransaction, facts)
        await self.session.flush()

        logger.info("Warehouse saved", **counts)
        return counts

    async def count(self, model: Type[Base]) -> int:
        """Row count of a table"""
        result = await self.session.execute(select(func.count()).select_from(model))
        return result.scalar_one()
