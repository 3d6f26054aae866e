#!/usr/bin/env python
"""
Sales Star Schema Loader

Loads dimension and fact batches into the star schema and prints the load
report as JSON. Optionally persists the accepted rows to a database.

Usage:
    starschema-load --customers customers.csv --products products.csv \\
        --stores stores.csv --time-range 2024-01-01:2024-12-31 \\
        --facts sales.parquet

    starschema-load ... --database-url sqlite+aiosqlite:///warehouse.db
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

import structlog

from starschema.config import get_settings
from starschema.config.logging import configure_logging
from starschema.database import WarehouseRepository, close_database, create_schema, get_db, init_database
from starschema.ingestion.batch_loader import BatchLoader, LoadResult, LoadStatus
from starschema.registry.warehouse import SalesWarehouse
from starschema.schema.dimensions import coerce_date
from starschema.transformation.time_dimension import generate_time_dimension

logger = structlog.get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="starschema-load",
        description="Load sales star schema batches",
    )
    parser.add_argument("--customers", help="Customer dimension batch")
    parser.add_argument("--products", help="Product dimension batch")
    parser.add_argument("--stores", help="Store dimension batch")
    parser.add_argument("--time", dest="time_file", help="Time dimension batch")
    parser.add_argument(
        "--time-range",
        help="Generate the time dimension for START:END (ISO dates)",
    )
    parser.add_argument(
        "--facts",
        action="append",
        default=[],
        help="Sales transaction batch (repeatable)",
    )
    parser.add_argument(
        "--as-of",
        help="Effective date for dimension rows without effective_start_date (default: today)",
    )
    parser.add_argument("--quarantine-path", help="Directory for quarantined rows")
    parser.add_argument("--database-url", help="Persist accepted rows to this async database URL")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument("--show-rows", action="store_true", help="Include per-row reports")
    return parser.parse_args(argv)


def build_time_batch(time_range: str):
    """Calendar rows for an inclusive START:END range"""
    try:
        start, end = time_range.split(":", 1)
        return generate_time_dimension(coerce_date(start), coerce_date(end))
    except ValueError as e:
        raise SystemExit(f"Invalid --time-range '{time_range}': {e}") from None


def report(results: List[LoadResult], warehouse: SalesWarehouse, loader: BatchLoader, show_rows: bool) -> Dict[str, Any]:
    exclude = None if show_rows else {"rows"}
    return {
        "batches": [result.model_dump(mode="json", exclude=exclude) for result in results],
        "tables": warehouse.summary(),
        "pending": len(loader.pending),
    }


async def persist(warehouse: SalesWarehouse, url: str) -> Dict[str, int]:
    """Write the warehouse to the database"""
    await init_database(url)
    try:
        await create_schema()
        async with get_db() as db:
            return await WarehouseRepository(db).save(warehouse)
    finally:
        await close_database()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    settings = get_settings()

    warehouse = SalesWarehouse()
    loader = BatchLoader(
        warehouse,
        quarantine_path=args.quarantine_path or settings.ingestion.quarantine_path,
    )

    dimensions: Dict[str, Any] = {}
    if args.customers:
        dimensions["customer"] = args.customers
    if args.products:
        dimensions["product"] = args.products
    if args.stores:
        dimensions["store"] = args.stores
    if args.time_file:
        dimensions["time"] = args.time_file
    elif args.time_range:
        dimensions["time"] = build_time_batch(args.time_range)

    results = loader.load(dimensions=dimensions, facts=args.facts or None, as_of_date=args.as_of)
    output = report(results, warehouse, loader, args.show_rows)

    if args.database_url:
        output["persisted"] = asyncio.run(persist(warehouse, args.database_url))

    print(json.dumps(output, indent=2, default=str))

    failed = any(result.status == LoadStatus.FAILED for result in results)
    logger.info("Load finished", batches=len(results), failed=failed, **output["tables"])
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
