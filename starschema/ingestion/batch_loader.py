"""
Batch Loader

Bulk ingestion of dimension and fact batches from CSV, JSON, JSONL and
Parquet files or in-memory Polars frames.

- Dimensions are loaded before facts
- Every row gets an accept/reject report; row failures never abort a batch
- Unreadable input or missing required columns fail the whole batch
- Quarantined rows are written to Parquet for manual review
- Facts whose references do not resolve yet are queued for retry
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

import polars as pl
import structlog
from prometheus_client import Counter, Histogram
from pydantic import BaseModel, Field

from starschema.config import get_settings
from starschema.exceptions import (
    BatchFormatError,
    Disposition,
    FactValidationError,
    StarSchemaError,
)
from starschema.registry.warehouse import SalesWarehouse
from starschema.transformation.time_dimension import utcnow

logger = structlog.get_logger(__name__)
settings = get_settings()


# =============================================================================
# METRICS
# =============================================================================

ROWS_PROCESSED = Counter(
    "starschema_rows_processed_total",
    "Rows processed by the batch loader",
    ["table", "status"],
)

BATCH_DURATION = Histogram(
    "starschema_batch_load_seconds",
    "Time spent loading a batch",
    ["table"],
)

FACT_TABLE = "fact_sales_transactions"

REQUIRED_FACT_COLUMNS = (
    "customer_id",
    "product_id",
    "store_id",
    "order_id",
    "quantity_ordered",
    "unit_price",
    "order_timestamp",
)


class FileFormat(str, Enum):
    """Supported file formats"""
    CSV = "csv"
    JSON = "json"
    JSONL = "jsonl"
    PARQUET = "parquet"


class LoadStatus(str, Enum):
    """Batch load status"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


class RowStatus(str, Enum):
    """Per-row outcome"""
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    QUARANTINED = "quarantined"
    PENDING = "pending"


DISPOSITION_STATUS = {
    Disposition.REJECT: RowStatus.REJECTED,
    Disposition.QUARANTINE: RowStatus.QUARANTINED,
    Disposition.RETRY: RowStatus.PENDING,
}


@dataclass
class BatchFileConfig:
    """Configuration for batch file loading"""
    file_path: Union[str, Path]
    file_format: FileFormat
    delimiter: str = ","
    encoding: str = "utf8"
    skip_rows: int = 0
    schema_overrides: Optional[Dict[str, Any]] = None
    null_values: Optional[List[str]] = None

    def __post_init__(self) -> None:
        if self.null_values is None:
            self.null_values = ["", "NULL", "null", "None", "NA", "N/A"]


class RowReport(BaseModel):
    """Accept/reject report for one input row"""
    row_number: int
    status: RowStatus
    key: Optional[str] = None
    surrogate_key: Optional[int] = None
    errors: List[Dict[str, str]] = Field(default_factory=list)


class LoadResult(BaseModel):
    """Result of a batch load operation"""
    source: str
    target_table: str
    status: LoadStatus
    rows_read: int = 0
    rows_loaded: int = 0
    rows_rejected: int = 0
    rows_quarantined: int = 0
    rows_pending: int = 0
    error_message: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    file_hash: Optional[str] = None
    quarantine_file: Optional[str] = None
    rows: List[RowReport] = Field(default_factory=list)

    def record(self, report: RowReport) -> None:
        """Add a row report and update the counters"""
        self.rows.append(report)
        if report.status == RowStatus.ACCEPTED:
            self.rows_loaded += 1
        elif report.status == RowStatus.REJECTED:
            self.rows_rejected += 1
        elif report.status == RowStatus.QUARANTINED:
            self.rows_quarantined += 1
        else:
            self.rows_pending += 1
        ROWS_PROCESSED.labels(table=self.target_table, status=report.status.value).inc()

    def finish(self) -> "LoadResult":
        self.completed_at = utcnow()
        self.load_duration_seconds = (self.completed_at - self.started_at).total_seconds()
        if self.status == LoadStatus.RUNNING:
            failed = self.rows_rejected + self.rows_quarantined + self.rows_pending
            self.status = LoadStatus.PARTIAL if failed else LoadStatus.COMPLETED
        BATCH_DURATION.labels(table=self.target_table).observe(self.load_duration_seconds)
        return self


BatchSource = Union[pl.DataFrame, BatchFileConfig, str, Path]


def _error_dicts(error: StarSchemaError) -> List[Dict[str, str]]:
    if isinstance(error, FactValidationError):
        return [issue.to_dict() for issue in error.result.errors]
    return [{
        "field": getattr(error, "field", None) or "row",
        "reason": str(error),
        "error": type(error).__name__,
    }]


class BatchLoader:
    """
    Bulk loader for the sales star schema.

    Example:
        loader = BatchLoader(warehouse)
        loader.load(
            dimensions={"customer": "customers.csv", "time": time_df},
            facts="sales.parquet",
        )
    """

    def __init__(
        self,
        warehouse: SalesWarehouse,
        quarantine_path: Optional[str] = None,
        chunk_size: Optional[int] = None,
    ):
        self.warehouse = warehouse
        self.quarantine_path = Path(quarantine_path or settings.ingestion.quarantine_path)
        self.chunk_size = chunk_size or settings.ingestion.chunk_size
        self._pending: List[Dict[str, Any]] = []

    @property
    def pending(self) -> List[Dict[str, Any]]:
        """Fact rows waiting for their dimensions"""
        return list(self._pending)

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def _compute_file_hash(self, file_path: Path) -> str:
        """Compute MD5 hash of file for deduplication"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _read_csv(self, config: BatchFileConfig) -> pl.DataFrame:
        return pl.read_csv(
            config.file_path,
            separator=config.delimiter,
            encoding=config.encoding,
            skip_rows=config.skip_rows,
            null_values=config.null_values,
            try_parse_dates=True,
            schema_overrides=config.schema_overrides,
        )

    def _read_json(self, config: BatchFileConfig) -> pl.DataFrame:
        return pl.read_json(config.file_path)

    def _read_jsonl(self, config: BatchFileConfig) -> pl.DataFrame:
        return pl.read_ndjson(config.file_path)

    def _read_parquet(self, config: BatchFileConfig) -> pl.DataFrame:
        return pl.read_parquet(config.file_path)

    def _as_config(self, source: Union[BatchFileConfig, str, Path]) -> BatchFileConfig:
        if isinstance(source, BatchFileConfig):
            return source
        path = Path(source)
        suffix = path.suffix.lstrip(".").lower()
        if suffix == "ndjson":
            suffix = "jsonl"
        try:
            return BatchFileConfig(file_path=path, file_format=FileFormat(suffix))
        except ValueError:
            raise BatchFormatError(f"Unsupported file format: {path.suffix}", source=str(path)) from None

    def _read_source(self, source: BatchSource, result: LoadResult) -> pl.DataFrame:
        """Materialize a batch source as a DataFrame"""
        if isinstance(source, pl.DataFrame):
            return source

        config = self._as_config(source)
        file_path = Path(config.file_path)
        if not file_path.exists():
            raise BatchFormatError("File not found", source=str(file_path))

        result.file_hash = self._compute_file_hash(file_path)
        readers = {
            FileFormat.CSV: self._read_csv,
            FileFormat.JSON: self._read_json,
            FileFormat.JSONL: self._read_jsonl,
            FileFormat.PARQUET: self._read_parquet,
        }
        try:
            return readers[config.file_format](config)
        except (pl.exceptions.PolarsError, OSError, ValueError) as e:
            raise BatchFormatError(f"Unreadable batch: {e}", source=str(file_path)) from e

    def _iter_rows(self, df: pl.DataFrame) -> Iterator[Dict[str, Any]]:
        for chunk in df.iter_slices(n_rows=self.chunk_size):
            yield from chunk.to_dicts()

    @staticmethod
    def _source_name(source: BatchSource) -> str:
        if isinstance(source, pl.DataFrame):
            return "<dataframe>"
        if isinstance(source, BatchFileConfig):
            return str(source.file_path)
        return str(source)

    # -------------------------------------------------------------------------
    # Quarantine
    # -------------------------------------------------------------------------

    def _write_quarantine(
        self,
        rows: List[Dict[str, Any]],
        table: str,
        result: LoadResult,
    ) -> None:
        """Write quarantined rows with their failure reasons to Parquet"""
        if not rows:
            return
        self.quarantine_path.mkdir(parents=True, exist_ok=True)
        timestamp = utcnow().strftime("%Y%m%d_%H%M%S_%f")
        quarantine_file = self.quarantine_path / f"{table}_{timestamp}.parquet"

        df = pl.DataFrame(rows, infer_schema_length=None).with_columns(
            pl.lit(utcnow()).alias("_quarantined_at"),
        )
        df.write_parquet(quarantine_file)
        result.quarantine_file = str(quarantine_file)
        logger.warning(
            "Written quarantined rows",
            file=str(quarantine_file),
            records=len(rows),
        )

    @staticmethod
    def _quarantine_row(row: Mapping[str, Any], row_number: int, errors: List[Dict[str, str]]) -> Dict[str, Any]:
        record = {key: (str(value) if value is not None else None) for key, value in row.items()}
        record["_row_number"] = row_number
        record["_errors"] = "; ".join(f"{e['error']}({e['field']}): {e['reason']}" for e in errors)
        return record

    # -------------------------------------------------------------------------
    # Dimensions
    # -------------------------------------------------------------------------

    def load_dimension(
        self,
        name: str,
        source: BatchSource,
        as_of_date: Any = None,
        as_of_column: Optional[str] = None,
    ) -> LoadResult:
        """
        Register every row of a dimension batch.

        Args:
            name: Dimension name (customer, product, store, time)
            source: DataFrame, file path or BatchFileConfig
            as_of_date: Effective date for every row (default: today)
            as_of_column: Column holding a per-row effective date; SCD
                dimensions use ``effective_start_date`` when present

        Returns:
            LoadResult with one RowReport per input row
        """
        registry = self.warehouse.dimension(name)
        spec = registry.spec
        result = LoadResult(
            source=self._source_name(source),
            target_table=spec.table_name,
            status=LoadStatus.RUNNING,
            started_at=utcnow(),
        )
        logger.info("Starting dimension load", dimension=name, source=result.source)

        try:
            df = self._read_source(source, result)
            if spec.business_key not in df.columns:
                raise BatchFormatError(
                    f"Missing business key column '{spec.business_key}'", source=result.source
                )
            if as_of_column is None and spec.scd_tracked and "effective_start_date" in df.columns:
                as_of_column = "effective_start_date"
            if as_of_column is not None and as_of_column not in df.columns:
                raise BatchFormatError(f"Missing as-of column '{as_of_column}'", source=result.source)
        except BatchFormatError as e:
            result.status = LoadStatus.FAILED
            result.error_message = str(e)
            logger.error("Dimension batch failed", dimension=name, error=str(e))
            return result.finish()

        result.rows_read = df.height
        for row_number, row in enumerate(self._iter_rows(df), start=1):
            as_of = row.pop(as_of_column) if as_of_column else as_of_date
            key = row.get(spec.business_key)
            try:
                surrogate_key = registry.register_row(row, as_of)
                result.record(RowReport(
                    row_number=row_number,
                    status=RowStatus.ACCEPTED,
                    key=None if key is None else str(key),
                    surrogate_key=surrogate_key,
                ))
            except StarSchemaError as e:
                errors = _error_dicts(e)
                status = DISPOSITION_STATUS[e.disposition]
                result.record(RowReport(
                    row_number=row_number,
                    status=status,
                    key=None if key is None else str(key),
                    errors=errors,
                ))
                logger.warning(
                    "Dimension row rejected",
                    dimension=name,
                    row_number=row_number,
                    error=str(e),
                )

        result.finish()
        logger.info(
            "Dimension load completed",
            dimension=name,
            rows_loaded=result.rows_loaded,
            rows_rejected=result.rows_rejected,
            duration_seconds=result.load_duration_seconds,
        )
        return result

    # -------------------------------------------------------------------------
    # Facts
    # -------------------------------------------------------------------------

    def _accept_fact(
        self,
        row: Dict[str, Any],
        row_number: int,
        result: LoadResult,
        quarantined: List[Dict[str, Any]],
    ) -> None:
        key = f"{row.get('order_id')}/{row.get('line_number', row.get('order_line_number'))}"
        try:
            fact = self.warehouse.accept(row)
        except StarSchemaError as e:
            errors = _error_dicts(e)
            status = DISPOSITION_STATUS[e.disposition]
            result.record(RowReport(row_number=row_number, status=status, key=key, errors=errors))
            if status == RowStatus.PENDING:
                self._pending.append(row)
            elif status == RowStatus.QUARANTINED:
                quarantined.append(self._quarantine_row(row, row_number, errors))
            return

        result.record(RowReport(
            row_number=row_number,
            status=RowStatus.ACCEPTED,
            key=key,
            surrogate_key=fact.transaction_sk,
        ))

    def load_facts(self, source: BatchSource) -> LoadResult:
        """
        Validate and append every row of a fact batch.

        Rows with only retryable reference failures are queued and can be
        replayed with retry_pending() once the dimensions backfill.
        """
        result = LoadResult(
            source=self._source_name(source),
            target_table=FACT_TABLE,
            status=LoadStatus.RUNNING,
            started_at=utcnow(),
        )
        logger.info("Starting fact load", source=result.source)

        try:
            df = self._read_source(source, result)
            missing = [column for column in REQUIRED_FACT_COLUMNS if column not in df.columns]
            if "line_number" not in df.columns and "order_line_number" not in df.columns:
                missing.append("line_number")
            if missing:
                raise BatchFormatError(f"Missing required columns: {missing}", source=result.source)
        except BatchFormatError as e:
            result.status = LoadStatus.FAILED
            result.error_message = str(e)
            logger.error("Fact batch failed", error=str(e))
            return result.finish()

        result.rows_read = df.height
        quarantined: List[Dict[str, Any]] = []
        for row_number, row in enumerate(self._iter_rows(df), start=1):
            self._accept_fact(row, row_number, result, quarantined)

        self._write_quarantine(quarantined, FACT_TABLE, result)
        result.finish()
        logger.info(
            "Fact load completed",
            rows_loaded=result.rows_loaded,
            rows_rejected=result.rows_rejected,
            rows_quarantined=result.rows_quarantined,
            rows_pending=result.rows_pending,
            duration_seconds=result.load_duration_seconds,
        )
        return result

    def retry_pending(self) -> LoadResult:
        """Replay queued fact rows; rows still unresolved stay queued"""
        queued, self._pending = self._pending, []
        result = LoadResult(
            source="<pending>",
            target_table=FACT_TABLE,
            status=LoadStatus.RUNNING,
            started_at=utcnow(),
            rows_read=len(queued),
        )
        quarantined: List[Dict[str, Any]] = []
        for row_number, row in enumerate(queued, start=1):
            self._accept_fact(row, row_number, result, quarantined)
        self._write_quarantine(quarantined, FACT_TABLE, result)

        logger.info(
            "Pending facts replayed",
            replayed=len(queued),
            accepted=result.rows_loaded,
            still_pending=result.rows_pending,
        )
        return result.finish()

    def load(
        self,
        dimensions: Optional[Mapping[str, BatchSource]] = None,
        facts: Optional[Union[BatchSource, Sequence[BatchSource]]] = None,
        as_of_date: Any = None,
    ) -> List[LoadResult]:
        """
        Load ordered batches: every dimension batch, then the fact batches.

        Returns:
            LoadResult per batch in load order
        """
        results = []
        for name, source in (dimensions or {}).items():
            results.append(self.load_dimension(name, source, as_of_date=as_of_date))

        if facts is not None:
            fact_sources = facts if isinstance(facts, (list, tuple)) else [facts]
            for source in fact_sources:
                results.append(self.load_facts(source))

        failed = sum(1 for r in results if r.status == LoadStatus.FAILED)
        logger.info(
            f"Load completed: {len(results) - failed} batches loaded, {failed} failed",
            pending=len(self._pending),
        )
        return results


def create_batch_loader(warehouse: Optional[SalesWarehouse] = None) -> BatchLoader:
    """Create a BatchLoader over a new or existing warehouse"""
    return BatchLoader(
        warehouse or SalesWarehouse(),
        quarantine_path=settings.ingestion.quarantine_path,
        chunk_size=settings.ingestion.chunk_size,
    )
