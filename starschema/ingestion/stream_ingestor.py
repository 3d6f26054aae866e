"""
Stream Ingestor

Single-row fact ingestion for the streaming path. Dimension updates may lag
behind the facts that reference them, so a reference that does not resolve
yet is retried with exponential backoff instead of being treated as a hard
schema violation. Rows still unresolved after the last retry are handed
back as pending; non-retryable failures return immediately.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterable, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

import structlog
from prometheus_client import Counter, Histogram

from starschema.config import get_settings
from starschema.exceptions import Disposition, FactValidationError, StarSchemaError
from starschema.registry.warehouse import SalesWarehouse
from starschema.schema.facts import SalesTransactionRow

logger = structlog.get_logger(__name__)
settings = get_settings()


# =============================================================================
# METRICS
# =============================================================================

STREAM_ROWS = Counter(
    "starschema_stream_rows_total",
    "Fact rows ingested from the stream",
    ["status"],
)

STREAM_RETRIES = Counter(
    "starschema_stream_retries_total",
    "Retries of fact rows with unresolved references",
)

STREAM_PROCESSING_TIME = Histogram(
    "starschema_stream_processing_seconds",
    "Time spent ingesting one fact row, retries included",
)


class IngestStatus(str, Enum):
    """Outcome of ingesting one row"""
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    QUARANTINED = "quarantined"
    PENDING = "pending"


@dataclass
class RetryPolicy:
    """Exponential backoff for unresolved references"""
    max_retries: int = 5
    retry_backoff_ms: int = 200
    backoff_multiplier: float = 2.0
    max_backoff_ms: int = 10000

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        ingestion = settings.ingestion
        return cls(
            max_retries=ingestion.max_retries,
            retry_backoff_ms=ingestion.retry_backoff_ms,
            backoff_multiplier=ingestion.backoff_multiplier,
            max_backoff_ms=ingestion.max_backoff_ms,
        )

    def delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (1-based)"""
        backoff_ms = self.retry_backoff_ms * self.backoff_multiplier ** (attempt - 1)
        return min(backoff_ms, self.max_backoff_ms) / 1000


@dataclass
class IngestOutcome:
    """Result of ingesting one fact row"""
    status: IngestStatus
    attempts: int
    transaction_sk: Optional[int] = None
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.status == IngestStatus.ACCEPTED


class StreamIngestor:
    """
    Ingests fact rows one at a time into a SalesWarehouse.

    Example:
        ingestor = StreamIngestor(warehouse)
        outcome = await ingestor.ingest(row)
    """

    def __init__(
        self,
        warehouse: SalesWarehouse,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.warehouse = warehouse
        self.policy = policy or RetryPolicy.from_settings()
        self._sleep = sleep

    def _finish(self, outcome: IngestOutcome) -> IngestOutcome:
        STREAM_ROWS.labels(status=outcome.status.value).inc()
        return outcome

    async def ingest(self, row: Union[SalesTransactionRow, Mapping[str, Any]]) -> IngestOutcome:
        """
        Accept one fact row, retrying while its references do not resolve.

        Returns:
            IngestOutcome; PENDING when retries are exhausted on a reference
            that may still arrive
        """
        attempt = 0
        with STREAM_PROCESSING_TIME.time():
            while True:
                attempt += 1
                try:
                    fact = self.warehouse.accept(row)
                except FactValidationError as e:
                    errors = [issue.to_dict() for issue in e.result.errors]
                    if e.retryable and attempt <= self.policy.max_retries:
                        delay = self.policy.delay(attempt)
                        STREAM_RETRIES.inc()
                        logger.info(
                            "Reference not resolved, retrying",
                            attempt=attempt,
                            delay_seconds=delay,
                            errors=errors,
                        )
                        await self._sleep(delay)
                        continue

                    if e.retryable:
                        status = IngestStatus.PENDING if e.disposition == Disposition.RETRY else IngestStatus.QUARANTINED
                        logger.warning("Retries exhausted", attempts=attempt, errors=errors)
                    elif e.disposition == Disposition.QUARANTINE:
                        status = IngestStatus.QUARANTINED
                    else:
                        status = IngestStatus.REJECTED
                    return self._finish(IngestOutcome(status=status, attempts=attempt, errors=errors))
                except StarSchemaError as e:
                    logger.warning("Fact row rejected", error=str(e))
                    return self._finish(IngestOutcome(
                        status=IngestStatus.REJECTED,
                        attempts=attempt,
                        errors=[{"field": "row", "reason": str(e), "error": type(e).__name__}],
                    ))

                return self._finish(IngestOutcome(
                    status=IngestStatus.ACCEPTED,
                    attempts=attempt,
                    transaction_sk=fact.transaction_sk,
                ))

    async def ingest_many(
        self,
        rows: Union[Iterable[Mapping[str, Any]], AsyncIterable[Mapping[str, Any]]],
    ) -> List[IngestOutcome]:
        """Ingest rows in arrival order"""
        outcomes = []
        if hasattr(rows, "__aiter__"):
            async for row in rows:
                outcomes.append(await self.ingest(row))
        else:
            for row in rows:
                outcomes.append(await self.ingest(row))
        return outcomes
