"""
Fact Registry

Append-only store of accepted SalesTransaction facts. A fact is unique on
(order_id, line_number, transaction_type): a Return or Exchange may share
the order line of its Sale, a second Sale may not. The uniqueness check and
the append happen under the lock of that key.
"""

from itertools import count
from threading import Lock
from typing import Dict, Iterator, List, Optional, Tuple

import structlog

from starschema.exceptions import DuplicateFactError, UnresolvedReferenceError
from starschema.measures.calculator import DerivedMeasures
from starschema.registry.locks import KeyedLocks
from starschema.schema.facts import FACT_REFERENCES, SalesFact, SalesTransactionRow, TransactionType

logger = structlog.get_logger(__name__)

UniquenessKey = Tuple[str, int, TransactionType]


class FactRegistry:
    """
    Append-only SalesTransaction fact store.

    No update or delete is exposed; corrections are new rows with
    transaction_type Return or Exchange.
    """

    def __init__(self, first_key: int = 1):
        self._facts: Dict[int, SalesFact] = {}
        self._index: Dict[UniquenessKey, int] = {}
        self._sequence = count(first_key)
        self._sequence_lock = Lock()
        self._locks = KeyedLocks()

    def insert(
        self,
        row: SalesTransactionRow,
        resolved_keys: Dict[str, int],
        measures: DerivedMeasures,
    ) -> int:
        """
        Append a validated fact row.

        Args:
            row: The incoming transaction line
            resolved_keys: Surrogate keys by reference column
                (customer_sk, product_sk, store_sk, order_date_sk, ship_date_sk)
            measures: Derived measures for the row

        Returns:
            transaction_sk of the new fact

        Raises:
            UnresolvedReferenceError: A mandatory dimension reference is missing
            DuplicateFactError: The order line already has this transaction type
        """
        for reference in FACT_REFERENCES:
            if reference.required and resolved_keys.get(reference.surrogate_key) is None:
                raise UnresolvedReferenceError(reference.dimension, getattr(row, reference.field))

        key = row.uniqueness_key
        with self._locks.hold(key):
            if key in self._index:
                logger.warning(
                    "Duplicate fact rejected",
                    order_id=row.order_id,
                    line_number=row.line_number,
                    transaction_type=row.transaction_type.value,
                )
                raise DuplicateFactError(row.order_id, row.line_number, row.transaction_type.value)

            with self._sequence_lock:
                transaction_sk = next(self._sequence)

            fact = SalesFact(
                transaction_sk=transaction_sk,
                customer_sk=resolved_keys["customer_sk"],
                product_sk=resolved_keys["product_sk"],
                store_sk=resolved_keys["store_sk"],
                order_date_sk=resolved_keys["order_date_sk"],
                ship_date_sk=resolved_keys.get("ship_date_sk"),
                row=row,
                measures=measures,
            )
            self._facts[transaction_sk] = fact
            self._index[key] = transaction_sk

        logger.debug(
            "Fact inserted",
            transaction_sk=transaction_sk,
            order_id=row.order_id,
            line_number=row.line_number,
        )
        return transaction_sk

    def contains(self, order_id: str, line_number: int, transaction_type: TransactionType) -> bool:
        return (order_id, line_number, TransactionType(transaction_type)) in self._index

    def get(self, transaction_sk: int) -> Optional[SalesFact]:
        return self._facts.get(transaction_sk)

    def find(self, order_id: str) -> List[SalesFact]:
        """All facts of an order, in insertion order"""
        return [fact for fact in self if fact.row.order_id == order_id]

    def __iter__(self) -> Iterator[SalesFact]:
        for transaction_sk in sorted(self._facts):
            yield self._facts[transaction_sk]

    def __len__(self) -> int:
        return len(self._facts)
