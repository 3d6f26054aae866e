"""
Unit Tests - Fact Registry and Sales Warehouse
"""
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from starschema.exceptions import DuplicateFactError, FactValidationError, UnresolvedReferenceError
from starschema.measures import compute
from starschema.registry import FactRegistry
from starschema.schema.facts import SalesTransactionRow, TransactionType

RESOLVED = {
    "customer_sk": 1,
    "product_sk": 1,
    "store_sk": 1,
    "order_date_sk": 20240315,
}


def make_row(sample_fact, **overrides) -> SalesTransactionRow:
    data = dict(sample_fact)
    data.update(overrides)
    return SalesTransactionRow.model_validate(data)


class TestFactRegistry:
    """Tests for FactRegistry.insert"""

    def test_insert_assigns_keys(self, sample_fact):
        """Test sequential transaction keys"""
        facts = FactRegistry()
        row = make_row(sample_fact)

        first = facts.insert(row, RESOLVED, compute(row.raw_measures()))
        second = facts.insert(make_row(sample_fact, line_number=2), RESOLVED, compute(row.raw_measures()))

        assert (first, second) == (1, 2)
        assert len(facts) == 2

    def test_duplicate_sale_rejected(self, sample_fact):
        """Test a second Sale for order 101 line 1 raises DuplicateFactError"""
        facts = FactRegistry()
        row = make_row(sample_fact, order_id="101")
        facts.insert(row, RESOLVED, compute(row.raw_measures()))

        with pytest.raises(DuplicateFactError):
            facts.insert(make_row(sample_fact, order_id="101"), RESOLVED, compute(row.raw_measures()))

        assert len(facts) == 1

    def test_return_shares_order_line(self, sample_fact):
        """Test a Return may reuse the order line of its Sale"""
        facts = FactRegistry()
        sale = make_row(sample_fact)
        facts.insert(sale, RESOLVED, compute(sale.raw_measures()))

        ret = make_row(sample_fact, transaction_type="return")
        facts.insert(ret, RESOLVED, compute(ret.raw_measures()))

        assert len(facts.find("101")) == 2
        assert facts.contains("101", 1, TransactionType.RETURN)

    def test_missing_mandatory_reference(self, sample_fact):
        """Test insert refuses a row without a resolved store"""
        facts = FactRegistry()
        row = make_row(sample_fact)
        resolved = {k: v for k, v in RESOLVED.items() if k != "store_sk"}

        with pytest.raises(UnresolvedReferenceError):
            facts.insert(row, resolved, compute(row.raw_measures()))

    def test_concurrent_duplicates_insert_once(self, sample_fact):
        """Test racing inserts of one key leave exactly one fact"""
        facts = FactRegistry()
        row = make_row(sample_fact)
        measures = compute(row.raw_measures())

        def attempt(_):
            try:
                facts.insert(row, RESOLVED, measures)
                return True
            except DuplicateFactError:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(attempt, range(50)))

        assert outcomes.count(True) == 1
        assert len(facts) == 1

    def test_no_update_or_delete(self):
        """Test the registry exposes no mutation beyond insert"""
        facts = FactRegistry()

        for name in ("update", "delete", "remove", "__setitem__", "__delitem__"):
            assert not hasattr(facts, name)


class TestSalesWarehouse:
    """Tests for SalesWarehouse.accept"""

    def test_accept_binds_version_at_order_time(self, warehouse, sample_fact):
        """Test a March order binds the Standard version of C1"""
        fact = warehouse.accept(sample_fact)

        standard, premium = warehouse.customers.versions("C1")
        assert fact.customer_sk == standard.surrogate_key
        assert fact.order_date_sk == 20240315
        assert fact.ship_date_sk == 20240316
        assert fact.measures.net_sales_amount == Decimal("190.00")

    def test_binding_survives_later_change(self, warehouse, sample_fact):
        """Test accepted facts keep their customer version after a new one opens"""
        fact = warehouse.accept(sample_fact)
        warehouse.register_dimension("customer", "C1", {"customer_name": "Ann Lee", "customer_segment": "Basic"}, "2024-09-01")

        assert warehouse.facts.get(fact.transaction_sk).customer_sk == fact.customer_sk

    def test_accept_raises_with_all_failures(self, warehouse, sample_fact):
        """Test FactValidationError carries every failed check"""
        row = dict(sample_fact, product_id="P404", quantity_shipped=5, quantity_ordered=3)

        with pytest.raises(FactValidationError) as exc_info:
            warehouse.accept(row)

        fields = [field for field, _ in exc_info.value.result.pairs()]
        assert "product_id" in fields
        assert "quantity_shipped" in fields
        assert len(warehouse.facts) == 0

    def test_accept_duplicate(self, warehouse, sample_fact):
        """Test the facade surfaces DuplicateFactError"""
        warehouse.accept(sample_fact)

        with pytest.raises(DuplicateFactError):
            warehouse.accept(sample_fact)

    def test_to_record_layout(self, warehouse, sample_fact):
        """Test the flattened fact matches the fact table columns"""
        record = warehouse.accept(sample_fact).to_record()

        assert record["order_line_number"] == 1
        assert record["transaction_type"] == "Sale"
        assert record["gross_sales_amount"] == Decimal("300.00")
        assert "line_number" not in record
        assert "customer_id" not in record

    def test_summary(self, warehouse, sample_fact):
        """Test row counts per table"""
        warehouse.accept(sample_fact)

        summary = warehouse.summary()

        assert summary["dim_customers"] == 3
        assert summary["dim_time"] == 31
        assert summary["fact_sales_transactions"] == 1

    def test_unknown_dimension(self, warehouse):
        """Test asking for an unknown dimension raises KeyError"""
        with pytest.raises(KeyError):
            warehouse.dimension("promotion")
