"""
Unit Tests - Dimension Registry
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

import pytest

from starschema.exceptions import (
    InvalidAttributeError,
    NoMatchingVersionError,
    UnresolvedReferenceError,
    VersionConflictError,
)
from starschema.registry import DimensionRegistry
from starschema.schema.dimensions import CUSTOMER, PRODUCT, TIME


def assert_history_well_formed(registry: DimensionRegistry, business_key):
    versions = registry.versions(business_key)
    assert sum(1 for v in versions if v.is_current) == 1
    assert versions[-1].is_current and versions[-1].is_open
    for earlier, later in zip(versions, versions[1:]):
        assert earlier.effective_end == later.effective_start
        assert not earlier.is_current


class TestRegister:
    """Tests for DimensionRegistry.register"""

    def test_new_business_key_opens_version(self):
        """Test first registration assigns a key and an open, current version"""
        customers = DimensionRegistry(CUSTOMER)

        sk = customers.register("C1", {"customer_name": "Ann"}, date(2024, 1, 1))

        version = customers.get(sk)
        assert version.business_key == "C1"
        assert version.effective_start == date(2024, 1, 1)
        assert version.effective_end is None
        assert version.is_current

    def test_unchanged_attributes_return_same_key(self):
        """Test re-registering identical attributes is a no-op"""
        customers = DimensionRegistry(CUSTOMER)
        sk = customers.register("C1", {"customer_name": "Ann"}, date(2024, 1, 1))

        again = customers.register("C1", {"customer_name": "Ann"}, date(2024, 5, 1))

        assert again == sk
        assert len(customers.versions("C1")) == 1

    def test_scd_change_closes_and_opens(self):
        """Test Standard -> Premium produces a closed and an open version"""
        customers = DimensionRegistry(CUSTOMER)
        first = customers.register("C1", {"customer_name": "Ann", "customer_segment": "Standard"}, "2024-01-01")

        second = customers.register("C1", {"customer_name": "Ann", "customer_segment": "Premium"}, "2024-06-01")

        assert second != first
        old, new = customers.versions("C1")
        assert old.surrogate_key == first
        assert old.effective_end == date(2024, 6, 1)
        assert old.is_current is False
        assert new.surrogate_key == second
        assert new.effective_start == date(2024, 6, 1)
        assert new.is_current is True
        assert customers.current("C1").attributes.customer_segment == "Premium"

    def test_history_stays_contiguous(self):
        """Test several changes keep intervals contiguous with one current"""
        customers = DimensionRegistry(CUSTOMER)
        start = date(2024, 1, 1)
        for i, segment in enumerate(["Basic", "Standard", "Premium", "Standard"]):
            customers.register("C1", {"customer_name": "Ann", "customer_segment": segment}, start + timedelta(days=30 * i))

        assert len(customers.versions("C1")) == 4
        assert_history_well_formed(customers, "C1")

    def test_change_not_after_current_start_conflicts(self):
        """Test a change dated on the current start is rejected"""
        customers = DimensionRegistry(CUSTOMER)
        customers.register("C1", {"customer_name": "Ann"}, "2024-06-01")

        with pytest.raises(VersionConflictError):
            customers.register("C1", {"customer_name": "Ann B."}, "2024-06-01")
        with pytest.raises(VersionConflictError):
            customers.register("C1", {"customer_name": "Ann B."}, "2024-01-01")

        assert len(customers.versions("C1")) == 1

    def test_non_scd_change_overwrites_in_place(self):
        """Test product changes keep the surrogate key"""
        products = DimensionRegistry(PRODUCT)
        sk = products.register("P1", {"product_name": "Lamp"}, "2024-01-01")

        again = products.register("P1", {"product_name": "Desk Lamp"}, "2024-02-01")

        assert again == sk
        assert len(products) == 1
        assert products.get(sk).attributes.product_name == "Desk Lamp"

    def test_missing_required_attribute(self):
        """Test a missing customer_name raises InvalidAttributeError"""
        customers = DimensionRegistry(CUSTOMER)

        with pytest.raises(InvalidAttributeError) as exc_info:
            customers.register("C1", {"city": "Austin"}, "2024-01-01")

        assert exc_info.value.field == "customer_name"
        assert "C1" not in customers

    def test_unparseable_date_attribute(self):
        """Test a malformed date attribute raises InvalidAttributeError"""
        customers = DimensionRegistry(CUSTOMER)

        with pytest.raises(InvalidAttributeError):
            customers.register("C1", {"customer_name": "Ann", "date_of_birth": "not-a-date"}, "2024-01-01")

    @pytest.mark.parametrize("as_of", ["31/12/2024", "2024-01-01garbage", "2024-01-01 junk"])
    def test_unparseable_as_of_date(self, as_of):
        """Test a malformed effective date raises InvalidAttributeError"""
        customers = DimensionRegistry(CUSTOMER)

        with pytest.raises(InvalidAttributeError):
            customers.register("C1", {"customer_name": "Ann"}, as_of)

        assert "C1" not in customers

    def test_timestamp_as_of_date(self):
        """Test an ISO timestamp string takes its date part"""
        customers = DimensionRegistry(CUSTOMER)

        customers.register("C1", {"customer_name": "Ann"}, "2024-01-01T09:30:00")

        assert customers.current("C1").effective_start == date(2024, 1, 1)

    def test_empty_business_key(self):
        """Test an empty business key is rejected"""
        customers = DimensionRegistry(CUSTOMER)

        with pytest.raises(InvalidAttributeError):
            customers.register("  ", {"customer_name": "Ann"}, "2024-01-01")

    def test_register_row(self):
        """Test registering from a flat row"""
        products = DimensionRegistry(PRODUCT)

        sk = products.register_row({"product_id": "P9", "product_name": "Rug", "brand": "Weave"}, "2024-01-01")

        assert products.get(sk).attributes.brand == "Weave"

    def test_register_row_without_business_key(self):
        """Test a row lacking its business key column is rejected"""
        products = DimensionRegistry(PRODUCT)

        with pytest.raises(InvalidAttributeError):
            products.register_row({"product_name": "Rug"}, "2024-01-01")

    def test_concurrent_changes_leave_one_current_version(self):
        """Test parallel writers for one key never produce two open versions"""
        customers = DimensionRegistry(CUSTOMER)
        customers.register("C1", {"customer_name": "v0"}, date(2024, 1, 1))

        def change(i):
            try:
                customers.register("C1", {"customer_name": f"v{i}"}, date(2024, 1, 1) + timedelta(days=i))
            except VersionConflictError:
                pass

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(change, range(1, 41)))

        assert_history_well_formed(customers, "C1")


class TestResolve:
    """Tests for DimensionRegistry.resolve"""

    @pytest.fixture
    def customers(self):
        registry = DimensionRegistry(CUSTOMER)
        registry.register("C1", {"customer_name": "Ann", "customer_segment": "Standard"}, "2024-01-01")
        registry.register("C1", {"customer_name": "Ann", "customer_segment": "Premium"}, "2024-06-01")
        return registry

    def test_date_between_versions_resolves_first(self, customers):
        """Test a date inside the first interval resolves to the first version"""
        first, second = customers.versions("C1")

        assert customers.resolve("C1", date(2024, 3, 15)) == first.surrogate_key
        assert customers.resolve("C1", date(2024, 6, 1)) == second.surrogate_key
        assert customers.resolve("C1", date(2030, 1, 1)) == second.surrogate_key

    def test_stable_within_interval(self, customers):
        """Test every date of an interval resolves to the same key"""
        first = customers.versions("C1")[0]
        day = first.effective_start
        while day < first.effective_end:
            assert customers.resolve("C1", day) == first.surrogate_key
            day += timedelta(days=1)

    def test_accepts_datetime(self, customers):
        """Test resolve truncates a timestamp to its date"""
        first = customers.versions("C1")[0]

        assert customers.resolve("C1", "2024-05-31T23:59:59") == first.surrogate_key

    def test_before_first_version(self, customers):
        """Test a date before the first version raises NoMatchingVersionError"""
        with pytest.raises(NoMatchingVersionError):
            customers.resolve("C1", date(2023, 12, 31))

    def test_unknown_key(self, customers):
        """Test an unknown business key raises UnresolvedReferenceError"""
        with pytest.raises(UnresolvedReferenceError):
            customers.resolve("C404", date(2024, 3, 1))

    def test_non_versioned_resolves_any_date(self):
        """Test in-place dimensions resolve their row regardless of date"""
        products = DimensionRegistry(PRODUCT)
        sk = products.register("P1", {"product_name": "Lamp"}, "2024-06-01")

        assert products.resolve("P1", date(2020, 1, 1)) == sk


class TestTimeDimension:
    """Tests for the Time dimension registry"""

    def test_smart_key(self):
        """Test the time surrogate key is YYYYMMDD"""
        calendar = DimensionRegistry(TIME)

        sk = calendar.register("2024-03-15", None)

        assert sk == 20240315
        assert calendar.resolve(date(2024, 3, 15), date(2024, 3, 15)) == 20240315

    def test_attributes_are_derived(self):
        """Test calendar attributes are filled from the date"""
        calendar = DimensionRegistry(TIME)
        sk = calendar.register(date(2024, 3, 16), {"is_holiday": "false"})

        attributes = calendar.get(sk).attributes
        assert attributes.day_name == "Saturday"
        assert attributes.is_weekend is True
        assert attributes.is_holiday is False
        assert attributes.is_business_day is False
        assert attributes.quarter_number == 1

    def test_record_has_no_scd_columns(self):
        """Test time rows flatten without SCD or audit columns"""
        calendar = DimensionRegistry(TIME)
        sk = calendar.register(date(2024, 1, 1), {"is_holiday": True, "holiday_name": "New Year"})

        record = calendar.get(sk).to_record(TIME)

        assert record["time_sk"] == 20240101
        assert record["full_date"] == date(2024, 1, 1)
        assert record["holiday_name"] == "New Year"
        assert "is_current" not in record
        assert "created_timestamp" not in record


class TestReads:
    """Tests for the registry read API"""

    def test_rows_ordered_by_surrogate_key(self):
        """Test rows() yields every version in key order"""
        customers = DimensionRegistry(CUSTOMER)
        customers.register("C2", {"customer_name": "Bo"}, "2024-01-01")
        customers.register("C1", {"customer_name": "Ann"}, "2024-01-01")
        customers.register("C1", {"customer_name": "Ann B."}, "2024-02-01")

        keys = [row.surrogate_key for row in customers.rows()]

        assert keys == [1, 2, 3]
        assert len(customers) == 3
        assert sorted(customers.business_keys()) == ["C1", "C2"]

    def test_customer_record_has_scd_columns(self):
        """Test customer rows flatten with SCD and audit columns"""
        customers = DimensionRegistry(CUSTOMER)
        sk = customers.register("C1", {"customer_name": "Ann"}, "2024-01-01")

        record = customers.get(sk).to_record(CUSTOMER)

        assert record["customer_sk"] == sk
        assert record["customer_id"] == "C1"
        assert record["effective_start_date"] == date(2024, 1, 1)
        assert record["effective_end_date"] is None
        assert record["is_current"] is True
        assert "created_timestamp" in record

    def test_current_of_unknown_key(self):
        """Test current() returns None for an unknown key"""
        assert DimensionRegistry(CUSTOMER).current("C1") is None
