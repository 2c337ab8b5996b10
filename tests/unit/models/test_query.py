# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Tests for partition scan filter builders."""

import datetime

import pytest

from cloudstructures.core.errors import InvalidArgumentError
from cloudstructures.models.query import (
    PartitionQuery,
    combine_filters,
    format_value,
    generate_filter_condition,
)


class TestFormatValue:
    def test_string_quotes_are_doubled(self):
        assert format_value("O'Brien") == "'O''Brien'"

    def test_scalars(self):
        assert format_value(None) == "null"
        assert format_value(True) == "true"
        assert format_value(42) == "42"
        assert format_value(1.5) == "1.5"

    def test_datetime_is_utc(self):
        value = datetime.datetime(2020, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc)
        assert format_value(value) == "datetime'2020-01-02T03:04:05Z'"


class TestFilterBuilders:
    def test_generate_condition(self):
        assert generate_filter_condition("RowKey", "GE", "100") == "RowKey ge '100'"

    def test_generate_condition_unknown_operator(self):
        with pytest.raises(InvalidArgumentError):
            generate_filter_condition("RowKey", "like", "x")

    def test_combine_filters(self):
        assert combine_filters("a eq 1", "OR", "b eq 2") == "(a eq 1) or (b eq 2)"

    def test_combine_filters_unknown_operator(self):
        with pytest.raises(InvalidArgumentError):
            combine_filters("a eq 1", "xor", "b eq 2")


class TestPartitionQuery:
    def test_partition_only(self):
        assert PartitionQuery("invoices").filter == "PartitionKey eq 'invoices'"

    def test_with_extra_filter(self):
        query = PartitionQuery("invoices", extra_filter="Amount gt 10")
        assert query.filter == "(PartitionKey eq 'invoices') and (Amount gt 10)"

    def test_or_operator_keeps_partition_condition_anded(self):
        query = PartitionQuery("a", extra_filter="RowKey eq 'x'", extra_operator="or")
        assert query.filter == "(PartitionKey eq 'a') and (RowKey eq 'x')"

    def test_or_operator_joins_extra_conditions(self):
        query = PartitionQuery("a", ["RowKey eq 'x'", "RowKey eq 'y'"], "OR")
        assert query.filter == "(PartitionKey eq 'a') and ((RowKey eq 'x') or (RowKey eq 'y'))"

    def test_empty_extra_sequence(self):
        assert PartitionQuery("a", []).filter == "PartitionKey eq 'a'"

    def test_unknown_operator_rejected_without_extra_filter(self):
        with pytest.raises(InvalidArgumentError):
            _ = PartitionQuery("a", extra_operator="xor").filter
