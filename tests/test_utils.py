"""
Tests for unit conversion and formatting helpers.
"""

from datetime import datetime

import pytest

from jupbot.utils import (
    format_date,
    format_time_difference,
    from_base_units,
    round_to_decimal,
    safe_div,
    to_base_units,
)


class TestUnits:

    @pytest.mark.parametrize("amount,decimals,expected", [
        (10, 6, 10_000_000),
        (0.4, 9, 400_000_000),
        (1.23456789, 6, 1_234_567),
        (0.0000000001, 9, 0),
    ])
    def test_to_base_units_rounds_down(self, amount, decimals, expected):
        assert to_base_units(amount, decimals) == expected

    def test_from_base_units(self):
        assert from_base_units(1_500_000, 6) == 1.5

    def test_safe_div_by_zero(self):
        assert safe_div(5.0, 0) == 0.0
        assert safe_div(5.0, 2.0) == 2.5

    def test_round_to_decimal(self):
        assert round_to_decimal(1.23456, 3) == 1.235


class TestFormatting:

    def test_format_date(self):
        assert format_date(datetime(2024, 3, 9, 7, 5, 1)) == "2024-03-09 07:05:01"

    def test_format_time_difference(self):
        start = 1_700_000_000
        end = start + 2 * 86400 + 3 * 3600 + 4 * 60 + 5

        assert format_time_difference(start, end) == "2 days 3 hours 4 minutes 5 seconds"

    def test_format_time_difference_is_symmetric(self):
        assert format_time_difference(100, 40) == "0 days 0 hours 1 minutes 0 seconds"
