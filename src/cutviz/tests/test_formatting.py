from __future__ import annotations

import pytest

from cutviz.formatting import (
    FormatError,
    date_long,
    date_range,
    date_short,
    format_number,
    format_range,
    number_formatter,
    parse_range,
)


@pytest.mark.parametrize(
    ("spec", "value", "expected"),
    [
        (",f", 2000, "2,000"),
        (",.2f", 1234.5, "1,234.50"),
        (".1f", 0.25, "0.2"),
        ("d", 3.6, "4"),
        (",d", 1234567, "1,234,567"),
        (".2%", 0.256, "25.60%"),
        ("s", 2000000, "2M"),
        (".2s", 1500, "1.5k"),
        ("s", 0, "0"),
    ],
)
def test_number_formatter(spec, value, expected):
    assert number_formatter(spec)(value) == expected


@pytest.mark.parametrize("spec", ["bogus", "$,.2f", ".f2"])
def test_unsupported_format(spec):
    with pytest.raises(FormatError):
        number_formatter(spec)


def test_format_number():
    assert format_number(1000.0) == "1,000"
    assert format_number(1234.5) == "1,234.5"
    assert format_number(0.125) == "0.12"


class TestDates:
    def test_long_labels(self):
        assert date_long("2024-03-05") == "5 March 2024"
        assert date_long("2024-03-05", "year") == "2024"
        assert date_long("2024-02-01", "quarter") == "Q1 2024"
        assert date_long("2024-01-01", "week") == "Week 1, 2024"

    def test_short_labels(self):
        assert date_short("2024-03-05") == "5 Mar 24"
        assert date_short("2024-04-01", "quarter") == "Q2 24"
        assert date_short("2024-03-01", "month") == "Mar 24"

    def test_ranges(self):
        assert date_range("2024-01-01", "month") == ("2024-01-01", "2024-02-01")
        assert date_range("2024-10-01", "quarter") == ("2024-10-01", "2025-01-01")
        assert date_range("2024-02-28") == ("2024-02-28", "2024-02-29")


def test_range_values():
    assert format_range(5, 10) == "5..10"
    assert parse_range("5..10") == ("5", "10")
    assert parse_range("2024-01-01..2024-02-01") == ("2024-01-01", "2024-02-01")
    assert parse_range("a") is None
    assert parse_range(5) is None
