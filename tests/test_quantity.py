"""
Tests for CPU and memory quantity conversion
"""

import pytest

from vpa_resizer.quantity import (
    GI,
    MI,
    display_memory,
    format_memory,
    memory_request_quantity,
    parse_cpu_millicores,
    parse_memory_bytes,
)


class TestParseCpu:
    """Test parse_cpu_millicores"""

    @pytest.mark.parametrize("quantity,expected", [
        ("250m", 250),
        ("2", 2000),
        ("0.5", 500),
        ("1.5", 1500),
        ("100.7m", 100),
        (" 300m ", 300),
        (2, 2000),
    ])
    def test_valid_quantities(self, quantity, expected):
        """Test canonical millicores for valid input"""
        assert parse_cpu_millicores(quantity) == expected

    @pytest.mark.parametrize("quantity", [None, "", "abc", "10x", "-5", "N/A", True])
    def test_unparseable_is_zero(self, quantity):
        """Test malformed input never raises"""
        assert parse_cpu_millicores(quantity) == 0

    def test_sub_millicore_floor(self):
        """Fractions of a millicore are dropped"""
        assert parse_cpu_millicores("0.0005") == 0
        assert parse_cpu_millicores("0.0015") == 1


class TestParseMemory:
    """Test parse_memory_bytes"""

    @pytest.mark.parametrize("quantity,expected", [
        ("128Mi", 128 * MI),
        ("1Gi", GI),
        ("1.5Gi", GI + GI // 2),
        ("64Ki", 64 * 1024),
        ("1G", 1000 ** 3),
        ("500M", 500 * 1000 ** 2),
        ("262144k", 262144000),
        ("1024", 1024),
    ])
    def test_valid_quantities(self, quantity, expected):
        """Test binary and decimal suffixes"""
        assert parse_memory_bytes(quantity) == expected

    @pytest.mark.parametrize("quantity", [None, "", "garbage", "12Xi", "Mi", "N/A"])
    def test_unparseable_is_zero(self, quantity):
        """Test malformed input never raises"""
        assert parse_memory_bytes(quantity) == 0


class TestFormatMemory:
    """Test format_memory and memory_request_quantity"""

    def test_units(self):
        """Largest unit with a value of at least 1"""
        assert format_memory(GI) == "1.0Gi"
        assert format_memory(GI + GI // 2) == "1.5Gi"
        assert format_memory(128 * MI) == "128Mi"
        assert format_memory(2048) == "2Ki"
        assert format_memory(500) == "500"
        assert format_memory(0) == "0"

    def test_gi_truncates(self):
        """One decimal place, truncated not rounded"""
        assert format_memory(GI + int(GI * 0.99)) == "1.9Gi"

    def test_request_quantity_whole_mi(self):
        """Patch values are whole Mi"""
        assert memory_request_quantity(262144000) == "250Mi"
        assert memory_request_quantity(128 * MI + 1) == "128Mi"

    def test_request_quantity_minimum(self):
        """Never below 1Mi"""
        assert memory_request_quantity(100) == "1Mi"
        assert memory_request_quantity(0) == "1Mi"

    def test_whole_mi_round_trip(self):
        """Whole-Mi byte counts survive format then parse exactly"""
        for mib in (1, 7, 128, 250, 1000, 4096, 65536):
            assert parse_memory_bytes(memory_request_quantity(mib * MI)) == mib * MI


class TestDisplayMemory:
    """Test display_memory"""

    def test_not_available(self):
        assert display_memory(None) == "N/A"
        assert display_memory("N/A") == "N/A"
        assert display_memory("") == "N/A"

    def test_formats_parseable(self):
        assert display_memory("262144k") == "250Mi"
        assert display_memory("2147483648") == "2.0Gi"

    def test_echoes_unparseable(self):
        """Unparseable values are shown as received"""
        assert display_memory("bogus") == "bogus"
