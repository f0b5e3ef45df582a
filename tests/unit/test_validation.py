"""
Unit tests for input validation.

Tests cover:
1. Bytes and address checks
2. Integer, amount and field element bounds
3. Hex string and field hex checks
4. Raising parsers used by the dict decoders
"""

import pytest

from shieldpool.crypto import FIELD_PRIME
from shieldpool.utils.validation import (
    MAX_ARRAY_LENGTH,
    parse_field_hex,
    require_array,
    validate_address,
    validate_amount,
    validate_array,
    validate_bytes,
    validate_field_element,
    validate_field_hex,
    validate_hex_string,
    validate_integer,
)


class TestBytes:
    """Byte strings and addresses."""

    def test_accepts_bytes(self):
        assert validate_bytes(b"abc", "data") == (True, "")
        assert validate_bytes(bytearray(3), "data", expected_length=3)[0]

    def test_rejects_str(self):
        valid, error = validate_bytes("abc", "data")
        assert not valid
        assert "data must be bytes" in error

    def test_length_checks(self):
        assert not validate_bytes(b"ab", "data", expected_length=3)[0]
        assert not validate_bytes(b"abcd", "data", max_length=3)[0]

    def test_address(self):
        assert validate_address(bytes(20))[0]
        assert not validate_address(bytes(32))[0]
        assert not validate_address("0x" + "00" * 20)[0]


class TestIntegers:
    """Bounded integers."""

    def test_bool_is_not_an_integer(self):
        assert not validate_integer(True, "flag", 0, 1)[0]

    def test_bounds(self):
        assert validate_integer(5, "x", 1, 10)[0]
        assert not validate_integer(0, "x", 1, 10)[0]
        assert not validate_integer(11, "x", 1, 10)[0]

    @pytest.mark.parametrize("value,expected", [
        (0, True),
        (FIELD_PRIME - 1, True),
        (FIELD_PRIME, False),
        (-1, False),
        ("1", False),
    ])
    def test_field_element(self, value, expected):
        assert validate_field_element(value)[0] is expected

    def test_amount(self):
        assert validate_amount(1)[0]
        assert not validate_amount(0)[0]
        assert not validate_amount(2 ** 256)[0]


class TestArrays:
    """Lists and tuples."""

    def test_array(self):
        assert validate_array([1, 2], "items")[0]
        assert validate_array((1,), "items")[0]
        assert not validate_array({1}, "items")[0]
        assert not validate_array([0] * (MAX_ARRAY_LENGTH + 1), "items")[0]


class TestHex:
    """Hex strings."""

    def test_prefix_optional(self):
        assert validate_hex_string("0xabcd", "h")[0]
        assert validate_hex_string("abcd", "h")[0]

    def test_bad_hex(self):
        assert not validate_hex_string("abc", "h")[0]
        assert not validate_hex_string("zz", "h")[0]
        assert not validate_hex_string(b"ab", "h")[0]

    def test_expected_length(self):
        assert validate_hex_string("00" * 20, "h", expected_bytes=20)[0]
        assert not validate_hex_string("00" * 19, "h", expected_bytes=20)[0]

    def test_field_hex(self):
        assert validate_field_hex("0x" + "00" * 31 + "01", "f")[0]
        assert not validate_field_hex("0x01", "f")[0]
        assert not validate_field_hex(f"{FIELD_PRIME:064x}", "f")[0]
        assert validate_field_hex(f"{FIELD_PRIME - 1:064x}", "f")[0]


class TestParsing:
    """Parsers that raise instead of returning a flag."""

    def test_parse_field_hex(self):
        assert parse_field_hex("0x" + "00" * 31 + "2a", "f") == 42
        assert parse_field_hex(f"{FIELD_PRIME - 1:064x}", "f") == FIELD_PRIME - 1

    def test_parse_field_hex_rejects(self):
        for bad in ("0x2a", "0x" + "00" * 33, f"{FIELD_PRIME:064x}", "0x" + "zz" * 32, 42, None):
            with pytest.raises(ValueError):
                parse_field_hex(bad, "f")

    def test_error_names_field(self):
        with pytest.raises(ValueError, match="sibling"):
            parse_field_hex("0x01", "sibling")

    def test_require_array(self):
        require_array([1, 2], "items")
        require_array([0] * 5, "items", max_length=5)
        with pytest.raises(ValueError):
            require_array([0] * 6, "items", max_length=5)
        with pytest.raises(ValueError):
            require_array("abc", "items")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
