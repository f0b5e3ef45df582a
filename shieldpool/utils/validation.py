"""
Input Validation - checks for values crossing the pool API.

Every validator returns (is_valid, error_message); callers turn a failure
into an exception at the edge.
"""

from typing import Tuple, Any, Optional

from shieldpool.crypto import FIELD_PRIME, FIELD_ELEMENT_SIZE, ADDRESS_SIZE, hex_to_field

# =============================================================================
# Constants
# =============================================================================

MAX_ARRAY_LENGTH = 1024

MIN_AMOUNT = 1
MAX_AMOUNT = 2**256 - 1


# =============================================================================
# Validation Functions
# =============================================================================


def validate_bytes(
    data: Any,
    name: str,
    expected_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> Tuple[bool, str]:
    """
    Validate bytes input.

    Args:
        data: Data to validate
        name: Field name for error messages
        expected_length: Exact expected length
        max_length: Maximum allowed length

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(data, (bytes, bytearray)):
        return False, f"{name} must be bytes, got {type(data).__name__}"

    if expected_length is not None and len(data) != expected_length:
        return False, f"{name} must be {expected_length} bytes, got {len(data)}"

    if max_length is not None and len(data) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(data)}"

    return True, ""


def validate_address(address: Any) -> Tuple[bool, str]:
    """Validate a recipient address."""
    return validate_bytes(address, "address", expected_length=ADDRESS_SIZE)


def validate_integer(
    value: Any,
    name: str,
    min_val: int = MIN_AMOUNT,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """Validate integer within bounds."""
    # bool is an int subclass but never a meaningful amount or field element
    if not isinstance(value, int) or isinstance(value, bool):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_field_element(value: Any, name: str = "field_element") -> Tuple[bool, str]:
    """Validate a field element (< FIELD_PRIME)."""
    return validate_integer(value, name, 0, FIELD_PRIME - 1)


def validate_amount(amount: Any) -> Tuple[bool, str]:
    """Validate a deposit amount."""
    return validate_integer(amount, "amount", MIN_AMOUNT, MAX_AMOUNT)


def validate_array(
    data: Any,
    name: str,
    max_length: int = MAX_ARRAY_LENGTH,
) -> Tuple[bool, str]:
    """Validate list/tuple input."""
    if not isinstance(data, (list, tuple)):
        return False, f"{name} must be list/tuple, got {type(data).__name__}"

    if len(data) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(data)}"

    return True, ""


def validate_hex_string(value: Any, name: str, expected_bytes: Optional[int] = None) -> Tuple[bool, str]:
    """
    Validate a hex string (with or without 0x prefix).

    Args:
        value: Value to validate
        name: Field name
        expected_bytes: Expected byte length when decoded

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    hex_str = value[2:] if value.startswith("0x") else value

    if len(hex_str) % 2 != 0:
        return False, f"{name} has odd length, invalid hex"

    try:
        bytes.fromhex(hex_str)
    except ValueError:
        return False, f"{name} contains invalid hex characters"

    if expected_bytes is not None:
        actual_bytes = len(hex_str) // 2
        if actual_bytes != expected_bytes:
            return False, f"{name} must be {expected_bytes} bytes, got {actual_bytes}"

    return True, ""


def validate_field_hex(value: Any, name: str) -> Tuple[bool, str]:
    """Validate a 32-byte hex encoding of a field element."""
    valid, err = validate_hex_string(value, name, FIELD_ELEMENT_SIZE)
    if not valid:
        return False, err

    hex_str = value[2:] if value.startswith("0x") else value
    if int(hex_str, 16) >= FIELD_PRIME:
        return False, f"{name} exceeds field prime"

    return True, ""


# =============================================================================
# Parsing Helpers
# =============================================================================


def parse_field_hex(value: Any, name: str) -> int:
    """
    Decode a 32-byte field hex string from untrusted input.

    Raises:
        ValueError: If value is not a valid field element encoding
    """
    valid, error = validate_field_hex(value, name)
    if not valid:
        raise ValueError(error)
    return hex_to_field(value)


def require_array(data: Any, name: str, max_length: int = MAX_ARRAY_LENGTH) -> None:
    """Raise ValueError unless data is a list/tuple of at most max_length items."""
    valid, error = validate_array(data, name, max_length)
    if not valid:
        raise ValueError(error)


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "validate_bytes",
    "validate_address",
    "validate_integer",
    "validate_field_element",
    "validate_amount",
    "validate_array",
    "validate_hex_string",
    "validate_field_hex",
    "parse_field_hex",
    "require_array",
    "MAX_ARRAY_LENGTH",
]
