"""
Checked Unsigned Integer Arithmetic

All ledger amounts are unsigned integers bounded by a configurable bit
width (256 bits by default). Every operation here fails loudly instead of
wrapping; division truncates toward zero. NEVER uses float.
"""

from typing import Any
import re

from .errors import AmountOverflow, InvalidAmount

DEFAULT_AMOUNT_BITS = 256
UINT256_MAX = 2 ** DEFAULT_AMOUNT_BITS - 1

_DIGITS = re.compile(r"[0-9]+")


def uint_max(bits: int = DEFAULT_AMOUNT_BITS) -> int:
    """Largest value representable with ``bits`` unsigned bits"""
    if bits <= 0:
        raise ValueError("Amount bit width must be positive")
    return 2 ** bits - 1


def require_uint(value: Any, name: str = "amount", max_value: int = UINT256_MAX) -> int:
    """
    Validate that a value is an unsigned integer within range

    Args:
        value: Candidate amount
        name: Field name used in error messages
        max_value: Inclusive upper bound

    Returns:
        The validated integer

    Raises:
        InvalidAmount: If value is not an int or is negative
        AmountOverflow: If value exceeds max_value
    """
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise InvalidAmount(f"{name} must not be negative: {value}")
    if value > max_value:
        raise AmountOverflow(f"{name} {value} exceeds maximum {max_value}")
    return value


def parse_amount(value: str, name: str = "amount", max_value: int = UINT256_MAX) -> int:
    """
    Parse a decimal integer string into a validated amount

    Raises:
        InvalidAmount: If the string is not a plain non-negative integer
    """
    if not isinstance(value, str) or not _DIGITS.fullmatch(value.strip()):
        raise InvalidAmount(f"{name} must be a non-negative integer string, got {value!r}")
    digits = value.strip().lstrip("0") or "0"
    if len(digits) > len(str(max_value)):
        raise AmountOverflow(f"{name} exceeds maximum {max_value}")
    return require_uint(int(digits), name, max_value)


def checked_add(a: int, b: int, max_value: int = UINT256_MAX) -> int:
    """Add two amounts, failing on overflow"""
    result = a + b
    if result > max_value:
        raise AmountOverflow(f"Addition overflow: {a} + {b} exceeds {max_value}")
    return result


def checked_sub(a: int, b: int) -> int:
    """Subtract two amounts, failing on underflow"""
    if b > a:
        raise AmountOverflow(f"Subtraction underflow: {a} - {b}")
    return a - b


def mul_div(a: int, b: int, denominator: int, max_value: int = UINT256_MAX) -> int:
    """
    Compute floor(a * b / denominator) without intermediate overflow

    The product is formed at full precision so the only range check applies
    to the quotient.

    Raises:
        ZeroDivisionError: If denominator is zero
        AmountOverflow: If the quotient exceeds max_value
    """
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator must be non-zero")
    result = (a * b) // denominator
    if result > max_value:
        raise AmountOverflow(f"mul_div overflow: {a} * {b} / {denominator} exceeds {max_value}")
    return result
