"""Fixed-point arithmetic for the settlement core.

Every function is stateless and operates on plain Python ints.

Conventions:
- USD values, factors and prices are scaled by ``FLOAT_PRECISION`` (1e30).
- A price is USD per smallest token unit, scaled by 1e30, so
  ``token_amount * price`` is a USD value.
- Division truncates toward zero for signed and unsigned operands alike.
  Python's ``//`` floors toward -inf, so every division goes through
  ``div_trunc`` (or an explicit round-up helper).
- Results are checked against the 256-bit domain: leaving it raises
  ``ArithmeticOverflowError`` rather than wrapping.
"""

from __future__ import annotations

from math import gcd, isqrt

from .errors import ArithmeticOverflowError

FLOAT_PRECISION: int = 10**30

MAX_UINT256: int = 2**256 - 1
MAX_INT256: int = 2**255 - 1
MIN_INT256: int = -(2**255)

# Fractional exponents are evaluated with integer n-th roots; keep n small.
MAX_EXPONENT_DENOMINATOR: int = 100


# -- Domain checks -----------------------------------------------------------

def _require_int(value: object, name: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")


def check_uint(value: int, name: str = "value") -> int:
    """Return *value* if it fits an unsigned 256-bit slot."""
    _require_int(value, name)
    if value < 0 or value > MAX_UINT256:
        raise ArithmeticOverflowError(f"{name} out of uint256 range: {value}")
    return value


def check_int(value: int, name: str = "value") -> int:
    """Return *value* if it fits a signed 256-bit slot."""
    _require_int(value, name)
    if value < MIN_INT256 or value > MAX_INT256:
        raise ArithmeticOverflowError(f"{name} out of int256 range: {value}")
    return value


def _check_result(value: int) -> int:
    return check_uint(value, "result") if value >= 0 else check_int(value, "result")


# -- Basic helpers -----------------------------------------------------------

def abs_diff(a: int, b: int) -> int:
    return a - b if a > b else b - a


def div_trunc(numerator: int, denominator: int) -> int:
    """Signed integer division truncating toward zero."""
    if denominator == 0:
        raise ArithmeticOverflowError("division by zero")
    q = abs(numerator) // abs(denominator)
    return q if (numerator >= 0) == (denominator > 0) else -q


def mul_div(value: int, numerator: int, denominator: int) -> int:
    """``value * numerator / denominator`` with an exact intermediate, truncated."""
    return _check_result(div_trunc(value * numerator, denominator))


def roundup_division(a: int, b: int) -> int:
    """Unsigned ``ceil(a / b)``."""
    check_uint(a, "a")
    if b <= 0:
        raise ArithmeticOverflowError("division by zero")
    return (a + b - 1) // b


def roundup_magnitude_division(a: int, b: int) -> int:
    """Signed division rounding the magnitude up: ``-7 / 2 -> -4``."""
    if b <= 0:
        raise ArithmeticOverflowError("division by zero")
    if a < 0:
        return _check_result(-((-a + b - 1) // b))
    return _check_result((a + b - 1) // b)


def apply_factor(value: int, factor: int) -> int:
    """``value * factor / FLOAT_PRECISION``."""
    return mul_div(value, factor, FLOAT_PRECISION)


def to_factor(value: int, divisor: int) -> int:
    """``value / divisor`` as a FLOAT_PRECISION factor."""
    return mul_div(value, FLOAT_PRECISION, divisor)


def sum_return_uint(a: int, b: int) -> int:
    """``a + b`` for unsigned *a* and signed *b*; the sum must stay unsigned."""
    total = a + b
    if total < 0:
        raise ArithmeticOverflowError(f"unsigned sum underflow: {a} + {b}")
    return check_uint(total, "sum")


# -- Exponents ---------------------------------------------------------------

def integer_root(value: int, n: int) -> int:
    """Floor of the *n*-th root of a non-negative int (Newton iteration)."""
    if value < 0:
        raise ValueError(f"radicand must be non-negative: {value}")
    if n < 1:
        raise ValueError(f"root degree must be positive: {n}")
    if n == 1 or value < 2:
        return value
    if n == 2:
        return isqrt(value)

    x = 1 << ((value.bit_length() + n - 1) // n)
    while True:
        y = ((n - 1) * x + value // x ** (n - 1)) // n
        if y >= x:
            return x
        x = y


def apply_exponent_factor(float_value: int, exponent_factor: int) -> int:
    """``(float_value / FP) ** (exponent_factor / FP) * FP``, truncated.

    Values below one unit (``FLOAT_PRECISION``) map to zero, matching the
    impact curve's behavior for dust imbalances. Integer exponents are exact;
    a fractional exponent ``num / den`` (reduced) must have ``den`` at most
    ``MAX_EXPONENT_DENOMINATOR`` and is evaluated as an integer ``den``-th root.
    """
    check_uint(float_value, "float_value")
    check_uint(exponent_factor, "exponent_factor")
    if exponent_factor == FLOAT_PRECISION:
        return float_value
    if float_value < FLOAT_PRECISION:
        return 0

    g = gcd(exponent_factor, FLOAT_PRECISION)
    num = exponent_factor // g
    den = FLOAT_PRECISION // g
    if den > MAX_EXPONENT_DENOMINATOR:
        raise ValueError(f"exponent factor too fine-grained: {exponent_factor}")

    if den >= num:
        radicand = float_value**num * FLOAT_PRECISION ** (den - num)
    else:
        radicand = float_value**num // FLOAT_PRECISION ** (num - den)
    return check_uint(integer_root(radicand, den), "exponent result")
