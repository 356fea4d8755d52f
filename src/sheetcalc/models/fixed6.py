"""Fixed-point decimal with six fractional digits.

Money and weight never touch binary floating point: every value is stored
as an integer scaled by 10**6, so sums and products come out the same on
every platform. Multiplication and division round half away from zero
back to six digits.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

SCALE_DIGITS = 6
SCALE = 10 ** SCALE_DIGITS

_NUMBER_RE = re.compile(r"^([+-]?)(\d*)(?:\.(\d*))?$")


def _div_round(numerator: int, denominator: int) -> int:
    """Integer division rounded half away from zero."""
    if denominator == 0:
        raise ZeroDivisionError("fixed-point division by zero")
    negative = (numerator < 0) != (denominator < 0)
    q, r = divmod(abs(numerator), abs(denominator))
    if r * 2 >= abs(denominator):
        q += 1
    return -q if negative else q


@dataclass(frozen=True, slots=True, order=True)
class Fixed6:
    """A decimal number with exactly six fractional digits."""

    raw: int = 0

    def __init__(self, value: int = 0) -> None:
        if isinstance(value, Fixed6):
            object.__setattr__(self, "raw", value.raw)
            return
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(f"Fixed6 expects an int, got {type(value).__name__}")
        object.__setattr__(self, "raw", value * SCALE)

    # --- Construction ------------------------------------------------------

    @classmethod
    def from_raw(cls, raw: int) -> Fixed6:
        value = cls.__new__(cls)
        object.__setattr__(value, "raw", int(raw))
        return value

    @classmethod
    def from_float(cls, value: float) -> Fixed6:
        """Round a float to six digits. Only for power/exponential formulas."""
        return cls.from_raw(round(value * SCALE))

    @classmethod
    def parse(cls, text: str) -> Fixed6:
        """Parse a decimal string such as ``"-12.5"`` or ``"1,250.75"``.

        Fractional digits beyond the sixth are truncated.
        """
        cleaned = text.strip().replace(",", "")
        match = _NUMBER_RE.match(cleaned)
        if match is None or (not match.group(2) and not match.group(3)):
            raise ValueError(f"not a decimal number: {text!r}")
        sign, whole, frac = match.group(1), match.group(2) or "0", match.group(3) or ""
        frac = (frac + "0" * SCALE_DIGITS)[:SCALE_DIGITS]
        raw = int(whole) * SCALE + int(frac)
        return cls.from_raw(-raw if sign == "-" else raw)

    @classmethod
    def coerce(cls, value: Fixed6 | int | str) -> Fixed6:
        if isinstance(value, Fixed6):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        return cls(value)

    # --- Arithmetic --------------------------------------------------------

    def __add__(self, other: Fixed6 | int) -> Fixed6:
        return Fixed6.from_raw(self.raw + Fixed6.coerce(other).raw)

    __radd__ = __add__

    def __sub__(self, other: Fixed6 | int) -> Fixed6:
        return Fixed6.from_raw(self.raw - Fixed6.coerce(other).raw)

    def __rsub__(self, other: Fixed6 | int) -> Fixed6:
        return Fixed6.from_raw(Fixed6.coerce(other).raw - self.raw)

    def __mul__(self, other: Fixed6 | int) -> Fixed6:
        return Fixed6.from_raw(_div_round(self.raw * Fixed6.coerce(other).raw, SCALE))

    __rmul__ = __mul__

    def __truediv__(self, other: Fixed6 | int) -> Fixed6:
        return Fixed6.from_raw(_div_round(self.raw * SCALE, Fixed6.coerce(other).raw))

    def __rtruediv__(self, other: Fixed6 | int) -> Fixed6:
        return Fixed6.coerce(other) / self

    def __neg__(self) -> Fixed6:
        return Fixed6.from_raw(-self.raw)

    def __pos__(self) -> Fixed6:
        return self

    def __abs__(self) -> Fixed6:
        return Fixed6.from_raw(abs(self.raw))

    def __bool__(self) -> bool:
        return self.raw != 0

    # --- Rounding ----------------------------------------------------------

    def trunc(self) -> Fixed6:
        """Drop the fractional part (toward zero)."""
        whole = abs(self.raw) // SCALE * SCALE
        return Fixed6.from_raw(-whole if self.raw < 0 else whole)

    def round(self) -> Fixed6:
        """Round to the nearest integer, halves away from zero."""
        return Fixed6.from_raw(_div_round(self.raw, SCALE) * SCALE)

    def floor(self) -> Fixed6:
        return Fixed6.from_raw(self.raw // SCALE * SCALE)

    def ceil(self) -> Fixed6:
        return Fixed6.from_raw(-(-self.raw // SCALE) * SCALE)

    def as_int(self) -> int:
        """Integer part, truncated toward zero."""
        return self.trunc().raw // SCALE

    def min(self, other: Fixed6) -> Fixed6:
        return self if self.raw <= other.raw else other

    def max(self, other: Fixed6) -> Fixed6:
        return self if self.raw >= other.raw else other

    # --- Formatting --------------------------------------------------------

    def __str__(self) -> str:
        whole, frac = divmod(abs(self.raw), SCALE)
        text = str(whole)
        if frac:
            text += "." + f"{frac:0{SCALE_DIGITS}d}".rstrip("0")
        return "-" + text if self.raw < 0 else text

    def __repr__(self) -> str:
        return f"Fixed6({str(self)!r})"

    def string_with_sign(self) -> str:
        return str(self) if self.raw < 0 else "+" + str(self)


ZERO = Fixed6(0)
ONE = Fixed6(1)
TWO = Fixed6(2)
TEN = Fixed6(10)
HUNDRED = Fixed6(100)
