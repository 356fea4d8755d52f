"""Weight units and weight values.

Pound factors follow the sheet's own convention (1 kg = 2 lb), so metric
and imperial sheets agree on encumbrance thresholds.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from sheetcalc.models.fixed6 import ZERO, Fixed6


class WeightUnits(Enum):
    """Weight units with their size expressed in pounds (numerator, denominator)."""

    LB = ("lb", 1, 1, False)
    OZ = ("oz", 1, 16, False)
    TN = ("tn", 2000, 1, False)
    LT = ("lt", 2240, 1, False)
    KG = ("kg", 2, 1, True)
    G = ("g", 1, 500, True)
    T = ("t", 2000, 1, True)

    def __init__(self, abbreviation: str, numerator: int, denominator: int, metric: bool) -> None:
        self.abbreviation = abbreviation
        self._numerator = numerator
        self._denominator = denominator
        self.is_metric = metric

    def to_pounds(self, value: Fixed6) -> Fixed6:
        return value * self._numerator / self._denominator

    def from_pounds(self, value: Fixed6) -> Fixed6:
        return value * self._denominator / self._numerator

    def convert(self, from_units: WeightUnits, value: Fixed6) -> Fixed6:
        """Convert *value* expressed in *from_units* into these units."""
        if from_units is self:
            return value
        return self.from_pounds(from_units.to_pounds(value))

    @classmethod
    def from_abbreviation(cls, text: str, default: WeightUnits | None = None) -> WeightUnits:
        key = text.strip().lower()
        for units in cls:
            if units.abbreviation == key:
                return units
        if key in ("#", "lbs", "pound", "pounds"):
            return cls.LB
        if default is not None:
            return default
        raise ValueError(f"unknown weight units: {text!r}")


_WEIGHT_RE = re.compile(r"^\s*([+-]?[\d,]*\.?\d*)\s*([a-zA-Z#]*)\s*$")


@dataclass(slots=True)
class WeightValue:
    """A mutable weight in specific units. Equality compares normalized pounds."""

    value: Fixed6
    units: WeightUnits = WeightUnits.LB

    @classmethod
    def parse(cls, text: str, default_units: WeightUnits = WeightUnits.LB) -> WeightValue:
        """Parse strings like ``"22.34 lb"`` or ``"0.5kg"``."""
        match = _WEIGHT_RE.match(text)
        if match is None or not match.group(1).strip("+-"):
            raise ValueError(f"not a weight: {text!r}")
        units = default_units
        if match.group(2):
            units = WeightUnits.from_abbreviation(match.group(2))
        return cls(Fixed6.parse(match.group(1)), units)

    def copy(self) -> WeightValue:
        return WeightValue(self.value, self.units)

    def normalized(self) -> Fixed6:
        """The weight in pounds."""
        return self.units.to_pounds(self.value)

    def converted(self, units: WeightUnits) -> WeightValue:
        return WeightValue(units.convert(self.units, self.value), units)

    def add(self, other: WeightValue) -> None:
        self.value = self.value + self.units.convert(other.units, other.value)

    def subtract(self, other: WeightValue) -> None:
        self.value = self.value - self.units.convert(other.units, other.value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WeightValue):
            return NotImplemented
        return self.normalized() == other.normalized()

    def __str__(self) -> str:
        return f"{self.value} {self.units.abbreviation}"


def zero_weight(units: WeightUnits) -> WeightValue:
    return WeightValue(ZERO, units)


def convert_to_gurps_metric(weight: WeightValue) -> WeightValue:
    """Switch an imperial weight to metric using the sheet's simple ratios."""
    if weight.units is WeightUnits.LB:
        return WeightValue(weight.value / 2, WeightUnits.KG)
    if weight.units in (WeightUnits.LT, WeightUnits.TN):
        return WeightValue(weight.value, WeightUnits.T)
    if weight.units is WeightUnits.OZ:
        return WeightValue(weight.value * 30, WeightUnits.G)
    return weight.copy()


def convert_from_gurps_metric(weight: WeightValue) -> WeightValue:
    """Switch a metric weight to imperial using the sheet's simple ratios."""
    if weight.units is WeightUnits.G:
        return WeightValue(weight.value / 30, WeightUnits.OZ)
    if weight.units is WeightUnits.KG:
        return WeightValue(weight.value * 2, WeightUnits.LB)
    if weight.units is WeightUnits.T:
        return WeightValue(weight.value, WeightUnits.LT)
    return weight.copy()


def simple_metric(weight: WeightValue, target: WeightUnits) -> WeightValue:
    """Apply the simple metric conversion matching *target*'s system."""
    if target.is_metric:
        return convert_to_gurps_metric(weight)
    return convert_from_gurps_metric(weight)
