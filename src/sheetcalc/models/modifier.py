"""Advantage and equipment modifiers.

Equipment modifier amounts keep the sheet's own string notation so the
data round-trips unchanged:

    "+5" / "-2"     addition
    "+25%"          percentage of the pre-stage amount
    "x2" / "x1/2"   multiplier (as a fraction)
    "x50%"          percentage multiplier (weight only)
    "+2 lb"         weight addition with explicit units
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

import structlog

from sheetcalc.models.feature import Feature
from sheetcalc.models.fixed6 import ONE, ZERO, Fixed6
from sheetcalc.models.weight import WeightUnits, WeightValue

logger = structlog.get_logger(__name__)


class CostStage(Enum):
    ORIGINAL = "to_original_cost"
    BASE = "to_base_cost"
    FINAL_BASE = "to_final_base_cost"
    FINAL = "to_final_cost"


class WeightStage(Enum):
    ORIGINAL = "to_original_weight"
    BASE = "to_base_weight"
    FINAL_BASE = "to_final_base_weight"
    FINAL = "to_final_weight"


class ModifierValueType(Enum):
    ADDITION = "addition"
    PERCENTAGE = "percentage"
    MULTIPLIER = "multiplier"
    PERCENTAGE_MULTIPLIER = "percentage_multiplier"


_UNITS_RE = re.compile(r"[a-zA-Z#]+\s*$")


def extract_value_type(text: str) -> ModifierValueType:
    cleaned = text.strip().lower()
    multiplier = cleaned.startswith(("x", "×"))
    if cleaned.endswith("%"):
        if multiplier:
            return ModifierValueType.PERCENTAGE_MULTIPLIER
        return ModifierValueType.PERCENTAGE
    if multiplier:
        return ModifierValueType.MULTIPLIER
    return ModifierValueType.ADDITION


def _strip_decorations(text: str) -> str:
    cleaned = text.strip().lower().lstrip("x×").rstrip("%").strip()
    return _UNITS_RE.sub("", cleaned).strip()


def _parse_number(text: str, source: str) -> Fixed6:
    if not text or text in ("+", "-"):
        return ZERO
    try:
        return Fixed6.parse(text)
    except ValueError:
        logger.warning("malformed_modifier_amount", amount=source)
        return ZERO


def extract_fraction(text: str) -> tuple[Fixed6, Fixed6]:
    """Numerator and denominator of an amount. Non-fractions have denominator 1."""
    cleaned = _strip_decorations(text)
    numerator, slash, denominator = cleaned.partition("/")
    num = _parse_number(numerator.strip(), text)
    if not slash:
        return num, ONE
    return num, _parse_number(denominator.strip(), text)


def extract_cost_value(text: str) -> Fixed6:
    """The numeric amount of a cost adjustment; multipliers come back as num/den."""
    num, den = extract_fraction(text)
    if den == ONE:
        return num
    return num / den


def extract_weight_units(text: str, default_units: WeightUnits) -> WeightUnits:
    match = _UNITS_RE.search(text.strip().rstrip("%"))
    if match is None:
        return default_units
    return WeightUnits.from_abbreviation(match.group(0), default_units)


def extract_weight_addition(text: str, default_units: WeightUnits) -> WeightValue:
    num, den = extract_fraction(text)
    value = num if den == ONE else num / den
    return WeightValue(value, extract_weight_units(text, default_units))


# --- Advantage modifiers ----------------------------------------------------


class AdvantageModifierCostType(Enum):
    PERCENTAGE = "percentage"
    POINTS = "points"
    MULTIPLIER = "multiplier"


class Affects(Enum):
    TOTAL = "total"
    BASE_ONLY = "base_only"
    LEVELS_ONLY = "levels_only"


@dataclass(slots=True)
class AdvantageModifier:
    """Enhancement or limitation on an advantage's point cost."""

    name: str = ""
    enabled: bool = True
    cost: Fixed6 = field(default_factory=lambda: ZERO)
    cost_type: AdvantageModifierCostType = AdvantageModifierCostType.PERCENTAGE
    affects: Affects = Affects.TOTAL
    levels: int = 0
    features: list[Feature] = field(default_factory=list)
    notes: str = ""

    @property
    def is_leveled(self) -> bool:
        return self.levels > 0

    def cost_modifier(self) -> Fixed6:
        if self.is_leveled:
            return self.cost * self.levels
        return self.cost


# --- Equipment modifiers ----------------------------------------------------


@dataclass(slots=True)
class EquipmentModifier:
    """Cost and weight adjustments, each tagged with the stage it applies at."""

    name: str = ""
    enabled: bool = True
    cost_type: CostStage = CostStage.ORIGINAL
    cost_amount: str = "+0"
    weight_type: WeightStage = WeightStage.ORIGINAL
    weight_amount: str = "+0"
    features: list[Feature] = field(default_factory=list)
    tech_level: str = ""
    notes: str = ""

    def cost_value_type(self) -> ModifierValueType:
        return extract_value_type(self.cost_amount)

    def weight_value_type(self) -> ModifierValueType:
        return extract_value_type(self.weight_amount)
