"""Derived values: damage dice, basic lift, encumbrance, move and dodge.

Each formula follows the published tables. Two damage/lift progressions
are supported: the Basic Set tables and "Knowing Your Own Strength"
(KYOS). Integer division truncates toward zero, matching the tables'
behaviour for low and negative strength.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from sheetcalc.models.attribute import Attribute, ThresholdOp
from sheetcalc.models.fixed6 import ZERO, Fixed6
from sheetcalc.models.sheet_settings import DamageProgression, SheetSettings
from sheetcalc.models.weight import WeightUnits, WeightValue


def _tdiv(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def _tmod(a: int, b: int) -> int:
    return a - b * _tdiv(a, b)


def halve_rounding_up(value: int, divisor: int) -> int:
    """``value / divisor``, plus one if anything was left over."""
    if divisor <= 0:
        return value
    result = _tdiv(value, divisor)
    if _tmod(value, divisor) != 0:
        result += 1
    return result


# --- Dice ---------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Dice:
    count: int
    modifier: int = 0
    sides: int = 6

    def __str__(self) -> str:
        text = f"{self.count}d"
        if self.sides != 6:
            text += str(self.sides)
        if self.modifier:
            text += f"{self.modifier:+d}"
        return text


def thrust_for(strength: int, progression: DamageProgression) -> Dice:
    if progression is DamageProgression.KNOWING_YOUR_OWN_STRENGTH:
        if strength < 12:
            return Dice(1, strength - 12)
        return Dice(_tdiv(strength - 7, 4), _tmod(strength + 1, 4) - 1)
    if strength < 19:
        return Dice(1, -(6 - _tdiv(strength - 1, 2)))
    value = strength - 11
    if strength > 50:
        value -= 1
        if strength > 79:
            value -= 1 + _tdiv(strength - 80, 5)
    return Dice(_tdiv(value, 8) + 1, _tdiv(_tmod(value, 8), 2) - 1)


def swing_for(strength: int, progression: DamageProgression) -> Dice:
    if progression is DamageProgression.KNOWING_YOUR_OWN_STRENGTH:
        if strength < 10:
            return Dice(1, strength - 10)
        return Dice(_tdiv(strength - 5, 4), _tmod(strength - 1, 4) - 1)
    if strength < 10:
        return Dice(1, -(5 - _tdiv(strength - 1, 2)))
    if strength < 28:
        value = strength - 9
        return Dice(_tdiv(value, 4) + 1, _tmod(value, 4) - 1)
    value = strength
    if strength > 40:
        value -= _tdiv(strength - 40, 5)
    if strength > 59:
        value += 1
    value += 9
    return Dice(_tdiv(value, 8) + 1, _tdiv(_tmod(value, 8), 2) - 1)


# --- Lift and encumbrance -------------------------------------------------------


def basic_lift(
    strength: int,
    progression: DamageProgression,
    default_units: WeightUnits = WeightUnits.LB,
    use_simple_metric: bool = True,
) -> WeightValue:
    """Basic lift for an (already adjusted) lifting strength, in ``default_units``.

    Basic Set: ST 12 -> 144 / 5 = 28.8, at least 10 so rounded to 29 lb.
    KYOS: ST 20 -> one decade shifted out, 10^1 * 2 = 20, * 10 = 200 lb.
    """
    if use_simple_metric and default_units.is_metric:
        units, divisor, multiplier, round_at = WeightUnits.KG, 10, 1, 5
    else:
        units, divisor, multiplier, round_at = WeightUnits.LB, 5, 2, 10
    if strength < 1:
        return WeightValue(ZERO, default_units)
    if progression is DamageProgression.KNOWING_YOUR_OWN_STRENGTH:
        diff = 0
        if strength > 19:
            diff = strength // 10 - 1
            strength -= diff * 10
        value = Fixed6.from_float(10 ** (strength / 10) * multiplier)
        if strength <= 6:
            value = (value * 10).round() / 10
        else:
            value = value.round()
        value = value * (10 ** diff)
    else:
        value = Fixed6(strength * strength) / divisor
    if value >= Fixed6(round_at):
        value = value.round()
    value = (value * 10).trunc() / 10
    return WeightValue(default_units.convert(units, value), default_units)


@dataclass(frozen=True, slots=True)
class LiftTable:
    basic_lift: WeightValue
    one_handed_lift: WeightValue
    two_handed_lift: WeightValue
    shove_and_knock_over: WeightValue
    running_shove_and_knock_over: WeightValue
    carry_on_back: WeightValue
    shift_slightly: WeightValue


def lift_table(lift: WeightValue) -> LiftTable:
    def times(n: int) -> WeightValue:
        return WeightValue(lift.value * n, lift.units)

    return LiftTable(
        basic_lift=lift.copy(),
        one_handed_lift=times(2),
        two_handed_lift=times(8),
        shove_and_knock_over=times(12),
        running_shove_and_knock_over=times(24),
        carry_on_back=times(15),
        shift_slightly=times(50),
    )


class Encumbrance(Enum):
    """Encumbrance levels with their skill/defense penalty and carry multiplier."""

    NONE = (0, 1)
    LIGHT = (-1, 2)
    MEDIUM = (-2, 3)
    HEAVY = (-3, 6)
    EXTRA_HEAVY = (-4, 10)

    def __init__(self, penalty: int, weight_multiplier: int) -> None:
        self.penalty = penalty
        self.weight_multiplier = weight_multiplier

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()


def maximum_carry(lift: WeightValue, encumbrance: Encumbrance) -> WeightValue:
    return WeightValue(lift.value * encumbrance.weight_multiplier, lift.units)


def select_encumbrance_index(capacities: Sequence[Fixed6 | int], carried: Fixed6 | int) -> int:
    """Index of the lightest level whose capacity holds ``carried``; else the heaviest."""
    for index, capacity in enumerate(capacities):
        if carried <= capacity:
            return index
    return len(capacities) - 1


def encumbrance_level(lift: WeightValue, carried: WeightValue) -> Encumbrance:
    levels = list(Encumbrance)
    capacities = [maximum_carry(lift, level).normalized() for level in levels]
    return levels[select_encumbrance_index(capacities, carried.normalized())]


# --- Move and dodge -------------------------------------------------------------


def threshold_op_count(attributes: Iterable[Attribute], op: ThresholdOp) -> int:
    """How many pools currently sit in a threshold carrying ``op``."""
    count = 0
    for attribute in attributes:
        threshold = attribute.current_threshold
        if threshold is not None and op in threshold.ops:
            count += 1
    return count


def halving_divisor(op_count: int) -> int:
    return 2 * min(op_count, 2)


def move_for(initial_move: int, halve_count: int, encumbrance: Encumbrance) -> int:
    """Basic move 5 with two HALVE_MOVE pools: 5 / 4 = 1, remainder bumps it to 2."""
    move = halve_rounding_up(initial_move, halving_divisor(halve_count))
    move = _tdiv(move * (10 + 2 * encumbrance.penalty), 10)
    if move < 1:
        return 1 if initial_move > 0 else 0
    return move


def dodge_for(basic_speed: Fixed6, dodge_bonus: int, halve_count: int, encumbrance: Encumbrance) -> int:
    """Dodge = 3 + bonus + basic speed truncated, halved per HALVE_DODGE pool, minus encumbrance."""
    dodge = 3 + dodge_bonus + basic_speed.as_int()
    dodge = halve_rounding_up(dodge, halving_divisor(halve_count))
    return max(dodge + encumbrance.penalty, 1)


class DerivedStats:
    """Computes derived values using the sheet's progression and unit settings."""

    def __init__(self, settings: SheetSettings) -> None:
        self._settings = settings

    def thrust(self, strength: int) -> Dice:
        return thrust_for(strength, self._settings.damage_progression)

    def swing(self, strength: int) -> Dice:
        return swing_for(strength, self._settings.damage_progression)

    def basic_lift(self, strength: int) -> WeightValue:
        return basic_lift(
            strength,
            self._settings.damage_progression,
            self._settings.default_weight_units,
            self._settings.use_simple_metric_conversions,
        )

    def lift_table(self, strength: int) -> LiftTable:
        return lift_table(self.basic_lift(strength))

    def encumbrance(self, strength: int, carried: WeightValue) -> Encumbrance:
        return encumbrance_level(self.basic_lift(strength), carried)

    def move_table(self, basic_move: int, halve_count: int) -> list[int]:
        return [move_for(basic_move, halve_count, level) for level in Encumbrance]

    def dodge_table(self, basic_speed: Fixed6, dodge_bonus: int, halve_count: int) -> list[int]:
        return [dodge_for(basic_speed, dodge_bonus, halve_count, level) for level in Encumbrance]
