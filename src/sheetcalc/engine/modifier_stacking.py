"""Fold ordered, staged modifiers into an adjusted cost, weight or point value.

Cost and weight pass through four stages in fixed order:
ORIGINAL -> BASE -> FINAL_BASE -> FINAL. Within a stage, enabled
modifiers apply in list order; the final result never drops below zero.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from sheetcalc.engine.engine_config import EngineConfig
from sheetcalc.models.fixed6 import HUNDRED, ONE, ZERO, Fixed6
from sheetcalc.models.modifier import (
    AdvantageModifier,
    AdvantageModifierCostType,
    Affects,
    CostStage,
    EquipmentModifier,
    ModifierValueType,
    WeightStage,
    extract_cost_value,
    extract_fraction,
    extract_value_type,
    extract_weight_addition,
)
from sheetcalc.models.weight import WeightUnits, WeightValue

_DEFAULT_CONFIG = EngineConfig()


def _enabled(modifiers: Iterable[EquipmentModifier]) -> list[EquipmentModifier]:
    return [mod for mod in modifiers if mod.enabled]


# --- Cost -------------------------------------------------------------------


def _cost_step(stage: CostStage, value: Fixed6, modifiers: Sequence[EquipmentModifier]) -> Fixed6:
    """Multipliers in order, then additions, then percentages of the pre-stage value."""
    percentages = ZERO
    additions = ZERO
    cost = value
    for mod in modifiers:
        if mod.cost_type is not stage:
            continue
        value_type = extract_value_type(mod.cost_amount)
        amount = extract_cost_value(mod.cost_amount)
        if value_type is ModifierValueType.ADDITION:
            additions += amount
        elif value_type is ModifierValueType.PERCENTAGE:
            percentages += amount
        elif value_type is ModifierValueType.MULTIPLIER:
            cost = cost * amount
    cost += additions
    if percentages:
        cost += value * percentages / HUNDRED
    return cost


def base_cost_factor(modifiers: Iterable[EquipmentModifier]) -> Fixed6:
    """Unclamped sum of BASE-stage cost factors (multipliers count as ``amount - 1``)."""
    factor = ZERO
    for mod in _enabled(modifiers):
        if mod.cost_type is not CostStage.BASE:
            continue
        amount = extract_cost_value(mod.cost_amount)
        if extract_value_type(mod.cost_amount) is ModifierValueType.MULTIPLIER:
            amount -= ONE
        factor += amount
    return factor


def value_adjusted_for_modifiers(
    value: Fixed6,
    modifiers: Iterable[EquipmentModifier],
    config: EngineConfig | None = None,
) -> Fixed6:
    """Adjusted cost of one unit of equipment.

    A BASE-stage factor of -0.95 is clamped to the configured floor
    (-0.8), so 100 becomes 20 rather than 5.
    """
    config = config or _DEFAULT_CONFIG
    enabled = _enabled(modifiers)
    cost = _cost_step(CostStage.ORIGINAL, value, enabled)
    factor = base_cost_factor(enabled)
    if factor:
        factor = factor.max(config.min_cost_factor)
        cost = cost * (factor + ONE)
    cost = _cost_step(CostStage.FINAL_BASE, cost, enabled)
    cost = _cost_step(CostStage.FINAL, cost, enabled)
    return cost.max(ZERO)


# --- Weight -----------------------------------------------------------------


def _weight_step(
    stage: WeightStage,
    weight: Fixed6,
    units: WeightUnits,
    default_units: WeightUnits,
    modifiers: Sequence[EquipmentModifier],
) -> Fixed6:
    additions = ZERO
    for mod in modifiers:
        if mod.weight_type is not stage:
            continue
        value_type = extract_value_type(mod.weight_amount)
        if value_type is ModifierValueType.ADDITION:
            addition = extract_weight_addition(mod.weight_amount, default_units)
            additions += units.convert(addition.units, addition.value)
        elif value_type is ModifierValueType.MULTIPLIER:
            num, den = extract_fraction(mod.weight_amount)
            weight = weight * num / den
        elif value_type is ModifierValueType.PERCENTAGE_MULTIPLIER:
            num, den = extract_fraction(mod.weight_amount)
            weight = weight * num / (den * HUNDRED)
    return weight + additions


def weight_adjusted_for_modifiers(
    weight: WeightValue,
    modifiers: Iterable[EquipmentModifier],
    default_units: WeightUnits = WeightUnits.LB,
) -> WeightValue:
    """Adjusted weight of one unit of equipment, in the weight's own units.

    Every non-addition ORIGINAL-stage amount counts as a percentage of the
    original weight, summed with the stage's additions; later stages scale
    by multipliers first.
    """
    enabled = _enabled(modifiers)
    units = weight.units
    original = weight.value
    result = original
    percentages = ZERO
    for mod in enabled:
        if mod.weight_type is not WeightStage.ORIGINAL:
            continue
        value_type = extract_value_type(mod.weight_amount)
        if value_type is ModifierValueType.ADDITION:
            addition = extract_weight_addition(mod.weight_amount, default_units)
            result += units.convert(addition.units, addition.value)
        else:
            percentages += extract_cost_value(mod.weight_amount)
    if percentages:
        result += original * percentages / HUNDRED
    result = _weight_step(WeightStage.BASE, result, units, default_units, enabled)
    result = _weight_step(WeightStage.FINAL_BASE, result, units, default_units, enabled)
    result = _weight_step(WeightStage.FINAL, result, units, default_units, enabled)
    return WeightValue(result.max(ZERO), units)


# --- Advantage points -------------------------------------------------------


def _modify_points(points: Fixed6, percentage: Fixed6) -> Fixed6:
    return points + points * percentage / HUNDRED


def apply_rounding(value: Fixed6, round_down: bool) -> Fixed6:
    return value.floor() if round_down else value.ceil()


def adjusted_advantage_points(
    base_points: int,
    levels: int,
    points_per_level: int,
    modifiers: Iterable[AdvantageModifier],
    *,
    half_level: bool = False,
    multiplicative: bool = False,
    round_down: bool = False,
    config: EngineConfig | None = None,
) -> Fixed6:
    """Point cost of a leaf advantage after its enabled modifiers.

    Percentage modifiers are split into enhancements and limitations for
    the base cost and the leveled cost. Summed limitations never go below
    -80%. Point modifiers change the base (or per-level) cost directly;
    multiplier modifiers scale the final result. Rounds up unless
    ``round_down``.
    """
    config = config or _DEFAULT_CONFIG
    floor = Fixed6(config.max_modifier_reduction)
    base = Fixed6(base_points)
    per_level = Fixed6(points_per_level)
    base_enh = level_enh = base_lim = level_lim = ZERO
    multiplier = ONE
    for mod in modifiers:
        if not mod.enabled:
            continue
        amount = mod.cost_modifier()
        if mod.cost_type is AdvantageModifierCostType.PERCENTAGE:
            negative = amount < ZERO
            if mod.affects in (Affects.TOTAL, Affects.BASE_ONLY):
                if negative:
                    base_lim += amount
                else:
                    base_enh += amount
            if mod.affects in (Affects.TOTAL, Affects.LEVELS_ONLY):
                if negative:
                    level_lim += amount
                else:
                    level_enh += amount
        elif mod.cost_type is AdvantageModifierCostType.POINTS:
            if mod.affects is Affects.LEVELS_ONLY:
                per_level += amount
            else:
                base += amount
        else:
            multiplier = multiplier * mod.cost
    leveled = per_level * Fixed6(levels)
    if half_level:
        leveled += per_level / 2
    if base_enh or base_lim or level_enh or level_lim:
        if multiplicative:
            if base_enh == level_enh and base_lim == level_lim:
                points = _modify_points(_modify_points(base + leveled, base_enh), base_lim.max(floor))
            else:
                points = _modify_points(_modify_points(base, base_enh), base_lim.max(floor)) + _modify_points(
                    _modify_points(leveled, level_enh), level_lim.max(floor)
                )
        else:
            base_mod = (base_enh + base_lim).max(floor)
            level_mod = (level_enh + level_lim).max(floor)
            if base_mod == level_mod:
                points = _modify_points(base + leveled, base_mod)
            else:
                points = _modify_points(base, base_mod) + _modify_points(leveled, level_mod)
    else:
        points = base + leveled
    return apply_rounding(points * multiplier, round_down)
