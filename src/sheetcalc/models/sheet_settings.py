"""Sheet settings with typed accessors.

Every sheet carries its own settings; ``SheetSettings.defaults()`` gives
the standard attribute list so the engine works without any data file.
"""

from dataclasses import dataclass, field
from enum import Enum

from sheetcalc.models.attribute import AttributeDef, AttributeType, PoolThreshold, ThresholdOp
from sheetcalc.models.weight import WeightUnits


class DamageProgression(Enum):
    BASIC_SET = "basic_set"
    KNOWING_YOUR_OWN_STRENGTH = "knowing_your_own_strength"


_HALVE_ALL = {ThresholdOp.HALVE_MOVE, ThresholdOp.HALVE_DODGE}
_HALVE_ALL_ST = {ThresholdOp.HALVE_MOVE, ThresholdOp.HALVE_DODGE, ThresholdOp.HALVE_ST}


def _fp_thresholds() -> list[PoolThreshold]:
    return [
        PoolThreshold("Unconscious", multiplier=-1, explanation="Lose consciousness"),
        PoolThreshold("Collapse", multiplier=0, ops=set(_HALVE_ALL_ST),
                      explanation="Roll vs. Will to do anything besides talk or rest"),
        PoolThreshold("Tired", multiplier=1, divisor=3, ops=set(_HALVE_ALL_ST),
                      explanation="Move, Dodge and ST are halved"),
        PoolThreshold("Tiring", addition=-1),
        PoolThreshold("Rested"),
    ]


def _hp_thresholds() -> list[PoolThreshold]:
    return [
        PoolThreshold("Dead", multiplier=-5),
        PoolThreshold("Dying #4", multiplier=-4, ops=set(_HALVE_ALL)),
        PoolThreshold("Dying #3", multiplier=-3, ops=set(_HALVE_ALL)),
        PoolThreshold("Dying #2", multiplier=-2, ops=set(_HALVE_ALL)),
        PoolThreshold("Dying #1", multiplier=-1, ops=set(_HALVE_ALL)),
        PoolThreshold("Collapse", multiplier=0, ops=set(_HALVE_ALL),
                      explanation="Roll vs. HT every second to remain conscious"),
        PoolThreshold("Reeling", multiplier=1, divisor=3, ops=set(_HALVE_ALL),
                      explanation="Move and Dodge are halved"),
        PoolThreshold("Wounded", addition=-1),
        PoolThreshold("Healthy"),
    ]


def _standard_attributes() -> list[AttributeDef]:
    return [
        AttributeDef("st", "ST", base="10", cost_per_point=10, cost_adj_percent_per_sm=10, full_name="Strength"),
        AttributeDef("dx", "DX", base="10", cost_per_point=20, full_name="Dexterity"),
        AttributeDef("iq", "IQ", base="10", cost_per_point=20, full_name="Intelligence"),
        AttributeDef("ht", "HT", base="10", cost_per_point=10, full_name="Health"),
        AttributeDef("will", "Will", base="$iq", cost_per_point=5),
        AttributeDef("per", "Per", base="$iq", cost_per_point=5, full_name="Perception"),
        AttributeDef("basic_speed", "Basic Speed", type=AttributeType.DECIMAL,
                     base="($dx+$ht)/4", cost_per_point=20),
        AttributeDef("basic_move", "Basic Move", base="floor($basic_speed)", cost_per_point=5),
        AttributeDef("fp", "FP", type=AttributeType.POOL, base="$ht", cost_per_point=3,
                     full_name="Fatigue Points", thresholds=_fp_thresholds()),
        AttributeDef("hp", "HP", type=AttributeType.POOL, base="$st", cost_per_point=2,
                     cost_adj_percent_per_sm=10, full_name="Hit Points", thresholds=_hp_thresholds()),
    ]


@dataclass(slots=True)
class SheetSettings:
    """Read-only inputs for a recalculation pass."""

    default_weight_units: WeightUnits = WeightUnits.LB
    use_simple_metric_conversions: bool = True
    damage_progression: DamageProgression = DamageProgression.BASIC_SET
    use_multiplicative_modifiers: bool = False
    attributes: list[AttributeDef] = field(default_factory=list)

    @classmethod
    def defaults(cls) -> "SheetSettings":
        """Standard settings with the ten standard attributes."""
        return cls(attributes=_standard_attributes())

    def attribute_def(self, attr_id: str) -> AttributeDef | None:
        for attr_def in self.attributes:
            if attr_def.id == attr_id:
                return attr_def
        return None
