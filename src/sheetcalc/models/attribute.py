"""Attribute definitions and per-character attribute state.

A definition's ``base`` is an expression such as ``"10"``, ``"$iq"`` or
``"($dx+$ht)/4"``. The engine evaluates it each pass and stores the
result in ``Attribute.base``; everything else here is plain arithmetic
over that stored value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from sheetcalc.models.fixed6 import HUNDRED, ZERO, Fixed6


class AttributeType(Enum):
    INTEGER = "integer"
    DECIMAL = "decimal"
    POOL = "pool"


class ThresholdOp(Enum):
    HALVE_MOVE = "halve_move"
    HALVE_DODGE = "halve_dodge"
    HALVE_ST = "halve_st"


@dataclass(slots=True)
class PoolThreshold:
    """A pool state, active while ``current <= maximum * multiplier / divisor + addition``."""

    state: str
    multiplier: int = 1
    divisor: int = 1
    addition: int = 0
    explanation: str = ""
    ops: set[ThresholdOp] = field(default_factory=set)

    def threshold(self, maximum: Fixed6) -> Fixed6:
        return (maximum * self.multiplier / self.divisor).trunc() + self.addition


@dataclass(slots=True)
class AttributeDef:
    id: str
    name: str
    type: AttributeType = AttributeType.INTEGER
    base: str = "10"
    cost_per_point: int = 0
    cost_adj_percent_per_sm: int = 0
    full_name: str = ""
    thresholds: list[PoolThreshold] = field(default_factory=list)

    @property
    def is_pool(self) -> bool:
        return self.type is AttributeType.POOL

    @property
    def is_decimal(self) -> bool:
        return self.type is AttributeType.DECIMAL


@dataclass(slots=True, eq=False)
class Attribute:
    """One attribute on a character sheet.

    ``adjustment`` and ``damage`` are user input; ``base``, ``bonus`` and
    ``cost_reduction`` are overwritten by the engine on every pass.
    """

    attr_id: str
    definition: AttributeDef
    adjustment: Fixed6 = field(default_factory=lambda: ZERO)
    damage: Fixed6 = field(default_factory=lambda: ZERO)
    bonus: Fixed6 = field(default_factory=lambda: ZERO)
    cost_reduction: int = 0
    base: Fixed6 = field(default_factory=lambda: ZERO)

    @property
    def maximum(self) -> Fixed6:
        value = self.base + self.adjustment + self.bonus
        if not self.definition.is_decimal:
            value = value.trunc()
        return value

    @property
    def current(self) -> Fixed6:
        if self.definition.is_pool:
            return self.maximum - self.damage
        return self.maximum

    @property
    def current_threshold(self) -> PoolThreshold | None:
        """First threshold the current value has dropped to, if any."""
        if not self.definition.is_pool:
            return None
        maximum = self.maximum
        current = self.current
        for threshold in self.definition.thresholds:
            if current <= threshold.threshold(maximum):
                return threshold
        return None

    def point_cost(self, size_modifier: int = 0, max_reduction: int = 80) -> int:
        """adjustment x cost_per_point, less cost reduction (capped), rounded up.

        Size modifiers above zero add ``cost_adj_percent_per_sm`` per step
        to the reduction: ST +2 at 10/pt with SM +1 and 10%/SM costs 18.
        """
        cost = self.adjustment * self.definition.cost_per_point
        reduction = self.cost_reduction
        if size_modifier > 0 and self.definition.cost_adj_percent_per_sm > 0:
            reduction += size_modifier * self.definition.cost_adj_percent_per_sm
        if reduction > 0:
            reduction = min(reduction, max_reduction)
            cost = cost * (HUNDRED - reduction) / HUNDRED
        return cost.ceil().as_int()
