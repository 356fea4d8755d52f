"""Sheet engine: recalculates a character until its derived values settle.

A recalculation runs INIT -> CONVERGING -> STABLE:

  INIT        carried weight and wealth, then one level update.
  CONVERGING  rebuild the feature index, apply it to attributes, refresh
              prerequisites, recompute skill and spell levels; repeat
              until no level changes or the pass budget runs out.
  STABLE      point totals, lift, encumbrance, move/dodge and damage.

Running out of passes is not an error: the last computed values stand,
and the returned state looks the same either way.

Mutating setters compare before writing and return a ``ChangeEvent``
describing the change, or None when nothing changed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

import structlog

from sheetcalc.engine.attribute_resolver import (
    SheetBonuses,
    apply_features,
    attribute_current,
    refresh_bases,
)
from sheetcalc.engine.engine_config import EngineConfig
from sheetcalc.engine.feature_index import FeatureIndex
from sheetcalc.engine.point_accountant import PointTotals, account
from sheetcalc.engine.prereq_evaluator import refresh_prereqs
from sheetcalc.models.attribute import ThresholdOp
from sheetcalc.models.character import Character
from sheetcalc.models.derived_stats import (
    DerivedStats,
    Dice,
    Encumbrance,
    LiftTable,
    encumbrance_level,
    halve_rounding_up,
    threshold_op_count,
)
from sheetcalc.models.fixed6 import ZERO, Fixed6
from sheetcalc.models.modifier import AdvantageModifier, EquipmentModifier
from sheetcalc.models.trait import Advantage, Equipment, Skill, Spell, Trait
from sheetcalc.models.weight import WeightValue

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


class Phase(Enum):
    INIT = "init"
    CONVERGING = "converging"
    STABLE = "stable"


@dataclass(slots=True)
class ChangeEvent:
    """``target.field`` changed from ``before`` to ``after``."""

    target: object
    field: str
    before: object
    after: object


@dataclass(slots=True)
class ResolvedState:
    """Everything one ``recalculate()`` produced. A new instance every call."""

    phase: Phase = Phase.INIT
    passes: int = 0
    index: FeatureIndex = field(default_factory=FeatureIndex)
    bonuses: SheetBonuses = field(default_factory=SheetBonuses)
    weight_carried: WeightValue = field(default_factory=lambda: WeightValue(ZERO))
    weight_carried_for_skills: WeightValue = field(default_factory=lambda: WeightValue(ZERO))
    wealth_carried: Fixed6 = field(default_factory=lambda: ZERO)
    wealth_not_carried: Fixed6 = field(default_factory=lambda: ZERO)
    points: PointTotals = field(default_factory=PointTotals)
    unspent_points: int = 0
    encumbrance: Encumbrance = Encumbrance.NONE
    encumbrance_for_skills: Encumbrance = Encumbrance.NONE
    lifting_strength: int = 0
    striking_strength: int = 0
    throwing_strength: int = 0
    lift: LiftTable | None = None
    move: list[int] = field(default_factory=list)
    dodge: list[int] = field(default_factory=list)
    thrust: Dice | None = None
    swing: Dice | None = None

    @property
    def current_move(self) -> int:
        return self.move[list(Encumbrance).index(self.encumbrance)] if self.move else 0

    @property
    def current_dodge(self) -> int:
        return self.dodge[list(Encumbrance).index(self.encumbrance)] if self.dodge else 0


class LevelContext:
    """What skills and spells see of the sheet while computing their levels."""

    __slots__ = ("_character", "_index", "encumbrance_penalty")

    def __init__(self, character: Character, index: FeatureIndex, encumbrance_penalty: int = 0) -> None:
        self._character = character
        self._index = index
        self.encumbrance_penalty = encumbrance_penalty

    def attribute_current(self, attr_id: str) -> Fixed6 | None:
        return attribute_current(self._character, attr_id)

    def skill_bonus_for(self, name, specialization, categories, tooltip=None) -> int:
        return self._index.skill_bonus_for(name, specialization, categories, tooltip)

    def skill_point_bonus_for(self, name, specialization, categories) -> int:
        return self._index.skill_point_bonus_for(name, specialization, categories)

    def spell_bonus_for(self, name, colleges, power_source, categories, tooltip=None) -> int:
        return self._index.spell_bonus_for(name, colleges, power_source, categories, tooltip)

    def spell_point_bonus_for(self, name, colleges, power_source, categories) -> int:
        return self._index.spell_point_bonus_for(name, colleges, power_source, categories)

    def skills_named(
        self,
        name: str,
        specialization: str,
        require_points: bool,
        excludes: set[str] | None,
    ) -> list[Skill]:
        found = []
        for skill in self._character.iter_skills():
            if skill.name.lower() != name.lower():
                continue
            if specialization and skill.specialization.lower() != specialization.lower():
                continue
            if excludes and skill.full_name in excludes:
                continue
            if require_points and not skill.technique and skill.adjusted_points(self) <= 0:
                continue
            found.append(skill)
        return found

    def best_skill_named(
        self,
        name: str,
        specialization: str,
        require_points: bool,
        excludes: set[str] | None,
    ) -> Skill | None:
        best = None
        for skill in self.skills_named(name, specialization, require_points, excludes):
            if skill.level is None:
                continue
            if best is None or skill.level > best.level:
                best = skill
        return best


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SheetEngine:
    """Recalculates one character. Calls must be serialized per character."""

    __slots__ = ("_character", "_config", "_derived", "_state")

    def __init__(self, character: Character, config: EngineConfig | None = None) -> None:
        self._character = character
        self._config = config or EngineConfig()
        self._derived = DerivedStats(character.settings)
        self._state: ResolvedState | None = None
        character.sync_attributes()
        character.assign_ids()

    # --- Factories ---------------------------------------------------------

    @classmethod
    def new_character(cls, config: EngineConfig | None = None) -> SheetEngine:
        """Engine over a blank character with the configured starting points."""
        config = config or EngineConfig()
        return cls(Character(total_points=config.initial_points), config)

    # --- Properties --------------------------------------------------------

    @property
    def character(self) -> Character:
        return self._character

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def state(self) -> ResolvedState | None:
        """Result of the last ``recalculate()``, if any."""
        return self._state

    # --- Recalculation -----------------------------------------------------

    def recalculate(self) -> ResolvedState:
        character = self._character
        state = ResolvedState()

        # INIT
        state.weight_carried = self._carried_weight(for_skills=False)
        state.weight_carried_for_skills = self._carried_weight(for_skills=True)
        state.wealth_carried = self._wealth(character.equipment)
        state.wealth_not_carried = self._wealth(character.other_equipment)
        refresh_bases(character)
        state.encumbrance_for_skills = self._encumbrance(state.bonuses, state.weight_carried_for_skills)
        self._update_levels(LevelContext(character, state.index, state.encumbrance_for_skills.penalty))

        # CONVERGING
        state.phase = Phase.CONVERGING
        while True:
            state.passes += 1
            state.index = FeatureIndex.build(character.feature_forests())
            state.bonuses = apply_features(character, state.index, self._config)
            refresh_bases(character)
            state.encumbrance_for_skills = self._encumbrance(state.bonuses, state.weight_carried_for_skills)
            refresh_prereqs(character)
            ctx = LevelContext(character, state.index, state.encumbrance_for_skills.penalty)
            if not self._update_levels(ctx):
                break
            if state.passes >= self._config.max_iterations:
                logger.debug("convergence_budget_exhausted", passes=state.passes)
                break

        # STABLE
        state.phase = Phase.STABLE
        state.points = account(character, self._config)
        state.unspent_points = state.points.unspent(character.total_points)
        state.lifting_strength = self._strength(state.bonuses.lifting_st)
        state.striking_strength = self._strength(state.bonuses.striking_st)
        state.throwing_strength = self._strength(state.bonuses.throwing_st)
        state.lift = self._derived.lift_table(state.lifting_strength)
        state.encumbrance = encumbrance_level(state.lift.basic_lift, state.weight_carried)
        attributes = list(character.attributes.values())
        basic_move = attribute_current(character, "basic_move") or ZERO
        basic_speed = attribute_current(character, "basic_speed") or ZERO
        state.move = self._derived.move_table(
            basic_move.as_int(), threshold_op_count(attributes, ThresholdOp.HALVE_MOVE)
        )
        state.dodge = self._derived.dodge_table(
            basic_speed, state.bonuses.dodge, threshold_op_count(attributes, ThresholdOp.HALVE_DODGE)
        )
        state.thrust = self._derived.thrust(state.striking_strength)
        state.swing = self._derived.swing(state.striking_strength)
        logger.debug("recalculated", passes=state.passes, unspent=state.unspent_points)
        self._state = state
        return state

    def _update_levels(self, ctx: LevelContext) -> bool:
        changed = False
        for skill in self._character.iter_skills():
            changed |= skill.update_level(ctx)
        for spell in self._character.iter_spells():
            changed |= spell.update_level(ctx)
        return changed

    def _carried_weight(self, for_skills: bool) -> WeightValue:
        settings = self._character.settings
        units = settings.default_weight_units
        total = WeightValue(ZERO, units)
        for item in self._character.equipment:
            total.add(item.extended_weight(for_skills, units, settings.use_simple_metric_conversions))
        return total

    def _wealth(self, forest: Iterable[Equipment]) -> Fixed6:
        total = ZERO
        for item in forest:
            total += item.extended_value(self._config)
        return total

    def _strength(self, bonus: int) -> int:
        st = attribute_current(self._character, "st")
        strength = (st.as_int() if st is not None else 0) + bonus
        if threshold_op_count(self._character.attributes.values(), ThresholdOp.HALVE_ST) > 0:
            strength = halve_rounding_up(strength, 2)
        return strength

    def _encumbrance(self, bonuses: SheetBonuses, carried: WeightValue) -> Encumbrance:
        return self._derived.encumbrance(self._strength(bonuses.lifting_st), carried)

    # --- Setters -----------------------------------------------------------

    @staticmethod
    def _assign(target: object, name: str, value: object) -> ChangeEvent | None:
        before = getattr(target, name)
        if before == value:
            return None
        setattr(target, name, value)
        return ChangeEvent(target, name, before, value)

    def set_total_points(self, points: int) -> ChangeEvent | None:
        return self._assign(self._character, "total_points", int(points))

    def set_unspent_points(self, unspent: int) -> ChangeEvent | None:
        """Adjust total points so that ``unspent`` points remain."""
        spent = account(self._character, self._config).spent
        return self.set_total_points(int(unspent) + spent)

    def _attribute(self, attr_id: str):
        attribute = self._character.attribute(attr_id)
        if attribute is None:
            raise ValueError(f"unknown attribute {attr_id!r}")
        return attribute

    def set_attribute_adjustment(self, attr_id: str, value: Fixed6 | int | str) -> ChangeEvent | None:
        return self._assign(self._attribute(attr_id), "adjustment", Fixed6.coerce(value))

    def set_attribute_damage(self, attr_id: str, value: Fixed6 | int | str) -> ChangeEvent | None:
        attribute = self._attribute(attr_id)
        if not attribute.definition.is_pool:
            raise ValueError(f"attribute {attr_id!r} is not a pool")
        return self._assign(attribute, "damage", Fixed6.coerce(value))

    def set_equipped(self, item: Equipment, equipped: bool) -> ChangeEvent | None:
        return self._assign(item, "equipped", bool(equipped))

    def set_quantity(self, item: Equipment, quantity: int) -> ChangeEvent | None:
        if quantity < 0:
            raise ValueError(f"quantity must be >= 0, got {quantity}")
        return self._assign(item, "quantity", int(quantity))

    def set_modifier_enabled(
        self, modifier: AdvantageModifier | EquipmentModifier, enabled: bool
    ) -> ChangeEvent | None:
        return self._assign(modifier, "enabled", bool(enabled))

    def set_trait_enabled(self, trait: Trait, enabled: bool) -> ChangeEvent | None:
        return self._assign(trait, "enabled", bool(enabled))

    def set_points(self, trait: Skill | Spell, points: int) -> ChangeEvent | None:
        if not isinstance(trait, (Skill, Spell)):
            raise ValueError(f"{type(trait).__name__} has no raw points")
        if points < 0:
            raise ValueError(f"points must be >= 0, got {points}")
        return self._assign(trait, "points", int(points))

    def set_advantage_levels(self, advantage: Advantage, levels: int) -> ChangeEvent | None:
        if levels < 0:
            raise ValueError(f"levels must be >= 0, got {levels}")
        return self._assign(advantage, "levels", int(levels))
