"""Trait forests: advantages, skills, spells, equipment and notes.

Traits are compared by identity: they are mutable tree nodes and the
engine tracks them by object, never by value.

Skill and spell levels are computed against a *level context* supplied
by the engine. The context provides:

    attribute_current(attr_id) -> Fixed6 | None
    skill_bonus_for(name, specialization, categories, tooltip=None) -> int
    skill_point_bonus_for(name, specialization, categories) -> int
    spell_bonus_for(name, colleges, power_source, categories, tooltip=None) -> int
    spell_point_bonus_for(name, colleges, power_source, categories) -> int
    skills_named(name, specialization, require_points, excludes) -> list[Skill]
    best_skill_named(name, specialization, require_points, excludes) -> Skill | None
    encumbrance_penalty: int
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from sheetcalc.engine.engine_config import EngineConfig
from sheetcalc.engine.modifier_stacking import (
    adjusted_advantage_points,
    apply_rounding,
    value_adjusted_for_modifiers,
    weight_adjusted_for_modifiers,
)
from sheetcalc.models.feature import ContainedWeightReduction, Feature
from sheetcalc.models.fixed6 import HUNDRED, ZERO, Fixed6
from sheetcalc.models.modifier import AdvantageModifier, EquipmentModifier
from sheetcalc.models.prereq import PrereqList
from sheetcalc.models.weight import WeightUnits, WeightValue, simple_metric


class AdvantageContainerType(Enum):
    GROUP = "group"
    META_TRAIT = "meta_trait"
    RACE = "race"
    ALTERNATIVE_ABILITIES = "alternative_abilities"


class Difficulty(Enum):
    """Skill difficulty with its level relative to the controlling attribute at 1 point."""

    EASY = ("e", 0)
    AVERAGE = ("a", -1)
    HARD = ("h", -2)
    VERY_HARD = ("vh", -3)
    WILDCARD = ("w", -3)

    def __init__(self, key: str, base_relative_level: int) -> None:
        self.key = key
        self.base_relative_level = base_relative_level

    @classmethod
    def from_key(cls, key: str) -> Difficulty:
        wanted = key.strip().lower()
        for difficulty in cls:
            if difficulty.key == wanted:
                return difficulty
        raise ValueError(f"unknown difficulty: {key!r}")


@dataclass(slots=True)
class AttributeDifficulty:
    attribute: str = "dx"
    difficulty: Difficulty = Difficulty.AVERAGE

    @classmethod
    def parse(cls, text: str) -> AttributeDifficulty:
        """Parse ``"dx/a"`` or a bare difficulty (``"h"``, used by techniques)."""
        attribute, slash, difficulty = text.partition("/")
        if not slash:
            return cls("", Difficulty.from_key(attribute))
        return cls(attribute.strip().lower(), Difficulty.from_key(difficulty))

    def __str__(self) -> str:
        if not self.attribute:
            return self.difficulty.key.upper()
        return f"{self.attribute.upper()}/{self.difficulty.key.upper()}"


@dataclass(slots=True)
class SkillDefault:
    """A default to an attribute (``type`` is the attribute id) or to another skill."""

    type: str = "skill"
    name: str = ""
    specialization: str = ""
    modifier: int = 0
    level: int | None = None
    adj_level: int | None = None
    points: int = 0

    @property
    def skill_based(self) -> bool:
        return self.type == "skill"

    def full_name(self) -> str:
        if not self.skill_based:
            return self.type.upper()
        if self.specialization:
            return f"{self.name} ({self.specialization})"
        return self.name

    def copy_without_level(self) -> SkillDefault:
        return SkillDefault(self.type, self.name, self.specialization, self.modifier)


@dataclass(frozen=True, slots=True)
class SkillLevel:
    """Computed level; ``level is None`` when the skill cannot be used at all."""

    level: int | None = None
    relative_level: int = 0
    tooltip: str = ""


# --- Base trait ---------------------------------------------------------------


@dataclass(slots=True, eq=False)
class Trait:
    trait_id: int = 0
    name: str = ""
    enabled: bool = True
    container: bool = False
    children: list[Trait] = field(default_factory=list)
    features: list[Feature] = field(default_factory=list)
    prereqs: PrereqList = field(default_factory=PrereqList)
    satisfied: bool = True
    unsatisfied_reason: str = ""
    categories: list[str] = field(default_factory=list)
    notes: str = ""

    @property
    def level_count(self) -> int:
        """Level handed to this trait's own leveled features."""
        return 0

    def is_active(self) -> bool:
        """Whether this trait's features count toward the feature index."""
        return self.enabled


def iter_traits(forest: Iterable[Trait]) -> Iterator[Trait]:
    """Depth-first walk over a forest; containers are yielded before their children."""
    for trait in forest:
        yield trait
        if trait.children:
            yield from iter_traits(trait.children)


# --- Advantages ---------------------------------------------------------------


@dataclass(slots=True, eq=False)
class Advantage(Trait):
    base_points: int = 0
    levels: int = 0
    points_per_level: int = 0
    half_level: bool = False
    round_cost_down: bool = False
    container_type: AdvantageContainerType = AdvantageContainerType.GROUP
    modifiers: list[AdvantageModifier] = field(default_factory=list)

    @property
    def is_leveled(self) -> bool:
        return self.points_per_level != 0 and self.levels > 0

    @property
    def level_count(self) -> int:
        return max(self.levels, 0)

    def adjusted_points(self, config: EngineConfig | None = None, multiplicative: bool = False) -> int:
        """Point cost after modifiers. Disabled advantages cost nothing."""
        if not self.enabled:
            return 0
        if not self.container:
            points = adjusted_advantage_points(
                self.base_points,
                self.level_count,
                self.points_per_level,
                self.modifiers,
                half_level=self.half_level,
                multiplicative=multiplicative,
                round_down=self.round_cost_down,
                config=config,
            )
            return points.as_int()
        values = [
            child.adjusted_points(config, multiplicative)
            for child in self.children
            if isinstance(child, Advantage)
        ]
        if self.container_type is not AdvantageContainerType.ALTERNATIVE_ABILITIES:
            return sum(values)
        if not values:
            return 0
        # Highest costs full price, every other ability a fifth of its cost.
        highest = max(values)
        total = Fixed6(highest)
        skipped = False
        for value in values:
            if value == highest and not skipped:
                skipped = True
                continue
            total += apply_rounding(Fixed6(value) / 5, self.round_cost_down)
        return total.as_int()


# --- Skills -------------------------------------------------------------------


@dataclass(slots=True, eq=False)
class Skill(Trait):
    specialization: str = ""
    difficulty: AttributeDifficulty = field(default_factory=AttributeDifficulty)
    points: int = 0
    defaults: list[SkillDefault] = field(default_factory=list)
    encumbrance_penalty_multiplier: int = 0
    tech_level: str | None = None
    technique: bool = False
    technique_default: SkillDefault | None = None
    limit_modifier: int | None = None
    level: int | None = None
    relative_level: int = 0
    level_tooltip: str = ""
    defaulted_from: SkillDefault | None = None

    @property
    def full_name(self) -> str:
        if self.specialization:
            return f"{self.name} ({self.specialization})"
        return self.name

    def adjusted_points(self, ctx) -> int:
        points = self.points + ctx.skill_point_bonus_for(self.name, self.specialization, self.categories)
        return max(points, 0)

    def update_level(self, ctx) -> bool:
        """Recompute the level in place; True if level or relative level changed."""
        saved = (self.level, self.relative_level)
        self.defaulted_from = self.best_default_with_points(ctx)
        result = self.calculate_level(ctx)
        self.level = result.level
        self.relative_level = result.relative_level
        self.level_tooltip = result.tooltip
        return saved != (self.level, self.relative_level)

    def calculate_level(self, ctx) -> SkillLevel:
        points = self.adjusted_points(ctx)
        if self.technique:
            return self._technique_level(ctx, points)
        return self._skill_level(ctx, points)

    def _skill_level(self, ctx, points: int) -> SkillLevel:
        difficulty = self.difficulty.difficulty
        wildcard = difficulty is Difficulty.WILDCARD
        relative = difficulty.base_relative_level
        current = ctx.attribute_current(self.difficulty.attribute)
        if current is None:
            return SkillLevel()
        level = current.as_int()
        default = self.defaulted_from
        if wildcard:
            points //= 3
        elif default is not None and default.points > 0:
            points += default.points
        if points == 1:
            pass
        elif 1 < points < 4:
            relative += 1
        elif points >= 4:
            relative += 1 + points // 4
        elif not wildcard and default is not None and default.points < 0:
            relative = default.adj_level - level
        else:
            return SkillLevel()
        level += relative
        if not wildcard and default is not None and level < default.adj_level:
            level = default.adj_level
        tooltip = []
        bonus = ctx.skill_bonus_for(self.name, self.specialization, self.categories, tooltip)
        level += bonus
        relative += bonus
        penalty = ctx.encumbrance_penalty * self.encumbrance_penalty_multiplier
        level += penalty
        if penalty:
            tooltip.append(f"\nEncumbrance [{penalty:+d}]")
        return SkillLevel(level, relative, "".join(tooltip))

    def _technique_level(self, ctx, points: int) -> SkillLevel:
        default = self.technique_default
        if default is None:
            return SkillLevel()
        if default.skill_based:
            base_skill = ctx.best_skill_named(default.name, default.specialization, True, set())
            level = base_skill.level if base_skill is not None else None
        else:
            current = ctx.attribute_current(default.type)
            level = current.as_int() if current is not None else None
        if level is None:
            return SkillLevel()
        base_level = level
        level += default.modifier
        if self.difficulty.difficulty is Difficulty.HARD:
            points -= 1
        relative = max(points, 0)
        tooltip = []
        relative += ctx.skill_bonus_for(self.name, self.specialization, self.categories, tooltip)
        level += relative
        if self.limit_modifier is not None:
            cap = base_level + self.limit_modifier
            if level > cap:
                relative -= level - cap
                level = cap
        return SkillLevel(level, relative, "".join(tooltip))

    # --- Defaults ----------------------------------------------------------

    def best_default_with_points(self, ctx) -> SkillDefault | None:
        """Best default, with the points it is worth relative to buying the skill."""
        if self.technique:
            return None
        best = self._best_default(ctx)
        if best is None:
            return None
        current = ctx.attribute_current(self.difficulty.attribute)
        baseline = (current.as_int() if current is not None else 0) + self.difficulty.difficulty.base_relative_level
        level = best.level
        best.adj_level = level
        if level == baseline:
            best.points = 1
        elif level == baseline + 1:
            best.points = 2
        elif level > baseline + 1:
            best.points = 4 * (level - (baseline + 1))
        else:
            best.points = -max(level, 0)
        return best

    def _best_default(self, ctx) -> SkillDefault | None:
        if not self.defaults:
            return None
        excludes = {self.full_name}
        best: SkillDefault | None = None
        for default in self._specific_defaults(ctx):
            # Skip defaults whose skill already defaults back through us.
            if self._in_default_chain(ctx, default, set()):
                continue
            level = self._default_level(ctx, default, excludes)
            if level is not None and (best is None or level > best.level):
                best = default.copy_without_level()
                best.level = level
        return best

    def _default_level(self, ctx, default: SkillDefault, excludes: set[str]) -> int | None:
        if default.skill_based:
            other = ctx.best_skill_named(default.name, default.specialization, True, excludes)
            if other is None or other.level is None:
                return None
            bonus = ctx.skill_bonus_for(default.name, default.specialization, self.categories)
            return other.level - bonus + default.modifier
        current = ctx.attribute_current(default.type)
        if current is None:
            return None
        return current.as_int() + default.modifier

    def _specific_defaults(self, ctx) -> list[SkillDefault]:
        result = []
        for default in self.defaults:
            if not default.skill_based:
                result.append(default)
                continue
            for one in ctx.skills_named(default.name, default.specialization, True, {self.full_name}):
                local = copy.copy(default)
                local.specialization = one.specialization
                result.append(local)
        return result

    def _in_default_chain(self, ctx, default: SkillDefault | None, looked_at: set[int]) -> bool:
        if default is None or not default.skill_based:
            return False
        for one in ctx.skills_named(default.name, default.specialization, True, set()):
            if one is self:
                return True
            if id(one) not in looked_at:
                looked_at.add(id(one))
                if self._in_default_chain(ctx, one.defaulted_from, looked_at):
                    return True
        return False


# --- Spells -------------------------------------------------------------------


def _spell_difficulty() -> AttributeDifficulty:
    return AttributeDifficulty("iq", Difficulty.HARD)


@dataclass(slots=True, eq=False)
class Spell(Trait):
    colleges: list[str] = field(default_factory=list)
    power_source: str = "Arcane"
    difficulty: AttributeDifficulty = field(default_factory=_spell_difficulty)
    points: int = 0
    tech_level: str | None = None
    level: int | None = None
    relative_level: int = 0
    level_tooltip: str = ""

    def adjusted_points(self, ctx) -> int:
        bonus = ctx.spell_point_bonus_for(self.name, self.colleges, self.power_source, self.categories)
        return max(self.points + bonus, 0)

    def update_level(self, ctx) -> bool:
        saved = (self.level, self.relative_level)
        result = self.calculate_level(ctx)
        self.level = result.level
        self.relative_level = result.relative_level
        self.level_tooltip = result.tooltip
        return saved != (self.level, self.relative_level)

    def calculate_level(self, ctx) -> SkillLevel:
        points = self.adjusted_points(ctx)
        difficulty = self.difficulty.difficulty
        relative = difficulty.base_relative_level
        current = ctx.attribute_current(self.difficulty.attribute)
        if current is None:
            return SkillLevel()
        if difficulty is Difficulty.WILDCARD:
            points //= 3
        if points < 1:
            return SkillLevel()
        if 1 < points < 4:
            relative += 1
        elif points >= 4:
            relative += 1 + points // 4
        tooltip = []
        relative += ctx.spell_bonus_for(self.name, self.colleges, self.power_source, self.categories, tooltip)
        return SkillLevel(current.as_int() + relative, relative, "".join(tooltip))


# --- Equipment ----------------------------------------------------------------


def _in_units(weight: WeightValue, units: WeightUnits, use_simple_metric: bool) -> Fixed6:
    if use_simple_metric:
        weight = simple_metric(weight, units)
    return units.convert(weight.units, weight.value)


@dataclass(slots=True, eq=False)
class Equipment(Trait):
    quantity: int = 1
    value: Fixed6 = field(default_factory=lambda: ZERO)
    weight: WeightValue = field(default_factory=lambda: WeightValue(ZERO))
    equipped: bool = True
    weight_ignored_for_skills: bool = False
    modifiers: list[EquipmentModifier] = field(default_factory=list)
    tech_level: str = ""

    def is_active(self) -> bool:
        return self.enabled and self.equipped and self.quantity >= 1

    def adjusted_value(self, config: EngineConfig | None = None) -> Fixed6:
        """Value of one unit after modifiers, excluding contents."""
        return value_adjusted_for_modifiers(self.value, self.modifiers, config)

    def extended_value(self, config: EngineConfig | None = None) -> Fixed6:
        if self.quantity <= 0:
            return ZERO
        value = self.adjusted_value(config)
        for child in self.children:
            if isinstance(child, Equipment):
                value += child.extended_value(config)
        return value * self.quantity

    def adjusted_weight(self, for_skills: bool = False, default_units: WeightUnits = WeightUnits.LB) -> WeightValue:
        """Weight of one unit after modifiers, excluding contents."""
        if for_skills and self.weight_ignored_for_skills and self.equipped:
            return WeightValue(ZERO, self.weight.units)
        return weight_adjusted_for_modifiers(self.weight, self.modifiers, default_units)

    def contained_weight_reductions(self) -> list[ContainedWeightReduction]:
        """Reductions from the container itself and its enabled modifiers."""
        found = [f for f in self.features if isinstance(f, ContainedWeightReduction)]
        for mod in self.modifiers:
            if mod.enabled:
                found.extend(f for f in mod.features if isinstance(f, ContainedWeightReduction))
        return found

    def extended_weight(
        self,
        for_skills: bool = False,
        default_units: WeightUnits = WeightUnits.LB,
        use_simple_metric: bool = False,
    ) -> WeightValue:
        """Weight of the whole stack, contents included, in ``default_units``."""
        if self.quantity <= 0:
            return WeightValue(ZERO, default_units)
        base = _in_units(self.adjusted_weight(for_skills, default_units), default_units, use_simple_metric)
        children = [child for child in self.children if isinstance(child, Equipment)]
        if children:
            contained = ZERO
            for child in children:
                child_weight = child.extended_weight(for_skills, default_units, use_simple_metric)
                contained += _in_units(child_weight, default_units, use_simple_metric)
            percentage = ZERO
            reduction = ZERO
            for cwr in self.contained_weight_reductions():
                if cwr.is_percentage_reduction:
                    percentage += cwr.percentage_reduction()
                else:
                    fixed = cwr.fixed_reduction(default_units)
                    reduction += default_units.convert(fixed.units, fixed.value)
            if percentage >= HUNDRED:
                contained = ZERO
            elif percentage > ZERO:
                contained -= contained * percentage / HUNDRED
            base += (contained - reduction).max(ZERO)
        return WeightValue(base * self.quantity, default_units)


# --- Notes --------------------------------------------------------------------


@dataclass(slots=True, eq=False)
class Note(Trait):
    text: str = ""
