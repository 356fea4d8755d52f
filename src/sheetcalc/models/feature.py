"""Features: rule effects attached to traits and modifiers.

The variant set is closed. Consumers dispatch on the concrete class
(``isinstance``) or on the ``feature_type`` tag, never on open-ended
subclass hooks. Every variant exposes a ``key`` naming what it targets;
the feature index lower-cases keys on insertion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar

import structlog

from sheetcalc.models.criteria import (
    NumericCompareType,
    NumericCriteria,
    StringCompareType,
    StringCriteria,
)
from sheetcalc.models.fixed6 import HUNDRED, ZERO, Fixed6
from sheetcalc.models.weight import WeightUnits, WeightValue

logger = structlog.get_logger(__name__)

# --- Keys -------------------------------------------------------------------

ATTRIBUTE_PREFIX = "attr."
SKILL_NAME_KEY = "skill.name"
SKILL_POINTS_KEY = "skill.points"
WEAPON_NAMED_KEY = "weapon_named."
THIS_WEAPON_KEY = "\x01"
SPELL_COLLEGE_KEY = "spell.college"
SPELL_COLLEGE_POINTS_KEY = "spell.college.points"
SPELL_POWER_SOURCE_KEY = "spell.power_source"
SPELL_POWER_SOURCE_POINTS_KEY = "spell.power_source.points"
SPELL_NAME_KEY = "spell.name"
SPELL_POINTS_KEY = "spell.points"
HIT_LOCATION_PREFIX = "hit_location."
REACTION_KEY = "reaction"
CONDITIONAL_MODIFIER_KEY = "conditional_modifier"
CONTAINED_WEIGHT_REDUCTION_KEY = "contained_weight_reduction"


class FeatureType(Enum):
    ATTRIBUTE_BONUS = "attribute_bonus"
    CONDITIONAL_MODIFIER = "conditional_modifier"
    DR_BONUS = "dr_bonus"
    REACTION_BONUS = "reaction_bonus"
    SKILL_BONUS = "skill_bonus"
    SKILL_POINT_BONUS = "skill_point_bonus"
    SPELL_BONUS = "spell_bonus"
    SPELL_POINT_BONUS = "spell_point_bonus"
    WEAPON_DAMAGE_BONUS = "weapon_bonus"
    COST_REDUCTION = "cost_reduction"
    CONTAINED_WEIGHT_REDUCTION = "contained_weight_reduction"


class AttributeBonusLimitation(Enum):
    NONE = "none"
    STRIKING_ONLY = "striking_only"
    LIFTING_ONLY = "lifting_only"
    THROWING_ONLY = "throwing_only"


class SkillSelectionType(Enum):
    SKILLS_WITH_NAME = "skills_with_name"
    WEAPONS_WITH_NAME = "weapons_with_name"
    THIS_WEAPON = "this_weapon"


class SpellMatchType(Enum):
    ALL_COLLEGES = "all_colleges"
    COLLEGE_NAME = "college_name"
    POWER_SOURCE_NAME = "power_source_name"
    SPELL_NAME = "spell_name"


def _is_criteria() -> StringCriteria:
    return StringCriteria(StringCompareType.IS)


def _any_criteria() -> StringCriteria:
    return StringCriteria(StringCompareType.ANY)


def _build_key(prefix: str, name: StringCriteria, *others: StringCriteria) -> str:
    """Exact-name bonuses get their own key; anything looser goes under ``prefix*``."""
    if name.is_type_is and all(other.is_type_anything for other in others):
        return f"{prefix}/{name.qualifier}"
    return f"{prefix}*"


# --- Leveled amount ---------------------------------------------------------


@dataclass(slots=True)
class LeveledAmount:
    """A bonus amount, optionally multiplied by a level count set at index time."""

    amount: Fixed6 = field(default_factory=lambda: ZERO)
    per_level: bool = False
    level: int = 0

    @property
    def adjusted_amount(self) -> Fixed6:
        if self.per_level:
            return self.amount * self.level
        return self.amount

    @property
    def integer_adjusted_amount(self) -> int:
        return self.adjusted_amount.as_int()

    def describe(self) -> str:
        text = self.amount.string_with_sign()
        if self.per_level:
            text += " per level"
        return text


# --- Bonuses ----------------------------------------------------------------


@dataclass(slots=True)
class Bonus:
    """Shared shape of every bonus variant.

    ``owner_id`` is the trait id of whatever contributed the bonus. It is
    written by the index builder and only read to label tooltips.
    """

    amount: LeveledAmount = field(default_factory=LeveledAmount)
    owner_id: int | None = None


@dataclass(slots=True)
class AttributeBonus(Bonus):
    feature_type: ClassVar[FeatureType] = FeatureType.ATTRIBUTE_BONUS

    attribute: str = "st"
    limitation: AttributeBonusLimitation = AttributeBonusLimitation.NONE

    @property
    def key(self) -> str:
        key = ATTRIBUTE_PREFIX + self.attribute
        if self.limitation is not AttributeBonusLimitation.NONE:
            key += "." + self.limitation.value
        return key


@dataclass(slots=True)
class SkillBonus(Bonus):
    feature_type: ClassVar[FeatureType] = FeatureType.SKILL_BONUS

    selection_type: SkillSelectionType = SkillSelectionType.SKILLS_WITH_NAME
    name: StringCriteria = field(default_factory=_is_criteria)
    specialization: StringCriteria = field(default_factory=_any_criteria)
    category: StringCriteria = field(default_factory=_any_criteria)

    @property
    def key(self) -> str:
        if self.selection_type is SkillSelectionType.THIS_WEAPON:
            return THIS_WEAPON_KEY
        if self.selection_type is SkillSelectionType.WEAPONS_WITH_NAME:
            return _build_key(WEAPON_NAMED_KEY, self.name, self.specialization, self.category)
        return _build_key(SKILL_NAME_KEY, self.name, self.specialization, self.category)


@dataclass(slots=True)
class SkillPointBonus(Bonus):
    feature_type: ClassVar[FeatureType] = FeatureType.SKILL_POINT_BONUS

    name: StringCriteria = field(default_factory=_is_criteria)
    specialization: StringCriteria = field(default_factory=_any_criteria)
    category: StringCriteria = field(default_factory=_any_criteria)

    @property
    def key(self) -> str:
        return _build_key(SKILL_POINTS_KEY, self.name, self.specialization, self.category)


@dataclass(slots=True)
class SpellBonus(Bonus):
    feature_type: ClassVar[FeatureType] = FeatureType.SPELL_BONUS

    match: SpellMatchType = SpellMatchType.ALL_COLLEGES
    name: StringCriteria = field(default_factory=_is_criteria)
    category: StringCriteria = field(default_factory=_any_criteria)

    @property
    def key(self) -> str:
        if self.match is SpellMatchType.ALL_COLLEGES:
            return SPELL_COLLEGE_KEY
        if self.match is SpellMatchType.COLLEGE_NAME:
            return _build_key(SPELL_COLLEGE_KEY, self.name, self.category)
        if self.match is SpellMatchType.POWER_SOURCE_NAME:
            return _build_key(SPELL_POWER_SOURCE_KEY, self.name, self.category)
        return _build_key(SPELL_NAME_KEY, self.name, self.category)


@dataclass(slots=True)
class SpellPointBonus(Bonus):
    feature_type: ClassVar[FeatureType] = FeatureType.SPELL_POINT_BONUS

    match: SpellMatchType = SpellMatchType.ALL_COLLEGES
    name: StringCriteria = field(default_factory=_is_criteria)
    category: StringCriteria = field(default_factory=_any_criteria)

    @property
    def key(self) -> str:
        if self.match is SpellMatchType.ALL_COLLEGES:
            return SPELL_COLLEGE_POINTS_KEY
        if self.match is SpellMatchType.COLLEGE_NAME:
            return _build_key(SPELL_COLLEGE_POINTS_KEY, self.name, self.category)
        if self.match is SpellMatchType.POWER_SOURCE_NAME:
            return _build_key(SPELL_POWER_SOURCE_POINTS_KEY, self.name, self.category)
        return _build_key(SPELL_POINTS_KEY, self.name, self.category)


@dataclass(slots=True)
class WeaponDamageBonus(Bonus):
    """Per-die damage bonus for weapons; the index sets ``level`` to the die count."""

    feature_type: ClassVar[FeatureType] = FeatureType.WEAPON_DAMAGE_BONUS

    selection_type: SkillSelectionType = SkillSelectionType.SKILLS_WITH_NAME
    name: StringCriteria = field(default_factory=_is_criteria)
    specialization: StringCriteria = field(default_factory=_any_criteria)
    relative_level: NumericCriteria = field(
        default_factory=lambda: NumericCriteria(NumericCompareType.AT_LEAST, ZERO)
    )
    category: StringCriteria = field(default_factory=_any_criteria)

    @property
    def key(self) -> str:
        if self.selection_type is SkillSelectionType.THIS_WEAPON:
            return THIS_WEAPON_KEY
        if self.selection_type is SkillSelectionType.WEAPONS_WITH_NAME:
            return _build_key(WEAPON_NAMED_KEY, self.name, self.specialization, self.category)
        return _build_key(SKILL_NAME_KEY, self.name, self.specialization, self.category)


@dataclass(slots=True)
class DRBonus(Bonus):
    feature_type: ClassVar[FeatureType] = FeatureType.DR_BONUS

    location: str = "torso"
    specialization: str = "all"

    @property
    def key(self) -> str:
        return HIT_LOCATION_PREFIX + self.location


@dataclass(slots=True)
class ReactionBonus(Bonus):
    feature_type: ClassVar[FeatureType] = FeatureType.REACTION_BONUS

    situation: str = "from others"

    @property
    def key(self) -> str:
        return REACTION_KEY


@dataclass(slots=True)
class ConditionalModifier(Bonus):
    feature_type: ClassVar[FeatureType] = FeatureType.CONDITIONAL_MODIFIER

    situation: str = "triggering condition"

    @property
    def key(self) -> str:
        return CONDITIONAL_MODIFIER_KEY


# --- Non-bonus features -----------------------------------------------------


@dataclass(slots=True)
class CostReduction:
    """Percentage off an attribute's point cost."""

    feature_type: ClassVar[FeatureType] = FeatureType.COST_REDUCTION

    attribute: str = "st"
    percentage: int = 40

    @property
    def key(self) -> str:
        return ATTRIBUTE_PREFIX + self.attribute


@dataclass(slots=True)
class ContainedWeightReduction:
    """Reduces the weight of a container's contents.

    ``reduction`` is either a percentage (``"50%"``) or a weight (``"5 lb"``).
    """

    feature_type: ClassVar[FeatureType] = FeatureType.CONTAINED_WEIGHT_REDUCTION

    reduction: str = "0%"

    @property
    def key(self) -> str:
        return CONTAINED_WEIGHT_REDUCTION_KEY

    @property
    def is_percentage_reduction(self) -> bool:
        return self.reduction.strip().endswith("%")

    def percentage_reduction(self) -> Fixed6:
        if not self.is_percentage_reduction:
            return ZERO
        try:
            percent = Fixed6.parse(self.reduction.strip()[:-1])
        except ValueError:
            logger.warning("malformed_weight_reduction", reduction=self.reduction)
            return ZERO
        return percent.max(ZERO).min(HUNDRED)

    def fixed_reduction(self, default_units: WeightUnits) -> WeightValue:
        if self.is_percentage_reduction:
            return WeightValue(ZERO, default_units)
        try:
            return WeightValue.parse(self.reduction, default_units)
        except ValueError:
            logger.warning("malformed_weight_reduction", reduction=self.reduction)
            return WeightValue(ZERO, default_units)


BONUS_TYPES = (
    AttributeBonus,
    SkillBonus,
    SkillPointBonus,
    SpellBonus,
    SpellPointBonus,
    WeaponDamageBonus,
    DRBonus,
    ReactionBonus,
    ConditionalModifier,
)

Feature = (
    AttributeBonus
    | SkillBonus
    | SkillPointBonus
    | SpellBonus
    | SpellPointBonus
    | WeaponDamageBonus
    | DRBonus
    | ReactionBonus
    | ConditionalModifier
    | CostReduction
    | ContainedWeightReduction
)
