"""Key -> feature map built fresh from the trait forests on every pass.

Only active traits contribute: enabled, and for equipment also equipped
with a quantity of at least one. A disabled advantage container takes
its whole subtree with it. Enabled modifiers contribute their features
too, leveled by the modifier's own level count; equipment modifiers have
no levels.

Each bonus gets ``owner_id`` set to the contributing trait's id so
tooltips can name the source. The index keeps id -> name for that and
never holds the traits themselves.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from sheetcalc.models.criteria import matches_categories
from sheetcalc.models.feature import (
    CONDITIONAL_MODIFIER_KEY,
    HIT_LOCATION_PREFIX,
    REACTION_KEY,
    SKILL_NAME_KEY,
    SKILL_POINTS_KEY,
    SPELL_COLLEGE_KEY,
    SPELL_COLLEGE_POINTS_KEY,
    SPELL_NAME_KEY,
    SPELL_POINTS_KEY,
    SPELL_POWER_SOURCE_KEY,
    SPELL_POWER_SOURCE_POINTS_KEY,
    WEAPON_NAMED_KEY,
    Bonus,
    ConditionalModifier,
    CostReduction,
    DRBonus,
    Feature,
    ReactionBonus,
    SkillBonus,
    SkillPointBonus,
    SkillSelectionType,
    SpellBonus,
    SpellPointBonus,
    WeaponDamageBonus,
)
from sheetcalc.models.fixed6 import ZERO, Fixed6
from sheetcalc.models.trait import Advantage, Equipment, Trait

MAX_COST_REDUCTION = 80


@dataclass(slots=True)
class SituationalBonus:
    """Reaction or conditional modifier total for one situation."""

    situation: str
    amount: int = 0
    sources: list[str] = field(default_factory=list)


class FeatureIndex:
    """Case-insensitive map from target key to the features aimed at it."""

    __slots__ = ("_features", "_owners")

    def __init__(self) -> None:
        self._features: dict[str, list[Feature]] = {}
        self._owners: dict[int, str] = {}

    # --- Building ----------------------------------------------------------

    @classmethod
    def build(cls, forests: Iterable[Sequence[Trait]]) -> FeatureIndex:
        index = cls()
        for forest in forests:
            index._walk(forest)
        return index

    def _walk(self, forest: Sequence[Trait]) -> None:
        for trait in forest:
            if isinstance(trait, Advantage) and not trait.enabled:
                continue
            if trait.is_active():
                self._add_trait(trait)
            if trait.children:
                self._walk(trait.children)

    def _add_trait(self, trait: Trait) -> None:
        self._owners[trait.trait_id] = trait.name
        for feature in trait.features:
            self._add(feature, trait.trait_id, trait.level_count)
        if isinstance(trait, Advantage):
            for mod in trait.modifiers:
                if mod.enabled:
                    for feature in mod.features:
                        self._add(feature, trait.trait_id, max(mod.levels, 0))
        elif isinstance(trait, Equipment):
            for mod in trait.modifiers:
                if mod.enabled:
                    for feature in mod.features:
                        self._add(feature, trait.trait_id, 0)

    def _add(self, feature: Feature, owner_id: int, level: int) -> None:
        if isinstance(feature, Bonus):
            feature.amount.level = level
            feature.owner_id = owner_id
        self._features.setdefault(feature.key.lower(), []).append(feature)

    # --- Raw access --------------------------------------------------------

    def __contains__(self, key: str) -> bool:
        return key.lower() in self._features

    def __len__(self) -> int:
        return len(self._features)

    def keys(self) -> list[str]:
        return sorted(self._features)

    def features_for(self, key: str) -> list[Feature]:
        return list(self._features.get(key.lower(), ()))

    def owner_name(self, owner_id: int | None) -> str:
        if owner_id is None:
            return ""
        return self._owners.get(owner_id, "")

    def _note(self, tooltip: list[str] | None, bonus: Bonus, amount: str) -> None:
        if tooltip is not None:
            tooltip.append(f"\n{self.owner_name(bonus.owner_id)} [{amount}]")

    # --- Plain bonuses -----------------------------------------------------

    def _plain_bonuses(self, key: str) -> list[Bonus]:
        return [
            f for f in self.features_for(key)
            if isinstance(f, Bonus) and not isinstance(f, WeaponDamageBonus)
        ]

    def integer_bonus_for(self, key: str, tooltip: list[str] | None = None) -> int:
        total = 0
        for bonus in self._plain_bonuses(key):
            amount = bonus.amount.integer_adjusted_amount
            total += amount
            self._note(tooltip, bonus, f"{amount:+d}")
        return total

    def decimal_bonus_for(self, key: str, tooltip: list[str] | None = None) -> Fixed6:
        total = ZERO
        for bonus in self._plain_bonuses(key):
            amount = bonus.amount.adjusted_amount
            total += amount
            self._note(tooltip, bonus, amount.string_with_sign())
        return total

    def cost_reduction_for(self, key: str, cap: int = MAX_COST_REDUCTION) -> int:
        total = sum(f.percentage for f in self.features_for(key) if isinstance(f, CostReduction))
        return min(total, cap)

    # --- Skills ------------------------------------------------------------

    def _named(self, prefix: str, name: str) -> list[Feature]:
        return self.features_for(f"{prefix}/{name}") + self.features_for(f"{prefix}*")

    def skill_bonus_for(
        self,
        name: str,
        specialization: str,
        categories: Iterable[str] | None,
        tooltip: list[str] | None = None,
    ) -> int:
        total = 0
        categories = list(categories or ())
        for f in self._named(SKILL_NAME_KEY, name):
            if (
                isinstance(f, SkillBonus)
                and f.selection_type is SkillSelectionType.SKILLS_WITH_NAME
                and f.name.matches(name)
                and f.specialization.matches(specialization)
                and matches_categories(f.category, categories)
            ):
                amount = f.amount.integer_adjusted_amount
                total += amount
                self._note(tooltip, f, f"{amount:+d}")
        return total

    def skill_point_bonus_for(
        self,
        name: str,
        specialization: str,
        categories: Iterable[str] | None,
        tooltip: list[str] | None = None,
    ) -> int:
        total = 0
        categories = list(categories or ())
        for f in self._named(SKILL_POINTS_KEY, name):
            if (
                isinstance(f, SkillPointBonus)
                and f.name.matches(name)
                and f.specialization.matches(specialization)
                and matches_categories(f.category, categories)
            ):
                amount = f.amount.integer_adjusted_amount
                total += amount
                self._note(tooltip, f, f"{amount:+d}")
        return total

    # --- Spells ------------------------------------------------------------

    def _spell_total(
        self,
        kind: type,
        all_key: str,
        college_prefix: str,
        power_source_prefix: str,
        name_prefix: str,
        name: str,
        colleges: Iterable[str],
        power_source: str,
        categories: Iterable[str] | None,
        tooltip: list[str] | None,
    ) -> int:
        categories = list(categories or ())
        candidates: list[tuple[Feature, str]] = [(f, "") for f in self.features_for(all_key)]
        candidates += [(f, name) for f in self._named(name_prefix, name)]
        for college in colleges:
            candidates += [(f, college) for f in self._named(college_prefix, college)]
        if power_source:
            candidates += [(f, power_source) for f in self._named(power_source_prefix, power_source)]
        total = 0
        seen: set[int] = set()
        for f, qualifier in candidates:
            if not isinstance(f, kind) or id(f) in seen:
                continue
            if f.key.lower() != all_key and not f.name.matches(qualifier):
                continue
            if not matches_categories(f.category, categories):
                continue
            seen.add(id(f))
            amount = f.amount.integer_adjusted_amount
            total += amount
            self._note(tooltip, f, f"{amount:+d}")
        return total

    def spell_bonus_for(
        self,
        name: str,
        colleges: Iterable[str],
        power_source: str,
        categories: Iterable[str] | None,
        tooltip: list[str] | None = None,
    ) -> int:
        return self._spell_total(
            SpellBonus, SPELL_COLLEGE_KEY, SPELL_COLLEGE_KEY, SPELL_POWER_SOURCE_KEY,
            SPELL_NAME_KEY, name, colleges, power_source, categories, tooltip,
        )

    def spell_point_bonus_for(
        self,
        name: str,
        colleges: Iterable[str],
        power_source: str,
        categories: Iterable[str] | None,
        tooltip: list[str] | None = None,
    ) -> int:
        return self._spell_total(
            SpellPointBonus, SPELL_COLLEGE_POINTS_KEY, SPELL_COLLEGE_POINTS_KEY,
            SPELL_POWER_SOURCE_POINTS_KEY, SPELL_POINTS_KEY, name, colleges, power_source,
            categories, tooltip,
        )

    # --- Weapons -----------------------------------------------------------

    def named_weapon_damage_bonuses_for(
        self,
        name: str,
        usage: str,
        categories: Iterable[str] | None,
        die_count: int,
    ) -> list[WeaponDamageBonus]:
        """Damage bonuses aimed at weapons called ``name``, leveled by ``die_count``."""
        categories = list(categories or ())
        found = []
        for f in self._named(WEAPON_NAMED_KEY, name):
            if (
                isinstance(f, WeaponDamageBonus)
                and f.selection_type is SkillSelectionType.WEAPONS_WITH_NAME
                and f.name.matches(name)
                and f.specialization.matches(usage)
                and matches_categories(f.category, categories)
            ):
                f.amount.level = die_count
                found.append(f)
        return found

    def weapon_compared_damage_bonuses_for(
        self,
        name: str,
        specialization: str,
        categories: Iterable[str] | None,
        relative_level: int,
        die_count: int,
    ) -> list[WeaponDamageBonus]:
        """Damage bonuses aimed at the skill used with a weapon, leveled by ``die_count``."""
        categories = list(categories or ())
        found = []
        for f in self._named(SKILL_NAME_KEY, name):
            if (
                isinstance(f, WeaponDamageBonus)
                and f.selection_type is SkillSelectionType.SKILLS_WITH_NAME
                and f.name.matches(name)
                and f.specialization.matches(specialization)
                and f.relative_level.matches(relative_level)
                and matches_categories(f.category, categories)
            ):
                f.amount.level = die_count
                found.append(f)
        return found

    # --- Defences and situations -------------------------------------------

    def dr_bonuses_for(self, location: str) -> dict[str, int]:
        """DR bonus per specialization (``"all"`` for the general case)."""
        totals: dict[str, int] = {}
        for f in self.features_for(HIT_LOCATION_PREFIX + location):
            if isinstance(f, DRBonus):
                spec = f.specialization.lower() or "all"
                totals[spec] = totals.get(spec, 0) + f.amount.integer_adjusted_amount
        return totals

    def _situational(self, key: str, kind: type) -> list[SituationalBonus]:
        by_situation: dict[str, SituationalBonus] = {}
        for f in self.features_for(key):
            if not isinstance(f, kind):
                continue
            amount = f.amount.integer_adjusted_amount
            entry = by_situation.setdefault(f.situation, SituationalBonus(f.situation))
            entry.amount += amount
            entry.sources.append(f"{amount:+d} {self.owner_name(f.owner_id)}")
        return sorted(by_situation.values(), key=lambda entry: entry.situation)

    def reaction_bonuses(self) -> list[SituationalBonus]:
        return self._situational(REACTION_KEY, ReactionBonus)

    def conditional_modifiers(self) -> list[SituationalBonus]:
        return self._situational(CONDITIONAL_MODIFIER_KEY, ConditionalModifier)
