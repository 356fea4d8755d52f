"""Tests for FeatureIndex: which traits contribute, and the bonus queries."""

from sheetcalc.engine.feature_index import FeatureIndex
from sheetcalc.models.criteria import StringCompareType, StringCriteria
from sheetcalc.models.feature import (
    AttributeBonus,
    CostReduction,
    DRBonus,
    LeveledAmount,
    ReactionBonus,
    SkillBonus,
    SkillPointBonus,
    SkillSelectionType,
    SpellBonus,
    SpellMatchType,
    WeaponDamageBonus,
)
from sheetcalc.models.fixed6 import Fixed6
from sheetcalc.models.modifier import AdvantageModifier, EquipmentModifier
from sheetcalc.models.trait import Advantage, Equipment, Skill


# --- Helpers ---

def _amount(value: int, per_level: bool = False) -> LeveledAmount:
    return LeveledAmount(Fixed6(value), per_level=per_level)


def _st_bonus(value: int, per_level: bool = False) -> AttributeBonus:
    return AttributeBonus(amount=_amount(value, per_level), attribute="st")


def _advantage(name: str, *features, trait_id: int = 1, **kwargs) -> Advantage:
    return Advantage(trait_id=trait_id, name=name, features=list(features), **kwargs)


def _is(name: str) -> StringCriteria:
    return StringCriteria(StringCompareType.IS, name)


def _index(*traits) -> FeatureIndex:
    return FeatureIndex.build([list(traits)])


# --- Contribution rules ---

class TestContributors:
    def test_enabled_advantage_contributes(self):
        index = _index(_advantage("Strong", _st_bonus(2)))
        assert index.integer_bonus_for("attr.st") == 2

    def test_disabled_advantage_contributes_nothing(self):
        index = _index(_advantage("Strong", _st_bonus(2), enabled=False))
        assert index.integer_bonus_for("attr.st") == 0
        assert "attr.st" not in index

    def test_disabled_container_hides_children(self):
        child = _advantage("Strong", _st_bonus(2), trait_id=2)
        group = _advantage("Group", trait_id=1, container=True, children=[child], enabled=False)
        assert _index(group).integer_bonus_for("attr.st") == 0

    def test_enabled_container_passes_children_through(self):
        child = _advantage("Strong", _st_bonus(2), trait_id=2)
        group = _advantage("Group", _st_bonus(1), trait_id=1, container=True, children=[child])
        assert _index(group).integer_bonus_for("attr.st") == 3

    def test_per_level_bonus_uses_advantage_levels(self):
        """+1 per level x 3 levels = +3."""
        index = _index(_advantage("Lifting", _st_bonus(1, per_level=True), levels=3, points_per_level=3))
        assert index.integer_bonus_for("attr.st") == 3

    def test_unequipped_equipment_excluded(self):
        item = Equipment(trait_id=1, name="Belt", features=[_st_bonus(1)], equipped=False)
        assert _index(item).integer_bonus_for("attr.st") == 0

    def test_zero_quantity_equipment_excluded(self):
        item = Equipment(trait_id=1, name="Belt", features=[_st_bonus(1)], quantity=0)
        assert _index(item).integer_bonus_for("attr.st") == 0

    def test_equipped_equipment_included(self):
        item = Equipment(trait_id=1, name="Belt", features=[_st_bonus(1)])
        assert _index(item).integer_bonus_for("attr.st") == 1

    def test_modifier_features_follow_enabled_flag(self):
        on = AdvantageModifier(name="Extra ST", features=[_st_bonus(1, per_level=True)], levels=2)
        off = AdvantageModifier(name="Unused", enabled=False, features=[_st_bonus(5)])
        index = _index(_advantage("Strong", modifiers=[on, off]))
        assert index.integer_bonus_for("attr.st") == 2

    def test_equipment_modifier_features_have_level_zero(self):
        mod = EquipmentModifier(name="Fine", features=[_st_bonus(4, per_level=True)])
        item = Equipment(trait_id=1, name="Belt", modifiers=[mod])
        assert _index(item).integer_bonus_for("attr.st") == 0

    def test_owner_id_is_set(self):
        bonus = _st_bonus(2)
        _index(_advantage("Strong", bonus, trait_id=7))
        assert bonus.owner_id == 7


# --- Queries ---

class TestQueries:
    def test_keys_are_case_insensitive(self):
        index = _index(_advantage("Strong", _st_bonus(2)))
        assert index.integer_bonus_for("ATTR.ST") == 2
        assert index.keys() == ["attr.st"]

    def test_unknown_key_is_empty(self):
        index = _index(_advantage("Strong", _st_bonus(2)))
        assert index.features_for("attr.nope") == []
        assert index.integer_bonus_for("attr.nope") == 0

    def test_tooltip_lines_name_the_owner(self):
        index = _index(_advantage("Strong", _st_bonus(2)))
        tooltip = []
        index.integer_bonus_for("attr.st", tooltip)
        assert tooltip == ["\nStrong [+2]"]

    def test_decimal_bonus_keeps_fraction(self):
        bonus = AttributeBonus(amount=LeveledAmount(Fixed6.parse("0.25")), attribute="basic_speed")
        index = _index(_advantage("Fast", bonus))
        assert index.decimal_bonus_for("attr.basic_speed") == Fixed6.parse("0.25")
        assert index.integer_bonus_for("attr.basic_speed") == 0

    def test_cost_reduction_is_capped(self):
        """50% + 50% caps at 80%."""
        index = _index(
            _advantage("A", CostReduction("st", 50), trait_id=1),
            _advantage("B", CostReduction("st", 50), trait_id=2),
        )
        assert index.cost_reduction_for("attr.st") == 80

    def test_skill_bonus_exact_and_loose(self):
        exact = SkillBonus(amount=_amount(2), name=_is("Broadsword"))
        loose = SkillBonus(
            amount=_amount(1), name=StringCriteria(StringCompareType.ENDS_WITH, "sword")
        )
        index = _index(_advantage("Trained", exact, loose))
        assert index.skill_bonus_for("Broadsword", "", []) == 3
        assert index.skill_bonus_for("Shortsword", "", []) == 1
        assert index.skill_bonus_for("Axe/Mace", "", []) == 0

    def test_skill_bonus_category_filter(self):
        bonus = SkillBonus(amount=_amount(2), name=_is("Broadsword"), category=_is("Melee"))
        index = _index(_advantage("Trained", bonus))
        assert index.skill_bonus_for("Broadsword", "", ["Melee"]) == 2
        assert index.skill_bonus_for("Broadsword", "", ["Ranged"]) == 0

    def test_skill_point_bonus(self):
        bonus = SkillPointBonus(amount=_amount(4), name=_is("Stealth"))
        index = _index(_advantage("Sneaky", bonus))
        assert index.skill_point_bonus_for("Stealth", "", []) == 4
        assert index.skill_bonus_for("Stealth", "", []) == 0

    def test_spell_bonus_by_college_and_all(self):
        """College "Fire" +2 and all colleges +1 -> Fireball +3; Heal +1."""
        college = SpellBonus(amount=_amount(2), match=SpellMatchType.COLLEGE_NAME, name=_is("Fire"))
        everything = SpellBonus(amount=_amount(1), match=SpellMatchType.ALL_COLLEGES)
        index = _index(_advantage("Magery", college, everything))
        assert index.spell_bonus_for("Fireball", ["Fire"], "Arcane", []) == 3
        assert index.spell_bonus_for("Heal", ["Healing"], "Arcane", []) == 1

    def test_spell_bonus_by_name_and_power_source(self):
        by_name = SpellBonus(amount=_amount(1), match=SpellMatchType.SPELL_NAME, name=_is("Fireball"))
        by_source = SpellBonus(amount=_amount(2), match=SpellMatchType.POWER_SOURCE_NAME, name=_is("Divine"))
        index = _index(_advantage("Blessed", by_name, by_source))
        assert index.spell_bonus_for("Fireball", ["Fire"], "Divine", []) == 3
        assert index.spell_bonus_for("Fireball", ["Fire"], "Arcane", []) == 1

    def test_weapon_damage_bonus_is_per_die(self):
        """+1 per die on a 3d weapon -> +3; never part of plain sums."""
        bonus = WeaponDamageBonus(
            amount=_amount(1, per_level=True),
            selection_type=SkillSelectionType.WEAPONS_WITH_NAME,
            name=_is("Broadsword"),
        )
        index = _index(_advantage("Weapon Master", bonus))
        found = index.named_weapon_damage_bonuses_for("Broadsword", "", [], 3)
        assert found == [bonus]
        assert found[0].amount.adjusted_amount == Fixed6(3)

    def test_weapon_damage_bonus_by_skill_relative_level(self):
        bonus = WeaponDamageBonus(amount=_amount(2), name=_is("Broadsword"))
        index = _index(_advantage("Trained", bonus))
        assert index.weapon_compared_damage_bonuses_for("Broadsword", "", [], 1, 2) == [bonus]
        assert index.weapon_compared_damage_bonuses_for("Broadsword", "", [], -1, 2) == []
        assert index.skill_bonus_for("Broadsword", "", []) == 0

    def test_dr_bonus_per_specialization(self):
        index = _index(
            _advantage("Tough", DRBonus(amount=_amount(2), location="torso"), trait_id=1),
            _advantage("Fireproof", DRBonus(amount=_amount(3), location="torso", specialization="burning"),
                       trait_id=2),
        )
        assert index.dr_bonuses_for("torso") == {"all": 2, "burning": 3}
        assert index.dr_bonuses_for("skull") == {}

    def test_reactions_grouped_by_situation(self):
        index = _index(
            _advantage("Appearance", ReactionBonus(amount=_amount(2), situation="from others"), trait_id=1),
            _advantage("Rep", ReactionBonus(amount=_amount(-1), situation="from others"), trait_id=2),
        )
        [entry] = index.reaction_bonuses()
        assert entry.situation == "from others"
        assert entry.amount == 1
        assert entry.sources == ["+2 Appearance", "-1 Rep"]

    def test_skills_can_carry_features(self):
        skill = Skill(trait_id=3, name="Body Sense", features=[_st_bonus(1)])
        assert _index(skill).integer_bonus_for("attr.st") == 1
