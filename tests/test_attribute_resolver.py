"""Tests for applying indexed features to attributes, and attribute point costs."""

from sheetcalc.engine.attribute_resolver import (
    apply_features,
    attribute_current,
    refresh_bases,
)
from sheetcalc.engine.engine_config import EngineConfig
from sheetcalc.engine.feature_index import FeatureIndex
from sheetcalc.models.character import Character
from sheetcalc.models.feature import (
    AttributeBonus,
    AttributeBonusLimitation,
    CostReduction,
    LeveledAmount,
)
from sheetcalc.models.fixed6 import Fixed6
from sheetcalc.models.trait import Advantage


# --- Helpers ---

def _bonus(attribute: str, amount: str, limitation=AttributeBonusLimitation.NONE) -> AttributeBonus:
    return AttributeBonus(amount=LeveledAmount(Fixed6.parse(amount)), attribute=attribute, limitation=limitation)


def _character(*features) -> Character:
    character = Character(advantages=[Advantage(trait_id=1, name="Gifted", features=list(features))])
    refresh_bases(character)
    return character


def _apply(character: Character, config: EngineConfig | None = None):
    index = FeatureIndex.build(character.feature_forests())
    return apply_features(character, index, config)


# --- Bonuses ---

class TestApplyFeatures:
    def test_integer_bonus_raises_maximum(self):
        character = _character(_bonus("st", "2"))
        _apply(character)
        assert character.attribute("st").bonus == Fixed6(2)
        assert character.attribute("st").maximum == Fixed6(12)

    def test_integer_attribute_truncates_fractional_bonus(self):
        character = _character(_bonus("st", "1.5"))
        _apply(character)
        assert character.attribute("st").bonus == Fixed6(1)

    def test_decimal_attribute_keeps_fraction(self):
        """Basic speed 5 + 0.25 = 5.25."""
        character = _character(_bonus("basic_speed", "0.25"))
        _apply(character)
        assert character.attribute("basic_speed").maximum == Fixed6.parse("5.25")

    def test_bonus_is_overwritten_each_pass(self):
        character = _character(_bonus("st", "2"))
        _apply(character)
        character.advantages[0].enabled = False
        _apply(character)
        assert character.attribute("st").bonus == Fixed6(0)

    def test_limited_strength_bonuses(self):
        character = _character(
            _bonus("st", "3", AttributeBonusLimitation.LIFTING_ONLY),
            _bonus("st", "1", AttributeBonusLimitation.STRIKING_ONLY),
            _bonus("st", "2", AttributeBonusLimitation.THROWING_ONLY),
        )
        bonuses = _apply(character)
        assert (bonuses.lifting_st, bonuses.striking_st, bonuses.throwing_st) == (3, 1, 2)
        assert character.attribute("st").bonus == Fixed6(0)

    def test_defence_bonuses(self):
        bonuses = _apply(_character(_bonus("dodge", "1"), _bonus("parry", "2"), _bonus("block", "3")))
        assert (bonuses.dodge, bonuses.parry, bonuses.block) == (1, 2, 3)

    def test_unknown_attribute_contributes_nothing(self):
        character = _character(_bonus("luck", "5"))
        _apply(character)
        assert all(attr.bonus == Fixed6(0) for attr in character.attributes.values())

    def test_cost_reduction_applied_and_capped(self):
        character = _character(CostReduction("st", 60), CostReduction("st", 60))
        _apply(character)
        assert character.attribute("st").cost_reduction == 80

    def test_cost_reduction_cap_from_config(self):
        character = _character(CostReduction("st", 60))
        _apply(character, EngineConfig(max_cost_reduction=50))
        assert character.attribute("st").cost_reduction == 50


# --- Bases ---

def test_refresh_bases_follows_formulas():
    """HT 12: basic speed (10 + 12) / 4 = 5.5, basic move 5, FP 12."""
    character = Character()
    character.attribute("ht").adjustment = Fixed6(2)
    refresh_bases(character)
    assert character.attribute("basic_speed").base == Fixed6.parse("5.5")
    assert character.attribute("basic_move").base == Fixed6(5)
    assert character.attribute("fp").base == Fixed6(12)


def test_attribute_current_accepts_literals():
    character = _character()
    assert attribute_current(character, "st") == Fixed6(10)
    assert attribute_current(character, "12") == Fixed6(12)
    assert attribute_current(character, "luck") is None


# --- Point cost ---

class TestPointCost:
    def test_plain_cost(self):
        """ST +2 at 10/pt = 20."""
        character = Character()
        character.attribute("st").adjustment = Fixed6(2)
        assert character.attribute("st").point_cost() == 20

    def test_negative_adjustment(self):
        character = Character()
        character.attribute("dx").adjustment = Fixed6(-1)
        assert character.attribute("dx").point_cost() == -20

    def test_cost_reduction_rounds_up(self):
        """HP +1 at 2/pt with 40% off = 1.2 -> 2."""
        character = Character()
        hp = character.attribute("hp")
        hp.adjustment = Fixed6(1)
        hp.cost_reduction = 40
        assert hp.point_cost() == 2

    def test_size_modifier_reduction(self):
        """ST +2 at 10/pt, SM +1 at 10%/SM -> 18."""
        character = Character()
        character.attribute("st").adjustment = Fixed6(2)
        assert character.attribute("st").point_cost(size_modifier=1) == 18

    def test_size_modifier_ignored_without_per_sm_rate(self):
        character = Character()
        character.attribute("dx").adjustment = Fixed6(1)
        assert character.attribute("dx").point_cost(size_modifier=3) == 20
