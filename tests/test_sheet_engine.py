"""Tests for SheetEngine: recalculation phases, derived values and setters."""

import pytest
from structlog.testing import capture_logs

from sheetcalc.engine.engine_config import EngineConfig
from sheetcalc.engine.sheet_engine import ChangeEvent, Phase, SheetEngine
from sheetcalc.models.character import Character
from sheetcalc.models.criteria import StringCompareType, StringCriteria
from sheetcalc.models.derived_stats import Encumbrance
from sheetcalc.models.feature import (
    AttributeBonus,
    AttributeBonusLimitation,
    ContainedWeightReduction,
    LeveledAmount,
    SkillBonus,
)
from sheetcalc.models.fixed6 import Fixed6
from sheetcalc.models.modifier import AdvantageModifier
from sheetcalc.models.trait import (
    Advantage,
    AttributeDifficulty,
    Difficulty,
    Equipment,
    Skill,
    SkillDefault,
    SkillLevel,
    Spell,
)
from sheetcalc.models.weight import WeightUnits, WeightValue


# --- Helpers ---

def _engine(**kwargs) -> SheetEngine:
    return SheetEngine(Character(**kwargs))


def _amount(value: int) -> LeveledAmount:
    return LeveledAmount(Fixed6(value))


def _item(name: str, pounds: int = 0, value: int = 0, **kwargs) -> Equipment:
    return Equipment(
        name=name,
        weight=WeightValue(Fixed6(pounds), WeightUnits.LB),
        value=Fixed6(value),
        **kwargs,
    )


class ChasingSkill(Skill):
    """A skill whose level is always one above its partner's, so levels never settle."""

    def calculate_level(self, ctx) -> SkillLevel:
        return SkillLevel((self.partner.level or 0) + 1)


def _chasing_pair() -> list[Skill]:
    a = ChasingSkill(name="Chase A")
    b = ChasingSkill(name="Chase B")
    a.partner = b
    b.partner = a
    return [a, b]


# --- Blank sheet ---

class TestBlankCharacter:
    @pytest.fixture
    def state(self):
        return _engine().recalculate()

    def test_reaches_stable(self, state):
        assert state.phase is Phase.STABLE
        assert state.passes == 1

    def test_points(self, state):
        assert state.points.spent == 0
        assert state.unspent_points == 250

    def test_lift_and_encumbrance(self, state):
        assert state.lifting_strength == 10
        assert state.lift.basic_lift == WeightValue(Fixed6(20), WeightUnits.LB)
        assert state.encumbrance is Encumbrance.NONE

    def test_move_and_dodge(self, state):
        """Basic speed 5 -> move 5, dodge 3 + 5 = 8."""
        assert state.current_move == 5
        assert state.current_dodge == 8

    def test_damage(self, state):
        assert str(state.thrust) == "1d-2"
        assert str(state.swing) == "1d"


def test_new_character_uses_configured_points():
    engine = SheetEngine.new_character(EngineConfig(initial_points=150))
    assert engine.character.total_points == 150
    assert engine.recalculate().unspent_points == 150


def test_each_recalculation_returns_a_new_state():
    engine = _engine()
    first = engine.recalculate()
    second = engine.recalculate()
    assert first is not second
    assert engine.state is second
    assert (first.current_move, first.unspent_points) == (second.current_move, second.unspent_points)


def test_engine_assigns_trait_ids():
    engine = _engine(advantages=[Advantage(name="A"), Advantage(name="B")])
    ids = [adv.trait_id for adv in engine.character.advantages]
    assert ids == [1, 2]


# --- Skill levels ---

class TestSkillLevels:
    @pytest.mark.parametrize("points, level", [(1, 9), (2, 10), (4, 11), (8, 12)])
    def test_average_skill_from_points(self, points, level):
        """DX/A: 1 pt = DX-1, 2 pts = DX, 4 pts = DX+1, 8 pts = DX+2."""
        skill = Skill(name="Broadsword", points=points)
        _engine(skills=[skill]).recalculate()
        assert skill.level == level

    def test_easy_skill(self):
        skill = Skill(name="Brawling", difficulty=AttributeDifficulty("dx", Difficulty.EASY), points=1)
        _engine(skills=[skill]).recalculate()
        assert skill.level == 10

    def test_attribute_default(self):
        """No points, DX-5 default -> 5, relative -5."""
        skill = Skill(name="Shortsword", defaults=[SkillDefault("dx", modifier=-5)])
        _engine(skills=[skill]).recalculate()
        assert (skill.level, skill.relative_level) == (5, -5)

    def test_skill_default(self):
        """Broadsword 11, Shortsword defaults at Broadsword-2 = 9."""
        broadsword = Skill(name="Broadsword", points=4)
        shortsword = Skill(name="Shortsword", defaults=[SkillDefault("skill", "Broadsword", modifier=-2)])
        _engine(skills=[broadsword, shortsword]).recalculate()
        assert shortsword.level == 9
        assert shortsword.defaulted_from.name == "Broadsword"

    def test_no_points_no_default_is_unusable(self):
        skill = Skill(name="Lockpicking")
        _engine(skills=[skill]).recalculate()
        assert skill.level is None

    def test_skill_bonus_applies_after_convergence(self):
        """11 + 2 from an advantage = 13; one extra pass to settle."""
        bonus = SkillBonus(amount=_amount(2), name=StringCriteria(StringCompareType.IS, "Broadsword"))
        skill = Skill(name="Broadsword", points=4)
        state = _engine(skills=[skill], advantages=[Advantage(name="Trained", features=[bonus])]).recalculate()
        assert skill.level == 13
        assert state.passes == 2

    def test_attribute_bonus_flows_into_levels(self):
        """DX +2 from an advantage: Broadsword (4 pts) = 12 + 1 = 13."""
        bonus = AttributeBonus(amount=_amount(2), attribute="dx")
        skill = Skill(name="Broadsword", points=4)
        _engine(skills=[skill], advantages=[Advantage(name="Agile", features=[bonus])]).recalculate()
        assert skill.level == 13

    def test_spell_level(self):
        """IQ/H at 1 pt -> IQ-2 = 8."""
        spell = Spell(name="Fireball", colleges=["Fire"], points=1)
        _engine(spells=[spell]).recalculate()
        assert spell.level == 8


# --- Convergence budget ---

class TestConvergence:
    def test_stops_at_pass_budget(self):
        engine = _engine(skills=_chasing_pair())
        with capture_logs() as logs:
            state = engine.recalculate()
        assert state.passes == 5
        assert state.phase is Phase.STABLE
        assert "convergence_budget_exhausted" in [entry["event"] for entry in logs]

    def test_budget_from_config(self):
        engine = SheetEngine(Character(skills=_chasing_pair()), EngineConfig(max_iterations=3))
        assert engine.recalculate().passes == 3

    def test_last_values_stand(self):
        skills = _chasing_pair()
        _engine(skills=skills).recalculate()
        assert all(isinstance(skill.level, int) for skill in skills)


# --- Encumbrance, weight and wealth ---

class TestCarrying:
    def test_light_encumbrance(self):
        """30 lb against a 20 lb basic lift -> Light: move 4, dodge 7."""
        state = _engine(equipment=[_item("Pack", 30)]).recalculate()
        assert state.encumbrance is Encumbrance.LIGHT
        assert state.current_move == 4
        assert state.current_dodge == 7

    def test_encumbrance_penalises_skills(self):
        skill = Skill(name="Climbing", points=1, encumbrance_penalty_multiplier=1)
        _engine(skills=[skill], equipment=[_item("Pack", 30)]).recalculate()
        assert skill.level == 8

    def test_weight_ignored_for_skills(self):
        skill = Skill(name="Climbing", points=1, encumbrance_penalty_multiplier=1)
        pack = _item("Pack", 30, weight_ignored_for_skills=True)
        state = _engine(skills=[skill], equipment=[pack]).recalculate()
        assert state.encumbrance is Encumbrance.LIGHT
        assert state.encumbrance_for_skills is Encumbrance.NONE
        assert skill.level == 9

    def test_wealth(self):
        state = _engine(
            equipment=[_item("Coins", value=10, quantity=2)],
            other_equipment=[_item("House", value=5)],
        ).recalculate()
        assert state.wealth_carried == Fixed6(20)
        assert state.wealth_not_carried == Fixed6(5)

    def test_other_equipment_has_no_weight_or_features(self):
        belt = _item("Belt", 50, features=[AttributeBonus(amount=_amount(5), attribute="st")])
        engine = _engine(other_equipment=[belt])
        state = engine.recalculate()
        assert state.weight_carried.value == Fixed6(0)
        assert engine.character.attribute("st").current == Fixed6(10)

    @pytest.mark.parametrize(
        "reduction, pounds",
        [("50%", 7), ("4 lb", 8), ("abc%", 12), ("abc lb", 12)],
    )
    def test_contained_weight_reduction(self, reduction, pounds):
        """2 lb bag holding 10 lb; unreadable reductions count as none."""
        bag = _item(
            "Bag", 2, container=True,
            children=[_item("Tools", 10)],
            features=[ContainedWeightReduction(reduction=reduction)],
        )
        with capture_logs() as logs:
            state = _engine(equipment=[bag]).recalculate()
        assert state.weight_carried.value == Fixed6(pounds)
        malformed = "malformed_weight_reduction" in [entry["event"] for entry in logs]
        assert malformed == reduction.startswith("abc")


# --- Strength ---

def test_limited_strength_bonuses():
    features = [AttributeBonus(amount=_amount(2), attribute="st", limitation=AttributeBonusLimitation.STRIKING_ONLY)]
    state = _engine(advantages=[Advantage(name="Strong Arms", features=features)]).recalculate()
    assert (state.lifting_strength, state.striking_strength) == (10, 12)
    assert str(state.thrust) == "1d-1"
    assert str(state.swing) == "1d+2"


def test_tired_halves_strength():
    """FP 10 with 7 damage -> 3 left -> Tired: ST 10 halved to 5."""
    engine = _engine()
    engine.set_attribute_damage("fp", 7)
    state = engine.recalculate()
    assert state.striking_strength == 5
    assert str(state.thrust) == "1d-4"


# --- Setters ---

class TestSetters:
    def test_attribute_adjustment_event(self):
        engine = _engine()
        attribute = engine.character.attribute("st")
        event = engine.set_attribute_adjustment("st", 2)
        assert event == ChangeEvent(attribute, "adjustment", Fixed6(0), Fixed6(2))
        assert engine.set_attribute_adjustment("st", "2") is None
        assert engine.recalculate().unspent_points == 230

    def test_unknown_attribute_rejected(self):
        with pytest.raises(ValueError):
            _engine().set_attribute_adjustment("luck", 1)

    def test_damage_only_on_pools(self):
        engine = _engine()
        with pytest.raises(ValueError):
            engine.set_attribute_damage("st", 1)
        assert engine.set_attribute_damage("hp", 3) is not None
        engine.recalculate()
        assert engine.character.attribute("hp").current == Fixed6(7)

    def test_unspent_points_adjust_total(self):
        """ST +2 spends 20; 100 unspent -> 120 total."""
        engine = _engine()
        engine.set_attribute_adjustment("st", 2)
        event = engine.set_unspent_points(100)
        assert event.after == 120
        assert engine.character.total_points == 120
        assert engine.recalculate().unspent_points == 100

    def test_total_points_unchanged_returns_none(self):
        assert _engine().set_total_points(250) is None

    def test_quantity_and_equipped(self):
        item = _item("Pack", 30)
        engine = _engine(equipment=[item])
        with pytest.raises(ValueError):
            engine.set_quantity(item, -1)
        assert engine.set_quantity(item, 0).before == 1
        assert engine.recalculate().weight_carried.value == Fixed6(0)
        engine.set_quantity(item, 1)
        assert engine.set_equipped(item, True) is None
        assert engine.set_equipped(item, False) is not None

    def test_trait_enabled_removes_bonus(self):
        agile = Advantage(name="Agile", features=[AttributeBonus(amount=_amount(2), attribute="dx")])
        engine = _engine(advantages=[agile])
        engine.recalculate()
        assert engine.character.attribute("dx").current == Fixed6(12)
        engine.set_trait_enabled(agile, False)
        engine.recalculate()
        assert engine.character.attribute("dx").current == Fixed6(10)

    def test_modifier_enabled(self):
        mod = AdvantageModifier(name="Extra", features=[AttributeBonus(amount=_amount(1), attribute="ht")])
        engine = _engine(advantages=[Advantage(name="Tough", modifiers=[mod])])
        event = engine.set_modifier_enabled(mod, False)
        assert (event.before, event.after) == (True, False)
        engine.recalculate()
        assert engine.character.attribute("ht").current == Fixed6(10)

    def test_points_only_on_skills_and_spells(self):
        skill = Skill(name="Stealth")
        advantage = Advantage(name="Luck")
        engine = _engine(skills=[skill], advantages=[advantage])
        with pytest.raises(ValueError):
            engine.set_points(advantage, 1)
        with pytest.raises(ValueError):
            engine.set_points(skill, -1)
        engine.set_points(skill, 2)
        engine.recalculate()
        assert skill.level == 10

    def test_advantage_levels(self):
        advantage = Advantage(name="Lifting ST", levels=1, points_per_level=3)
        engine = _engine(advantages=[advantage])
        with pytest.raises(ValueError):
            engine.set_advantage_levels(advantage, -1)
        engine.set_advantage_levels(advantage, 3)
        assert engine.recalculate().points.advantages == 9
