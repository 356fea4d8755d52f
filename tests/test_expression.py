"""Tests for attribute formula evaluation and $variable resolution."""

import pytest
from structlog.testing import capture_logs

from sheetcalc.engine.expression import evaluate
from sheetcalc.engine.variables import VariableResolver
from sheetcalc.models.attribute import AttributeDef, AttributeType
from sheetcalc.models.character import Character, Profile
from sheetcalc.models.fixed6 import Fixed6
from sheetcalc.models.sheet_settings import SheetSettings


# --- Helpers ---

def _values(**values: str):
    return lambda name: values.get(name, "")


def _events(logs) -> list[str]:
    return [entry["event"] for entry in logs]


# --- Expressions ---

class TestEvaluate:
    def test_empty_is_zero(self):
        assert evaluate("", _values()) == Fixed6(0)
        assert evaluate("   ", _values()) == Fixed6(0)

    def test_plain_number(self):
        assert evaluate("10", _values()) == Fixed6(10)

    def test_variables_and_division(self):
        """(10 + 11) / 4 = 5.25."""
        assert evaluate("($dx+$ht)/4", _values(dx="10", ht="11")) == Fixed6.parse("5.25")

    def test_decimal_literal(self):
        assert evaluate("$st * 0.5", _values(st="13")) == Fixed6.parse("6.5")

    def test_unary_minus(self):
        assert evaluate("-$st + 1", _values(st="10")) == Fixed6(-9)

    def test_functions(self):
        assert evaluate("floor($speed)", _values(speed="5.75")) == Fixed6(5)
        assert evaluate("ceil(5.25)", _values()) == Fixed6(6)
        assert evaluate("round(2.5)", _values()) == Fixed6(3)
        assert evaluate("min(3, 1, 2)", _values()) == Fixed6(1)
        assert evaluate("max(3, 1, 2)", _values()) == Fixed6(3)
        assert evaluate("abs(-4)", _values()) == Fixed6(4)

    def test_dotted_variable(self):
        seen = []

        def resolve(name):
            seen.append(name)
            return "7"

        assert evaluate("$hp.current", resolve) == Fixed6(7)
        assert seen == ["hp.current"]

    def test_empty_variable_counts_as_zero(self):
        assert evaluate("$missing + 3", _values()) == Fixed6(3)

    @pytest.mark.parametrize("text", ["2 +", "2 ** 3", "__import__('os')", "'text'", "x"])
    def test_malformed_is_zero_and_logged(self, text):
        with capture_logs() as logs:
            assert evaluate(text, _values()) == Fixed6(0)
        assert "malformed_expression" in _events(logs)

    def test_non_numeric_variable_is_zero_and_logged(self):
        with capture_logs() as logs:
            assert evaluate("$name + 1", _values(name="Bob")) == Fixed6(1)
        assert "non_numeric_variable" in _events(logs)

    def test_division_by_zero_propagates(self):
        with pytest.raises(ZeroDivisionError):
            evaluate("$st / 0", _values(st="10"))


# --- Variable resolution ---

def _character(*extra: AttributeDef, size_modifier: int = 0) -> Character:
    settings = SheetSettings.defaults()
    settings.attributes.extend(extra)
    return Character(settings=settings, profile=Profile(size_modifier=size_modifier))


class TestVariableResolver:
    def test_base_of_dependent_attribute(self):
        """will = $iq; IQ 12 -> Will base 12."""
        character = _character()
        character.attribute("iq").adjustment = Fixed6(2)
        assert VariableResolver(character).base("will") == Fixed6(12)

    def test_decimal_chain(self):
        """basic_speed = (10 + 12) / 4 = 5.5; basic_move = floor(5.5) = 5."""
        character = _character()
        character.attribute("ht").adjustment = Fixed6(2)
        resolver = VariableResolver(character)
        assert resolver.base("basic_speed") == Fixed6.parse("5.5")
        assert resolver.base("basic_move") == Fixed6(5)

    def test_pool_current(self):
        character = _character()
        character.attribute("hp").damage = Fixed6(4)
        resolver = VariableResolver(character)
        assert resolver.resolve("hp.current") == "6"
        assert resolver.resolve("hp") == "10"

    def test_size_modifier(self):
        assert VariableResolver(_character(size_modifier=2)).resolve("sm") == "2"

    def test_unknown_variable_is_empty_and_logged(self):
        with capture_logs() as logs:
            assert VariableResolver(_character()).resolve("luck") == ""
        assert "unknown_variable" in _events(logs)

    def test_self_reference_is_empty_and_logged(self):
        """loop = $loop + 1 resolves the inner $loop to "" -> 0 + 1 = 1."""
        loop = AttributeDef("loop", "Loop", base="$loop + 1")
        character = _character(loop)
        with capture_logs() as logs:
            assert VariableResolver(character).base("loop") == Fixed6(1)
        assert "variable_self_reference" in _events(logs)

    def test_mutual_reference_terminates(self):
        """a = $b + 1, b = $a + 1: resolving a gives b = 0 + 1 -> a = 2."""
        a = AttributeDef("a", "A", base="$b + 1")
        b = AttributeDef("b", "B", base="$a + 1")
        character = _character(a, b)
        with capture_logs():
            assert VariableResolver(character).base("a") == Fixed6(2)

    def test_decimal_attribute_not_truncated(self):
        half = AttributeDef("half", "Half", type=AttributeType.DECIMAL, base="$st / 4")
        character = _character(half)
        assert VariableResolver(character).resolve("half") == "2.5"
