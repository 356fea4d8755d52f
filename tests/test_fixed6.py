"""Tests for Fixed6: exact decimal arithmetic with six fractional digits."""

import pytest

from sheetcalc.models.fixed6 import ONE, ZERO, Fixed6


# --- Parsing ---

def test_parse_plain_decimal():
    assert str(Fixed6.parse("12.5")) == "12.5"


def test_parse_thousands_separator():
    """"1,250.75" -> 1250.75 -> raw 1_250_750_000."""
    assert Fixed6.parse("1,250.75").raw == 1_250_750_000


def test_parse_truncates_beyond_six_digits():
    assert Fixed6.parse("0.1234567") == Fixed6.parse("0.123456")


def test_parse_signed():
    assert Fixed6.parse("-3") == Fixed6(-3)
    assert Fixed6.parse("+3") == Fixed6(3)


@pytest.mark.parametrize("text", ["", "abc", ".", "1.2.3", "--1"])
def test_parse_rejects_garbage(text):
    with pytest.raises(ValueError):
        Fixed6.parse(text)


def test_constructor_rejects_non_integers():
    with pytest.raises(TypeError):
        Fixed6(0.1)
    with pytest.raises(TypeError):
        Fixed6(True)


def test_coerce_accepts_int_string_and_fixed():
    assert Fixed6.coerce(4) == Fixed6(4)
    assert Fixed6.coerce("4") == Fixed6(4)
    assert Fixed6.coerce(Fixed6(4)) == Fixed6(4)


# --- Arithmetic ---

def test_decimal_sum_is_exact():
    """0.1 + 0.2 == 0.3 exactly, unlike binary floats."""
    assert Fixed6.parse("0.1") + Fixed6.parse("0.2") == Fixed6.parse("0.3")


def test_int_operands():
    assert Fixed6(1) + 2 == Fixed6(3)
    assert 2 - Fixed6(1) == ONE
    assert 3 * Fixed6.parse("0.5") == Fixed6.parse("1.5")


def test_division_rounds_half_away_from_zero():
    """1/3 -> 0.333333; 2/3 -> 0.6666666.. -> 0.666667."""
    assert str(Fixed6(1) / 3) == "0.333333"
    assert str(Fixed6(2) / 3) == "0.666667"
    assert str(Fixed6(-2) / 3) == "-0.666667"


def test_multiplication_rounds_to_six_digits():
    """0.000001 * 0.5 = 0.0000005 -> rounds away from zero to 0.000001."""
    assert Fixed6.from_raw(1) * Fixed6.parse("0.5") == Fixed6.from_raw(1)


def test_division_by_zero_raises():
    with pytest.raises(ZeroDivisionError):
        Fixed6(1) / 0
    with pytest.raises(ZeroDivisionError):
        Fixed6(1) / ZERO


def test_truthiness():
    assert not ZERO
    assert Fixed6.from_raw(1)


# --- Rounding ---

def test_trunc_floor_ceil_on_negative():
    value = Fixed6.parse("-1.5")
    assert value.trunc() == Fixed6(-1)
    assert value.floor() == Fixed6(-2)
    assert value.ceil() == Fixed6(-1)


def test_round_halves_away_from_zero():
    assert Fixed6.parse("0.5").round() == ONE
    assert Fixed6.parse("-0.5").round() == Fixed6(-1)
    assert Fixed6.parse("2.49").round() == Fixed6(2)


def test_as_int_truncates():
    assert Fixed6.parse("3.9").as_int() == 3
    assert Fixed6.parse("-3.9").as_int() == -3


def test_min_max():
    assert Fixed6(2).min(Fixed6(5)) == Fixed6(2)
    assert Fixed6(2).max(Fixed6(5)) == Fixed6(5)


# --- Ordering and formatting ---

def test_ordering_between_fixed_values():
    assert Fixed6.parse("1.5") < Fixed6(2)
    assert sorted([Fixed6(3), Fixed6(-1), ZERO]) == [Fixed6(-1), ZERO, Fixed6(3)]


def test_equality_with_plain_int_is_false():
    assert Fixed6(5) != 5


def test_str_drops_trailing_zeros():
    assert str(Fixed6.parse("2.500")) == "2.5"
    assert str(Fixed6(7)) == "7"
    assert str(Fixed6.parse("-0.25")) == "-0.25"


def test_string_with_sign():
    assert Fixed6(5).string_with_sign() == "+5"
    assert ZERO.string_with_sign() == "+0"
    assert Fixed6(-2).string_with_sign() == "-2"


# --- Identities ---

_SAMPLES = ["0.000001", "-0.000001", "-1.5", "123.456789", "-999999.999999", "7"]


@pytest.mark.parametrize("text", _SAMPLES)
def test_str_parses_back(text):
    value = Fixed6.parse(text)
    assert Fixed6.parse(str(value)) == value


@pytest.mark.parametrize("text", _SAMPLES)
def test_multiply_by_one(text):
    value = Fixed6.parse(text)
    assert value * ONE == value


@pytest.mark.parametrize("text", _SAMPLES)
def test_divide_by_self(text):
    value = Fixed6.parse(text)
    assert value / value == ONE
