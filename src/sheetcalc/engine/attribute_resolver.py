"""Apply indexed features to attributes and evaluate attribute bases.

Unknown attribute ids simply never match a key, so a bonus aimed at an
attribute the sheet does not define contributes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass

from sheetcalc.engine.engine_config import EngineConfig
from sheetcalc.engine.feature_index import FeatureIndex
from sheetcalc.engine.variables import VariableResolver
from sheetcalc.models.character import Character
from sheetcalc.models.feature import ATTRIBUTE_PREFIX, AttributeBonusLimitation
from sheetcalc.models.fixed6 import Fixed6

_ST_KEY = ATTRIBUTE_PREFIX + "st"
DODGE_KEY = ATTRIBUTE_PREFIX + "dodge"
PARRY_KEY = ATTRIBUTE_PREFIX + "parry"
BLOCK_KEY = ATTRIBUTE_PREFIX + "block"


@dataclass(slots=True)
class SheetBonuses:
    """Bonuses that target derived values rather than a defined attribute."""

    lifting_st: int = 0
    striking_st: int = 0
    throwing_st: int = 0
    dodge: int = 0
    parry: int = 0
    block: int = 0


def _limited(limitation: AttributeBonusLimitation) -> str:
    return f"{_ST_KEY}.{limitation.value}"


def apply_features(character: Character, index: FeatureIndex, config: EngineConfig | None = None) -> SheetBonuses:
    """Overwrite every attribute's bonus and cost reduction from *index*.

    Decimal attributes sum exact amounts; the others sum truncated
    integer amounts. Cost reductions are capped (80% by default).
    """
    cap = (config or EngineConfig()).max_cost_reduction
    for attr_id, attribute in character.attributes.items():
        key = ATTRIBUTE_PREFIX + attr_id
        if attribute.definition.is_decimal:
            attribute.bonus = index.decimal_bonus_for(key)
        else:
            attribute.bonus = Fixed6(index.integer_bonus_for(key))
        attribute.cost_reduction = index.cost_reduction_for(key, cap)
    return SheetBonuses(
        lifting_st=index.integer_bonus_for(_limited(AttributeBonusLimitation.LIFTING_ONLY)),
        striking_st=index.integer_bonus_for(_limited(AttributeBonusLimitation.STRIKING_ONLY)),
        throwing_st=index.integer_bonus_for(_limited(AttributeBonusLimitation.THROWING_ONLY)),
        dodge=index.integer_bonus_for(DODGE_KEY),
        parry=index.integer_bonus_for(PARRY_KEY),
        block=index.integer_bonus_for(BLOCK_KEY),
    )


def refresh_bases(character: Character) -> None:
    """Re-evaluate every attribute's base formula against the current input."""
    resolver = VariableResolver(character)
    for attr_id, attribute in character.attributes.items():
        attribute.base = resolver.base(attr_id)


def attribute_current(character: Character, attr_id: str) -> Fixed6 | None:
    """Current value of ``attr_id``; a bare number is accepted as a literal; unknown ids give None."""
    attribute = character.attribute(attr_id)
    if attribute is not None:
        return attribute.current
    try:
        return Fixed6.parse(attr_id)
    except ValueError:
        return None
