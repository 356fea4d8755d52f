"""Point totals per category from a stabilized sheet."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sheetcalc.engine.engine_config import EngineConfig
from sheetcalc.models.character import Character
from sheetcalc.models.trait import Advantage, AdvantageContainerType


@dataclass(slots=True)
class PointTotals:
    attributes: int = 0
    advantages: int = 0
    disadvantages: int = 0
    quirks: int = 0
    race: int = 0
    skills: int = 0
    spells: int = 0

    @property
    def spent(self) -> int:
        return (
            self.attributes
            + self.advantages
            + self.disadvantages
            + self.quirks
            + self.race
            + self.skills
            + self.spells
        )

    def unspent(self, total_points: int) -> int:
        return total_points - self.spent


def _bucket(totals: PointTotals, points: int, config: EngineConfig) -> None:
    """Positive -> advantage, exactly the quirk cost -> quirk, other negatives -> disadvantage."""
    if points > 0:
        totals.advantages += points
    elif points < config.quirk_points:
        totals.disadvantages += points
    elif points == config.quirk_points:
        totals.quirks += points


def _account_advantages(
    advantages: Iterable[Advantage],
    totals: PointTotals,
    config: EngineConfig,
    multiplicative: bool,
) -> None:
    for advantage in advantages:
        if advantage.container:
            if advantage.container_type is AdvantageContainerType.GROUP:
                children = [c for c in advantage.children if isinstance(c, Advantage)]
                if advantage.enabled:
                    _account_advantages(children, totals, config, multiplicative)
                continue
            if advantage.container_type is AdvantageContainerType.RACE:
                totals.race += advantage.adjusted_points(config, multiplicative)
                continue
        _bucket(totals, advantage.adjusted_points(config, multiplicative), config)


def account(character: Character, config: EngineConfig | None = None) -> PointTotals:
    """Sum attribute costs, bucketed advantage costs and raw skill/spell points."""
    config = config or EngineConfig()
    totals = PointTotals()
    size_modifier = character.profile.size_modifier
    for attribute in character.attributes.values():
        totals.attributes += attribute.point_cost(size_modifier, config.max_cost_reduction)
    _account_advantages(
        character.advantages,
        totals,
        config,
        character.settings.use_multiplicative_modifiers,
    )
    totals.skills = sum(skill.points for skill in character.iter_skills())
    totals.spells = sum(spell.points for spell in character.iter_spells())
    return totals
