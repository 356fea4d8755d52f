"""Resolution of ``$variable`` references in attribute formulas.

Every attribute whose base is being evaluated is pushed onto an
exclusion set and popped afterwards. A reference back into that set is a
self-reference: it is logged and resolves to the empty string, which
expressions treat as zero.
"""

from __future__ import annotations

import structlog

from sheetcalc.engine.expression import evaluate
from sheetcalc.models.character import Character
from sheetcalc.models.fixed6 import Fixed6

logger = structlog.get_logger(__name__)

SIZE_MODIFIER_VARIABLE = "sm"


class VariableResolver:
    """Resolves attribute variables against one character's current input."""

    __slots__ = ("_character", "_excludes")

    def __init__(self, character: Character) -> None:
        self._character = character
        self._excludes: set[str] = set()

    def resolve(self, name: str) -> str:
        """Text value of ``name``: ``st``, ``hp.current``, ``fp.maximum`` or ``sm``."""
        if name == SIZE_MODIFIER_VARIABLE:
            return str(self._character.profile.size_modifier)
        attr_id, _, part = name.partition(".")
        attribute = self._character.attribute(attr_id)
        if attribute is None:
            logger.warning("unknown_variable", variable=name)
            return ""
        if attr_id in self._excludes:
            logger.warning("variable_self_reference", variable=name, excludes=sorted(self._excludes))
            return ""
        maximum = self.base(attr_id) + attribute.adjustment + attribute.bonus
        if not attribute.definition.is_decimal:
            maximum = maximum.trunc()
        if attribute.definition.is_pool and part == "current":
            return str(maximum - attribute.damage)
        return str(maximum)

    def base(self, attr_id: str) -> Fixed6:
        """Evaluate the base formula of ``attr_id`` with it excluded from resolution."""
        attribute = self._character.attribute(attr_id)
        if attribute is None:
            return Fixed6(0)
        self._excludes.add(attr_id)
        try:
            return evaluate(attribute.definition.base, self.resolve)
        finally:
            self._excludes.discard(attr_id)
