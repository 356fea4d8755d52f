"""Prerequisite evaluation against the current (possibly still converging) sheet.

``evaluate`` returns ``(satisfied, reasons)``. Reason lines start with
``"- "`` and are only reported for prerequisites that failed.
"""

from __future__ import annotations

import re

from sheetcalc.engine.attribute_resolver import attribute_current
from sheetcalc.models.character import Character
from sheetcalc.models.criteria import NumericCompareType
from sheetcalc.models.fixed6 import ZERO, Fixed6
from sheetcalc.models.prereq import (
    AdvantagePrereq,
    AttributePrereq,
    ContainedQuantityPrereq,
    ContainedWeightPrereq,
    Prereq,
    PrereqList,
    SkillPrereq,
    SpellPrereq,
    SpellPrereqType,
)
from sheetcalc.models.trait import Equipment, Skill, Trait

UNSATISFIED_HEADER = "Prerequisites have not been met:"
REASON_PREFIX = "- "

_TL_RE = re.compile(r"^\s*(\d+)")


def _has(has: bool) -> str:
    return "Has" if has else "Does not have"


def tech_level_number(text: str) -> int:
    """Leading integer of a tech level such as ``"8"`` or ``"3^"``; 0 when absent."""
    match = _TL_RE.match(text or "")
    return int(match.group(1)) if match else 0


# --- Leaves -------------------------------------------------------------------


def _advantage(prereq: AdvantagePrereq, character: Character, owner: Trait) -> tuple[bool, str]:
    satisfied = False
    for advantage in character.iter_advantages():
        if advantage is owner or not prereq.name.matches(advantage.name):
            continue
        if not prereq.notes.matches(advantage.notes):
            continue
        satisfied = prereq.level.matches(max(advantage.levels, 0))
        break
    reason = f"{_has(prereq.has)} an advantage whose name {prereq.name.describe()}"
    if not prereq.notes.is_type_anything:
        reason += f", notes {prereq.notes.describe()}"
    reason += f", and level {prereq.level.describe()}"
    return satisfied, reason


def _attribute(prereq: AttributePrereq, character: Character, owner: Trait) -> tuple[bool, str]:
    value = attribute_current(character, prereq.which) or ZERO
    label = prereq.which.upper()
    if prereq.combined_with:
        value += attribute_current(character, prereq.combined_with) or ZERO
        label += "+" + prereq.combined_with.upper()
    satisfied = prereq.qualifier.matches(value.trunc())
    reason = f"{'Requires' if prereq.has else 'Cannot have'} {label} which {prereq.qualifier.describe()}"
    return satisfied, reason


def _skill(prereq: SkillPrereq, character: Character, owner: Trait) -> tuple[bool, str]:
    satisfied = False
    for skill in character.iter_skills():
        if skill is owner:
            continue
        if not prereq.name.matches(skill.name) or not prereq.specialization.matches(skill.specialization):
            continue
        if skill.level is not None and prereq.level.matches(skill.level):
            satisfied = True
            break
    reason = f"{_has(prereq.has)} a skill whose name {prereq.name.describe()}"
    if not prereq.specialization.is_type_anything:
        reason += f", specialization {prereq.specialization.describe()}"
    reason += f", and level {prereq.level.describe()}"
    return satisfied, reason


def _spell(prereq: SpellPrereq, character: Character, owner: Trait) -> tuple[bool, str]:
    count = 0
    colleges: set[str] = set()
    for spell in character.iter_spells():
        if spell is owner or spell.points <= 0:
            continue
        sub_type = prereq.sub_type
        if sub_type is SpellPrereqType.NAME:
            if prereq.qualifier.matches(spell.name):
                count += 1
        elif sub_type is SpellPrereqType.CATEGORY:
            if any(prereq.qualifier.matches(c) for c in spell.categories):
                count += 1
        elif sub_type is SpellPrereqType.COLLEGE:
            if any(prereq.qualifier.matches(c) for c in spell.colleges):
                count += 1
        elif sub_type is SpellPrereqType.COLLEGE_COUNT:
            colleges.update(c.lower() for c in spell.colleges)
        else:
            count += 1
    if prereq.sub_type is SpellPrereqType.COLLEGE_COUNT:
        count = len(colleges)
    satisfied = prereq.quantity.matches(Fixed6(count))
    if prereq.sub_type is SpellPrereqType.COLLEGE_COUNT:
        what = "college count"
    elif prereq.sub_type is SpellPrereqType.ANY:
        what = "spell(s) of any kind"
    else:
        what = f"spell(s) whose {prereq.sub_type.value} {prereq.qualifier.describe()}"
    reason = f"{_has(prereq.has)} {prereq.quantity.describe()} {what}"
    return satisfied, reason


def _contained_weight(
    prereq: ContainedWeightPrereq, character: Character, owner: Trait
) -> tuple[bool, str]:
    # Not applicable outside equipment containers: passes whatever "has" says.
    satisfied = prereq.has
    if isinstance(owner, Equipment) and owner.container:
        units = character.settings.default_weight_units
        simple = character.settings.use_simple_metric_conversions
        total = owner.extended_weight(False, units, simple)
        own = owner.adjusted_weight(False, units)
        total.subtract(own)
        satisfied = prereq.weight.matches(total)
    reason = f"{'Requires' if prereq.has else 'Cannot have'} a contained weight which {prereq.weight.describe()}"
    return satisfied, reason


def _contained_quantity(
    prereq: ContainedQuantityPrereq, character: Character, owner: Trait
) -> tuple[bool, str]:
    satisfied = prereq.has
    if isinstance(owner, Equipment) and owner.container:
        quantity = sum(child.quantity for child in owner.children if isinstance(child, Equipment))
        satisfied = prereq.quantity.matches(Fixed6(quantity))
    reason = f"{'Requires' if prereq.has else 'Cannot have'} a contained quantity which {prereq.quantity.describe()}"
    return satisfied, reason


_LEAVES = {
    AdvantagePrereq: _advantage,
    AttributePrereq: _attribute,
    SkillPrereq: _skill,
    SpellPrereq: _spell,
    ContainedWeightPrereq: _contained_weight,
    ContainedQuantityPrereq: _contained_quantity,
}


# --- Trees --------------------------------------------------------------------


def evaluate(prereq: Prereq, character: Character, owner: Trait) -> tuple[bool, list[str]]:
    """Evaluate *prereq* for *owner*; reasons list only the failing parts."""
    if isinstance(prereq, PrereqList):
        return _evaluate_list(prereq, character, owner)
    check = _LEAVES.get(type(prereq))
    if check is None:
        return True, []
    satisfied, reason = check(prereq, character, owner)
    if not prereq.has:
        satisfied = not satisfied
    if satisfied:
        return True, []
    return False, [REASON_PREFIX + reason]


def _evaluate_list(prereqs: PrereqList, character: Character, owner: Trait) -> tuple[bool, list[str]]:
    if prereqs.when_tl.compare is not NumericCompareType.ANY:
        if not prereqs.when_tl.matches(Fixed6(tech_level_number(character.profile.tech_level))):
            return True, []
    if not prereqs.prereqs:
        return True, []
    results = [evaluate(child, character, owner) for child in prereqs.prereqs]
    if prereqs.all:
        satisfied = all(ok for ok, _ in results)
    else:
        satisfied = any(ok for ok, _ in results)
    if satisfied:
        return True, []
    reasons: list[str] = []
    for ok, lines in results:
        if not ok:
            reasons.extend(lines)
    return False, reasons


def technique_reason(skill: Skill, character: Character) -> str | None:
    """Why a technique's base skill is unusable, or None if it is fine."""
    default = skill.technique_default
    if not skill.technique or default is None or not default.skill_based:
        return None
    best = None
    for one in character.iter_skills():
        if one is skill or one.name.lower() != default.name.lower():
            continue
        if default.specialization and one.specialization.lower() != default.specialization.lower():
            continue
        if best is None or one.technique or one.points > 0:
            best = one
    if best is not None and (best.technique or best.points > 0):
        return None
    if best is None:
        return f"{REASON_PREFIX}Requires a skill named {default.full_name()}"
    return f"{REASON_PREFIX}Requires at least 1 point in the skill named {default.full_name()}"


def refresh_prereqs(character: Character) -> None:
    """Recompute ``satisfied`` and ``unsatisfied_reason`` for every trait."""
    for trait in character.iter_all_traits():
        satisfied, reasons = evaluate(trait.prereqs, character, trait)
        if isinstance(trait, Skill):
            extra = technique_reason(trait, character)
            if extra is not None:
                satisfied = False
                reasons.append(extra)
        trait.satisfied = satisfied
        if satisfied:
            trait.unsatisfied_reason = ""
        else:
            trait.unsatisfied_reason = "\n".join([UNSATISFIED_HEADER, *reasons])
