"""Prerequisite trees attached to traits.

A ``PrereqList`` holds leaves and nested lists; ``all=True`` needs every
child satisfied, otherwise any one suffices. Leaves with ``has=False``
invert their result. Evaluation lives in ``sheetcalc.engine.prereq_evaluator``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from sheetcalc.models.criteria import (
    NumericCompareType,
    NumericCriteria,
    StringCompareType,
    StringCriteria,
    WeightCriteria,
)
from sheetcalc.models.fixed6 import ONE, ZERO, Fixed6
from sheetcalc.models.weight import WeightUnits, WeightValue


class SpellPrereqType(Enum):
    NAME = "name"
    CATEGORY = "category"
    COLLEGE = "college"
    COLLEGE_COUNT = "college_count"
    ANY = "any"


def _name_is() -> StringCriteria:
    return StringCriteria(StringCompareType.IS)


def _anything() -> StringCriteria:
    return StringCriteria(StringCompareType.ANY)


def _at_least(value: int) -> NumericCriteria:
    return NumericCriteria(NumericCompareType.AT_LEAST, Fixed6(value))


@dataclass(slots=True)
class AdvantagePrereq:
    has: bool = True
    name: StringCriteria = field(default_factory=_name_is)
    level: NumericCriteria = field(default_factory=lambda: _at_least(0))
    notes: StringCriteria = field(default_factory=_anything)


@dataclass(slots=True)
class AttributePrereq:
    has: bool = True
    which: str = "st"
    combined_with: str = ""
    qualifier: NumericCriteria = field(default_factory=lambda: _at_least(10))


@dataclass(slots=True)
class SkillPrereq:
    has: bool = True
    name: StringCriteria = field(default_factory=_name_is)
    specialization: StringCriteria = field(default_factory=_anything)
    level: NumericCriteria = field(default_factory=lambda: _at_least(0))


@dataclass(slots=True)
class SpellPrereq:
    has: bool = True
    sub_type: SpellPrereqType = SpellPrereqType.NAME
    qualifier: StringCriteria = field(default_factory=_name_is)
    quantity: NumericCriteria = field(default_factory=lambda: NumericCriteria(NumericCompareType.AT_LEAST, ONE))


@dataclass(slots=True)
class ContainedWeightPrereq:
    """Only meaningful on equipment containers; compares the weight of the contents."""

    has: bool = True
    weight: WeightCriteria = field(
        default_factory=lambda: WeightCriteria(
            NumericCompareType.AT_MOST, WeightValue(Fixed6(5), WeightUnits.LB)
        )
    )


@dataclass(slots=True)
class ContainedQuantityPrereq:
    has: bool = True
    quantity: NumericCriteria = field(
        default_factory=lambda: NumericCriteria(NumericCompareType.AT_MOST, ONE)
    )


@dataclass(slots=True)
class PrereqList:
    all: bool = True
    when_tl: NumericCriteria = field(
        default_factory=lambda: NumericCriteria(NumericCompareType.ANY, ZERO)
    )
    prereqs: list[Prereq] = field(default_factory=list)


Prereq = (
    PrereqList
    | AdvantagePrereq
    | AttributePrereq
    | SkillPrereq
    | SpellPrereq
    | ContainedWeightPrereq
    | ContainedQuantityPrereq
)
