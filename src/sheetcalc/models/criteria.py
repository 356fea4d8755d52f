"""Criteria matchers used by bonuses and prerequisites.

A criteria is a comparison kind plus a qualifier; ``matches`` is a pure
predicate. String comparisons ignore case.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from sheetcalc.models.fixed6 import ZERO, Fixed6
from sheetcalc.models.weight import WeightUnits, WeightValue


class StringCompareType(Enum):
    ANY = "any"
    IS = "is"
    IS_NOT = "is_not"
    CONTAINS = "contains"
    DOES_NOT_CONTAIN = "does_not_contain"
    STARTS_WITH = "starts_with"
    DOES_NOT_START_WITH = "does_not_start_with"
    ENDS_WITH = "ends_with"
    DOES_NOT_END_WITH = "does_not_end_with"

    def matches(self, qualifier: str, candidate: str) -> bool:
        q = qualifier.lower()
        c = candidate.lower()
        if self is StringCompareType.ANY:
            return True
        if self is StringCompareType.IS:
            return c == q
        if self is StringCompareType.IS_NOT:
            return c != q
        if self is StringCompareType.CONTAINS:
            return q in c
        if self is StringCompareType.DOES_NOT_CONTAIN:
            return q not in c
        if self is StringCompareType.STARTS_WITH:
            return c.startswith(q)
        if self is StringCompareType.DOES_NOT_START_WITH:
            return not c.startswith(q)
        if self is StringCompareType.ENDS_WITH:
            return c.endswith(q)
        return not c.endswith(q)

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class NumericCompareType(Enum):
    ANY = "any"
    IS = "is"
    IS_NOT = "is_not"
    AT_LEAST = "at_least"
    AT_MOST = "at_most"

    def matches(self, qualifier: Fixed6, candidate: Fixed6) -> bool:
        if self is NumericCompareType.ANY:
            return True
        if self is NumericCompareType.IS:
            return candidate == qualifier
        if self is NumericCompareType.IS_NOT:
            return candidate != qualifier
        if self is NumericCompareType.AT_LEAST:
            return candidate >= qualifier
        return candidate <= qualifier

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


@dataclass(slots=True)
class StringCriteria:
    compare: StringCompareType = StringCompareType.ANY
    qualifier: str = ""

    def matches(self, candidate: str | None) -> bool:
        return self.compare.matches(self.qualifier, candidate or "")

    @property
    def is_type_is(self) -> bool:
        return self.compare is StringCompareType.IS

    @property
    def is_type_anything(self) -> bool:
        return self.compare is StringCompareType.ANY

    def describe(self) -> str:
        if self.is_type_anything:
            return "is anything"
        return f'{self.compare.label} "{self.qualifier}"'


@dataclass(slots=True)
class NumericCriteria:
    compare: NumericCompareType = NumericCompareType.AT_LEAST
    qualifier: Fixed6 = field(default_factory=lambda: ZERO)

    def matches(self, candidate: Fixed6 | int) -> bool:
        return self.compare.matches(self.qualifier, Fixed6.coerce(candidate))

    def describe(self) -> str:
        if self.compare is NumericCompareType.ANY:
            return "is anything"
        return f"{self.compare.label} {self.qualifier}"


@dataclass(slots=True)
class WeightCriteria:
    compare: NumericCompareType = NumericCompareType.AT_LEAST
    qualifier: WeightValue = field(default_factory=lambda: WeightValue(ZERO, WeightUnits.LB))

    def matches(self, candidate: WeightValue) -> bool:
        return self.compare.matches(self.qualifier.normalized(), candidate.normalized())

    def describe(self) -> str:
        if self.compare is NumericCompareType.ANY:
            return "is anything"
        return f"{self.compare.label} {self.qualifier}"


def matches_categories(criteria: StringCriteria, categories: Iterable[str] | None) -> bool:
    """True if *criteria* accepts "any" category or at least one of *categories*."""
    if categories is not None:
        for category in categories:
            if criteria.matches(category):
                return True
    return criteria.matches("")
