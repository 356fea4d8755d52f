"""Character sheet model: settings, attributes and trait forests."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from sheetcalc.models.attribute import Attribute
from sheetcalc.models.sheet_settings import SheetSettings
from sheetcalc.models.trait import Advantage, Equipment, Note, Skill, Spell, Trait, iter_traits


@dataclass(slots=True)
class Profile:
    name: str = ""
    player: str = ""
    tech_level: str = "3"
    size_modifier: int = 0


@dataclass(slots=True, eq=False)
class Character:
    """A character sheet.

    Carried equipment lives in ``equipment``; ``other_equipment`` only
    counts toward wealth not carried and never contributes features.
    """

    settings: SheetSettings = field(default_factory=SheetSettings.defaults)
    profile: Profile = field(default_factory=Profile)
    total_points: int = 250
    attributes: dict[str, Attribute] = field(default_factory=dict)
    advantages: list[Advantage] = field(default_factory=list)
    skills: list[Skill] = field(default_factory=list)
    spells: list[Spell] = field(default_factory=list)
    equipment: list[Equipment] = field(default_factory=list)
    other_equipment: list[Equipment] = field(default_factory=list)
    notes: list[Note] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.sync_attributes()

    def sync_attributes(self) -> None:
        """Match ``attributes`` to the settings' definitions, keeping existing input."""
        synced: dict[str, Attribute] = {}
        for attr_def in self.settings.attributes:
            existing = self.attributes.get(attr_def.id)
            if existing is None:
                synced[attr_def.id] = Attribute(attr_def.id, attr_def)
            else:
                existing.definition = attr_def
                synced[attr_def.id] = existing
        self.attributes = synced

    def attribute(self, attr_id: str) -> Attribute | None:
        return self.attributes.get(attr_id)

    def feature_forests(self) -> tuple[list[Trait], ...]:
        """Forests whose active traits contribute features."""
        return (self.advantages, self.skills, self.spells, self.equipment)

    def all_forests(self) -> tuple[list[Trait], ...]:
        return (self.advantages, self.skills, self.spells, self.equipment, self.other_equipment, self.notes)

    def iter_all_traits(self) -> Iterator[Trait]:
        for forest in self.all_forests():
            yield from iter_traits(forest)

    def iter_skills(self) -> Iterator[Skill]:
        """Leaf skills and techniques."""
        for trait in iter_traits(self.skills):
            if isinstance(trait, Skill) and not trait.container:
                yield trait

    def iter_spells(self) -> Iterator[Spell]:
        for trait in iter_traits(self.spells):
            if isinstance(trait, Spell) and not trait.container:
                yield trait

    def iter_advantages(self) -> Iterator[Advantage]:
        """Every advantage, containers included."""
        for trait in iter_traits(self.advantages):
            if isinstance(trait, Advantage):
                yield trait

    def assign_ids(self) -> None:
        """Give every trait a unique, positive ``trait_id``; existing unique ids are kept."""
        seen: set[int] = set()
        pending: list[Trait] = []
        for trait in self.iter_all_traits():
            if trait.trait_id > 0 and trait.trait_id not in seen:
                seen.add(trait.trait_id)
            else:
                pending.append(trait)
        next_id = max(seen, default=0) + 1
        for trait in pending:
            trait.trait_id = next_id
            next_id += 1

    def trait_by_id(self, trait_id: int) -> Trait | None:
        for trait in self.iter_all_traits():
            if trait.trait_id == trait_id:
                return trait
        return None
