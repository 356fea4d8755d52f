"""Build a ``Character`` from the plain nested-dict sheet shape.

The shape follows the character-sheet JSON files: every trait, feature
and prereq is an object carrying a ``"type"`` tag, containers hold a
``"children"`` list, and amounts may be numbers or decimal strings.

Unknown feature and prereq types are logged and skipped so a sheet from
a newer release still loads. Unknown trait types and enum ids are
rejected with ``ValueError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from sheetcalc.models.attribute import (
    Attribute,
    AttributeDef,
    AttributeType,
    PoolThreshold,
    ThresholdOp,
)
from sheetcalc.models.character import Character, Profile
from sheetcalc.models.criteria import (
    NumericCompareType,
    NumericCriteria,
    StringCompareType,
    StringCriteria,
    WeightCriteria,
)
from sheetcalc.models.feature import (
    AttributeBonus,
    AttributeBonusLimitation,
    ConditionalModifier,
    ContainedWeightReduction,
    CostReduction,
    DRBonus,
    Feature,
    FeatureType,
    LeveledAmount,
    ReactionBonus,
    SkillBonus,
    SkillPointBonus,
    SkillSelectionType,
    SpellBonus,
    SpellMatchType,
    SpellPointBonus,
    WeaponDamageBonus,
)
from sheetcalc.models.fixed6 import ZERO, Fixed6
from sheetcalc.models.modifier import (
    AdvantageModifier,
    AdvantageModifierCostType,
    Affects,
    CostStage,
    EquipmentModifier,
    WeightStage,
)
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
from sheetcalc.models.sheet_settings import DamageProgression, SheetSettings
from sheetcalc.models.trait import (
    Advantage,
    AdvantageContainerType,
    AttributeDifficulty,
    Equipment,
    Note,
    Skill,
    SkillDefault,
    Spell,
    Trait,
)
from sheetcalc.models.weight import WeightUnits, WeightValue

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def _parse_int_like(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError("bool is not a valid integer value")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        return Fixed6.parse(value).as_int()
    raise ValueError(f"Expected integer-like value, got: {value!r}")


def _parse_fixed(value: Any, default: Fixed6 = ZERO) -> Fixed6:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError("bool is not a valid decimal value")
    if isinstance(value, float):
        return Fixed6.from_float(value)
    if isinstance(value, (int, str, Fixed6)):
        return Fixed6.coerce(value)
    raise ValueError(f"Expected decimal value, got: {value!r}")


def _parse_enum(enum_type, value: Any, default):
    if value is None or value == "":
        return default
    try:
        return enum_type(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown {enum_type.__name__}: {value!r}") from None


def _enabled(data: Mapping[str, Any]) -> bool:
    if "disabled" in data:
        return not bool(data["disabled"])
    return bool(data.get("enabled", True))


def _strings(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _weight(value: Any, units: WeightUnits) -> WeightValue:
    if value is None or value == "":
        return WeightValue(ZERO, units)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return WeightValue(_parse_fixed(value), units)
    return WeightValue.parse(str(value), units)


# ---------------------------------------------------------------------------
# Criteria
# ---------------------------------------------------------------------------


def _string_criteria(data: Any, default: StringCompareType = StringCompareType.ANY) -> StringCriteria:
    if data is None:
        return StringCriteria(default)
    if isinstance(data, str):
        return StringCriteria(StringCompareType.IS, data)
    return StringCriteria(
        _parse_enum(StringCompareType, data.get("compare"), default),
        str(data.get("qualifier", "")),
    )


def _numeric_criteria(data: Any, default: NumericCriteria | None = None) -> NumericCriteria:
    if data is None:
        return default if default is not None else NumericCriteria()
    if not isinstance(data, Mapping):
        return NumericCriteria(NumericCompareType.AT_LEAST, _parse_fixed(data))
    return NumericCriteria(
        _parse_enum(NumericCompareType, data.get("compare"), NumericCompareType.AT_LEAST),
        _parse_fixed(data.get("qualifier")),
    )


def _weight_criteria(data: Any, units: WeightUnits) -> WeightCriteria:
    if data is None:
        return WeightCriteria(NumericCompareType.AT_MOST, WeightValue(Fixed6(5), WeightUnits.LB))
    return WeightCriteria(
        _parse_enum(NumericCompareType, data.get("compare"), NumericCompareType.AT_LEAST),
        _weight(data.get("qualifier"), units),
    )


# ---------------------------------------------------------------------------
# Features
# ---------------------------------------------------------------------------


def _amount(data: Mapping[str, Any]) -> LeveledAmount:
    return LeveledAmount(
        amount=_parse_fixed(data.get("amount")),
        per_level=bool(data.get("per_level", False)),
    )


def _feature_from_dict(data: Mapping[str, Any]) -> Feature | None:
    kind = str(data.get("type", "")).strip().lower()
    try:
        feature_type = FeatureType(kind)
    except ValueError:
        logger.warning("unknown_feature_type", feature_type=kind)
        return None

    if feature_type is FeatureType.ATTRIBUTE_BONUS:
        return AttributeBonus(
            amount=_amount(data),
            attribute=str(data.get("attribute", "st")).lower(),
            limitation=_parse_enum(
                AttributeBonusLimitation, data.get("limitation"), AttributeBonusLimitation.NONE
            ),
        )
    if feature_type is FeatureType.SKILL_BONUS:
        return SkillBonus(
            amount=_amount(data),
            selection_type=_parse_enum(
                SkillSelectionType, data.get("selection_type"), SkillSelectionType.SKILLS_WITH_NAME
            ),
            name=_string_criteria(data.get("name"), StringCompareType.IS),
            specialization=_string_criteria(data.get("specialization")),
            category=_string_criteria(data.get("category")),
        )
    if feature_type is FeatureType.SKILL_POINT_BONUS:
        return SkillPointBonus(
            amount=_amount(data),
            name=_string_criteria(data.get("name"), StringCompareType.IS),
            specialization=_string_criteria(data.get("specialization")),
            category=_string_criteria(data.get("category")),
        )
    if feature_type in (FeatureType.SPELL_BONUS, FeatureType.SPELL_POINT_BONUS):
        cls = SpellBonus if feature_type is FeatureType.SPELL_BONUS else SpellPointBonus
        return cls(
            amount=_amount(data),
            match=_parse_enum(SpellMatchType, data.get("match"), SpellMatchType.ALL_COLLEGES),
            name=_string_criteria(data.get("name"), StringCompareType.IS),
            category=_string_criteria(data.get("category")),
        )
    if feature_type is FeatureType.WEAPON_DAMAGE_BONUS:
        return WeaponDamageBonus(
            amount=_amount(data),
            selection_type=_parse_enum(
                SkillSelectionType, data.get("selection_type"), SkillSelectionType.SKILLS_WITH_NAME
            ),
            name=_string_criteria(data.get("name"), StringCompareType.IS),
            specialization=_string_criteria(data.get("specialization")),
            relative_level=_numeric_criteria(data.get("level")),
            category=_string_criteria(data.get("category")),
        )
    if feature_type is FeatureType.DR_BONUS:
        return DRBonus(
            amount=_amount(data),
            location=str(data.get("location", "torso")),
            specialization=str(data.get("specialization", "all")),
        )
    if feature_type is FeatureType.REACTION_BONUS:
        return ReactionBonus(amount=_amount(data), situation=str(data.get("situation", "from others")))
    if feature_type is FeatureType.CONDITIONAL_MODIFIER:
        return ConditionalModifier(
            amount=_amount(data), situation=str(data.get("situation", "triggering condition"))
        )
    if feature_type is FeatureType.COST_REDUCTION:
        return CostReduction(
            attribute=str(data.get("attribute", "st")).lower(),
            percentage=_parse_int_like(data.get("percentage"), 40),
        )
    return ContainedWeightReduction(reduction=str(data.get("reduction", "0%")))


def _features(raw: Any) -> list[Feature]:
    features = []
    for entry in raw or ():
        feature = _feature_from_dict(entry)
        if feature is not None:
            features.append(feature)
    return features


# ---------------------------------------------------------------------------
# Prereqs
# ---------------------------------------------------------------------------


def _prereq_from_dict(data: Mapping[str, Any], units: WeightUnits) -> Prereq | None:
    kind = str(data.get("type", "")).strip().lower()
    has = bool(data.get("has", True))
    if kind == "prereq_list":
        return prereq_list_from_dict(data, units)
    if kind == "advantage_prereq":
        return AdvantagePrereq(
            has=has,
            name=_string_criteria(data.get("name"), StringCompareType.IS),
            level=_numeric_criteria(data.get("level")),
            notes=_string_criteria(data.get("notes")),
        )
    if kind == "attribute_prereq":
        return AttributePrereq(
            has=has,
            which=str(data.get("which", "st")).lower(),
            combined_with=str(data.get("combined_with", "")).lower(),
            qualifier=_numeric_criteria(
                data.get("qualifier"), NumericCriteria(NumericCompareType.AT_LEAST, Fixed6(10))
            ),
        )
    if kind == "skill_prereq":
        return SkillPrereq(
            has=has,
            name=_string_criteria(data.get("name"), StringCompareType.IS),
            specialization=_string_criteria(data.get("specialization")),
            level=_numeric_criteria(data.get("level")),
        )
    if kind == "spell_prereq":
        return SpellPrereq(
            has=has,
            sub_type=_parse_enum(SpellPrereqType, data.get("sub_type"), SpellPrereqType.NAME),
            qualifier=_string_criteria(data.get("qualifier"), StringCompareType.IS),
            quantity=_numeric_criteria(
                data.get("quantity"), NumericCriteria(NumericCompareType.AT_LEAST, Fixed6(1))
            ),
        )
    if kind == "contained_weight_prereq":
        return ContainedWeightPrereq(has=has, weight=_weight_criteria(data.get("qualifier"), units))
    if kind == "contained_quantity_prereq":
        return ContainedQuantityPrereq(
            has=has,
            quantity=_numeric_criteria(
                data.get("qualifier"), NumericCriteria(NumericCompareType.AT_MOST, Fixed6(1))
            ),
        )
    logger.warning("unknown_prereq_type", prereq_type=kind)
    return None


def prereq_list_from_dict(data: Mapping[str, Any] | None, units: WeightUnits = WeightUnits.LB) -> PrereqList:
    if not data:
        return PrereqList()
    prereqs = []
    for entry in data.get("prereqs", ()):
        prereq = _prereq_from_dict(entry, units)
        if prereq is not None:
            prereqs.append(prereq)
    when_tl = data.get("when_tl")
    return PrereqList(
        all=bool(data.get("all", True)),
        when_tl=(
            _numeric_criteria(when_tl)
            if when_tl is not None
            else NumericCriteria(NumericCompareType.ANY)
        ),
        prereqs=prereqs,
    )


# ---------------------------------------------------------------------------
# Modifiers
# ---------------------------------------------------------------------------


def _advantage_modifier_from_dict(data: Mapping[str, Any]) -> AdvantageModifier:
    return AdvantageModifier(
        name=str(data.get("name", "")),
        enabled=_enabled(data),
        cost=_parse_fixed(data.get("cost")),
        cost_type=_parse_enum(
            AdvantageModifierCostType, data.get("cost_type"), AdvantageModifierCostType.PERCENTAGE
        ),
        affects=_parse_enum(Affects, data.get("affects"), Affects.TOTAL),
        levels=_parse_int_like(data.get("levels")),
        features=_features(data.get("features")),
        notes=str(data.get("notes", "")),
    )


def _equipment_modifier_from_dict(data: Mapping[str, Any]) -> EquipmentModifier:
    return EquipmentModifier(
        name=str(data.get("name", "")),
        enabled=_enabled(data),
        cost_type=_parse_enum(CostStage, data.get("cost_type"), CostStage.ORIGINAL),
        cost_amount=str(data.get("cost", "+0")),
        weight_type=_parse_enum(WeightStage, data.get("weight_type"), WeightStage.ORIGINAL),
        weight_amount=str(data.get("weight", "+0")),
        features=_features(data.get("features")),
        tech_level=str(data.get("tech_level", "")),
        notes=str(data.get("notes", "")),
    )


def _modifiers(raw: Any, build) -> list:
    """Flatten modifier containers; only leaf modifiers are kept."""
    modifiers = []
    for entry in raw or ():
        if entry.get("children") is not None:
            if _enabled(entry):
                modifiers.extend(_modifiers(entry["children"], build))
            continue
        modifiers.append(build(entry))
    return modifiers


# ---------------------------------------------------------------------------
# Traits
# ---------------------------------------------------------------------------


def _common(data: Mapping[str, Any], container: bool, units: WeightUnits) -> dict[str, Any]:
    return {
        "trait_id": _parse_int_like(data.get("id")),
        "name": str(data.get("name", data.get("description", ""))),
        "enabled": _enabled(data),
        "container": container,
        "features": _features(data.get("features")),
        "prereqs": prereq_list_from_dict(data.get("prereqs"), units),
        "categories": _strings(data.get("categories")),
        "notes": str(data.get("notes", "")),
    }


def _skill_default(data: Mapping[str, Any] | None) -> SkillDefault | None:
    if not data:
        return None
    return SkillDefault(
        type=str(data.get("type", "skill")).lower(),
        name=str(data.get("name", "")),
        specialization=str(data.get("specialization", "")),
        modifier=_parse_int_like(data.get("modifier")),
    )


def _children(data: Mapping[str, Any], units: WeightUnits) -> list[Trait]:
    return [trait_from_dict(child, units) for child in data.get("children", ())]


def trait_from_dict(data: Mapping[str, Any], units: WeightUnits = WeightUnits.LB) -> Trait:
    """One trait (and its children). Raises ``ValueError`` on an unknown ``"type"``."""
    kind = str(data.get("type", "")).strip().lower()
    container = kind.endswith("_container")

    if kind in ("advantage", "advantage_container"):
        return Advantage(
            **_common(data, container, units),
            children=_children(data, units) if container else [],
            base_points=_parse_int_like(data.get("base_points")),
            levels=_parse_int_like(data.get("levels")),
            points_per_level=_parse_int_like(data.get("points_per_level")),
            half_level=bool(data.get("half_level", False)),
            round_cost_down=bool(data.get("round_down", False)),
            container_type=_parse_enum(
                AdvantageContainerType, data.get("container_type"), AdvantageContainerType.GROUP
            ),
            modifiers=_modifiers(data.get("modifiers"), _advantage_modifier_from_dict),
        )

    if kind in ("skill", "technique", "skill_container"):
        technique = kind == "technique"
        default_difficulty = "h" if technique else "dx/a"
        return Skill(
            **_common(data, container, units),
            children=_children(data, units) if container else [],
            specialization=str(data.get("specialization", "")),
            difficulty=AttributeDifficulty.parse(str(data.get("difficulty", default_difficulty))),
            points=_parse_int_like(data.get("points")),
            defaults=[d for d in map(_skill_default, data.get("defaults", ())) if d is not None],
            encumbrance_penalty_multiplier=_parse_int_like(data.get("encumbrance_penalty_multiplier")),
            tech_level=data.get("tech_level"),
            technique=technique,
            technique_default=_skill_default(data.get("default")) if technique else None,
            limit_modifier=(
                _parse_int_like(data["limit"]) if technique and data.get("limit") is not None else None
            ),
        )

    if kind in ("spell", "spell_container"):
        return Spell(
            **_common(data, container, units),
            children=_children(data, units) if container else [],
            colleges=_strings(data.get("college")),
            power_source=str(data.get("power_source", "Arcane")),
            difficulty=AttributeDifficulty.parse(str(data.get("difficulty", "iq/h"))),
            points=_parse_int_like(data.get("points")),
            tech_level=data.get("tech_level"),
        )

    if kind in ("equipment", "equipment_container"):
        return Equipment(
            **_common(data, container, units),
            children=_children(data, units) if container else [],
            quantity=_parse_int_like(data.get("quantity"), 1),
            value=_parse_fixed(data.get("value")),
            weight=_weight(data.get("weight"), units),
            equipped=bool(data.get("equipped", True)),
            weight_ignored_for_skills=bool(data.get("ignore_weight_for_skills", False)),
            modifiers=_modifiers(data.get("modifiers"), _equipment_modifier_from_dict),
            tech_level=str(data.get("tech_level", "")),
        )

    if kind in ("note", "note_container"):
        note = Note(
            trait_id=_parse_int_like(data.get("id")),
            name=str(data.get("name", "")),
            container=container,
            children=_children(data, units) if container else [],
            text=str(data.get("text", "")),
        )
        return note

    raise ValueError(f"Unknown trait type: {kind!r}")


# ---------------------------------------------------------------------------
# Settings and character
# ---------------------------------------------------------------------------


def _threshold_from_dict(data: Mapping[str, Any]) -> PoolThreshold:
    return PoolThreshold(
        state=str(data.get("state", "")),
        multiplier=_parse_int_like(data.get("multiplier"), 1),
        divisor=_parse_int_like(data.get("divisor"), 1),
        addition=_parse_int_like(data.get("addition")),
        explanation=str(data.get("explanation", "")),
        ops={
            parsed
            for parsed in (_parse_enum(ThresholdOp, op, None) for op in data.get("ops", ()))
            if parsed is not None
        },
    )


def _attribute_def_from_dict(data: Mapping[str, Any]) -> AttributeDef:
    attr_id = str(data.get("id", "")).strip().lower()
    if not attr_id:
        raise ValueError("attribute definition without an id")
    return AttributeDef(
        id=attr_id,
        name=str(data.get("name", attr_id.upper())),
        type=_parse_enum(AttributeType, data.get("type"), AttributeType.INTEGER),
        base=str(data.get("attribute_base", data.get("base", "10"))),
        cost_per_point=_parse_int_like(data.get("cost_per_point")),
        cost_adj_percent_per_sm=_parse_int_like(data.get("cost_adj_percent_per_sm")),
        full_name=str(data.get("full_name", "")),
        thresholds=[_threshold_from_dict(t) for t in data.get("thresholds", ())],
    )


def settings_from_dict(data: Mapping[str, Any] | None) -> SheetSettings:
    settings = SheetSettings.defaults()
    if not data:
        return settings
    if "default_weight_units" in data:
        settings.default_weight_units = WeightUnits.from_abbreviation(str(data["default_weight_units"]))
    settings.use_simple_metric_conversions = bool(
        data.get("use_simple_metric_conversions", settings.use_simple_metric_conversions)
    )
    settings.damage_progression = _parse_enum(
        DamageProgression, data.get("damage_progression"), settings.damage_progression
    )
    settings.use_multiplicative_modifiers = bool(
        data.get("use_multiplicative_modifiers", settings.use_multiplicative_modifiers)
    )
    if data.get("attributes"):
        settings.attributes = [_attribute_def_from_dict(a) for a in data["attributes"]]
    return settings


def _profile_from_dict(data: Mapping[str, Any] | None) -> Profile:
    data = data or {}
    return Profile(
        name=str(data.get("name", "")),
        player=str(data.get("player_name", data.get("player", ""))),
        tech_level=str(data.get("tech_level", "3")),
        size_modifier=_parse_int_like(data.get("SM", data.get("size_modifier"))),
    )


def _forest(raw: Any, units: WeightUnits) -> list:
    return [trait_from_dict(entry, units) for entry in raw or ()]


def load_character(data: Mapping[str, Any]) -> Character:
    """Build a character from a decoded sheet file."""
    settings = settings_from_dict(data.get("settings"))
    units = settings.default_weight_units
    attributes: dict[str, Attribute] = {}
    for entry in data.get("attributes", ()):
        attr_id = str(entry.get("attr_id", "")).strip().lower()
        attr_def = settings.attribute_def(attr_id)
        if attr_def is None:
            logger.warning("unknown_attribute", attr_id=attr_id)
            continue
        attributes[attr_id] = Attribute(
            attr_id,
            attr_def,
            adjustment=_parse_fixed(entry.get("adj")),
            damage=_parse_fixed(entry.get("damage")),
        )
    character = Character(
        settings=settings,
        profile=_profile_from_dict(data.get("profile")),
        total_points=_parse_int_like(data.get("total_points"), 250),
        attributes=attributes,
        advantages=_forest(data.get("advantages"), units),
        skills=_forest(data.get("skills"), units),
        spells=_forest(data.get("spells"), units),
        equipment=_forest(data.get("equipment"), units),
        other_equipment=_forest(data.get("other_equipment"), units),
        notes=_forest(data.get("notes"), units),
    )
    character.assign_ids()
    logger.debug("character_loaded", name=character.profile.name)
    return character
