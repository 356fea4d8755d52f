"""Export a recalculated character as plain data.

The output uses the same shape ``loader.load_character`` reads, with the
computed values added next to the input they came from, plus a ``calc``
block for the sheet-level derived values. Decimal values are written as
canonical strings so nothing is lost to float rounding.
"""

from __future__ import annotations

from typing import Any

from sheetcalc.engine.engine_config import EngineConfig
from sheetcalc.engine.sheet_engine import LevelContext, ResolvedState
from sheetcalc.models.attribute import AttributeDef, PoolThreshold
from sheetcalc.models.character import Character
from sheetcalc.models.criteria import NumericCriteria, StringCriteria, WeightCriteria
from sheetcalc.models.feature import (
    AttributeBonus,
    Bonus,
    ConditionalModifier,
    ContainedWeightReduction,
    CostReduction,
    DRBonus,
    Feature,
    ReactionBonus,
    SkillBonus,
    SkillPointBonus,
    SpellBonus,
    SpellPointBonus,
    WeaponDamageBonus,
)
from sheetcalc.models.modifier import AdvantageModifier, EquipmentModifier
from sheetcalc.models.prereq import (
    AdvantagePrereq,
    AttributePrereq,
    ContainedQuantityPrereq,
    ContainedWeightPrereq,
    Prereq,
    PrereqList,
    SkillPrereq,
    SpellPrereq,
)
from sheetcalc.models.trait import Advantage, Equipment, Note, Skill, SkillDefault, Spell, Trait


# --- Criteria ---------------------------------------------------------------


def _string_criteria(criteria: StringCriteria) -> dict[str, Any]:
    return {"compare": criteria.compare.value, "qualifier": criteria.qualifier}


def _numeric_criteria(criteria: NumericCriteria) -> dict[str, Any]:
    return {"compare": criteria.compare.value, "qualifier": str(criteria.qualifier)}


def _weight_criteria(criteria: WeightCriteria) -> dict[str, Any]:
    return {"compare": criteria.compare.value, "qualifier": str(criteria.qualifier)}


# --- Features ---------------------------------------------------------------


def _feature_payload(feature: Feature) -> dict[str, Any]:
    payload: dict[str, Any] = {"type": feature.feature_type.value}
    if isinstance(feature, Bonus):
        payload["amount"] = str(feature.amount.amount)
        if feature.amount.per_level:
            payload["per_level"] = True
    if isinstance(feature, AttributeBonus):
        payload["attribute"] = feature.attribute
        payload["limitation"] = feature.limitation.value
    elif isinstance(feature, (SkillBonus, WeaponDamageBonus)):
        payload["selection_type"] = feature.selection_type.value
        payload["name"] = _string_criteria(feature.name)
        payload["specialization"] = _string_criteria(feature.specialization)
        payload["category"] = _string_criteria(feature.category)
        if isinstance(feature, WeaponDamageBonus):
            payload["level"] = _numeric_criteria(feature.relative_level)
    elif isinstance(feature, SkillPointBonus):
        payload["name"] = _string_criteria(feature.name)
        payload["specialization"] = _string_criteria(feature.specialization)
        payload["category"] = _string_criteria(feature.category)
    elif isinstance(feature, (SpellBonus, SpellPointBonus)):
        payload["match"] = feature.match.value
        payload["name"] = _string_criteria(feature.name)
        payload["category"] = _string_criteria(feature.category)
    elif isinstance(feature, DRBonus):
        payload["location"] = feature.location
        payload["specialization"] = feature.specialization
    elif isinstance(feature, (ReactionBonus, ConditionalModifier)):
        payload["situation"] = feature.situation
    elif isinstance(feature, CostReduction):
        payload["attribute"] = feature.attribute
        payload["percentage"] = int(feature.percentage)
    elif isinstance(feature, ContainedWeightReduction):
        payload["reduction"] = feature.reduction
    return payload


# --- Prereqs ----------------------------------------------------------------


def _prereq_payload(prereq: Prereq) -> dict[str, Any]:
    if isinstance(prereq, PrereqList):
        return prereq_list_payload(prereq)
    payload: dict[str, Any] = {"has": prereq.has}
    if isinstance(prereq, AdvantagePrereq):
        payload.update(
            type="advantage_prereq",
            name=_string_criteria(prereq.name),
            level=_numeric_criteria(prereq.level),
            notes=_string_criteria(prereq.notes),
        )
    elif isinstance(prereq, AttributePrereq):
        payload.update(
            type="attribute_prereq",
            which=prereq.which,
            combined_with=prereq.combined_with,
            qualifier=_numeric_criteria(prereq.qualifier),
        )
    elif isinstance(prereq, SkillPrereq):
        payload.update(
            type="skill_prereq",
            name=_string_criteria(prereq.name),
            specialization=_string_criteria(prereq.specialization),
            level=_numeric_criteria(prereq.level),
        )
    elif isinstance(prereq, SpellPrereq):
        payload.update(
            type="spell_prereq",
            sub_type=prereq.sub_type.value,
            qualifier=_string_criteria(prereq.qualifier),
            quantity=_numeric_criteria(prereq.quantity),
        )
    elif isinstance(prereq, ContainedWeightPrereq):
        payload.update(type="contained_weight_prereq", qualifier=_weight_criteria(prereq.weight))
    elif isinstance(prereq, ContainedQuantityPrereq):
        payload.update(type="contained_quantity_prereq", qualifier=_numeric_criteria(prereq.quantity))
    return payload


def prereq_list_payload(prereqs: PrereqList) -> dict[str, Any]:
    return {
        "type": "prereq_list",
        "all": prereqs.all,
        "when_tl": _numeric_criteria(prereqs.when_tl),
        "prereqs": [_prereq_payload(p) for p in prereqs.prereqs],
    }


# --- Modifiers --------------------------------------------------------------


def _advantage_modifier_payload(modifier: AdvantageModifier) -> dict[str, Any]:
    return {
        "type": "modifier",
        "name": modifier.name,
        "disabled": not modifier.enabled,
        "cost": str(modifier.cost),
        "cost_type": modifier.cost_type.value,
        "affects": modifier.affects.value,
        "levels": int(modifier.levels),
        "features": [_feature_payload(f) for f in modifier.features],
        "notes": modifier.notes,
    }


def _equipment_modifier_payload(modifier: EquipmentModifier) -> dict[str, Any]:
    return {
        "type": "eqp_modifier",
        "name": modifier.name,
        "disabled": not modifier.enabled,
        "cost_type": modifier.cost_type.value,
        "cost": modifier.cost_amount,
        "weight_type": modifier.weight_type.value,
        "weight": modifier.weight_amount,
        "features": [_feature_payload(f) for f in modifier.features],
        "tech_level": modifier.tech_level,
        "notes": modifier.notes,
    }


# --- Traits -----------------------------------------------------------------


def _default_payload(default: SkillDefault) -> dict[str, Any]:
    payload: dict[str, Any] = {"type": default.type, "modifier": int(default.modifier)}
    if default.skill_based:
        payload["name"] = default.name
        if default.specialization:
            payload["specialization"] = default.specialization
    return payload


def _kind(trait: Trait) -> str:
    if isinstance(trait, Advantage):
        base = "advantage"
    elif isinstance(trait, Skill):
        if trait.technique:
            return "technique"
        base = "skill"
    elif isinstance(trait, Spell):
        base = "spell"
    elif isinstance(trait, Equipment):
        base = "equipment"
    else:
        base = "note"
    return f"{base}_container" if trait.container else base


def _trait_payload(
    trait: Trait, character: Character, config: EngineConfig, ctx: LevelContext
) -> dict[str, Any]:
    units = character.settings.default_weight_units
    simple = character.settings.use_simple_metric_conversions
    payload: dict[str, Any] = {
        "type": _kind(trait),
        "id": int(trait.trait_id),
        "name": trait.name,
        "disabled": not trait.enabled,
    }
    if isinstance(trait, Note):
        payload["text"] = trait.text
    else:
        payload["features"] = [_feature_payload(f) for f in trait.features]
        payload["prereqs"] = prereq_list_payload(trait.prereqs)
        payload["categories"] = list(trait.categories)
        payload["notes"] = trait.notes
        payload["satisfied"] = bool(trait.satisfied)
        if not trait.satisfied:
            payload["unsatisfied_reason"] = trait.unsatisfied_reason

    if isinstance(trait, Advantage):
        payload.update(
            base_points=int(trait.base_points),
            levels=int(trait.levels),
            points_per_level=int(trait.points_per_level),
            half_level=trait.half_level,
            round_down=trait.round_cost_down,
            modifiers=[_advantage_modifier_payload(m) for m in trait.modifiers],
            adjusted_points=trait.adjusted_points(
                config, character.settings.use_multiplicative_modifiers
            ),
        )
        if trait.container:
            payload["container_type"] = trait.container_type.value
    elif isinstance(trait, Skill):
        payload.update(
            specialization=trait.specialization,
            difficulty=str(trait.difficulty).lower(),
            points=int(trait.points),
            defaults=[_default_payload(d) for d in trait.defaults],
            encumbrance_penalty_multiplier=int(trait.encumbrance_penalty_multiplier),
            level=trait.level,
            relative_level=int(trait.relative_level),
        )
        if trait.tech_level is not None:
            payload["tech_level"] = trait.tech_level
        if trait.technique and trait.technique_default is not None:
            payload["default"] = _default_payload(trait.technique_default)
            if trait.limit_modifier is not None:
                payload["limit"] = int(trait.limit_modifier)
        if not trait.container:
            payload["adjusted_points"] = trait.adjusted_points(ctx)
    elif isinstance(trait, Spell):
        payload.update(
            college=list(trait.colleges),
            power_source=trait.power_source,
            difficulty=str(trait.difficulty).lower(),
            points=int(trait.points),
            level=trait.level,
            relative_level=int(trait.relative_level),
        )
        if trait.tech_level is not None:
            payload["tech_level"] = trait.tech_level
        if not trait.container:
            payload["adjusted_points"] = trait.adjusted_points(ctx)
    elif isinstance(trait, Equipment):
        payload.update(
            quantity=int(trait.quantity),
            value=str(trait.value),
            weight=str(trait.weight),
            equipped=trait.equipped,
            ignore_weight_for_skills=trait.weight_ignored_for_skills,
            modifiers=[_equipment_modifier_payload(m) for m in trait.modifiers],
            tech_level=trait.tech_level,
            extended_value=str(trait.extended_value(config)),
            extended_weight=str(trait.extended_weight(False, units, simple)),
        )

    if trait.container:
        payload["children"] = [_trait_payload(c, character, config, ctx) for c in trait.children]
    return payload


# --- Sheet ------------------------------------------------------------------


def _threshold_payload(threshold: PoolThreshold) -> dict[str, Any]:
    return {
        "state": threshold.state,
        "multiplier": threshold.multiplier,
        "divisor": threshold.divisor,
        "addition": threshold.addition,
        "explanation": threshold.explanation,
        "ops": sorted(op.value for op in threshold.ops),
    }


def _attribute_def_payload(attr_def: AttributeDef) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": attr_def.id,
        "name": attr_def.name,
        "type": attr_def.type.value,
        "attribute_base": attr_def.base,
        "cost_per_point": attr_def.cost_per_point,
        "cost_adj_percent_per_sm": attr_def.cost_adj_percent_per_sm,
        "full_name": attr_def.full_name,
    }
    if attr_def.thresholds:
        payload["thresholds"] = [_threshold_payload(t) for t in attr_def.thresholds]
    return payload


def _points_payload(state: ResolvedState) -> dict[str, Any]:
    points = state.points
    return {
        "attributes": int(points.attributes),
        "advantages": int(points.advantages),
        "disadvantages": int(points.disadvantages),
        "quirks": int(points.quirks),
        "race": int(points.race),
        "skills": int(points.skills),
        "spells": int(points.spells),
        "spent": int(points.spent),
        "unspent": int(state.unspent_points),
    }


def _calc_payload(state: ResolvedState) -> dict[str, Any]:
    return {
        "passes": int(state.passes),
        "phase": state.phase.value,
        "move": [int(v) for v in state.move],
        "dodge": [int(v) for v in state.dodge],
        "encumbrance": state.encumbrance.label,
        "basic_lift": str(state.lift.basic_lift) if state.lift is not None else None,
        "thrust": str(state.thrust) if state.thrust is not None else None,
        "swing": str(state.swing) if state.swing is not None else None,
        "lifting_st": int(state.lifting_strength),
        "striking_st": int(state.striking_strength),
        "throwing_st": int(state.throwing_strength),
        "weight_carried": str(state.weight_carried),
        "wealth_carried": str(state.wealth_carried),
        "wealth_not_carried": str(state.wealth_not_carried),
        "dodge_bonus": int(state.bonuses.dodge),
        "parry_bonus": int(state.bonuses.parry),
        "block_bonus": int(state.bonuses.block),
        "reactions": [
            {"situation": r.situation, "amount": int(r.amount), "sources": list(r.sources)}
            for r in state.index.reaction_bonuses()
        ],
        "conditional_modifiers": [
            {"situation": c.situation, "amount": int(c.amount), "sources": list(c.sources)}
            for c in state.index.conditional_modifiers()
        ],
        "points": _points_payload(state),
    }


def export_character(
    character: Character, state: ResolvedState, config: EngineConfig | None = None
) -> dict[str, Any]:
    """Snapshot *character* after ``recalculate()`` produced *state*."""
    config = config or EngineConfig()
    ctx = LevelContext(character, state.index, state.encumbrance_for_skills.penalty)
    attributes = []
    for attr_id, attribute in character.attributes.items():
        row: dict[str, Any] = {
            "attr_id": attr_id,
            "adj": str(attribute.adjustment),
            "calc": {
                "value": str(attribute.maximum),
                "points": attribute.point_cost(character.profile.size_modifier, config.max_cost_reduction),
            },
        }
        if attribute.definition.is_pool:
            row["damage"] = str(attribute.damage)
            row["calc"]["current"] = str(attribute.current)
            threshold = attribute.current_threshold
            row["calc"]["state"] = threshold.state if threshold is not None else ""
        attributes.append(row)

    def forest(traits: list) -> list[dict[str, Any]]:
        return [_trait_payload(t, character, config, ctx) for t in traits]

    settings = character.settings
    return {
        "total_points": int(character.total_points),
        "profile": {
            "name": character.profile.name,
            "player_name": character.profile.player,
            "tech_level": character.profile.tech_level,
            "SM": int(character.profile.size_modifier),
        },
        "settings": {
            "default_weight_units": settings.default_weight_units.abbreviation,
            "use_simple_metric_conversions": settings.use_simple_metric_conversions,
            "damage_progression": settings.damage_progression.value,
            "use_multiplicative_modifiers": settings.use_multiplicative_modifiers,
            "attributes": [_attribute_def_payload(a) for a in settings.attributes],
        },
        "attributes": attributes,
        "advantages": forest(character.advantages),
        "skills": forest(character.skills),
        "spells": forest(character.spells),
        "equipment": forest(character.equipment),
        "other_equipment": forest(character.other_equipment),
        "notes": forest(character.notes),
        "calc": _calc_payload(state),
    }
