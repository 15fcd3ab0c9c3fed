"""Created-from generation bookkeeping and readiness checks.

Every component resource is labeled with the generation of the
ManagedControlPlane (and, if present, the InternalConfiguration) it was
generated from. Comparing these labels against the generations the component's
controller observed at its last status write tells whether the reported
conditions still describe the current desired state.
"""

from __future__ import annotations

from typing import Any

from keelson.api.constants import (
    IC_GENERATION_LABEL,
    MCP_GENERATION_LABEL,
    OPERATION_ANNOTATION,
    OPERATION_RECONCILE,
)
from keelson.api.types import ComponentCondition, ComponentResource, ObservedGenerations, Resource
from keelson.core.errors import InvalidGenerationLabelError, MissingGenerationLabelError


def _parse_generation(label: str, raw: str) -> int:
    try:
        return int(raw, 10)
    except ValueError as exc:
        raise InvalidGenerationLabelError(label, raw) from exc


def get_created_from_generation(obj: Resource) -> tuple[int, int]:
    """Return the (ManagedControlPlane, InternalConfiguration) generations ``obj`` was created from.

    The InternalConfiguration generation is -1 when its label is absent.
    """
    labels = obj.metadata.labels
    raw_cp = labels.get(MCP_GENERATION_LABEL)
    if raw_cp is None:
        raise MissingGenerationLabelError(
            f"object does not have a '{MCP_GENERATION_LABEL}' label",
            {"resource": str(obj.key())},
        )
    cp_gen = _parse_generation(MCP_GENERATION_LABEL, raw_cp)
    ic_gen = -1
    raw_ic = labels.get(IC_GENERATION_LABEL)
    if raw_ic is not None:
        ic_gen = _parse_generation(IC_GENERATION_LABEL, raw_ic)
    return cp_gen, ic_gen


def set_created_from_generation(obj: Resource, owner: Resource | None, internal_config: Resource | None) -> None:
    """Stamp the generation labels of ``owner`` and ``internal_config`` onto ``obj``.

    The InternalConfiguration label is removed if ``internal_config`` is None.
    """
    labels = obj.metadata.labels
    if owner is not None:
        labels[MCP_GENERATION_LABEL] = str(owner.metadata.generation)
    if internal_config is not None:
        labels[IC_GENERATION_LABEL] = str(internal_config.metadata.generation)
    else:
        labels.pop(IC_GENERATION_LABEL, None)


def created_from_generation_patch(
    owner: Resource | None,
    internal_config: Resource | None,
    add_reconcile_annotation: bool = False,
) -> dict[str, Any]:
    """Merge patch that sets both generation labels, optionally adding the reconcile annotation."""
    cp_value = str(owner.metadata.generation) if owner is not None else "-1"
    ic_value = str(internal_config.metadata.generation) if internal_config is not None else None
    metadata: dict[str, Any] = {
        "labels": {MCP_GENERATION_LABEL: cp_value, IC_GENERATION_LABEL: ic_value},
    }
    if add_reconcile_annotation:
        metadata["annotations"] = {OPERATION_ANNOTATION: OPERATION_RECONCILE}
    return {"metadata": metadata}


def is_component_ready_raw(
    cp_gen: int,
    ic_gen: int,
    resource_gen: int,
    observed: ObservedGenerations,
    *conditions: ComponentCondition,
) -> bool:
    """True if ``observed`` matches the given generations and every condition is True.

    A negative ``resource_gen`` skips the comparison of the resource's own generation.
    """
    if observed.managed_control_plane != cp_gen or observed.internal_configuration != ic_gen:
        return False
    if resource_gen >= 0 and observed.resource != resource_gen:
        return False
    return all(con.is_true() for con in conditions)


def is_component_ready(comp: ComponentResource | None, *relevant_conditions: str) -> bool:
    """True if the component's observed generations are current and its relevant conditions are True.

    Without ``relevant_conditions`` every condition of the component is relevant.
    A relevant condition type the component does not have counts as Unknown.
    """
    if comp is None:
        return False
    try:
        cp_gen, ic_gen = get_created_from_generation(comp)
    except (MissingGenerationLabelError, InvalidGenerationLabelError):
        return False
    common = comp.get_common_status()
    if not relevant_conditions:
        selected = list(common.conditions)
    else:
        by_type = {con.type: con for con in common.conditions}
        selected = []
        for con_type in relevant_conditions:
            con = by_type.get(con_type)
            if con is None:
                return False
            selected.append(con)
    return is_component_ready_raw(
        cp_gen, ic_gen, comp.metadata.generation, common.observed_generations, *selected
    )


def is_dependency_ready(
    dep: ComponentResource | None,
    own_cp_gen: int,
    own_ic_gen: int,
    *relevant_conditions: str,
) -> bool:
    """Readiness of a depended-on component from the perspective of a dependent.

    In addition to ``is_component_ready``, the dependency must have been
    reconciled against the same ManagedControlPlane and InternalConfiguration
    generations the dependent was created from.
    """
    if dep is None:
        return False
    observed = dep.status.observed_generations
    return (
        is_component_ready(dep, *relevant_conditions)
        and observed.managed_control_plane == own_cp_gen
        and observed.internal_configuration == own_ic_gen
    )
