"""Tests for created-from generation bookkeeping and readiness checks."""

import pytest

from keelson.api import APIServer, ComponentCondition, ConditionStatus, InternalConfiguration, ManagedControlPlane
from keelson.api.constants import IC_GENERATION_LABEL, MCP_GENERATION_LABEL, OPERATION_ANNOTATION
from keelson.api.types import ObservedGenerations
from keelson.core.errors import InvalidGenerationLabelError, MissingGenerationLabelError
from keelson.reconcile.generations import (
    created_from_generation_patch,
    get_created_from_generation,
    is_component_ready,
    is_component_ready_raw,
    is_dependency_ready,
    set_created_from_generation,
)


def _owner(generation: int) -> ManagedControlPlane:
    mcp = ManagedControlPlane.new("test", "default")
    mcp.metadata.generation = generation
    return mcp


def _internal_config(generation: int) -> InternalConfiguration:
    ic = InternalConfiguration.new("test", "default")
    ic.metadata.generation = generation
    return ic


def _ready_api_server(cp_gen: int = 3, ic_gen: int = -1, generation: int = 2) -> APIServer:
    comp = APIServer.new("test", "default")
    comp.metadata.generation = generation
    comp.metadata.labels[MCP_GENERATION_LABEL] = str(cp_gen)
    if ic_gen >= 0:
        comp.metadata.labels[IC_GENERATION_LABEL] = str(ic_gen)
    comp.status.observed_generations = ObservedGenerations(
        resource=generation, managed_control_plane=cp_gen, internal_configuration=ic_gen
    )
    comp.status.conditions = [
        ComponentCondition(type="APIServerHealthy", status=ConditionStatus.TRUE),
        ComponentCondition(type="APIServerReconciliation", status=ConditionStatus.TRUE),
    ]
    return comp


class TestCreatedFromGeneration:
    """Tests for stamping and reading the generation labels."""

    def test_set_then_get(self):
        """Labels written by set_created_from_generation are read back."""
        comp = APIServer.new("test", "default")

        set_created_from_generation(comp, _owner(4), _internal_config(7))

        assert get_created_from_generation(comp) == (4, 7)

    def test_missing_internal_configuration_clears_label(self):
        """Without an InternalConfiguration the ic label is removed and read as -1."""
        comp = APIServer.new("test", "default")
        comp.metadata.labels[IC_GENERATION_LABEL] = "9"

        set_created_from_generation(comp, _owner(4), None)

        assert IC_GENERATION_LABEL not in comp.metadata.labels
        assert get_created_from_generation(comp) == (4, -1)

    def test_missing_owner_label(self):
        """A missing owner-generation label raises MissingGenerationLabelError."""
        comp = APIServer.new("test", "default")

        with pytest.raises(MissingGenerationLabelError):
            get_created_from_generation(comp)

    @pytest.mark.parametrize("label", [MCP_GENERATION_LABEL, IC_GENERATION_LABEL])
    def test_unparsable_label(self, label):
        """Non-integer label values raise InvalidGenerationLabelError."""
        comp = APIServer.new("test", "default")
        comp.metadata.labels[MCP_GENERATION_LABEL] = "1"
        comp.metadata.labels[label] = "abc"

        with pytest.raises(InvalidGenerationLabelError) as exc_info:
            get_created_from_generation(comp)

        assert exc_info.value.label == label
        assert exc_info.value.reason == "InvalidManagedControlPlaneLabels"

    def test_patch_without_internal_configuration(self):
        """The patch deletes the ic label when no InternalConfiguration exists."""
        patch = created_from_generation_patch(_owner(5), None)

        assert patch == {"metadata": {"labels": {MCP_GENERATION_LABEL: "5", IC_GENERATION_LABEL: None}}}

    def test_patch_with_reconcile_annotation(self):
        """The patch optionally carries the reconcile annotation."""
        patch = created_from_generation_patch(_owner(5), _internal_config(2), True)

        assert patch["metadata"]["labels"][IC_GENERATION_LABEL] == "2"
        assert patch["metadata"]["annotations"] == {OPERATION_ANNOTATION: "reconcile"}

    def test_patch_without_owner(self):
        patch = created_from_generation_patch(None, None)

        assert patch["metadata"]["labels"][MCP_GENERATION_LABEL] == "-1"


class TestReadiness:
    """Tests for the readiness checks."""

    def test_raw_matching_generations_and_true_conditions(self):
        observed = ObservedGenerations(resource=2, managed_control_plane=3, internal_configuration=-1)
        con = ComponentCondition(type="Ready", status=ConditionStatus.TRUE)

        assert is_component_ready_raw(3, -1, 2, observed, con)

    def test_raw_negative_resource_generation_is_ignored(self):
        observed = ObservedGenerations(resource=2, managed_control_plane=3, internal_configuration=-1)

        assert is_component_ready_raw(3, -1, -1, observed)

    @pytest.mark.parametrize(
        "cp_gen, ic_gen, resource_gen",
        [(4, -1, 2), (3, 0, 2), (3, -1, 5)],
    )
    def test_raw_stale_generation(self, cp_gen, ic_gen, resource_gen):
        """Any mismatching generation makes the component not ready."""
        observed = ObservedGenerations(resource=2, managed_control_plane=3, internal_configuration=-1)

        assert not is_component_ready_raw(cp_gen, ic_gen, resource_gen, observed)

    def test_raw_false_condition(self):
        observed = ObservedGenerations(resource=2, managed_control_plane=3, internal_configuration=-1)
        con = ComponentCondition(type="Ready", status=ConditionStatus.UNKNOWN)

        assert not is_component_ready_raw(3, -1, 2, observed, con)

    def test_component_ready(self):
        assert is_component_ready(_ready_api_server())
        assert is_component_ready(_ready_api_server(), "APIServerHealthy")

    def test_component_stale_after_owner_bump(self):
        """A new created-from generation without a matching status write means not ready."""
        comp = _ready_api_server()
        comp.metadata.labels[MCP_GENERATION_LABEL] = "4"

        assert not is_component_ready(comp)

    def test_component_missing_relevant_condition(self):
        assert not is_component_ready(_ready_api_server(), "SomethingElse")

    def test_component_without_labels(self):
        comp = _ready_api_server()
        comp.metadata.labels.clear()

        assert not is_component_ready(comp)
        assert not is_component_ready(None)

    def test_dependency_ready_requires_same_owner_generation(self):
        dep = _ready_api_server(cp_gen=3)

        assert is_dependency_ready(dep, 3, -1)
        assert not is_dependency_ready(dep, 4, -1)
        assert not is_dependency_ready(None, 3, -1)
