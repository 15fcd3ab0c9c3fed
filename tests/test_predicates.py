"""Tests for watch event predicates."""

from keelson.api import APIServer, ComponentCondition, ConditionStatus, ManagedControlPlane
from keelson.api.constants import MCP_GENERATION_LABEL, OPERATION_ANNOTATION
from keelson.reconcile.predicates import (
    default_component_predicates,
    default_parent_predicates,
    generation_changed,
    generation_labels_changed,
    got_annotation,
    labels_changed,
    lost_annotation,
    status_changed,
)
from keelson.store import EventType, WatchEvent


def _update(old, new) -> WatchEvent:
    return WatchEvent(EventType.MODIFIED, new, old)


def _api_server(generation: int = 1, **annotations) -> APIServer:
    obj = APIServer.new("test", "default")
    obj.metadata.generation = generation
    obj.metadata.annotations = dict(annotations)
    return obj


class TestChangePredicates:
    def test_generation_changed(self):
        assert generation_changed(_update(_api_server(1), _api_server(2)))
        assert not generation_changed(_update(_api_server(1), _api_server(1)))

    def test_non_update_events_pass(self):
        assert generation_changed(WatchEvent(EventType.ADDED, _api_server()))
        assert status_changed(WatchEvent(EventType.DELETED, _api_server()))

    def test_labels_changed(self):
        new = _api_server()
        new.metadata.labels["x"] = "y"

        assert labels_changed(_update(_api_server(), new))

    def test_generation_labels_changed(self):
        old, new = _api_server(), _api_server()
        old.metadata.labels[MCP_GENERATION_LABEL] = "1"
        new.metadata.labels[MCP_GENERATION_LABEL] = "2"

        assert generation_labels_changed(_update(old, new))
        assert not generation_labels_changed(_update(old, old))

    def test_status_changed(self):
        new = _api_server()
        new.status.conditions = [ComponentCondition(type="X", status=ConditionStatus.TRUE)]

        assert status_changed(_update(_api_server(), new))
        assert not status_changed(_update(_api_server(), _api_server()))


class TestAnnotationPredicates:
    def test_got_annotation(self):
        pred = got_annotation(OPERATION_ANNOTATION, "reconcile")
        annotated = _api_server(**{OPERATION_ANNOTATION: "reconcile"})

        assert pred(_update(_api_server(), annotated))
        assert not pred(_update(annotated, annotated))
        assert pred(WatchEvent(EventType.ADDED, annotated))

    def test_lost_annotation(self):
        pred = lost_annotation(OPERATION_ANNOTATION, "ignore")
        ignored = _api_server(**{OPERATION_ANNOTATION: "ignore"})

        assert pred(_update(ignored, _api_server()))
        assert not pred(_update(_api_server(), ignored))
        assert not pred(WatchEvent(EventType.ADDED, _api_server()))


class TestDefaultPredicates:
    def test_component_ignored_resource_filtered(self):
        pred = default_component_predicates()
        ignored_v2 = _api_server(2, **{OPERATION_ANNOTATION: "ignore"})

        assert not pred(_update(_api_server(1, **{OPERATION_ANNOTATION: "ignore"}), ignored_v2))
        assert pred(_update(_api_server(1), _api_server(2)))

    def test_component_status_only_change_filtered(self):
        """Status writes of a component do not retrigger its own controller."""
        pred = default_component_predicates()
        new = _api_server()
        new.status.conditions = [ComponentCondition(type="X", status=ConditionStatus.TRUE)]

        assert not pred(_update(_api_server(), new))

    def test_parent_reconcile_annotation(self):
        pred = default_parent_predicates()
        old = ManagedControlPlane.new("test", "default")
        new = old.deep_copy()
        new.metadata.annotations[OPERATION_ANNOTATION] = "reconcile"

        assert pred(_update(old, new))
        assert not pred(_update(old, old.deep_copy()))
