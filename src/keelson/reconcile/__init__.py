"""Reconciliation building blocks shared by all controllers."""

from keelson.reconcile.annotations import AnnotationMode, patch_annotation
from keelson.reconcile.conditions import (
    ConditionUpdater,
    all_conditions_true,
    get_condition,
    new_condition,
)
from keelson.reconcile.dependencies import (
    FinalizerSet,
    ensure_dependency_finalizer,
    get_dependents,
    has_any_dependency_finalizer,
    has_dependency_finalizer,
)
from keelson.reconcile.generations import (
    created_from_generation_patch,
    get_created_from_generation,
    is_component_ready,
    is_component_ready_raw,
    is_dependency_ready,
    set_created_from_generation,
)
from keelson.reconcile.status import ReconcileResult, Result, update_status

__all__ = [
    "AnnotationMode",
    "ConditionUpdater",
    "FinalizerSet",
    "ReconcileResult",
    "Result",
    "all_conditions_true",
    "created_from_generation_patch",
    "ensure_dependency_finalizer",
    "get_condition",
    "get_created_from_generation",
    "get_dependents",
    "has_any_dependency_finalizer",
    "has_dependency_finalizer",
    "is_component_ready",
    "is_component_ready_raw",
    "is_dependency_ready",
    "new_condition",
    "patch_annotation",
    "set_created_from_generation",
    "update_status",
]
