"""Controllers reconciling ManagedControlPlanes and their components."""

from keelson.controllers.component import (
    APIServerReconciler,
    AuthenticationReconciler,
    AuthorizationReconciler,
    CloudOrchestratorReconciler,
    ComponentReconciler,
    LandscaperReconciler,
    component_reconcilers,
)
from keelson.controllers.managedcontrolplane import ManagedControlPlaneController, split_into_components
from keelson.controllers.manager import run_controllers, setup_controllers
from keelson.controllers.runtime import Controller, WorkQueue

__all__ = [
    "APIServerReconciler",
    "AuthenticationReconciler",
    "AuthorizationReconciler",
    "CloudOrchestratorReconciler",
    "ComponentReconciler",
    "Controller",
    "LandscaperReconciler",
    "ManagedControlPlaneController",
    "WorkQueue",
    "component_reconcilers",
    "run_controllers",
    "setup_controllers",
    "split_into_components",
]
