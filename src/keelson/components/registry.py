"""Catalog of the component kinds a ManagedControlPlane consists of."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from keelson.api.components import APIServer, Authentication, Authorization, CloudOrchestrator, Landscaper
from keelson.api.constants import is_admin_role, is_cluster_scoped_role
from keelson.api.types import ComponentResource, ComponentType, LabelSelector
from keelson.components.base import ComponentConverter
from keelson.components.converters import (
    APIServerConverter,
    AuthenticationConverter,
    AuthorizationConverter,
    CloudOrchestratorConverter,
    LandscaperConverter,
)

LabelSelectorFunc = Callable[[str], list[LabelSelector]]

LANDSCAPER_NAMESPACE_SCOPED_ADMIN_MATCH_LABEL = "rbac.landscaper.gardener.cloud/aggregate-to-admin"
LANDSCAPER_NAMESPACE_SCOPED_VIEW_MATCH_LABEL = "rbac.landscaper.gardener.cloud/aggregate-to-view"
CROSSPLANE_CLUSTER_SCOPED_ADMIN_MATCH_LABEL = "rbac.crossplane.io/aggregate-to-admin"
CROSSPLANE_CLUSTER_SCOPED_VIEW_MATCH_LABEL = "rbac.crossplane.io/aggregate-to-view"
CLOUD_ORCHESTRATOR_CLUSTER_SCOPED_ADMIN_MATCH_LABEL = "core.orchestrate.cloud.sap/aggregate-to-admin"
CLOUD_ORCHESTRATOR_CLUSTER_SCOPED_VIEW_MATCH_LABEL = "core.orchestrate.cloud.sap/aggregate-to-view"
MATCH_LABEL_VALUE = "true"


@dataclass
class ComponentHandler:
    """Fresh resource object plus the converter of one component kind."""

    _resource: ComponentResource
    _converter: ComponentConverter
    aggregation_label_selectors: LabelSelectorFunc | None = field(default=None, repr=False)

    def resource(self) -> ComponentResource:
        return self._resource

    def set_resource(self, resource: ComponentResource) -> None:
        self._resource = resource

    def converter(self) -> ComponentConverter:
        return self._converter

    def label_selectors_for_role(self, role_name: str) -> list[LabelSelector]:
        """Label selectors of ClusterRoles to aggregate into the given openmcp role."""
        if self.aggregation_label_selectors is None:
            return []
        return self.aggregation_label_selectors(role_name)


HandlerFactory = Callable[[], ComponentHandler]


class ComponentRegistry:
    """Registry of component kinds.

    Every lookup calls the registered factory, so callers always get fresh
    resource objects they are free to mutate.
    """

    def __init__(self) -> None:
        self._factories: dict[ComponentType, HandlerFactory] = {}

    def register(self, component: ComponentType, factory: HandlerFactory | None) -> None:
        """Register a factory for ``component``; a None factory unregisters it."""
        if factory is None:
            self._factories.pop(component, None)
            return
        self._factories[component] = factory

    def get(self, component: ComponentType) -> ComponentHandler | None:
        factory = self._factories.get(component)
        if factory is None:
            return None
        return factory()

    def get_all(self) -> dict[ComponentType, ComponentHandler]:
        """Fresh handlers for all known components, in registration order."""
        return {component: factory() for component, factory in self._factories.items()}

    def has(self, component: ComponentType) -> bool:
        return component in self._factories

    def types(self) -> list[ComponentType]:
        return list(self._factories)


def _selector(label: str) -> LabelSelector:
    return LabelSelector(match_labels={label: MATCH_LABEL_VALUE})


def landscaper_label_selectors(role_name: str) -> list[LabelSelector]:
    if is_cluster_scoped_role(role_name):
        return []
    if is_admin_role(role_name):
        return [_selector(LANDSCAPER_NAMESPACE_SCOPED_ADMIN_MATCH_LABEL)]
    return [_selector(LANDSCAPER_NAMESPACE_SCOPED_VIEW_MATCH_LABEL)]


def cloud_orchestrator_label_selectors(role_name: str) -> list[LabelSelector]:
    if not is_cluster_scoped_role(role_name):
        return []
    if is_admin_role(role_name):
        return [
            _selector(CROSSPLANE_CLUSTER_SCOPED_ADMIN_MATCH_LABEL),
            _selector(CLOUD_ORCHESTRATOR_CLUSTER_SCOPED_ADMIN_MATCH_LABEL),
        ]
    return [
        _selector(CROSSPLANE_CLUSTER_SCOPED_VIEW_MATCH_LABEL),
        _selector(CLOUD_ORCHESTRATOR_CLUSTER_SCOPED_VIEW_MATCH_LABEL),
    ]


def default_registry() -> ComponentRegistry:
    """Registry with the built-in component kinds."""
    registry = ComponentRegistry()
    registry.register(
        ComponentType.API_SERVER,
        lambda: ComponentHandler(APIServer(), APIServerConverter()),
    )
    registry.register(
        ComponentType.LANDSCAPER,
        lambda: ComponentHandler(Landscaper(), LandscaperConverter(), landscaper_label_selectors),
    )
    registry.register(
        ComponentType.CLOUD_ORCHESTRATOR,
        lambda: ComponentHandler(
            CloudOrchestrator(), CloudOrchestratorConverter(), cloud_orchestrator_label_selectors
        ),
    )
    registry.register(
        ComponentType.AUTHENTICATION,
        lambda: ComponentHandler(Authentication(), AuthenticationConverter()),
    )
    registry.register(
        ComponentType.AUTHORIZATION,
        lambda: ComponentHandler(Authorization(), AuthorizationConverter()),
    )
    return registry
