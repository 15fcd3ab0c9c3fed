"""The ManagedControlPlane parent resource and its InternalConfiguration."""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar

from pydantic import Field

from keelson.api.components import (
    APIServerConfiguration,
    APIServerInternalConfiguration,
    AuthenticationConfiguration,
    AuthorizationConfiguration,
    CloudOrchestratorConfiguration,
    CrossplaneConfiguration,
    ExternalAPIServerStatus,
    ExternalAuthenticationStatus,
    ExternalAuthorizationStatus,
    ExternalCloudOrchestratorStatus,
    ExternalLandscaperStatus,
    LandscaperConfiguration,
    RegionSpecification,
    VersionedComponent,
)
from keelson.api.types import ComponentCondition, ComponentType, KubeModel, Resource


class ManagedControlPlaneComponents(KubeModel):
    api_server: APIServerConfiguration | None = None
    landscaper: LandscaperConfiguration | None = None

    # CloudOrchestrator configuration is inlined
    crossplane: CrossplaneConfiguration | None = None
    btp_service_operator: VersionedComponent | None = None
    external_secrets_operator: VersionedComponent | None = None

    def cloud_orchestrator(self) -> CloudOrchestratorConfiguration:
        return CloudOrchestratorConfiguration(
            crossplane=self.crossplane,
            btp_service_operator=self.btp_service_operator,
            external_secrets_operator=self.external_secrets_operator,
        )


class ManagedControlPlaneSpec(KubeModel):
    # Resources of disabled components are still generated, but carry the ignore annotation.
    disabled_components: list[ComponentType] = Field(default_factory=list)
    desired_region: RegionSpecification | None = None
    authentication: AuthenticationConfiguration | None = None
    authorization: AuthorizationConfiguration | None = None
    components: ManagedControlPlaneComponents = Field(default_factory=ManagedControlPlaneComponents)


class MCPStatus(StrEnum):
    READY = "Ready"
    NOT_READY = "Not Ready"
    DELETING = "Deleting"


class ManagedControlPlaneComponentCondition(ComponentCondition):
    """A component condition tagged with the component that manages it."""

    managed_by: ComponentType | None = None


class ManagedControlPlaneComponentsStatus(KubeModel):
    api_server: ExternalAPIServerStatus | None = None
    landscaper: ExternalLandscaperStatus | None = None
    cloud_orchestrator: ExternalCloudOrchestratorStatus | None = None
    authentication: ExternalAuthenticationStatus | None = None
    authorization: ExternalAuthorizationStatus | None = None


class ManagedControlPlaneStatus(KubeModel):
    observed_generation: int = 0
    status: MCPStatus | None = None
    message: str = ""
    conditions: list[ManagedControlPlaneComponentCondition] = Field(default_factory=list)
    components: ManagedControlPlaneComponentsStatus = Field(
        default_factory=ManagedControlPlaneComponentsStatus
    )


class ManagedControlPlane(Resource):
    kind: ClassVar[str] = "ManagedControlPlane"
    plural: ClassVar[str] = "managedcontrolplanes"

    spec: ManagedControlPlaneSpec = Field(default_factory=ManagedControlPlaneSpec)
    status: ManagedControlPlaneStatus = Field(default_factory=ManagedControlPlaneStatus)

    def is_disabled(self, component: ComponentType) -> bool:
        return component in self.spec.disabled_components


class InternalComponentsConfiguration(KubeModel):
    api_server: APIServerInternalConfiguration | None = None


class InternalConfigurationSpec(KubeModel):
    components: InternalComponentsConfiguration = Field(
        default_factory=InternalComponentsConfiguration
    )


class InternalConfiguration(Resource):
    """Operator-side configuration for a ManagedControlPlane, same name and namespace."""

    kind: ClassVar[str] = "InternalConfiguration"
    plural: ClassVar[str] = "internalconfigurations"

    spec: InternalConfigurationSpec = Field(default_factory=InternalConfigurationSpec)
