"""Resource schemas of the core.openmcp.cloud/v1alpha1 API."""

from keelson.api.components import (
    APIServer,
    APIServerAccess,
    APIServerConfiguration,
    APIServerSpec,
    APIServerStatus,
    Authentication,
    AuthenticationConfiguration,
    AuthenticationSpec,
    Authorization,
    AuthorizationConfiguration,
    AuthorizationSpec,
    CloudOrchestrator,
    CloudOrchestratorSpec,
    CrossplaneConfiguration,
    Landscaper,
    LandscaperConfiguration,
    LandscaperSpec,
)
from keelson.api.managedcontrolplane import (
    InternalComponentsConfiguration,
    InternalConfiguration,
    InternalConfigurationSpec,
    ManagedControlPlane,
    ManagedControlPlaneComponentCondition,
    ManagedControlPlaneComponents,
    ManagedControlPlaneSpec,
    ManagedControlPlaneStatus,
    MCPStatus,
)
from keelson.api.types import (
    CommonComponentStatus,
    ComponentCondition,
    ComponentResource,
    ComponentType,
    ConditionStatus,
    LabelSelector,
    ObjectKey,
    ObjectMeta,
    ObservedGenerations,
    OwnerReference,
    Resource,
)

__all__ = [
    "APIServer",
    "APIServerAccess",
    "APIServerConfiguration",
    "APIServerSpec",
    "APIServerStatus",
    "Authentication",
    "AuthenticationConfiguration",
    "AuthenticationSpec",
    "Authorization",
    "AuthorizationConfiguration",
    "AuthorizationSpec",
    "CloudOrchestrator",
    "CloudOrchestratorSpec",
    "CommonComponentStatus",
    "ComponentCondition",
    "ComponentResource",
    "ComponentType",
    "ConditionStatus",
    "CrossplaneConfiguration",
    "InternalComponentsConfiguration",
    "InternalConfiguration",
    "InternalConfigurationSpec",
    "LabelSelector",
    "Landscaper",
    "LandscaperConfiguration",
    "LandscaperSpec",
    "MCPStatus",
    "ManagedControlPlane",
    "ManagedControlPlaneComponentCondition",
    "ManagedControlPlaneComponents",
    "ManagedControlPlaneSpec",
    "ManagedControlPlaneStatus",
    "ObjectKey",
    "ObjectMeta",
    "ObservedGenerations",
    "OwnerReference",
    "Resource",
]
