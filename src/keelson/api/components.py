"""Configuration, spec and status schemas of the built-in components."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import Field

from keelson.api.types import CommonComponentStatus, ComponentResource, ComponentType, KubeModel


class RegionSpecification(KubeModel):
    name: str = ""
    direction: str = ""


class SecretReference(KubeModel):
    name: str
    namespace: str = ""
    key: str = ""


# APIServer


class APIServerType(StrEnum):
    GARDENER = "Gardener"
    GARDENER_DEDICATED = "GardenerDedicated"


class GardenerConfiguration(KubeModel):
    region: str = ""
    high_availability: bool = False


class APIServerConfiguration(KubeModel):
    type: APIServerType = APIServerType.GARDENER_DEDICATED
    gardener: GardenerConfiguration | None = None


class APIServerInternalConfiguration(KubeModel):
    gardener: dict[str, Any] = Field(default_factory=dict)


class APIServerSpec(APIServerConfiguration):
    internal: APIServerInternalConfiguration | None = None
    desired_region: RegionSpecification | None = None


class ExternalAPIServerStatus(KubeModel):
    endpoint: str = ""
    service_account_issuer: str = ""


class APIServerAccess(KubeModel):
    kubeconfig: str = ""
    creation_timestamp: datetime | None = None
    expiration_timestamp: datetime | None = None


class APIServerStatus(CommonComponentStatus):
    endpoint: str = ""
    service_account_issuer: str = ""
    admin_access: APIServerAccess | None = None


class APIServer(ComponentResource):
    kind: ClassVar[str] = "APIServer"
    plural: ClassVar[str] = "apiservers"
    component_type: ClassVar[ComponentType] = ComponentType.API_SERVER
    spec_type: ClassVar[type] = APIServerSpec

    spec: APIServerSpec = Field(default_factory=APIServerSpec)
    status: APIServerStatus = Field(default_factory=APIServerStatus)

    def get_external_status(self) -> ExternalAPIServerStatus:
        return ExternalAPIServerStatus(
            endpoint=self.status.endpoint,
            service_account_issuer=self.status.service_account_issuer,
        )


# Authentication


class IdentityProvider(KubeModel):
    name: str
    issuer_url: str
    client_id: str
    username_claim: str = "sub"
    groups_claim: str = "groups"


class AuthenticationConfiguration(KubeModel):
    enable_system_identity_provider: bool | None = None
    identity_providers: list[IdentityProvider] = Field(default_factory=list)


class AuthenticationSpec(AuthenticationConfiguration):
    pass


class ExternalAuthenticationStatus(KubeModel):
    user_access: SecretReference | None = None


class AuthenticationStatus(CommonComponentStatus):
    user_access: SecretReference | None = None


class Authentication(ComponentResource):
    kind: ClassVar[str] = "Authentication"
    plural: ClassVar[str] = "authentications"
    component_type: ClassVar[ComponentType] = ComponentType.AUTHENTICATION
    spec_type: ClassVar[type] = AuthenticationSpec

    spec: AuthenticationSpec = Field(default_factory=AuthenticationSpec)
    status: AuthenticationStatus = Field(default_factory=AuthenticationStatus)

    def get_external_status(self) -> ExternalAuthenticationStatus:
        user_access = self.status.user_access
        return ExternalAuthenticationStatus(
            user_access=user_access.model_copy() if user_access is not None else None
        )


# Authorization


class Subject(KubeModel):
    kind: str
    name: str
    namespace: str = ""


class RoleBinding(KubeModel):
    role: str
    subjects: list[Subject] = Field(default_factory=list)


class AuthorizationConfiguration(KubeModel):
    role_bindings: list[RoleBinding] = Field(default_factory=list)


class AuthorizationSpec(AuthorizationConfiguration):
    pass


class ExternalAuthorizationStatus(KubeModel):
    pass


class AuthorizationStatus(CommonComponentStatus):
    pass


class Authorization(ComponentResource):
    kind: ClassVar[str] = "Authorization"
    plural: ClassVar[str] = "authorizations"
    component_type: ClassVar[ComponentType] = ComponentType.AUTHORIZATION
    spec_type: ClassVar[type] = AuthorizationSpec

    spec: AuthorizationSpec = Field(default_factory=AuthorizationSpec)
    status: AuthorizationStatus = Field(default_factory=AuthorizationStatus)

    def get_external_status(self) -> ExternalAuthorizationStatus:
        return ExternalAuthorizationStatus()


# Landscaper


class LandscaperConfiguration(KubeModel):
    deployers: list[str] = Field(default_factory=list)


class LandscaperSpec(LandscaperConfiguration):
    pass


class ExternalLandscaperStatus(KubeModel):
    deployers: list[str] = Field(default_factory=list)


class LandscaperStatus(CommonComponentStatus):
    deployers: list[str] = Field(default_factory=list)


class Landscaper(ComponentResource):
    kind: ClassVar[str] = "Landscaper"
    plural: ClassVar[str] = "landscapers"
    component_type: ClassVar[ComponentType] = ComponentType.LANDSCAPER
    spec_type: ClassVar[type] = LandscaperSpec

    spec: LandscaperSpec = Field(default_factory=LandscaperSpec)
    status: LandscaperStatus = Field(default_factory=LandscaperStatus)

    def get_external_status(self) -> ExternalLandscaperStatus:
        return ExternalLandscaperStatus(deployers=list(self.status.deployers))


# CloudOrchestrator


class VersionedComponent(KubeModel):
    version: str


class CrossplaneProvider(KubeModel):
    name: str
    version: str


class CrossplaneConfiguration(VersionedComponent):
    providers: list[CrossplaneProvider] = Field(default_factory=list)


class CloudOrchestratorConfiguration(KubeModel):
    crossplane: CrossplaneConfiguration | None = None
    btp_service_operator: VersionedComponent | None = None
    external_secrets_operator: VersionedComponent | None = None

    def is_empty(self) -> bool:
        return (
            self.crossplane is None
            and self.btp_service_operator is None
            and self.external_secrets_operator is None
        )


class CloudOrchestratorSpec(CloudOrchestratorConfiguration):
    pass


class ExternalCloudOrchestratorStatus(KubeModel):
    component_versions: dict[str, str] = Field(default_factory=dict)


class CloudOrchestratorStatus(CommonComponentStatus):
    component_versions: dict[str, str] = Field(default_factory=dict)


class CloudOrchestrator(ComponentResource):
    kind: ClassVar[str] = "CloudOrchestrator"
    plural: ClassVar[str] = "cloudorchestrators"
    component_type: ClassVar[ComponentType] = ComponentType.CLOUD_ORCHESTRATOR
    spec_type: ClassVar[type] = CloudOrchestratorSpec

    spec: CloudOrchestratorSpec = Field(default_factory=CloudOrchestratorSpec)
    status: CloudOrchestratorStatus = Field(default_factory=CloudOrchestratorStatus)

    def get_external_status(self) -> ExternalCloudOrchestratorStatus:
        return ExternalCloudOrchestratorStatus(component_versions=dict(self.status.component_versions))
