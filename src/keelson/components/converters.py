"""Converters of the built-in component kinds."""

from __future__ import annotations

from typing import Any

from keelson.api.components import (
    APIServerSpec,
    AuthenticationConfiguration,
    AuthenticationSpec,
    AuthorizationSpec,
    CloudOrchestratorSpec,
    ExternalAPIServerStatus,
    ExternalAuthenticationStatus,
    ExternalAuthorizationStatus,
    ExternalCloudOrchestratorStatus,
    ExternalLandscaperStatus,
    LandscaperSpec,
)
from keelson.api.managedcontrolplane import (
    InternalConfiguration,
    ManagedControlPlane,
    ManagedControlPlaneStatus,
)
from keelson.core.errors import KeelsonError, WrongComponentStatusTypeError


class MissingConfigurationError(KeelsonError):
    """Raised when a converter is asked for a spec its ManagedControlPlane does not configure."""


def _check_status(external_status: Any, expected: type) -> None:
    if not isinstance(external_status, expected):
        raise WrongComponentStatusTypeError(
            details={"expected": expected.__name__, "actual": type(external_status).__name__}
        )


class APIServerConverter:
    def convert_to_resource_spec(
        self, mcp: ManagedControlPlane, internal_config: InternalConfiguration | None
    ) -> APIServerSpec:
        config = mcp.spec.components.api_server
        if config is None:
            raise MissingConfigurationError("APIServer configuration is missing")
        spec = APIServerSpec.model_validate(config.model_dump())
        if internal_config is not None and internal_config.spec.components.api_server is not None:
            spec.internal = internal_config.spec.components.api_server.model_copy(deep=True)
        if mcp.spec.desired_region is not None:
            spec.desired_region = mcp.spec.desired_region.model_copy()
        return spec

    def is_configured(self, mcp: ManagedControlPlane | None) -> bool:
        return mcp is not None and mcp.spec.components.api_server is not None

    def inject_status(self, external_status: Any, mcp_status: ManagedControlPlaneStatus) -> None:
        _check_status(external_status, ExternalAPIServerStatus)
        mcp_status.components.api_server = external_status.model_copy(deep=True)


class AuthenticationConverter:
    def convert_to_resource_spec(
        self, mcp: ManagedControlPlane, internal_config: InternalConfiguration | None
    ) -> AuthenticationSpec:
        config = mcp.spec.authentication or AuthenticationConfiguration()
        return AuthenticationSpec.model_validate(config.model_dump())

    def is_configured(self, mcp: ManagedControlPlane | None) -> bool:
        # every APIServer gets an Authentication, configured or not
        return mcp is not None and (
            mcp.spec.authentication is not None or mcp.spec.components.api_server is not None
        )

    def inject_status(self, external_status: Any, mcp_status: ManagedControlPlaneStatus) -> None:
        _check_status(external_status, ExternalAuthenticationStatus)
        mcp_status.components.authentication = external_status.model_copy(deep=True)


class AuthorizationConverter:
    def convert_to_resource_spec(
        self, mcp: ManagedControlPlane, internal_config: InternalConfiguration | None
    ) -> AuthorizationSpec:
        config = mcp.spec.authorization
        if config is None:
            raise MissingConfigurationError("authorization configuration is missing")
        return AuthorizationSpec.model_validate(config.model_dump())

    def is_configured(self, mcp: ManagedControlPlane | None) -> bool:
        return mcp is not None and mcp.spec.authorization is not None

    def inject_status(self, external_status: Any, mcp_status: ManagedControlPlaneStatus) -> None:
        _check_status(external_status, ExternalAuthorizationStatus)
        mcp_status.components.authorization = external_status.model_copy(deep=True)


class LandscaperConverter:
    def convert_to_resource_spec(
        self, mcp: ManagedControlPlane, internal_config: InternalConfiguration | None
    ) -> LandscaperSpec:
        config = mcp.spec.components.landscaper
        if config is None:
            raise MissingConfigurationError("landscaper configuration is missing")
        return LandscaperSpec.model_validate(config.model_dump())

    def is_configured(self, mcp: ManagedControlPlane | None) -> bool:
        return mcp is not None and mcp.spec.components.landscaper is not None

    def inject_status(self, external_status: Any, mcp_status: ManagedControlPlaneStatus) -> None:
        _check_status(external_status, ExternalLandscaperStatus)
        mcp_status.components.landscaper = external_status.model_copy(deep=True)


class CloudOrchestratorConverter:
    def convert_to_resource_spec(
        self, mcp: ManagedControlPlane, internal_config: InternalConfiguration | None
    ) -> CloudOrchestratorSpec:
        config = mcp.spec.components.cloud_orchestrator()
        return CloudOrchestratorSpec.model_validate(config.model_dump())

    def is_configured(self, mcp: ManagedControlPlane | None) -> bool:
        return mcp is not None and not mcp.spec.components.cloud_orchestrator().is_empty()

    def inject_status(self, external_status: Any, mcp_status: ManagedControlPlaneStatus) -> None:
        _check_status(external_status, ExternalCloudOrchestratorStatus)
        mcp_status.components.cloud_orchestrator = external_status.model_copy(deep=True)
