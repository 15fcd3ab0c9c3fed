"""Contracts between the ManagedControlPlane controller and the component kinds."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from keelson.api.managedcontrolplane import (
    InternalConfiguration,
    ManagedControlPlane,
    ManagedControlPlaneStatus,
)
from keelson.api.types import CommonComponentStatus, ComponentType


@runtime_checkable
class Component(Protocol):
    """Resource of a single component kind, as implemented by ComponentResource."""

    def type(self) -> ComponentType: ...

    def get_spec(self) -> Any: ...

    def set_spec(self, cfg: Any) -> None: ...

    def get_common_status(self) -> CommonComponentStatus: ...

    def set_common_status(self, common: CommonComponentStatus) -> None: ...

    def get_external_status(self) -> Any: ...

    def get_required_conditions(self) -> set[str]: ...


@runtime_checkable
class ComponentConverter(Protocol):
    """Translates between a ManagedControlPlane and one component kind."""

    def convert_to_resource_spec(
        self, mcp: ManagedControlPlane, internal_config: InternalConfiguration | None
    ) -> Any:
        """Derive the component's spec from the ManagedControlPlane."""
        ...

    def is_configured(self, mcp: ManagedControlPlane | None) -> bool:
        """Whether the ManagedControlPlane asks for this component at all."""
        ...

    def inject_status(self, external_status: Any, mcp_status: ManagedControlPlaneStatus) -> None:
        """Copy the component's external status into its slot of the ManagedControlPlane status."""
        ...
