"""Object metadata, conditions and the common component resource model."""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, ClassVar, NamedTuple, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from keelson.api.constants import BASE_DOMAIN, DEPENDENCY_FINALIZER_PREFIX
from keelson.core.errors import WrongComponentConfigTypeError


def utc_now() -> datetime:
    """Current time truncated to seconds, the precision timestamps are stored with."""
    return datetime.now(timezone.utc).replace(microsecond=0)


class KubeModel(BaseModel):
    """Base model serialising to the camelCase JSON used by the object store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ComponentType(StrEnum):
    """The closed set of component kinds a ManagedControlPlane consists of."""

    API_SERVER = "APIServer"
    AUTHENTICATION = "Authentication"
    AUTHORIZATION = "Authorization"
    LANDSCAPER = "Landscaper"
    CLOUD_ORCHESTRATOR = "CloudOrchestrator"

    def finalizer(self) -> str:
        """Finalizer the component's controller sets on its own resources."""
        return f"{self.value.lower()}.{BASE_DOMAIN}"

    def dependency_finalizer(self) -> str:
        """Finalizer the component puts on the resources it depends on."""
        return f"{DEPENDENCY_FINALIZER_PREFIX}{self.value.lower()}"

    def reconciliation_condition(self) -> str:
        return f"{self.value}Reconciliation"

    def healthy_condition(self) -> str:
        return f"{self.value}Healthy"


class ConditionStatus(StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"

    @classmethod
    def from_bool(cls, value: bool | None) -> ConditionStatus:
        if value is None:
            return cls.UNKNOWN
        return cls.TRUE if value else cls.FALSE


class ComponentCondition(KubeModel):
    """A typed, timestamped status signal.

    The type is globally unique, each type is expected to be managed by
    exactly one component controller.
    """

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = None

    def is_true(self) -> bool:
        return self.status == ConditionStatus.TRUE

    def is_false(self) -> bool:
        return self.status == ConditionStatus.FALSE

    def is_unknown(self) -> bool:
        return self.status == ConditionStatus.UNKNOWN


class ObservedGenerations(KubeModel):
    """Generations a component's controller had processed at its last status write.

    ``internal_configuration`` is -1 when no InternalConfiguration exists.
    """

    resource: int = 0
    managed_control_plane: int = 0
    internal_configuration: int = 0


class CommonComponentStatus(KubeModel):
    """Status fields every component resource has in common."""

    conditions: list[ComponentCondition] = Field(default_factory=list)
    observed_generations: ObservedGenerations = Field(default_factory=ObservedGenerations)


class OwnerReference(KubeModel):
    api_version: str
    kind: str
    name: str
    uid: str = ""
    controller: bool | None = None
    block_owner_deletion: bool | None = None


class LabelSelector(KubeModel):
    match_labels: dict[str, str] = Field(default_factory=dict)


class ObjectMeta(KubeModel):
    name: str = ""
    namespace: str = ""
    uid: str = ""
    generation: int = 0
    resource_version: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    finalizers: list[str] = Field(default_factory=list)
    owner_references: list[OwnerReference] = Field(default_factory=list)
    creation_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None


class ObjectKey(NamedTuple):
    namespace: str
    name: str

    def __str__(self) -> str:
        if not self.namespace:
            return self.name
        return f"{self.namespace}/{self.name}"


class Resource(KubeModel):
    """An object kept in the versioned object store."""

    group: ClassVar[str] = "core.openmcp.cloud"
    version: ClassVar[str] = "v1alpha1"
    kind: ClassVar[str] = ""
    plural: ClassVar[str] = ""

    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    @classmethod
    def api_version(cls) -> str:
        if not cls.group:
            return cls.version
        return f"{cls.group}/{cls.version}"

    @classmethod
    def new(cls, name: str, namespace: str = "", **fields: Any):
        return cls(metadata=ObjectMeta(name=name, namespace=namespace), **fields)

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        return cls.model_validate(data)

    def to_dict(self) -> dict[str, Any]:
        data = self.to_json_dict()
        return {"apiVersion": self.api_version(), "kind": self.kind, **data}

    def key(self) -> ObjectKey:
        return ObjectKey(self.metadata.namespace, self.metadata.name)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def is_terminating(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def deep_copy(self):
        return self.model_copy(deep=True)


def controller_reference(owner: Resource) -> OwnerReference:
    """Owner reference marking ``owner`` as the managing controller of another object."""
    return OwnerReference(
        api_version=owner.api_version(),
        kind=owner.kind,
        name=owner.name,
        uid=owner.metadata.uid,
        controller=True,
        block_owner_deletion=True,
    )


def owner_reference_index(obj: Resource, owner: Resource) -> int:
    """Index of the owner reference pointing to ``owner``, or -1."""
    for idx, ref in enumerate(obj.metadata.owner_references):
        if ref.kind == owner.kind and ref.name == owner.name and ref.api_version == owner.api_version():
            return idx
    return -1


def set_controller_reference(owner: Resource, obj: Resource) -> None:
    """Make ``owner`` the controller of ``obj``, replacing any previous controller reference."""
    refs = [ref for ref in obj.metadata.owner_references if not ref.controller]
    refs.append(controller_reference(owner))
    obj.metadata.owner_references = refs


class ComponentResource(Resource):
    """Base model for the per-component child resources.

    Subclasses bind ``component_type`` and ``spec_type``, declare concrete
    ``spec`` and ``status`` fields and implement ``get_external_status``.
    ``status`` always extends CommonComponentStatus.
    """

    component_type: ClassVar[ComponentType]
    spec_type: ClassVar[Type[BaseModel]]

    spec: Any = None
    status: CommonComponentStatus = Field(default_factory=CommonComponentStatus)

    def type(self) -> ComponentType:
        return self.component_type

    def get_spec(self) -> Any:
        return self.spec

    def set_spec(self, cfg: Any) -> None:
        """Pass a spec generated from the ManagedControlPlane into this resource."""
        if not isinstance(cfg, self.spec_type):
            raise WrongComponentConfigTypeError(
                details={
                    "component": str(self.component_type),
                    "expected": self.spec_type.__name__,
                    "actual": type(cfg).__name__,
                }
            )
        self.spec = cfg.model_copy(deep=True)

    def get_common_status(self) -> CommonComponentStatus:
        return CommonComponentStatus(
            conditions=[con.model_copy() for con in self.status.conditions],
            observed_generations=self.status.observed_generations.model_copy(),
        )

    def set_common_status(self, common: CommonComponentStatus) -> None:
        self.status.conditions = [con.model_copy() for con in common.conditions]
        self.status.observed_generations = common.observed_generations.model_copy()

    @abstractmethod
    def get_external_status(self) -> Any:
        """Component-specific status that is injected into the ManagedControlPlane."""

    def get_required_conditions(self) -> set[str]:
        """Condition types that must be present; missing ones are reported as Unknown."""
        return {self.component_type.healthy_condition()}
