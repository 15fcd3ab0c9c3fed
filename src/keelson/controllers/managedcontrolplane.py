"""
ManagedControlPlane controller.

Splits a ManagedControlPlane into one resource per configured component,
keeps those resources in sync with the parent's spec, folds the conditions
the component controllers report back into the parent's status and tears all
component resources down when the parent is deleted.
"""

from __future__ import annotations

import structlog

from keelson.api.constants import (
    CONDITION_MCP_SUCCESSFUL,
    MCP_FINALIZER,
    MCP_NAME_LABEL,
    MCP_NAMESPACE_LABEL,
    MESSAGE_NO_CONDITIONS,
    OPERATION_ANNOTATION,
    OPERATION_IGNORE,
    OPERATION_RECONCILE,
    REASON_ALL_COMPONENTS_RECONCILED,
    REASON_NO_CONDITIONS,
    REASON_NOT_ALL_COMPONENTS_RECONCILED,
    is_operator_key,
)
from keelson.api.managedcontrolplane import (
    InternalConfiguration,
    ManagedControlPlane,
    ManagedControlPlaneComponentCondition,
    MCPStatus,
)
from keelson.api.types import (
    ComponentCondition,
    ComponentResource,
    ComponentType,
    ConditionStatus,
    ObjectKey,
    owner_reference_index,
    set_controller_reference,
)
from keelson.components.lookup import get_components
from keelson.components.registry import ComponentHandler, ComponentRegistry
from keelson.context import OperatorContext
from keelson.core.errors import (
    AnnotationAlreadyExistsError,
    DuplicateConditionError,
    ErrorList,
    KeelsonError,
    NotFoundError,
    StoreInteractionError,
    WrongComponentStatusTypeError,
    reason_of,
)
from keelson.reconcile.annotations import AnnotationMode, patch_annotation
from keelson.reconcile.conditions import ConditionUpdater
from keelson.reconcile.dependencies import FinalizerSet
from keelson.reconcile.generations import (
    created_from_generation_patch,
    get_created_from_generation,
    set_created_from_generation,
)
from keelson.reconcile.status import Result
from keelson.store.base import create_or_update, get_or_none
from keelson.store.patch import create_merge_patch

logger = structlog.get_logger()

CONTROLLER_NAME = "ManagedControlPlane"


def _wrap(message: str, exc: BaseException) -> KeelsonError:
    """Prefix an error message while keeping the error's reason."""
    wrapped = KeelsonError(f"{message}: {exc}", reason=reason_of(exc) or None)
    wrapped.__cause__ = exc
    return wrapped


def missing_condition(con_type: str) -> ComponentCondition:
    """Placeholder for a component resource that does not report any conditions yet."""
    return ComponentCondition(
        type=con_type,
        status=ConditionStatus.UNKNOWN,
        reason=REASON_NO_CONDITIONS,
        message=MESSAGE_NO_CONDITIONS,
    )


def component_error_from_condition(component: ComponentType, con: ComponentCondition) -> str:
    return f"{component}: [{con.reason}] {con.message}"


def split_into_components(
    registry: ComponentRegistry,
    mcp: ManagedControlPlane,
    internal_config: InternalConfiguration | None,
    add_reconcile_annotation: bool,
) -> dict[ComponentType, ComponentHandler]:
    """Generate the resources of all components the ManagedControlPlane configures.

    Generated resources carry the back-reference and created-from generation
    labels and a controller reference to the ManagedControlPlane. Disabled
    components get the ignore annotation.
    """
    labels = {MCP_NAME_LABEL: mcp.name, MCP_NAMESPACE_LABEL: mcp.namespace}
    result: dict[ComponentType, ComponentHandler] = {}
    for component, handler in registry.get_all().items():
        converter = handler.converter()
        if not converter.is_configured(mcp):
            continue
        resource = handler.resource()
        resource.metadata.name = mcp.name
        resource.metadata.namespace = mcp.namespace

        try:
            spec = converter.convert_to_resource_spec(mcp, internal_config)
        except KeelsonError as exc:
            raise _wrap(
                f"error converting configuration for component '{component}' "
                "into spec for that component's resource",
                exc,
            ) from exc
        resource.set_spec(spec)

        if mcp.is_disabled(component):
            resource.metadata.annotations = {OPERATION_ANNOTATION: OPERATION_IGNORE}
        elif add_reconcile_annotation:
            resource.metadata.annotations = {OPERATION_ANNOTATION: OPERATION_RECONCILE}
        resource.metadata.labels = dict(labels)
        set_created_from_generation(resource, mcp, internal_config)
        set_controller_reference(mcp, resource)
        result[component] = handler
    return result


class _ConditionFold:
    """Folds the conditions of all components into the ManagedControlPlane's condition list."""

    def __init__(self) -> None:
        self.successful = True
        self.component_errors: list[str] = []
        self.component_messages: list[str] = []
        self.conditions: dict[str, ManagedControlPlaneComponentCondition] = {}

    def add(self, component: ComponentType, conditions: list[ComponentCondition], errs: ErrorList) -> None:
        for con in conditions:
            if not con.type or con.type[0].islower():
                # conditions starting with a lowercase letter are not exported
                continue
            if con.type == component.reconciliation_condition():
                if not con.is_true():
                    self.successful = False
                    self.component_errors.append(f"\t{component_error_from_condition(component, con)}")
                elif con.message:
                    message = con.message.replace("\n", "\n\t")
                    self.component_messages.append(f"{component}: {message}")
                continue
            existing = self.conditions.get(con.type)
            if existing is not None and existing.managed_by != component:
                error = DuplicateConditionError(con.type, str(component), str(existing.managed_by))
                logger.error("duplicate_condition", condition=con.type, component=str(component), managed_by=str(existing.managed_by))
                errs.append(error)
                continue
            self.conditions[con.type] = ManagedControlPlaneComponentCondition(
                **con.model_dump(), managed_by=component
            )

    def export(
        self, old_conditions: list[ManagedControlPlaneComponentCondition]
    ) -> list[ManagedControlPlaneComponentCondition]:
        """Sorted component conditions followed by the aggregated MCPSuccessful condition."""
        previous = [con for con in old_conditions if con.type == CONDITION_MCP_SUCCESSFUL]
        updater = ConditionUpdater(
            [ComponentCondition(**con.model_dump(exclude={"managed_by"})) for con in previous], False
        )
        status = ConditionStatus.from_bool(self.successful)
        reason = REASON_ALL_COMPONENTS_RECONCILED
        message = "\n".join(sorted(self.component_messages))
        if not self.successful:
            reason = REASON_NOT_ALL_COMPONENTS_RECONCILED
            message = "The following components could not be reconciled successfully:\n" + "\n".join(
                sorted(self.component_errors)
            )
        updater.update(CONDITION_MCP_SUCCESSFUL, status, reason, message)
        aggregate = updater.conditions()[0]

        result = sorted(self.conditions.values(), key=lambda con: (str(con.managed_by), con.type))
        result.append(ManagedControlPlaneComponentCondition(**aggregate.model_dump()))
        return result


def _merge_operator_keys(current: dict[str, str], generated: dict[str, str]) -> dict[str, str]:
    """Keep foreign keys of ``current``, take all operator-owned keys from ``generated``."""
    merged = {key: value for key, value in current.items() if not is_operator_key(key)}
    merged.update(generated)
    return merged


class ManagedControlPlaneController:
    """Reconciles ManagedControlPlane resources."""

    name = CONTROLLER_NAME

    def __init__(self, ctx: OperatorContext) -> None:
        self.ctx = ctx
        self.store = ctx.store
        self.registry = ctx.registry

    async def reconcile(self, key: ObjectKey) -> Result:
        logger.debug("reconcile_started")
        mcp = await get_or_none(self.store, ManagedControlPlane, key.namespace, key.name)
        if mcp is None:
            logger.debug("resource_not_found")
            return Result()

        had_reconcile_annotation = False
        operation = mcp.metadata.annotations.get(OPERATION_ANNOTATION)
        if operation == OPERATION_IGNORE:
            logger.info("resource_ignored", reason="ignore operation annotation")
            return Result()
        if operation == OPERATION_RECONCILE:
            had_reconcile_annotation = True
            logger.debug("removing_operation_annotation")
            try:
                patched = await patch_annotation(self.store, mcp, OPERATION_ANNOTATION, "", AnnotationMode.DELETE)
            except StoreInteractionError as exc:
                raise _wrap("error removing operation annotation", exc) from exc
            mcp.metadata = patched.metadata

        internal_config = await self._get_internal_configuration(mcp)
        old_status = mcp.status.model_copy(deep=True)

        in_deletion = mcp.is_terminating
        try:
            if not in_deletion:
                logger.info("handling_create_or_update")
                conditions, result, error = await self._handle_create_or_update(
                    mcp, internal_config, had_reconcile_annotation
                )
            else:
                logger.info("handling_deletion")
                conditions, result, error = await self._handle_delete(mcp, had_reconcile_annotation)
        except KeelsonError as exc:
            conditions, result, error = None, Result(), exc

        status = mcp.status
        status.observed_generation = mcp.metadata.generation
        status.status = MCPStatus.READY
        if error is not None:
            status.message = f"reconcile error: {error}"
            status.status = MCPStatus.NOT_READY
        else:
            status.message = ""
        if conditions is not None:
            status.conditions = conditions
            if any(not con.is_true() for con in conditions):
                status.status = MCPStatus.NOT_READY
        if in_deletion:
            status.status = MCPStatus.DELETING

        errs = ErrorList(error)
        if status != old_status:
            target = mcp.deep_copy()
            target.metadata.resource_version = ""
            try:
                await self.store.update_status(target)
            except NotFoundError:
                logger.debug("resource_gone_before_status_update")
            except StoreInteractionError as exc:
                errs.append(_wrap("error updating ManagedControlPlane status", exc))

        aggregated = errs.aggregate()
        if aggregated is not None:
            raise aggregated
        return result

    async def _get_internal_configuration(self, mcp: ManagedControlPlane) -> InternalConfiguration | None:
        try:
            internal_config = await get_or_none(self.store, InternalConfiguration, mcp.namespace, mcp.name)
        except StoreInteractionError as exc:
            raise _wrap(f"error fetching InternalConfiguration '{mcp.key()}'", exc) from exc
        if internal_config is None:
            return None

        logger.debug("internal_configuration_found")
        if owner_reference_index(internal_config, mcp) < 0:
            logger.debug("patching_internal_configuration_owner_reference")
            original = internal_config.to_dict()
            set_controller_reference(mcp, internal_config)
            try:
                internal_config = await self.store.patch(
                    internal_config, create_merge_patch(original, internal_config.to_dict())
                )
            except StoreInteractionError as exc:
                raise _wrap("error patching owner reference on InternalConfiguration object", exc) from exc
        return internal_config

    async def _handle_create_or_update(
        self,
        mcp: ManagedControlPlane,
        internal_config: InternalConfiguration | None,
        had_reconcile_annotation: bool,
    ) -> tuple[list[ManagedControlPlaneComponentCondition], Result, KeelsonError | None]:
        finalizers = FinalizerSet(mcp.metadata.finalizers)
        if finalizers.add(MCP_FINALIZER):
            logger.debug("adding_finalizer", finalizer=MCP_FINALIZER)
            try:
                patched = await self.store.patch(mcp, {"metadata": {"finalizers": finalizers.to_list()}})
            except StoreInteractionError as exc:
                raise _wrap("error adding finalizer", exc) from exc
            mcp.metadata = patched.metadata

        all_handlers = self.registry.get_all()
        try:
            current = await get_components(self.registry, self.store, mcp.namespace, mcp.name)
        except StoreInteractionError as exc:
            raise _wrap("error fetching current components", exc) from exc
        generated = split_into_components(self.registry, mcp, internal_config, had_reconcile_annotation)
        logger.info(
            "generated_and_existing_components",
            generated=sorted(str(ct) for ct in generated),
            existing=sorted(str(ct) for ct in current),
        )

        errs = ErrorList()
        fold = _ConditionFold()
        for component, fresh in all_handlers.items():
            log = logger.bind(component=str(component))
            existing = current.get(component)
            desired = generated.get(component)

            conditions: list[ComponentCondition] = []
            if existing is not None:
                conditions = existing.resource().status.conditions
            if not conditions and desired is not None:
                conditions = [missing_condition(str(component))]
            fold.add(component, conditions, errs)

            if existing is None and desired is None:
                continue
            if desired is None:
                await self._remove_component(existing.resource(), mcp, internal_config, had_reconcile_annotation, errs, log)
                continue

            handler = existing if existing is not None else fresh
            target = handler.resource()
            if existing is None:
                log.debug("creating_component_resource")
                target.metadata.name = desired.resource().name
                target.metadata.namespace = desired.resource().namespace
            else:
                log.debug("updating_component_resource")
            try:
                stored, _ = await create_or_update(
                    self.store, target, lambda obj: self._apply_generated(obj, desired.resource())
                )
            except KeelsonError as exc:
                errs.append(_wrap(f"error creating/updating component resource for component '{component}'", exc))
                stored = target

            try:
                handler.converter().inject_status(stored.get_external_status(), mcp.status)
            except WrongComponentStatusTypeError as exc:
                log.error("status_injection_failed", error=str(exc))
                errs.append(
                    _wrap(f"internal error transferring status of component '{component}' into ManagedControlPlane", exc)
                )

        return fold.export(mcp.status.conditions), Result(), errs.aggregate()

    @staticmethod
    def _apply_generated(obj: ComponentResource, generated: ComponentResource) -> None:
        current_annotations = obj.metadata.annotations
        leftover_ignore = current_annotations.get(OPERATION_ANNOTATION) == OPERATION_IGNORE
        generated_annotations = generated.metadata.annotations
        annotations = _merge_operator_keys(current_annotations, generated_annotations)
        if leftover_ignore and generated_annotations.get(OPERATION_ANNOTATION) != OPERATION_IGNORE:
            # removing the annotation alone would not trigger the component's controller
            annotations[OPERATION_ANNOTATION] = OPERATION_RECONCILE
        obj.metadata.annotations = annotations
        obj.metadata.labels = _merge_operator_keys(obj.metadata.labels, generated.metadata.labels)
        obj.metadata.owner_references = [ref.model_copy() for ref in generated.metadata.owner_references]
        obj.set_spec(generated.get_spec())

    async def _remove_component(
        self,
        resource: ComponentResource,
        mcp: ManagedControlPlane,
        internal_config: InternalConfiguration | None,
        had_reconcile_annotation: bool,
        errs: ErrorList,
        log,
    ) -> None:
        if resource.is_terminating:
            log.debug("component_not_desired_already_terminating")
        else:
            log.debug("component_not_desired_deleting")
            try:
                await self.store.delete(resource)
            except NotFoundError:
                pass
            except StoreInteractionError as exc:
                errs.append(exc)

        try:
            cp_gen, ic_gen = get_created_from_generation(resource)
            outdated = (
                cp_gen != mcp.metadata.generation
                or (internal_config is None and ic_gen != -1)
                or (internal_config is not None and ic_gen != internal_config.metadata.generation)
            )
        except KeelsonError as exc:
            log.error("invalid_created_from_labels", error=str(exc))
            outdated = True
        if outdated:
            log.debug("patching_outdated_generation_labels")
            try:
                await self.store.patch(
                    resource, created_from_generation_patch(mcp, internal_config, had_reconcile_annotation)
                )
            except NotFoundError:
                pass
            except StoreInteractionError as exc:
                errs.append(exc)

    async def _handle_delete(
        self, mcp: ManagedControlPlane, had_reconcile_annotation: bool
    ) -> tuple[list[ManagedControlPlaneComponentCondition] | None, Result, KeelsonError | None]:
        try:
            current = await get_components(self.registry, self.store, mcp.namespace, mcp.name)
        except StoreInteractionError as exc:
            raise _wrap("error fetching current components", exc) from exc

        if not current:
            logger.info("all_components_deleted")
            finalizers = FinalizerSet(mcp.metadata.finalizers)
            if finalizers.remove(MCP_FINALIZER):
                try:
                    await self.store.patch(mcp, {"metadata": {"finalizers": finalizers.to_list()}})
                except NotFoundError:
                    pass
                except StoreInteractionError as exc:
                    raise _wrap("error removing finalizer from ManagedControlPlane", exc) from exc
            return None, Result(), None

        logger.info("deleting_remaining_components", existing=sorted(str(ct) for ct in current))
        errs = ErrorList()
        fold = _ConditionFold()
        for component, handler in current.items():
            resource = handler.resource()
            if not resource.is_terminating:
                try:
                    await self.store.delete(resource)
                except NotFoundError:
                    pass
                except StoreInteractionError as exc:
                    errs.append(_wrap(f"error deleting resource for component '{component}'", exc))
            if had_reconcile_annotation:
                try:
                    await patch_annotation(self.store, resource, OPERATION_ANNOTATION, OPERATION_RECONCILE)
                except AnnotationAlreadyExistsError:
                    pass
                except NotFoundError:
                    pass
                except StoreInteractionError as exc:
                    errs.append(
                        _wrap(f"error patching reconcile operation annotation on resource for component '{component}'", exc)
                    )

            fold.add(component, resource.status.conditions, errs)
            try:
                handler.converter().inject_status(resource.get_external_status(), mcp.status)
            except WrongComponentStatusTypeError as exc:
                logger.error("status_injection_failed", component=str(component), error=str(exc))
                errs.append(
                    _wrap(f"internal error transferring status of component '{component}' into ManagedControlPlane", exc)
                )

        result = Result(requeue_after=self.ctx.settings.deletion_requeue_seconds)
        return fold.export(mcp.status.conditions), result, errs.aggregate()
