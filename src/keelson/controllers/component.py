"""
Dependency-aware lifecycle shared by all component controllers.

A component controller waits until the components it depends on are ready,
protects them with its dependency finalizer while it exists and releases
them again once its own teardown is done. A component that others depend on
cannot finish its deletion while their dependency finalizers are present.
"""

from __future__ import annotations

from typing import ClassVar, Type

import structlog

from keelson.api.components import APIServer, Authentication, Authorization, CloudOrchestrator, Landscaper
from keelson.api.constants import (
    MESSAGE_COMPONENT_IS_IN_DELETION,
    OPERATION_ANNOTATION,
    OPERATION_IGNORE,
    OPERATION_RECONCILE,
    REASON_COMPONENT_IS_IN_DELETION,
    REASON_DELETION_WAITING_FOR_DEPENDING_COMPONENTS,
    REASON_DEPENDENCY_STATUS_INVALID,
    REASON_WAITING_FOR_DEPENDENCIES,
)
from keelson.api.types import ComponentCondition, ComponentResource, ComponentType, ConditionStatus, ObjectKey
from keelson.context import OperatorContext
from keelson.core.errors import (
    InvalidGenerationLabelError,
    KeelsonError,
    MissingGenerationLabelError,
    NotFoundError,
    StoreInteractionError,
)
from keelson.logging import bind_context
from keelson.reconcile.annotations import AnnotationMode, patch_annotation
from keelson.reconcile.conditions import new_condition
from keelson.reconcile.dependencies import (
    FinalizerSet,
    ensure_dependency_finalizer,
    get_dependents,
    has_any_dependency_finalizer,
)
from keelson.reconcile.generations import get_created_from_generation, is_dependency_ready
from keelson.reconcile.status import ReconcileResult, Result, update_status
from keelson.store.base import get_or_none

logger = structlog.get_logger()


def _store_error(message: str, exc: StoreInteractionError) -> StoreInteractionError:
    wrapped = StoreInteractionError(f"{message}: {exc}", exc.details)
    wrapped.__cause__ = exc
    return wrapped


class ComponentReconciler:
    """Base class of the component controllers.

    ``dependencies`` must be ready before the component is reconciled and get
    the component's dependency finalizer. ``soft_dependencies`` only get the
    finalizer, and only if they exist. Subclasses implement ``apply`` and,
    if removing the component takes more than dropping its finalizers,
    ``teardown``.
    """

    resource_type: ClassVar[Type[ComponentResource]]
    dependencies: ClassVar[tuple[ComponentType, ...]] = ()
    soft_dependencies: ClassVar[tuple[ComponentType, ...]] = ()

    def __init__(self, ctx: OperatorContext) -> None:
        self.ctx = ctx
        self.store = ctx.store

    @property
    def component_type(self) -> ComponentType:
        return self.resource_type.component_type

    @property
    def name(self) -> str:
        return str(self.component_type)

    async def apply(
        self, comp: ComponentResource, deps: dict[ComponentType, ComponentResource]
    ) -> list[ComponentCondition]:
        """Bring the component into its desired state and return its conditions."""
        return [new_condition(self.component_type.healthy_condition(), ConditionStatus.TRUE)]

    async def teardown(self, comp: ComponentResource) -> bool:
        """Remove whatever the component created; True once nothing is left."""
        return True

    async def reconcile(self, key: ObjectKey) -> Result:
        log = bind_context(component=self.name)
        log.debug("reconcile_started")
        comp = await get_or_none(self.store, self.resource_type, key.namespace, key.name)
        if comp is None:
            log.debug("resource_not_found")
            return Result()

        operation = comp.metadata.annotations.get(OPERATION_ANNOTATION)
        if operation == OPERATION_IGNORE:
            log.info("resource_ignored", reason="ignore operation annotation")
            return Result()
        if operation == OPERATION_RECONCILE:
            log.debug("removing_operation_annotation")
            try:
                patched = await patch_annotation(self.store, comp, OPERATION_ANNOTATION, "", AnnotationMode.DELETE)
            except StoreInteractionError as exc:
                raise _store_error("error removing operation annotation", exc) from exc
            comp.metadata = patched.metadata

        rr: ReconcileResult[ComponentResource] = ReconcileResult(component=comp, old_component=comp.deep_copy())
        try:
            if comp.is_terminating:
                log.info("handling_deletion")
                await self._handle_delete(rr)
            else:
                log.info("handling_create_or_update")
                await self._handle_create_or_update(rr)
        except KeelsonError as exc:
            log.warning("component_reconcile_error", error=str(exc), reason=exc.reason)
            rr.reconcile_error = exc

        result, error = await update_status(self.store, rr)
        if error is not None:
            raise error
        return result

    def _resource_type_of(self, component: ComponentType) -> type[ComponentResource] | None:
        handler = self.ctx.registry.get(component)
        if handler is None:
            return None
        return type(handler.resource())

    async def _fetch(self, component: ComponentType, comp: ComponentResource) -> ComponentResource | None:
        cls = self._resource_type_of(component)
        if cls is None:
            return None
        try:
            return await get_or_none(self.store, cls, comp.namespace, comp.name)
        except StoreInteractionError as exc:
            raise _store_error(f"error fetching {component} resource", exc) from exc

    async def _handle_create_or_update(self, rr: ReconcileResult[ComponentResource]) -> None:
        comp = rr.component
        try:
            cp_gen, ic_gen = get_created_from_generation(comp)
        except (MissingGenerationLabelError, InvalidGenerationLabelError):
            cp_gen, ic_gen = -1, -1

        deps: dict[ComponentType, ComponentResource] = {}
        waiting: list[str] = []
        for dep_type in self.dependencies:
            dep = await self._fetch(dep_type, comp)
            if dep is None or not is_dependency_ready(dep, cp_gen, ic_gen):
                waiting.append(str(dep_type))
                continue
            deps[dep_type] = dep
        if waiting:
            logger.info("waiting_for_dependencies", component=self.name, dependencies=waiting)
            rr.conditions = [
                new_condition(
                    self.component_type.healthy_condition(),
                    ConditionStatus.FALSE,
                    REASON_WAITING_FOR_DEPENDENCIES,
                    f"Waiting for {', '.join(waiting)} dependency to be ready.",
                )
            ]
            rr.result = Result(requeue_after=self.ctx.settings.dependency_requeue_seconds)
            return

        finalizers = FinalizerSet(comp.metadata.finalizers)
        if finalizers.add(self.component_type.finalizer()):
            logger.debug("adding_finalizer", component=self.name, finalizer=self.component_type.finalizer())
            try:
                patched = await self.store.patch(comp, {"metadata": {"finalizers": finalizers.to_list()}})
            except StoreInteractionError as exc:
                raise _store_error(f"error patching finalizer on {self.name}", exc) from exc
            comp.metadata = patched.metadata

        for dep_type, dep in deps.items():
            try:
                deps[dep_type] = await ensure_dependency_finalizer(self.ctx, dep, comp, True)
            except StoreInteractionError as exc:
                raise _store_error(f"error setting dependency finalizer on {dep_type} component resource", exc) from exc
        for dep_type in self.soft_dependencies:
            dep = await self._fetch(dep_type, comp)
            if dep is None or dep.is_terminating:
                continue
            try:
                deps[dep_type] = await ensure_dependency_finalizer(self.ctx, dep, comp, True)
            except NotFoundError:
                continue
            except StoreInteractionError as exc:
                raise _store_error(f"error setting dependency finalizer on {dep_type} component resource", exc) from exc

        rr.conditions = await self.apply(comp, deps)

    async def _handle_delete(self, rr: ReconcileResult[ComponentResource]) -> None:
        comp = rr.component
        healthy = self.component_type.healthy_condition()
        if has_any_dependency_finalizer(comp):
            dependents = ", ".join(sorted(get_dependents(comp)))
            logger.info("deletion_blocked_by_dependents", component=self.name, dependents=dependents)
            rr.conditions = [
                new_condition(
                    healthy,
                    ConditionStatus.TRUE,
                    REASON_DELETION_WAITING_FOR_DEPENDING_COMPONENTS,
                    f"Deletion is waiting for the following dependencies to be removed: [{dependents}]",
                )
            ]
            rr.result = Result(requeue_after=self.ctx.settings.dependency_requeue_seconds)
            return

        rr.conditions = [
            new_condition(
                healthy, ConditionStatus.FALSE, REASON_COMPONENT_IS_IN_DELETION, MESSAGE_COMPONENT_IS_IN_DELETION
            )
        ]
        if not await self.teardown(comp):
            rr.result = Result(requeue_after=self.ctx.settings.deletion_requeue_seconds)
            return

        for dep_type in self.dependencies + self.soft_dependencies:
            dep = await self._fetch(dep_type, comp)
            if dep is None:
                continue
            try:
                await ensure_dependency_finalizer(self.ctx, dep, comp, False)
            except NotFoundError:
                continue
            except StoreInteractionError as exc:
                raise _store_error(
                    f"error removing dependency finalizer from {dep_type} component resource", exc
                ) from exc

        finalizers = FinalizerSet(comp.metadata.finalizers)
        if finalizers.remove(self.component_type.finalizer()):
            logger.debug("removing_finalizer", component=self.name, finalizer=self.component_type.finalizer())
            try:
                await self.store.patch(comp, {"metadata": {"finalizers": finalizers.to_list()}})
            except NotFoundError:
                return
            except StoreInteractionError as exc:
                raise _store_error(f"error removing finalizer from {self.name}", exc) from exc


def _require_admin_access(deps: dict[ComponentType, ComponentResource]) -> None:
    api_server = deps.get(ComponentType.API_SERVER)
    if api_server is None:
        return
    access = api_server.status.admin_access
    if access is None or not access.kubeconfig:
        raise KeelsonError(
            "APIServer dependency is ready, but no kubeconfig could be found in its status",
            reason=REASON_DEPENDENCY_STATUS_INVALID,
        )


class APIServerReconciler(ComponentReconciler):
    resource_type = APIServer


class AuthenticationReconciler(ComponentReconciler):
    resource_type = Authentication
    dependencies = (ComponentType.API_SERVER,)


class AuthorizationReconciler(ComponentReconciler):
    resource_type = Authorization
    dependencies = (ComponentType.API_SERVER,)


class LandscaperReconciler(ComponentReconciler):
    resource_type = Landscaper
    dependencies = (ComponentType.API_SERVER,)
    soft_dependencies = (ComponentType.AUTHENTICATION, ComponentType.AUTHORIZATION)

    async def apply(
        self, comp: ComponentResource, deps: dict[ComponentType, ComponentResource]
    ) -> list[ComponentCondition]:
        _require_admin_access(deps)
        return await super().apply(comp, deps)


class CloudOrchestratorReconciler(ComponentReconciler):
    resource_type = CloudOrchestrator
    dependencies = (ComponentType.API_SERVER,)
    soft_dependencies = (ComponentType.AUTHENTICATION, ComponentType.AUTHORIZATION)

    async def apply(
        self, comp: ComponentResource, deps: dict[ComponentType, ComponentResource]
    ) -> list[ComponentCondition]:
        _require_admin_access(deps)
        return await super().apply(comp, deps)


def component_reconcilers(ctx: OperatorContext) -> list[ComponentReconciler]:
    """One reconciler per component kind known to the context's registry."""
    known = {
        cls.resource_type.component_type: cls
        for cls in (
            APIServerReconciler,
            AuthenticationReconciler,
            AuthorizationReconciler,
            LandscaperReconciler,
            CloudOrchestratorReconciler,
        )
    }
    return [known[component](ctx) for component in ctx.registry.types() if component in known]
