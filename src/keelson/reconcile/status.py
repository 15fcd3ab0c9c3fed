"""Publishing the outcome of a component reconciliation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

import structlog

from keelson.api.constants import (
    MESSAGE_MISSING_EXPECTED_CONDITION,
    MESSAGE_RECONCILIATION_ERROR,
    REASON_MISSING_EXPECTED_CONDITION,
    REASON_RECONCILIATION_ERROR,
)
from keelson.api.types import ComponentCondition, ComponentResource, ConditionStatus, ObservedGenerations
from keelson.core.errors import (
    ErrorList,
    InvalidGenerationLabelError,
    KeelsonError,
    MissingGenerationLabelError,
    NotFoundError,
    StoreInteractionError,
)
from keelson.reconcile.conditions import ConditionUpdater
from keelson.reconcile.generations import get_created_from_generation
from keelson.store.base import ObjectStore

logger = structlog.get_logger()

C = TypeVar("C", bound=ComponentResource)


@dataclass
class Result:
    """What the controller runtime should do after a reconcile."""

    requeue: bool = False
    requeue_after: float = 0.0

    def needs_requeue(self) -> bool:
        return self.requeue or self.requeue_after > 0


@dataclass
class ReconcileResult(Generic[C]):
    """Outcome of a component reconciliation, consumed by ``update_status``.

    ``old_component`` is the state before the reconcile and defaults to a
    copy of ``component``. ``reconcile_error`` turns the reconciliation
    condition False and is appended to ``message``. ``conditions`` are set in
    addition to the reconciliation condition.
    """

    component: C
    old_component: C | None = None
    result: Result = field(default_factory=Result)
    reconcile_error: BaseException | None = None
    reason: str = ""
    message: str = ""
    conditions: list[ComponentCondition] = field(default_factory=list)


async def update_status(store: ObjectStore, rr: ReconcileResult[C]) -> tuple[Result, KeelsonError | None]:
    """Write conditions and observed generations into the component's status.

    The status is only written if it differs from the old component's status;
    a component that vanished in the meantime is not an error. Returns the
    requested runtime result and the aggregated error, if any.
    """
    comp = rr.component
    old = rr.old_component if rr.old_component is not None else comp.deep_copy()

    errs = ErrorList(rr.reconcile_error)
    try:
        cp_gen, ic_gen = get_created_from_generation(comp)
    except (MissingGenerationLabelError, InvalidGenerationLabelError) as exc:
        errs.append(exc)
        cp_gen, ic_gen = -1, -1

    agg_err = errs.aggregate()
    reason, message = rr.reason, rr.message
    if agg_err is not None:
        message = f"{message}\n{agg_err}" if message else str(agg_err)
        if agg_err.reason:
            reason = agg_err.reason

    comp_type = comp.type()
    common = comp.get_common_status()
    cu = ConditionUpdater(common.conditions, True).update(
        comp_type.reconciliation_condition(),
        ConditionStatus.from_bool(agg_err is None),
        reason,
        message,
    )
    for con in rr.conditions:
        cu.update_from(con)
    required = comp.get_required_conditions()
    healthy = comp_type.healthy_condition()
    if healthy in required and not cu.has(healthy) and rr.reconcile_error is not None:
        cu.update(healthy, ConditionStatus.FALSE, REASON_RECONCILIATION_ERROR, MESSAGE_RECONCILIATION_ERROR)
    for con_type in sorted(required):
        if not cu.has(con_type):
            cu.update(
                con_type,
                ConditionStatus.UNKNOWN,
                REASON_MISSING_EXPECTED_CONDITION,
                MESSAGE_MISSING_EXPECTED_CONDITION,
            )
    common.conditions = cu.conditions()
    common.observed_generations = ObservedGenerations(
        resource=comp.metadata.generation,
        managed_control_plane=cp_gen,
        internal_configuration=ic_gen,
    )
    comp.set_common_status(common)

    if old.status != comp.status:
        # status writes are not guarded by the resourceVersion
        target = comp.deep_copy()
        target.metadata.resource_version = ""
        try:
            await store.update_status(target)
        except NotFoundError:
            logger.debug("status_target_gone", kind=comp.kind, resource=str(comp.key()))
        except StoreInteractionError as exc:
            patch_err = StoreInteractionError(f"error patching status: {exc}", exc.details)
            return rr.result, ErrorList(patch_err, agg_err).aggregate()
    return rr.result, agg_err
