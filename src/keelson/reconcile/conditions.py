"""Condition list bookkeeping."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from keelson.api.types import ComponentCondition, ConditionStatus, utc_now


class ConditionUpdater:
    """Builder-like helper for updating a list of conditions.

    The timestamp used as lastTransitionTime is captured once, when the
    updater is created; overwrite ``now`` to use a different one. With
    ``remove_untouched`` the exported list only contains conditions updated
    through this updater. The given list is never modified.

    Usage::

        status.conditions = ConditionUpdater(status.conditions, True).update(...).update(...).conditions()
    """

    def __init__(self, conditions: Iterable[ComponentCondition], remove_untouched: bool) -> None:
        self.now: datetime = utc_now()
        self._conditions: dict[str, ComponentCondition] = {con.type: con.model_copy() for con in conditions}
        self._updated: set[str] | None = set() if remove_untouched else None

    def update(
        self,
        con_type: str,
        status: ConditionStatus,
        reason: str = "",
        message: str = "",
    ) -> ConditionUpdater:
        """Create or update a condition; lastTransitionTime only moves when the status changes."""
        transition = self.now
        old = self._conditions.get(con_type)
        if old is not None and old.status == status:
            transition = old.last_transition_time
        self._conditions[con_type] = ComponentCondition(
            type=con_type,
            status=status,
            reason=reason,
            message=message,
            last_transition_time=transition,
        )
        if self._updated is not None:
            self._updated.add(con_type)
        return self

    def update_from(self, template: ComponentCondition) -> ConditionUpdater:
        return self.update(template.type, template.status, template.reason, template.message)

    def has(self, con_type: str) -> bool:
        if con_type not in self._conditions:
            return False
        return self._updated is None or con_type in self._updated

    def conditions(self) -> list[ComponentCondition]:
        """The updated conditions, sorted by type."""
        result = [
            con.model_copy()
            for con in self._conditions.values()
            if self._updated is None or con.type in self._updated
        ]
        result.sort(key=lambda con: con.type)
        return result


def get_condition(conditions: Iterable[ComponentCondition], con_type: str) -> ComponentCondition | None:
    for con in conditions:
        if con.type == con_type:
            return con
    return None


def new_condition(
    con_type: str, status: ConditionStatus, reason: str = "", message: str = ""
) -> ComponentCondition:
    """A condition with the current time as lastTransitionTime."""
    return ComponentCondition(
        type=con_type,
        status=status,
        reason=reason,
        message=message,
        last_transition_time=utc_now(),
    )


def all_conditions_true(*conditions: ComponentCondition) -> bool:
    return all(con.is_true() for con in conditions)
