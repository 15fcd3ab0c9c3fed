"""
Error taxonomy for the Keelson reconciliation core.

Every error carries a machine-readable ``reason`` (a CamelCased, enum-like
string) so that controllers can surface failures both to the work queue
(which requeues with backoff) and as a condition on the affected resource.

Categories:
- StoreInteractionError: transient, retried by requeueing the reconcile
- MissingGenerationLabelError / InvalidGenerationLabelError: bookkeeping
  labels are missing or unparsable, the resource is treated as not ready
- WrongComponentConfigTypeError / WrongComponentStatusTypeError: internal
  programming errors from mis-registered converters or resources
- DuplicateConditionError: two components claim the same condition type
- AnnotationAlreadyExistsError: benign race between annotation writers
"""

from __future__ import annotations

from typing import Any, Iterable


REASON_INVALID_GENERATION_LABELS = "InvalidManagedControlPlaneLabels"
REASON_STORE_INTERACTION = "CrateClusterInteractionProblem"
REASON_INTERNAL_ERROR = "InternalError"


class KeelsonError(Exception):
    """Base exception for Keelson errors with reason support."""

    reason: str = ""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        reason: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if reason is not None:
            self.reason = reason


class StoreInteractionError(KeelsonError):
    """Raised when a call against the object store fails."""

    reason = REASON_STORE_INTERACTION


class NotFoundError(StoreInteractionError):
    """Raised when the requested object does not exist."""


class AlreadyExistsError(StoreInteractionError):
    """Raised when creating an object whose key is already taken."""


class ConflictError(StoreInteractionError):
    """Raised when a write carries an outdated resourceVersion."""


class MissingGenerationLabelError(KeelsonError):
    """Raised when a component lacks the created-from generation label."""

    reason = REASON_INVALID_GENERATION_LABELS


class InvalidGenerationLabelError(KeelsonError):
    """Raised when a generation label cannot be parsed into an integer."""

    reason = REASON_INVALID_GENERATION_LABELS

    def __init__(self, label: str, value: str):
        super().__init__(
            f"value '{value}' of label '{label}' cannot be parsed into an integer",
            {"label": label, "value": value},
        )
        self.label = label
        self.value = value


class WrongComponentConfigTypeError(KeelsonError):
    """Raised when a spec of the wrong type is passed into a component resource."""

    reason = REASON_INTERNAL_ERROR

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(
            message or "the given configuration has the wrong type for this component's spec",
            details,
        )


class WrongComponentStatusTypeError(KeelsonError):
    """Raised when a converter receives an external status of the wrong type."""

    reason = REASON_INTERNAL_ERROR

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(
            message
            or "the given status has the wrong type for this component's status field "
            "in the ManagedControlPlane",
            details,
        )


class DuplicateConditionError(KeelsonError):
    """Raised when two components expose a condition with the same type."""

    reason = REASON_INTERNAL_ERROR

    def __init__(self, condition_type: str, component: str, managed_by: str):
        super().__init__(
            f"internal error: component '{component}' has condition '{condition_type}', "
            f"but that condition is already managed by component '{managed_by}'",
            {"condition": condition_type, "component": component, "managed_by": managed_by},
        )


class AnnotationAlreadyExistsError(KeelsonError):
    """Raised when an annotation exists with a different value and may not be overwritten."""

    def __init__(self, annotation: str, desired: str, actual: str):
        super().__init__(
            f"annotation '{annotation}' already exists on the object and value "
            f"'{actual}' could not be updated to '{desired}'",
            {"annotation": annotation, "desired": desired, "actual": actual},
        )
        self.annotation = annotation
        self.desired_value = desired
        self.actual_value = actual


def reason_of(error: BaseException | None) -> str:
    """Return the reason attached to an error, or the empty string."""
    if error is None:
        return ""
    return getattr(error, "reason", "") or ""


def with_reason(error: BaseException, reason: str) -> KeelsonError:
    """Wrap an arbitrary exception into a KeelsonError carrying the given reason."""
    wrapped = KeelsonError(str(error), reason=reason)
    wrapped.__cause__ = error
    return wrapped


class ErrorList:
    """Collects errors during a reconciliation instead of short-circuiting.

    ``aggregate()`` joins everything into a single error whose reason is the
    first reason that was appended.
    """

    def __init__(self, *errors: BaseException | None) -> None:
        self.errors: list[BaseException] = []
        self.reasons: list[str] = []
        self.append(*errors)

    def append(self, *errors: BaseException | None) -> ErrorList:
        for error in errors:
            if error is None:
                continue
            self.errors.append(error)
            reason = reason_of(error)
            if reason:
                self.reasons.append(reason)
        return self

    def extend(self, errors: Iterable[BaseException | None]) -> ErrorList:
        return self.append(*errors)

    @property
    def reason(self) -> str:
        return self.reasons[0] if self.reasons else ""

    def __bool__(self) -> bool:
        return bool(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def aggregate(self) -> KeelsonError | None:
        if not self.errors:
            return None
        if len(self.errors) == 1:
            only = self.errors[0]
            if isinstance(only, KeelsonError):
                return only
            return with_reason(only, self.reason)
        lines = ["multiple errors occurred:"]
        lines.extend(str(error) for error in self.errors)
        joined = KeelsonError("\n".join(lines), reason=self.reason)
        joined.details["errors"] = list(self.errors)
        return joined

