"""Core modules for Keelson - error taxonomy and shared definitions."""

from keelson.core.errors import (
    AlreadyExistsError,
    AnnotationAlreadyExistsError,
    ConflictError,
    DuplicateConditionError,
    ErrorList,
    InvalidGenerationLabelError,
    KeelsonError,
    MissingGenerationLabelError,
    NotFoundError,
    StoreInteractionError,
    WrongComponentConfigTypeError,
    WrongComponentStatusTypeError,
    reason_of,
    with_reason,
)

__all__ = [
    "AlreadyExistsError",
    "AnnotationAlreadyExistsError",
    "ConflictError",
    "DuplicateConditionError",
    "ErrorList",
    "InvalidGenerationLabelError",
    "KeelsonError",
    "MissingGenerationLabelError",
    "NotFoundError",
    "StoreInteractionError",
    "WrongComponentConfigTypeError",
    "WrongComponentStatusTypeError",
    "reason_of",
    "with_reason",
]
