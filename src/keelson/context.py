"""Shared state handed to every controller and worker."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from keelson.config import Settings, get_settings
from keelson.store.base import ObjectStore

if TYPE_CHECKING:
    from keelson.components.registry import ComponentRegistry


@dataclass
class OperatorContext:
    """Explicitly constructed operator state.

    ``finalizer_lock`` serializes the read-modify-write cycle on dependency
    finalizers across all controllers of this process.
    """

    store: ObjectStore
    registry: ComponentRegistry
    settings: Settings = field(default_factory=get_settings)
    finalizer_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
