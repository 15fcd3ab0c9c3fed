"""Component kinds and the registry that catalogs them."""

from keelson.components.base import Component, ComponentConverter
from keelson.components.converters import (
    APIServerConverter,
    AuthenticationConverter,
    AuthorizationConverter,
    CloudOrchestratorConverter,
    LandscaperConverter,
    MissingConfigurationError,
)
from keelson.components.lookup import get_component, get_components
from keelson.components.registry import ComponentHandler, ComponentRegistry, default_registry

__all__ = [
    "APIServerConverter",
    "AuthenticationConverter",
    "AuthorizationConverter",
    "CloudOrchestratorConverter",
    "Component",
    "ComponentConverter",
    "ComponentHandler",
    "ComponentRegistry",
    "LandscaperConverter",
    "MissingConfigurationError",
    "default_registry",
    "get_component",
    "get_components",
]
