"""Extension system: registration, dependency-ordered lifecycle, capabilities.

Key components:
- ExtensionManager: validates, activates and tears down extensions
- ExtensionRegistry: static name -> factory resolution
- CapabilityAggregator: merges tools and middleware of active extensions
- EventBus: lifecycle notifications shared with extension contexts
"""

from .aggregator import AggregatedMiddleware, CapabilityAggregator, ToolCollision
from .events import (
    EXTENSION_ACTIVATED,
    EXTENSION_DEACTIVATED,
    EXTENSION_REGISTERED,
    EXTENSION_UNREGISTERED,
    EventBus,
)
from .manager import ExtensionManager
from .models import (
    Extension,
    ExtensionCapabilities,
    ExtensionContext,
    ExtensionDependencies,
    ExtensionMiddleware,
    ExtensionView,
    extension_id,
)
from .registry import ExtensionEntry, ExtensionRegistry, extension_registry

__all__ = [
    # Manager
    "ExtensionManager",
    # Models
    "Extension",
    "ExtensionCapabilities",
    "ExtensionContext",
    "ExtensionDependencies",
    "ExtensionMiddleware",
    "ExtensionView",
    "extension_id",
    # Registry
    "ExtensionEntry",
    "ExtensionRegistry",
    "extension_registry",
    # Aggregation
    "AggregatedMiddleware",
    "CapabilityAggregator",
    "ToolCollision",
    # Events
    "EventBus",
    "EXTENSION_REGISTERED",
    "EXTENSION_UNREGISTERED",
    "EXTENSION_ACTIVATED",
    "EXTENSION_DEACTIVATED",
]
