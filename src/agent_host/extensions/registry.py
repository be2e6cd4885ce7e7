"""Static registry of extension factories.

Extensions are resolved by name from factories registered at import time,
never loaded from arbitrary paths. A factory is either an `Extension`
instance or a callable taking the extension's config dict and returning one.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional, Union

from loguru import logger

from ..errors import ValidationError
from .models import Extension

ExtensionFactory = Union[Extension, Callable[[dict[str, Any]], Extension]]


@dataclass
class ExtensionEntry:
    """One extension entry from host configuration."""

    name: str
    enabled: bool = True
    config: dict[str, Any] = field(default_factory=dict)


class ExtensionRegistry:
    """Name -> factory mapping used by the host to instantiate extensions."""

    def __init__(self):
        self._factories: dict[str, ExtensionFactory] = {}

    def register(self, name: str, factory: ExtensionFactory) -> None:
        """Register (or replace) a factory under a name."""
        if not name:
            raise ValueError("Extension factory name must not be empty")
        if name in self._factories:
            logger.warning(f"Replacing extension factory: {name}")
        self._factories[name] = factory

    def unregister(self, name: str) -> bool:
        return self._factories.pop(name, None) is not None

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: str) -> bool:
        return name in self._factories

    def load(self, name: str, config: Optional[dict[str, Any]] = None) -> Extension:
        """
        Instantiate an extension by name.

        Raises:
            KeyError: If no factory is registered under `name`
            ValidationError: If the factory does not produce an Extension
        """
        factory = self._factories.get(name)
        if factory is None:
            raise KeyError(f"Extension '{name}' not found in registry")

        if isinstance(factory, Extension):
            # Each load gets its own instance; the registered one stays untouched.
            extension = replace(factory, config={**factory.config, **(config or {})})
        else:
            extension = factory(dict(config or {}))

        if not isinstance(extension, Extension):
            raise ValidationError(
                f"Factory for '{name}' returned {type(extension).__name__}, expected Extension"
            )
        return extension

    def load_many(self, entries: list[ExtensionEntry]) -> list[Extension]:
        """Load every enabled entry, logging and skipping failures."""
        extensions: list[Extension] = []
        for entry in entries:
            if not entry.enabled:
                logger.debug(f"Skipping disabled extension: {entry.name}")
                continue
            try:
                extensions.append(self.load(entry.name, entry.config))
            except Exception as e:
                logger.warning(f"Failed to load extension '{entry.name}': {e}")
        return extensions


# Module-level singleton
extension_registry = ExtensionRegistry()
