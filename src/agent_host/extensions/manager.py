"""Extension manager: registration, dependency resolution and lifecycle."""

from pathlib import Path
from typing import Any, Mapping, Optional, Union

from loguru import logger

from ..config import Config
from ..errors import (
    DependencyCycleError,
    DependencyUnsatisfiedError,
    ExtensionNotFoundError,
    ValidationError,
)
from ..hooks import HookDispatcher, HookName, call_maybe_async
from ..versioning import is_valid_range, is_valid_version, satisfies
from .events import (
    EXTENSION_ACTIVATED,
    EXTENSION_DEACTIVATED,
    EXTENSION_REGISTERED,
    EXTENSION_UNREGISTERED,
    EventBus,
)
from .models import Extension, ExtensionContext, ExtensionView, extension_id


class ExtensionManager:
    """
    Central orchestrator for extension lifecycle.

    Features:
    - Metadata validation before any state mutation
    - Dependency closure resolution with cycle detection
    - Host and inter-extension version constraints (npm-style ranges)
    - Dependencies-first activation, dependents-first teardown
    - Framework lifecycle hooks around every transition

    Activation transitions are not serialized; concurrent activation of
    the same id is tolerated as an idempotent no-op once the first
    completes.
    """

    def __init__(
        self,
        host_version: Optional[str] = None,
        workspace_root: Optional[Union[str, Path]] = None,
        dispatcher: Optional[HookDispatcher] = None,
        events: Optional[EventBus] = None,
    ):
        """
        Initialize extension manager.

        Args:
            host_version: Host framework version. Defaults to Config.HOST_VERSION.
            workspace_root: Workspace directory. Defaults to Config.WORKSPACE_ROOT.
            dispatcher: Hook dispatcher to wire handlers into
            events: Event bus shared with extension contexts
        """
        self._host_version = host_version or Config.HOST_VERSION
        self._workspace_root = Path(workspace_root or Config.WORKSPACE_ROOT)
        self._hooks = dispatcher or HookDispatcher()
        self._events = events or EventBus()
        self._extensions: dict[str, Extension] = {}
        self._contexts: dict[str, ExtensionContext] = {}
        self._active: list[str] = []  # activation order

    @property
    def hooks(self) -> HookDispatcher:
        return self._hooks

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def host_version(self) -> str:
        return self._host_version

    # ========================================================================
    # Registration
    # ========================================================================

    async def register(self, extension: Extension) -> str:
        """
        Register an extension.

        Validates metadata, stores the extension, builds its context and
        wires its hooks. Dependencies are checked at activation time.

        Returns:
            The extension id

        Raises:
            ValidationError: Malformed metadata or duplicate id
        """
        self._validate_extension(extension)

        ext_id = extension.id
        if ext_id in self._extensions:
            raise ValidationError(f"Extension already registered: {ext_id}")

        logger.info(f"Registering extension: {ext_id}")

        self._extensions[ext_id] = extension
        self._contexts[ext_id] = self._create_context(extension)

        for hook_name, handler in extension.hooks.items():
            self._hooks.register(hook_name, ext_id, handler)

        await self._events.emit(EXTENSION_REGISTERED, {"extension_id": ext_id})
        logger.info(f"Extension registered successfully: {ext_id}")
        return ext_id

    async def unregister(self, extension_id: str) -> None:
        """Deactivate (if active) and remove an extension with its hooks."""
        self._require(extension_id)
        logger.info(f"Unregistering extension: {extension_id}")

        if self.is_active(extension_id):
            await self.deactivate(extension_id)

        removed = self._hooks.unregister_all(extension_id)
        del self._extensions[extension_id]
        del self._contexts[extension_id]

        await self._events.emit(EXTENSION_UNREGISTERED, {"extension_id": extension_id})
        logger.info(
            f"Extension unregistered successfully: {extension_id} "
            f"({removed} hook(s) removed)"
        )

    @staticmethod
    def _validate_extension(extension: Extension) -> None:
        if not isinstance(extension, Extension):
            raise ValidationError(
                f"Expected an Extension, got {type(extension).__name__}"
            )

        if not isinstance(extension.name, str) or not extension.name.strip():
            raise ValidationError("Extension must have a valid name")

        if not isinstance(extension.version, str) or not extension.version:
            raise ValidationError(f"Extension {extension.name} must have a valid version")

        if not is_valid_version(extension.version):
            raise ValidationError(
                f"Extension version is not a valid semver: {extension.version}"
            )

        for hook_name, handler in extension.hooks.items():
            if not hook_name or not callable(handler):
                raise ValidationError(
                    f"Extension {extension.name} has an invalid handler for hook '{hook_name}'"
                )

        for attr in ("activate", "deactivate", "get_tools", "get_middleware"):
            value = getattr(extension, attr)
            if value is not None and not callable(value):
                raise ValidationError(f"Extension {extension.name}: {attr} must be callable")

        deps = extension.dependencies
        if deps.host is not None and not is_valid_range(deps.host):
            raise ValidationError(
                f"Extension {extension.name} has an invalid host version range: {deps.host}"
            )
        for dep_name, required in deps.extensions.items():
            if not dep_name or not is_valid_range(required):
                raise ValidationError(
                    f"Extension {extension.name} has an invalid dependency: "
                    f"{dep_name} {required}"
                )

    def _create_context(self, extension: Extension) -> ExtensionContext:
        ext_id = extension.id
        return ExtensionContext(
            extension_id=ext_id,
            workspace_root=self._workspace_root,
            extension_path=self._workspace_root / "extensions" / ext_id,
            logger=logger.bind(extension_id=ext_id),
            config=dict(extension.config),
            host_version=self._host_version,
            extensions=ExtensionView(get=self.get, list_all=self.list, is_active=self.is_active),
            hooks=self._hooks,
            events=self._events,
        )

    # ========================================================================
    # Dependencies
    # ========================================================================

    def check_dependencies(self, extension: Extension) -> None:
        """
        Validate host and extension version constraints.

        Raises:
            DependencyUnsatisfiedError: Naming the dependency, the required
                range and the actual version (None when missing)
        """
        deps = extension.dependencies

        if deps.host and not satisfies(self._host_version, deps.host):
            raise DependencyUnsatisfiedError(
                extension.id, "host", deps.host, self._host_version
            )

        for dep_name, required in deps.extensions.items():
            dep = self._extensions.get(extension_id(dep_name))
            if dep is None:
                raise DependencyUnsatisfiedError(extension.id, dep_name, required, None)
            if not satisfies(dep.version, required):
                raise DependencyUnsatisfiedError(extension.id, dep_name, required, dep.version)

    def _resolve_activation_order(self, root_id: str) -> list[str]:
        """
        Depth-first dependency closure of `root_id`, dependencies first.

        Already-active extensions are treated as resolved.

        Raises:
            DependencyCycleError: If the closure contains a cycle
            DependencyUnsatisfiedError: If a dependency is not registered
        """
        order: list[str] = []
        visiting: list[str] = []
        done: set[str] = set()

        def visit(ext_id: str) -> None:
            if ext_id in done or self.is_active(ext_id):
                return
            if ext_id in visiting:
                raise DependencyCycleError(visiting[visiting.index(ext_id):] + [ext_id])

            visiting.append(ext_id)
            for dep_name, required in self._extensions[ext_id].dependencies.extensions.items():
                dep_id = extension_id(dep_name)
                if dep_id not in self._extensions:
                    raise DependencyUnsatisfiedError(ext_id, dep_name, required, None)
                visit(dep_id)
            visiting.pop()

            done.add(ext_id)
            order.append(ext_id)

        visit(root_id)
        return order

    def _active_dependents(self, extension_id_: str) -> list[str]:
        """Active extensions depending (transitively) on one, in activation order."""
        affected = {extension_id_}
        dependents = []
        # Activation order lists dependencies before dependents, so one pass suffices.
        for ext_id in self._active:
            if ext_id in affected:
                continue
            deps = {
                extension_id(name)
                for name in self._extensions[ext_id].dependencies.extensions
            }
            if deps & affected:
                affected.add(ext_id)
                dependents.append(ext_id)
        return dependents

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def activate(self, extension_id: str) -> None:
        """
        Activate an extension and, first, its unresolved dependencies.

        No-op if already active. Cycles, missing dependencies and version
        mismatches anywhere in the closure are rejected before any
        extension's activate callback runs.
        """
        self._require(extension_id)

        if self.is_active(extension_id):
            logger.debug(f"Extension already active: {extension_id}")
            return

        order = self._resolve_activation_order(extension_id)
        for ext_id in order:
            self.check_dependencies(self._extensions[ext_id])

        for ext_id in order:
            if not self.is_active(ext_id):
                await self._activate_one(ext_id)

    async def _activate_one(self, ext_id: str) -> None:
        extension = self._extensions[ext_id]
        context = self._contexts[ext_id]
        payload = self._lifecycle_payload(ext_id)

        logger.info(f"Activating extension: {ext_id}")
        try:
            await self._hooks.execute(HookName.FRAMEWORK_BEFORE_INIT, payload)
            if extension.activate is not None:
                await call_maybe_async(extension.activate, context)
            self._active.append(ext_id)
            await self._hooks.execute(HookName.FRAMEWORK_AFTER_INIT, payload)
        except Exception as e:
            if ext_id in self._active:
                self._active.remove(ext_id)
            logger.error(f"Failed to activate extension {ext_id}: {e}")
            raise

        await self._events.emit(EXTENSION_ACTIVATED, {"extension_id": ext_id})
        logger.info(f"Extension activated successfully: {ext_id}")

    async def deactivate(self, extension_id: str) -> None:
        """
        Deactivate an extension, deactivating its active dependents first.

        No-op if not active.
        """
        self._require(extension_id)

        if not self.is_active(extension_id):
            logger.debug(f"Extension not active: {extension_id}")
            return

        for dependent in reversed(self._active_dependents(extension_id)):
            logger.info(f"Deactivating {dependent} (depends on {extension_id})")
            await self._deactivate_one(dependent)

        await self._deactivate_one(extension_id)

    async def _deactivate_one(self, ext_id: str) -> None:
        extension = self._extensions[ext_id]
        context = self._contexts[ext_id]
        payload = self._lifecycle_payload(ext_id)

        logger.info(f"Deactivating extension: {ext_id}")
        try:
            await self._hooks.execute(HookName.FRAMEWORK_BEFORE_SHUTDOWN, payload)
            if extension.deactivate is not None:
                await call_maybe_async(extension.deactivate, context)
            self._active.remove(ext_id)
            await self._hooks.execute(HookName.FRAMEWORK_AFTER_SHUTDOWN, payload)
        except Exception as e:
            logger.error(f"Failed to deactivate extension {ext_id}: {e}")
            raise

        await self._events.emit(EXTENSION_DEACTIVATED, {"extension_id": ext_id})
        logger.info(f"Extension deactivated successfully: {ext_id}")

    async def shutdown(self) -> list[tuple[str, Exception]]:
        """
        Deactivate every active extension, dependents first.

        Failures are logged and collected; teardown continues.

        Returns:
            (extension id, error) pairs for extensions that failed to stop
        """
        failures: list[tuple[str, Exception]] = []
        for ext_id in reversed(list(self._active)):
            if not self.is_active(ext_id):
                continue
            try:
                await self._deactivate_one(ext_id)
            except Exception as e:
                failures.append((ext_id, e))

        if failures:
            logger.warning(
                f"Shutdown completed with {len(failures)} failure(s): "
                f"{[ext_id for ext_id, _ in failures]}"
            )
        else:
            logger.info("All extensions deactivated")
        return failures

    def _lifecycle_payload(self, ext_id: str) -> dict[str, Any]:
        return {
            "target_id": ext_id,
            "host_version": self._host_version,
            "workspace_root": str(self._workspace_root),
        }

    # ========================================================================
    # Queries
    # ========================================================================

    def _require(self, extension_id: str) -> Extension:
        extension = self._extensions.get(extension_id)
        if extension is None:
            raise ExtensionNotFoundError(extension_id)
        return extension

    def get(self, extension_id: str) -> Optional[Extension]:
        return self._extensions.get(extension_id)

    def get_context(self, extension_id: str) -> Optional[ExtensionContext]:
        return self._contexts.get(extension_id)

    def is_active(self, extension_id: str) -> bool:
        return extension_id in self._active

    def active_extensions(self) -> list[str]:
        """Active extension ids in activation order."""
        return list(self._active)

    def get_dependencies(self, extension_id_: str) -> list[str]:
        """Ids of the extensions an extension declares as dependencies."""
        extension = self._extensions.get(extension_id_)
        if extension is None:
            return []
        return [extension_id(name) for name in extension.dependencies.extensions]

    def get_dependents(self, extension_id_: str) -> list[str]:
        """Ids of registered extensions declaring a dependency on one."""
        return [
            ext_id
            for ext_id, extension in self._extensions.items()
            if extension_id_ in {extension_id(name) for name in extension.dependencies.extensions}
        ]

    # Defined after every `list[...]` annotation in this class body.
    def list(self) -> list[Extension]:
        return list(self._extensions.values())

    async def execute_hook(
        self,
        hook_name: Union[str, HookName],
        payload: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Raise a hook through the dispatcher."""
        await self._hooks.execute(hook_name, payload)
