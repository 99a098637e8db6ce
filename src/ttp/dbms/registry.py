"""Registration table mapping instance packages to DBMS backends."""
from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

from ..config import InstanceDefinition
from .base import OPERATIONS, DbmsBackend
from .sqlserver import SqlServerBackend

if TYPE_CHECKING:
    from ..context import ExecutionContext

BackendFactory = Callable[[], DbmsBackend]


def normalize_package(name: str) -> str:
    """Return the registry key of a package name.

    ``TTP::SqlServer``, ``Mods::SqlServer``, ``SqlServer`` and ``sql-server``
    all normalise to ``sqlserver``.
    """
    last = name.strip().split("::")[-1]
    return re.sub(r"[^a-z0-9]", "", last.lower())


class BackendRegistry:
    """Name to backend table; backends are built once per registry."""

    def __init__(self, factories: Mapping[str, BackendFactory] | None = None) -> None:
        self._factories: dict[str, BackendFactory] = {}
        self._backends: dict[str, DbmsBackend] = {}
        for name, factory in (factories or {}).items():
            self.register(name, factory)

    def register(self, name: str, factory: BackendFactory) -> None:
        """Register *factory* under the normalised *name*."""
        key = normalize_package(name)
        self._factories[key] = factory
        self._backends.pop(key, None)

    def names(self) -> list[str]:
        """Return the registered package keys."""
        return sorted(self._factories)

    def backend_for(self, package: str) -> DbmsBackend | None:
        """Return the backend addressing *package*, ``None`` when unknown."""
        key = normalize_package(package)
        backend = self._backends.get(key)
        if backend is None:
            factory = self._factories.get(key)
            if factory is None:
                return None
            backend = factory()
            self._backends[key] = backend
        return backend

    def dispatch(
        self,
        ctx: ExecutionContext,
        operation: str,
        instance: str | InstanceDefinition,
        *args: object,
        **kwargs: object,
    ) -> object | None:
        """Invoke *operation* on the backend of *instance*.

        Configuration problems (undeclared instance, missing or unknown
        package, unsupported operation) are reported as errors and yield
        ``None``. Backend failures are the backend's own return values.
        """
        if operation not in OPERATIONS:
            ctx.error(f"unknown DBMS operation '{operation}'")
            return None
        definition = self._definition(ctx, instance)
        if definition is None:
            return None
        if not definition.package:
            ctx.error(f"unable to find a package to address '{definition.name}' instance")
            return None
        backend = self.backend_for(definition.package)
        if backend is None:
            ctx.error(f"unknown DBMS package '{definition.package}' for '{definition.name}' instance")
            return None
        handler = getattr(backend, operation, None)
        if not callable(handler):
            ctx.error(f"package '{definition.package}' says it cannot '{operation}'")
            return None
        ctx.verbose(f"dispatching {operation}() to '{definition.package}' for '{definition.name}' instance")
        return handler(ctx, definition, *args, **kwargs)

    @staticmethod
    def _definition(ctx: ExecutionContext, instance: str | InstanceDefinition) -> InstanceDefinition | None:
        if isinstance(instance, InstanceDefinition):
            return instance
        if ctx.instance is not None and ctx.instance.name == instance:
            return ctx.instance.definition
        definition = ctx.config.nodes.instances.get(instance) if ctx.config is not None else None
        if definition is None:
            ctx.error(f"instance '{instance}' is not defined in host configuration")
        return definition


def default_registry() -> BackendRegistry:
    """Return a registry holding the bundled backends."""
    return BackendRegistry({"SqlServer": SqlServerBackend})


def registry_for(ctx: ExecutionContext) -> BackendRegistry:
    """Return the registry of the run, creating the default one on first use."""
    if ctx.backends is None:
        ctx.backends = default_registry()
    return ctx.backends


__all__ = ["BackendFactory", "BackendRegistry", "default_registry", "normalize_package", "registry_for"]
