"""Services hosted by the current node and their workloads."""
from __future__ import annotations

from typing import TYPE_CHECKING, cast

from .config import (
    SERVICES_KEY,
    ConfigError,
    Document,
    ServiceDefinition,
    build_service,
    deep_copy,
    deep_merge,
    read_service_document,
    substitute_macros,
)

if TYPE_CHECKING:
    from .context import ExecutionContext


def _node_services(ctx: ExecutionContext) -> dict[str, object]:
    if ctx.config is None:
        return {}
    services = ctx.config.node.get(SERVICES_KEY)
    return dict(services) if isinstance(services, dict) else {}


def service_config(ctx: ExecutionContext, name: str) -> Document | None:
    """Return the configuration of service *name*, ``None`` when undefined.

    The node ``Services.<name>`` subtree wins over the optional site service
    document; ``<SERVICE>`` macros are substituted in both.
    """
    services = _node_services(ctx)
    if name not in services:
        return None
    node_part = services[name]
    if not isinstance(node_part, dict):
        ctx.error(f"service '{name}': expected a mapping, found {type(node_part).__name__}")
        return None
    result = read_service_document(ctx, name)
    deep_merge(result, cast(Document, substitute_macros(deep_copy(node_part), {"SERVICE": name})))
    result["name"] = name
    return result


def service_definition(ctx: ExecutionContext, name: str) -> ServiceDefinition | None:
    """Return the typed definition of service *name*, reporting bad types."""
    document = service_config(ctx, name)
    if document is None:
        return None
    try:
        return build_service(name, document)
    except ConfigError as exc:
        ctx.error(str(exc))
        return None


def _visible_definitions(ctx: ExecutionContext, hidden: bool) -> list[ServiceDefinition]:
    definitions: list[ServiceDefinition] = []
    for name in sorted(_node_services(ctx)):
        definition = service_definition(ctx, name)
        if definition is None:
            continue
        if definition.hidden and not hidden:
            continue
        definitions.append(definition)
    return definitions


def defined_services(ctx: ExecutionContext, hidden: bool = False) -> list[str]:
    """Return the sorted names of the services of the node."""
    return [definition.name for definition in _visible_definitions(ctx, hidden)]


def defined_worktasks(ctx: ExecutionContext, workload: str, hidden: bool = False) -> list[dict[str, object]]:
    """Return the tasks of *workload* across services.

    Each task is tagged with its ``service``; tasks are sorted on their
    ``order`` key, falling back to the service name.
    """
    tasks: list[dict[str, object]] = []
    for definition in _visible_definitions(ctx, hidden):
        for task in definition.workloads.get(workload, ()):
            tagged = deep_copy(task)
            tagged["service"] = definition.name
            tasks.append(tagged)
    return sorted(tasks, key=lambda task: str(task.get("order", task["service"])))


def used_workloads(ctx: ExecutionContext, hidden: bool = False) -> list[str]:
    """Return the sorted names of the workloads used by the node services."""
    names: set[str] = set()
    for definition in _visible_definitions(ctx, hidden):
        names.update(definition.workloads)
    return sorted(names)


__all__ = [
    "defined_services",
    "defined_worktasks",
    "service_config",
    "service_definition",
    "used_workloads",
]
