"""Resolution of ``--service`` and ``--instance`` selectors.

Resolvers report problems through the execution context and return ``None``
rather than raising; callers gate their next phase on ``ctx.has_errors()``.
Successful resolutions are cached on the context for the rest of the run.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .config import InstanceDefinition, ServiceDefinition
from .dbms.registry import registry_for
from .services import service_definition

if TYPE_CHECKING:
    from .context import ExecutionContext


@dataclass(frozen=True)
class ResolvedInstance:
    """A DBMS instance validated against the node configuration."""

    name: str
    definition: InstanceDefinition

    @property
    def package(self) -> str | None:
        """Return the backend package declared by the instance."""
        return self.definition.package


@dataclass(frozen=True)
class ResolvedService:
    """A service validated against the node configuration."""

    name: str
    definition: ServiceDefinition


def check_service_name(ctx: ExecutionContext, candidate: str | None = None, *, mandatory: bool = True) -> str | None:
    """Validate *candidate* as a service of the node and select it."""
    ctx.verbose(f"checking service name='{candidate or '(none)'}'")
    if not candidate:
        if mandatory:
            ctx.error("'--service' option is mandatory, but none has been found")
        else:
            ctx.verbose("'--service' option is optional, has not been specified")
        return None
    if ctx.service is not None and ctx.service.name == candidate:
        return candidate
    config = ctx.config
    services = config.nodes.services if config is not None else {}
    if config is None or not services:
        ctx.error("no 'Services' defined in host configuration")
        return None
    if candidate not in services:
        ctx.error(f"service '{candidate}' is not defined in host configuration")
        return None
    definition = service_definition(ctx, candidate)
    if definition is None:
        return None
    ctx.service = ResolvedService(candidate, definition)
    config.service_name = candidate
    config.service = dict(definition.data)
    return candidate


def _default_instance(ctx: ExecutionContext, service: ServiceDefinition | None) -> str | None:
    config = ctx.config
    if config is None:
        return None
    if service is not None and service.instance:
        ctx.verbose(f"found instance '{service.instance}' in service '{service.name}'")
        return service.instance
    if config.nodes.default_instance:
        ctx.verbose(f"found instance '{config.nodes.default_instance}' in host configuration")
        return config.nodes.default_instance
    if config.site_config.default_instance:
        ctx.verbose(f"found instance '{config.site_config.default_instance}' in site configuration")
        return config.site_config.default_instance
    return None


def check_instance_name(
    ctx: ExecutionContext,
    candidate: str | None = None,
    *,
    single: bool = True,
    mandatory: bool = True,
) -> str | None:
    """Validate *candidate* as a DBMS instance of the node.

    Without a candidate, the instance comes from the selected service, then
    from the ``DBMS.instance`` defaults of the node and of the site. When no
    default exists and *single* is set, the sole instance of the node is used
    with a warning. Otherwise the missing instance is an error when
    *mandatory* is set.
    """
    ctx.verbose(f"checking instance name='{candidate or '(none)'}'")
    if candidate and ctx.instance is not None and ctx.instance.name == candidate:
        return candidate
    config = ctx.config
    instances = dict(config.nodes.instances) if config is not None else {}
    name = candidate
    if not name:
        name = _default_instance(ctx, ctx.service.definition if ctx.service else None)
    if not name:
        if single and len(instances) == 1:
            name = next(iter(instances))
            ctx.warn(
                "you are relying on a single instance definition; "
                "be warned that this facility may change in the future"
            )
        elif mandatory:
            ctx.error(
                "'--instance' option is mandatory, none found "
                "(and there is none or too many DBMS instances)"
            )
            return None
        else:
            ctx.verbose("'--instance' option is optional, has not been specified")
            return None
    definition = instances.get(name)
    if definition is None:
        ctx.error(f"instance '{name}' is not defined in host configuration")
        return None
    if not definition.package:
        ctx.error(f"unable to identify a package to address the '{name}' instance")
        return None
    ctx.instance = ResolvedInstance(name, definition)
    return name


def resolve_selector(
    ctx: ExecutionContext,
    service: str | None = None,
    instance: str | None = None,
) -> ResolvedInstance | None:
    """Resolve exactly one of *service* or *instance* to a DBMS instance."""
    if not service and not instance:
        ctx.error("must have one of '--service' or '--instance' option, none found")
        return None
    if service and instance:
        ctx.error("must have one of '--service' or '--instance' option, both found")
        return None
    if service:
        if check_service_name(ctx, service) is None or ctx.service is None:
            return None
        if not ctx.service.definition.instance:
            ctx.error(f"service '{service}' doesn't declare any DBMS instance")
            return None
        instance = ctx.service.definition.instance
    if check_instance_name(ctx, instance) is None:
        return None
    return ctx.instance


def database_exists(ctx: ExecutionContext, instance: str, name: str) -> bool:
    """Return whether *name* is, verbatim, a live database of *instance*."""
    databases = registry_for(ctx).dispatch(ctx, "get_live_databases", instance)
    exists = isinstance(databases, list) and name in databases
    ctx.verbose(f"database '{name}' exists in '{instance}': {'true' if exists else 'false'}")
    return exists


def select_databases(
    ctx: ExecutionContext,
    database: str | None = None,
    service: str | None = None,
) -> list[str]:
    """Return the databases to act upon; an explicit *database* always wins."""
    if database:
        return [database]
    definition: ServiceDefinition | None = None
    if service:
        if ctx.service is not None and ctx.service.name == service:
            definition = ctx.service.definition
        else:
            definition = service_definition(ctx, service)
    elif ctx.service is not None:
        definition = ctx.service.definition
    if definition is None:
        return []
    ctx.verbose(f"setting databases='{', '.join(definition.databases)}'")
    return list(definition.databases)


__all__ = [
    "ResolvedInstance",
    "ResolvedService",
    "check_instance_name",
    "check_service_name",
    "database_exists",
    "resolve_selector",
    "select_databases",
]
