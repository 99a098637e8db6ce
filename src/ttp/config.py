"""Configuration cascade for TTP.

Three documents compose the configuration of a run, most specific last:

1. The site document ``<TTP_SITE>/toops.json`` (``.yml``/``.yaml`` accepted).
   Its top-level keys are restricted to the ``toops`` and ``site`` families;
   site-owned keys live under ``site``.
2. The node document ``<HOST>.json``, whose single top-level key is the
   upper-cased hostname. It declares ``DBMSInstances`` and ``Services``.
3. The selected service: the ``Services.<name>`` subtree of the node document,
   merged over the optional ``<TTP_SITE>/services/<name>.json`` document.

Environment variables prefixed with ``TTP_`` override site keys after the site
document is read; double underscores express nesting, e.g.::

    export TTP_TOOPS__LOGSDIR=/var/log/ttp
    export TTP_TOOPS__MSGVERBOSE__WITHLOG=false

Override keys are matched case-insensitively against the existing keys and
their values are coerced via PyYAML's ``safe_load``.

Every document is evaluated (see :mod:`ttp.evaluation`) right after it is
read. Loading functions report problems through the execution context and
return empty documents instead of raising, so that a run can report several
configuration problems at once.
"""
from __future__ import annotations

import json
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, cast

import yaml

from . import paths
from .evaluation import evaluate, lookup

if TYPE_CHECKING:
    from .context import ExecutionContext

Document = dict[str, object]

SITE_KEY_PREFIXES = ("toops", "site")
INSTANCES_KEY = "DBMSInstances"
SERVICES_KEY = "Services"


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class InstanceDefinition:
    """A DBMS instance declared by a node."""

    name: str
    package: str | None = None
    backup_path: Path | None = None
    data_path: Path | None = None
    accounts: Mapping[str, str] = field(default_factory=dict)
    server: str | None = None

    def first_account(self) -> tuple[str, str] | None:
        """Return the first declared ``(account, secret)`` couple."""
        for account, secret in self.accounts.items():
            return account, secret
        return None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation, secrets masked."""
        return {
            "name": self.name,
            "package": self.package,
            "backupPath": str(self.backup_path) if self.backup_path else None,
            "dataPath": str(self.data_path) if self.data_path else None,
            "accounts": {account: "********" for account in self.accounts},
            "server": self.server,
        }


@dataclass(frozen=True)
class ServiceDefinition:
    """A logical service hosted by a node."""

    name: str
    instance: str | None = None
    databases: tuple[str, ...] = ()
    hidden: bool = False
    workloads: Mapping[str, tuple[Mapping[str, object], ...]] = field(default_factory=dict)
    data: Mapping[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "name": self.name,
            "instance": self.instance,
            "databases": list(self.databases),
            "hidden": self.hidden,
            "workloads": {name: [dict(task) for task in tasks] for name, tasks in self.workloads.items()},
        }


@dataclass(frozen=True)
class SiteConfig:
    """Typed view of the ``toops`` family of site keys."""

    logs_dir: Path = field(default_factory=paths.default_logs_root)
    execution_reports_dir: Path | None = None
    execution_reports_excludes: tuple[str, ...] = ()
    msg_out_with_log: bool = True
    msg_verbose_with_log: bool = True
    default_instance: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "logs_dir": str(self.logs_dir),
            "execution_reports_dir": str(self.execution_reports_dir) if self.execution_reports_dir else None,
            "execution_reports_excludes": list(self.execution_reports_excludes),
            "msg_out_with_log": self.msg_out_with_log,
            "msg_verbose_with_log": self.msg_verbose_with_log,
            "default_instance": self.default_instance,
        }


@dataclass(frozen=True)
class NodeConfig:
    """Typed view of a node document."""

    name: str
    instances: Mapping[str, InstanceDefinition] = field(default_factory=dict)
    services: Mapping[str, ServiceDefinition] = field(default_factory=dict)
    default_instance: str | None = None


@dataclass
class Configuration:
    """The loaded configuration of a run."""

    host: str
    site: Document = field(default_factory=dict)
    node: Document = field(default_factory=dict)
    site_root: Path | None = None
    roots: tuple[Path, ...] = ()
    site_config: SiteConfig = field(default_factory=SiteConfig)
    node_config: NodeConfig | None = None
    service_name: str | None = None
    service: Document | None = None

    def __post_init__(self) -> None:
        if self.node_config is None:
            self.node_config = NodeConfig(name=self.host)

    @property
    def nodes(self) -> NodeConfig:
        """Return the typed node view."""
        return cast(NodeConfig, self.node_config)

    def merged(self) -> Document:
        """Return the site ``toops`` keys overridden by the node, then the service."""
        result = deep_copy(_as_dict(self.site.get("toops"), "toops"))
        deep_merge(result, deep_copy(self.node))
        if self.service:
            deep_merge(result, deep_copy(self.service))
        return result

    def var(self, path: Sequence[str] | str) -> object | None:
        """Return the value at *path* in the merged configuration, or ``None``."""
        segments = path.split(".") if isinstance(path, str) else list(path)
        return lookup(self.merged(), segments)


def read_document(path: Path) -> Document:
    """Read a JSON or YAML document which must decode to a mapping."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"{path}: unable to read the file ({exc.strerror or exc})") from exc
    try:
        if path.suffix.lower() in {".yml", ".yaml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"{path}: invalid document ({exc})") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"{path}: expected a mapping at the top level, found {type(data).__name__}")
    return _as_dict(data, str(path))


def substitute_macros(value: object, macros: Mapping[str, str]) -> object:
    """Replace ``<NAME>`` macros in every string of *value*."""
    if isinstance(value, str):
        for name, replacement in macros.items():
            value = value.replace(f"<{name}>", replacement)
        return value
    if isinstance(value, Mapping):
        return {key: substitute_macros(item, macros) for key, item in value.items()}
    if isinstance(value, list):
        return [substitute_macros(item, macros) for item in value]
    return value


def load_site(ctx: ExecutionContext, env: Mapping[str, str] | None = None) -> Document:
    """Load, override and evaluate the site document.

    A missing ``TTP_SITE`` or site file is only a warning: the run proceeds
    with an empty site document.
    """
    environ = ctx.env if env is None else env
    root = paths.site_root(environ)
    if root is None:
        ctx.warn(f"{paths.SITE_ENV_VAR} is not set, running with an empty site configuration")
        return {}
    path = paths.first_existing(paths.site_file_candidates(root))
    if path is None:
        ctx.warn(f"no site configuration found in '{root}', running with an empty site configuration")
        return {}
    ctx.verbose(f"reading site configuration from '{path}'")
    try:
        document = read_document(path)
        others = sorted(key for key in document if not key.startswith(SITE_KEY_PREFIXES))
        if others:
            joined = ", ".join(f"'{key}'" for key in others)
            raise ConfigError(
                f"{path}: invalid key(s) {joined}; site own keys should be inside the 'site' hierarchy"
            )
        apply_env_overrides(document, environ)
    except ConfigError as exc:
        ctx.error(str(exc))
        return {}
    return cast(
        Document,
        evaluate(
            document,
            names={"host": ctx.host},
            self_name="site",
            var_source=lambda snapshot: _mapping_at(snapshot, "toops"),
            env=environ,
            clock=ctx.clock,
            on_error=ctx.error,
        ),
    )


def load_host(
    ctx: ExecutionContext,
    hostname: str,
    site_root: Path | None = None,
    roots: tuple[Path, ...] = (),
    *,
    site: Document | None = None,
) -> Document:
    """Load and evaluate the node document of *hostname*.

    The document must hold a single top-level key equal to the upper-cased
    hostname. The returned body is evaluated and gets a ``name`` key.
    """
    host = hostname.upper()
    candidates = paths.node_file_candidates(host, site_root, roots)
    path = paths.first_existing(candidates)
    if path is None:
        searched = ", ".join(str(candidate) for candidate in candidates) or "no search location"
        ctx.error(f"unable to find a configuration for node '{host}' (searched: {searched})")
        return {}
    ctx.verbose(f"reading node configuration from '{path}'")
    try:
        document = read_document(path)
    except ConfigError as exc:
        ctx.error(str(exc))
        return {}
    keys = list(document)
    if len(keys) != 1 or str(keys[0]).upper() != host:
        found = ", ".join(keys) or "(none)"
        ctx.error(f"{path}: hostname '{host}' expected, found '{found}'")
        return {}
    try:
        body = _as_dict(document[keys[0]], f"{host}")
    except ConfigError as exc:
        ctx.error(str(exc))
        return {}
    body = cast(Document, substitute_macros(body, {"HOST": host, "NODE": host}))
    site_document = site or {}
    result = cast(
        Document,
        evaluate(
            body,
            names={"host": host, "site": site_document},
            self_name="node",
            var_source=lambda snapshot: _merge_views(_mapping_at(site_document, "toops"), snapshot),
            env=ctx.env,
            clock=ctx.clock,
            on_error=ctx.error,
        ),
    )
    result["name"] = host
    return result


def read_service_document(ctx: ExecutionContext, name: str) -> Document:
    """Return the evaluated ``services/<name>.json`` site document, or ``{}``."""
    config = ctx.config
    root = config.site_root if config is not None else paths.site_root(ctx.env)
    path = paths.service_file(root, name)
    if path is None or not path.is_file():
        return {}
    try:
        document = read_document(path)
    except ConfigError as exc:
        ctx.error(str(exc))
        return {}
    document = cast(Document, substitute_macros(document, {"SERVICE": name}))
    names: dict[str, object] = {"host": ctx.host}
    if config is not None:
        names.update({"site": config.site, "node": config.node})
    return cast(
        Document,
        evaluate(
            document,
            names=names,
            self_name="service",
            env=ctx.env,
            clock=ctx.clock,
            on_error=ctx.error,
        ),
    )


def load_configuration(ctx: ExecutionContext) -> Configuration:
    """Load the site and node configuration of the run into ``ctx.config``.

    Logging starts as soon as the site document is known so that node
    configuration problems land in the daily log.
    """
    root = paths.site_root(ctx.env)
    roots = paths.search_roots(ctx.env)
    site = load_site(ctx)
    try:
        site_config = build_site_config(site)
    except ConfigError as exc:
        ctx.error(str(exc))
        site_config = SiteConfig()
    config = Configuration(host=ctx.host, site=site, site_root=root, roots=roots, site_config=site_config)
    ctx.config = config
    ctx.attach_logger(site_config.logs_dir)
    config.node = load_host(ctx, ctx.host, root, roots, site=site)
    try:
        config.node_config = build_node_config(ctx.host, config.node)
    except ConfigError as exc:
        ctx.error(str(exc))
    return config


def build_site_config(site: Mapping[str, object]) -> SiteConfig:
    """Build the typed site view, raising :class:`ConfigError` on wrong types."""
    toops = _as_dict(site.get("toops"), "toops")
    defaults = SiteConfig()
    logs_dir = toops.get("logsDir")
    reports = _as_dict(toops.get("executionReports"), "toops.executionReports")
    reports_dir = reports.get("dir")
    excludes = _as_str_tuple(reports.get("excludes"), "toops.executionReports.excludes")
    dbms = _as_dict(toops.get("DBMS"), "toops.DBMS")
    instance = dbms.get("instance")
    return SiteConfig(
        logs_dir=_to_path(logs_dir) if logs_dir is not None else defaults.logs_dir,
        execution_reports_dir=_to_path(reports_dir) if reports_dir is not None else None,
        execution_reports_excludes=excludes,
        msg_out_with_log=_expect_bool(
            lookup(toops, ["msgOut", "withLog"]), "toops.msgOut.withLog", default=True
        ),
        msg_verbose_with_log=_expect_bool(
            lookup(toops, ["msgVerbose", "withLog"]), "toops.msgVerbose.withLog", default=True
        ),
        default_instance=_expect_str(instance, "toops.DBMS.instance") if instance is not None else None,
    )


def build_node_config(name: str, node: Mapping[str, object]) -> NodeConfig:
    """Build the typed node view, raising :class:`ConfigError` on wrong types."""
    instances_raw = _as_dict(node.get(INSTANCES_KEY), INSTANCES_KEY)
    instances = {
        key: build_instance(key, _as_dict(value, f"{INSTANCES_KEY}.{key}"))
        for key, value in instances_raw.items()
    }
    services_raw = _as_dict(node.get(SERVICES_KEY), SERVICES_KEY)
    services = {
        key: build_service(key, _as_dict(value, f"{SERVICES_KEY}.{key}"))
        for key, value in services_raw.items()
    }
    dbms = _as_dict(node.get("DBMS"), "DBMS")
    instance = dbms.get("instance")
    return NodeConfig(
        name=name.upper(),
        instances=instances,
        services=services,
        default_instance=_expect_str(instance, "DBMS.instance") if instance is not None else None,
    )


def build_instance(name: str, data: Mapping[str, object]) -> InstanceDefinition:
    """Build an :class:`InstanceDefinition` from its node subtree."""
    label = f"{INSTANCES_KEY}.{name}"
    package = data.get("package")
    backup_path = data.get("backupPath")
    data_path = data.get("dataPath")
    server = data.get("server")
    accounts = {
        account: _expect_str(secret, f"{label}.accounts.{account}")
        for account, secret in _as_dict(data.get("accounts"), f"{label}.accounts").items()
    }
    return InstanceDefinition(
        name=name,
        package=_expect_str(package, f"{label}.package") if package is not None else None,
        backup_path=_to_path(backup_path) if backup_path else None,
        data_path=_to_path(data_path) if data_path else None,
        accounts=accounts,
        server=_expect_str(server, f"{label}.server") if server is not None else None,
    )


def build_service(name: str, data: Mapping[str, object]) -> ServiceDefinition:
    """Build a :class:`ServiceDefinition` from its (merged) subtree.

    The instance is read from ``instance``, falling back to ``DBMS.instance``.
    """
    label = f"{SERVICES_KEY}.{name}"
    instance = data.get("instance")
    if instance is None:
        instance = lookup(data, ["DBMS", "instance"])
    databases = data.get("databases")
    if databases is None:
        databases = lookup(data, ["DBMS", "databases"])
    workloads_raw = _as_dict(data.get("workloads"), f"{label}.workloads")
    workloads: dict[str, tuple[Mapping[str, object], ...]] = {}
    for workload, tasks in workloads_raw.items():
        workloads[workload] = tuple(
            _as_dict(task, f"{label}.workloads.{workload}[{index}]")
            for index, task in enumerate(_as_sequence(tasks, f"{label}.workloads.{workload}"))
        )
    return ServiceDefinition(
        name=name,
        instance=_expect_str(instance, f"{label}.instance") if instance is not None else None,
        databases=_as_str_tuple(databases, f"{label}.databases"),
        hidden=_expect_bool(data.get("hidden"), f"{label}.hidden", default=False),
        workloads=workloads,
        data=deep_copy(data),
    )


def apply_env_overrides(document: MutableMapping[str, object], env: Mapping[str, str]) -> None:
    """Apply ``TTP_`` environment overrides to *document* in place."""
    for key, value in sorted(env.items()):
        if key in paths.RESERVED_ENV_KEYS or not key.startswith(paths.ENV_PREFIX):
            continue
        suffix = key[len(paths.ENV_PREFIX) :]
        segments = [segment for segment in suffix.split("__") if segment]
        if not segments:
            continue
        _assign_nested(document, segments, _coerce_value(value))


def deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    """Merge *overrides* into *target*; mappings merge, anything else replaces."""
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def deep_copy(source: Mapping[str, object]) -> Document:
    """Return a copy of *source* where nested mappings and lists are copied."""
    result: Document = {}
    for key, value in source.items():
        result[key] = _copy_value(value)
    return result


def _copy_value(value: object) -> object:
    if isinstance(value, Mapping):
        return deep_copy(_as_dict(value, "copy"))
    if isinstance(value, list):
        return [_copy_value(item) for item in value]
    return value


def _merge_views(base: Mapping[str, object], override: object) -> Document:
    result = deep_copy(base)
    if isinstance(override, Mapping):
        deep_merge(result, deep_copy(_as_dict(override, "override")))
    return result


def _mapping_at(document: object, key: str) -> Document:
    if isinstance(document, Mapping):
        value = document.get(key)
        if isinstance(value, Mapping):
            return _as_dict(value, key)
    return {}


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        name = _match_key(current, segment)
        existing = current.get(name)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[name] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[_match_key(current, path[-1])] = value


def _match_key(mapping: Mapping[str, object], segment: str) -> str:
    for key in mapping:
        if key.lower() == segment.lower():
            return key
    return segment.lower()


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "yes", "1", "false", "no", "0"}:
        return value.strip().lower() in {"true", "yes", "1"}
    if isinstance(value, int):
        return bool(value)
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if value is None:
        return ()
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _as_str_tuple(value: object, label: str) -> tuple[str, ...]:
    return tuple(_expect_str(item, f"{label}[{index}]") for index, item in enumerate(_as_sequence(value, label)))


def _as_dict(value: object | None, label: str) -> Document:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: Document = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "ConfigError",
    "Configuration",
    "Document",
    "InstanceDefinition",
    "NodeConfig",
    "ServiceDefinition",
    "SiteConfig",
    "apply_env_overrides",
    "build_instance",
    "build_node_config",
    "build_service",
    "build_site_config",
    "deep_copy",
    "deep_merge",
    "load_configuration",
    "load_host",
    "load_site",
    "read_document",
    "read_service_document",
    "substitute_macros",
]
