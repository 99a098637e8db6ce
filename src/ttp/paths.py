"""Filesystem and host conventions shared by the TTP runtime."""
from __future__ import annotations

import os
import socket
import tempfile
from collections.abc import Mapping
from pathlib import Path

ENV_PREFIX = "TTP_"
SITE_ENV_VAR = f"{ENV_PREFIX}SITE"
ROOTS_ENV_VAR = f"{ENV_PREFIX}ROOTS"
NODE_ENV_VAR = f"{ENV_PREFIX}NODE"
RESERVED_ENV_KEYS = frozenset({SITE_ENV_VAR, ROOTS_ENV_VAR, NODE_ENV_VAR})

SITE_FILE_NAMES = ("toops.json", "toops.yml", "toops.yaml")
NODE_SUBDIRS = ("", "machines", "nodes")
SERVICES_SUBDIR = "services"
DAEMONS_SUBDIR = "daemons"


def hostname(env: Mapping[str, str] | None = None) -> str:
    """Return the upper-cased short hostname of the current node.

    ``TTP_NODE`` takes precedence over the network name so that a site tree
    can be exercised from another machine.
    """
    environ = os.environ if env is None else env
    override = environ.get(NODE_ENV_VAR)
    if override:
        return override.upper()
    return socket.gethostname().split(".")[0].upper()


def username(env: Mapping[str, str] | None = None) -> str:
    """Return the name of the user running the process."""
    environ = os.environ if env is None else env
    for key in ("LOGNAME", "USER", "USERNAME"):
        value = environ.get(key)
        if value:
            return value
    return "unknown"


def site_root(env: Mapping[str, str] | None = None) -> Path | None:
    """Return the site root directory, ``None`` when ``TTP_SITE`` is unset."""
    environ = os.environ if env is None else env
    value = environ.get(SITE_ENV_VAR)
    if not value:
        return None
    return Path(value).expanduser()


def search_roots(env: Mapping[str, str] | None = None) -> tuple[Path, ...]:
    """Return the extra trees listed in ``TTP_ROOTS``, in order."""
    environ = os.environ if env is None else env
    value = environ.get(ROOTS_ENV_VAR, "")
    return tuple(Path(item).expanduser() for item in value.split(os.pathsep) if item)


def default_temp_dir() -> Path:
    """Return the TTP temporary directory."""
    return Path(tempfile.gettempdir()) / "ttp"


def default_logs_root() -> Path:
    """Return the logs root used when the site does not define one."""
    return default_temp_dir() / "logs"


def site_file_candidates(root: Path) -> list[Path]:
    """Return the candidate site documents under *root*."""
    return [root / name for name in SITE_FILE_NAMES]


def node_file_candidates(host: str, site: Path | None, roots: tuple[Path, ...] = ()) -> list[Path]:
    """Return the candidate node documents for *host*, most specific first."""
    candidates: list[Path] = []
    filename = f"{host}.json"
    if site is not None:
        candidates.extend((site / subdir / filename) if subdir else (site / filename) for subdir in NODE_SUBDIRS)
    candidates.extend(root / "nodes" / filename for root in roots)
    return candidates


def service_file(site: Path | None, service: str) -> Path | None:
    """Return the optional per-service document path."""
    if site is None:
        return None
    return site / SERVICES_SUBDIR / f"{service}.json"


def daemon_file_candidates(name: str, site: Path | None, roots: tuple[Path, ...] = ()) -> list[Path]:
    """Return the candidate daemon configurations for *name*.

    A *name* which already looks like a path is returned as the sole candidate.
    """
    as_path = Path(name).expanduser()
    if as_path.suffix == ".json" or as_path.parent != Path("."):
        return [as_path]
    filename = f"{name}.json"
    candidates: list[Path] = []
    if site is not None:
        candidates.append(site / DAEMONS_SUBDIR / filename)
    candidates.extend(root / DAEMONS_SUBDIR / filename for root in roots)
    return candidates


def first_existing(candidates: list[Path]) -> Path | None:
    """Return the first readable file among *candidates*."""
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


__all__ = [
    "DAEMONS_SUBDIR",
    "ENV_PREFIX",
    "NODE_ENV_VAR",
    "RESERVED_ENV_KEYS",
    "ROOTS_ENV_VAR",
    "SERVICES_SUBDIR",
    "SITE_ENV_VAR",
    "daemon_file_candidates",
    "default_logs_root",
    "default_temp_dir",
    "first_existing",
    "hostname",
    "node_file_candidates",
    "search_roots",
    "service_file",
    "site_file_candidates",
    "site_root",
    "username",
]
