"""Workspace selection for proxied requests.

Precedence, first match wins:

1. ``workspaceAlias`` passed explicitly in the tool arguments
2. the project binding in ``meldoc.config.yml`` (cwd or any ancestor)
3. the global default in ``~/.meldoc/config.json``
4. nothing, so the API picks (e.g. the caller's only workspace)

An explicit alias becomes the new global default only when no project
binding exists, so a one-off override never replaces a pinned workspace.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

import yaml

from meldoc_proxy.core.store import GlobalConfigStore, StoreError

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILENAME = "meldoc.config.yml"
WORKSPACE_ALIAS_KEY = "workspaceAlias"


class WorkspaceSource(str, Enum):
    """Where a resolved workspace alias came from."""

    EXPLICIT = "explicit"
    REPO = "repo"
    CONFIG = "config"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class WorkspaceResolution:
    alias: str | None
    source: WorkspaceSource


def find_project_config(start_dir: Path) -> Path | None:
    """Walk from ``start_dir`` up to the filesystem root looking for the project file."""
    current = Path(start_dir).resolve()
    for directory in (current, *current.parents):
        candidate = directory / PROJECT_CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def read_project_alias(config_path: Path) -> str | None:
    """Workspace alias pinned in a project file, or None if empty/malformed."""
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring unreadable project config {config_path}: {e}")
        return None

    if not isinstance(config, dict):
        return None
    alias = config.get(WORKSPACE_ALIAS_KEY)
    if isinstance(alias, str) and alias.strip():
        return alias.strip()
    return None


def explicit_alias(arguments: dict[str, Any] | None) -> str | None:
    """The ``workspaceAlias`` argument, if it is a non-empty string."""
    if not isinstance(arguments, dict):
        return None
    alias = arguments.get(WORKSPACE_ALIAS_KEY)
    if isinstance(alias, str) and alias.strip():
        return alias.strip()
    return None


class WorkspaceStrategy(Protocol):
    """One step of the workspace precedence chain."""

    def resolve(self, arguments: dict[str, Any] | None) -> WorkspaceResolution | None: ...


class ProjectBinding:
    """Reads the project binding fresh on every call."""

    def __init__(self, cwd: Callable[[], Path] = Path.cwd):
        self.cwd = cwd

    def alias(self) -> str | None:
        config_path = find_project_config(self.cwd())
        if config_path is None:
            return None
        return read_project_alias(config_path)


class ExplicitAliasStrategy:
    def __init__(self, binding: ProjectBinding, config_store: GlobalConfigStore):
        self.binding = binding
        self.config_store = config_store

    def resolve(self, arguments: dict[str, Any] | None) -> WorkspaceResolution | None:
        alias = explicit_alias(arguments)
        if alias is None:
            return None

        if self.binding.alias() is None:
            if self.config_store.get_workspace_alias() != alias:
                try:
                    self.config_store.set_workspace_alias(alias)
                except StoreError as e:
                    logger.warning(f"Could not cache workspace '{alias}': {e.message}")
        else:
            logger.debug(f"Project binding present, not caching workspace '{alias}'")

        return WorkspaceResolution(alias, WorkspaceSource.EXPLICIT)


class ProjectFileStrategy:
    def __init__(self, binding: ProjectBinding):
        self.binding = binding

    def resolve(self, arguments: dict[str, Any] | None) -> WorkspaceResolution | None:
        alias = self.binding.alias()
        if alias is None:
            return None
        return WorkspaceResolution(alias, WorkspaceSource.REPO)


class GlobalDefaultStrategy:
    def __init__(self, config_store: GlobalConfigStore):
        self.config_store = config_store

    def resolve(self, arguments: dict[str, Any] | None) -> WorkspaceResolution | None:
        alias = self.config_store.get_workspace_alias()
        if alias is None:
            return None
        return WorkspaceResolution(alias, WorkspaceSource.CONFIG)


class WorkspaceResolver:
    """Walks the workspace strategies in precedence order."""

    def __init__(self, strategies: list[WorkspaceStrategy]):
        self.strategies = strategies

    @classmethod
    def create(
        cls, config_store: GlobalConfigStore, cwd: Callable[[], Path] = Path.cwd
    ) -> "WorkspaceResolver":
        binding = ProjectBinding(cwd)
        return cls(
            [
                ExplicitAliasStrategy(binding, config_store),
                ProjectFileStrategy(binding),
                GlobalDefaultStrategy(config_store),
            ]
        )

    def resolve(self, arguments: dict[str, Any] | None = None) -> WorkspaceResolution:
        for strategy in self.strategies:
            resolution = strategy.resolve(arguments)
            if resolution is not None:
                logger.debug(
                    f"Workspace '{resolution.alias}' from {resolution.source.value}"
                )
                return resolution
        return WorkspaceResolution(None, WorkspaceSource.NOT_FOUND)

    def resolve_alias(self, arguments: dict[str, Any] | None = None) -> str | None:
        return self.resolve(arguments).alias


__all__ = [
    "PROJECT_CONFIG_FILENAME",
    "WorkspaceSource",
    "WorkspaceResolution",
    "find_project_config",
    "read_project_alias",
    "explicit_alias",
    "ProjectBinding",
    "ExplicitAliasStrategy",
    "ProjectFileStrategy",
    "GlobalDefaultStrategy",
    "WorkspaceResolver",
]
