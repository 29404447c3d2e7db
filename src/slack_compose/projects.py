from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from .config import ConfigError
from .logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Project:
    name: str
    working_dir: str


class ProjectRegistry:
    """Read-only lookup of configured projects, keyed by exact name."""

    def __init__(self, projects: Iterable[Project] = ()) -> None:
        self._projects: dict[str, Project] = {}
        for project in projects:
            self._projects[project.name] = project

    def get(self, name: str) -> Project | None:
        return self._projects.get(name)

    def names(self) -> list[str]:
        return list(self._projects)

    def __contains__(self, name: object) -> bool:
        return name in self._projects

    def __iter__(self) -> Iterator[Project]:
        return iter(self._projects.values())

    def __len__(self) -> int:
        return len(self._projects)


def load_projects(path: Path) -> ProjectRegistry:
    if not path.exists():
        logger.info("projects.config_missing", path=str(path))
        return ProjectRegistry()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read project config {path}: {exc}.") from exc
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(
            f"Invalid project config {path}; expected valid JSON."
        ) from exc
    registry = ProjectRegistry(_parse_projects(raw, path=path))
    logger.info("projects.loaded", path=str(path), count=len(registry))
    return registry


def _parse_projects(raw: object, *, path: Path) -> list[Project]:
    if not isinstance(raw, list):
        raise ConfigError(
            f"Invalid project config {path}; expected a list of projects."
        )
    projects: list[Project] = []
    seen: set[str] = set()
    for idx, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            raise ConfigError(
                f"Invalid project config {path}; entry {idx} is not an object."
            )
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(
                f"Invalid project config {path}; entry {idx} needs a non-empty `name`."
            )
        working_dir = item.get("working_dir", "")
        if not isinstance(working_dir, str):
            raise ConfigError(
                f"Invalid project config {path}; `working_dir` of {name!r} "
                "must be a string."
            )
        if name in seen:
            raise ConfigError(
                f"Invalid project config {path}; duplicate project {name!r}."
            )
        seen.add(name)
        projects.append(Project(name=name, working_dir=working_dir))
    return projects
