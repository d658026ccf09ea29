"""Parsing of the Gradle ``dependencies`` report.

The report lists, per configuration, an indented tree of resolved
dependencies::

    runtimeClasspath - Runtime classpath of source set 'main'.
    +--- project :lib
    +--- com.google.guava:guava:31.1-jre
    |    \\--- com.google.guava:failureaccess:1.0.1
    \\--- org.slf4j:slf4j-api:1.7.30 -> 1.7.36 (*)

Parsing is split in two. :func:`step` is a pure transition function from
``(state, project, line)`` to the next state, project and the dependency
effects of that line. :class:`DependencyTreeParser` drives it over a report
and applies the effects to a snapshot. Only the first ``runtimeClasspath``
block of a report is read.
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .archiver import tmp_file, zip_tree
from .config import user_home_dir
from .conventions import BINARY_INPUT_TAG, SOURCE_INPUT_TAG
from .errors import ArchiveError
from .models import DependencyCoordinate, ParseState, Snapshot
from .repository import DependencyResolver, RepositoryIndex

logger = logging.getLogger(__name__)

CONFIGURATION_MARKER = "runtimeClasspath "
ROOT_PROJECT_MARKER = "Root project"
PROJECT_MARKER = "Project "
ROOT_PROJECT = "<ROOT>"
DEP_PROJECT_PREFIX = "project "
TREE_CHARS = "|\t +-\\"
REPEAT_MARKERS = (" (*)", " (c)")
ARROW = " -> "


@dataclass(frozen=True)
class ExternalDependency:
    """A repository dependency found in the tree.

    ``coordinate`` is ``None`` when the token is not ``group:artifact:version``.
    """
    token: str
    coordinate: Optional[DependencyCoordinate]


@dataclass(frozen=True)
class ProjectDependency:
    """A sibling-module dependency, with its directory relative to the report's working directory."""
    token: str
    path: Path


def normalize_token(line: str) -> Optional[str]:
    """Recover the dependency notation from one tree line.

    Tree drawing characters are stripped from the front, a trailing
    ``(*)``/``(c)`` marker is dropped, and a version override
    ``g:a:X -> Y`` becomes ``g:a:Y``.

    Returns:
        The normalized token, or ``None`` if the line holds only tree drawing.
    """
    line = line.strip()
    idx = next((i for i, c in enumerate(line) if c not in TREE_CHARS), None)
    if idx is None:
        return None
    token = line[idx:]
    for marker in REPEAT_MARKERS:
        if token.endswith(marker):
            token = token[:-len(marker)].rstrip()
            break
    arrow = token.find(ARROW)
    if arrow > 0:
        head = token[:arrow]
        new_version = token[arrow + len(ARROW):].strip()
        if head.count(":") == 1:
            # "g:a -> Y": the declaration carried no version.
            token = head + ":" + new_version
        else:
            token = head[:head.rfind(":")] + ":" + new_version
    return token.strip()


def _project_name(text: str) -> str:
    name = text.strip()
    if " - " in name:
        name = name.split(" - ", 1)[0]
    return name.strip().strip("'\"")


def project_dependency_path(project: Optional[str], dependency: str) -> Path:
    """Compute the directory of a sibling module.

    Walks up one level per segment of the current project path (none for the
    root project), then down through the segments of the dependency path.

    Args:
        project: Current project path, e.g. ``:app``, or ``<ROOT>``/``None``.
        dependency: Dependency project path, e.g. ``:libs:core``.
    """
    parts = []
    if project is not None and project != ROOT_PROJECT:
        parts += [".." for part in project.split(":") if part]
    parts += [part for part in dependency.split(":") if part]
    return Path(*parts) if parts else Path(".")


def step(state: ParseState, project: Optional[str], line: str):
    """Advance the report parser by one line.

    Args:
        state: Current parser state.
        project: Current project path, as last announced in the report.
        line: The next report line.

    Returns:
        A ``(state, project, effects)`` tuple; ``effects`` is a list of
        :class:`ExternalDependency` / :class:`ProjectDependency`.
    """
    if state is ParseState.WAITING:
        if line.startswith(CONFIGURATION_MARKER):
            return ParseState.TREE_ACTIVE, project, []
        if line.startswith(ROOT_PROJECT_MARKER):
            return state, ROOT_PROJECT, []
        if line.startswith(PROJECT_MARKER):
            return state, _project_name(line[len(PROJECT_MARKER):]), []
        return state, project, []

    if state is ParseState.TREE_ACTIVE:
        if not line.strip():
            return ParseState.TREE_DONE, project, []
        token = normalize_token(line)
        if token is None:
            return state, project, []
        if token.startswith(DEP_PROJECT_PREFIX):
            path = project_dependency_path(project, token[len(DEP_PROJECT_PREFIX):])
            return state, project, [ProjectDependency(token, path)]
        return state, project, [ExternalDependency(token, DependencyCoordinate.parse(token))]

    return state, project, []


class DependencyTreeParser:
    """Apply a dependency report to a snapshot.

    External dependencies go to the resolver. Sibling modules found on disk
    have their compiled classes and sources zipped into temporary jars that
    are attached as application code and sources. Each distinct token is
    processed once per parser.

    Args:
        resolver: Resolves external coordinates.
        snapshot: Receives the resolved inputs.
        work_dir: Directory the report was produced in.
    """

    def __init__(self, resolver: DependencyResolver, snapshot: Snapshot, work_dir: Path):
        self.resolver = resolver
        self.snapshot = snapshot
        self.work_dir = Path(work_dir)
        self.state = ParseState.WAITING
        self.project: Optional[str] = None
        self.seen: set[str] = set()

    def feed(self, line: str) -> None:
        logger.debug("Processing line: %s", line)
        self.state, self.project, effects = step(self.state, self.project, line)
        for effect in effects:
            if effect.token in self.seen:
                logger.debug("Dependency already processed: %s", effect.token)
                continue
            self.seen.add(effect.token)
            logger.debug("Found dependency: %s", effect.token)
            if isinstance(effect, ProjectDependency):
                self.resolve_project_dependency(effect)
            else:
                self.resolve_external_dependency(effect)

    def feed_all(self, lines) -> None:
        for line in lines:
            self.feed(line)

    def resolve_external_dependency(self, effect: ExternalDependency) -> None:
        if effect.coordinate is None:
            logger.warning("cannot handle dependency: %s", effect.token)
            return
        self.resolver.resolve_into(self.snapshot, effect.coordinate)

    def resolve_project_dependency(self, effect: ProjectDependency) -> None:
        subproject = self.work_dir / effect.path
        if not subproject.is_dir():
            logger.debug("No directory for project dependency %s: %s", effect.token, subproject)
            return
        logger.info("Detected subproject directory: %s", subproject)
        dep_id = effect.token[len(DEP_PROJECT_PREFIX):].replace(":", "_")
        code = self._zip_dir(subproject / "build" / "classes", f"clyze-{dep_id}-", "-classes.jar")
        self.snapshot.attach_file(BINARY_INPUT_TAG, code)
        sources = self._zip_dir(subproject / "src", f"clyze-{dep_id}-", "-sources.jar")
        self.snapshot.attach_file(SOURCE_INPUT_TAG, sources)

    @staticmethod
    def _zip_dir(directory: Path, prefix: str, suffix: str) -> Optional[Path]:
        if not directory.is_dir():
            return None
        archive = tmp_file(prefix, suffix)
        try:
            zip_tree(directory, archive)
        except ArchiveError as ex:
            logger.error("%s", ex)
            return None
        return archive


def find_gradle(directory: Optional[Path]) -> str:
    """Locate the Gradle launcher for ``directory``.

    Looks for ``gradlew``/``gradlew.bat`` in the directory and its parents,
    stopping at the first directory holding ``settings.gradle``, where the
    ``gradle`` on the PATH is used.
    """
    while directory is not None:
        for wrapper in ("gradlew", "gradlew.bat"):
            candidate = directory / wrapper
            if candidate.exists():
                return str(candidate.resolve())
        if (directory / "settings.gradle").exists():
            return "gradle"
        parent = directory.parent
        directory = parent if parent != directory else None
    return "gradle"


class GradleProject:
    """Dependency resolution for a Gradle project via its ``dependencies`` report.

    Args:
        project_dir: The directory Gradle runs in.
        snapshot: Receives resolved inputs.
        include_sources: Also attach ``-sources.jar`` of dependencies.
        home_dir: Home directory holding ``.m2`` and ``.gradle``; looked up if omitted.
    """

    def __init__(self, project_dir: Path, snapshot: Snapshot, include_sources: bool = False, home_dir=None):
        self.project_dir = Path(project_dir)
        self.snapshot = snapshot
        self.home_dir = Path(home_dir) if home_dir is not None else user_home_dir()
        self.index = RepositoryIndex()
        self.resolver = DependencyResolver(self.index, include_sources)

    def index_repositories(self) -> bool:
        if self.home_dir is None:
            logger.warning("no user home directory found, cannot resolve dependencies.")
            return False
        if os.name == "nt":
            logger.error("dependency resolution on Windows is not yet supported.")
            return False
        logger.debug("Reading Gradle caches...")
        self.index.index_maven_local(self.home_dir)
        self.index.index_gradle_caches(self.home_dir)
        logger.debug("Dependency paths: %d", len(self.index))
        return True

    def dependency_report(self) -> Optional[list[str]]:
        """Run ``gradle dependencies`` and return its output lines, or ``None`` on failure."""
        cmd = [find_gradle(self.project_dir.resolve()), "dependencies"]
        try:
            result = subprocess.run(cmd, cwd=self.project_dir, capture_output=True, text=True, check=False)
        except OSError as ex:
            logger.error("Could not run %s: %s", cmd, ex)
            return None
        if result.returncode != 0:
            logger.error("%s exited with code %d", cmd, result.returncode)
            return None
        return result.stdout.splitlines()

    def resolve_dependencies(self) -> Optional[DependencyTreeParser]:
        """Index local repositories and apply the dependency report to the snapshot."""
        if not self.index_repositories():
            return None
        logger.info("Analyzing dependencies...")
        lines = self.dependency_report()
        if lines is None:
            return None
        parser = DependencyTreeParser(self.resolver, self.snapshot, self.project_dir)
        parser.feed_all(lines)
        logger.debug("Dependencies: %d", len(parser.seen))
        return parser
