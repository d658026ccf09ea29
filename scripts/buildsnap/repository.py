"""Local artifact repository indexing and dependency lookup.

Artifacts are found by bare filename (``artifact-version.jar``) rather than
by walking the ``group/artifact/version`` layout, so the same index serves
Maven-local repositories and the Gradle cache, whose layouts differ.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .conventions import LIBRARY_INPUT_TAG, SOURCE_INPUT_TAG
from .models import DependencyCoordinate, ResolvedArtifact, Snapshot

logger = logging.getLogger(__name__)

INDEXED_SUFFIXES = (".jar", ".pom")


class RepositoryIndex:
    """Map of artifact filename → absolute path.

    When two files share a name, whichever is indexed last wins. With more
    than one repository root that choice depends on indexing order, which is
    a known limitation of filename-based lookup.
    """

    def __init__(self):
        self.paths: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self.paths)

    def __contains__(self, name: str) -> bool:
        return name in self.paths

    def get(self, name: str) -> Optional[str]:
        return self.paths.get(name)

    def register(self, path: Path) -> None:
        """Record a single artifact file, replacing any earlier same-named entry."""
        name = path.name
        if name.endswith(INDEXED_SUFFIXES):
            logger.debug("Registering: %s -> %s", name, path)
            self.paths[name] = str(path)
        else:
            logger.debug("Ignoring: %s", path)

    def index_directory(self, root) -> None:
        """Recursively index every ``.jar``/``.pom`` regular file under ``root``.

        Args:
            root: Repository root directory. Missing roots are skipped.
        """
        root = Path(root)
        if not root.is_dir():
            logger.debug("Ignoring non-existent path: %s", root)
            return
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for filename in sorted(filenames):
                path = Path(dirpath, filename)
                if path.is_file():
                    self.register(path.absolute())

    def index_maven_local(self, home_dir) -> None:
        self.index_directory(Path(home_dir, ".m2", "repository"))

    def index_gradle_caches(self, home_dir) -> None:
        self.index_directory(Path(home_dir, ".gradle", "caches"))


class DependencyResolver:
    """Resolve coordinates against a :class:`RepositoryIndex`.

    Args:
        index: The filename index to consult.
        include_sources: Also look up ``artifact-version-sources.jar``.
    """

    def __init__(self, index: RepositoryIndex, include_sources: bool = False):
        self.index = index
        self.include_sources = include_sources

    def resolve(self, coordinate: DependencyCoordinate) -> Optional[ResolvedArtifact]:
        """Look up the jar of ``coordinate``.

        A coordinate with only a ``.pom`` in the index is a BOM or parent
        POM and is silently ignored. One with neither is reported with a
        warning.

        Returns:
            The resolved artifact, or ``None`` if no jar was found.
        """
        logger.debug("Searching for: %s", coordinate.jar_name)
        jar_path = self.index.get(coordinate.jar_name)
        if jar_path is not None:
            sources = None
            if self.include_sources:
                sources = self.index.get(coordinate.sources_jar_name)
                if sources is None:
                    logger.debug("No sources found for dependency: %s", coordinate)
            return ResolvedArtifact(coordinate, jar_path, sources)
        if coordinate.pom_name in self.index:
            logger.debug("Ignoring dependency without code but with .pom: %s", coordinate)
        else:
            logger.warning("cannot resolve dependency: %s", coordinate)
        return None

    def resolve_into(self, snapshot: Snapshot, coordinate: DependencyCoordinate) -> Optional[ResolvedArtifact]:
        """Resolve ``coordinate`` and attach what was found to ``snapshot``."""
        artifact = self.resolve(coordinate)
        if artifact is not None:
            logger.debug("Adding dependency: %s", artifact.jar_path)
            snapshot.attach_file(LIBRARY_INPUT_TAG, artifact.jar_path)
            if artifact.sources_jar_path is not None:
                logger.debug("Adding dependency source: %s", artifact.sources_jar_path)
                snapshot.attach_file(SOURCE_INPUT_TAG, artifact.sources_jar_path)
        return artifact
