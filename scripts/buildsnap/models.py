"""Snapshot data model classes.

Pure data structures describing what is mined from a build and what ends
up in the snapshot. No behavior beyond small derived properties, and no
imports from other buildsnap modules.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class InvocationKind(Enum):
    """The kind of build action recognized in a trace record."""
    COMPILE = "compile"
    OPTIMIZE = "optimize"


class ParseState(Enum):
    """States of the dependency report parser.

    The state only ever advances: ``WAITING`` → ``TREE_ACTIVE`` → ``TREE_DONE``.
    """
    WAITING = "waiting"
    TREE_ACTIVE = "tree-active"
    TREE_DONE = "tree-done"


@dataclass
class BuildInvocation:
    """One mined trace record.

    Attributes:
        kind: Whether the record is a compiler or an optimizer invocation.
        raw_command: The shell command description found in the trace.
        args_file: The optimizer ``@``-argument file, for ``OPTIMIZE`` records.
    """
    kind: InvocationKind
    raw_command: str
    args_file: Optional[Path] = None


@dataclass
class ConfigurationEntry:
    """One rule/configuration file packaged into the configurations archive.

    Attributes:
        source_path: Canonical path of the file on disk.
        logical_name: Entry name inside the archive (unique per archive).
        data: The bytes written for the entry.
    """
    source_path: Path
    logical_name: str
    data: bytes = b""


@dataclass(frozen=True)
class DependencyCoordinate:
    """A ``group:artifact:version`` library identity."""
    group_id: str
    artifact_id: str
    version: str

    @classmethod
    def parse(cls, text: str) -> Optional["DependencyCoordinate"]:
        """Parse ``group:artifact:version``; anything else yields ``None``."""
        parts = text.strip().split(":")
        if len(parts) != 3:
            return None
        return cls(parts[0], parts[1], parts[2])

    @property
    def prefix(self) -> str:
        return f"{self.artifact_id}-{self.version}"

    @property
    def jar_name(self) -> str:
        return self.prefix + ".jar"

    @property
    def sources_jar_name(self) -> str:
        return self.prefix + "-sources.jar"

    @property
    def pom_name(self) -> str:
        return self.prefix + ".pom"

    def __str__(self) -> str:
        return f"{self.group_id}:{self.artifact_id}:{self.version}"


@dataclass
class ResolvedArtifact:
    """A dependency located in a local repository.

    Attributes:
        coordinate: The coordinate that was resolved.
        jar_path: Absolute path of the artifact jar.
        sources_jar_path: Absolute path of the sources jar, when requested and found.
    """
    coordinate: DependencyCoordinate
    jar_path: str
    sources_jar_path: Optional[str] = None


@dataclass
class PomDependency:
    """A ``<dependency>`` element as written in a POM.

    The version may be a ``${property}`` reference or absent (managed by a
    parent or BOM).
    """
    group_id: Optional[str]
    artifact_id: Optional[str]
    version: Optional[str] = None


@dataclass
class PomModel:
    """The parts of one ``pom.xml`` needed for dependency resolution.

    Attributes:
        path: Filesystem path the POM was read from.
        has_parent: Whether a ``<parent>`` element is declared.
        properties: The ``<properties>`` block.
        dependencies: Direct ``<dependencies>``.
    """
    path: Path
    has_parent: bool = False
    properties: dict = field(default_factory=dict)
    dependencies: list = field(default_factory=list)


@dataclass
class SpecialConfiguration:
    """The generated "disabling rules" helper file and its print target."""
    path: Path
    output_rules_path: Optional[Path] = None


@dataclass
class Snapshot:
    """The collected inputs of one build, handed over to the posting layer.

    Inputs are stored in attachment order as ``(tag, value)`` pairs. A file
    input with a ``None`` path is ignored so callers can attach best-effort
    lookups directly.

    Attributes:
        snapshot_id: Identifier the server expects for the snapshot.
        file_inputs: ``(tag, path)`` pairs.
        string_inputs: ``(tag, value)`` pairs.
    """
    snapshot_id: str = "snapshot"
    file_inputs: list = field(default_factory=list)
    string_inputs: list = field(default_factory=list)

    def attach_file(self, tag: str, path) -> None:
        if path is None:
            return
        self.file_inputs.append((tag, str(path)))

    def attach_string(self, tag: str, value: str) -> None:
        self.string_inputs.append((tag, value))

    def files(self, tag: str) -> list[str]:
        """Return every file path attached under ``tag``, in order."""
        return [path for t, path in self.file_inputs if t == tag]

    def strings(self, tag: str) -> list[str]:
        return [value for t, value in self.string_inputs if t == tag]
