"""Shared test fixtures for the buildsnap test suite."""

import json
import textwrap
from pathlib import Path

import pytest

from buildsnap.models import Snapshot
from buildsnap.repository import DependencyResolver, RepositoryIndex


@pytest.fixture
def tmp_pom(tmp_path):
    """Factory fixture that writes a pom.xml under the temp directory and returns the path.

    ``subdir`` places the POM in a module directory, e.g. ``"core"``.
    """
    def _write(content: str, subdir: str = "") -> Path:
        directory = tmp_path / subdir if subdir else tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        pom = directory / "pom.xml"
        pom.write_text(textwrap.dedent(content), encoding="utf-8")
        return pom
    return _write


@pytest.fixture
def write_file(tmp_path):
    """Factory fixture that writes a text file relative to the temp directory."""
    def _write(relative: str, content: str = "") -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def fake_home(tmp_path):
    """A home directory with empty Maven-local and Gradle cache roots."""
    home = tmp_path / "home"
    (home / ".m2" / "repository").mkdir(parents=True)
    (home / ".gradle" / "caches").mkdir(parents=True)
    return home


@pytest.fixture
def add_artifact(fake_home):
    """Factory fixture that drops artifact files into the fake Maven-local repository.

    Returns the path of the jar (or of the pom, when ``jar=False``).
    """
    def _add(group: str, artifact: str, version: str, jar: bool = True,
             pom: bool = False, sources: bool = False, root: Path = None) -> Path:
        base = root if root is not None else fake_home / ".m2" / "repository"
        directory = base.joinpath(*group.split("."), artifact, version)
        directory.mkdir(parents=True, exist_ok=True)
        prefix = f"{artifact}-{version}"
        created = None
        if pom:
            created = directory / f"{prefix}.pom"
            created.write_text("<project/>", encoding="utf-8")
        if sources:
            (directory / f"{prefix}-sources.jar").write_bytes(b"PK")
        if jar:
            created = directory / f"{prefix}.jar"
            created.write_bytes(b"PK")
        return created
    return _add


@pytest.fixture
def resolver_for(fake_home):
    """Factory fixture: index the fake home and return a resolver over it."""
    def _make(include_sources: bool = False) -> DependencyResolver:
        index = RepositoryIndex()
        index.index_maven_local(fake_home)
        index.index_gradle_caches(fake_home)
        return DependencyResolver(index, include_sources)
    return _make


@pytest.fixture
def snapshot():
    return Snapshot()


@pytest.fixture
def trace_file(tmp_path):
    """Factory fixture that writes a build trace holding the given command descriptions."""
    def _write(*descriptions: str) -> Path:
        records = [{"name": "step", "ph": "B", "args": {"description": d}} for d in descriptions]
        records.insert(0, {"name": "buck", "ph": "M", "args": {}})
        path = tmp_path / "build.trace"
        path.write_text(json.dumps(records), encoding="utf-8")
        return path
    return _write
