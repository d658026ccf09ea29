"""Source file gathering for the sources archive.

Sources come from explicitly given directories (Maven-style layout assumed,
so a file's path under its directory is its archive entry) and, optionally,
from a heuristic search of the project that reads each file's ``package``
declaration to build the entry.
"""

import logging
import os
import zipfile
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ".java"
PACKAGE_PREFIX = "package "


@dataclass(frozen=True)
class SourceFile:
    """A source file and its entry name in the sources archive."""
    entry: str
    path: Path


def _walk_sources(directory: Path):
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath, filename)
            if filename.endswith(SOURCE_SUFFIX) and path.is_file():
                yield path


def register_sources_in_dir(directory) -> list[SourceFile]:
    """Register every Java source under ``directory`` by its relative path."""
    logger.info("Gathering sources in directory: %s", directory)
    directory = Path(directory)
    if not directory.is_dir():
        logger.debug("Could not process source directory: %s", directory)
        return []
    root = directory.resolve()
    return [SourceFile(p.resolve().relative_to(root).as_posix(), p) for p in _walk_sources(root)]


def package_entry(path: Path) -> str:
    """Derive the archive entry of a source file from its ``package`` declaration.

    The last ``package`` line wins; a file without one goes to the archive root.
    """
    package = None
    with open(path, encoding="utf-8", errors="replace") as reader:
        for line in reader:
            if line.startswith(PACKAGE_PREFIX):
                semi = line.find(";")
                if semi != -1:
                    package = line[len(PACKAGE_PREFIX):semi].strip()
    if not package:
        return path.name
    return package.replace(".", "/") + "/" + path.name


def autodetect_sources(base_dir) -> list[SourceFile]:
    """Find every Java source under ``base_dir`` and place it by package."""
    found = []
    for path in _walk_sources(Path(base_dir)):
        try:
            entry = package_entry(path)
        except OSError:
            logger.error("Could not register Java source in file: %s", path)
            continue
        logger.debug("Entry: %s -> %s", entry, path)
        found.append(SourceFile(entry, path))
    return found


def filter_duplicate_sources(sources: list[SourceFile]) -> list[SourceFile]:
    """Collapse sources sharing an entry name; the last one registered wins."""
    by_entry = {}
    for source in sources:
        by_entry[source.entry] = source.path
    return [SourceFile(entry, path) for entry, path in by_entry.items()]


def get_sources(source_dirs, autodetect: bool, base_dir=".") -> list[SourceFile]:
    """Collect the sources to bundle.

    Args:
        source_dirs: Explicit source directories (may be empty).
        autodetect: Also search ``base_dir`` heuristically.
        base_dir: Where autodetection starts.

    Returns:
        Source files with unique entry names.
    """
    sources = []
    if not source_dirs:
        hint = "" if autodetect else " Consider using option: --autodetect-sources"
        logger.warning("No sources were explicitly given.%s", hint)
    else:
        for directory in source_dirs:
            sources += register_sources_in_dir(directory)
    if autodetect:
        sources += autodetect_sources(base_dir)
    return filter_duplicate_sources(sources)


def pack_sources(sources: list[SourceFile], archive: Path) -> bool:
    """Write ``sources`` into ``archive``, replacing any existing file.

    Returns:
        ``True`` on success; failures are logged.
    """
    archive = Path(archive)
    logger.info("Packing sources to file: %s", archive)
    try:
        with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as out:
            for source in sources:
                out.write(source.path, source.entry)
    except OSError as ex:
        logger.error("Error creating sources archive %s: %s", archive, ex)
        return False
    return True
