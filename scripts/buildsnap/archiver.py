"""Archive helpers: directory trees and the configurations archive.

All bundles are plain ZIP files written with :mod:`zipfile`.
"""

import atexit
import hashlib
import logging
import os
import tempfile
import zipfile
from pathlib import Path
from typing import Optional

from .completeness import check_configurations_archive
from .conventions import TEST_CODE_PRE_JAR
from .errors import ArchiveError
from .models import ConfigurationEntry

logger = logging.getLogger(__name__)

# Directives the server cannot act on.
UNSUPPORTED_DIRECTIVES = ("-printusage ", "-printseeds ", "-printconfiguration ", "-dump ")

# Path segment of the Gradle transforms cache. Rule files extracted there
# from dependency archives get short, location-independent entry names.
GRADLE_CACHE = os.path.join(".gradle", "caches", "transforms")


def _delete_quietly(path: str) -> None:
    try:
        os.remove(path)
    except OSError:
        pass


def tmp_file(prefix: str, suffix: str = ".jar") -> Path:
    """Create an empty temporary file that is deleted when the process exits."""
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix)
    os.close(fd)
    atexit.register(_delete_quietly, name)
    return Path(name)


def zip_tree(directory: Path, archive: Path) -> bool:
    """Zip every regular file under ``directory`` into ``archive``.

    Entry names are relative to ``directory``.

    Args:
        directory: The directory to pack.
        archive: The archive to create (overwritten if present).

    Returns:
        ``True`` if some individual file could not be added.

    Raises:
        ArchiveError: If the archive cannot be written.
    """
    directory = Path(directory).resolve()
    error = False
    try:
        with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as out:
            for dirpath, dirnames, filenames in os.walk(directory):
                dirnames.sort()
                for filename in sorted(filenames):
                    path = Path(dirpath, filename)
                    if not path.is_file():
                        continue
                    try:
                        out.write(path, path.relative_to(directory).as_posix())
                    except OSError as ex:
                        logger.error("Could not process file %s: %s", path, ex)
                        error = True
    except OSError as ex:
        raise ArchiveError(f"could not write archive {archive}: {ex}") from ex
    return error


def zip_trees(directories, target_dir: Path) -> dict:
    """Zip each directory as ``<md5 of its path>-pre.jar`` under ``target_dir``.

    Returns:
        A map from each directory that was archived to its archive.
    """
    archives = {}
    for directory in directories:
        canonical = str(Path(directory).resolve())
        digest = hashlib.md5(canonical.encode("utf-8")).hexdigest()
        archive = Path(target_dir) / (digest + TEST_CODE_PRE_JAR)
        try:
            zip_tree(Path(directory), archive)
        except ArchiveError as ex:
            logger.error("%s", ex)
            continue
        logger.info("Archiving code [%s] as [%s]", directory, archive)
        archives[Path(directory)] = archive
    return archives


def strip_root_prefix(path: str) -> str:
    """Make an absolute path relative by dropping one leading separator."""
    return path[1:] if path.startswith(("/", os.sep)) else path


def delete_unsupported_directives(conf: Path) -> Path:
    """Return ``conf``, or a scratch copy of it without unsupported directives.

    Each dropped line is reported with a warning. The scratch copy is
    removed at process exit.
    """
    kept = []
    all_supported = True
    with open(conf, encoding="utf-8", errors="replace") as reader:
        for line in reader:
            line = line.rstrip("\n")
            if any(d in line for d in UNSUPPORTED_DIRECTIVES):
                logger.warning("file %s contains unsupported directive: %s", conf, line)
                all_supported = False
            else:
                kept.append(line + "\n")
    if all_supported:
        return conf
    scratch = tmp_file("rules", ".pro")
    scratch.write_text("".join(kept), encoding="utf-8")
    return scratch


class ConfigurationArchiver:
    """Package optimizer rule files into one archive.

    Entry names are derived from each file's canonical path (first match wins):

        1. the generated disabling-rules file is left out entirely;
        2. files under ``project_dir`` use their project-relative path;
        3. files in the Gradle transforms cache keep their last two path
           segments (three for ``META-INF`` paths);
        4. anything else uses its absolute path without the root separator.

    A name that was already emitted is dropped with a warning, so the first
    file supplied for a name is the one archived.

    Args:
        project_dir: The project root, or ``None``.
        disabling_rules: Path of the generated disabling-rules file, if any.
        strip_unsupported: Remove :data:`UNSUPPORTED_DIRECTIVES` lines from
            each file before archiving it.
    """

    def __init__(self, project_dir=None, disabling_rules=None, strip_unsupported: bool = False):
        self.project_dir = Path(project_dir).resolve() if project_dir is not None else None
        self.disabling_rules = Path(disabling_rules).resolve() if disabling_rules is not None else None
        self.strip_unsupported = strip_unsupported

    def entry_name(self, path: Path) -> Optional[str]:
        """Return the archive entry name for canonical ``path``, or ``None`` to skip it."""
        if self.disabling_rules is not None and path == self.disabling_rules:
            return None
        if self.project_dir is not None and path.is_relative_to(self.project_dir):
            return path.relative_to(self.project_dir).as_posix()
        text = str(path)
        if GRADLE_CACHE in text:
            parts = path.parts
            keep = 3 if "META-INF" in text else 2
            return "/".join(parts[-keep:])
        return strip_root_prefix(path.as_posix())

    def archive(self, files, output: Path, reference: Optional[Path] = None) -> list[ConfigurationEntry]:
        """Write ``files`` into the archive ``output``.

        Args:
            files: Rule files in discovery order. Missing, non-regular and
                unreadable ones are skipped.
            output: The archive to create.
            reference: A "print all rules" dump; when given, the archive is
                checked for completeness against it after writing.

        Returns:
            The entries written, in order.

        Raises:
            ArchiveError: If ``output`` cannot be opened for writing.
        """
        entries = []
        seen = set()
        try:
            out = zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED)
        except OSError as ex:
            raise ArchiveError(f"could not open configurations archive {output}: {ex}") from ex
        with out:
            for conf in files:
                conf = Path(conf)
                if not conf.is_file():
                    logger.debug("not a regular file, skipping: %s", conf)
                    continue
                path = conf.resolve()
                name = self.entry_name(path)
                if name is None:
                    continue
                if name in seen:
                    logger.warning("duplicate configuration entry: %s", name)
                    continue
                try:
                    source = delete_unsupported_directives(path) if self.strip_unsupported else path
                    data = source.read_bytes()
                except OSError as ex:
                    logger.error("Could not read configuration file %s: %s", path, ex)
                    continue
                seen.add(name)
                out.writestr(name, data)
                entries.append(ConfigurationEntry(path, name, data))

        if reference is not None:
            check_configurations_archive(output, reference, self.disabling_rules)
        return entries
