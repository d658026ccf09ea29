"""Build tool detection and per-tool snapshot population.

Each supported build tool is a member of the closed :class:`BuildTool`
enum, detected by the marker file it keeps in the project directory.
Populating a snapshot dispatches on the member through
:data:`POPULATORS`, a table of plain functions.
"""

import logging
import shutil
from enum import Enum
from pathlib import Path
from typing import Optional

from .archiver import ConfigurationArchiver, tmp_file, zip_tree, zip_trees
from .config import BundleConfig, user_home_dir
from .conventions import (
    BINARY_INPUT_TAG, CONFIGURATIONS_FILE, CONFIGURATIONS_TAG, DISABLING_RULES,
    JVM_PLATFORM, METADATA_FILE, METADATA_TAG, OUTPUT_RULES, SOURCE_INPUT_TAG,
    SOURCES_FILE, SOURCES_JAR_TAG,
    android_platform_stubs,
)
from .dependency_tree import GradleProject
from .errors import ArchiveError, BuildToolError, BuildsnapError, TraceFileError
from .models import Snapshot
from .pom_parser import PomPropertiesResolver
from .repository import DependencyResolver, RepositoryIndex
from .sources import get_sources, pack_sources
from .trace import TraceMiner, package_metadata

logger = logging.getLogger(__name__)


class BuildTool(Enum):
    """Supported build tools, in detection priority order.

    Each member carries its CLI name and the marker file that identifies a
    project built with it.
    """
    GRADLE = ("gradle", "build.gradle")
    MAVEN = ("maven", "pom.xml")
    ANT = ("ant", "build.xml")
    BUCK = ("buck", "BUCK")

    def __init__(self, tool_name: str, marker: str):
        self.tool_name = tool_name
        self.marker = marker

    @classmethod
    def names(cls) -> list[str]:
        return sorted(tool.tool_name for tool in cls)

    @classmethod
    def from_name(cls, name: str) -> "BuildTool":
        for tool in cls:
            if tool.tool_name == name:
                return tool
        raise BuildToolError(f"unknown build tool: {name} (valid values: {cls.names()})")


def detect_build_tool(directory: Path) -> Optional[BuildTool]:
    """Return the build tool whose marker file is present in ``directory``.

    Markers are checked in :class:`BuildTool` order, so a project with both
    ``build.gradle`` and ``pom.xml`` is treated as a Gradle project.

    Raises:
        BuildToolError: If ``directory`` does not exist.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise BuildToolError(f"current directory is invalid: {directory}")
    for tool in BuildTool:
        if (directory / tool.marker).exists():
            return tool
    return None


def select_build_tool(config: BundleConfig) -> BuildTool:
    """Pick the explicitly configured build tool, or detect it."""
    if config.build_tool:
        return BuildTool.from_name(config.build_tool)
    tool = detect_build_tool(config.project_dir)
    if tool is None:
        raise BuildToolError("could not determine build tool, use --build-tool")
    return tool


def create_snapshot_dir(config: BundleConfig) -> Path:
    snapshot_dir = config.path(config.snapshot_dir)
    if snapshot_dir.is_dir():
        logger.debug("Directory %s already exists.", snapshot_dir)
    else:
        snapshot_dir.mkdir(parents=True)
        logger.debug("Directory %s created.", snapshot_dir)
    return snapshot_dir


def gather_sources(snapshot: Snapshot, src_dir: Path, archive: Path) -> bool:
    """Zip ``src_dir`` (if it exists) into ``archive`` and attach it as sources.

    A directory that cannot be archived is logged and left out, so the rest
    of the snapshot is still gathered.
    """
    if not src_dir.is_dir():
        logger.debug("No source directory: %s", src_dir)
        return False
    try:
        zip_tree(src_dir, archive)
    except ArchiveError as ex:
        logger.error("Could not archive sources in %s: %s", src_dir, ex)
        return False
    logger.info("Created source archive: %s", archive)
    snapshot.attach_file(SOURCE_INPUT_TAG, archive.resolve())
    return True


def gather_code_jars(snapshot: Snapshot, jar_dir: Path, project_name: Optional[str]) -> bool:
    """Attach the ``.jar`` files of ``jar_dir`` as application code.

    Args:
        snapshot: The snapshot to populate.
        jar_dir: Directory holding built archives.
        project_name: Only jars whose name starts with it are taken; ``None``
            takes every jar.

    Returns:
        ``True`` if at least one jar was attached.
    """
    if not jar_dir.is_dir():
        logger.debug("Ignoring: %s", jar_dir)
        return False
    found = False
    for path in sorted(jar_dir.iterdir()):
        name = path.name
        if name.endswith(".jar") and (project_name is None or name.startswith(project_name)):
            logger.debug("Found code file: %s", path)
            snapshot.attach_file(BINARY_INPUT_TAG, path.resolve())
            found = True
    return found


def gather_code_from_target_dir(snapshot: Snapshot, project_dir: Path, project_name: Optional[str],
                                snapshot_dir: Path) -> None:
    """Attach jars of ``target/``, or an archive of ``target/classes`` if there are none."""
    if gather_code_jars(snapshot, project_dir / "target", project_name):
        return
    logger.debug("No .jar found, looking for .class files...")
    classes_dir = project_dir / "target" / "classes"
    if classes_dir.is_dir():
        for archive in zip_trees([classes_dir], snapshot_dir).values():
            snapshot.attach_file(BINARY_INPUT_TAG, archive.resolve())


def populate_gradle(config: BundleConfig, snapshot: Snapshot) -> None:
    project_dir = Path(config.project_dir).resolve()
    gather_code_jars(snapshot, project_dir / "build" / "libs", project_dir.name)
    GradleProject(project_dir, snapshot, config.include_dep_sources).resolve_dependencies()
    snapshot_dir = create_snapshot_dir(config)
    gather_sources(snapshot, project_dir / "src", snapshot_dir / "sources.zip")


def populate_maven(config: BundleConfig, snapshot: Snapshot) -> None:
    project_dir = Path(config.project_dir).resolve()
    snapshot_dir = create_snapshot_dir(config)
    logger.debug("Looking for code...")
    gather_code_from_target_dir(snapshot, project_dir, project_dir.name, snapshot_dir)

    logger.debug("Gathering dependencies...")
    home_dir = user_home_dir()
    if home_dir is None:
        logger.warning("no user home directory found, cannot resolve dependencies.")
    else:
        index = RepositoryIndex()
        index.index_maven_local(home_dir)
        resolver = DependencyResolver(index, config.include_dep_sources)
        PomPropertiesResolver(resolver).resolve_dependencies(snapshot, project_dir / "pom.xml")

    logger.debug("Looking for sources...")
    gather_sources(snapshot, project_dir / "src", snapshot_dir / "sources.zip")
    generated = project_dir / "target" / "generated-sources"
    if generated.is_dir():
        gather_sources(snapshot, generated, tmp_file("generated-sources"))


def populate_ant(config: BundleConfig, snapshot: Snapshot) -> None:
    project_dir = Path(config.project_dir).resolve()
    snapshot_dir = create_snapshot_dir(config)
    gather_code_from_target_dir(snapshot, project_dir, None, snapshot_dir)
    gather_sources(snapshot, project_dir / "src", snapshot_dir / "sources.zip")


def copy_code_file(code: Path, snapshot_dir: Path) -> Optional[Path]:
    """Copy the application archive into the snapshot directory."""
    target = snapshot_dir / code.name
    try:
        shutil.copyfile(code, target)
    except OSError as ex:
        logger.error("Failed to copy '%s' to '%s': %s", code, target, ex)
        return None
    return target.resolve()


def printed_configuration(config: BundleConfig, snapshot_dir: Path) -> Optional[Path]:
    """Return the optimizer's rule dump to check archived configurations against.

    An explicitly configured dump wins; otherwise the one the disabling-rules
    helper asks the optimizer to print, if a build produced it.
    """
    if config.printed_configuration is not None:
        return config.path(config.printed_configuration)
    output_rules = snapshot_dir / OUTPUT_RULES
    return output_rules if output_rules.exists() else None


def populate_buck(config: BundleConfig, snapshot: Snapshot) -> None:
    """Populate a snapshot from a Buck build.

    Buck exposes neither compiler nor optimizer settings, so both are
    recovered from its trace: compiler steps are replayed with the metadata
    plugin and optimizer steps yield the rule files to archive. Explicitly
    configured rule files replace the mined ones.

    Raises:
        BuildsnapError: If not exactly one code file is configured.
        ArchiveError: If the configurations archive cannot be written.
    """
    code_files = config.code_files
    if not code_files:
        raise BuildsnapError("No code was given.")
    logger.info("Code files: %s", code_files)
    if len(code_files) > 1:
        raise BuildsnapError("More than one code files given, this is not supported yet.")

    project_dir = Path(config.project_dir).resolve()
    sources = get_sources([config.path(d) for d in config.source_dirs],
                          config.autodetect_sources, project_dir)

    snapshot_dir = create_snapshot_dir(config)
    logger.info("Using snapshot directory: %s", snapshot_dir)
    snapshot.attach_file(BINARY_INPUT_TAG, copy_code_file(config.path(code_files[0]), snapshot_dir))

    sources_jar = snapshot_dir / SOURCES_FILE
    if pack_sources(sources, sources_jar):
        snapshot.attach_file(SOURCES_JAR_TAG, sources_jar.resolve())

    miner = TraceMiner(config.path(config.metadata_dir), config.plugin_classpath,
                       config.effective_optimizer_marker())
    mined = True
    rule_files = []
    try:
        rule_files = miner.mine(config.path(config.trace_file))
    except TraceFileError as ex:
        logger.error("Error gathering metadata/configurations, will try to continue... (%s)", ex)
        mined = False

    if mined:
        metadata = package_metadata(config.path(config.metadata_dir), snapshot_dir / METADATA_FILE)
        snapshot.attach_file(METADATA_TAG, metadata)

    if config.configurations:
        logger.info("Using provided configuration: %s", config.configurations)
        rule_files = [config.path(c) for c in config.configurations]
    if mined or config.configurations:
        configurations = snapshot_dir / CONFIGURATIONS_FILE
        disabling_rules = snapshot_dir / DISABLING_RULES
        archiver = ConfigurationArchiver(project_dir,
                                         disabling_rules if disabling_rules.exists() else None,
                                         config.strip_unsupported_directives)
        archiver.archive(rule_files, configurations, printed_configuration(config, snapshot_dir))
        snapshot.attach_file(CONFIGURATIONS_TAG, configurations.resolve())

    # Default platform, in case the server cannot tell it from the code.
    snapshot.attach_string(JVM_PLATFORM, android_platform_stubs("25"))


POPULATORS = {
    BuildTool.GRADLE: populate_gradle,
    BuildTool.MAVEN: populate_maven,
    BuildTool.ANT: populate_ant,
    BuildTool.BUCK: populate_buck,
}


def populate_snapshot(tool: BuildTool, config: BundleConfig, snapshot: Snapshot) -> Snapshot:
    """Fill ``snapshot`` with the inputs of the project built by ``tool``."""
    logger.info("Assuming build tool: %s", tool.tool_name)
    POPULATORS[tool](config, snapshot)
    return snapshot
