"""Run configuration.

Holds the values the command line hands to the bundling pipeline, plus the
small amount of environment lookup the pipeline needs.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .conventions import JVM_STACK, SNAPSHOT_DIR

logger = logging.getLogger(__name__)

DEFAULT_TRACE_FILE = "buck-out/log/build.trace"
DEFAULT_METADATA_DIR = "json"
DEFAULT_OPTIMIZER_MARKER = "/proguard.jar"


@dataclass
class BundleConfig:
    """Everything one bundling run needs to know.

    Relative paths are interpreted against ``project_dir``.

    Attributes:
        project_dir: Root of the project being bundled.
        build_tool: Explicit build tool name, or ``None`` to detect it.
        trace_file: Build trace log (Buck).
        metadata_dir: Output directory of the metadata plugin.
        source_dirs: Explicit source directories.
        configurations: Explicit optimizer configuration files. When
            non-empty, rule files are not mined from the trace.
        printed_configuration: The optimizer's "print all rules" output, used
            to check the configurations archive for completeness.
        strip_unsupported_directives: Drop directives the server cannot act
            on from archived rule files.
        optimizer_marker: Substring identifying the optimizer binary in a
            trace record; ``None`` disables optimizer mining.
        plugin_classpath: Jars of the metadata plugin injected into replayed
            compiler invocations.
        code_files: Application code archives given explicitly (Buck).
        autodetect_sources: Search the project for sources heuristically.
        include_dep_sources: Attach ``-sources.jar`` of resolved dependencies.
        platform: Explicit platform identifier.
        stacks: Server stacks to target.
        snapshot_dir: Directory where the snapshot is assembled.
        debug: Verbose logging.
    """
    project_dir: Path = field(default_factory=Path.cwd)
    build_tool: Optional[str] = None
    trace_file: Path = Path(DEFAULT_TRACE_FILE)
    metadata_dir: Path = Path(DEFAULT_METADATA_DIR)
    source_dirs: list = field(default_factory=list)
    configurations: list = field(default_factory=list)
    printed_configuration: Optional[Path] = None
    strip_unsupported_directives: bool = False
    optimizer_marker: Optional[str] = DEFAULT_OPTIMIZER_MARKER
    plugin_classpath: list = field(default_factory=list)
    code_files: list = field(default_factory=list)
    autodetect_sources: bool = False
    include_dep_sources: bool = False
    platform: Optional[str] = None
    stacks: list = field(default_factory=lambda: [JVM_STACK])
    snapshot_dir: Path = Path(SNAPSHOT_DIR)
    debug: bool = False

    def path(self, value) -> Path:
        """Resolve ``value`` against the project directory."""
        p = Path(value)
        return p if p.is_absolute() else Path(self.project_dir) / p

    def effective_optimizer_marker(self) -> Optional[str]:
        """Return the optimizer marker, or ``None`` when configurations are explicit."""
        if self.configurations:
            return None
        return self.optimizer_marker


def user_home_dir() -> Optional[Path]:
    """Find the home directory of the user.

    Returns:
        The home directory, or ``None`` (with an error logged) if neither
        ``HOME`` nor the platform lookup yields one.
    """
    home = os.environ.get("HOME")
    if home:
        return Path(home)
    try:
        return Path.home()
    except RuntimeError:
        logger.error("Could not determine home directory")
        return None
