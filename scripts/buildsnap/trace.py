"""Build trace mining.

Buck records every build step in a JSON trace. Two kinds of steps matter:

* compiler invocations, which are replayed with the metadata plugin added
  so that source metadata is generated into the metadata directory;
* optimizer invocations, whose argument files name the rule files that
  make up the optimizer configuration.
"""

import json
import logging
import os
import shlex
import subprocess
import zipfile
from pathlib import Path
from typing import Optional

from .errors import ArchiveError, TraceFileError
from .models import BuildInvocation, InvocationKind
from .rules import extract_rule_files, find_args_file

logger = logging.getLogger(__name__)

COMPILER_MARKER = "javac "
RUNTIME_MARKER = "java "
JAR_FLAG = "-jar"
PROCESSORPATH_FLAG = "-processorpath"
PLUGIN_NAME = "TypeInfoPlugin"


def read_trace(trace_file: Path) -> list[str]:
    """Return the command descriptions recorded in a trace file.

    A description is the ``args.description`` string of a record; records
    without one are skipped.

    Raises:
        TraceFileError: If the file cannot be read or is not a JSON array.
    """
    try:
        with open(trace_file, encoding="utf-8") as f:
            records = json.load(f)
    except (OSError, ValueError) as ex:
        raise TraceFileError(f"could not read trace file {trace_file}: {ex}") from ex
    if not isinstance(records, list):
        raise TraceFileError(f"trace file {trace_file} does not hold a JSON array")
    descriptions = []
    for record in records:
        if not isinstance(record, dict):
            continue
        args = record.get("args")
        if isinstance(args, dict) and args.get("description") is not None:
            descriptions.append(str(args["description"]))
    return descriptions


def plugin_classpath_from(path) -> list[str]:
    """Build the metadata plugin classpath from a jar or a directory of jars."""
    if path is None:
        return []
    path = Path(path)
    if path.is_dir():
        return [str(p.resolve()) for p in sorted(path.glob("*.jar"))]
    if path.is_file() and path.suffix == ".jar":
        return [str(path.resolve())]
    logger.warning("No metadata plugin jars found at: %s", path)
    return []


def package_metadata(metadata_dir: Path, archive: Path) -> Optional[Path]:
    """Zip every file generated in ``metadata_dir`` into ``archive``.

    Entries are named by bare filename.

    Returns:
        ``archive``, or ``None`` if the metadata directory does not exist.

    Raises:
        ArchiveError: If ``archive`` cannot be written.
    """
    metadata_dir = Path(metadata_dir)
    if not metadata_dir.is_dir():
        logger.warning("Metadata directory not found: %s", metadata_dir)
        return None
    logger.info("Adding JSON metadata to file: %s", archive)
    try:
        with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as out:
            for dirpath, dirnames, filenames in os.walk(metadata_dir):
                dirnames.sort()
                for filename in sorted(filenames):
                    path = Path(dirpath, filename)
                    if path.is_file():
                        out.write(path, filename)
    except OSError as ex:
        raise ArchiveError(f"could not write metadata archive {archive}: {ex}") from ex
    return Path(archive)


class TraceMiner:
    """Replay compiler steps and collect optimizer rule files from a build trace.

    Args:
        metadata_dir: Where the metadata plugin writes its output.
        plugin_classpath: Jars of the metadata plugin, in classpath order.
        optimizer_marker: Substring identifying the optimizer binary in a
            command description, or ``None`` to ignore optimizer steps.
    """

    def __init__(self, metadata_dir: Path, plugin_classpath: list[str], optimizer_marker: Optional[str] = None):
        self.metadata_dir = Path(metadata_dir)
        self.plugin_classpath = list(plugin_classpath)
        self.optimizer_marker = optimizer_marker

    def classify(self, description: str) -> Optional[BuildInvocation]:
        """Turn a command description into a BuildInvocation, if it is one of interest."""
        if COMPILER_MARKER in description:
            return BuildInvocation(InvocationKind.COMPILE, description)
        if (self.optimizer_marker is not None and RUNTIME_MARKER in description
                and JAR_FLAG in description and self.optimizer_marker in description):
            return BuildInvocation(InvocationKind.OPTIMIZE, description, find_args_file(description))
        return None

    def plugin_flag(self) -> str:
        return f"-Xplugin:{PLUGIN_NAME} {self.metadata_dir}"

    def rewrite_compile_command(self, description: str) -> list[str]:
        """Return the argv of a compiler invocation with the metadata plugin added.

        The plugin flag is appended as one argument. The plugin jars are
        appended to the value of the last ``-processorpath`` option, or given
        in a new ``-processorpath`` right after the executable.

        Raises:
            ValueError: If the description cannot be split into arguments.
        """
        args = shlex.split(description) + [self.plugin_flag()]
        if not args[0].endswith("javac"):
            logger.warning("command line does not look like a javac invocation: %s", description)
        plugin_cp = ":".join(self.plugin_classpath)

        value_idx = -1
        idx = 0
        while idx < len(args):
            if args[idx] == PROCESSORPATH_FLAG and idx + 1 < len(args):
                value_idx = idx + 1
                idx += 2
            else:
                idx += 1
        if value_idx != -1:
            args[value_idx] = args[value_idx] + ":" + plugin_cp
        else:
            args[1:1] = [PROCESSORPATH_FLAG, plugin_cp]
        return args

    def replay(self, args: list[str]) -> bool:
        """Run a rewritten compiler command to completion.

        Returns:
            ``True`` if the command exited with status 0.
        """
        logger.info("Changed command: %s", args)
        try:
            result = subprocess.run(args, check=False)
        except OSError as ex:
            logger.error("Command failed: %s: %s", args, ex)
            return False
        if result.returncode != 0:
            logger.error("Command failed with exit code %d: %s", result.returncode, args)
            return False
        return True

    def process_compile(self, invocation: BuildInvocation) -> bool:
        if not self.plugin_classpath:
            logger.error("no metadata plugin found, continuing without source metadata")
            return False
        try:
            args = self.rewrite_compile_command(invocation.raw_command)
        except ValueError as ex:
            logger.error("Could not parse compiler command %r: %s", invocation.raw_command, ex)
            return False
        return self.replay(args)

    def process_optimize(self, invocation: BuildInvocation) -> list[Path]:
        if invocation.args_file is None:
            logger.error("could not find arguments file of optimizer command: %s", invocation.raw_command)
            return []
        logger.info("Reading optimizer args from file: %s", invocation.args_file)
        return extract_rule_files(invocation.args_file)

    def mine(self, trace_file: Path) -> list[Path]:
        """Process every record of ``trace_file`` in order.

        Compiler invocations are replayed for their side effect (metadata
        files). Failed replays are logged and skipped.

        Returns:
            The rule files named by optimizer invocations, in discovery order.

        Raises:
            TraceFileError: If the trace cannot be read.
        """
        logger.info("Gathering metadata and configurations using trace file '%s'...", trace_file)
        rule_files = []
        for description in read_trace(trace_file):
            invocation = self.classify(description)
            if invocation is None:
                continue
            if invocation.kind is InvocationKind.COMPILE:
                self.process_compile(invocation)
            else:
                rule_files.extend(self.process_optimize(invocation))
        return rule_files
