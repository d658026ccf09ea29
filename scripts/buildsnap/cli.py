"""CLI entry point.

Parses options into a :class:`BundleConfig`, picks the build tool and
assembles the snapshot of the project. Posting the snapshot is left to the
caller; the assembled inputs are printed.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .build_tools import BuildTool, create_snapshot_dir, populate_snapshot, select_build_tool
from .config import DEFAULT_METADATA_DIR, DEFAULT_OPTIMIZER_MARKER, DEFAULT_TRACE_FILE, BundleConfig
from .conventions import (
    ANDROID_PLATFORM, ANDROID_STACK, API_VERSION, API_VERSION_TAG, DEFAULT_ANDROID_PLATFORM,
    DEFAULT_JAVA_PLATFORM, JVM_PLATFORM, JVM_STACK, SNAPSHOT_DIR, SNAPSHOT_ID, TOOL_NAME,
    write_special_configuration,
)
from .errors import BuildsnapError
from .models import Snapshot
from .trace import plugin_classpath_from

logger = logging.getLogger(__name__)

LOG_FORMAT = f"[{TOOL_NAME}] %(levelname)s: %(message)s"

_handler: Optional[logging.Handler] = None


def setup_logging(debug: bool = False) -> None:
    """Send log records to stderr, at DEBUG level if ``debug`` is set.

    Calling it again replaces the handler installed by the previous call.
    """
    global _handler
    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(_handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog=TOOL_NAME,
        description="Bundle the code, dependencies, sources and optimizer configurations of a JVM build",
    )
    parser.add_argument("--project-dir", type=Path, default=Path.cwd(), help="Project root (default: current directory)")
    parser.add_argument("-b", "--build-tool", choices=BuildTool.names(), default=None,
                        help="Build tool of the project (default: detected from marker files)")
    parser.add_argument("-c", "--code", action="append", default=[], help="Application code archive (Buck)")
    parser.add_argument("-s", "--source-dir", action="append", default=[], help="Source directory (repeatable)")
    parser.add_argument("--autodetect-sources", action="store_true", help="Search the project for Java sources")
    parser.add_argument("--trace", type=Path, default=Path(DEFAULT_TRACE_FILE),
                        help=f"Build trace file (default: {DEFAULT_TRACE_FILE})")
    parser.add_argument("--json-dir", type=Path, default=Path(DEFAULT_METADATA_DIR),
                        help=f"Output directory of the metadata plugin (default: {DEFAULT_METADATA_DIR})")
    parser.add_argument("--proguard-binary", default=DEFAULT_OPTIMIZER_MARKER,
                        help=f"Substring identifying the optimizer in the trace (default: {DEFAULT_OPTIMIZER_MARKER})")
    parser.add_argument("--configuration", action="append", default=[],
                        help="Optimizer configuration file; disables mining configurations from the trace")
    parser.add_argument("--printed-configuration", type=Path, default=None,
                        help="Optimizer output of all applied rules, to check the configurations archive against")
    parser.add_argument("--strip-unsupported-directives", action="store_true",
                        help="Remove directives the server does not support from archived configurations")
    parser.add_argument("--special-configuration", action="store_true",
                        help="Only write the disabling-rules file to add to the optimizer configuration")
    parser.add_argument("-j", "--jcplugin", type=Path, default=None, help="Metadata plugin jar, or a directory of jars")
    parser.add_argument("--include-dep-sources", action="store_true", help="Also bundle sources of dependencies")
    parser.add_argument("--platform", default=None, help="Platform of the code (e.g. java_8)")
    parser.add_argument("--stack", action="append", default=[], choices=[JVM_STACK, ANDROID_STACK],
                        help=f"Analysis stack (repeatable, default: {JVM_STACK})")
    parser.add_argument("--snapshot-dir", type=Path, default=Path(SNAPSHOT_DIR),
                        help=f"Where the snapshot is assembled (default: {SNAPSHOT_DIR})")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BundleConfig:
    return BundleConfig(
        project_dir=args.project_dir,
        build_tool=args.build_tool,
        trace_file=args.trace,
        metadata_dir=args.json_dir,
        source_dirs=list(args.source_dir),
        configurations=list(args.configuration),
        printed_configuration=args.printed_configuration,
        strip_unsupported_directives=args.strip_unsupported_directives,
        optimizer_marker=args.proguard_binary,
        plugin_classpath=plugin_classpath_from(args.jcplugin),
        code_files=list(args.code),
        autodetect_sources=args.autodetect_sources,
        include_dep_sources=args.include_dep_sources,
        platform=args.platform,
        stacks=list(args.stack) or [JVM_STACK],
        snapshot_dir=args.snapshot_dir,
        debug=args.debug,
    )


def create_snapshot(config: BundleConfig) -> Snapshot:
    """Create an empty snapshot carrying the API version and platform inputs."""
    snapshot = Snapshot(SNAPSHOT_ID)
    snapshot.attach_string(API_VERSION_TAG, API_VERSION)
    if JVM_STACK in config.stacks:
        snapshot.attach_string(JVM_PLATFORM, config.platform or DEFAULT_JAVA_PLATFORM)
    elif ANDROID_STACK in config.stacks:
        snapshot.attach_string(ANDROID_PLATFORM, config.platform or DEFAULT_ANDROID_PLATFORM)
    else:
        logger.warning("Unknown stack(s): %s", config.stacks)
    return snapshot


def print_snapshot(snapshot: Snapshot) -> None:
    print(f"Snapshot: {snapshot.snapshot_id}")
    for tag, value in snapshot.string_inputs:
        print(f"  {tag} = {value}")
    for tag, path in snapshot.file_inputs:
        print(f"  {tag}: {path}")


def write_disabling_rules(config: BundleConfig) -> int:
    special = write_special_configuration(create_snapshot_dir(config), disable_opt=True, print_config=True)
    if special is None:
        return 1
    print(f"Add to the optimizer configuration: -include {special.path}")
    return 0


def main(argv: Optional[list] = None) -> int:
    """Bundle the project and print the assembled snapshot.

    Args:
        argv: Command-line arguments (defaults to ``sys.argv[1:]``).

    Returns:
        The exit status: 0 on success, 1 if bundling failed.
    """
    args = parse_args(argv)
    setup_logging(args.debug)
    config = build_config(args)
    try:
        if args.special_configuration:
            return write_disabling_rules(config)
        tool = select_build_tool(config)
        snapshot = populate_snapshot(tool, config, create_snapshot(config))
    except BuildsnapError as ex:
        print(f"ERROR: {ex}", file=sys.stderr)
        return 1
    print_snapshot(snapshot)
    return 0


if __name__ == "__main__":
    sys.exit(main())
