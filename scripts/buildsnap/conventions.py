"""Conventions shared with the analysis server.

Input tags, snapshot file names and platform identifiers. Apart from
:func:`write_special_configuration`, everything here is a constant or a
stateless string helper.
"""

import logging
from pathlib import Path
from typing import Optional

from .models import SpecialConfiguration

logger = logging.getLogger(__name__)

TOOL_NAME = "buildsnap"

# Directory where snapshot contents are gathered before posting.
SNAPSHOT_DIR = ".clyze-snapshot"
SNAPSHOT_ID = "snapshot"
API_VERSION = "1.0"

METADATA_FILE = "metadata.zip"
CONFIGURATIONS_FILE = "configurations.zip"
SOURCES_FILE = "sources.jar"
DISABLING_RULES = "disabling-rules.txt"
OUTPUT_RULES = "output-configuration.txt"

# Input tags understood by the server.
BINARY_INPUT_TAG = "app"
LIBRARY_INPUT_TAG = "lib"
SOURCE_INPUT_TAG = "src"
METADATA_TAG = "JCPLUGIN_METADATA"
CONFIGURATIONS_TAG = "PG_ZIP"
SOURCES_JAR_TAG = "SOURCES_JAR"
API_VERSION_TAG = "API_VERSION"

# Platform string inputs.
JVM_PLATFORM = "jvm_platform"
ANDROID_PLATFORM = "android_platform"
JVM_STACK = "jvm"
ANDROID_STACK = "android"
DEFAULT_JAVA_PLATFORM = "java_8"
DEFAULT_ANDROID_PLATFORM = "android_25_fulljars"

# Naming of ad hoc code archives built from class directories.
TEST_CODE_PRE_JAR = "-pre.jar"


def android_platform_stubs(api_level: str) -> str:
    """Return the platform identifier of the Android stubs for ``api_level``."""
    return f"android_{api_level}_stubs"


def write_special_configuration(
    directory: Path,
    disable_opt: bool,
    print_config: bool,
) -> Optional[SpecialConfiguration]:
    """Write the "disabling rules" helper file used when replaying the optimizer.

    The file turns off shrinking, optimization and obfuscation and, if
    requested, asks the optimizer to dump every effective rule to
    ``output-configuration.txt`` in the same directory. That dump is the
    reference used by the completeness check.

    Args:
        directory: Directory to hold the helper file and the dump.
        disable_opt: Emit the ``-dont*`` rules.
        print_config: Emit a ``-printconfiguration`` rule.

    Returns:
        The written :class:`SpecialConfiguration`, or ``None`` if the file
        could not be written.
    """
    directory = Path(directory)
    path = directory / DISABLING_RULES
    output_rules_path = (directory / OUTPUT_RULES).resolve() if print_config else None
    lines = []
    if disable_opt:
        lines += ["-dontshrink", "-dontoptimize", "-dontobfuscate"]
    if output_rules_path is not None:
        lines.append(f"-printconfiguration {output_rules_path}")
    try:
        path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    except OSError as ex:
        if disable_opt:
            logger.warning("could not disable configuration rules, generated app "
                           "code may not be suitable for analysis: %s", ex)
        elif print_config:
            logger.error("could not print configuration: %s", ex)
        return None
    return SpecialConfiguration(path=path.resolve(), output_rules_path=output_rules_path)
