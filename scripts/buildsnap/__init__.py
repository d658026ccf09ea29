"""Snapshot bundling of JVM builds for a remote analysis server."""

from .archiver import ConfigurationArchiver
from .build_tools import BuildTool, detect_build_tool, populate_snapshot
from .cli import main
from .completeness import CompletenessReport, check_configurations_archive
from .config import BundleConfig
from .dependency_tree import DependencyTreeParser, GradleProject, step
from .errors import ArchiveError, BuildsnapError, BuildToolError, TraceFileError
from .models import DependencyCoordinate, Snapshot
from .pom_parser import PomPropertiesResolver, parse_pom
from .repository import DependencyResolver, RepositoryIndex
from .rules import extract_rule_files
from .trace import TraceMiner

__all__ = [
    "main", "BundleConfig", "Snapshot", "DependencyCoordinate",
    "BuildTool", "detect_build_tool", "populate_snapshot",
    "RepositoryIndex", "DependencyResolver", "PomPropertiesResolver", "parse_pom",
    "DependencyTreeParser", "GradleProject", "step",
    "TraceMiner", "extract_rule_files",
    "ConfigurationArchiver", "CompletenessReport", "check_configurations_archive",
    "BuildsnapError", "TraceFileError", "ArchiveError", "BuildToolError",
]
