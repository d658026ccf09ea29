"""Maven POM parsing, property resolution and parent-chain dependency collection.

Handles all interaction with pom.xml files: reading the elements needed to
resolve dependencies, following the parent chain, and substituting
``${property}`` versions before handing coordinates to the resolver.
"""

import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Callable, Optional

from .models import DependencyCoordinate, PomDependency, PomModel, Snapshot
from .repository import DependencyResolver

logger = logging.getLogger(__name__)

# XML namespace used by Maven POM files (POM model version 4.0.0).
NS = {"m": "http://maven.apache.org/POM/4.0.0"}


def _find(el, tag, ns=NS):
    """Find a direct child XML element, trying with and without the Maven namespace.

    Args:
        el: Parent XML element to search within.
        tag: Tag name to look for (without namespace prefix).
        ns: Namespace mapping (defaults to Maven POM 4.0.0).

    Returns:
        The first matching child element, or ``None`` if not found.
    """
    result = el.find(f"m:{tag}", ns)
    if result is not None:
        return result
    return el.find(tag)


def _text(el, tag, ns=NS):
    """Extract the stripped text of a child element, or ``None`` if absent or empty."""
    child = _find(el, tag, ns)
    if child is not None and child.text:
        return child.text.strip()
    return None


def _children(el, tag):
    return list(el.findall(f"m:{tag}", NS)) + list(el.findall(tag))


def _local_name(tag: str) -> str:
    return tag.split("}")[-1] if "}" in tag else tag


def _parse_dependency(dep_el) -> PomDependency:
    return PomDependency(
        group_id=_text(dep_el, "groupId"),
        artifact_id=_text(dep_el, "artifactId"),
        version=_text(dep_el, "version"),
    )


def parse_pom(pom_path: Path) -> PomModel:
    """Parse a ``pom.xml`` file into a PomModel.

    Handles both namespaced and non-namespaced POM files.

    Args:
        pom_path: Filesystem path to the pom.xml file.

    Returns:
        A PomModel holding the parent flag, properties and dependencies.

    Raises:
        xml.etree.ElementTree.ParseError: If the file is not well-formed XML.
        OSError: If the file cannot be read.
    """
    root = ET.parse(pom_path).getroot()

    parent_el = _find(root, "parent")

    properties = {}
    props_el = _find(root, "properties")
    if props_el is not None:
        for child in props_el:
            if child.text:
                properties[_local_name(child.tag)] = child.text.strip()

    dependencies = []
    deps_el = _find(root, "dependencies")
    if deps_el is not None:
        for dep_el in _children(deps_el, "dependency"):
            dependencies.append(_parse_dependency(dep_el))

    return PomModel(
        path=Path(pom_path),
        has_parent=parent_el is not None,
        properties=properties,
        dependencies=dependencies,
    )


def resolve_property(value: str, properties: dict, _depth: int = 0) -> Optional[str]:
    """Resolve ``${property}`` references against a properties dict.

    Only resolves values that are entirely a single ``${...}`` reference.
    Concatenated values like ``${major}.${minor}`` are returned unchanged.

    Chained references (``${foo}`` → ``${bar}`` → ``"1.0"``) are followed up
    to a depth of 10 to guard against cycles. The ``project.`` prefix is
    also tried stripped, for ``${project.version}`` style references.

    Args:
        value: The string potentially containing a ``${property}`` reference.
        properties: Merged property dict.
        _depth: Internal recursion counter (callers should not set this).

    Returns:
        The resolved value, or the original value if unresolvable.
        Returns ``None`` if value is ``None``.
    """
    if not value or _depth > 10:
        return value
    match = re.match(r"^\$\{(.+?)\}$", value)
    if match:
        prop_name = match.group(1)
        for key in [prop_name, prop_name.replace("project.", "")]:
            if key in properties:
                resolved = properties[key]
                if resolved and "${" in resolved:
                    return resolve_property(resolved, properties, _depth + 1)
                return resolved
    return value


def parent_pom_path(pom_path: Path) -> Path:
    """Return where the parent of ``pom_path`` is expected.

    Follows the standard multi-module convention of a parent two levels up
    from the POM file itself, i.e. in the directory enclosing the module:
    ``/proj/core/pom.xml`` → ``/proj/pom.xml``.
    """
    return Path(pom_path).absolute().parent.parent / "pom.xml"


def walk_pom_chain(pom_path: Path, visit: Callable[[PomModel], None]) -> None:
    """Call ``visit`` on ``pom_path`` and then on each parent POM in turn.

    The walk continues upwards only while the current POM declares a
    ``<parent>`` and the expected parent file exists. A missing starting
    POM, an unreadable POM, or a revisited path ends the walk.
    """
    visited = set()
    current = Path(pom_path)
    while current is not None:
        if not current.exists():
            logger.debug("No POM at %s", current)
            return
        key = current.resolve()
        if key in visited:
            logger.debug("POM chain loops back to %s", key)
            return
        visited.add(key)
        logger.debug("Reading %s", key)
        try:
            model = parse_pom(current)
        except (ET.ParseError, OSError) as ex:
            logger.error("Could not read POM %s: %s", current, ex)
            return
        visit(model)
        if not model.has_parent:
            return
        current = parent_pom_path(current)
        logger.debug("Checking parent=%s", current.parent)


class PomPropertiesResolver:
    """Resolve the dependencies of a POM and its parent chain.

    Two passes are made over the chain. The first merges every POM's
    ``<properties>`` into one map, child first, so that a parent declaring
    the same property overwrites the child's value. The second resolves each
    declared dependency, substituting ``${...}`` versions from that map.

    Args:
        resolver: The dependency resolver that locates jars.
    """

    def __init__(self, resolver: DependencyResolver):
        self.resolver = resolver

    def collect_properties(self, pom_path: Path) -> dict:
        properties = {}
        walk_pom_chain(pom_path, lambda model: properties.update(model.properties))
        for key, value in properties.items():
            logger.debug("%s -> %s", key, value)
        return properties

    def collect_coordinates(self, pom_path: Path, properties: Optional[dict] = None) -> list[DependencyCoordinate]:
        """Return the concrete coordinates declared along the chain.

        Dependencies without a groupId, artifactId or version are skipped.

        Args:
            pom_path: The starting POM.
            properties: Merged properties; collected from the chain if omitted.
        """
        if properties is None:
            properties = self.collect_properties(pom_path)
        coordinates = []

        def visit(model: PomModel):
            for dep in model.dependencies:
                version = resolve_property(dep.version, properties)
                if dep.group_id and dep.artifact_id and version:
                    coordinate = DependencyCoordinate(dep.group_id, dep.artifact_id, version)
                    logger.debug("Detected Maven dependency: %s", coordinate)
                    coordinates.append(coordinate)

        walk_pom_chain(pom_path, visit)
        return coordinates

    def resolve_dependencies(self, snapshot: Snapshot, pom_path: Path) -> list:
        """Resolve every dependency of the chain into ``snapshot``.

        Returns:
            The resolved artifacts, in declaration order.
        """
        if not Path(pom_path).exists():
            logger.warning("POM file not found, no dependencies resolved: %s", pom_path)
            return []
        resolved = []
        for coordinate in self.collect_coordinates(pom_path):
            artifact = self.resolver.resolve_into(snapshot, coordinate)
            if artifact is not None:
                resolved.append(artifact)
        return resolved
