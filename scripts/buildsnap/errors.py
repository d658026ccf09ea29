"""buildsnap exception hierarchy.

Only conditions that abort a stage (or the whole run) are raised. Resolution
misses and failed tool replays are logged where they happen instead.
"""


class BuildsnapError(Exception):
    """Base exception for all buildsnap errors."""


class TraceFileError(BuildsnapError):
    """The build trace could not be read or is not a JSON array."""


class ArchiveError(BuildsnapError):
    """An output archive could not be opened for writing."""


class BuildToolError(BuildsnapError):
    """The build tool is unknown or could not be detected."""
