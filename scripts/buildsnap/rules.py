"""Discovery of optimizer rule files referenced from argument files.

An optimizer invocation recorded in a build trace passes its options through
an ``@file`` argument file, one directive per line. Rule files are pulled in
with an ``-include`` line followed by a line holding the path.
"""

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

INCLUDE_DIRECTIVE = "-include"


def find_args_file(description: str) -> Optional[Path]:
    """Locate the ``@``-prefixed argument file in a command description.

    The reference runs from the character after the first ``@`` up to the
    next ``)``, or failing that the next space, or the end of the text.

    Returns:
        The argument file path, or ``None`` if the description has no ``@``.
    """
    at = description.find("@")
    if at == -1:
        return None
    end = description.find(")", at + 1)
    if end == -1:
        end = description.find(" ", at + 1)
    return Path(description[at + 1:] if end == -1 else description[at + 1:end])


def extract_rule_files(args_file: Path) -> list[Path]:
    """Return the rule files included by an optimizer argument file.

    A line equal to ``-include`` makes the next line the path of a rule file
    (quotes removed). A repeated ``-include`` only re-arms the expectation,
    so the path after two consecutive ``-include`` lines is still discovered,
    once.

    Args:
        args_file: The argument file.

    Returns:
        The discovered rule files, in order. Empty if ``args_file`` cannot be
        read.
    """
    found = []
    expecting_path = False
    try:
        with open(args_file, encoding="utf-8") as reader:
            for line in reader:
                line = line.replace("\n", "").replace('"', "")
                if line == INCLUDE_DIRECTIVE:
                    expecting_path = True
                elif expecting_path:
                    expecting_path = False
                    logger.info("Adding configuration file: %s", line)
                    found.append(Path(line))
    except OSError as ex:
        logger.error("Could not parse optimizer args file %s: %s", args_file, ex)
        return []
    return found
