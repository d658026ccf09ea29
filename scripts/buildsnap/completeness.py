"""Completeness check of a configurations archive.

The optimizer can print every rule it ended up applying. If each archived
rule file is cut out of that dump, whatever is left over was applied but
never uploaded. This is a greedy approximation of a multiset difference,
not an exact diff: each file's text is removed at its first literal
occurrence.
"""

import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class CompletenessReport:
    """Outcome of a completeness check.

    Attributes:
        missing: Archived texts that could not be located in the reference.
        residue: Stripped reference text not accounted for by any archived text.
    """
    missing: list = field(default_factory=list)
    residue: str = ""

    @property
    def complete(self) -> bool:
        return not self.missing and not self.residue


def subtract_rules(reference: str, rules: list[str], longest_first: bool = True) -> CompletenessReport:
    """Remove each rule text from ``reference`` at its first occurrence.

    Texts are processed longest first so that a short rule cannot consume
    part of a longer rule that contains it. ``longest_first=False`` keeps the
    given order and exists to compare against that behavior.

    Args:
        reference: The full "print all rules" output.
        rules: Archived rule texts.
        longest_first: Sort ``rules`` by descending length before subtracting.

    Returns:
        A :class:`CompletenessReport`.
    """
    if longest_first:
        rules = sorted(rules, key=len, reverse=True)
    report = CompletenessReport()
    remaining = reference
    for rule in rules:
        idx = remaining.find(rule)
        if idx < 0:
            report.missing.append(rule)
        else:
            remaining = remaining[:idx] + remaining[idx + len(rule):]
    report.residue = remaining.strip()
    return report


def check_configurations_archive(
    archive: Path,
    reference: Path,
    disabling_rules: Optional[Path] = None,
) -> CompletenessReport:
    """Check that every rule in ``reference`` is accounted for in ``archive``.

    Every archive entry, plus the disabling-rules file when it exists, is
    subtracted from the reference dump. Texts that cannot be found and
    leftover reference text are reported as warnings.

    Args:
        archive: The configurations archive.
        reference: The optimizer's "print all rules" output.
        disabling_rules: The generated disabling-rules file, if any.

    Returns:
        The report. Empty when the reference file is missing.
    """
    reference = Path(reference)
    if not reference.exists():
        logger.warning("Cannot check configuration completeness, file missing: %s", reference)
        return CompletenessReport()

    logger.debug("Checking configuration completeness...")
    with zipfile.ZipFile(archive) as zf:
        rules = [zf.read(info).decode("utf-8", errors="replace") for info in zf.infolist()]
    if disabling_rules is not None and Path(disabling_rules).exists():
        rules.append(Path(disabling_rules).read_text(encoding="utf-8", errors="replace"))

    report = subtract_rules(reference.read_text(encoding="utf-8", errors="replace"), rules)
    for rule in report.missing:
        logger.warning("bundled rule not found in total configuration: %s", rule)
    if report.residue:
        logger.warning("Configurations check, rules not uploaded: '%s'", report.residue)
    return report
