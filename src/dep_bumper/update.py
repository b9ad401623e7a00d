"""
Update records and version-fact reconciliation.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .dependency import Dependency, parse
from .error_handling import ConflictingVersionsError


@dataclass(frozen=True)
class Span:
    """A half-open range of UTF-8 byte offsets into a source file."""

    start: int
    end: int

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid span: [{self.start}, {self.end})")

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class VersionFact:
    """The reconciled (from, to) version pair of one package."""

    to: str
    from_: Optional[str] = None

    def __str__(self) -> str:
        if self.from_ is None:
            return f"=> {self.to}"
        return f"{self.from_} => {self.to}"


@dataclass(frozen=True)
class ImportMapIndirection:
    """Records that a specifier was resolved through an import map entry."""

    location: str
    from_key: str
    to_value: str


@dataclass(frozen=True)
class Update:
    """One newer version observed at one import occurrence."""

    name: str
    version: VersionFact
    old_specifier: str
    new_specifier: str
    referrer: str
    span: Span
    import_map: Optional[ImportMapIndirection] = None

    @property
    def from_dependency(self) -> Dependency:
        return parse(self.old_specifier)

    @property
    def to_dependency(self) -> Dependency:
        return parse(self.new_specifier)

    @property
    def target(self) -> str:
        """The file that has to be edited to apply this update."""
        if self.import_map is not None:
            return self.import_map.location
        return self.referrer


def _distinct(values: Iterable) -> List:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def reconcile(updates: List[Update]) -> Optional[VersionFact]:
    """
    Reconcile several occurrences of one package into a single VersionFact.

    Args:
        updates: Non-empty list of updates

    Returns:
        VersionFact, or None if the updates span more than one package

    Raises:
        ValueError: If updates is empty
        ConflictingVersionsError: If the occurrences disagree on the target version
    """
    if not updates:
        raise ValueError("Cannot reconcile an empty list of updates")

    names = _distinct(u.name for u in updates)
    if len(names) > 1:
        return None

    targets = _distinct(u.version.to for u in updates)
    if len(targets) > 1:
        raise ConflictingVersionsError(names[0], targets)

    sources = _distinct(u.version.from_ for u in updates)
    return VersionFact(
        to=targets[0],
        from_=sources[0] if len(sources) == 1 else None,
    )


def group_by_name(updates: Iterable[Update]) -> Dict[str, List[Update]]:
    """Partition updates by package name, preserving first-seen order."""
    groups: Dict[str, List[Update]] = {}
    for update in updates:
        groups.setdefault(update.name, []).append(update)
    return groups
