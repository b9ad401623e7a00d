"""
Applies updates to source files and import maps.

Edits are targeted splices: only the version token inside the recorded span
(or the matched import-map value) changes, so quoting, whitespace, comments
and key order survive untouched.
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .dependency import has_scheme, parse, to_uri
from .error_handling import MalformedSpanError
from .update import Update


class FileKind(Enum):
    """What kind of file a change applies to."""

    MODULE = "module"
    IMPORT_MAP = "import_map"


@dataclass(frozen=True)
class FileChange:
    """All updates that edit one file."""

    location: str
    kind: FileKind
    updates: Tuple[Update, ...]


def apply_to_module(update: Update, source_text: str) -> str:
    """
    Replace the version of one import specifier in module source text.

    Args:
        update: The update, whose span locates the specifier literal
        source_text: Current content of the referrer module

    Returns:
        str: The new content

    Raises:
        MalformedSpanError: The span is out of range or no longer holds the
            old specifier (the file changed since the graph was built)
    """
    if update.import_map is not None:
        raise ValueError(
            f"Update of {update.name} in {update.referrer} goes through an import map"
        )

    data = source_text.encode("utf-8")
    span = update.span
    if span.end > len(data):
        raise MalformedSpanError(
            f"Span [{span.start}, {span.end}) is outside {update.referrer} ({len(data)} bytes)"
        )

    try:
        segment = data[span.start : span.end].decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedSpanError(
            f"Span [{span.start}, {span.end}) does not fall on character boundaries in {update.referrer}"
        ) from e

    if update.old_specifier not in segment:
        raise MalformedSpanError(
            f"Expected {update.old_specifier!r} at [{span.start}, {span.end}) in "
            f"{update.referrer}, found {segment!r}"
        )

    patched = segment.replace(update.old_specifier, update.new_specifier, 1)
    return (data[: span.start] + patched.encode("utf-8") + data[span.end :]).decode("utf-8")


def _bump_import_map_value(update: Update) -> str:
    value = update.import_map.to_value
    source, target = update.version.from_, update.version.to

    if has_scheme(value):
        dependency = parse(value)
        if dependency.version is not None and dependency.version == source:
            return to_uri(dependency.with_version(target))

    token = f"@{source}"
    if source is None or token not in value:
        raise MalformedSpanError(
            f"Import map value {value!r} does not contain version {source!r}"
        )
    return value.replace(token, f"@{target}", 1)


def _json_string_pattern(value: str) -> str:
    return re.escape(json.dumps(value, ensure_ascii=False))


_JSON_TOKEN = re.compile(r'"(?:\\.|[^"\\])*"|[{}\[\]]')


def _imports_object_range(json_text: str) -> Optional[Tuple[int, int]]:
    """Character range of the body of the top-level "imports" object."""
    depth = 0
    pending = False
    start = None
    for token in _JSON_TOKEN.finditer(json_text):
        text = token.group()
        if text in ("{", "["):
            depth += 1
            if pending and text == "{" and depth == 2:
                start = token.end()
            pending = False
        elif text in ("}", "]"):
            if start is not None and depth == 2:
                return start, token.start()
            depth -= 1
        else:
            pending = (
                depth == 1
                and text == '"imports"'
                and json_text[token.end() :].lstrip().startswith(":")
            )
    return None


def apply_to_import_map(update: Update, json_text: str) -> str:
    """
    Replace the version inside the import-map entry an update went through.

    Args:
        update: An update carrying an ImportMapIndirection
        json_text: Current content of the import map

    Returns:
        str: The new content

    Raises:
        MalformedSpanError: The entry is no longer present in the text
    """
    indirection = update.import_map
    if indirection is None:
        raise ValueError(f"Update of {update.name} does not go through an import map")

    pattern = re.compile(
        _json_string_pattern(indirection.from_key)
        + r"\s*:\s*"
        + r"(?P<value>"
        + _json_string_pattern(indirection.to_value)
        + r")"
    )
    # Only the "imports" table; "scopes" may repeat the same entry
    bounds = _imports_object_range(json_text)
    match = pattern.search(json_text, *bounds) if bounds is not None else None
    if match is None:
        raise MalformedSpanError(
            f"Entry {indirection.from_key!r}: {indirection.to_value!r} not found in "
            f"{indirection.location}"
        )

    replacement = json.dumps(_bump_import_map_value(update), ensure_ascii=False)
    return json_text[: match.start("value")] + replacement + json_text[match.end("value") :]


def collect_file_changes(updates: Sequence[Update]) -> List[FileChange]:
    """Group updates by the file they edit, in first-seen order."""
    grouped: Dict[Tuple[str, FileKind], List[Update]] = {}
    for update in updates:
        kind = FileKind.IMPORT_MAP if update.import_map is not None else FileKind.MODULE
        grouped.setdefault((update.target, kind), []).append(update)

    return [
        FileChange(location=location, kind=kind, updates=tuple(items))
        for (location, kind), items in grouped.items()
    ]


def apply_file_change(change: FileChange, text: str) -> str:
    """Apply every update of a FileChange to the file's text."""
    if change.kind is FileKind.IMPORT_MAP:
        seen = set()
        for update in change.updates:
            key = (update.import_map.from_key, update.import_map.to_value)
            if key in seen:
                continue
            seen.add(key)
            text = apply_to_import_map(update, text)
        return text

    # Later spans first, so earlier offsets stay valid
    distinct = {(u.span.start, u.span.end): u for u in change.updates}
    for _, update in sorted(distinct.items(), key=lambda item: item[0][0], reverse=True):
        text = apply_to_module(update, text)
    return text


def write_all(
    changes: Sequence[FileChange],
    on_write: Optional[Callable[[FileChange], None]] = None,
) -> List[str]:
    """
    Apply file changes to disk.

    Args:
        changes: Changes produced by collect_file_changes()
        on_write: Called after each file is written

    Returns:
        List[str]: Locations written, in order
    """
    written = []
    for change in changes:
        path = Path(change.location)
        with open(path, encoding="utf-8", newline="") as f:
            text = f.read()
        patched = apply_file_change(change, text)
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(patched)
        written.append(change.location)
        if on_write is not None:
            on_write(change)
    return written
