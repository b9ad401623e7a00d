"""
Module graph construction.

The update collector only needs, per reachable module, the import specifiers
it contains and where they sit in the file. ModuleGraphBuilder is that
interface; StaticModuleGraphBuilder is a lightweight implementation that scans
local JavaScript/TypeScript sources without executing or downloading anything.
"""

import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple
from urllib.parse import urlparse
from urllib.request import url2pathname

from .dependency import has_scheme
from .error_handling import log_parsing_error
from .import_map import ImportMap
from .update import Span

SCRIPT_EXTENSIONS = {"", ".js", ".mjs", ".cjs", ".jsx", ".ts", ".mts", ".cts", ".tsx"}

_IMPORT_PATTERNS = [
    # import x from "..." / export { x } from "..." / import type { T } from "..."
    re.compile(r"""\b(?:import|export)\s[^'";]*?\bfrom\s*(['"])(?P<specifier>[^'"\n]+)\1"""),
    # import "..."
    re.compile(r"""\bimport\s*(['"])(?P<specifier>[^'"\n]+)\1"""),
    # import("...")
    re.compile(r"""\bimport\s*\(\s*(['"])(?P<specifier>[^'"\n]+)\1\s*\)"""),
]

# Strings are matched too, so "//" inside a URL literal is not taken for a comment
_STRING_OR_COMMENT = re.compile(
    r"""("(?:\\.|[^"\\\n])*"|'(?:\\.|[^'\\\n])*'|`(?:\\.|[^`\\])*`)|(//[^\n]*|/\*.*?(?:\*/|\Z))""",
    re.S,
)


@dataclass(frozen=True)
class ModuleImport:
    """One import specifier occurrence inside a module."""

    referrer: str
    specifier: str
    span: Span
    resolved: Optional[str] = None


class ModuleGraphBuilder(ABC):
    """Supplies the import occurrences reachable from a set of entrypoints."""

    @abstractmethod
    async def build(self, entrypoints: Iterable[str]) -> List[ModuleImport]:
        """Return import occurrences in discovery order."""


def _comment_ranges(source: str) -> List[Tuple[int, int]]:
    return [
        match.span(2)
        for match in _STRING_OR_COMMENT.finditer(source)
        if match.group(2) is not None
    ]


def _in_ranges(position: int, ranges: List[Tuple[int, int]]) -> bool:
    return any(start <= position < end for start, end in ranges)


def find_imports(source: str, referrer: str) -> List[ModuleImport]:
    """
    Find import specifier literals in JavaScript/TypeScript source.

    Spans cover the specifier text between the quotes, in UTF-8 bytes.
    Imports inside // and /* */ comments are ignored.
    """
    comments = _comment_ranges(source)
    found = {}
    for pattern in _IMPORT_PATTERNS:
        for match in pattern.finditer(source):
            if _in_ranges(match.start(), comments) or _in_ranges(match.start("specifier"), comments):
                continue
            start = len(source[: match.start("specifier")].encode("utf-8"))
            specifier = match.group("specifier")
            span = Span(start, start + len(specifier.encode("utf-8")))
            found.setdefault(span.start, ModuleImport(referrer, specifier, span))
    return [found[start] for start in sorted(found)]


def _to_local_path(url: str) -> Optional[Path]:
    parsed = urlparse(url)
    if parsed.scheme != "file":
        return None
    return Path(url2pathname(parsed.path))


class StaticModuleGraphBuilder(ModuleGraphBuilder):
    """Walks local modules by following relative and import-mapped file imports."""

    def __init__(self, import_map: Optional[ImportMap] = None):
        self.import_map = import_map

    def _resolve(self, specifier: str, referrer: Path) -> Optional[str]:
        if has_scheme(specifier):
            return specifier
        if specifier.startswith(("./", "../", "/")):
            return (referrer.parent / specifier).resolve().as_uri()
        if self.import_map is not None:
            resolution = self.import_map.resolve(specifier, referrer.resolve().as_uri())
            if resolution is not None:
                return resolution.specifier
        return None

    def _local_child(self, specifier: str, resolved: Optional[str], referrer: Path) -> Optional[Path]:
        if specifier.startswith(("./", "../")):
            return Path(os.path.normpath(referrer.parent / specifier))
        if resolved is not None:
            return _to_local_path(resolved)
        return None

    async def build(self, entrypoints: Iterable[str]) -> List[ModuleImport]:
        imports: List[ModuleImport] = []
        queue = [Path(entrypoint) for entrypoint in entrypoints]
        visited: Set[Path] = set()

        while queue:
            module = queue.pop(0)
            key = module.resolve()
            if key in visited:
                continue
            visited.add(key)

            try:
                # Keep line endings so spans match the bytes on disk
                with open(module, encoding="utf-8", newline="") as f:
                    source = f.read()
            except (OSError, UnicodeDecodeError) as e:
                log_parsing_error(
                    "Could not read module",
                    "module_graph",
                    "build",
                    file_path=str(module),
                    exception=e,
                )
                continue

            for occurrence in find_imports(source, str(module)):
                resolved = self._resolve(occurrence.specifier, module)
                imports.append(
                    ModuleImport(occurrence.referrer, occurrence.specifier, occurrence.span, resolved)
                )
                child = self._local_child(occurrence.specifier, resolved, module)
                if child is not None and child.suffix in SCRIPT_EXTENSIONS and child.is_file():
                    queue.append(child)

        return imports
