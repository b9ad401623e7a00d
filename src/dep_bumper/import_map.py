"""
Import maps.

Reads an import map (or a project config file that points to one) and
resolves bare specifiers through it, reporting which entry matched so the
entry itself can be patched later.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union
from urllib.parse import urljoin

from .dependency import has_scheme
from .error_handling import ImportMapError

CONFIG_FILE_NAMES = ("deno.json", "deno.jsonc")


@dataclass(frozen=True)
class ImportMapResolution:
    """Result of resolving a specifier through an import map."""

    specifier: str
    from_key: Optional[str] = None
    to_value: Optional[str] = None


@dataclass(frozen=True)
class ImportMap:
    """An import map loaded from a JSON file."""

    location: str
    imports: Dict[str, str]

    def resolve(self, specifier: str, referrer: str) -> Optional[ImportMapResolution]:
        """
        Resolve a specifier through the "imports" table.

        An exact key match wins; otherwise the longest key ending in "/" that
        prefixes the specifier is used. Relative targets are resolved against
        the import map's own location.

        Args:
            specifier: The import specifier as written in the module
            referrer: Location of the importing module

        Returns:
            ImportMapResolution, or None if no entry applies
        """
        if specifier in self.imports:
            key = specifier
            target = self.imports[key]
        else:
            prefixes = [
                k for k in self.imports
                if k.endswith("/") and specifier.startswith(k)
            ]
            if not prefixes:
                return None
            key = max(prefixes, key=len)
            target = self.imports[key] + specifier[len(key):]

        if not has_scheme(target):
            target = urljoin(Path(self.location).resolve().as_uri(), target)

        return ImportMapResolution(specifier=target, from_key=key, to_value=self.imports[key])


def read_import_map(path: Union[str, Path]) -> Optional[ImportMap]:
    """
    Read an import map from a JSON file.

    A file with an "importMap" key (a project config file) is followed to the
    import map it references. Returns None for an empty file or one without an
    "imports" table.

    Raises:
        ImportMapError: If the file cannot be read or is not valid JSON
    """
    path = Path(path)
    try:
        data = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ImportMapError(f"Could not read import map {path}: {e}") from e
    if not data.strip():
        return None

    try:
        document = json.loads(data)
    except json.JSONDecodeError as e:
        raise ImportMapError(f"Invalid JSON in import map {path}: {e}") from e
    if not isinstance(document, dict):
        return None

    if isinstance(document.get("importMap"), str):
        return read_import_map(path.parent / document["importMap"])

    imports = document.get("imports")
    if not isinstance(imports, dict):
        return None
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in imports.items()):
        raise ImportMapError(f"Import map {path} must map strings to strings")

    return ImportMap(location=str(path), imports=dict(imports))


def find_config_up(start: Union[str, Path], *names: str) -> Optional[Path]:
    """
    Search for a file with one of the given names in parent directories.

    Args:
        start: A file or directory to start from
        names: File names to look for (defaults to the project config names)

    Returns:
        The first path found, or None when the filesystem root is reached
    """
    names = names or CONFIG_FILE_NAMES
    directory = Path(start).resolve()
    if not directory.is_dir():
        directory = directory.parent

    while True:
        for name in names:
            candidate = directory / name
            if candidate.is_file():
                return candidate
        if directory.parent == directory:
            return None
        directory = directory.parent
