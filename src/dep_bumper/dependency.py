"""
Dependency specifiers.

Parses URL-shaped import specifiers such as ``https://deno.land/std@0.200.0/version.ts``
or ``npm:chalk@5.3.0`` into their registry identity, version token and sub-path,
and renders them back without loss.
"""

import re
from dataclasses import dataclass, replace
from typing import Optional

import semantic_version

# Schemes whose body is written after "//"
HIERARCHICAL_SCHEMES = {"http", "https", "file", "ftp", "ws", "wss"}

_SCHEME_PATTERN = re.compile(r"^(?P<scheme>[a-zA-Z][a-zA-Z0-9+.\-]*):(?P<rest>.*)$", re.S)

# Greedy name, so the split happens on the rightmost "@<version>".
# A name never ends in "/", so "esm.sh/@scope/pkg" stays unversioned.
_VERSIONED_BODY = re.compile(r"^(?P<name>.*[^/])@(?P<version>[^/?#]+)(?P<path>(?:[/?#].*)?)$", re.S)

_RANGE_MARKERS = re.compile(r"[\^~<>=*|\s]|(?:^|\.)[xX](?:\.|$)")


@dataclass(frozen=True)
class Dependency:
    """A dependency as referenced by an import specifier."""

    scheme: str
    name: str
    version: Optional[str]
    path: str = ""

    def to_uri(self) -> str:
        return to_uri(self)

    def with_version(self, version: Optional[str]) -> "Dependency":
        return replace(self, version=version)

    @property
    def is_versioned(self) -> bool:
        return self.version is not None


def has_scheme(specifier: str) -> bool:
    """Whether the specifier is an absolute URL (as opposed to a relative or bare one)."""
    match = _SCHEME_PATTERN.match(specifier)
    # Single letters are Windows drive letters, not schemes
    return bool(match) and len(match.group("scheme")) > 1


def parse(url: str) -> Dependency:
    """
    Parse a specifier into a Dependency.

    Args:
        url: An absolute URL or scheme-prefixed registry specifier

    Returns:
        Dependency: version is None when the specifier carries no ``@<version>``

    Raises:
        ValueError: If the specifier has no scheme
    """
    if not has_scheme(url):
        raise ValueError(f"Not an absolute specifier: {url!r}")

    match = _SCHEME_PATTERN.match(url)
    scheme = match.group("scheme")
    body = match.group("rest")
    if scheme.lower() in HIERARCHICAL_SCHEMES and body.startswith("//"):
        body = body[2:]

    versioned = _VERSIONED_BODY.match(body)
    if not versioned:
        return Dependency(scheme=scheme, name=body, version=None, path="")

    return Dependency(
        scheme=scheme,
        name=versioned.group("name"),
        version=versioned.group("version"),
        path=versioned.group("path"),
    )


def to_uri(dependency: Dependency) -> str:
    """Render a Dependency back into its specifier. Exact inverse of parse()."""
    separator = "//" if dependency.scheme.lower() in HIERARCHICAL_SCHEMES else ""
    version = f"@{dependency.version}" if dependency.version is not None else ""
    return f"{dependency.scheme}:{separator}{dependency.name}{version}{dependency.path}"


def _strip_prefix(token: str) -> str:
    if token[:1] in ("v", "V") and token[1:2].isdigit():
        return token[1:]
    return token


def parse_semver(token: Optional[str]) -> Optional[semantic_version.Version]:
    """Parse a version token leniently, tolerating a leading "v" and partial versions."""
    if not token:
        return None
    stripped = _strip_prefix(token.strip())
    try:
        return semantic_version.Version(stripped)
    except ValueError:
        pass
    try:
        return semantic_version.Version.coerce(stripped)
    except ValueError:
        return None


def is_prerelease(token: Optional[str]) -> bool:
    """Whether a version token is marked as a prerelease (e.g. ``1.0.0-rc.1``)."""
    version = parse_semver(token)
    return bool(version and version.prerelease)


def is_range(token: Optional[str]) -> bool:
    """Whether a version token is a range or inequality rather than a single pin."""
    if not token:
        return False
    try:
        semantic_version.Version(_strip_prefix(token.strip()))
        return False
    except ValueError:
        pass
    if not _RANGE_MARKERS.search(token):
        return False
    try:
        semantic_version.NpmSpec(token)
    except ValueError:
        return False
    return True


def compare_versions(left: Optional[str], right: Optional[str]) -> Optional[int]:
    """
    Compare two version tokens under semantic-version ordering.

    Returns:
        -1, 0 or 1, or None when either side is not a recognizable version
    """
    a, b = parse_semver(left), parse_semver(right)
    if a is None or b is None:
        return None
    if a < b:
        return -1
    if a > b:
        return 1
    return 0
