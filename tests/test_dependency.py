"""
Tests for dependency specifier parsing and version helpers.
"""

import pytest

from src.dep_bumper.dependency import (
    Dependency,
    compare_versions,
    has_scheme,
    is_prerelease,
    is_range,
    parse,
    to_uri,
)


class TestParse:
    """Test parsing specifiers into dependencies."""

    def test_parse_url_with_version_and_path(self):
        dependency = parse("https://deno.land/std@0.200.0/version.ts")

        assert dependency == Dependency(
            scheme="https", name="deno.land/std", version="0.200.0", path="/version.ts"
        )

    def test_parse_npm_specifier(self):
        dependency = parse("npm:chalk@5.3.0")

        assert dependency.scheme == "npm"
        assert dependency.name == "chalk"
        assert dependency.version == "5.3.0"
        assert dependency.path == ""

    def test_parse_scoped_npm_specifier(self):
        dependency = parse("npm:@octokit/rest@19.0.0/dist/index.js")

        assert dependency.name == "@octokit/rest"
        assert dependency.version == "19.0.0"
        assert dependency.path == "/dist/index.js"

    def test_parse_jsr_specifier(self):
        dependency = parse("jsr:@std/assert@0.226.0")

        assert dependency.name == "@std/assert"
        assert dependency.version == "0.226.0"

    def test_parse_unversioned(self):
        dependency = parse("https://deno.land/x/oak/mod.ts")

        assert dependency.version is None
        assert not dependency.is_versioned
        assert dependency.name == "deno.land/x/oak/mod.ts"

    def test_parse_unversioned_scoped_url(self):
        dependency = parse("https://esm.sh/@scope/pkg")

        assert dependency.version is None

    def test_parse_uses_rightmost_version(self):
        dependency = parse("https://esm.sh/@preact/signals@1.2.1")

        assert dependency.name == "esm.sh/@preact/signals"
        assert dependency.version == "1.2.1"

    def test_parse_keeps_query(self):
        dependency = parse("https://esm.sh/react@18.2.0?dev")

        assert dependency.version == "18.2.0"
        assert dependency.path == "?dev"

    def test_parse_rejects_relative(self):
        with pytest.raises(ValueError):
            parse("./lib.ts")

    def test_parse_rejects_bare(self):
        with pytest.raises(ValueError):
            parse("chalk")

    @pytest.mark.parametrize(
        "specifier",
        [
            "https://deno.land/std@0.200.0/version.ts",
            "npm:@octokit/rest@19.0.0/dist/index.js",
            "jsr:@std/assert@0.226.0",
            "https://esm.sh/react@18.2.0?dev",
            "https://deno.land/x/oak/mod.ts",
            "npm:chalk",
        ],
    )
    def test_to_uri_inverts_parse(self, specifier):
        assert to_uri(parse(specifier)) == specifier

    def test_with_version(self):
        dependency = parse("https://deno.land/std@0.200.0/version.ts")

        assert dependency.with_version("0.201.0").to_uri() == (
            "https://deno.land/std@0.201.0/version.ts"
        )
        assert dependency.with_version(None).to_uri() == "https://deno.land/std/version.ts"


class TestSchemes:
    def test_has_scheme(self):
        assert has_scheme("https://example.com/a.ts")
        assert has_scheme("npm:chalk")
        assert not has_scheme("./a.ts")
        assert not has_scheme("chalk")

    def test_drive_letter_is_not_a_scheme(self):
        assert not has_scheme("C:\\project\\mod.ts")


class TestVersions:
    """Test prerelease, range and ordering helpers."""

    @pytest.mark.parametrize("token", ["1.0.0-rc.1", "2.0.0-beta", "v0.1.0-alpha.2"])
    def test_is_prerelease(self, token):
        assert is_prerelease(token)

    @pytest.mark.parametrize("token", ["1.0.0", "v0.200.0", None, "main"])
    def test_is_not_prerelease(self, token):
        assert not is_prerelease(token)

    @pytest.mark.parametrize("token", ["^1.0.0", "~2.3", ">=1.0.0 <2.0.0", "1.x"])
    def test_is_range(self, token):
        assert is_range(token)

    @pytest.mark.parametrize("token", ["1.0.0", "v1.2.3", "0.200.0", None])
    def test_is_not_range(self, token):
        assert not is_range(token)

    def test_compare_versions(self):
        assert compare_versions("1.0.0", "1.0.1") == -1
        assert compare_versions("v1.2.0", "1.2.0") == 0
        assert compare_versions("0.201.0", "0.200.0") == 1

    def test_compare_unrecognized(self):
        assert compare_versions("main", "1.0.0") is None
