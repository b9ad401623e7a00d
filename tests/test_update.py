"""
Tests for update records and version reconciliation.
"""

import pytest

from src.dep_bumper.error_handling import ConflictingVersionsError
from src.dep_bumper.update import (
    ImportMapIndirection,
    Span,
    Update,
    VersionFact,
    group_by_name,
    reconcile,
)


def make_update(name="deno.land/std", from_="0.200.0", to="0.201.0", referrer="mod.ts", start=20):
    old = f"https://{name}@{from_}/mod.ts"
    new = f"https://{name}@{to}/mod.ts"
    return Update(
        name=name,
        version=VersionFact(to=to, from_=from_),
        old_specifier=old,
        new_specifier=new,
        referrer=referrer,
        span=Span(start, start + len(old)),
    )


class TestSpan:
    def test_length(self):
        assert Span(3, 10).length == 7

    def test_rejects_inverted_span(self):
        with pytest.raises(ValueError):
            Span(10, 3)

    def test_rejects_negative_start(self):
        with pytest.raises(ValueError):
            Span(-1, 3)


class TestReconcile:
    """Test merging occurrences of one package into a VersionFact."""

    def test_single_update(self):
        assert reconcile([make_update()]) == VersionFact(to="0.201.0", from_="0.200.0")

    def test_agreeing_sources(self):
        updates = [make_update(referrer="a.ts"), make_update(referrer="b.ts")]

        assert reconcile(updates) == VersionFact(to="0.201.0", from_="0.200.0")

    def test_disagreeing_sources_drop_from(self):
        updates = [make_update(from_="0.199.0"), make_update(from_="0.200.0")]

        fact = reconcile(updates)

        assert fact.to == "0.201.0"
        assert fact.from_ is None
        assert str(fact) == "=> 0.201.0"

    def test_conflicting_targets(self):
        updates = [make_update(to="0.201.0"), make_update(to="0.202.0")]

        with pytest.raises(ConflictingVersionsError):
            reconcile(updates)

    def test_several_packages(self):
        updates = [make_update(name="deno.land/std"), make_update(name="deno.land/x/oak")]

        assert reconcile(updates) is None

    def test_empty(self):
        with pytest.raises(ValueError):
            reconcile([])


class TestUpdate:
    def test_target_is_referrer(self):
        assert make_update(referrer="lib.ts").target == "lib.ts"

    def test_target_is_import_map(self):
        update = Update(
            name="chalk",
            version=VersionFact(to="5.3.0", from_="5.0.0"),
            old_specifier="npm:chalk@5.0.0",
            new_specifier="npm:chalk@5.3.0",
            referrer="mod.ts",
            span=Span(0, 5),
            import_map=ImportMapIndirection("deno.json", "chalk", "npm:chalk@5.0.0"),
        )

        assert update.target == "deno.json"
        assert update.from_dependency.version == "5.0.0"
        assert update.to_dependency.version == "5.3.0"

    def test_group_by_name_preserves_order(self):
        updates = [
            make_update(name="b.land/x"),
            make_update(name="a.land/x"),
            make_update(name="b.land/x", referrer="lib.ts"),
        ]

        groups = group_by_name(updates)

        assert list(groups) == ["b.land/x", "a.land/x"]
        assert len(groups["b.land/x"]) == 2
