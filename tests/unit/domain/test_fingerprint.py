"""Tests for content fingerprints.

Hey future me - the fingerprint decides insert/update/skip for millions of rows. If it ever
becomes order-sensitive or picks up a bookkeeping field, every monthly run rewrites the whole
catalog. These tests pin the properties that matter.
"""

from waxsync.domain.entities import MasterRecord, ReleaseRecord, TrackEntry
from waxsync.domain.value_objects import (
    FINGERPRINT_LENGTH,
    ReleaseFormat,
    canonical_json,
    fingerprint,
    fingerprint_record,
)


class TestFingerprint:
    """Test fingerprint() on plain mappings."""

    def test_fingerprint_is_64_lowercase_hex(self) -> None:
        """Digest is SHA-256 rendered as lowercase hex."""
        digest = fingerprint({"id": 1, "name": "Warp"})
        assert len(digest) == FINGERPRINT_LENGTH
        assert digest == digest.lower()

    def test_key_order_does_not_matter(self) -> None:
        """Same fields built in a different order hash the same."""
        first = fingerprint({"id": 1, "name": "Warp", "profile": None})
        second = fingerprint({"profile": None, "name": "Warp", "id": 1})
        assert first == second

    def test_nested_key_order_does_not_matter(self) -> None:
        """Sorting applies at every nesting level."""
        first = fingerprint({"track": {"title": "Xtal", "position": "A1"}})
        second = fingerprint({"track": {"position": "A1", "title": "Xtal"}})
        assert first == second

    def test_tuple_and_list_hash_the_same(self) -> None:
        """Tuples are rendered as JSON arrays."""
        assert fingerprint({"urls": ("a", "b")}) == fingerprint({"urls": ["a", "b"]})

    def test_list_order_matters(self) -> None:
        """Lists are ordered data, reordering is a change."""
        assert fingerprint({"urls": ["a", "b"]}) != fingerprint({"urls": ["b", "a"]})

    def test_any_field_change_changes_hash(self) -> None:
        """A single differing value yields a different digest."""
        assert fingerprint({"id": 1, "name": "Warp"}) != fingerprint({"id": 1, "name": "warp"})

    def test_none_differs_from_empty_string(self) -> None:
        """null and "" are different values."""
        assert fingerprint({"profile": None}) != fingerprint({"profile": ""})

    def test_enum_hashes_like_its_value(self) -> None:
        """Enums are normalized to their value before hashing."""
        assert fingerprint({"format": ReleaseFormat.VINYL}) == fingerprint({"format": "vinyl"})

    def test_canonical_json_is_compact_and_sorted(self) -> None:
        """Canonical rendering has no whitespace and sorted keys."""
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_canonical_json_keeps_unicode(self) -> None:
        """Non-ASCII text is hashed as UTF-8, not escaped."""
        assert canonical_json({"name": "Motörhead"}) == '{"name":"Motörhead"}'


class TestFingerprintRecord:
    """Test fingerprint_record() on catalog records."""

    def test_relation_fields_are_not_hashed(self) -> None:
        """Artist credits and genres live in association tables, not in the hash."""
        plain = MasterRecord(id=10, title="Amber")
        credited = MasterRecord(id=10, title="Amber", artist_ids=(3,), genres=("Electronic",))
        assert fingerprint_record(plain) == fingerprint_record(credited)

    def test_row_field_change_changes_hash(self) -> None:
        """Changing a column value is detected."""
        before = MasterRecord(id=10, title="Amber", year=1994)
        after = MasterRecord(id=10, title="Amber", year=1995)
        assert fingerprint_record(before) != fingerprint_record(after)

    def test_tracklist_is_part_of_the_hash(self) -> None:
        """Nested track entries are hashed like any other field."""
        before = ReleaseRecord(id=1, title="X", tracklist=(TrackEntry("A1", "Xtal", 291),))
        after = ReleaseRecord(id=1, title="X", tracklist=(TrackEntry("A1", "Xtal", 292),))
        assert fingerprint_record(before) != fingerprint_record(after)

    def test_equal_records_hash_equal(self) -> None:
        """Two separately built equal records share one fingerprint."""
        first = ReleaseRecord(id=1, title="X", styles=("Ambient", "IDM"))
        second = ReleaseRecord(id=1, title="X", styles=("Ambient", "IDM"))
        assert fingerprint_record(first) == fingerprint_record(second)
