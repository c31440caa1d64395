"""Tests for hashing.py."""

from __future__ import annotations

from design_context.hashing import canonical_dumps, compute_input_hash, sha256_hex


class TestCanonicalJson:
    def test_key_order_does_not_matter(self):
        assert canonical_dumps({"b": 1, "a": [2, 1]}) == canonical_dumps({"a": [2, 1], "b": 1})

    def test_compact_and_unescaped(self):
        assert canonical_dumps({"name": "Überschrift", "n": 1}) == '{"n":1,"name":"Überschrift"}'

    def test_sha256_hex(self):
        assert sha256_hex("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


class TestInputHash:
    def test_prefixed_and_stable(self):
        tree = {"id": "1", "type": "FRAME"}
        assert compute_input_hash(tree) == compute_input_hash({"type": "FRAME", "id": "1"})
        assert compute_input_hash(tree).startswith("sha256:")

    def test_interactions_are_part_of_the_key(self):
        tree = [{"id": "1"}]
        assert compute_input_hash(tree) != compute_input_hash(tree, [{"source": "1", "target": "2"}])
