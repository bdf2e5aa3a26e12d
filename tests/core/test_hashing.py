"""Tests for weft.core.hashing — canonical JSON and fingerprint hashes."""

from decimal import Decimal

from weft.core.hashing import canonical_json, compute_hash


class TestCanonicalJson:
    def test_key_order_independent(self):
        assert canonical_json({"a": 1, "b": 2}) == canonical_json({"b": 2, "a": 1})

    def test_nested_key_order_independent(self):
        left = {"outer": {"x": [1, {"z": 1, "y": 2}]}}
        right = {"outer": {"x": [1, {"y": 2, "z": 1}]}}
        assert canonical_json(left) == canonical_json(right)

    def test_compact(self):
        assert canonical_json({"a": [1, 2]}) == '{"a":[1,2]}'

    def test_tuple_and_list_equal(self):
        assert canonical_json((1, 2)) == canonical_json([1, 2])

    def test_sets_are_sorted(self):
        assert canonical_json({"b", "a", "c"}) == canonical_json({"c", "a", "b"})

    def test_non_json_values_use_str(self):
        assert canonical_json({"cost": Decimal("0.10")}) == '{"cost":"0.10"}'

    def test_list_order_matters(self):
        assert canonical_json([1, 2]) != canonical_json([2, 1])


class TestComputeHash:
    def test_deterministic(self):
        assert compute_hash("embedder", "1", "text") == compute_hash("embedder", "1", "text")

    def test_positional_order_matters(self):
        assert compute_hash("a", "b") != compute_hash("b", "a")

    def test_default_length_is_full_digest(self):
        assert len(compute_hash("x")) == 64

    def test_truncated_length(self):
        full = compute_hash("x")
        assert compute_hash("x", length=16) == full[:16]
