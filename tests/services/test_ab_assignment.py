"""
A/B variant assignment and result evaluation
"""
from alumni.services.ab_testing import (
    assign_variant,
    control_variant,
    determine_winner,
    hash_subject,
    significance,
    slugify,
)

VARIANTS = [{"id": "a", "weight": 50}, {"id": "b", "weight": 50}]


def test_hash_is_stable_and_positive():
    value = hash_subject("session-1", "hero_messaging")
    assert value == hash_subject("session-1", "hero_messaging")
    assert value >= 0
    assert value != hash_subject("session-1", "cta_button_text")


def test_assignment_follows_weights():
    assert assign_variant(10, VARIANTS)["id"] == "a"
    assert assign_variant(60, VARIANTS)["id"] == "b"
    # wraps around the total weight
    assert assign_variant(150, VARIANTS)["id"] == "b"

    skewed = [{"id": "a", "weight": 90}, {"id": "b", "weight": 10}]
    counts = {"a": 0, "b": 0}
    for n in range(1000):
        counts[assign_variant(hash_subject(f"visitor-{n}", "t"), skewed)["id"]] += 1
    assert counts["a"] > counts["b"]


def test_assignment_fallbacks():
    assert assign_variant(5, [])["id"] == "control"
    zero = [{"id": "x", "weight": 0}, {"id": "y", "weight": 0}]
    assert assign_variant(5, zero)["id"] == "x"


def test_control_variant():
    assert control_variant(None)["id"] == "control"
    assert control_variant({"variants": [{"id": "first"}, {"id": "second"}]})["id"] == "first"


def test_significance_grows_with_sample_size():
    assert significance(99) == 0.0
    assert significance(500) == 47.5
    assert significance(5000) == 95.0


def test_winner_needs_significance():
    results = {
        "a": {"conversion_rate": 10.0, "statistical_significance": 95.0},
        "b": {"conversion_rate": 20.0, "statistical_significance": 50.0},
    }
    assert determine_winner(results) == {"variant_id": "a", "conversion_rate": 10.0, "significance": 95.0}

    results["a"]["statistical_significance"] = 90.0
    assert determine_winner(results) is None


def test_slugify():
    assert slugify("Footer Copy!") == "footer-copy"
