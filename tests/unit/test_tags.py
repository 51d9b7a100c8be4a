"""
Unit Tests for tag generation
"""

import pytest

from engagement_core.domain.tags import (
    MAX_HASHTAGS,
    budget_bucket,
    calories_bucket,
    generate_tags,
    normalize_hashtags,
    prep_time_bucket,
)


def test_reference_example():
    tags = generate_tags(budget=15, calories=700, prep_time_minutes=20, spiciness=0, hashtags=["pasta"])
    assert set(tags) == {"budget_10-25", "calories_600-1000", "prep_15-30", "tag_pasta"}


@pytest.mark.parametrize(
    "value,expected",
    [(0, "0-10"), (10, "0-10"), (10.01, "10-25"), (25, "10-25"), (50, "25-50"), (100, "50-100"), (101, "100+")],
)
def test_budget_buckets(value, expected):
    assert budget_bucket(value) == expected


@pytest.mark.parametrize(
    "value,expected",
    [(300, "0-300"), (301, "300-600"), (1000, "600-1000"), (1500, "1000-1500"), (1501, "1500+")],
)
def test_calorie_buckets(value, expected):
    assert calories_bucket(value) == expected


@pytest.mark.parametrize(
    "value,expected",
    [(15, "0-15"), (16, "15-30"), (60, "30-60"), (120, "60-120"), (121, "120+")],
)
def test_prep_time_buckets(value, expected):
    assert prep_time_bucket(value) == expected


def test_missing_values_count_as_zero():
    assert generate_tags(None, None, None, None, None) == ["budget_0-10", "calories_0-300", "prep_0-15"]


def test_spiciness_only_when_positive():
    assert "spicy_3" in generate_tags(0, 0, 0, 3, [])
    assert not any(t.startswith("spicy_") for t in generate_tags(0, 0, 0, 0, []))


def test_deterministic_and_order_independent():
    first = generate_tags(30, 450, 45, 2, ["Pasta", "#quick", "pasta"])
    second = generate_tags(30, 450, 45, 2, ["quick", "pasta"])
    assert first == second
    assert first == sorted(first)
    assert first.count("tag_pasta") == 1


def test_hashtags_are_capped():
    hashtags = [f"tag{i:02d}" for i in range(25)]
    normalized = normalize_hashtags(list(reversed(hashtags)))
    assert len(normalized) == MAX_HASHTAGS
    assert normalized == sorted(hashtags)[:MAX_HASHTAGS]


def test_blank_hashtags_dropped():
    assert normalize_hashtags(["#", "  ", "Tasty"]) == ["tasty"]
