"""
Bucket tag generation

Continuous recipe attributes are discretized into a small, finite set of
labels so filtering indexes stay bounded.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

MAX_HASHTAGS = 10

BUDGET_BUCKETS: Sequence[Tuple[float, str]] = (
    (10, "0-10"),
    (25, "10-25"),
    (50, "25-50"),
    (100, "50-100"),
)
CALORIE_BUCKETS: Sequence[Tuple[float, str]] = (
    (300, "0-300"),
    (600, "300-600"),
    (1000, "600-1000"),
    (1500, "1000-1500"),
)
PREP_TIME_BUCKETS: Sequence[Tuple[float, str]] = (
    (15, "0-15"),
    (30, "15-30"),
    (60, "30-60"),
    (120, "60-120"),
)


def _bucket(value: Optional[float], buckets: Sequence[Tuple[float, str]], overflow: str) -> str:
    value = value or 0
    for upper, label in buckets:
        if value <= upper:
            return label
    return overflow


def budget_bucket(budget: Optional[float]) -> str:
    return _bucket(budget, BUDGET_BUCKETS, "100+")


def calories_bucket(calories: Optional[float]) -> str:
    return _bucket(calories, CALORIE_BUCKETS, "1500+")


def prep_time_bucket(prep_time_minutes: Optional[float]) -> str:
    return _bucket(prep_time_minutes, PREP_TIME_BUCKETS, "120+")


def normalize_hashtags(hashtags: Optional[Iterable[str]]) -> List[str]:
    """Lower-case, strip '#', de-duplicate and cap; sorted for determinism"""
    cleaned = {
        tag.strip().lstrip("#").strip().lower()
        for tag in (hashtags or [])
        if isinstance(tag, str)
    }
    cleaned.discard("")
    return sorted(cleaned)[:MAX_HASHTAGS]


def generate_tags(
    budget: Optional[float],
    calories: Optional[float],
    prep_time_minutes: Optional[float],
    spiciness: Optional[int],
    hashtags: Optional[Iterable[str]],
) -> List[str]:
    """
    Derive the tag set for a video

    Missing values count as zero. Spiciness 0 means "not spicy" and is
    not tagged. The result is sorted, so equal inputs give equal lists.

    Example:
        >>> generate_tags(15, 700, 20, 0, ["pasta"])
        ['budget_10-25', 'calories_600-1000', 'prep_15-30', 'tag_pasta']
    """
    tags = {
        f"budget_{budget_bucket(budget)}",
        f"calories_{calories_bucket(calories)}",
        f"prep_{prep_time_bucket(prep_time_minutes)}",
    }

    if spiciness and spiciness > 0:
        tags.add(f"spicy_{int(spiciness)}")

    tags.update(f"tag_{tag}" for tag in normalize_hashtags(hashtags))

    return sorted(tags)
