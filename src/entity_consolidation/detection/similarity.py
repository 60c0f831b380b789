"""Name likeness scoring using RapidFuzz.

Contract of every scorer here:
- integer result in [0, 100]
- symmetric: score(a, b) == score(b, a)
- reflexive: names equal after normalization score exactly 100
- names with nothing in common score low (0 is a valid score, never an error)

RapidFuzz ratios are not all symmetric (partial matching inside WRatio
depends on argument order), so arguments are put in a canonical order before
the metric runs.
"""

from __future__ import annotations

from collections.abc import Callable

from rapidfuzz import fuzz

from entity_consolidation.detection.normalizer import normalize_name

NameScorer = Callable[[str, str], int]
"""Scores two already-normalized names."""

METRICS: dict[str, Callable[..., float]] = {
    "token_sort": fuzz.token_sort_ratio,  # Word order ignored
    "token_set": fuzz.token_set_ratio,  # Very permissive: subset names score 100
    "ratio": fuzz.ratio,  # Plain Indel similarity
    "wratio": fuzz.WRatio,  # RapidFuzz's weighted combination
}


class NameSimilarityScorer:
    """Computes a 0-100 likeness score between two entity names.

    Usage:
        scorer = NameSimilarityScorer("token_sort")
        scorer.score("João Pereira", "Joao  Pereira")  # 100
    """

    def __init__(self, metric: str = "token_sort") -> None:
        if metric not in METRICS:
            msg = f"Unknown similarity metric: {metric!r} (expected one of {sorted(METRICS)})"
            raise ValueError(msg)
        self.metric = metric
        self._ratio = METRICS[metric]

    def score(self, name_a: str | None, name_b: str | None) -> int:
        """Score two raw names (normalizes both first)."""
        return self.score_normalized(normalize_name(name_a), normalize_name(name_b))

    def score_normalized(self, name_a: str, name_b: str) -> int:
        """Score two names that are already in normalized form."""
        if name_a == name_b:
            return 100
        if not name_a or not name_b:
            return 0
        if name_b < name_a:
            name_a, name_b = name_b, name_a
        value = int(round(self._ratio(name_a, name_b)))
        return max(0, min(100, value))

    __call__ = score_normalized
