"""Tests for the RapidFuzz name scorer."""

from __future__ import annotations

import pytest

from entity_consolidation.detection.similarity import METRICS, NameSimilarityScorer

NAMES = [
    "Maria Silva",
    "Maria Silva Lda",
    "Silva Maria",
    "João Pereira",
    "Joao Pereira",
    "Ana Costa",
    "Ana Costa Silva",
    "Pedro Silva",
    "ACME Comércio, S.A.",
    "Acme Comercio SA",
    "x",
    "",
]


class TestNameSimilarityScorer:
    @pytest.mark.parametrize("metric", sorted(METRICS))
    def test_symmetric(self, metric: str) -> None:
        scorer = NameSimilarityScorer(metric)
        for name_a in NAMES:
            for name_b in NAMES:
                assert scorer.score(name_a, name_b) == scorer.score(name_b, name_a), (
                    f"{metric}: {name_a!r} vs {name_b!r}"
                )

    @pytest.mark.parametrize("metric", sorted(METRICS))
    def test_reflexive(self, metric: str) -> None:
        scorer = NameSimilarityScorer(metric)
        for name in NAMES:
            if name:
                assert scorer.score(name, name) == 100

    @pytest.mark.parametrize("metric", sorted(METRICS))
    def test_range(self, metric: str) -> None:
        scorer = NameSimilarityScorer(metric)
        for name_a in NAMES:
            for name_b in NAMES:
                assert 0 <= scorer.score(name_a, name_b) <= 100

    def test_diacritics_ignored(self) -> None:
        scorer = NameSimilarityScorer()
        assert scorer.score("Joao Pereira", "João Pereira") == 100

    def test_word_order_ignored_by_default(self) -> None:
        scorer = NameSimilarityScorer()
        assert scorer.score("Maria Silva", "Silva Maria") == 100

    def test_unrelated_names_score_low(self) -> None:
        scorer = NameSimilarityScorer()
        assert scorer.score("Maria Silva", "Bob Brown") < 50

    def test_empty_against_name_is_zero(self) -> None:
        scorer = NameSimilarityScorer()
        assert scorer.score("", "Maria Silva") == 0
        assert scorer.score(None, "Maria Silva") == 0

    def test_callable_on_normalized_names(self) -> None:
        scorer = NameSimilarityScorer()
        assert scorer("maria silva", "maria silva") == 100

    def test_unknown_metric(self) -> None:
        with pytest.raises(ValueError, match="Unknown similarity metric"):
            NameSimilarityScorer("jaro")
