"""Tests for the ConsolidationEngine facade: detection, caching and timeouts."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entity_consolidation.config import settings
from entity_consolidation.detection.similarity import NameSimilarityScorer
from entity_consolidation.errors import DetectionTimeoutError, ValidationError
from entity_consolidation.models import Entity, GroupKind
from entity_consolidation.services.engine import ConsolidationEngine

if TYPE_CHECKING:
    from conftest import MakeEntity, Seed


class CountingScorer:
    """Wraps the default scorer and counts comparisons."""

    def __init__(self) -> None:
        self.calls = 0
        self._scorer = NameSimilarityScorer()

    def __call__(self, name_a: str, name_b: str) -> int:
        self.calls += 1
        return self._scorer(name_a, name_b)


class TestDetection:
    async def test_exact_groups(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await seed(
            make_entity(entity_id=1, tax_id="123456789", display_name="Maria Silva"),
            make_entity(entity_id=2, tax_id="123 456 789", display_name="Maria Silva Lda"),
            make_entity(entity_id=3, tax_id="987654321", display_name="Rui Lopes"),
        )
        engine = ConsolidationEngine(session_factory)

        groups = await engine.find_exact_groups()

        assert [(group.kind, group.members) for group in groups] == [(GroupKind.EXACT, (1, 2))]

    async def test_no_duplicates_is_empty_list(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await seed(make_entity(entity_id=1, tax_id="1", display_name="Maria Silva"))
        engine = ConsolidationEngine(session_factory)

        assert await engine.find_exact_groups() == []
        assert await engine.find_fuzzy_groups(85) == []

    async def test_fuzzy_groups(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await seed(
            make_entity(entity_id=1, display_name="Joao Pereira"),
            make_entity(entity_id=2, display_name="João Pereira"),
            make_entity(entity_id=3, display_name="Rui Lopes"),
        )
        engine = ConsolidationEngine(session_factory)

        groups = await engine.find_fuzzy_groups(threshold=90)

        assert len(groups) == 1
        assert groups[0].members == (1, 2)
        assert groups[0].score == 100

    async def test_default_threshold(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await seed(
            make_entity(entity_id=1, display_name="Maria Silva"),
            make_entity(entity_id=2, display_name="Silva, Maria"),
        )
        engine = ConsolidationEngine(session_factory)

        groups = await engine.find_fuzzy_groups()

        assert [group.members for group in groups] == [(1, 2)]

    async def test_fuzzy_groups_with_differing_token_prefixes(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await seed(
            make_entity(entity_id=1, display_name="Cristina Ferreira"),
            make_entity(entity_id=2, display_name="Kristina Pereira"),
        )
        engine = ConsolidationEngine(session_factory)

        groups = await engine.find_fuzzy_groups(threshold=80)

        assert [(group.members, group.score) for group in groups] == [((1, 2), 85)]

    @pytest.mark.parametrize("threshold", [49, 101])
    async def test_threshold_validated(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        threshold: int,
    ) -> None:
        engine = ConsolidationEngine(session_factory)

        with pytest.raises(ValidationError):
            await engine.find_fuzzy_groups(threshold)

    async def test_retired_members_not_detected(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await seed(
            make_entity(entity_id=1, tax_id="111", display_name="Maria Silva"),
            make_entity(entity_id=2, tax_id="111", display_name="Maria Silva"),
        )
        engine = ConsolidationEngine(session_factory)
        await engine.merge([1, 2], survivor_id=1)

        assert await engine.find_exact_groups() == []
        assert await engine.find_fuzzy_groups(85) == []


class TestFuzzyCache:
    async def test_unchanged_registry_served_from_cache(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await seed(
            make_entity(entity_id=1, display_name="Maria Silva"),
            make_entity(entity_id=2, display_name="Maria Silva"),
        )
        scorer = CountingScorer()
        engine = ConsolidationEngine(session_factory, scorer=scorer)

        first = await engine.find_fuzzy_groups(85)
        calls = scorer.calls
        second = await engine.find_fuzzy_groups(85)

        assert first == second
        assert calls > 0
        assert scorer.calls == calls

    async def test_threshold_is_part_of_key(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await seed(
            make_entity(entity_id=1, display_name="Maria Silva"),
            make_entity(entity_id=2, display_name="Maria Silva"),
        )
        scorer = CountingScorer()
        engine = ConsolidationEngine(session_factory, scorer=scorer)

        await engine.find_fuzzy_groups(85)
        calls = scorer.calls
        await engine.find_fuzzy_groups(90)

        assert scorer.calls > calls

    async def test_new_entity_invalidates(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await seed(
            make_entity(entity_id=1, display_name="Maria Silva"),
            make_entity(entity_id=2, display_name="Maria Silva"),
        )
        engine = ConsolidationEngine(session_factory)
        assert [group.members for group in await engine.find_fuzzy_groups(85)] == [(1, 2)]

        await seed(make_entity(entity_id=3, display_name="Maria  Silva"))

        assert [group.members for group in await engine.find_fuzzy_groups(85)] == [(1, 2, 3)]

    async def test_updated_name_invalidates(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await seed(
            make_entity(entity_id=1, display_name="Maria Silva"),
            make_entity(entity_id=2, display_name="Maria Silva"),
        )
        engine = ConsolidationEngine(session_factory)
        assert len(await engine.find_fuzzy_groups(85)) == 1

        async with session_factory() as session:
            async with session.begin():
                entity = await session.get(Entity, 2)
                assert entity is not None
                entity.display_name = "Bob Brown"

        assert await engine.find_fuzzy_groups(85) == []

    async def test_merge_invalidates(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await seed(
            make_entity(entity_id=1, display_name="Maria Silva"),
            make_entity(entity_id=2, display_name="Maria Silva"),
        )
        scorer = CountingScorer()
        engine = ConsolidationEngine(session_factory, scorer=scorer)
        await engine.find_fuzzy_groups(85)

        await engine.merge([1, 2], survivor_id=1)

        assert await engine.find_fuzzy_groups(85) == []


class TestDetectionTimeout:
    async def test_slow_detection_times_out(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings, "fuzzy_yield_every", 5)
        await seed(
            *(make_entity(entity_id=index, display_name=f"Client {index}") for index in range(1, 41))
        )

        def slow_scorer(name_a: str, name_b: str) -> int:
            time.sleep(0.005)
            return 0

        engine = ConsolidationEngine(session_factory, scorer=slow_scorer, detection_timeout=0.2)

        with pytest.raises(DetectionTimeoutError) as exc_info:
            await engine.find_fuzzy_groups(85)

        assert exc_info.value.retryable is True
        assert exc_info.value.details["detection"] == "fuzzy"
