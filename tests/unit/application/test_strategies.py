import random
from datetime import datetime

import pytest

from src.quiz.application.strategies import (
    SelectionContext,
    StrategyRegistry,
    prepare_questions,
    shuffled,
)
from src.quiz.domain.configs import (
    AreaSessionConfig,
    CustomSessionConfig,
    FavoritesSessionConfig,
    MixedSessionConfig,
    SessionMode,
    SingleQuestionSessionConfig,
    SmartSessionConfig,
    SubjectSessionConfig,
)
from src.quiz.domain.errors import InvalidConfigError, QuestionNotFoundError
from src.quiz.domain.models import AnswerRecord


@pytest.fixture
def ctx(source, ledger):
    return SelectionContext(user_id="user-1", source=source, ledger=ledger, rng=random.Random(42))


def generate(config, ctx):
    return StrategyRegistry.get(config.session_mode).generate(config, ctx)


class TestHelpers:
    def test_shuffled_keeps_the_input_untouched(self, question_bank):
        original = list(question_bank)
        result = shuffled(question_bank, random.Random(1))
        assert question_bank == original
        assert sorted(q.id for q in result) == sorted(q.id for q in original)

    def test_prepare_truncates_to_limit(self, question_bank):
        result = prepare_questions(question_bank, shuffle=False, limit=5, rng=random.Random(1))
        assert [q.id for q in result] == [q.id for q in question_bank[:5]]

    def test_prepare_with_fewer_questions_than_limit(self, question_bank):
        result = prepare_questions(question_bank[:3], shuffle=True, limit=10, rng=random.Random(1))
        assert len(result) == 3


class TestAreaAndSubject:
    def test_area_returns_the_whole_area(self, ctx):
        pool = generate(AreaSessionConfig(area="matematica"), ctx)
        assert len(pool) == 12
        assert {q.area for q in pool} == {"matematica"}

    def test_subject_filters_to_subject(self, ctx):
        pool = generate(SubjectSessionConfig(area="matematica", subject="geometria"), ctx)
        assert [q.id for q in pool] == ["G1", "G2", "G3", "G4"]

    def test_unknown_area_raises(self, ctx):
        with pytest.raises(QuestionNotFoundError):
            generate(AreaSessionConfig(area="astronomia"), ctx)


class TestMixed:
    def test_takes_at_most_three_per_area(self, ctx):
        pool = generate(MixedSessionConfig(), ctx)

        per_area = {}
        for q in pool:
            per_area[q.area] = per_area.get(q.area, 0) + 1

        assert per_area == {"matematica": 3, "portugues": 3, "informatica": 3}
        assert len(pool) <= 15


class TestFavorites:
    def test_returns_only_favorites_across_areas(self, ctx):
        pool = generate(FavoritesSessionConfig(favorite_ids=frozenset({"M1", "P2"})), ctx)
        assert sorted(q.id for q in pool) == ["M1", "P2"]

    def test_empty_favorites_give_empty_pool(self, ctx):
        assert generate(FavoritesSessionConfig(), ctx) == []


class TestSingle:
    def test_returns_the_one_question(self, ctx):
        pool = generate(SingleQuestionSessionConfig(area="matematica", question_id="M3"), ctx)
        assert [q.id for q in pool] == ["M3"]

    def test_unknown_id_gives_empty_pool(self, ctx):
        assert generate(SingleQuestionSessionConfig(area="matematica", question_id="X"), ctx) == []


class TestSmart:
    def test_prefers_unseen_and_wrong_questions(self, ctx, ledger):
        at = datetime(2026, 3, 10, 9, 0)
        ledger.append(
            "user-1",
            [AnswerRecord(area="matematica", question_id=f"M{i}", correct=True, answered_at=at) for i in range(1, 9)],
        )

        pool = generate(SmartSessionConfig(area="matematica"), ctx)

        ids = {q.id for q in pool}
        assert len(pool) == 10
        # All four unseen geometry questions make the cut
        assert {"G1", "G2", "G3", "G4"} <= ids

    def test_without_area_uses_every_area(self, ctx):
        pool = generate(SmartSessionConfig(), ctx)
        assert len({q.area for q in pool}) > 1


class TestCustom:
    def test_difficulty_filter(self, ctx):
        pool = generate(CustomSessionConfig(area="matematica", difficulty="hard"), ctx)
        assert {q.id for q in pool} == {"G1", "G2", "G3", "G4"}

    def test_subjects_filter(self, ctx):
        pool = generate(CustomSessionConfig(area="matematica", subjects=("algebra",)), ctx)
        assert len(pool) == 8


class TestRegistry:
    def test_every_mode_has_a_strategy(self):
        for mode in SessionMode:
            assert StrategyRegistry.get(mode) is not None

    def test_unknown_mode_raises(self):
        with pytest.raises(InvalidConfigError):
            StrategyRegistry.get("random")

    @pytest.mark.parametrize("mode", [SessionMode.AREA, SessionMode.FAVORITES, SessionMode.CUSTOM])
    def test_strategy_rejects_a_config_of_another_mode(self, ctx, mode):
        with pytest.raises(InvalidConfigError):
            StrategyRegistry.get(mode).generate(MixedSessionConfig(), ctx)
