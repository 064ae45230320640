import random
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TypeVar

from src.config import GameConfig
from src.quiz.domain.configs import (
    AreaSessionConfig,
    CustomSessionConfig,
    FavoritesSessionConfig,
    MixedSessionConfig,
    SessionConfig,
    SessionMode,
    SingleQuestionSessionConfig,
    SmartSessionConfig,
    SubjectSessionConfig,
)
from src.quiz.domain.errors import InvalidConfigError, QuestionNotFoundError
from src.quiz.domain.models import Question
from src.quiz.domain.ports import IQuestionSource
from src.quiz.domain.progress_ledger import ProgressLedger
from src.quiz.domain.spaced_repetition import SpacedRepetitionSelector
from src.shared.telemetry import Telemetry, measure_time


@dataclass
class SelectionContext:
    user_id: str
    source: IQuestionSource
    ledger: ProgressLedger
    rng: random.Random


_C = TypeVar("_C")


def _expect(config: SessionConfig, variant: type[_C]) -> _C:
    """Narrows the config to the variant a strategy was registered for."""
    if not isinstance(config, variant):
        raise InvalidConfigError(
            f"{variant.__name__} required, got {type(config).__name__}"
        )
    return config


def shuffled(questions: list[Question], rng: random.Random) -> list[Question]:
    """Fisher-Yates shuffle of a copy; the source list is left untouched."""
    result = list(questions)
    rng.shuffle(result)
    return result


def prepare_questions(
    questions: list[Question], shuffle: bool, limit: int, rng: random.Random
) -> list[Question]:
    """Optional shuffle, then truncation to the tier limit."""
    prepared = shuffled(questions, rng) if shuffle else list(questions)
    return prepared[:limit]


def _iter_all_areas(ctx: SelectionContext, telemetry: Telemetry) -> Iterator[tuple[str, list[Question]]]:
    """Yields (area, questions) for every area the source knows; unknown ones are skipped."""
    for area in ctx.source.list_areas():
        try:
            yield area, ctx.source.fetch(area)
        except QuestionNotFoundError as e:
            telemetry.log_warning("Area skipped", area=area, reason=str(e))


# --- Interface ---
class IQuestionStrategy(ABC):
    @abstractmethod
    def generate(self, config: SessionConfig, ctx: SelectionContext) -> list[Question]:
        """Returns the eligible pool; the engine applies shuffle and limit."""
        pass


# --- Concrete Strategies ---


class AreaStrategy(IQuestionStrategy):
    def generate(self, config: SessionConfig, ctx: SelectionContext) -> list[Question]:
        config = _expect(config, AreaSessionConfig)
        return ctx.source.fetch(config.area)


class SubjectStrategy(IQuestionStrategy):
    def generate(self, config: SessionConfig, ctx: SelectionContext) -> list[Question]:
        config = _expect(config, SubjectSessionConfig)
        return ctx.source.fetch(config.area, config.subject)


class MixedStrategy(IQuestionStrategy):
    def __init__(self) -> None:
        self.telemetry = Telemetry("Strategy.Mixed")

    @measure_time("generate_mixed")
    def generate(self, config: SessionConfig, ctx: SelectionContext) -> list[Question]:
        config = _expect(config, MixedSessionConfig)
        selection: list[Question] = []
        loaded: list[str] = []

        for area, questions in _iter_all_areas(ctx, self.telemetry):
            if not questions:
                continue
            picked = shuffled(questions, ctx.rng)[: GameConfig.MIXED_QUESTIONS_PER_AREA]
            selection.extend(picked)
            loaded.append(area)

        self.telemetry.log_info(
            "Mixed pool built", areas=loaded, count=len(selection)
        )
        return shuffled(selection, ctx.rng)[: GameConfig.MIXED_TOTAL_QUESTIONS]


class FavoritesStrategy(IQuestionStrategy):
    def __init__(self) -> None:
        self.telemetry = Telemetry("Strategy.Favorites")

    def generate(self, config: SessionConfig, ctx: SelectionContext) -> list[Question]:
        config = _expect(config, FavoritesSessionConfig)
        if not config.favorite_ids:
            return []

        favorites = []
        for _, questions in _iter_all_areas(ctx, self.telemetry):
            favorites.extend(q for q in questions if q.id in config.favorite_ids)
        return favorites


class SingleQuestionStrategy(IQuestionStrategy):
    def generate(self, config: SessionConfig, ctx: SelectionContext) -> list[Question]:
        config = _expect(config, SingleQuestionSessionConfig)
        pool = ctx.source.fetch(config.area)
        return [q for q in pool if q.id == config.question_id][:1]


class SmartStrategy(IQuestionStrategy):
    def __init__(self) -> None:
        self.telemetry = Telemetry("Strategy.Smart")

    @measure_time("generate_smart")
    def generate(self, config: SessionConfig, ctx: SelectionContext) -> list[Question]:
        config = _expect(config, SmartSessionConfig)
        if config.area:
            pool = ctx.source.fetch(config.area)
        else:
            pool = [q for _, qs in _iter_all_areas(ctx, self.telemetry) for q in qs]

        candidates = ctx.ledger.get_candidates(ctx.user_id, pool)
        selector = SpacedRepetitionSelector(rng=ctx.rng)
        return selector.select(candidates, limit=config.question_limit)


class CustomStrategy(IQuestionStrategy):
    def generate(self, config: SessionConfig, ctx: SelectionContext) -> list[Question]:
        config = _expect(config, CustomSessionConfig)
        pool = ctx.source.fetch(config.area)

        if config.difficulty is not None:
            pool = [q for q in pool if q.difficulty == config.difficulty]
        if config.subjects:
            pool = [q for q in pool if q.subject in config.subjects]
        return pool


# --- Registry (OCP) ---
class StrategyRegistry:
    _strategies: dict[SessionMode, IQuestionStrategy] = {}

    @classmethod
    def register(cls, mode: SessionMode, strategy: IQuestionStrategy) -> None:
        cls._strategies[mode] = strategy

    @classmethod
    def get(cls, mode: SessionMode | str) -> IQuestionStrategy:
        try:
            return cls._strategies[SessionMode(mode)]
        except (KeyError, ValueError) as e:
            raise InvalidConfigError(f"Unsupported session mode: {mode}") from e


StrategyRegistry.register(SessionMode.AREA, AreaStrategy())
StrategyRegistry.register(SessionMode.SUBJECT, SubjectStrategy())
StrategyRegistry.register(SessionMode.MIXED, MixedStrategy())
StrategyRegistry.register(SessionMode.FAVORITES, FavoritesStrategy())
StrategyRegistry.register(SessionMode.SINGLE, SingleQuestionStrategy())
StrategyRegistry.register(SessionMode.SMART, SmartStrategy())
StrategyRegistry.register(SessionMode.CUSTOM, CustomStrategy())
