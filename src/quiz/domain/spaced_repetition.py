import random

from src.config import GameConfig
from src.quiz.domain.models import Question, QuestionCandidate
from src.shared.telemetry import Telemetry


class SpacedRepetitionSelector:
    """
    Pure Domain Logic.
    Builds the 'smart' mix: unseen questions plus the ones the user got
    wrong last time, backfilled with already-mastered ones.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()
        self.telemetry = Telemetry("SpacedRepetitionSelector")

    def select(self, candidates: list[QuestionCandidate], limit: int) -> list[Question]:
        # 1. Segregate Pools
        new_pool = [c for c in candidates if not c.is_seen]
        learning_pool = [
            c
            for c in candidates
            if c.is_seen and c.streak < GameConfig.MASTERY_THRESHOLD
        ]
        review_pool = [
            c
            for c in candidates
            if c.is_seen and c.streak >= GameConfig.MASTERY_THRESHOLD
        ]

        self.telemetry.log_info(
            "Smart Mix Pools",
            new=len(new_pool),
            learning=len(learning_pool),
            review=len(review_pool),
        )

        # 2. Calculate Targets
        target_new = int(limit * GameConfig.NEW_RATIO)
        target_review = limit - target_new

        self.rng.shuffle(new_pool)
        self.rng.shuffle(learning_pool)
        self.rng.shuffle(review_pool)

        # 3. Learning first, then mastered review, then new
        mixed_review = learning_pool + review_pool
        selected: list[QuestionCandidate] = []
        selected.extend(mixed_review[:target_review])
        selected.extend(new_pool[:target_new])

        # 4. Backfill from whichever pool still has questions
        if len(selected) < limit:
            needed = limit - len(selected)
            selected.extend(mixed_review[target_review:][:needed])

        if len(selected) < limit:
            needed = limit - len(selected)
            selected.extend(new_pool[target_new:][:needed])

        self.rng.shuffle(selected)
        return [c.question for c in selected]
