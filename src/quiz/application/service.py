import random
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

from src.config import GameConfig
from src.quiz.application.session_engine import QuizSessionEngine, resolve_user_id
from src.quiz.domain.configs import FavoritesSessionConfig, SessionConfig, parse_session_config
from src.quiz.domain.favorites import Favorites
from src.quiz.domain.models import Dashboard
from src.quiz.domain.ports import IIdentityProvider, IKeyValueStore, IQuestionSource
from src.quiz.domain.progress_ledger import ProgressLedger
from src.quiz.domain.trial_quota import TrialQuota
from src.shared.telemetry import Telemetry, measure_time


class QuizService:
    """
    Composition root for the quiz: owns the quota, the ledger and at most
    one active session engine.
    """

    def __init__(
        self,
        source: IQuestionSource,
        store: IKeyValueStore,
        identity: IIdentityProvider,
        clock: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self.source = source
        self.store = store
        self.identity = identity
        self.clock = clock
        self.monotonic = monotonic
        self.rng = rng
        self.quota = TrialQuota(store, clock=clock)
        self.ledger = ProgressLedger(store, clock=clock)
        self.favorites = Favorites(store, clock=clock)
        self.telemetry = Telemetry("QuizService")
        self._engine: QuizSessionEngine | None = None

    @property
    def active_session(self) -> QuizSessionEngine | None:
        return self._engine

    @property
    def user_id(self) -> str:
        return resolve_user_id(self.identity)

    @measure_time("start_session")
    def start_session(self, config: SessionConfig | dict[str, Any]) -> QuizSessionEngine:
        """
        Disposes the current engine (if any) and returns a new, initialized
        one. Raises InvalidConfigError for a malformed raw mapping.
        """
        if isinstance(config, dict):
            config = parse_session_config(config)

        self.end_session()

        engine = QuizSessionEngine(
            config,
            source=self.source,
            quota=self.quota,
            ledger=self.ledger,
            store=self.store,
            identity=self.identity,
            clock=self.clock,
            monotonic=self.monotonic,
            rng=self.rng,
            favorites=self.favorites,
        )
        engine.initialize()
        self._engine = engine
        return engine

    def start_favorites_session(
        self, is_premium: bool = False, shuffle: bool = True
    ) -> QuizSessionEngine:
        """Review session over the user's bookmarked questions."""
        ids = self.favorites.get_ids(self.user_id)
        return self.start_session(
            FavoritesSessionConfig(favorite_ids=ids, is_premium=is_premium, shuffle=shuffle)
        )

    def end_session(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    @measure_time("get_dashboard")
    def get_dashboard(self, user_id: str | None = None) -> Dashboard:
        user_id = user_id or self.user_id
        xp_state = self.ledger.get_xp_state(user_id)

        return Dashboard(
            user_id=user_id,
            trial=self.quota.get_daily_summary(user_id),
            total_remaining=self.quota.get_total_remaining(user_id),
            stats=self.ledger.get_stats(user_id),
            level=self.ledger.get_level_info(user_id),
            area_levels={
                area: self.ledger.get_area_level(user_id, area)
                for area in GameConfig.AREAS
                if area in xp_state.areas
            },
            favorites=len(self.favorites.get_all(user_id)),
        )
