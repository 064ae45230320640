from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError

from src.config import GameConfig
from src.quiz.domain.errors import StorageError
from src.quiz.domain.models import TrialAreaStatus, TrialRecord
from src.quiz.domain.ports import IKeyValueStore
from src.shared.telemetry import Telemetry, measure_time


class TrialQuota:
    """
    Free-tier daily attempt quota, per (user, area, calendar day).

    The stored record is keyed by local date. Every read or write first
    compares it with today's date and zeroes all counters on a new day
    (lazy reset, no timer).
    """

    KEY_PREFIX = "free_trial"

    def __init__(
        self,
        store: IKeyValueStore,
        clock: Callable[[], datetime] = datetime.now,
        max_attempts: int = GameConfig.MAX_ATTEMPTS_PER_DAY,
        areas: list[str] | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.max_attempts = max_attempts
        self.areas = list(areas) if areas is not None else list(GameConfig.AREAS)
        self.telemetry = Telemetry("TrialQuota")

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}:{user_id}"

    def _today(self) -> str:
        return self.clock().date().isoformat()

    def _load(self, user_id: str) -> TrialRecord:
        raw = self.store.get(self._key(user_id))
        today = self._today()

        if raw is not None:
            try:
                record = TrialRecord.model_validate(raw)
            except ValidationError as e:
                self.telemetry.log_error("Corrupt trial record", e, user_id=user_id)
                raise StorageError(f"Unreadable trial record for '{user_id}'") from e
            if record.day == today:
                return record
            self.telemetry.log_info(
                "🌅 New day detected - resetting attempts",
                user_id=user_id,
                stored_day=record.day,
                today=today,
            )

        record = TrialRecord(day=today)
        self._save(user_id, record)
        return record

    def _save(self, user_id: str, record: TrialRecord) -> None:
        self.store.set(self._key(user_id), record.model_dump(mode="json"))

    # --- Contract ---

    def get_remaining(self, user_id: str, area: str) -> int:
        record = self._load(user_id)
        return max(0, self.max_attempts - record.used(area))

    def can_start(self, user_id: str, area: str) -> bool:
        return self.get_remaining(user_id, area) > 0

    @measure_time("trial_register_attempt")
    def register_attempt(self, user_id: str, area: str) -> bool:
        record = self._load(user_id)
        used = record.used(area)

        if used >= self.max_attempts:
            self.telemetry.log_warning(
                "Attempt limit reached", user_id=user_id, area=area, used=used
            )
            return False

        record.attempts[area] = used + 1
        record.last_attempt = self.clock()
        self._save(user_id, record)

        self.telemetry.count_event(
            "attempt_registered",
            user_id=user_id,
            area=area,
            used=used + 1,
            remaining=self.max_attempts - used - 1,
        )
        return True

    # --- Summaries ---

    def get_daily_summary(
        self, user_id: str, areas: list[str] | None = None
    ) -> dict[str, TrialAreaStatus]:
        record = self._load(user_id)
        summary = {}
        for area in areas if areas is not None else self.areas:
            used = record.used(area)
            remaining = max(0, self.max_attempts - used)
            summary[area] = TrialAreaStatus(
                used=used, remaining=remaining, can_start=remaining > 0
            )
        return summary

    def has_available_attempts(self, user_id: str) -> bool:
        return any(s.remaining > 0 for s in self.get_daily_summary(user_id).values())

    def get_available_areas(self, user_id: str) -> list[str]:
        summary = self.get_daily_summary(user_id)
        return [area for area, status in summary.items() if status.can_start]

    def get_exhausted_areas(self, user_id: str) -> list[str]:
        summary = self.get_daily_summary(user_id)
        return [area for area, status in summary.items() if not status.can_start]

    def get_total_remaining(self, user_id: str) -> int:
        return sum(s.remaining for s in self.get_daily_summary(user_id).values())

    def get_total_used(self, user_id: str) -> int:
        return sum(s.used for s in self.get_daily_summary(user_id).values())

    def is_new_user(self, user_id: str) -> bool:
        return self.store.get(self._key(user_id)) is None

    def clear(self, user_id: str) -> None:
        self.store.delete(self._key(user_id))
        self.telemetry.log_info("🧹 Trial data cleared", user_id=user_id)
