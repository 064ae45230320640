from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta

from pydantic import ValidationError

from src.quiz.domain import scoring
from src.quiz.domain.errors import StorageError
from src.quiz.domain.models import (
    AnswerRecord,
    AreaStats,
    LevelInfo,
    ProgressStats,
    Question,
    QuestionCandidate,
    XPAward,
    XPState,
)
from src.quiz.domain.ports import IKeyValueStore
from src.shared.telemetry import Telemetry, measure_time


def compute_streak(days: Iterable[date], today: date) -> int:
    """
    Consecutive study days ending today, or ending yesterday (one day of
    grace). Only the run touching today/yesterday counts, not the longest
    run in history.
    """
    day_set = set(days)
    yesterday = today - timedelta(days=1)

    if today in day_set:
        anchor = today
    elif yesterday in day_set:
        anchor = yesterday
    else:
        return 0

    streak = 1
    while True:
        previous = anchor - timedelta(days=1)
        if previous not in day_set:
            return streak
        streak += 1
        anchor = previous


def _summarise(records: list[AnswerRecord]) -> AreaStats:
    completed = len(records)
    correct = sum(1 for r in records if r.correct)
    return AreaStats(
        completed=completed,
        correct=correct,
        accuracy=scoring.percentage(correct, completed),
        total_time=sum(r.time_spent for r in records),
        last_activity=max((r.answered_at for r in records), default=None),
    )


class ProgressLedger:
    """
    Per-user answer log with last-write-wins per (area, question_id).

    Aggregates (accuracy, time, streak) are re-derived from the log on
    every read. Cumulative XP lives in a separate document.
    """

    HISTORY_PREFIX = "progress_history"
    XP_PREFIX = "progress_xp"

    def __init__(
        self,
        store: IKeyValueStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.clock = clock
        self.telemetry = Telemetry("ProgressLedger")

    # --- History ---

    def get_history(self, user_id: str) -> list[AnswerRecord]:
        raw = self.store.get(f"{self.HISTORY_PREFIX}:{user_id}") or []
        try:
            return [AnswerRecord.model_validate(item) for item in raw]
        except (ValidationError, TypeError) as e:
            self.telemetry.log_error("Corrupt answer history", e, user_id=user_id)
            raise StorageError(f"Unreadable answer history for '{user_id}'") from e

    def _save_history(self, user_id: str, history: list[AnswerRecord]) -> None:
        self.store.set(
            f"{self.HISTORY_PREFIX}:{user_id}",
            [r.model_dump(mode="json") for r in history],
        )

    @measure_time("ledger_append")
    def append(self, user_id: str, records: AnswerRecord | Iterable[AnswerRecord]) -> int:
        """Upserts one record or a batch. Returns how many prior records were replaced."""
        batch = [records] if isinstance(records, AnswerRecord) else list(records)
        history = self.get_history(user_id)
        replaced = 0

        for record in batch:
            kept = [r for r in history if not r.same_question(record)]
            replaced += len(history) - len(kept)
            kept.append(record)
            history = kept

        self._save_history(user_id, history)
        self.telemetry.log_info(
            "Answers recorded",
            user_id=user_id,
            added=len(batch),
            replaced=replaced,
            history_size=len(history),
        )
        return replaced

    def clear(self, user_id: str) -> None:
        self.store.delete(f"{self.HISTORY_PREFIX}:{user_id}")
        self.store.delete(f"{self.XP_PREFIX}:{user_id}")

    # --- Derived statistics ---

    def get_stats(self, user_id: str) -> ProgressStats:
        history = self.get_history(user_id)
        if not history:
            return ProgressStats()

        summary = _summarise(history)
        return ProgressStats(
            total_completed=summary.completed,
            total_correct=summary.correct,
            accuracy=summary.accuracy,
            total_time=summary.total_time,
            streak=compute_streak((r.day for r in history), self.clock().date()),
            last_activity=summary.last_activity,
        )

    def get_streak(self, user_id: str) -> int:
        history = self.get_history(user_id)
        return compute_streak((r.day for r in history), self.clock().date())

    def get_area_stats(self, user_id: str, area: str) -> AreaStats:
        return _summarise([r for r in self.get_history(user_id) if r.area == area])

    def get_subarea_stats(self, user_id: str, area: str, subarea: str) -> AreaStats:
        return _summarise(
            [
                r
                for r in self.get_history(user_id)
                if r.area == area and r.subarea == subarea
            ]
        )

    def get_candidates(
        self, user_id: str, questions: list[Question]
    ) -> list[QuestionCandidate]:
        """Pairs questions with their latest outcome for smart selection."""
        latest = {(r.area, r.question_id): r for r in self.get_history(user_id)}
        candidates = []
        for q in questions:
            record = latest.get((q.area, q.id))
            candidates.append(
                QuestionCandidate(
                    question=q,
                    streak=1 if record is not None and record.correct else 0,
                    is_seen=record is not None,
                )
            )
        return candidates

    # --- Experience ---

    def get_xp_state(self, user_id: str) -> XPState:
        raw = self.store.get(f"{self.XP_PREFIX}:{user_id}")
        if raw is None:
            return XPState()
        try:
            return XPState.model_validate(raw)
        except ValidationError as e:
            self.telemetry.log_error("Corrupt XP state", e, user_id=user_id)
            raise StorageError(f"Unreadable XP state for '{user_id}'") from e

    @measure_time("ledger_award_xp")
    def award_xp(self, user_id: str, area: str | None, xp: int) -> XPAward:
        state = self.get_xp_state(user_id)
        old_level = scoring.account_level(state.total_xp)

        state.total_xp += xp
        area_xp = None
        area_lvl = None
        if area:
            area_xp = state.areas.get(area, 0) + xp
            state.areas[area] = area_xp
            area_lvl = scoring.area_level(area_xp)

        self.store.set(f"{self.XP_PREFIX}:{user_id}", state.model_dump(mode="json"))

        level = scoring.account_level(state.total_xp)
        award = XPAward(
            xp_gained=xp,
            total_xp=state.total_xp,
            level=level,
            leveled_up=level > old_level,
            area=area,
            area_xp=area_xp,
            area_level=area_lvl,
        )
        self.telemetry.log_info("✨ XP awarded", user_id=user_id, **award.model_dump())
        return award

    def get_level_info(self, user_id: str) -> LevelInfo:
        return scoring.level_info(self.get_xp_state(user_id).total_xp)

    def get_area_level(self, user_id: str, area: str) -> int:
        return scoring.area_level(self.get_xp_state(user_id).areas.get(area, 0))
