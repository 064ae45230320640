import asyncio
import random
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from pydantic import ValidationError

from src.config import GameConfig
from src.quiz.application.strategies import (
    SelectionContext,
    StrategyRegistry,
    prepare_questions,
)
from src.quiz.domain import scoring
from src.quiz.domain.configs import SessionConfig
from src.quiz.domain.errors import (
    InvalidConfigError,
    QuestionNotFoundError,
    SourceUnavailableError,
    StorageError,
)
from src.quiz.domain.favorites import Favorites
from src.quiz.domain.fsm import SessionAction, SessionState, SessionStateMachine
from src.quiz.domain.models import (
    ActionResult,
    AnswerRecord,
    CategoryResult,
    Question,
    SessionResult,
    SessionScore,
    SessionSnapshot,
)
from src.quiz.domain.ports import IIdentityProvider, IKeyValueStore, IQuestionSource
from src.quiz.domain.progress_ledger import ProgressLedger
from src.quiz.domain.trial_quota import TrialQuota
from src.shared.telemetry import Telemetry, measure_time

SNAPSHOT_PREFIX = "quiz_snapshot"

_LOAD_ERRORS = (
    QuestionNotFoundError,
    SourceUnavailableError,
    StorageError,
    InvalidConfigError,
)


def resolve_user_id(identity: IIdentityProvider) -> str:
    """Absent identity maps to a shared pseudo-user instead of failing."""
    return identity.current_user_id() or GameConfig.ANONYMOUS_USER_ID


def snapshot_key(user_id: str) -> str:
    return f"{SNAPSHOT_PREFIX}:{user_id}"


class CancellationToken:
    """Set when the owning session is destroyed; pending loads check it before applying."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class SessionTimer:
    """
    Elapsed-time counter owned by one session.

    Reads a monotonic clock instead of relying on a background tick, so a
    stopped or discarded session has nothing left running. Pausing folds
    the running interval into the accumulated total; resuming re-bases on
    the current clock value, so paused time is excluded exactly.
    """

    def __init__(self, monotonic: Callable[[], float] = time.monotonic) -> None:
        self._monotonic = monotonic
        self._accumulated = 0.0
        self._started_at: float | None = None

    @property
    def running(self) -> bool:
        return self._started_at is not None

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return self._accumulated
        return self._accumulated + (self._monotonic() - self._started_at)

    @property
    def elapsed_seconds(self) -> int:
        return int(self.elapsed)

    def start(self, offset: float = 0.0) -> None:
        self._accumulated = offset
        self._started_at = self._monotonic()

    def pause(self) -> None:
        if self._started_at is not None:
            self._accumulated += self._monotonic() - self._started_at
            self._started_at = None

    def resume(self) -> None:
        if self._started_at is None:
            self._started_at = self._monotonic()

    def stop(self) -> int:
        self.pause()
        return self.elapsed_seconds


class QuizSessionEngine:
    """
    Drives one quiz run: admission against the daily quota, question
    loading, answer/advance, pause/resume, and the terminal transitions.

    Attempts and progress are recorded exactly once, on the first
    successful complete(). Abandoned or discarded sessions record nothing.
    Invalid actions never raise; they return a rejected ActionResult whose
    hint is also kept in ``last_hint``.
    """

    def __init__(
        self,
        config: SessionConfig,
        source: IQuestionSource,
        quota: TrialQuota,
        ledger: ProgressLedger,
        store: IKeyValueStore,
        identity: IIdentityProvider,
        clock: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
        favorites: Favorites | None = None,
    ) -> None:
        self.session_id = uuid.uuid4().hex
        self.config = config
        self.source = source
        self.quota = quota
        self.ledger = ledger
        self.store = store
        self.user_id = resolve_user_id(identity)
        self.clock = clock
        self._monotonic = monotonic
        self.rng = rng or random.Random()
        self.favorites = favorites or Favorites(store, clock=clock)
        self.telemetry = Telemetry("QuizSessionEngine")

        self.fsm = SessionStateMachine()
        self.timer = SessionTimer(monotonic)
        self._token = CancellationToken()
        self._disposed = False
        self._admitted = False

        # Run state
        self._pool: list[Question] = []
        self.questions: list[Question] = []
        self.cursor = 0
        self.answers: dict[str, str] = {}  # question_id -> alias, in answer order
        self.records: list[AnswerRecord] = []
        self.correct_count = 0
        self.selected_answer: str | None = None
        self._question_shown_at: float | None = None
        self._elapsed_offset = 0.0

        # Display flags
        self.can_start = False
        self.is_blocked = False
        self.remaining_attempts: int | None = None
        self.error_message: str | None = None
        self.last_hint: str | None = None
        self.result: SessionResult | None = None

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self.fsm.current_state

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Question | None:
        if 0 <= self.cursor < len(self.questions):
            return self.questions[self.cursor]
        return None

    @property
    def is_answered(self) -> bool:
        q = self.current_question
        return q is not None and q.id in self.answers

    @property
    def explanation(self) -> str | None:
        """Visible only once the current question has been submitted."""
        q = self.current_question
        if q is None or not self.is_answered:
            return None
        return q.explanation

    @property
    def is_favorite(self) -> bool:
        q = self.current_question
        if q is None:
            return False
        try:
            return self.favorites.is_favorite(self.user_id, q)
        except StorageError as e:
            self.telemetry.log_error("Favorites read failed", e, session_id=self.session_id)
            return False

    @property
    def progress_percentage(self) -> int:
        if self.state is SessionState.COMPLETED:
            return 100
        if not self.questions:
            return 0
        return scoring.percentage(min(self.cursor + 1, len(self.questions)), len(self.questions))

    @property
    def elapsed_seconds(self) -> int:
        return self.timer.elapsed_seconds

    @property
    def time_formatted(self) -> str:
        minutes, seconds = divmod(self.elapsed_seconds, 60)
        return f"{minutes:02d}:{seconds:02d}"

    def get_category_results(self) -> list[CategoryResult]:
        totals: dict[str, list[int]] = {}
        for q in self.questions:
            correct, total = totals.setdefault(q.category, [0, 0])
            answered_correctly = q.id in self.answers and q.is_correct(self.answers[q.id])
            totals[q.category] = [correct + int(answered_correctly), total + 1]

        return [
            CategoryResult(
                category=category,
                correct=correct,
                total=total,
                percentage=scoring.percentage(correct, total),
            )
            for category, (correct, total) in totals.items()
        ]

    def result_message(self) -> str | None:
        if self.result is None:
            return None
        pct = self.result.score.percentage
        if pct >= 90:
            return "🏆 Excelente! Você é um expert!"
        if pct >= 70:
            return "🎉 Muito bom! Continue assim!"
        if pct >= 50:
            return "👍 Bom trabalho! Pode melhorar!"
        return "💪 Continue estudando! Você consegue!"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reject(self, hint: str) -> ActionResult:
        self.last_hint = hint
        self.telemetry.log_warning(
            "Action rejected",
            session_id=self.session_id,
            state=self.state.name,
            hint=hint,
        )
        return ActionResult.rejected(hint)

    def _accept(self) -> ActionResult:
        self.last_hint = None
        return ActionResult.ok()

    def _fail(self, message: str, error: Exception | None = None) -> ActionResult:
        self.fsm.transition(SessionAction.LOAD_FAILED)
        self.error_message = message
        if error is not None:
            self.telemetry.log_error("Session load failed", error, session_id=self.session_id)
        self.telemetry.count_event(
            "load_failed", session_id=self.session_id, reason=message
        )
        return self._reject(message)

    def _require_running(self) -> ActionResult | None:
        if self._disposed:
            return self._reject("This quiz session was discarded.")
        if self.state is SessionState.PAUSED:
            return self._reject("⏸️ The quiz is paused. Resume to continue.")
        if self.state is not SessionState.IN_PROGRESS:
            return self._reject("The quiz is not running.")
        return None

    def _show_current_question(self) -> None:
        self.selected_answer = None
        self._question_shown_at = self._monotonic()

    def _selection_context(self) -> SelectionContext:
        return SelectionContext(
            user_id=self.user_id, source=self.source, ledger=self.ledger, rng=self.rng
        )

    # ------------------------------------------------------------------
    # Admission & loading
    # ------------------------------------------------------------------

    def _check_admission(self) -> ActionResult | None:
        """Returns a rejection when the quota blocks the session, None when admitted."""
        area = self.config.quota_area
        if area and not self.config.is_premium:
            remaining = self.quota.get_remaining(self.user_id, area)
            self.remaining_attempts = remaining
            if remaining <= 0:
                self.is_blocked = True
                self.can_start = False
                self.fsm.transition(SessionAction.DENY)
                self.telemetry.count_event(
                    "admission_denied", user_id=self.user_id, area=area
                )
                return self._reject(
                    "🔒 No attempts left today in this area. "
                    "Come back tomorrow or upgrade to premium."
                )

        self._admitted = True
        self.can_start = True
        return None

    @measure_time("session_initialize")
    def initialize(self) -> ActionResult:
        Telemetry.start_trace()
        if self._disposed:
            return self._reject("This quiz session was discarded.")
        if self.state is not SessionState.INITIALIZING:
            return self._reject("The session is already initialized.")

        self.telemetry.log_info(
            "Initializing session",
            session_id=self.session_id,
            user_id=self.user_id,
            config=self.config.model_dump(mode="json"),
        )

        try:
            StrategyRegistry.get(self.config.session_mode)
            denied = self._check_admission()
        except (InvalidConfigError, StorageError) as e:
            return self._fail(f"Could not start the quiz: {e}", e)

        if denied is not None:
            return denied

        self.fsm.transition(SessionAction.ADMIT)
        return self._accept()

    def _fetch(self) -> tuple[list[Question], list[Question]]:
        strategy = StrategyRegistry.get(self.config.session_mode)
        pool = strategy.generate(self.config, self._selection_context())
        selected = prepare_questions(
            pool, self.config.shuffle, self.config.question_limit, self.rng
        )
        return pool, selected

    def _apply_loaded(
        self,
        token: CancellationToken,
        outcome: tuple[list[Question], list[Question]] | None,
        error: Exception | None = None,
    ) -> ActionResult:
        if token.cancelled:
            self.telemetry.log_info(
                "Discarding load result for disposed session", session_id=self.session_id
            )
            return ActionResult.rejected("This quiz session was discarded.")

        if error is not None or outcome is None:
            return self._fail("Could not load questions. Please try again.", error)

        pool, selected = outcome
        if not selected:
            return self._fail("No questions available for this selection.")

        self._pool = pool
        self.questions = selected
        self.cursor = 0
        self.fsm.transition(SessionAction.LOAD_SUCCESS)
        self.telemetry.log_info(
            "Questions loaded",
            session_id=self.session_id,
            mode=self.config.mode,
            count=len(selected),
            pool=len(pool),
        )
        return self._accept()

    @measure_time("session_load_questions")
    def load_questions(self) -> ActionResult:
        if self._disposed:
            return self._reject("This quiz session was discarded.")
        if self.state is not SessionState.LOADING:
            return self._reject("Questions can only be loaded while the session is loading.")

        token = self._token
        try:
            outcome = self._fetch()
        except _LOAD_ERRORS as e:
            return self._apply_loaded(token, None, e)
        return self._apply_loaded(token, outcome)

    async def load_questions_async(self) -> ActionResult:
        """Fetches off the caller's thread; a session disposed meanwhile ignores the result."""
        if self._disposed:
            return self._reject("This quiz session was discarded.")
        if self.state is not SessionState.LOADING:
            return self._reject("Questions can only be loaded while the session is loading.")

        token = self._token
        try:
            outcome = await asyncio.to_thread(self._fetch)
        except _LOAD_ERRORS as e:
            return self._apply_loaded(token, None, e)
        return self._apply_loaded(token, outcome)

    def reload(self) -> ActionResult:
        """Retry affordance for the ERROR state."""
        Telemetry.start_trace()
        if self._disposed:
            return self._reject("This quiz session was discarded.")
        if not self.fsm.transition(SessionAction.RELOAD):
            return self._reject("Nothing to reload.")

        self.error_message = None
        if not self._admitted:
            try:
                denied = self._check_admission()
            except StorageError as e:
                return self._fail(f"Could not start the quiz: {e}", e)
            if denied is not None:
                return denied

        return self.load_questions()

    # ------------------------------------------------------------------
    # Question loop
    # ------------------------------------------------------------------

    def start(self) -> ActionResult:
        Telemetry.start_trace()
        if self._disposed:
            return self._reject("This quiz session was discarded.")

        if self.state is SessionState.LOADING:
            loaded = self.load_questions()
            if not loaded.accepted:
                return loaded

        if self.state is not SessionState.READY:
            return self._reject("The quiz cannot be started now.")
        if not self.can_start:
            return self._reject(
                "🔒 No attempts left today in this area. "
                "Come back tomorrow or upgrade to premium."
            )

        self.fsm.transition(SessionAction.START)
        self.timer.start(offset=self._elapsed_offset)
        self._show_current_question()
        self.telemetry.count_event(
            "session_started",
            session_id=self.session_id,
            user_id=self.user_id,
            mode=self.config.mode,
            questions=len(self.questions),
            cursor=self.cursor,
        )
        return self._accept()

    def select_answer(self, alias: str) -> ActionResult:
        blocked = self._require_running()
        if blocked is not None:
            return blocked

        question = self.current_question
        if question is None:
            return self._reject("There is no question to answer.")
        if question.id in self.answers:
            return self._reject("⚠️ You already answered this question!")
        if not question.has_option(alias):
            return self._reject(f"'{alias}' is not an option for this question.")

        self.selected_answer = alias.strip().upper()
        return self._accept()

    @measure_time("session_submit_answer")
    def submit_answer(self) -> ActionResult:
        Telemetry.start_trace()
        blocked = self._require_running()
        if blocked is not None:
            return blocked

        question = self.current_question
        if question is None:
            return self._reject("There is no question to answer.")
        if question.id in self.answers:
            return self._reject("⚠️ Answer already submitted!")
        if self.selected_answer is None:
            return self._reject("⚠️ Select an option first!")

        is_correct = question.is_correct(self.selected_answer)
        shown_at = self._question_shown_at or self._monotonic()
        time_spent = int(self._monotonic() - shown_at + 0.5)

        self.answers[question.id] = self.selected_answer
        self.records.append(
            AnswerRecord(
                area=question.area,
                question_id=question.id,
                correct=is_correct,
                time_spent=time_spent,
                answered_at=self.clock(),
                subarea=question.subject,
            )
        )
        if is_correct:
            self.correct_count += 1

        self.telemetry.count_event(
            "answer_submitted",
            session_id=self.session_id,
            q_id=question.id,
            correct=is_correct,
            time_spent=time_spent,
        )
        return self._accept()

    def advance(self) -> ActionResult:
        blocked = self._require_running()
        if blocked is not None:
            return blocked

        question = self.current_question
        if question is not None and question.id not in self.answers:
            submitted = self.submit_answer()
            if not submitted.accepted:
                return submitted

        self.cursor += 1
        if self.cursor >= len(self.questions):
            return self.complete()

        self._show_current_question()
        return self._accept()

    def pause(self) -> ActionResult:
        if self._disposed or not self.fsm.transition(SessionAction.PAUSE):
            return self._reject("Only a running quiz can be paused.")
        self.timer.pause()
        self.telemetry.log_info("⏸️ Quiz paused", session_id=self.session_id)
        return self._accept()

    def resume(self) -> ActionResult:
        if self._disposed or not self.fsm.transition(SessionAction.RESUME):
            return self._reject("Only a paused quiz can be resumed.")
        self.timer.resume()
        self.telemetry.log_info("▶️ Quiz resumed", session_id=self.session_id)
        return self._accept()

    def toggle_pause(self) -> ActionResult:
        if self.state is SessionState.PAUSED:
            return self.resume()
        return self.pause()

    def toggle_favorite(self) -> ActionResult:
        """Bookmarks or un-bookmarks the current question."""
        if self._disposed or self.state not in (SessionState.IN_PROGRESS, SessionState.PAUSED):
            return self._reject("Favorites can only be changed during a quiz.")
        question = self.current_question
        if question is None:
            return self._reject("There is no question to bookmark.")

        try:
            added = self.favorites.toggle(self.user_id, question)
        except StorageError as e:
            self.telemetry.log_error("Favorites write failed", e, session_id=self.session_id)
            return self._reject("Could not update your favorites.")

        result = self._accept()
        self.last_hint = "⭐ Added to favorites" if added else "❤️ Removed from favorites"
        return result

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    @measure_time("session_complete")
    def complete(self) -> ActionResult:
        Telemetry.start_trace()
        if self.state is SessionState.COMPLETED:
            return self._reject("The quiz is already completed.")
        blocked = self._require_running()
        if blocked is not None:
            return blocked

        self.fsm.transition(SessionAction.FINISH)
        elapsed = self.timer.stop()
        self._question_shown_at = None

        total = len(self.questions)
        score = SessionScore(
            total_questions=total,
            correct_answers=self.correct_count,
            percentage=scoring.percentage(self.correct_count, total),
            time_spent=elapsed,
            area=self.config.target_area,
        )
        self.result = self._record_completion(score)

        self.telemetry.count_event(
            "session_completed",
            session_id=self.session_id,
            user_id=self.user_id,
            score=score.percentage,
            correct=score.correct_answers,
            total=total,
            time_spent=elapsed,
            persisted=self.result.persisted,
        )
        return self._accept()

    def _record_completion(self, score: SessionScore) -> SessionResult:
        """The single point where a session touches the quota and the ledger."""
        xp = scoring.calculate_xp(score)
        award = None
        remaining = None
        persisted = True
        area = self.config.quota_area

        try:
            if area and not self.config.is_premium:
                self.quota.register_attempt(self.user_id, area)
                remaining = self.quota.get_remaining(self.user_id, area)
                self.remaining_attempts = remaining
            self.ledger.append(self.user_id, self.records)
            award = self.ledger.award_xp(self.user_id, self.config.target_area, xp)
            self.store.delete(snapshot_key(self.user_id))
        except StorageError as e:
            persisted = False
            self.telemetry.log_error(
                "Could not persist session results", e, session_id=self.session_id
            )

        return SessionResult(
            session_id=self.session_id,
            score=score,
            xp=award,
            remaining_attempts=remaining,
            persisted=persisted,
        )

    def abandon(self) -> ActionResult:
        Telemetry.start_trace()
        if self._disposed or not self.fsm.transition(SessionAction.ABANDON):
            return self._reject("Only a running or paused quiz can be abandoned.")

        self.timer.stop()
        self._question_shown_at = None
        self.telemetry.count_event(
            "session_abandoned",
            session_id=self.session_id,
            user_id=self.user_id,
            answered=len(self.answers),
            total=len(self.questions),
        )
        return self._accept()

    def dispose(self) -> None:
        """Destroys the session: stops the clock and voids any pending load."""
        if self._disposed:
            return
        self._token.cancel()
        self.timer.stop()
        self._disposed = True
        self.telemetry.log_info(
            "Session disposed", session_id=self.session_id, state=self.state.name
        )

    # ------------------------------------------------------------------
    # Snapshot save / restore
    # ------------------------------------------------------------------

    def save_snapshot(self) -> ActionResult:
        if self._disposed or self.state not in (
            SessionState.IN_PROGRESS,
            SessionState.PAUSED,
        ):
            return self._reject("Only a running or paused quiz can be saved.")

        snapshot = SessionSnapshot(
            mode=self.config.mode,
            area=self.config.target_area,
            subject=self.config.target_subject,
            filters=self.config.selection_filters,
            question_ids=[q.id for q in self.questions],
            cursor=self.cursor,
            elapsed_seconds=self.timer.elapsed_seconds,
            correct_count=self.correct_count,
            answers=dict(self.answers),
            records=list(self.records),
            saved_at=self.clock(),
        )
        try:
            self.store.set(snapshot_key(self.user_id), snapshot.model_dump(mode="json"))
        except StorageError as e:
            self.telemetry.log_error("Snapshot save failed", e, session_id=self.session_id)
            return self._reject("Could not save your progress.")

        self.telemetry.count_event(
            "snapshot_saved", session_id=self.session_id, cursor=self.cursor
        )
        return self._accept()

    def _ignore_snapshot(self, reason: str) -> ActionResult:
        self.telemetry.count_event(
            "snapshot_ignored", session_id=self.session_id, reason=reason
        )
        return ActionResult.rejected(reason)

    def _resolve_saved_questions(self, ids: list[str]) -> list[Question] | None:
        by_id = {q.id: q for q in self._pool}
        if any(i not in by_id for i in ids):
            # Sampled modes (mixed, smart) may not have re-drawn the saved questions.
            area = self.config.target_area
            areas = [area] if area else self.source.list_areas()
            for a in areas:
                try:
                    for q in self.source.fetch(a):
                        by_id.setdefault(q.id, q)
                except QuestionNotFoundError:
                    continue
        if any(i not in by_id for i in ids):
            return None
        return [by_id[i] for i in ids]

    def restore_snapshot(self) -> ActionResult:
        """
        Resumes a saved run if it was drawn with the same selection (mode,
        area, subject and mode-specific filters) and is less than
        SNAPSHOT_MAX_AGE_HOURS old. Otherwise a no-op, and the freshly loaded
        session proceeds.
        """
        if self._disposed or self.state is not SessionState.READY or not self.can_start:
            return self._reject("A snapshot can only be restored before the quiz starts.")

        try:
            raw = self.store.get(snapshot_key(self.user_id))
        except StorageError as e:
            self.telemetry.log_error("Snapshot read failed", e, session_id=self.session_id)
            return self._ignore_snapshot("unreadable")

        if raw is None:
            return ActionResult.rejected("No saved quiz to resume.")

        try:
            snapshot = SessionSnapshot.model_validate(raw)
        except ValidationError:
            return self._ignore_snapshot("corrupt")

        if (
            snapshot.mode != self.config.mode
            or snapshot.area != self.config.target_area
            or snapshot.subject != self.config.target_subject
            or snapshot.filters != self.config.selection_filters
        ):
            return self._ignore_snapshot("mismatch")

        age = self.clock() - snapshot.saved_at
        if age >= timedelta(hours=GameConfig.SNAPSHOT_MAX_AGE_HOURS):
            return self._ignore_snapshot("expired")

        if not 0 <= snapshot.cursor < len(snapshot.question_ids):
            return self._ignore_snapshot("corrupt")

        try:
            questions = self._resolve_saved_questions(snapshot.question_ids)
        except SourceUnavailableError as e:
            self.telemetry.log_error("Snapshot questions unavailable", e)
            questions = None
        if questions is None:
            return self._ignore_snapshot("questions_changed")

        self.questions = questions
        self.cursor = snapshot.cursor
        self.correct_count = snapshot.correct_count
        self.answers = dict(snapshot.answers)
        self.records = list(snapshot.records)
        self._elapsed_offset = float(snapshot.elapsed_seconds)

        self.telemetry.count_event(
            "snapshot_restored",
            session_id=self.session_id,
            cursor=self.cursor,
            elapsed=snapshot.elapsed_seconds,
        )
        return self._accept()
