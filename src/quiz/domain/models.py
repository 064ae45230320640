from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# --- Enums ---
class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


# --- Entities ---
class Option(BaseModel):
    model_config = ConfigDict(frozen=True)

    alias: str
    text: str

    @field_validator("alias")
    @classmethod
    def _single_letter(cls, value: str) -> str:
        alias = value.strip().upper()
        if len(alias) != 1 or not alias.isalpha():
            raise ValueError(f"Option alias must be a single letter, got '{value}'")
        return alias


class Question(BaseModel):
    """A multiple-choice question. Immutable once loaded from the bank."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    options: list[Option]
    correct_option: str
    explanation: str = ""
    difficulty: Difficulty | None = None
    area: str
    subject: str | None = None
    category: str = "Geral"

    @field_validator("correct_option")
    @classmethod
    def _upper_alias(cls, value: str) -> str:
        return value.strip().upper()

    @model_validator(mode="after")
    def _check_options(self) -> "Question":
        aliases = self.aliases()
        if len(set(aliases)) != len(aliases):
            raise ValueError(f"Question {self.id}: duplicate option aliases")
        if self.correct_option not in aliases:
            raise ValueError(
                f"Question {self.id}: correct option '{self.correct_option}' "
                f"is not one of {aliases}"
            )
        return self

    def aliases(self) -> list[str]:
        return [o.alias for o in self.options]

    def has_option(self, alias: str) -> bool:
        return alias.strip().upper() in self.aliases()

    def is_correct(self, alias: str) -> bool:
        return alias.strip().upper() == self.correct_option


class AnswerRecord(BaseModel):
    """
    One progress-ledger entry. At most one live record per
    (area, question_id) per user.
    """

    area: str
    question_id: str
    correct: bool
    time_spent: int = 0  # seconds
    answered_at: datetime
    subarea: str | None = None

    @property
    def day(self) -> date:
        return self.answered_at.date()

    def same_question(self, other: "AnswerRecord") -> bool:
        return self.area == other.area and self.question_id == other.question_id


class TrialRecord(BaseModel):
    """Attempts used per area on a single calendar day (YYYY-MM-DD)."""

    day: str
    attempts: dict[str, int] = Field(default_factory=dict)
    last_attempt: datetime | None = None

    def used(self, area: str) -> int:
        return self.attempts.get(area, 0)


class TrialAreaStatus(BaseModel):
    used: int
    remaining: int
    can_start: bool


# --- Derived statistics (never stored) ---
class ProgressStats(BaseModel):
    total_completed: int = 0
    total_correct: int = 0
    accuracy: int = 0
    total_time: int = 0
    streak: int = 0
    last_activity: datetime | None = None


class AreaStats(BaseModel):
    completed: int = 0
    correct: int = 0
    accuracy: int = 0
    total_time: int = 0
    last_activity: datetime | None = None


# --- Experience ---
class XPState(BaseModel):
    total_xp: int = 0
    areas: dict[str, int] = Field(default_factory=dict)


class XPAward(BaseModel):
    xp_gained: int
    total_xp: int
    level: int
    leveled_up: bool
    area: str | None = None
    area_xp: int | None = None
    area_level: int | None = None


class LevelInfo(BaseModel):
    level_name: str
    current_level: int
    current_xp: int
    xp_for_current_level: int
    xp_for_next_level: int
    xp_to_next_level: int
    progress_percentage: int


# --- Session outputs ---
class SessionScore(BaseModel):
    total_questions: int
    correct_answers: int
    percentage: int
    time_spent: int  # seconds
    area: str | None = None


class SessionResult(BaseModel):
    session_id: str
    score: SessionScore
    xp: XPAward | None = None
    remaining_attempts: int | None = None
    persisted: bool = True


class CategoryResult(BaseModel):
    category: str
    correct: int
    total: int
    percentage: int


class FavoriteEntry(BaseModel):
    """A bookmarked question, kept with the tags needed for stats."""

    question_id: str
    area: str
    subject: str | None = None
    difficulty: Difficulty | None = None
    added_at: datetime


class FavoritesStats(BaseModel):
    total: int = 0
    by_area: dict[str, int] = Field(default_factory=dict)
    by_difficulty: dict[str, int] = Field(default_factory=dict)
    last_updated: datetime | None = None


class Dashboard(BaseModel):
    """Home-screen summary for one user."""

    user_id: str
    trial: dict[str, TrialAreaStatus]
    total_remaining: int
    stats: ProgressStats
    level: LevelInfo
    area_levels: dict[str, int]
    favorites: int = 0


class SessionSnapshot(BaseModel):
    """In-flight session state externalised to the key-value store."""

    mode: str
    area: str | None = None
    subject: str | None = None
    filters: dict[str, Any] = Field(default_factory=dict)
    question_ids: list[str]
    cursor: int
    elapsed_seconds: int
    correct_count: int
    answers: dict[str, str] = Field(default_factory=dict)
    records: list[AnswerRecord] = Field(default_factory=list)
    saved_at: datetime


# --- (Data Transfer Objects) ---
@dataclass
class QuestionCandidate:
    """
    Represents a question eligible for smart selection,
    decoupled from the storage implementation.
    """

    question: Question
    streak: int
    is_seen: bool


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a user-triggered engine action. Rejections carry a hint."""

    accepted: bool
    hint: str | None = None

    @classmethod
    def ok(cls) -> "ActionResult":
        return cls(accepted=True)

    @classmethod
    def rejected(cls, hint: str) -> "ActionResult":
        return cls(accepted=False, hint=hint)
