"""
Session configuration as a tagged union keyed by ``mode``.

Each selection mode gets its own model, so area-only fields simply do not
exist on e.g. the mixed variant.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from src.config import GameConfig
from src.quiz.domain.errors import InvalidConfigError
from src.quiz.domain.models import Difficulty


class SessionMode(str, Enum):
    AREA = "area"
    SUBJECT = "subject"
    MIXED = "mixed"
    FAVORITES = "favorites"
    SINGLE = "single"
    SMART = "smart"
    CUSTOM = "custom"


class _SessionConfigBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    is_premium: bool = False
    shuffle: bool = True

    @property
    def session_mode(self) -> SessionMode:
        return SessionMode(getattr(self, "mode"))

    @property
    def target_area(self) -> str | None:
        return None

    @property
    def target_subject(self) -> str | None:
        return None

    @property
    def selection_filters(self) -> dict[str, Any]:
        """Mode-specific selection fields that identify a run besides area/subject."""
        return {}

    @property
    def quota_area(self) -> str | None:
        """Area counted against the free-tier daily quota, if any."""
        return self.target_area

    @property
    def question_limit(self) -> int:
        return GameConfig.question_limit(self.is_premium)


class _AreaScoped(_SessionConfigBase):
    area: str = Field(min_length=1)

    @property
    def target_area(self) -> str | None:
        return self.area


class AreaSessionConfig(_AreaScoped):
    mode: Literal["area"] = "area"


class SubjectSessionConfig(_AreaScoped):
    mode: Literal["subject"] = "subject"
    subject: str = Field(min_length=1)

    @property
    def target_subject(self) -> str | None:
        return self.subject


class MixedSessionConfig(_SessionConfigBase):
    mode: Literal["mixed"] = "mixed"


class FavoritesSessionConfig(_SessionConfigBase):
    mode: Literal["favorites"] = "favorites"
    favorite_ids: frozenset[str] = frozenset()


class SingleQuestionSessionConfig(_AreaScoped):
    mode: Literal["single"] = "single"
    question_id: str = Field(min_length=1)

    @property
    def selection_filters(self) -> dict[str, Any]:
        return {"question_id": self.question_id}


class SmartSessionConfig(_SessionConfigBase):
    mode: Literal["smart"] = "smart"
    area: str | None = None

    @property
    def target_area(self) -> str | None:
        return self.area


class CustomSessionConfig(_AreaScoped):
    mode: Literal["custom"] = "custom"
    subjects: tuple[str, ...] = ()
    difficulty: Difficulty | None = None
    question_count: int | None = Field(default=None, gt=0)

    @property
    def selection_filters(self) -> dict[str, Any]:
        return {
            "subjects": sorted(self.subjects),
            "difficulty": self.difficulty.value if self.difficulty else None,
            "question_count": self.question_count,
        }

    @property
    def question_limit(self) -> int:
        tier_limit = GameConfig.question_limit(self.is_premium)
        if self.question_count is None:
            return tier_limit
        return min(self.question_count, tier_limit)


SessionConfig = Annotated[
    Union[
        AreaSessionConfig,
        SubjectSessionConfig,
        MixedSessionConfig,
        FavoritesSessionConfig,
        SingleQuestionSessionConfig,
        SmartSessionConfig,
        CustomSessionConfig,
    ],
    Field(discriminator="mode"),
]

_ADAPTER: TypeAdapter[Any] = TypeAdapter(SessionConfig)


def parse_session_config(data: dict[str, Any]) -> SessionConfig:
    """Builds the config variant matching ``data["mode"]``."""
    try:
        return _ADAPTER.validate_python(data)
    except ValidationError as e:
        raise InvalidConfigError(str(e)) from e
