import os
from enum import Enum
from typing import Final


class Area(Enum):
    # Enum Member = ("area key", "Display label", "Icon")
    WEB = ("desenvolvimento-web", "Desenvolvimento Web", "💻")
    PORTUGUESE = ("portugues", "Português", "📖")
    MATH = ("matematica", "Matemática", "➗")
    COMPUTING = ("informatica", "Informática", "🖥️")

    def __init__(self, key: str, label: str, icon: str):
        self.key = key
        self.label = label
        self.icon = icon

    @classmethod
    def get_icon(cls, key: str) -> str:
        """Returns the icon for a given area key, or a default."""
        for area in cls:
            if area.key == key:
                return area.icon
        return "📚"  # Default fallback

    @classmethod
    def get_label(cls, key: str) -> str:
        for area in cls:
            if area.key == key:
                return area.label
        return key

    @classmethod
    def all_keys(cls) -> list[str]:
        """Returns a list of all area keys (for the quota and mixed mode)."""
        return [a.key for a in cls]


LEVEL_NAMES: Final[list[str]] = [
    "Iniciante",
    "Aprendiz",
    "Estudante",
    "Dedicado",
    "Experiente",
    "Profissional",
    "Expert",
    "Mestre",
    "Sábio",
    "Lendário",
    "Mestre Supremo",
    "Gênio",
    "Prodígio",
    "Virtuoso",
    "Iluminado",
    "Divino",
]


class GameConfig:
    # --- Infrastructure Switch ---
    STORAGE_BACKEND: str = os.getenv("QUIZ_STORAGE_BACKEND", "sqlite")
    DB_PATH: str = os.getenv("QUIZ_DB_PATH", "data/quiz.db")
    SUPABASE_URL: str | None = os.getenv("SUPABASE_URL")
    SUPABASE_KEY: str | None = os.getenv("SUPABASE_KEY")

    # --- App Identity ---
    APP_TITLE = "Buzz Developer Quiz"
    ANONYMOUS_USER_ID: Final[str] = "anonymous"

    # --- Free Trial ---
    MAX_ATTEMPTS_PER_DAY: Final[int] = 3

    # --- Session Rules ---
    FREE_QUESTION_LIMIT: Final[int] = 10
    PREMIUM_QUESTION_LIMIT: Final[int] = 20
    SNAPSHOT_MAX_AGE_HOURS: Final[int] = 24

    # --- Mixed Mode ---
    MIXED_QUESTIONS_PER_AREA: Final[int] = 3
    MIXED_TOTAL_QUESTIONS: Final[int] = 15

    # --- Smart Mode (Spaced Repetition) ---
    MASTERY_THRESHOLD = 1
    NEW_RATIO = 0.6

    # --- Experience Points ---
    XP_PER_CORRECT: Final[int] = 10
    # (minimum percentage, bonus) - highest matching tier only
    XP_SCORE_BONUSES: Final[list[tuple[int, int]]] = [(90, 50), (80, 30), (70, 15)]
    XP_SPEED_BONUS: Final[int] = 20
    XP_SPEED_THRESHOLD_SECONDS: Final[int] = 60
    ACCOUNT_XP_PER_LEVEL: Final[int] = 100
    AREA_XP_PER_LEVEL: Final[int] = 50

    # --- Areas ---
    AREAS = Area.all_keys()

    @staticmethod
    def question_limit(is_premium: bool) -> int:
        if is_premium:
            return GameConfig.PREMIUM_QUESTION_LIMIT
        return GameConfig.FREE_QUESTION_LIMIT

    @staticmethod
    def level_name(level: int) -> str:
        if level < 1:
            return LEVEL_NAMES[0]
        if level > len(LEVEL_NAMES):
            return LEVEL_NAMES[-1]
        return LEVEL_NAMES[level - 1]
