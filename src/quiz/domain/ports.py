from abc import ABC, abstractmethod
from typing import Any

from src.quiz.domain.models import Question


class IQuestionSource(ABC):
    @abstractmethod
    def fetch(self, area: str, subject: str | None = None) -> list[Question]:
        """
        Returns the ordered question list for an area (optionally one subject).
        Raises QuestionNotFoundError for unknown area/subject.
        """
        pass

    @abstractmethod
    def list_areas(self) -> list[str]:
        pass


class IKeyValueStore(ABC):
    """JSON document store. Read-after-write visible within the process."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class IIdentityProvider(ABC):
    @abstractmethod
    def current_user_id(self) -> str | None:
        pass
