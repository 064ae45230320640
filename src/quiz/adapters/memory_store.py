import json
from typing import Any

from src.quiz.domain.errors import QuestionNotFoundError
from src.quiz.domain.models import Question
from src.quiz.domain.ports import IKeyValueStore, IQuestionSource


class InMemoryKeyValueStore(IKeyValueStore):
    """
    Process-local store. Values go through a JSON round-trip so callers get
    the same document semantics as the persistent backends (no shared
    mutable references).
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class InMemoryQuestionSource(IQuestionSource):
    """Question bank held in a list, in insertion order."""

    def __init__(self, questions: list[Question] | None = None) -> None:
        self._questions: list[Question] = list(questions or [])

    def add(self, questions: list[Question]) -> None:
        self._questions.extend(questions)

    def fetch(self, area: str, subject: str | None = None) -> list[Question]:
        found = [
            q
            for q in self._questions
            if q.area == area and (subject is None or q.subject == subject)
        ]
        if not found:
            raise QuestionNotFoundError(area, subject)
        return found

    def list_areas(self) -> list[str]:
        return list(dict.fromkeys(q.area for q in self._questions))
