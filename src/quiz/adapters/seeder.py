import json
import string
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from src.quiz.adapters.sqlite_question_source import SQLiteQuestionSource
from src.quiz.domain.models import Difficulty, Option, Question
from src.shared.telemetry import Telemetry

_telemetry = Telemetry("QuestionBank")


def _normalise_question(
    raw: dict[str, Any], area: str, subject: str | None
) -> Question | None:
    """Maps one bank entry onto Question; None when it cannot be used."""
    raw_options = raw.get("options") or []
    if len(raw_options) < 2:
        _telemetry.log_warning(
            "Question dropped: fewer than two options", q_id=raw.get("id"), area=area
        )
        return None

    difficulty = raw.get("difficulty")
    if difficulty not in {d.value for d in Difficulty}:
        difficulty = None

    try:
        options = [
            Option(
                alias=str(opt.get("alias") or string.ascii_uppercase[i]),
                text=str(opt.get("name", "")),
            )
            for i, opt in enumerate(raw_options)
        ]
        return Question(
            id=str(raw["id"]),
            text=raw.get("question", ""),
            options=options,
            correct_option=str(raw.get("correct", "")),
            explanation=raw.get("explanation") or "",
            difficulty=difficulty,
            area=area,
            subject=subject,
            category=raw.get("category") or subject or "Geral",
        )
    except (KeyError, ValidationError) as e:
        _telemetry.log_warning("Question dropped: invalid", q_id=raw.get("id"), reason=str(e))
        return None


def parse_question_bank(
    data: dict[str, Any], area: str | None = None, subject: str | None = None
) -> list[Question]:
    """
    Parses a bank document of the shape
    ``{"metadata": {"area", "subject"}, "questions": [...]}``.
    Explicit ``area``/``subject`` arguments win over the metadata.
    """
    metadata = data.get("metadata") or {}
    area = area or metadata.get("area")
    subject = subject or metadata.get("subject")
    if not area:
        raise ValueError("Question bank has no area")

    questions = []
    for raw in data.get("questions", []):
        question = _normalise_question(raw, area, subject)
        if question is not None:
            questions.append(question)
    return questions


def load_question_file(path: Path, area: str | None = None) -> list[Question]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return parse_question_bank(data, area=area, subject=path.stem)


class DataSeeder:
    """
    Populates the question table from a directory laid out as
    ``<root>/<area>/<subject>.json``.
    """

    def __init__(self, source: SQLiteQuestionSource) -> None:
        self.source = source
        self.telemetry = Telemetry("DataSeeder")

    def load_directory(self, root: str | Path) -> list[Question]:
        root = Path(root)
        questions: list[Question] = []
        for path in sorted(root.glob("*/*.json")):
            try:
                questions.extend(load_question_file(path, area=path.parent.name))
            except (OSError, ValueError) as e:
                self.telemetry.log_error("Skipping unreadable bank file", e, file=str(path))
        return questions

    def seed_if_empty(self, root: str | Path = "data/areas") -> int:
        """Seeds only an empty table. Returns the number of questions written."""
        if not self.source.is_empty():
            return 0

        if not Path(root).is_dir():
            self.telemetry.log_warning("Seed directory NOT found", path=str(root))
            return 0

        self.telemetry.log_info("DB appears empty. Attempting to seed...", path=str(root))
        questions = self.load_directory(root)
        if questions:
            self.source.seed_questions(questions)
        self.telemetry.log_info(f"Seeded {len(questions)} questions.")
        return len(questions)
