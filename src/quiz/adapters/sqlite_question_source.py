import sqlite3

from src.quiz.adapters.db_manager import DatabaseManager
from src.quiz.domain.errors import QuestionNotFoundError, SourceUnavailableError
from src.quiz.domain.models import Question
from src.quiz.domain.ports import IQuestionSource
from src.shared.telemetry import Telemetry, measure_time


class SQLiteQuestionSource(IQuestionSource):
    def __init__(self, db_manager: DatabaseManager) -> None:
        self.telemetry = Telemetry("SQLiteQuestionSource")
        self.db_manager = db_manager

    def _get_connection(self) -> sqlite3.Connection:
        return self.db_manager.get_connection()

    def is_empty(self) -> bool:
        """Helper for the Seeder."""
        try:
            result = self._get_connection().execute("SELECT count(*) FROM questions").fetchone()
        except sqlite3.Error as e:
            raise SourceUnavailableError("Question bank unavailable") from e
        return (result[0] if result else 0) == 0

    @measure_time("db_seed_questions")
    def seed_questions(self, questions: list[Question]) -> None:
        conn = self._get_connection()
        try:
            conn.executemany(
                """
                INSERT OR REPLACE INTO questions (id, area, subject, position, json_data)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (q.id, q.area, q.subject, position, q.model_dump_json())
                    for position, q in enumerate(questions)
                ],
            )
            conn.commit()
        except sqlite3.Error as e:
            self.telemetry.log_error("seed_questions failed", e)
            raise SourceUnavailableError("Could not store questions") from e

        self.telemetry.log_info("Questions stored", count=len(questions))

    @measure_time("db_fetch_questions")
    def fetch(self, area: str, subject: str | None = None) -> list[Question]:
        query = "SELECT json_data FROM questions WHERE area = ?"
        params: tuple[str, ...] = (area,)
        if subject is not None:
            query += " AND subject = ?"
            params = (area, subject)
        query += " ORDER BY position"

        try:
            rows = self._get_connection().execute(query, params).fetchall()
        except sqlite3.Error as e:
            self.telemetry.log_error("fetch failed", e, area=area, subject=subject)
            raise SourceUnavailableError("Question bank unavailable") from e

        if not rows:
            raise QuestionNotFoundError(area, subject)
        return [Question.model_validate_json(row[0]) for row in rows]

    def list_areas(self) -> list[str]:
        try:
            rows = (
                self._get_connection()
                .execute("SELECT DISTINCT area FROM questions ORDER BY area")
                .fetchall()
            )
        except sqlite3.Error as e:
            self.telemetry.log_error("list_areas failed", e)
            raise SourceUnavailableError("Question bank unavailable") from e
        return [row[0] for row in rows]
