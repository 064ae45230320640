from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError

from src.quiz.domain.errors import StorageError
from src.quiz.domain.models import FavoriteEntry, FavoritesStats, Question
from src.quiz.domain.ports import IKeyValueStore
from src.shared.telemetry import Telemetry


class Favorites:
    """
    Per-user bookmarked questions, one document per user.

    Entries are keyed by (area, question_id) and listed newest first.
    """

    KEY_PREFIX = "favorites"

    def __init__(
        self,
        store: IKeyValueStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.clock = clock
        self.telemetry = Telemetry("Favorites")

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}:{user_id}"

    def get_all(self, user_id: str) -> list[FavoriteEntry]:
        raw = self.store.get(self._key(user_id)) or []
        try:
            entries = [FavoriteEntry.model_validate(item) for item in raw]
        except (ValidationError, TypeError) as e:
            self.telemetry.log_error("Corrupt favorites", e, user_id=user_id)
            raise StorageError(f"Unreadable favorites for '{user_id}'") from e
        return sorted(entries, key=lambda e: e.added_at, reverse=True)

    def _save(self, user_id: str, entries: list[FavoriteEntry]) -> None:
        self.store.set(self._key(user_id), [e.model_dump(mode="json") for e in entries])

    def get_ids(self, user_id: str) -> frozenset[str]:
        return frozenset(e.question_id for e in self.get_all(user_id))

    def is_favorite(self, user_id: str, question: Question) -> bool:
        return any(
            e.area == question.area and e.question_id == question.id
            for e in self.get_all(user_id)
        )

    def add(self, user_id: str, question: Question) -> bool:
        """Returns False when the question is already a favorite."""
        entries = self.get_all(user_id)
        if any(e.area == question.area and e.question_id == question.id for e in entries):
            return False

        entries.append(
            FavoriteEntry(
                question_id=question.id,
                area=question.area,
                subject=question.subject,
                difficulty=question.difficulty,
                added_at=self.clock(),
            )
        )
        self._save(user_id, entries)
        self.telemetry.count_event("favorite_added", user_id=user_id, q_id=question.id)
        return True

    def remove(self, user_id: str, question: Question) -> bool:
        """Returns False when the question was not a favorite."""
        entries = self.get_all(user_id)
        kept = [
            e for e in entries if not (e.area == question.area and e.question_id == question.id)
        ]
        if len(kept) == len(entries):
            return False

        self._save(user_id, kept)
        self.telemetry.count_event("favorite_removed", user_id=user_id, q_id=question.id)
        return True

    def toggle(self, user_id: str, question: Question) -> bool:
        """Flips the bookmark. Returns True if the question is now a favorite."""
        if self.remove(user_id, question):
            return False
        return self.add(user_id, question)

    def get_stats(self, user_id: str) -> FavoritesStats:
        entries = self.get_all(user_id)
        by_area: dict[str, int] = {}
        by_difficulty: dict[str, int] = {}
        for e in entries:
            by_area[e.area] = by_area.get(e.area, 0) + 1
            if e.difficulty is not None:
                key = e.difficulty.value
                by_difficulty[key] = by_difficulty.get(key, 0) + 1

        return FavoritesStats(
            total=len(entries),
            by_area=by_area,
            by_difficulty=by_difficulty,
            last_updated=entries[0].added_at if entries else None,
        )

    def clear(self, user_id: str) -> None:
        self.store.delete(self._key(user_id))
