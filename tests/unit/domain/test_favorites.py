import pytest

from src.quiz.domain.errors import StorageError
from src.quiz.domain.favorites import Favorites
from tests.drivers.factories import make_question

USER = "user-1"


@pytest.fixture
def favorites(store, clock):
    return Favorites(store, clock=clock)


class TestBookmarks:
    def test_add_and_is_favorite(self, favorites):
        q = make_question("M1")

        assert favorites.add(USER, q) is True
        assert favorites.is_favorite(USER, q)
        assert favorites.get_ids(USER) == frozenset({"M1"})

    def test_adding_twice_keeps_one_entry(self, favorites):
        q = make_question("M1")
        favorites.add(USER, q)

        assert favorites.add(USER, q) is False
        assert len(favorites.get_all(USER)) == 1

    def test_same_id_in_another_area_is_a_different_question(self, favorites):
        favorites.add(USER, make_question("1", area="matematica"))
        assert not favorites.is_favorite(USER, make_question("1", area="portugues"))

    def test_remove(self, favorites):
        q = make_question("M1")
        favorites.add(USER, q)

        assert favorites.remove(USER, q) is True
        assert favorites.remove(USER, q) is False
        assert not favorites.is_favorite(USER, q)

    def test_toggle_flips_the_bookmark(self, favorites):
        q = make_question("M1")

        assert favorites.toggle(USER, q) is True
        assert favorites.toggle(USER, q) is False
        assert favorites.get_all(USER) == []

    def test_listed_newest_first(self, favorites, clock):
        favorites.add(USER, make_question("M1"))
        clock.advance(minutes=5)
        favorites.add(USER, make_question("M2"))

        assert [e.question_id for e in favorites.get_all(USER)] == ["M2", "M1"]

    def test_users_are_separate(self, favorites):
        favorites.add(USER, make_question("M1"))
        assert favorites.get_all("someone-else") == []

    def test_clear(self, favorites, store):
        favorites.add(USER, make_question("M1"))
        favorites.clear(USER)
        assert store.get(f"favorites:{USER}") is None


class TestStats:
    def test_stats_count_by_area_and_difficulty(self, favorites, clock):
        favorites.add(USER, make_question("M1", difficulty="hard"))
        favorites.add(USER, make_question("M2"))
        clock.advance(hours=1)
        favorites.add(USER, make_question("P1", area="portugues", difficulty="easy"))

        stats = favorites.get_stats(USER)

        assert stats.total == 3
        assert stats.by_area == {"matematica": 2, "portugues": 1}
        assert stats.by_difficulty == {"hard": 1, "easy": 1}
        assert stats.last_updated == clock()

    def test_empty_stats(self, favorites):
        stats = favorites.get_stats(USER)
        assert stats.total == 0
        assert stats.last_updated is None


def test_unreadable_document_raises_storage_error(favorites, store):
    store.set(f"favorites:{USER}", [{"question_id": "M1"}])
    with pytest.raises(StorageError):
        favorites.get_all(USER)
