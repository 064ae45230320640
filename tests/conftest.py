from datetime import datetime

import pytest
import streamlit as st

from src.quiz.adapters.db_manager import DatabaseManager
from src.quiz.adapters.identity import StaticIdentityProvider
from src.quiz.adapters.memory_store import InMemoryKeyValueStore, InMemoryQuestionSource
from src.quiz.domain.progress_ledger import ProgressLedger
from src.quiz.domain.trial_quota import TrialQuota
from tests.drivers.factories import FakeClock, FakeMonotonic, make_question


class MockSessionState(dict):
    """
    Mock for st.session_state that behaves like both a dict and an object.
    Allows both dict-style and attribute-style access.
    """

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError as err:
            raise AttributeError(
                f"'MockSessionState' object has no attribute '{name}'"
            ) from err

    def __setattr__(self, name, value):
        self[name] = value

    def __delattr__(self, name):
        try:
            del self[name]
        except KeyError as err:
            raise AttributeError(
                f"'MockSessionState' object has no attribute '{name}'"
            ) from err


@pytest.fixture(autouse=True)
def mock_streamlit_session():
    """
    Auto-use fixture that ensures st.session_state exists for all tests.
    Uses a custom MockSessionState that supports both dict and attribute access.
    """
    original_session_state = getattr(st, "session_state", None)

    st.session_state = MockSessionState()

    yield st.session_state

    st.session_state.clear()

    if original_session_state is not None:
        st.session_state = original_session_state


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 10, 9, 0, 0))


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def question_bank():
    """
    12 maths questions (8 algebra, 4 geometry; correct answer A),
    4 Portuguese and 3 computing questions.
    """
    maths = [make_question(f"M{i}", subject="algebra") for i in range(1, 9)]
    maths += [
        make_question(f"G{i}", subject="geometria", category="Geometria", difficulty="hard")
        for i in range(1, 5)
    ]
    portuguese = [
        make_question(f"P{i}", area="portugues", subject="gramatica", correct="B", category="Gramática")
        for i in range(1, 5)
    ]
    computing = [
        make_question(f"I{i}", area="informatica", subject="hardware", category="Hardware")
        for i in range(1, 4)
    ]
    return maths + portuguese + computing


@pytest.fixture
def source(question_bank):
    return InMemoryQuestionSource(question_bank)


@pytest.fixture
def quota(store, clock):
    return TrialQuota(store, clock=clock)


@pytest.fixture
def ledger(store, clock):
    return ProgressLedger(store, clock=clock)


@pytest.fixture
def identity():
    return StaticIdentityProvider("user-1")


@pytest.fixture
def db_manager():
    """Clean in-memory SQLite database."""
    manager = DatabaseManager(db_path=":memory:")
    yield manager
    manager.close()
