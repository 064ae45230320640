import pytest
import streamlit as st

from src.quiz.adapters.streamlit_store import StreamlitIdentityProvider, StreamlitSessionStore
from src.quiz.domain.errors import StorageError
from src.quiz.domain.trial_quota import TrialQuota


def test_values_live_in_session_state():
    store = StreamlitSessionStore()

    store.set("free_trial:u1", {"day": "2026-03-10"})

    assert store.get("free_trial:u1") == {"day": "2026-03-10"}
    assert "quiz_kv:free_trial:u1" in st.session_state


def test_returned_documents_are_copies():
    store = StreamlitSessionStore()
    store.set("k", {"list": [1]})

    store.get("k")["list"].append(2)

    assert store.get("k") == {"list": [1]}


def test_delete_and_clear_only_touch_namespace():
    store = StreamlitSessionStore()
    st.session_state["widget"] = "keep me"
    store.set("a", 1)
    store.set("b", 2)

    store.delete("a")
    store.delete("missing")
    assert store.get("a") is None

    store.clear()
    assert store.get("b") is None
    assert st.session_state["widget"] == "keep me"


def test_quota_on_browser_session():
    quota = TrialQuota(StreamlitSessionStore())
    quota.register_attempt("u1", "informatica")
    assert quota.get_remaining("u1", "informatica") == 2


def test_identity_from_session_state():
    provider = StreamlitIdentityProvider()
    assert provider.current_user_id() is None

    st.session_state.user_id = "ana"
    assert provider.current_user_id() == "ana"


def test_corrupt_value_raises_storage_error():
    st.session_state["quiz_kv:broken"] = "{not json"
    with pytest.raises(StorageError):
        StreamlitSessionStore().get("broken")
