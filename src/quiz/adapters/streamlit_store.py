import json
from typing import Any

import streamlit as st

from src.quiz.domain.errors import StorageError
from src.quiz.domain.ports import IIdentityProvider, IKeyValueStore


class StreamlitSessionStore(IKeyValueStore):
    """
    Browser-session storage backed by ``st.session_state``.

    Keys are namespaced so they cannot collide with widget state; values are
    kept as JSON text, like the persistent backends.
    """

    NAMESPACE = "quiz_kv"

    def _slot(self, key: str) -> str:
        return f"{self.NAMESPACE}:{key}"

    def get(self, key: str) -> Any | None:
        raw = st.session_state.get(self._slot(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise StorageError(f"Corrupt session value for '{key}'") from e

    def set(self, key: str, value: Any) -> None:
        st.session_state[self._slot(key)] = json.dumps(value)

    def delete(self, key: str) -> None:
        slot = self._slot(key)
        if slot in st.session_state:
            del st.session_state[slot]

    def clear(self) -> None:
        prefix = f"{self.NAMESPACE}:"
        for slot in [k for k in st.session_state.keys() if str(k).startswith(prefix)]:
            del st.session_state[slot]


class StreamlitIdentityProvider(IIdentityProvider):
    """Reads the signed-in user id the login flow leaves in session state."""

    def __init__(self, key: str = "user_id") -> None:
        self.key = key

    def current_user_id(self) -> str | None:
        user_id = st.session_state.get(self.key)
        return str(user_id) if user_id else None
