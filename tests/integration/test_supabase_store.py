from unittest.mock import MagicMock, patch

import pytest

from src.quiz.adapters.supabase_store import SupabaseKeyValueStore
from src.quiz.domain.errors import StorageError


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def store(client):
    return SupabaseKeyValueStore("https://example.supabase.co", "key", client=client)


def test_get_returns_value_column(store, client):
    query = client.table.return_value.select.return_value.eq.return_value.limit.return_value
    query.execute.return_value = MagicMock(data=[{"value": {"total_xp": 85}}])

    assert store.get("progress_xp:u1") == {"total_xp": 85}
    client.table.assert_called_with("kv_store")
    client.table.return_value.select.return_value.eq.assert_called_with("key", "progress_xp:u1")


def test_get_missing_key(store, client):
    query = client.table.return_value.select.return_value.eq.return_value.limit.return_value
    query.execute.return_value = MagicMock(data=[])

    assert store.get("nope") is None


def test_set_upserts_document(store, client):
    store.set("free_trial:u1", {"day": "2026-03-10"})

    payload = client.table.return_value.upsert.call_args[0][0]
    assert payload["key"] == "free_trial:u1"
    assert payload["value"] == {"day": "2026-03-10"}
    assert "updated_at" in payload


def test_delete_filters_by_key(store, client):
    store.delete("quiz_snapshot:u1")
    client.table.return_value.delete.return_value.eq.assert_called_once_with("key", "quiz_snapshot:u1")


def test_backend_errors_become_storage_errors(store, client):
    client.table.side_effect = ConnectionError("network down")

    with pytest.raises(StorageError):
        store.get("k")
    with pytest.raises(StorageError):
        store.set("k", 1)
    with pytest.raises(StorageError):
        store.delete("k")


def test_client_is_created_from_credentials():
    with patch("src.quiz.adapters.supabase_store.create_client") as mock_create:
        SupabaseKeyValueStore("https://example.supabase.co", "key")
    mock_create.assert_called_once_with("https://example.supabase.co", "key")


def test_client_creation_failure():
    with patch("src.quiz.adapters.supabase_store.create_client", side_effect=Exception("bad key")):
        with pytest.raises(StorageError):
            SupabaseKeyValueStore("https://example.supabase.co", "bad")
