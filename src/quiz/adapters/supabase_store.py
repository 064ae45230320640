from datetime import datetime, timezone
from typing import Any, cast

from src.quiz.domain.errors import StorageError
from src.quiz.domain.ports import IKeyValueStore
from src.shared.telemetry import Telemetry, measure_time
from supabase import Client, create_client


class SupabaseKeyValueStore(IKeyValueStore):
    """
    Remote document store on a Supabase ``kv_store`` table
    (``key text primary key, value jsonb, updated_at timestamptz``).
    """

    TABLE = "kv_store"

    def __init__(self, url: str, key: str, client: Client | None = None) -> None:
        self.telemetry = Telemetry("SupabaseKeyValueStore")
        if client is not None:
            self.client = client
            return
        try:
            self.client = create_client(url, key)
        except Exception as e:
            self.telemetry.log_error("Failed to initialize Supabase client", e)
            raise StorageError("Supabase client unavailable") from e

    @measure_time("sb_kv_get")
    def get(self, key: str) -> Any | None:
        try:
            response = (
                self.client.table(self.TABLE)
                .select("value")
                .eq("key", key)
                .limit(1)
                .execute()
            )
        except Exception as e:
            self.telemetry.log_error("kv get failed", e, key=key)
            raise StorageError(f"Could not read '{key}'") from e

        data = cast(list[dict[str, Any]], response.data)
        return data[0]["value"] if data else None

    @measure_time("sb_kv_set")
    def set(self, key: str, value: Any) -> None:
        payload = {
            "key": key,
            "value": value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.client.table(self.TABLE).upsert(payload).execute()
        except Exception as e:
            self.telemetry.log_error("kv set failed", e, key=key)
            raise StorageError(f"Could not write '{key}'") from e

    def delete(self, key: str) -> None:
        try:
            self.client.table(self.TABLE).delete().eq("key", key).execute()
        except Exception as e:
            self.telemetry.log_error("kv delete failed", e, key=key)
            raise StorageError(f"Could not delete '{key}'") from e
