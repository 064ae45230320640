"""
Composition root: picks the storage backend from GameConfig and wires the
QuizService. Hosts (Streamlit page, CLI, tests) call ``build_service``.
"""

from src.config import GameConfig
from src.quiz.adapters.db_manager import DatabaseManager
from src.quiz.adapters.identity import StaticIdentityProvider
from src.quiz.adapters.memory_store import InMemoryKeyValueStore
from src.quiz.adapters.seeder import DataSeeder
from src.quiz.adapters.sqlite_question_source import SQLiteQuestionSource
from src.quiz.adapters.sqlite_store import SQLiteKeyValueStore
from src.quiz.adapters.streamlit_store import StreamlitSessionStore
from src.quiz.adapters.supabase_store import SupabaseKeyValueStore
from src.quiz.application.service import QuizService
from src.quiz.domain.errors import InvalidConfigError
from src.quiz.domain.ports import IIdentityProvider, IKeyValueStore
from src.shared.telemetry import Telemetry

telemetry = Telemetry("Bootstrap")


def create_store(backend: str, db_manager: DatabaseManager) -> IKeyValueStore:
    match backend:
        case "memory":
            return InMemoryKeyValueStore()
        case "sqlite":
            return SQLiteKeyValueStore(db_manager)
        case "streamlit":
            return StreamlitSessionStore()
        case "supabase":
            if not GameConfig.SUPABASE_URL or not GameConfig.SUPABASE_KEY:
                raise InvalidConfigError("SUPABASE_URL and SUPABASE_KEY must be set")
            return SupabaseKeyValueStore(GameConfig.SUPABASE_URL, GameConfig.SUPABASE_KEY)
        case _:
            raise InvalidConfigError(f"Unknown storage backend: {backend}")


def build_service(
    backend: str | None = None,
    identity: IIdentityProvider | None = None,
    db_path: str | None = None,
    seed_dir: str | None = "data/areas",
) -> QuizService:
    """The question bank always lives in SQLite; progress goes to ``backend``."""
    backend = backend or GameConfig.STORAGE_BACKEND
    db_manager = DatabaseManager(db_path or GameConfig.DB_PATH)

    source = SQLiteQuestionSource(db_manager)
    if seed_dir:
        DataSeeder(source).seed_if_empty(seed_dir)

    store = create_store(backend, db_manager)
    telemetry.log_info("Service wired", backend=backend, db_path=db_manager.db_path)
    return QuizService(source, store, identity or StaticIdentityProvider())
