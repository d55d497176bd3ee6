# apps/workers/relay_worker/infrastructure/di.py
import asyncpg

from relay_worker.domain.ports.session_store import SessionStore
from relay_worker.infrastructure.process.invoker import ProcessInvoker
from relay_worker.infrastructure.repo.file_session_store import FileSessionStore
from relay_worker.infrastructure.repo.postgres_session_store import PostgresSessionStore
from relay_worker.settings import SessionBackend, Settings


async def make_session_store(settings: Settings) -> SessionStore:
    if settings.SESSION_BACKEND == SessionBackend.POSTGRES:
        if not settings.DB_URL:
            raise RuntimeError("DB_URL is required when SESSION_BACKEND=postgres")
        pool = await asyncpg.create_pool(
            dsn=settings.DB_URL,
            min_size=1,
            max_size=4,
            statement_cache_size=0,
            server_settings={"application_name": settings.APP_NAME or "relay_worker"},
        )
        store = PostgresSessionStore(pool)
        await store.ensure_schema()
        return store
    return FileSessionStore(settings.SESSION_DIR)


async def shutdown_session_store(store: SessionStore) -> None:
    await store.close()


def make_invoker(settings: Settings) -> ProcessInvoker:
    return ProcessInvoker(default_path=settings.DEFAULT_PATH)
