from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .core.settings import settings
from .errors import UpstreamTimeout


def _connect_args(url: str) -> dict:
    """Bound every store call by STORE_TIMEOUT_SECONDS at the driver level"""
    timeout = settings.STORE_TIMEOUT_SECONDS
    if url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": timeout}
    if url.startswith("postgresql"):
        return {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args(settings.DATABASE_URL),
    pool_pre_ping=True,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="store-query")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """Dependency for work that opens its own sessions (e.g. bounded dashboard queries)"""
    return SessionLocal


def run_with_timeout(fn, *args, timeout: float = None, name: str = "query"):
    """
    Run a store call on a worker thread and give up after `timeout` seconds.

    Raises UpstreamTimeout when the bound is exceeded. The worker keeps running
    until the driver-level timeout ends it; callers must not share a Session
    with `fn`.
    """
    timeout = settings.STORE_TIMEOUT_SECONDS if timeout is None else timeout
    future = _executor.submit(fn, *args)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        raise UpstreamTimeout(f"{name} exceeded {timeout:g}s")
