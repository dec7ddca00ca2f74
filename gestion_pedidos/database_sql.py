import logging
import time

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gestion_pedidos import config

# Importa la base declarativa desde models
from gestion_pedidos.models import Base

logger = logging.getLogger("gestion_pedidos.database")


def make_engine(url: str):
    """Build an engine for ``url``.

    In-memory SQLite gets a single shared connection so every session (and
    every thread of the request pool) sees the same tables.
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


# Crea el motor y la sesión
engine = make_engine(config.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_db_and_tables(bind=None, attempts: int = None, delay: float = 1.0) -> bool:
    """Crea todas las tablas definidas en models.py si no existen.

    Retries while the database is not reachable yet; returns False when every
    attempt failed so the caller can decide whether to keep serving.
    """
    bind = bind if bind is not None else engine
    attempts = attempts if attempts is not None else config.DB_CONNECT_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            Base.metadata.create_all(bind=bind)
            return True
        except Exception as e:
            logger.warning(
                "create_all failed (attempt %s/%s): %s", attempt, attempts, e
            )
            time.sleep(delay)
    return False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
