import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from lugx_common.errors import StorageError
from lugx_common.logging import get_logger
from lugx_common.settings import database_url

logger = get_logger(__name__)

DB_SCHEMA = os.getenv("DB_SCHEMA", "orders")

DATABASE_URL = database_url(default_db="lugx_orders", default_host="postgres-order", schema=DB_SCHEMA)

engine = create_engine(DATABASE_URL, pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

def init_db():
    """
    Ensure the service schema exists, then create tables (idempotent).
    """
    if engine.dialect.name == "postgresql":
        with engine.begin() as conn:
            conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{DB_SCHEMA}"'))
    from .models import Base  # noqa
    Base.metadata.create_all(bind=engine)

def ping():
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))

@contextmanager
def transaction() -> Iterator[Session]:
    """
    Dedicated all-or-nothing unit of work on its own pooled connection.
    Commits when the block exits cleanly; any storage failure rolls the whole
    block back and surfaces as StorageError. The connection goes back to the
    pool on every exit path.
    """
    s: Session = SessionLocal()
    try:
        with s.begin():
            yield s
    except SQLAlchemyError as e:
        logger.error(f"Transaction rolled back: {e}")
        raise StorageError() from e
    finally:
        s.close()
