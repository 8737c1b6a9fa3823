import os
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from lugx_common.settings import database_url

DB_SCHEMA = os.getenv("DB_SCHEMA", "catalog")

DATABASE_URL = database_url(default_db="lugx_games", default_host="postgres-game", schema=DB_SCHEMA)

engine = create_engine(DATABASE_URL, pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

def init_db():
    """
    Ensure the schema exists, then create tables (idempotent).
    Called once at application startup.
    """
    if engine.dialect.name == "postgresql":
        with engine.begin() as conn:
            # Quote the schema to avoid edge cases with names
            conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{DB_SCHEMA}"'))
    # Import here to avoid circulars
    from .models import Base  # noqa
    Base.metadata.create_all(bind=engine)

def ping():
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))

def get_session():
    """
    FastAPI dependency: yields a DB session, commits on success, rolls back on error.
    """
    s = SessionLocal()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
