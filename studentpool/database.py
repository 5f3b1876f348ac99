# studentpool/database.py
from __future__ import annotations
from typing import Iterator

from sqlmodel import SQLModel, create_engine, Session

from . import config
# Import models to ensure they are registered with SQLModel.metadata
from . import models  # noqa: F401

# --- read env ----------------------------
DATABASE_URL = config.DATABASE_URL
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL env var is required")

# Neon gives: postgresql://...
# SQLAlchemy + psycopg = postgresql+psycopg://
if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg://", 1)

# Always require TLS on Neon
if DATABASE_URL.startswith("postgresql") and "sslmode=" not in DATABASE_URL:
    sep = "&" if "?" in DATABASE_URL else "?"
    DATABASE_URL = f"{DATABASE_URL}{sep}sslmode=require"

# --- engine ------------------------------
if DATABASE_URL.startswith("sqlite"):
    # local runs; request handlers share the file across threads
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,   # auto-reconnect
        pool_size=5,
        max_overflow=10,
    )


def get_session() -> Iterator[Session]:
    with Session(engine) as session:
        yield session


def init_db() -> None:
    # Creates tables that don't exist; does not drop/alter
    SQLModel.metadata.create_all(engine)
