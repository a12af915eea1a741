# ==============================================================================
# round_cache.py  –  Read/write hooks for finished-round PGN
# ------------------------------------------------------------------------------
# Responsibilities:
#   • Keep one row per round in `round_pgn_cache`
#   • Insert a new row if the round is absent, otherwise update it
#   • Expire rows older than a given age
# Cache failures never break ingestion: reads return None, writes log and
# roll back.
# ==============================================================================

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import (
    BigInteger,
    Column,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from roundwatch.utils.config_utils import get_cache_database_url
from roundwatch.utils.logging_utils import setup_logger

LOGGER = setup_logger("round_cache")

METADATA = MetaData()
ROUND_PGN_CACHE = Table(
    "round_pgn_cache",
    METADATA,
    Column("id_round", String, primary_key=True),
    Column("val_round_name", String),
    Column("id_broadcast", String),
    Column("val_broadcast_name", String),
    Column("val_pgn", Text),
    Column("tm_finished", BigInteger),
    Column("tm_cached", BigInteger),
)


@dataclass
class RoundPgnCacheEntry:
    round_id: str
    round_name: str
    broadcast_id: str
    broadcast_name: str
    pgn: str
    finished_at: int  # epoch ms


# ------------------------------------------------------------------------------
# Database setup
# ------------------------------------------------------------------------------


def _now_ms() -> int:
    return int(time.time() * 1000)


@lru_cache(maxsize=None)
def get_engine(url: Optional[str] = None) -> Engine:
    """Engine for the cache database; creates the table on first use."""
    url = url or get_cache_database_url()
    if url.startswith("sqlite:///") and not url.startswith("sqlite:///:memory:"):
        Path(url[len("sqlite:///") :]).expanduser().parent.mkdir(
            parents=True, exist_ok=True
        )
    engine = create_engine(url)
    METADATA.create_all(engine)
    return engine


def new_session(engine: Optional[Engine] = None) -> Session:
    return sessionmaker(bind=engine or get_engine())()


# ------------------------------------------------------------------------------
# Row mapping
# ------------------------------------------------------------------------------


def _to_row(entry: RoundPgnCacheEntry) -> Dict[str, Any]:
    return {
        "id_round": entry.round_id,
        "val_round_name": entry.round_name,
        "id_broadcast": entry.broadcast_id,
        "val_broadcast_name": entry.broadcast_name,
        "val_pgn": entry.pgn,
        "tm_finished": entry.finished_at,
        "tm_cached": _now_ms(),
    }


def _from_row(row: Any) -> RoundPgnCacheEntry:
    return RoundPgnCacheEntry(
        round_id=row.id_round,
        round_name=row.val_round_name or "",
        broadcast_id=row.id_broadcast or "",
        broadcast_name=row.val_broadcast_name or "",
        pgn=row.val_pgn or "",
        finished_at=row.tm_finished or 0,
    )


# ------------------------------------------------------------------------------
# Public hooks
# ------------------------------------------------------------------------------


@contextmanager
def _session_scope(session: Optional[Session]) -> Iterator[Session]:
    """Use the caller's session as is, or open (and close) a fresh one."""
    if session is not None:
        yield session
        return
    with new_session() as own:
        yield own


def get_round_pgn_cache(
    round_id: str, session: Optional[Session] = None
) -> Optional[RoundPgnCacheEntry]:
    """Return the cached PGN entry for a round, or None."""
    with _session_scope(session) as session:
        try:
            with session.begin():
                row = session.execute(
                    select(ROUND_PGN_CACHE).where(
                        ROUND_PGN_CACHE.c.id_round == round_id
                    )
                ).first()
        except SQLAlchemyError as exc:
            LOGGER.warning("Cache read failed for round %s – %s", round_id, exc)
            session.rollback()
            return None

    if row is None:
        LOGGER.debug("Cache miss for round %s", round_id)
        return None
    LOGGER.info("Cache hit for round %s", round_id)
    return _from_row(row)


def set_round_pgn_cache(
    entry: RoundPgnCacheEntry, session: Optional[Session] = None
) -> bool:
    """
    Insert or update the cache row for `entry.round_id`.

    Returns
    -------
    bool
        True if an existing row was updated,
        False on insert or error.
    """
    if not entry.round_id:
        LOGGER.warning("Missing round ID – skipping cache write.")
        return False

    row = _to_row(entry)
    table = ROUND_PGN_CACHE

    with _session_scope(session) as session:
        try:
            with session.begin():
                exists = session.execute(
                    select(table.c.id_round).where(table.c.id_round == entry.round_id)
                ).first()

                if exists:
                    session.execute(
                        update(table)
                        .where(table.c.id_round == entry.round_id)
                        .values(row)
                    )
                    LOGGER.info("Updated cached PGN for round %s", entry.round_id)
                    return True

                session.execute(table.insert().values(row))
                LOGGER.info("Cached PGN for round %s", entry.round_id)
                return False

        except SQLAlchemyError as exc:
            LOGGER.error("Error caching round %s – %s", entry.round_id, exc)
            session.rollback()
            return False


def clear_old_cache(max_age_ms: int, session: Optional[Session] = None) -> int:
    """Delete rows cached more than `max_age_ms` ago; return how many."""
    cutoff = _now_ms() - max_age_ms
    with _session_scope(session) as session:
        try:
            with session.begin():
                result = session.execute(
                    delete(ROUND_PGN_CACHE).where(ROUND_PGN_CACHE.c.tm_cached < cutoff)
                )
                removed = result.rowcount
        except SQLAlchemyError as exc:
            LOGGER.error("Cache cleanup failed – %s", exc)
            session.rollback()
            return 0

    LOGGER.info("Removed %d expired cache row(s)", removed)
    return removed
