#!/usr/bin/env python3
# ==============================================================================
# run_round.py  –  Load one broadcast round as a list of games
#
# Finished rounds are served from the PGN cache when present; everything
# else is streamed. A finished round's streamed PGN is written back to the
# cache.
# ==============================================================================

from __future__ import annotations

import logging
import time
from typing import List, Optional

from roundwatch.db.round_cache import (
    RoundPgnCacheEntry,
    get_round_pgn_cache,
    set_round_pgn_cache,
)
from roundwatch.ingestion.round_ingestor import games_from_pgn, stream_round_pgn
from roundwatch.models import BroadcastRound, Game
from roundwatch.utils.config_utils import is_cache_enabled
from roundwatch.utils.logging_utils import setup_logger

LOGGER = setup_logger("run_round", level=logging.INFO)


def load_round(
    round_: BroadcastRound,
    broadcast_id: str = "",
    broadcast_name: str = "",
    deadline_ms: Optional[int] = None,
    token: Optional[str] = None,
) -> List[Game]:
    """
    Return the games of `round_`, from cache or from the live stream.

    Raises TransportError only when the stream is unreachable and nothing
    is cached.
    """
    use_cache = is_cache_enabled() and round_.finished

    if use_cache:
        cached = get_round_pgn_cache(round_.id)
        if cached is not None and cached.pgn.strip():
            LOGGER.info("Round '%s' served from cache", round_.name or round_.id)
            return games_from_pgn(cached.pgn)

    pgn = stream_round_pgn(round_.id, deadline_ms, token=token)

    if use_cache and pgn.strip():
        set_round_pgn_cache(
            RoundPgnCacheEntry(
                round_id=round_.id,
                round_name=round_.name,
                broadcast_id=broadcast_id,
                broadcast_name=broadcast_name,
                pgn=pgn,
                finished_at=int(time.time() * 1000),
            )
        )

    games = games_from_pgn(pgn)
    if not games:
        LOGGER.warning("No games found for round '%s'", round_.name or round_.id)
    return games
