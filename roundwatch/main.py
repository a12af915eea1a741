#!/usr/bin/env python3
# ==============================================================================
#  roundwatch - main.py
#  Purpose: one-shot runner that loads a broadcast round and logs each game
#           (round lookup → cache-or-stream → summary)
# ==============================================================================

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, Sequence

from roundwatch.api.lichess import fetch_broadcast_rounds
from roundwatch.exceptions import TransportError
from roundwatch.models import BroadcastRound, Game
from roundwatch.pipeline.run_round import load_round
from roundwatch.utils.logging_utils import setup_logger

logger = setup_logger("main", level=logging.INFO)

# ------------------------------------------------------------------------------
# Stage Wrapper
# ------------------------------------------------------------------------------


def _stage(title, fn, *args, **kwargs):
    """
    Run a pipeline stage with start → finish logging and full stacktrace on error.
    """
    logger.info("%s – started", title)
    try:
        result = fn(*args, **kwargs)
        logger.info("%s – finished", title)
        return result
    except Exception:
        logger.exception("%s – failed", title)
        raise


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


def _resolve_round(
    round_id: str, broadcast_id: Optional[str], finished: bool
) -> BroadcastRound:
    """Look the round up in its broadcast when one is given."""
    if broadcast_id:
        for round_ in fetch_broadcast_rounds(broadcast_id):
            if round_.id == round_id:
                return round_
        logger.warning("Round %s not listed in broadcast %s", round_id, broadcast_id)
    return BroadcastRound(id=round_id, name=round_id, finished=finished)


def _summarise(games: List[Game]) -> None:
    for index, game in enumerate(games, start=1):
        white, black = game.players
        logger.info(
            "%2d. %s (%d) – %s (%d) | %s%s | %d plies",
            index,
            white.name,
            white.rating,
            black.name,
            black.rating,
            game.status.value,
            f", {game.winner.value} wins" if game.winner else "",
            len(game.move_history),
        )
    logger.info("%d game(s) in round", len(games))


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="roundwatch", description="Load a Lichess broadcast round."
    )
    parser.add_argument("round_id", help="broadcast round id")
    parser.add_argument("--broadcast", help="broadcast id, for round metadata")
    parser.add_argument(
        "--deadline-ms",
        type=int,
        default=None,
        help="stream budget in milliseconds (default: STREAM_DEADLINE_MS)",
    )
    parser.add_argument(
        "--finished",
        action="store_true",
        help="treat the round as finished (enables the PGN cache)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        round_ = _stage(
            "Round Lookup", _resolve_round, args.round_id, args.broadcast, args.finished
        )
        games = _stage(
            "Round Ingestion",
            load_round,
            round_,
            broadcast_id=args.broadcast or "",
            deadline_ms=args.deadline_ms,
        )
    except TransportError as exc:
        logger.error("Could not reach the PGN source: %s", exc)
        return 1

    _summarise(games)
    return 0


if __name__ == "__main__":
    sys.exit(main())
