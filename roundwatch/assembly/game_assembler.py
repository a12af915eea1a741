# ==============================================================================
# game_assembler.py  –  ParsedGame → Game
# ------------------------------------------------------------------------------
# Responsibilities:
#   • Normalise player tags (name, Elo, title, FIDE id, federation)
#   • Replay the moves into a FEN history
#   • Classify status / winner from the last move and the Result tag
# ==============================================================================

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from roundwatch.models import Color, Game, GameStatus, ParsedGame, Player
from roundwatch.parsing.pgn_grammar import format_movetext, serialize_tags
from roundwatch.replay.board_replayer import replay_fens
from roundwatch.utils.logging_utils import setup_logger

LOGGER = setup_logger("game_assembler")

UNKNOWN_PLAYER = "Unknown"

_DECISIVE = {"1-0": Color.WHITE, "0-1": Color.BLACK}

# ------------------------------------------------------------------------------
# Parsing helpers
# ------------------------------------------------------------------------------


def _parse_int(value: Any) -> Optional[int]:
    """
    Safely cast a value to int, or return None if invalid.

    Handles:
      • Integers (1500)
      • Numeric strings ("2400")
      • Empty strings, nulls, "?" → None
    """
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def _clean_tag(value: Optional[str]) -> Optional[str]:
    """Strip a tag value; empty and '?' placeholders become None."""
    if value is None:
        return None
    value = value.strip()
    return value if value and value != "?" else None


def _build_player(tags: Dict[str, str], side: str, clock: Optional[int]) -> Player:
    return Player(
        name=tags.get(side) or UNKNOWN_PLAYER,
        rating=_parse_int(tags.get(f"{side}Elo")) or 0,
        title=_clean_tag(tags.get(f"{side}Title")),
        fide_id=_parse_int(tags.get(f"{side}FideId")),
        federation=_clean_tag(tags.get(f"{side}Fed")),
        clock=clock,
    )


def _game_id(tags: Dict[str, str]) -> Optional[str]:
    """GameId tag, else the last path segment of GameURL / Site URLs."""
    if tags.get("GameId"):
        return tags["GameId"]
    for key in ("GameURL", "Site"):
        url = tags.get(key, "")
        if url.startswith(("http://", "https://")):
            return url.rstrip("/").split("/")[-1] or None
    return None


def _last_clocks(parsed: ParsedGame) -> Tuple[Optional[int], Optional[int]]:
    white = black = None
    for move in parsed.moves:
        if move.clock is None:
            continue
        if move.color is Color.WHITE:
            white = move.clock
        else:
            black = move.clock
    return white, black


# ------------------------------------------------------------------------------
# Status
# ------------------------------------------------------------------------------


def classify_status(parsed: ParsedGame) -> Tuple[GameStatus, Optional[Color]]:
    """
    Derive (status, winner) in priority order:

      1. last move marked mate (#)   → MATE, mover wins
      2. Result 1/2-1/2              → DRAW
      3. Result 1-0 / 0-1            → RESIGN, winner from the result
      4. Result *                    → PLAYING
      5. anything else               → STARTED

    A game without moves is always STARTED. The Result tag wins over the
    movetext result token.
    """
    if not parsed.moves:
        return GameStatus.STARTED, None

    last = parsed.moves[-1]
    if last.mate:
        return GameStatus.MATE, last.color

    result = parsed.tags.get("Result") or parsed.result_token
    if result == "1/2-1/2":
        return GameStatus.DRAW, None
    if result in _DECISIVE:
        return GameStatus.RESIGN, _DECISIVE[result]
    if result == "*":
        return GameStatus.PLAYING, None
    return GameStatus.STARTED, None


# ------------------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------------------


def assemble_game(parsed: ParsedGame) -> Game:
    """Build the immutable Game for one parsed record. Never raises."""
    tags = parsed.tags
    white_clock, black_clock = _last_clocks(parsed)
    players = (
        _build_player(tags, "White", white_clock),
        _build_player(tags, "Black", black_clock),
    )

    fen_history = tuple(replay_fens(parsed.moves))
    status, winner = classify_status(parsed)
    sans = tuple(move.san for move in parsed.moves)
    movetext = format_movetext(parsed.moves, tags.get("Result") or parsed.result_token)

    game = Game(
        players=players,
        status=status,
        fen_history=fen_history,
        moves=" ".join(sans),
        move_history=sans,
        winner=winner,
        id=_game_id(tags),
        name=f"{players[0].name} - {players[1].name}",
        pgn="\n\n".join(part for part in (serialize_tags(tags), movetext) if part),
        white_clock=white_clock,
        black_clock=black_clock,
    )
    LOGGER.debug(
        "Assembled %s – %d plies, status=%s", game.name, len(sans), status.value
    )
    return game
