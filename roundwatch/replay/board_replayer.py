# ==============================================================================
# board_replayer.py  –  Turn parsed moves into one FEN per ply
#
# The board is a flat 64-slot list, index 0 = a8 … 63 = h1 (rank 8 first).
# Move resolution is simple:
#   • the first piece of the mover's colour and SAN type found scanning
#     rank 8 → 1, file a → h, moves to the destination
#   • the destination's occupant is overwritten
#   • no legality, disambiguation, castling, en passant or promotion handling
# A move that cannot be resolved leaves the board unchanged ("stall").
# ==============================================================================

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from roundwatch.models import Color, ParsedMove, Piece, PieceType
from roundwatch.utils.logging_utils import setup_logger

LOGGER = setup_logger("board_replayer", level=logging.INFO)

FEN_PLACEHOLDER = "w KQkq - 0 1"
STARTING_FEN = f"rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR {FEN_PLACEHOLDER}"

FILES = "abcdefgh"
_BACK_RANK = (
    PieceType.ROOK,
    PieceType.KNIGHT,
    PieceType.BISHOP,
    PieceType.QUEEN,
    PieceType.KING,
    PieceType.BISHOP,
    PieceType.KNIGHT,
    PieceType.ROOK,
)

Board = List[Optional[Piece]]


# ------------------------------------------------------------------------------
# Square helpers
# ------------------------------------------------------------------------------


def square_index(name: str) -> Optional[int]:
    """'a8' → 0, 'h1' → 63; None for anything that is not a square."""
    if len(name) != 2 or name[0] not in FILES or name[1] not in "12345678":
        return None
    row = 8 - int(name[1])
    col = FILES.index(name[0])
    return row * 8 + col


def square_name(index: int) -> str:
    row, col = divmod(index, 8)
    return f"{FILES[col]}{8 - row}"


# ------------------------------------------------------------------------------
# Board construction + FEN projection
# ------------------------------------------------------------------------------


def starting_board() -> Board:
    """Return a fresh board in the standard opening position."""
    board: Board = [None] * 64
    for col, kind in enumerate(_BACK_RANK):
        board[col] = Piece(Color.BLACK, kind)
        board[8 + col] = Piece(Color.BLACK, PieceType.PAWN)
        board[48 + col] = Piece(Color.WHITE, PieceType.PAWN)
        board[56 + col] = Piece(Color.WHITE, kind)
    return board


def board_to_fen(board: Sequence[Optional[Piece]]) -> str:
    """Serialise a board to FEN; fields 2–6 are the fixed placeholder."""
    rows: List[str] = []
    for row in range(8):
        empty = 0
        text = ""
        for col in range(8):
            piece = board[row * 8 + col]
            if piece is None:
                empty += 1
                continue
            if empty:
                text += str(empty)
                empty = 0
            text += piece.symbol()
        if empty:
            text += str(empty)
        rows.append(text)
    return f"{'/'.join(rows)} {FEN_PLACEHOLDER}"


# ------------------------------------------------------------------------------
# Replayer
# ------------------------------------------------------------------------------


class BoardReplayer:
    """Owns one board and applies parsed moves to it, one ply at a time."""

    def __init__(self) -> None:
        self.board: Board = starting_board()

    def reset(self) -> None:
        self.board = starting_board()

    def fen(self) -> str:
        return board_to_fen(self.board)

    def _find_source(self, color: Color, kind: PieceType) -> Optional[int]:
        for index, piece in enumerate(self.board):
            if piece is not None and piece.color is color and piece.kind is kind:
                return index
        return None

    def apply_move(self, move: ParsedMove) -> bool:
        """
        Apply one move in place.

        Returns
        -------
        bool
            False when the move stalled (board unchanged).
        """
        target = square_index(move.destination) if move.destination else None
        if target is None:
            LOGGER.debug("Stall on ply %d (%s): no destination", move.ply, move.san)
            return False

        source = self._find_source(move.color, move.piece)
        if source is None:
            LOGGER.debug(
                "Stall on ply %d (%s): no %s %s on the board",
                move.ply,
                move.san,
                move.color.value,
                move.piece.name.lower(),
            )
            return False

        piece = self.board[source]
        self.board[source] = None
        self.board[target] = piece
        return True

    def apply(self, moves: Iterable[ParsedMove]) -> List[str]:
        """
        Replay `moves` from the starting position.

        Returns
        -------
        List[str]
            The starting FEN followed by one FEN per move. Stalled moves repeat
            the previous FEN, so the length is always ``len(moves) + 1``.
        """
        self.reset()
        history = [self.fen()]
        for move in moves:
            self.apply_move(move)
            history.append(self.fen())
        return history


def replay_fens(moves: Iterable[ParsedMove]) -> List[str]:
    """Functional wrapper: replay `moves` on a fresh board."""
    return BoardReplayer().apply(moves)
