# ==============================================================================
# models.py  –  Value types shared by the round pipeline
#
#   ParsedMove / ParsedGame  → output of the PGN grammar
#   Piece                    → occupant of a replay board square
#   Player / Game            → what presentation layers consume
#   BroadcastRound           → round metadata from the broadcast API
# ==============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Color(str, Enum):
    WHITE = "white"
    BLACK = "black"


class PieceType(str, Enum):
    PAWN = "p"
    KNIGHT = "n"
    BISHOP = "b"
    ROOK = "r"
    QUEEN = "q"
    KING = "k"

    @classmethod
    def from_san_letter(cls, letter: Optional[str]) -> "PieceType":
        """Map a SAN piece letter (K, Q, R, B, N) to a type; None → pawn."""
        if not letter:
            return cls.PAWN
        return cls(letter.lower())


class GameStatus(str, Enum):
    STARTED = "started"
    PLAYING = "playing"
    ABORTED = "aborted"
    MATE = "mate"
    DRAW = "draw"
    RESIGN = "resign"
    STALEMATE = "stalemate"
    TIMEOUT = "timeout"
    OUT_OF_TIME = "outoftime"


@dataclass(frozen=True)
class Piece:
    color: Color
    kind: PieceType

    def symbol(self) -> str:
        """FEN letter: uppercase for white, lowercase for black."""
        letter = self.kind.value
        return letter.upper() if self.color is Color.WHITE else letter


@dataclass(frozen=True)
class ParsedMove:
    """One ply of movetext, as written."""

    san: str
    color: Color
    ply: int
    piece: PieceType = PieceType.PAWN
    destination: Optional[str] = None
    from_file: Optional[str] = None
    from_rank: Optional[str] = None
    capture: bool = False
    check: bool = False
    mate: bool = False
    promotion: Optional[PieceType] = None
    castle: Optional[str] = None
    move_number: Optional[int] = None
    clock: Optional[int] = None


@dataclass
class ParsedGame:
    """Tag pairs plus the mainline moves of one PGN game record."""

    tags: Dict[str, str] = field(default_factory=dict)
    moves: List[ParsedMove] = field(default_factory=list)
    result_token: Optional[str] = None


@dataclass(frozen=True)
class Player:
    name: str
    rating: int = 0
    title: Optional[str] = None
    fide_id: Optional[int] = None
    federation: Optional[str] = None
    clock: Optional[int] = None


@dataclass(frozen=True)
class Game:
    """A fully assembled game. Index 0 of `fen_history` is the start position."""

    players: Tuple[Player, Player]
    status: GameStatus
    fen_history: Tuple[str, ...]
    moves: str = ""
    move_history: Tuple[str, ...] = ()
    winner: Optional[Color] = None
    id: Optional[str] = None
    name: Optional[str] = None
    pgn: str = ""
    white_clock: Optional[int] = None
    black_clock: Optional[int] = None

    @property
    def fen(self) -> str:
        return self.fen_history[-1]

    @property
    def current_move_index(self) -> int:
        return len(self.fen_history) - 1

    @property
    def last_move(self) -> Optional[str]:
        return self.move_history[-1] if self.move_history else None

    @property
    def white(self) -> Player:
        return self.players[0]

    @property
    def black(self) -> Player:
        return self.players[1]


@dataclass(frozen=True)
class BroadcastRound:
    id: str
    name: str = ""
    slug: Optional[str] = None
    url: Optional[str] = None
    starts_at: Optional[int] = None
    finished: bool = False
