# ==============================================================================
# pgn_grammar.py  –  PGN document → ParsedGame records
#
# A document is a run of game records. Each record is:
#   • zero or more tag lines      [Key "Value"]
#   • movetext                    1. e4 e5 2. Nf3 {comment} Nc6 ...
#   • ended by a result token     1-0 | 0-1 | 1/2-1/2 | *
#     or by the next tag block
#
# Bad records (malformed tag line, unknown movetext token) are skipped with
# a warning; the rest of the document is still parsed. A malformed line or
# token at the very end of the document is treated as a truncated tail and
# dropped on its own, since live streams are cut off mid-line.
# ==============================================================================

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from roundwatch.models import Color, ParsedGame, ParsedMove, PieceType
from roundwatch.utils.logging_utils import setup_logger

LOGGER = setup_logger("pgn_grammar", level=logging.INFO)

RESULT_TOKENS = frozenset({"1-0", "0-1", "1/2-1/2", "*"})

_TAG_PAIR_RE = re.compile(r'\[\s*([A-Za-z0-9_]+)\s+"((?:[^"\\]|\\.)*)"\s*\]')
_MOVE_NUMBER_RE = re.compile(r"^(\d+)(\.+)(.*)$")
_NAG_RE = re.compile(r"^\$\d+$")
_SAN_RE = re.compile(
    r"^(?P<piece>[KQRBN])?"
    r"(?P<from_file>[a-h])?(?P<from_rank>[1-8])?"
    r"(?P<capture>x)?"
    r"(?P<dest>[a-h][1-8])"
    r"(?:=?(?P<promotion>[QRBN]))?"
    r"(?P<suffix>[+#])?"
    r"(?:[!?]{1,2})?$"
)
_CASTLE_RE = re.compile(
    r"^(?P<castle>O-O-O|O-O|0-0-0|0-0)(?P<suffix>[+#])?(?:[!?]{1,2})?$"
)
_CLOCK_RE = re.compile(r"\[%clk\s+(\d+):(\d{1,2}):(\d{1,2})(?:\.\d+)?\]")

# Lexeme kinds
_TAG = "tag"
_COMMENT = "comment"
_OPEN = "open"
_CLOSE = "close"
_TOKEN = "token"


# ------------------------------------------------------------------------------
# Tag pairs
# ------------------------------------------------------------------------------


def _unescape(value: str) -> str:
    return re.sub(r'\\(["\\])', r"\1", value)


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def parse_tag_line(line: str) -> Optional[List[Tuple[str, str]]]:
    """
    Parse one tag line into (key, value) pairs.

    Returns None when the line is not made only of well-formed tag pairs.

    Example
    -------
    '[White "Carlsen, Magnus"]' → [("White", "Carlsen, Magnus")]
    """
    pairs: List[Tuple[str, str]] = []
    pos = 0
    for match in _TAG_PAIR_RE.finditer(line):
        if line[pos : match.start()].strip():
            return None
        pairs.append((match.group(1), _unescape(match.group(2))))
        pos = match.end()

    if not pairs or line[pos:].strip():
        return None
    return pairs


def serialize_tags(tags: Dict[str, str]) -> str:
    """Render tags back to PGN tag lines, in their original order."""
    return "\n".join(f'[{key} "{_escape(value)}"]' for key, value in tags.items())


def format_movetext(
    moves: Sequence[ParsedMove], result_token: Optional[str] = None
) -> str:
    """Numbered movetext for `moves`, optionally closed by a result token."""
    parts: List[str] = []
    for move in moves:
        if move.ply % 2 == 0:
            parts.append(f"{move.ply // 2 + 1}.")
        parts.append(move.san)
    if result_token:
        parts.append(result_token)
    return " ".join(parts)


# ------------------------------------------------------------------------------
# SAN
# ------------------------------------------------------------------------------


def parse_san(
    token: str, ply: int, move_number: Optional[int] = None
) -> Optional[ParsedMove]:
    """
    Parse a single SAN token into a ParsedMove, or None if it is not SAN.

    The side to move follows from `ply` alone (even → white).
    """
    color = Color.WHITE if ply % 2 == 0 else Color.BLACK

    castle = _CASTLE_RE.match(token)
    if castle:
        suffix = castle.group("suffix")
        return ParsedMove(
            san=token,
            color=color,
            ply=ply,
            piece=PieceType.KING,
            castle=castle.group("castle").replace("0", "O"),
            check=suffix == "+",
            mate=suffix == "#",
            move_number=move_number,
        )

    match = _SAN_RE.match(token)
    if match is None:
        return None

    promotion = match.group("promotion")
    suffix = match.group("suffix")
    return ParsedMove(
        san=token,
        color=color,
        ply=ply,
        piece=PieceType.from_san_letter(match.group("piece")),
        destination=match.group("dest"),
        from_file=match.group("from_file"),
        from_rank=match.group("from_rank"),
        capture=match.group("capture") is not None,
        check=suffix == "+",
        mate=suffix == "#",
        promotion=PieceType.from_san_letter(promotion) if promotion else None,
        move_number=move_number,
    )


def parse_clock(comment: str) -> Optional[int]:
    """Seconds from a `[%clk h:mm:ss]` comment command, else None."""
    match = _CLOCK_RE.search(comment)
    if match is None:
        return None
    hours, minutes, seconds = (int(part) for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds


# ------------------------------------------------------------------------------
# Lexer
# ------------------------------------------------------------------------------


def _lex(document: str) -> Iterator[Tuple[str, str, bool]]:
    """
    Yield (kind, text, at_tail) lexemes.

    `at_tail` is True when nothing but whitespace follows the lexeme.
    """
    total = len(document)
    content_end = len(document.rstrip())
    idx = 0
    line_start = True

    while idx < total:
        ch = document[idx]

        if ch == "\n":
            line_start = True
            idx += 1
            continue

        if ch.isspace():
            idx += 1
            continue

        if line_start and ch in "[%":
            end = document.find("\n", idx)
            if end < 0:
                end = total
            if ch == "[":
                yield _TAG, document[idx:end].strip(), end >= content_end
            idx = end
            continue

        line_start = False

        if ch == "{":
            end = document.find("}", idx + 1)
            if end < 0:
                # Unterminated comment runs to the end of the document
                yield _COMMENT, document[idx + 1 :], True
                idx = total
            else:
                yield _COMMENT, document[idx + 1 : end], end + 1 >= content_end
                idx = end + 1
            continue

        if ch == ";":
            end = document.find("\n", idx + 1)
            if end < 0:
                end = total
            yield _COMMENT, document[idx + 1 : end], end >= content_end
            idx = end
            continue

        if ch == "(":
            yield _OPEN, ch, idx + 1 >= content_end
            idx += 1
            continue

        if ch == ")":
            yield _CLOSE, ch, idx + 1 >= content_end
            idx += 1
            continue

        end = idx
        while (
            end < total
            and not document[end].isspace()
            and document[end] not in "{}();"
        ):
            end += 1
        yield _TOKEN, document[idx:end], end >= content_end
        idx = end


# ------------------------------------------------------------------------------
# Record assembly
# ------------------------------------------------------------------------------


class _RecordBuilder:
    """Accumulates one game record; remembers why it is broken, if it is."""

    def __init__(self) -> None:
        self.tags: Dict[str, str] = {}
        self.moves: List[ParsedMove] = []
        self.result: Optional[str] = None
        self.error: Optional[str] = None
        self.in_movetext = False
        self.depth = 0
        self._pending_number: Optional[int] = None

    def is_empty(self) -> bool:
        return not self.tags and not self.moves

    def fail(self, reason: str) -> None:
        if self.error is None:
            self.error = reason

    def add_tag_line(self, line: str, at_tail: bool) -> None:
        pairs = parse_tag_line(line)
        if pairs is None:
            if at_tail:
                LOGGER.debug("Dropping truncated tag line %r", line)
            else:
                self.fail(f"malformed tag line {line!r}")
            return
        for key, value in pairs:
            self.tags[key] = value  # last wins

    def add_comment(self, text: str) -> None:
        if not self.moves:
            return
        clock = parse_clock(text)
        if clock is not None:
            self.moves[-1] = replace(self.moves[-1], clock=clock)

    def add_token(self, token: str, at_tail: bool) -> None:
        self.in_movetext = True

        if _NAG_RE.match(token):
            return

        number = _MOVE_NUMBER_RE.match(token)
        if number:
            self._pending_number = int(number.group(1))
            token = number.group(3)
            if not token:
                return

        token = token.lstrip(".")
        if not token:
            return

        move = parse_san(token, len(self.moves), self._pending_number)
        if move is None:
            if at_tail:
                LOGGER.debug("Dropping truncated movetext token %r", token)
            else:
                self.fail(f"unrecognised movetext token {token!r}")
            return

        self.moves.append(move)
        self._pending_number = None

    def build(self) -> ParsedGame:
        return ParsedGame(tags=self.tags, moves=self.moves, result_token=self.result)


def _finish(record: _RecordBuilder, games: List[ParsedGame], index: int) -> None:
    """Append the record to `games` unless it is empty or broken."""
    if record.depth > 0:
        record.fail("unterminated variation")
    if record.error is not None:
        LOGGER.warning("Skipping PGN record #%d – %s", index, record.error)
        return
    if record.is_empty():
        return
    games.append(record.build())


# ------------------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------------------


def parse_pgn(document: str) -> List[ParsedGame]:
    """
    Parse a PGN document into game records, in document order.

    Never raises on document content: malformed records are skipped and an
    empty document yields an empty list.
    """
    games: List[ParsedGame] = []
    document = (document or "").lstrip("\ufeff")
    if not document.strip():
        return games

    record = _RecordBuilder()
    index = 1

    for kind, text, at_tail in _lex(document):
        if kind == _TAG:
            if record.in_movetext:
                _finish(record, games, index)
                record, index = _RecordBuilder(), index + 1
            record.add_tag_line(text, at_tail)
            continue

        if kind == _OPEN:
            record.in_movetext = True
            record.depth += 1
            continue

        if kind == _CLOSE:
            record.depth = max(0, record.depth - 1)
            continue

        if record.depth > 0:
            continue  # variations are not part of the mainline

        if kind == _COMMENT:
            record.add_comment(text)
            continue

        if text in RESULT_TOKENS:
            record.result = text
            _finish(record, games, index)
            record, index = _RecordBuilder(), index + 1
            continue

        record.add_token(text, at_tail)

    _finish(record, games, index)

    LOGGER.debug("Parsed %d game record(s)", len(games))
    return games
