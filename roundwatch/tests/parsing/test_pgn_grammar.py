# ==============================================================================
# test_pgn_grammar.py  –  Tag pairs, movetext tokens, record boundaries
# ==============================================================================

import logging

import pytest

from roundwatch.models import Color, PieceType
from roundwatch.parsing.pgn_grammar import (
    format_movetext,
    parse_clock,
    parse_pgn,
    parse_san,
    parse_tag_line,
    serialize_tags,
)

SCHOLARS_MATE = (
    '[White "A"]\n[Black "B"]\n[Result "1-0"]\n\n'
    "1. e4 e5 2. Bc4 Nc6 3. Qh5 Nf6 4. Qxf7#"
)


def _sans(game):
    return [move.san for move in game.moves]


# ------------------------------------------------------------------------------
# Documents
# ------------------------------------------------------------------------------
@pytest.mark.parametrize("document", ["", "   ", "\n\n\n"])
def test_empty_document_yields_no_games(document):
    assert parse_pgn(document) == []


def test_scholars_mate():
    games = parse_pgn(SCHOLARS_MATE)

    assert len(games) == 1
    game = games[0]
    assert game.tags == {"White": "A", "Black": "B", "Result": "1-0"}
    assert _sans(game) == ["e4", "e5", "Bc4", "Nc6", "Qh5", "Nf6", "Qxf7#"]
    assert len(game.moves) == 7
    assert game.moves[-1].mate is True
    assert game.result_token is None


def test_scholars_mate_move_details():
    game = parse_pgn(SCHOLARS_MATE)[0]

    colors = [move.color for move in game.moves]
    assert colors == [Color.WHITE, Color.BLACK] * 3 + [Color.WHITE]
    numbers = [move.move_number for move in game.moves]
    assert numbers == [1, None, 2, None, 3, None, 4]
    assert [move.ply for move in game.moves] == list(range(7))
    last = game.moves[-1]
    assert last.piece is PieceType.QUEEN
    assert last.capture is True
    assert last.destination == "f7"


def test_comments_nags_and_variations_are_skipped():
    document = (
        '[Event "Test"]\n\n'
        "1. e4 {best by test} e5 $1 2. Nf3 (2. f4 exf4 3. Bc4) Nc6 ; aside\n"
        "3. Bb5 {a\nmulti-line\ncomment} a6 *"
    )
    game = parse_pgn(document)[0]

    assert _sans(game) == ["e4", "e5", "Nf3", "Nc6", "Bb5", "a6"]
    assert game.result_token == "*"


def test_result_inside_variation_does_not_end_record():
    game = parse_pgn("1. e4 (1. d4 *) e5 *")[0]
    assert _sans(game) == ["e4", "e5"]


def test_black_move_without_number_and_glued_numbers():
    game = parse_pgn("1.e4 e5 2.Nf3 2...Nc6 3. Bb5")[0]

    assert _sans(game) == ["e4", "e5", "Nf3", "Nc6", "Bb5"]
    assert [move.color for move in game.moves] == [
        Color.WHITE,
        Color.BLACK,
        Color.WHITE,
        Color.BLACK,
        Color.WHITE,
    ]
    assert game.moves[3].move_number == 2


def test_escape_lines_are_ignored():
    game = parse_pgn('[White "A"]\n% engine output\n1. d4 d5 *')[0]
    assert _sans(game) == ["d4", "d5"]


def test_clock_comments_attach_to_previous_move():
    document = "1. e4 { [%clk 1:30:00] } e5 { [%clk 1:29:55] } 2. Nf3 *"
    moves = parse_pgn(document)[0].moves

    assert [move.clock for move in moves] == [5400, 5395, None]


# ------------------------------------------------------------------------------
# Record boundaries
# ------------------------------------------------------------------------------
def test_games_returned_in_document_order():
    document = (
        '[White "A"]\n[Black "B"]\n\n1. e4 e5 1-0\n\n'
        '[White "C"]\n[Black "D"]\n\n1. d4 d5 1/2-1/2\n'
    )
    games = parse_pgn(document)

    assert [game.tags["White"] for game in games] == ["A", "C"]
    assert [game.result_token for game in games] == ["1-0", "1/2-1/2"]


def test_next_tag_block_ends_record_without_result():
    document = '[White "A"]\n\n1. e4 e5\n[White "C"]\n\n1. c4\n'
    games = parse_pgn(document)

    assert len(games) == 2
    assert _sans(games[0]) == ["e4", "e5"]
    assert _sans(games[1]) == ["c4"]


def test_movetext_after_result_starts_tagless_record():
    games = parse_pgn("1. e4 e5 1-0 1. d4 d5 0-1")

    assert len(games) == 2
    assert games[1].tags == {}
    assert _sans(games[1]) == ["d4", "d5"]


def test_record_without_tags_is_still_parsed():
    games = parse_pgn("1. e4 c5 *")
    assert len(games) == 1
    assert games[0].tags == {}


def test_tags_without_moves_are_kept():
    games = parse_pgn('[White "A"]\n[Black "B"]\n\n*')
    assert len(games) == 1
    assert games[0].moves == []


def test_malformed_second_record_is_skipped(caplog):
    document = (
        '[White "A"]\n[Black "B"]\n[Result "1-0"]\n\n1. e4 e5 1-0\n\n'
        '[White "C" broken\n[Black "D"]\n\n1. d4 d5 *\n'
    )
    with caplog.at_level(logging.WARNING):
        games = parse_pgn(document)

    assert len(games) == 1
    assert games[0].tags["White"] == "A"
    assert "Skipping PGN record" in caplog.text


def test_unknown_token_skips_only_its_record():
    document = '[White "A"]\n\n1. e4 @@ e5 *\n\n[White "B"]\n\n1. d4 *\n'
    games = parse_pgn(document)

    assert len(games) == 1
    assert games[0].tags["White"] == "B"


def test_unterminated_variation_skips_record():
    assert parse_pgn('[White "A"]\n\n1. e4 (1. d4 d5') == []


def test_truncated_tail_token_is_dropped():
    games = parse_pgn('[White "A"]\n\n1. e4 e5 2. Nf')

    assert len(games) == 1
    assert _sans(games[0]) == ["e4", "e5"]


def test_truncated_tail_tag_is_dropped():
    games = parse_pgn('[White "A"]\n[Black "B')

    assert len(games) == 1
    assert games[0].tags == {"White": "A"}


# ------------------------------------------------------------------------------
# Tag pairs
# ------------------------------------------------------------------------------
def test_tag_line_with_escaped_quotes():
    assert parse_tag_line(r'[Event "The \"Big\" Open"]') == [
        ("Event", 'The "Big" Open')
    ]


def test_several_tags_on_one_line():
    assert parse_tag_line('[White "A"] [Black "B"]') == [("White", "A"), ("Black", "B")]


@pytest.mark.parametrize(
    "line",
    ['[White "A"', "[White A]", '[White "A"] trailing', "[]", '["A"]'],
)
def test_malformed_tag_lines(line):
    assert parse_tag_line(line) is None


def test_duplicate_tag_last_wins_and_keeps_order():
    game = parse_pgn('[White "A"]\n[Black "B"]\n[White "C"]\n\n1. e4 *')[0]

    assert game.tags["White"] == "C"
    assert list(game.tags) == ["White", "Black"]


def test_tag_keys_are_case_sensitive():
    game = parse_pgn('[white "a"]\n[White "A"]\n\n*')[0]
    assert game.tags == {"white": "a", "White": "A"}


def test_serialize_tags_escapes_values():
    tags = {"Event": 'The "Big" Open', "Site": "C:\\chess"}
    assert serialize_tags(tags) == (
        '[Event "The \\"Big\\" Open"]\n[Site "C:\\\\chess"]'
    )


def test_serialized_tags_parse_back():
    tags = {"Event": 'The "Big" Open', "White": "A"}
    assert parse_pgn(serialize_tags(tags) + "\n\n*")[0].tags == tags


def test_unescaped_backslash_is_kept():
    pairs = parse_tag_line(r'[Site "C:\chess"]')

    assert pairs == [("Site", "C:\\chess")]
    assert parse_tag_line(serialize_tags(dict(pairs))) == pairs


def test_header_only_block_merges_into_next_record():
    # Blank lines are gone by the time a streamed document is parsed, so a
    # second tag block without movetext in between is read as duplicate tags.
    document = (
        '[White "A"]\n[Black "B"]\n[WhiteElo "2700"]\n\n'
        '[White "C"]\n[Black "D"]\n\n1. d4 *'
    )
    games = parse_pgn(document)

    assert len(games) == 1
    assert games[0].tags == {"White": "C", "Black": "D", "WhiteElo": "2700"}


def test_leading_byte_order_mark_is_ignored():
    games = parse_pgn('\ufeff[White "A"]\n[Black "B"]\n\n1. e4 *')

    assert len(games) == 1
    assert games[0].tags == {"White": "A", "Black": "B"}
    assert _sans(games[0]) == ["e4"]


# ------------------------------------------------------------------------------
# SAN
# ------------------------------------------------------------------------------
def test_parse_san_piece_move_with_disambiguation():
    move = parse_san("Nbxd7+", 2, move_number=2)

    assert move.color is Color.WHITE
    assert move.piece is PieceType.KNIGHT
    assert move.from_file == "b"
    assert move.from_rank is None
    assert move.capture is True
    assert move.destination == "d7"
    assert move.check is True
    assert move.mate is False
    assert move.move_number == 2


def test_parse_san_promotion_with_mate():
    move = parse_san("exd8=Q#", 1)

    assert move.color is Color.BLACK
    assert move.piece is PieceType.PAWN
    assert move.from_file == "e"
    assert move.promotion is PieceType.QUEEN
    assert move.mate is True


def test_parse_san_full_square_disambiguation():
    move = parse_san("Qh4e1", 0)
    assert (move.from_file, move.from_rank, move.destination) == ("h", "4", "e1")


@pytest.mark.parametrize(
    "token,castle",
    [("O-O", "O-O"), ("O-O-O+", "O-O-O"), ("0-0", "O-O"), ("0-0-0", "O-O-O")],
)
def test_parse_san_castling(token, castle):
    move = parse_san(token, 0)
    assert move.castle == castle
    assert move.piece is PieceType.KING
    assert move.destination is None


@pytest.mark.parametrize("token", ["e4!", "e4?!", "Nf3!!", "Qxf7#?"])
def test_parse_san_accepts_annotation_suffixes(token):
    assert parse_san(token, 0) is not None


@pytest.mark.parametrize("token", ["Z0", "--", "e9", "Kx", "hello", "P@e4"])
def test_parse_san_rejects_non_san(token):
    assert parse_san(token, 0) is None


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------
@pytest.mark.parametrize(
    "comment,expected",
    [
        ("[%clk 0:03:00]", 180),
        (" [%eval 0.3] [%clk 1:00:05.4] ", 3605),
        ("nice", None),
    ],
)
def test_parse_clock(comment, expected):
    assert parse_clock(comment) == expected


def test_format_movetext_numbers_white_moves():
    moves = parse_pgn("1. e4 e5 2. Nf3")[0].moves
    assert format_movetext(moves, "*") == "1. e4 e5 2. Nf3 *"
    assert format_movetext([]) == ""
