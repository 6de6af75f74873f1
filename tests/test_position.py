import pytest

from arcanum.attacks import BLACK, WHITE
from arcanum.position import (
    PIECE_TO_CHAR,
    PRIME_WQUEEN,
    PieceType,
    Position,
    Promotion,
    calc_key_from_counts,
    calc_key_from_pieces,
    char_to_piece_type,
    make_move,
    move_from,
    move_promotes,
    move_to,
)

_FIELDS = {
    "p": "pawns",
    "n": "knights",
    "b": "bishops",
    "r": "rooks",
    "q": "queens",
    "k": "kings",
}


def sq(name):
    return (int(name[1]) - 1) * 8 + (ord(name[0]) - ord("a"))


def build(placement, turn=True, ep=0, rule50=0):
    boards = {name: 0 for name in ("white", "black", *_FIELDS.values())}
    for square, char in placement.items():
        bit = 1 << sq(square)
        boards["white" if char.isupper() else "black"] |= bit
        boards[_FIELDS[char.lower()]] |= bit
    return Position(**boards, rule50=rule50, ep=ep, turn=turn)


def start_position():
    placement = {}
    back = "rnbqkbnr"
    for i, file in enumerate("abcdefgh"):
        placement[f"{file}1"] = back[i].upper()
        placement[f"{file}2"] = "P"
        placement[f"{file}7"] = "p"
        placement[f"{file}8"] = back[i]
    return build(placement)


def piece_codes(position):
    codes = []
    for colour, offset in ((WHITE, 0), (BLACK, 8)):
        for piece in PieceType:
            bb = position.pieces_by_type(colour, piece)
            codes.extend([int(piece) | offset] * bin(bb).count("1"))
    return codes


def test_move_fields_round_trip():
    for promote in Promotion:
        for frm in (0, 12, 63):
            for to in (0, 28, 63):
                move = make_move(promote, frm, to)
                assert move_from(move) == frm
                assert move_to(move) == to
                assert move_promotes(move) == promote


def test_char_to_piece_type():
    for piece in PieceType:
        assert char_to_piece_type(PIECE_TO_CHAR[piece]) == piece
    assert char_to_piece_type("v") == 0


def test_bare_kings_key_is_zero():
    pos = build({"e1": "K", "e8": "k"})
    assert pos.calc_key(False) == 0
    assert pos.calc_key(True) == 0


def test_single_queen_key_is_prime():
    pos = build({"e1": "K", "e8": "k", "d1": "Q"})
    assert pos.calc_key(False) == PRIME_WQUEEN


def test_mirror_key_matches_swapped_colours():
    pos = build({"e1": "K", "e8": "k", "d1": "Q", "a7": "p", "h8": "r"})
    swapped = build({"e1": "k", "e8": "K", "d1": "q", "a7": "P", "h8": "R"})
    assert pos.calc_key(True) == swapped.calc_key(False)
    assert pos.calc_key(False) != pos.calc_key(True)


def test_key_from_counts_and_pieces_agree():
    pos = build({"e1": "K", "e8": "k", "d1": "Q", "c3": "N", "a7": "p", "h8": "r"})
    codes = piece_codes(pos)
    counts = [codes.count(code) for code in range(16)]
    for mirror in (False, True):
        assert calc_key_from_counts(counts, mirror) == pos.calc_key(mirror)
    assert calc_key_from_pieces(codes) == pos.calc_key(False)


def test_pieces_by_type_rejects_bad_arguments():
    pos = start_position()
    with pytest.raises(ValueError):
        pos.pieces_by_type(WHITE, 7)
    with pytest.raises(ValueError):
        pos.pieces_by_type(2, PieceType.PAWN)


def test_start_position_moves():
    pos = start_position()
    moves = pos.generate_moves()
    assert len(moves) == 20
    assert pos.generate_legal() == moves
    assert pos.generate_captures() == []
    assert not pos.is_check()


def test_captures_are_subset_of_moves():
    pos = build({"e1": "K", "e8": "k", "d4": "Q", "d7": "p", "g4": "n", "b6": "r"})
    captures = pos.generate_captures()
    assert captures
    assert set(captures) <= set(pos.generate_moves())
    assert all(pos.is_capture(move) for move in captures)


def test_promotion_moves_in_order():
    pos = build({"a7": "P", "e1": "K", "h8": "k"})
    promos = [m for m in pos.generate_moves() if move_from(m) == sq("a7")]
    assert [move_promotes(m) for m in promos] == [
        Promotion.QUEEN,
        Promotion.KNIGHT,
        Promotion.ROOK,
        Promotion.BISHOP,
    ]
    assert all(move_to(m) == sq("a8") for m in promos)


def test_do_move_promotion():
    pos = build({"a7": "P", "e1": "K", "h8": "k"}, rule50=7)
    after = pos.do_move(make_move(Promotion.QUEEN, sq("a7"), sq("a8")))
    assert after.queens == 1 << sq("a8")
    assert after.pawns == 0
    assert after.rule50 == 0
    assert after.turn is False


def test_double_push_sets_ep_only_with_adjacent_pawn():
    with_pawn = build({"e2": "P", "d4": "p", "e1": "K", "e8": "k"})
    after = with_pawn.do_move(make_move(0, sq("e2"), sq("e4")))
    assert after.ep == sq("e3")
    without = build({"e2": "P", "a4": "p", "e1": "K", "e8": "k"})
    assert without.do_move(make_move(0, sq("e2"), sq("e4"))).ep == 0


def test_en_passant_capture_removes_pawn():
    pos = build({"e2": "P", "d4": "p", "e1": "K", "e8": "k"})
    pos = pos.do_move(make_move(0, sq("e2"), sq("e4")))
    capture = make_move(0, sq("d4"), sq("e3"))
    assert capture in pos.generate_captures()
    assert pos.is_en_passant(capture)
    assert pos.is_capture(capture)
    after = pos.do_move(capture)
    assert after.pawns == 1 << sq("e3")
    assert after.white & after.pawns == 0


def test_rule50_counter():
    pos = build({"e1": "K", "e8": "k", "a1": "R", "a8": "r"}, rule50=5)
    quiet = pos.do_move(make_move(0, sq("a1"), sq("a2")))
    assert quiet.rule50 == pos.rule50 + 1
    capture = pos.do_move(make_move(0, sq("a1"), sq("a8")))
    assert capture.rule50 == 0
    assert capture.black == 1 << sq("e8")


def test_back_rank_mate():
    pos = build({"g1": "K", "f2": "P", "g2": "P", "h2": "P", "a1": "r", "h8": "k"})
    assert pos.is_check()
    assert pos.is_mate()
    assert pos.generate_legal() == []


def test_not_mate_without_check():
    pos = build({"g1": "K", "f2": "P", "g2": "P", "h2": "P", "a8": "r", "h8": "k"})
    assert not pos.is_check()
    assert not pos.is_mate()


def test_king_cannot_step_into_attack():
    pos = build({"e1": "K", "e8": "k", "d8": "r"})
    assert not pos.legal_move(make_move(0, sq("e1"), sq("d1")))
    assert pos.legal_move(make_move(0, sq("e1"), sq("f1")))
    assert all(move_to(m) != sq("d2") for m in pos.generate_legal())