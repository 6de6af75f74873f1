import pytest

from arcanum.attacks import (
    BLACK,
    WHITE,
    bishop_attacks,
    iter_bits,
    king_attacks,
    knight_attacks,
    lsb,
    pawn_attacks,
    popcount,
    queen_attacks,
    rook_attacks,
)

SQUARES = range(64)


@pytest.mark.parametrize("bb", [0, 1, 0x8000000000000001, 0xFF00FF00, (1 << 64) - 1])
def test_iter_bits_round_trip(bb):
    bits = list(iter_bits(bb))
    assert sum(1 << s for s in bits) == bb
    assert len(bits) == popcount(bb)
    assert bits == sorted(bits)


@pytest.mark.parametrize("square", [0, 9, 35, 63])
def test_lsb_of_single_bit(square):
    assert lsb(1 << square) == square
    assert lsb((1 << square) | (1 << 63)) == square


def test_lsb_of_empty_raises():
    with pytest.raises(ValueError):
        lsb(0)


def test_knight_and_king_relations_are_symmetric():
    for a in SQUARES:
        for b in SQUARES:
            assert bool(knight_attacks(a) >> b & 1) == bool(knight_attacks(b) >> a & 1)
            assert bool(king_attacks(a) >> b & 1) == bool(king_attacks(b) >> a & 1)


def test_corner_counts():
    assert popcount(knight_attacks(0)) == 2
    assert popcount(king_attacks(63)) == 3


def test_pawn_attacks_mirror_between_colours():
    for a in SQUARES:
        for b in SQUARES:
            white_hits = bool(pawn_attacks(a, WHITE) >> b & 1)
            black_hits = bool(pawn_attacks(b, BLACK) >> a & 1)
            assert white_hits == black_hits


def test_white_pawn_attacks_are_one_rank_up():
    for square in SQUARES:
        for target in iter_bits(pawn_attacks(square, WHITE)):
            assert target // 8 == square // 8 + 1
            assert abs(target % 8 - square % 8) == 1


def test_rook_on_empty_board_sees_whole_lines():
    for square in SQUARES:
        assert popcount(rook_attacks(square, 0)) == 14


def test_queen_is_rook_plus_bishop():
    occupied = 0x0042_0018_2400_8100
    for square in SQUARES:
        assert queen_attacks(square, occupied) == (
            rook_attacks(square, occupied) | bishop_attacks(square, occupied)
        )
        assert rook_attacks(square, occupied) & bishop_attacks(square, occupied) == 0


def test_blockers_limit_sliding_attacks():
    square = 27
    blocker = 1 << 43
    blocked = rook_attacks(square, blocker)
    free = rook_attacks(square, 0)
    assert blocked & blocker
    assert blocked | free == free
    assert not blocked & (1 << 51)


def test_bishop_blocker_included():
    # Bishop on d4 with a blocker on e5: the north-east ray stops at e5.
    attacks = bishop_attacks(27, 1 << 36)
    assert set(iter_bits(attacks)) == {0, 9, 18, 6, 13, 20, 34, 41, 48, 36}


def test_out_of_range_square_raises():
    with pytest.raises(ValueError):
        knight_attacks(64)
    with pytest.raises(ValueError):
        rook_attacks(-1, 0)