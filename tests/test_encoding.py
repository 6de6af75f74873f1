from math import comb
import random

import pytest

from arcanum.encoding import (
    FILE_TO_FILE,
    FLAP,
    Encoding,
    TableEntry,
    binomial,
    encode,
    init_enc_info,
    leading_pawn,
    subfactor,
)


def _kqvk():
    entry = TableEntry(num=3, kk_enc=False)
    ei, size = init_enc_info(entry, bytes([0, 6, 14, 5]), 0, 0, Encoding.PIECE)
    return entry, ei, size


def _kpvk(t, enc):
    entry = TableEntry(num=3, has_pawns=True, pawns=[1, 0])
    ei, size = init_enc_info(entry, bytes([0, 1, 6, 14]), 0, t, enc)
    return entry, ei, size


def test_binomial_matches_comb():
    for k in range(7):
        for n in range(64):
            assert binomial(k, n) == comb(n, k)


def test_binomial_rejects_negative():
    with pytest.raises(ValueError):
        binomial(1, -3)


def test_subfactor_counts_placements():
    for k in range(1, 7):
        for n in range(k, 64):
            assert subfactor(k, n) == comb(n, k)


def test_piece_table_size():
    _, ei, size = _kqvk()
    assert size == 31332
    assert ei.norm == [3, 0, 0]
    assert ei.factor[0] == 1


def test_kk_table_layout():
    entry = TableEntry(num=4, kk_enc=True)
    ei, size = init_enc_info(entry, bytes([0, 6, 14, 5, 5]), 0, 0, Encoding.PIECE)
    assert ei.norm == [2, 0, 2, 0]
    assert size == 462 * comb(62, 2)
    assert ei.factor[2] == 462


def test_high_nibble_layout():
    entry = TableEntry(num=3)
    data = bytes([0x10, 0x6A, 0xEB, 0x5C])
    ei, _ = init_enc_info(entry, data, 4, 0, Encoding.PIECE)
    assert ei.pieces == [b >> 4 for b in data[1:]]


def test_order_does_not_change_size():
    entry = TableEntry(num=4)
    ei0, size0 = init_enc_info(entry, bytes([0, 6, 14, 5, 4]), 0, 0, Encoding.PIECE)
    ei1, size1 = init_enc_info(entry, bytes([1, 6, 14, 5, 4]), 0, 0, Encoding.PIECE)
    assert size0 == size1
    assert ei0.factor != ei1.factor


def test_piece_index_in_range_and_symmetric():
    entry, ei, size = _kqvk()
    rng = random.Random(7)
    for _ in range(2000):
        squares = rng.sample(range(64), 3)
        idx = encode(squares, ei, entry, Encoding.PIECE)
        assert 0 <= idx < size
        assert encode([s ^ 7 for s in squares], ei, entry, Encoding.PIECE) == idx
        assert encode([s ^ 0x38 for s in squares], ei, entry, Encoding.PIECE) == idx


def test_encode_does_not_modify_input():
    entry, ei, _ = _kqvk()
    squares = [63, 12, 40]
    encode(squares, ei, entry, Encoding.PIECE)
    assert squares == [63, 12, 40]


@pytest.mark.parametrize("t", [0, 3])
def test_file_encoding_is_bijective(t):
    entry, ei, size = _kpvk(t, Encoding.FILE)
    indices = set()
    for rank in range(1, 7):
        pawn = rank * 8 + t
        for wk in range(64):
            if wk == pawn:
                continue
            for bk in range(64):
                if bk in (pawn, wk):
                    continue
                idx = encode([pawn, wk, bk], ei, entry, Encoding.FILE)
                assert 0 <= idx < size
                indices.add(idx)
    assert len(indices) == size


def test_rank_encoding_is_bijective():
    t = 0
    entry, ei, size = _kpvk(t, Encoding.RANK)
    indices = set()
    for file in range(4):
        pawn = (t + 1) * 8 + file
        for wk in range(64):
            if wk == pawn:
                continue
            for bk in range(64):
                if bk in (pawn, wk):
                    continue
                indices.add(encode([pawn, wk, bk], ei, entry, Encoding.RANK))
    assert len(indices) == size
    assert max(indices) == size - 1


def test_pawn_index_mirrors_files():
    entry, ei, _ = _kpvk(1, Encoding.FILE)
    squares = [9, 30, 50]
    mirrored = [s ^ 7 for s in squares]
    assert encode(squares, ei, entry, Encoding.FILE) == encode(
        mirrored, ei, entry, Encoding.FILE
    )


def test_leading_pawn_picks_lowest_flap():
    entry = TableEntry(num=4, has_pawns=True, pawns=[2, 0])
    squares = [13, 9, 4, 60]
    group = leading_pawn(squares, entry, Encoding.FILE)
    assert sorted(squares[:2]) == [9, 13]
    assert all(FLAP[0][squares[0]] <= FLAP[0][sq] for sq in squares[:2])
    assert group == FILE_TO_FILE[squares[0] & 7]


def test_leading_pawn_rank_group():
    entry = TableEntry(num=3, has_pawns=True, pawns=[1, 0])
    squares = [33, 4, 60]
    assert leading_pawn(squares, entry, Encoding.RANK) == (33 - 8) >> 3


def test_leading_pawn_rejects_piece_encoding():
    entry = TableEntry(num=3, has_pawns=True, pawns=[1, 0])
    with pytest.raises(ValueError):
        leading_pawn([8, 4, 60], entry, Encoding.PIECE)


def test_encode_needs_all_squares():
    entry, ei, _ = _kqvk()
    with pytest.raises(ValueError):
        encode([0, 10], ei, entry, Encoding.PIECE)


def test_adjacent_kings_have_no_index():
    entry = TableEntry(num=4, kk_enc=True)
    ei, _ = init_enc_info(entry, bytes([0, 6, 14, 5, 5]), 0, 0, Encoding.PIECE)
    with pytest.raises(ValueError):
        encode([0, 1, 30, 40], ei, entry, Encoding.PIECE)