"""Index encoding of tablebase positions into table offsets.

A position is given as a list of squares, one per piece, in the order the
table header prescribes. The encoders fold the board by symmetry and turn the
squares into a single index into the compressed table.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from itertools import combinations
from math import comb
from typing import Any


class Encoding(IntEnum):
    """How the leading pieces of a table are folded into an index."""

    PIECE = 0
    FILE = 1
    RANK = 2


@dataclass
class EncInfo:
    """Encoding layout of one sub-table: piece order, groups and factors."""

    pieces: list[int]
    norm: list[int]
    factor: list[int]
    precomp: Any = None


@dataclass
class TableEntry:
    """A tablebase known by its material, with its loaded table data."""

    key: int = 0
    num: int = 0
    symmetric: bool = False
    has_pawns: bool = False
    has_dtm: bool = False
    has_dtz: bool = False
    kk_enc: bool = False
    pawns: list[int] = field(default_factory=lambda: [0, 0])
    dtm_loss_only: bool = False
    dtm_switched: bool = False
    ready: set[int] = field(default_factory=set)
    data: dict[int, Any] = field(default_factory=dict)
    enc_info: dict[int, list[EncInfo | None]] = field(default_factory=dict)
    dtm_map: Any = None
    dtm_map_idx: Any = None
    dtz_map: Any = None
    dtz_map_idx: Any = None
    dtz_flags: Any = None


def _fold(coord: int) -> int:
    """Distance of a file or rank from the nearer board edge."""
    return min(coord, 7 - coord)


def _off_diag(sq: int) -> int:
    rank, file = divmod(sq, 8)
    return (rank > file) - (rank < file)


OFF_DIAG = tuple(_off_diag(sq) for sq in range(64))

_QUADRANT_PAIRS = {pair: i for i, pair in enumerate(combinations(range(4), 2))}
_BOARD_PAIRS = {pair: i for i, pair in enumerate(combinations(range(8), 2))}


def _triangle(sq: int) -> int:
    rank, file = divmod(sq, 8)
    low, high = sorted((_fold(rank), _fold(file)))
    if low == high:
        return 6 + low
    return _QUADRANT_PAIRS[(low, high)]


def _lower(sq: int) -> int:
    low, high = sorted(divmod(sq, 8))
    if low == high:
        return 28 + low
    return _BOARD_PAIRS[(low, high)]


def _diag(sq: int) -> int:
    rank, file = divmod(sq, 8)
    if rank == file:
        return rank
    if rank + file == 7:
        return 8 + rank
    return 0


TRIANGLE = tuple(_triangle(sq) for sq in range(64))
FLIP_DIAG = tuple((sq % 8) * 8 + sq // 8 for sq in range(64))
LOWER = tuple(_lower(sq) for sq in range(64))
DIAG = tuple(_diag(sq) for sq in range(64))


def _pawn_rank_table(value: Callable[[int, int], int]) -> tuple[int, ...]:
    """Table over the board that is zero on the back ranks."""
    return tuple(
        value(rank, file) if 1 <= rank <= 6 else 0
        for rank in range(8)
        for file in range(8)
    )


FLAP = (
    _pawn_rank_table(lambda r, f: (r - 1) + 6 * _fold(f)),
    _pawn_rank_table(lambda r, f: (r - 1) * 4 + _fold(f)),
)

PAWN_TWIST = (
    _pawn_rank_table(lambda r, f: 12 * (3 - _fold(f)) + 2 * (6 - r) + int(f < 4)),
    _pawn_rank_table(lambda r, f: 8 * (6 - r) + 2 * (3 - _fold(f)) + int(f < 4)),
)


def _kings_touch(a: int, b: int) -> bool:
    ra, fa = divmod(a, 8)
    rb, fb = divmod(b, 8)
    return abs(ra - rb) <= 1 and abs(fa - fb) <= 1


def _build_kk_idx() -> tuple[tuple[int, ...], ...]:
    """Index of every legal king pair, first king folded into the a1-d1-d4 triangle."""
    table = [[-1] * 64 for _ in range(10)]
    both_on_diagonal: list[tuple[int, int]] = []
    code = 0
    for idx in range(10):
        first = next(sq for sq in range(28) if TRIANGLE[sq] == idx)
        for second in range(64):
            if _kings_touch(first, second):
                continue
            if not OFF_DIAG[first] and OFF_DIAG[second] > 0:
                continue
            if not OFF_DIAG[first] and not OFF_DIAG[second]:
                both_on_diagonal.append((idx, second))
            else:
                table[idx][second] = code
                code += 1
    for idx, second in both_on_diagonal:
        table[idx][second] = code
        code += 1
    return tuple(tuple(row) for row in table)


KK_IDX = _build_kk_idx()

FILE_TO_FILE = tuple(_fold(f) for f in range(8))

KK_SIZE = 462
PIECE_SIZE = 31332


def binomial(k: int, n: int) -> int:
    """Number of ways to choose k of n; zero when k exceeds n."""
    if k < 0 or n < 0:
        raise ValueError(f"binomial needs non-negative arguments, got k={k}, n={n}")
    return comb(n, k)


def subfactor(k: int, n: int) -> int:
    """Number of placements of k like pieces on n squares."""
    numerator = n
    denominator = 1
    for i in range(1, k):
        numerator *= n - i
        denominator *= i + 1
    return numerator // denominator


def _pawn_tables(
    twist: Sequence[int], group: int, square_of: Callable[[int], int]
) -> tuple[tuple[tuple[int, ...], ...], tuple[tuple[int, ...], ...]]:
    indices = []
    factors = []
    for count in range(6):
        row_idx = []
        row_factor = []
        total = 0
        for j in range(24):
            row_idx.append(total)
            total += binomial(count, twist[square_of(j)])
            if (j + 1) % group == 0:
                row_factor.append(total)
                total = 0
        indices.append(tuple(row_idx))
        factors.append(tuple(row_factor))
    return tuple(indices), tuple(factors)


_FILE_IDX, PAWN_FACTOR_FILE = _pawn_tables(
    PAWN_TWIST[0], 6, lambda j: (1 + j % 6) * 8 + j // 6
)
_RANK_IDX, PAWN_FACTOR_RANK = _pawn_tables(
    PAWN_TWIST[1], 4, lambda j: (1 + j // 4) * 8 + j % 4
)
PAWN_IDX = (_FILE_IDX, _RANK_IDX)


def leading_pawn(squares: list[int], entry: TableEntry, enc: Encoding) -> int:
    """Move the leading pawn to the front of squares and return its file or rank group.

    The list is reordered in place, as the caller fills in the remaining
    pieces after it.
    """
    if enc == Encoding.PIECE:
        raise ValueError("leading pawn needs a file or rank encoding")
    flap = FLAP[enc - 1]
    for i in range(1, entry.pawns[0]):
        if flap[squares[0]] > flap[squares[i]]:
            squares[0], squares[i] = squares[i], squares[0]
    if enc == Encoding.FILE:
        return FILE_TO_FILE[squares[0] & 7]
    return (squares[0] - 8) >> 3


def _group_index(p: list[int], start: int, end: int, offset: int) -> int:
    p[start:end] = sorted(p[start:end])
    total = 0
    for i in range(start, end):
        sq = p[i]
        skips = sum(sq > p[j] for j in range(start))
        total += binomial(i - start + 1, sq - skips - offset)
    return total


def _piece_index(p: list[int], entry: TableEntry) -> tuple[int, list[int], int]:
    if p[0] & 0x20:
        p = [sq ^ 0x38 for sq in p]

    limit = 2 if entry.kk_enc else 3
    for i, sq in enumerate(p):
        if OFF_DIAG[sq]:
            if OFF_DIAG[sq] > 0 and i < limit:
                p = [FLIP_DIAG[s] for s in p]
            break

    if entry.kk_enc:
        idx = KK_IDX[TRIANGLE[p[0]]][p[1]]
        if idx < 0:
            raise ValueError(f"kings on {p[0]} and {p[1]} have no index")
        return idx, p, 2

    s1 = int(p[1] > p[0])
    s2 = int(p[2] > p[0]) + int(p[2] > p[1])
    if OFF_DIAG[p[0]]:
        idx = TRIANGLE[p[0]] * 63 * 62 + (p[1] - s1) * 62 + (p[2] - s2)
    elif OFF_DIAG[p[1]]:
        idx = 6 * 63 * 62 + DIAG[p[0]] * 28 * 62 + LOWER[p[1]] * 62 + p[2] - s2
    elif OFF_DIAG[p[2]]:
        idx = (
            6 * 63 * 62 + 4 * 28 * 62
            + DIAG[p[0]] * 7 * 28 + (DIAG[p[1]] - s1) * 28 + LOWER[p[2]]
        )
    else:
        idx = (
            6 * 63 * 62 + 4 * 28 * 62 + 4 * 7 * 28
            + DIAG[p[0]] * 7 * 6 + (DIAG[p[1]] - s1) * 6 + (DIAG[p[2]] - s2)
        )
    return idx, p, 3


def encode(
    squares: Sequence[int], enc_info: EncInfo, entry: TableEntry, enc: Encoding
) -> int:
    """Index of the position given by squares in the table described by enc_info."""
    n = entry.num
    if len(squares) < n:
        raise ValueError(f"expected {n} squares, got {len(squares)}")
    p = list(squares[:n])

    if p[0] & 0x04:
        p = [sq ^ 0x07 for sq in p]

    if enc == Encoding.PIECE:
        idx, p, k = _piece_index(p, entry)
        idx *= enc_info.factor[0]
    else:
        twist = PAWN_TWIST[enc - 1]
        k = entry.pawns[0]
        p[1:k] = sorted(p[1:k], key=lambda sq: twist[sq], reverse=True)
        idx = PAWN_IDX[enc - 1][k - 1][FLAP[enc - 1][p[0]]]
        for i in range(1, k):
            idx += binomial(k - i, twist[p[i]])
        idx *= enc_info.factor[0]

        if entry.pawns[1]:
            t = k + entry.pawns[1]
            idx += _group_index(p, k, t, 8) * enc_info.factor[k]
            k = t

    while k < n:
        size = enc_info.norm[k]
        if size <= 0:
            raise ValueError(f"empty piece group at index {k}")
        t = k + size
        idx += _group_index(p, k, t, 0) * enc_info.factor[k]
        k = t

    return idx


def init_enc_info(
    entry: TableEntry, data: Sequence[int], shift: int, t: int, enc: Encoding
) -> tuple[EncInfo, int]:
    """Read one sub-table's piece layout and return it with the table size."""
    more_pawns = enc != Encoding.PIECE and entry.pawns[1] > 0
    num = entry.num
    first = 1 + int(more_pawns)

    pieces = [(data[i + first] >> shift) & 0x0F for i in range(num)]
    norm = [0] * num
    factor = [0] * num

    order = (data[0] >> shift) & 0x0F
    order2 = (data[1] >> shift) & 0x0F if more_pawns else 0x0F

    if enc != Encoding.PIECE:
        k = entry.pawns[0]
    else:
        k = 2 if entry.kk_enc else 3
    norm[0] = k

    if more_pawns:
        norm[k] = entry.pawns[1]
        k += norm[k]

    i = k
    while i < num:
        j = i
        while j < num and pieces[j] == pieces[i]:
            norm[i] += 1
            j += 1
        i += norm[i]

    free_squares = 64 - k
    size = 1
    i = 0
    while k < num or i == order or i == order2:
        if i == order:
            factor[0] = size
            if enc == Encoding.FILE:
                size *= PAWN_FACTOR_FILE[norm[0] - 1][t]
            elif enc == Encoding.RANK:
                size *= PAWN_FACTOR_RANK[norm[0] - 1][t]
            else:
                size *= KK_SIZE if entry.kk_enc else PIECE_SIZE
        elif i == order2:
            factor[norm[0]] = size
            size *= subfactor(norm[norm[0]], 48 - norm[0])
        else:
            factor[k] = size
            size *= subfactor(norm[k], free_squares)
            free_squares -= norm[k]
            k += norm[k]
        i += 1

    return EncInfo(pieces=pieces, norm=norm, factor=factor), size