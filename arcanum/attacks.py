"""Bitboard helpers and attack sets; square 0 is a1, colour 1 is white."""

from __future__ import annotations

from collections.abc import Iterator

WHITE = 1
BLACK = 0

_FULL = (1 << 64) - 1


def _check_square(square: int) -> None:
    if not 0 <= square < 64:
        raise ValueError(f"square out of range: {square}")


def _step_table(deltas: tuple[tuple[int, int], ...]) -> tuple[int, ...]:
    table = []
    for square in range(64):
        rank, file = divmod(square, 8)
        bb = 0
        for d_rank, d_file in deltas:
            r, f = rank + d_rank, file + d_file
            if 0 <= r < 8 and 0 <= f < 8:
                bb |= 1 << (r * 8 + f)
        table.append(bb)
    return tuple(table)


_KNIGHT = _step_table(
    ((1, 2), (2, 1), (2, -1), (1, -2), (-1, -2), (-2, -1), (-2, 1), (-1, 2))
)
_KING = _step_table(
    ((1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1))
)
_WHITE_PAWN = _step_table(((1, -1), (1, 1)))
_BLACK_PAWN = _step_table(((-1, -1), (-1, 1)))

_ROOK_DIRECTIONS = ((1, 0), (-1, 0), (0, 1), (0, -1))
_BISHOP_DIRECTIONS = ((1, 1), (1, -1), (-1, 1), (-1, -1))


def popcount(bb: int) -> int:
    """Number of set bits in a 64-bit board."""
    return (bb & _FULL).bit_count()


def lsb(bb: int) -> int:
    """Index of the lowest set bit; an empty board raises ValueError."""
    bb &= _FULL
    if not bb:
        raise ValueError("empty bitboard has no lowest bit")
    return (bb & -bb).bit_length() - 1


def iter_bits(bb: int) -> Iterator[int]:
    """Yield the indices of set bits from lowest to highest."""
    bb &= _FULL
    while bb:
        low = bb & -bb
        yield low.bit_length() - 1
        bb ^= low


def pawn_attacks(square: int, colour: int) -> int:
    """Squares attacked by a pawn of the given colour (1 white, 0 black)."""
    _check_square(square)
    return _WHITE_PAWN[square] if colour == WHITE else _BLACK_PAWN[square]


def knight_attacks(square: int) -> int:
    """Squares attacked by a knight."""
    _check_square(square)
    return _KNIGHT[square]


def king_attacks(square: int) -> int:
    """Squares attacked by a king."""
    _check_square(square)
    return _KING[square]


def _slide(square: int, occupied: int, directions: tuple[tuple[int, int], ...]) -> int:
    _check_square(square)
    occupied &= _FULL
    rank, file = divmod(square, 8)
    bb = 0
    for d_rank, d_file in directions:
        r, f = rank + d_rank, file + d_file
        while 0 <= r < 8 and 0 <= f < 8:
            bit = 1 << (r * 8 + f)
            bb |= bit
            if occupied & bit:
                break
            r += d_rank
            f += d_file
    return bb


def bishop_attacks(square: int, occupied: int) -> int:
    """Diagonal attacks, stopping at and including the first blocker."""
    return _slide(square, occupied, _BISHOP_DIRECTIONS)


def rook_attacks(square: int, occupied: int) -> int:
    """Orthogonal attacks, stopping at and including the first blocker."""
    return _slide(square, occupied, _ROOK_DIRECTIONS)


def queen_attacks(square: int, occupied: int) -> int:
    """Union of rook and bishop attacks."""
    return rook_attacks(square, occupied) | bishop_attacks(square, occupied)