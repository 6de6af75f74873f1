"""Compact tablebase position: bitboards, move generation and material keys.

Squares run from 0 (a1) to 63 (h8). Colour 1 is white and colour 0 is black.
Moves are 16-bit integers holding the target square in bits 0-5, the origin
square in bits 6-11 and the promotion piece in bits 12-14.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from enum import IntEnum

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
    rook_attacks,
)

_FULL = (1 << 64) - 1
PROMOTION_SQUARES = 0xFF000000000000FF
PIECE_TO_CHAR = " PNBRQK  pnbrqk"


class PieceType(IntEnum):
    """Piece types; a coloured piece code adds 8 for black."""

    PAWN = 1
    KNIGHT = 2
    BISHOP = 3
    ROOK = 4
    QUEEN = 5
    KING = 6


class Promotion(IntEnum):
    """Promotion field of a move."""

    NONE = 0
    QUEEN = 1
    ROOK = 2
    BISHOP = 3
    KNIGHT = 4


# Coloured piece codes
WPAWN, WKNIGHT, WBISHOP, WROOK, WQUEEN, WKING = 1, 2, 3, 4, 5, 6
BPAWN, BKNIGHT, BBISHOP, BROOK, BQUEEN, BKING = 9, 10, 11, 12, 13, 14

PRIME_WKING = 0
PRIME_WQUEEN = 11811845319353239651
PRIME_WROOK = 10979190538029446137
PRIME_WBISHOP = 12311744257139811149
PRIME_WKNIGHT = 15202887380319082783
PRIME_WPAWN = 17008651141875982339
PRIME_BKING = 0
PRIME_BQUEEN = 15484752644942473553
PRIME_BROOK = 18264461213049635989
PRIME_BBISHOP = 15394650811035483107
PRIME_BKNIGHT = 13469005675588064321
PRIME_BPAWN = 11695583624105689831
PRIME_NONE = 0

_PRIMES_BY_PIECE = (
    PRIME_NONE, PRIME_WPAWN, PRIME_WKNIGHT, PRIME_WBISHOP,
    PRIME_WROOK, PRIME_WQUEEN, PRIME_WKING, PRIME_NONE,
    PRIME_NONE, PRIME_BPAWN, PRIME_BKNIGHT, PRIME_BBISHOP,
    PRIME_BROOK, PRIME_BQUEEN, PRIME_BKING, PRIME_NONE,
)

_KEY_TERMS = (
    (WQUEEN, PRIME_WQUEEN),
    (WROOK, PRIME_WROOK),
    (WBISHOP, PRIME_WBISHOP),
    (WKNIGHT, PRIME_WKNIGHT),
    (WPAWN, PRIME_WPAWN),
    (BQUEEN, PRIME_BQUEEN),
    (BROOK, PRIME_BROOK),
    (BBISHOP, PRIME_BBISHOP),
    (BKNIGHT, PRIME_BKNIGHT),
    (BPAWN, PRIME_BPAWN),
)

_PROMOTION_ORDER = (Promotion.QUEEN, Promotion.KNIGHT, Promotion.ROOK, Promotion.BISHOP)


def move_from(move: int) -> int:
    """Origin square of a move."""
    return (move >> 6) & 0x3F


def move_to(move: int) -> int:
    """Target square of a move."""
    return move & 0x3F


def move_promotes(move: int) -> int:
    """Promotion field of a move."""
    return (move >> 12) & 0x07


def make_move(promote: int, from_square: int, to_square: int) -> int:
    """Pack a move into its 16-bit form."""
    return ((promote & 0x7) << 12) | ((from_square & 0x3F) << 6) | (to_square & 0x3F)


def char_to_piece_type(char: str) -> int:
    """Piece type of an upper-case piece letter, or 0 when unknown."""
    for piece in PieceType:
        if char == PIECE_TO_CHAR[piece]:
            return int(piece)
    return 0


def calc_key_from_counts(counts: Sequence[int], mirror: bool) -> int:
    """Material key from piece counts indexed by coloured piece code."""
    flip = 8 if mirror else 0
    key = sum(counts[piece ^ flip] * prime for piece, prime in _KEY_TERMS)
    return key & _FULL


def calc_key_from_pieces(pieces: Iterable[int]) -> int:
    """Material key from a list of coloured piece codes."""
    return sum(_PRIMES_BY_PIECE[piece] for piece in pieces) & _FULL


def _bb_move(bb: int, from_square: int, to_square: int) -> int:
    moved = ((bb >> from_square) & 1) << to_square
    return moved | (bb & ~(1 << from_square) & ~(1 << to_square) & _FULL)


def _test_bit(bb: int, square: int) -> bool:
    return 0 <= square < 64 and bool((bb >> square) & 1)


def _is_promotion_square(square: int) -> bool:
    return _test_bit(PROMOTION_SQUARES, square)


def _add_moves(moves: list[int], promotes: bool, from_square: int, to_square: int) -> None:
    if not promotes:
        moves.append(make_move(Promotion.NONE, from_square, to_square))
    else:
        moves.extend(make_move(p, from_square, to_square) for p in _PROMOTION_ORDER)


@dataclass(frozen=True)
class Position:
    """A position described by bitboards; turn is True when white moves."""

    white: int = 0
    black: int = 0
    kings: int = 0
    queens: int = 0
    rooks: int = 0
    bishops: int = 0
    knights: int = 0
    pawns: int = 0
    rule50: int = 0
    ep: int = 0
    turn: bool = True

    @property
    def _us(self) -> int:
        return self.white if self.turn else self.black

    @property
    def _them(self) -> int:
        return self.black if self.turn else self.white

    @property
    def _colour(self) -> int:
        return WHITE if self.turn else BLACK

    def pieces_by_type(self, colour: int, piece: int) -> int:
        """Bitboard of the pieces of one type and colour."""
        if colour not in (WHITE, BLACK):
            raise ValueError(f"invalid colour: {colour}")
        side = self.white if colour == WHITE else self.black
        boards = {
            PieceType.PAWN: self.pawns,
            PieceType.KNIGHT: self.knights,
            PieceType.BISHOP: self.bishops,
            PieceType.ROOK: self.rooks,
            PieceType.QUEEN: self.queens,
            PieceType.KING: self.kings,
        }
        try:
            return boards[PieceType(piece)] & side
        except ValueError:
            raise ValueError(f"invalid piece type: {piece}") from None

    def calc_key(self, mirror: bool) -> int:
        """Material key, with the colours swapped when mirror is set."""
        white = self.black if mirror else self.white
        black = self.white if mirror else self.black
        key = (
            popcount(white & self.queens) * PRIME_WQUEEN
            + popcount(white & self.rooks) * PRIME_WROOK
            + popcount(white & self.bishops) * PRIME_WBISHOP
            + popcount(white & self.knights) * PRIME_WKNIGHT
            + popcount(white & self.pawns) * PRIME_WPAWN
            + popcount(black & self.queens) * PRIME_BQUEEN
            + popcount(black & self.rooks) * PRIME_BROOK
            + popcount(black & self.bishops) * PRIME_BBISHOP
            + popcount(black & self.knights) * PRIME_BKNIGHT
            + popcount(black & self.pawns) * PRIME_BPAWN
        )
        return key & _FULL

    def _piece_targets(self, mask: int) -> list[int]:
        us, them = self._us, self._them
        occupied = us | them
        moves: list[int] = []
        for sq in iter_bits(us & self.kings):
            for to in iter_bits(king_attacks(sq) & mask):
                _add_moves(moves, False, sq, to)
        for sq in iter_bits(us & (self.rooks | self.queens)):
            for to in iter_bits(rook_attacks(sq, occupied) & mask):
                _add_moves(moves, False, sq, to)
        for sq in iter_bits(us & (self.bishops | self.queens)):
            for to in iter_bits(bishop_attacks(sq, occupied) & mask):
                _add_moves(moves, False, sq, to)
        for sq in iter_bits(us & self.knights):
            for to in iter_bits(knight_attacks(sq) & mask):
                _add_moves(moves, False, sq, to)
        return moves

    def generate_captures(self) -> list[int]:
        """Pseudo-legal captures, including en passant and capture promotions."""
        them = self._them
        moves = self._piece_targets(them)
        colour = self._colour
        for sq in iter_bits(self._us & self.pawns):
            attacks = pawn_attacks(sq, colour)
            if self.ep and _test_bit(attacks, self.ep):
                _add_moves(moves, False, sq, self.ep)
            for to in iter_bits(attacks & them):
                _add_moves(moves, _is_promotion_square(to), sq, to)
        return moves

    def generate_moves(self) -> list[int]:
        """All pseudo-legal moves except castling."""
        us, them = self._us, self._them
        occupied = us | them
        moves = self._piece_targets(~us & _FULL)
        colour = self._colour
        forward = 8 if self.turn else -8
        for sq in iter_bits(us & self.pawns):
            attacks = pawn_attacks(sq, colour)
            if self.ep and _test_bit(attacks, self.ep):
                _add_moves(moves, False, sq, self.ep)
            one = sq + forward
            if 0 <= one < 64 and not _test_bit(occupied, one):
                _add_moves(moves, _is_promotion_square(one), sq, one)
            two = sq + 2 * forward
            start_rank = 1 if self.turn else 6
            if (
                sq // 8 == start_rank
                and not _test_bit(occupied, one)
                and not _test_bit(occupied, two)
            ):
                _add_moves(moves, False, sq, two)
            for to in iter_bits(attacks & them):
                _add_moves(moves, _is_promotion_square(to), sq, to)
        return moves

    def generate_legal(self) -> list[int]:
        """All legal moves except castling."""
        return [move for move in self.generate_moves() if self.legal_move(move)]

    def is_pawn_move(self, move: int) -> bool:
        """Whether the move starts from a pawn of the side to move."""
        return _test_bit(self._us & self.pawns, move_from(move))

    def is_en_passant(self, move: int) -> bool:
        """Whether the move is an en passant capture."""
        return bool(self.ep) and self.is_pawn_move(move) and move_to(move) == self.ep

    def is_capture(self, move: int) -> bool:
        """Whether the move captures a piece, en passant included."""
        return _test_bit(self._them, move_to(move)) or self.is_en_passant(move)

    def is_legal(self) -> bool:
        """Whether the side that just moved left its king unattacked."""
        us = self.black if self.turn else self.white
        them = self.white if self.turn else self.black
        occupied = us | them
        sq = lsb(self.kings & us)
        mover_colour = BLACK if self.turn else WHITE
        return not (
            king_attacks(sq) & self.kings & them
            or rook_attacks(sq, occupied) & (self.rooks | self.queens) & them
            or bishop_attacks(sq, occupied) & (self.bishops | self.queens) & them
            or knight_attacks(sq) & self.knights & them
            or pawn_attacks(sq, mover_colour) & self.pawns & them
        )

    def is_check(self) -> bool:
        """Whether the side to move is in check."""
        us, them = self._us, self._them
        occupied = us | them
        sq = lsb(self.kings & us)
        return bool(
            rook_attacks(sq, occupied) & (self.rooks | self.queens) & them
            or bishop_attacks(sq, occupied) & (self.bishops | self.queens) & them
            or knight_attacks(sq) & self.knights & them
            or pawn_attacks(sq, self._colour) & self.pawns & them
        )

    def is_mate(self) -> bool:
        """Whether the side to move is checkmated."""
        if not self.is_check():
            return False
        return not any(self.legal_move(move) for move in self.generate_moves())

    def do_move(self, move: int) -> Position:
        """The position after the move; check legality with is_legal()."""
        from_square = move_from(move)
        to_square = move_to(move)
        promotes = move_promotes(move)

        white = _bb_move(self.white, from_square, to_square)
        black = _bb_move(self.black, from_square, to_square)
        kings = _bb_move(self.kings, from_square, to_square)
        queens = _bb_move(self.queens, from_square, to_square)
        rooks = _bb_move(self.rooks, from_square, to_square)
        bishops = _bb_move(self.bishops, from_square, to_square)
        knights = _bb_move(self.knights, from_square, to_square)
        pawns = _bb_move(self.pawns, from_square, to_square)
        ep = 0
        to_bit = 1 << to_square

        if promotes != Promotion.NONE:
            pawns &= ~to_bit & _FULL
            if promotes == Promotion.QUEEN:
                queens |= to_bit
            elif promotes == Promotion.ROOK:
                rooks |= to_bit
            elif promotes == Promotion.BISHOP:
                bishops |= to_bit
            elif promotes == Promotion.KNIGHT:
                knights |= to_bit
            rule50 = 0
        elif _test_bit(self.pawns, from_square):
            rule50 = 0
            double_push = (from_square ^ to_square) == 16
            if (
                double_push
                and self.turn
                and pawn_attacks(from_square + 8, WHITE) & self.pawns & self.black
            ):
                ep = from_square + 8
            if (
                double_push
                and not self.turn
                and pawn_attacks(from_square - 8, BLACK) & self.pawns & self.white
            ):
                ep = from_square - 8
            elif self.ep and to_square == self.ep:
                captured = to_square - 8 if self.turn else to_square + 8
                clear = ~(1 << captured) & _FULL
                white &= clear
                black &= clear
                pawns &= clear
        elif _test_bit(self.white | self.black, to_square):
            rule50 = 0
        else:
            rule50 = (self.rule50 + 1) & 0xFF

        return replace(
            self,
            white=white,
            black=black,
            kings=kings,
            queens=queens,
            rooks=rooks,
            bishops=bishops,
            knights=knights,
            pawns=pawns,
            rule50=rule50,
            ep=ep,
            turn=not self.turn,
        )

    def legal_move(self, move: int) -> bool:
        """Whether playing the move leaves the mover's king safe."""
        return self.do_move(move).is_legal()