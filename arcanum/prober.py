"""Probing Syzygy tablebases: WDL, DTZ and root move ranking.

A Tablebase scans one or more directories for table files and loads their
contents lazily, the first time a position of that material is probed.
Probes that cannot be answered from the available tables return None.
"""

from __future__ import annotations

import logging
import mmap
import os
import threading
from collections.abc import Iterator
from dataclasses import replace
from itertools import combinations_with_replacement
from typing import Any

from arcanum.attacks import BLACK, WHITE, iter_bits, popcount
from arcanum.encoding import Encoding, TableEntry, encode, leading_pawn
from arcanum.position import (
    BPAWN,
    PIECE_TO_CHAR,
    WPAWN,
    PieceType,
    Position,
    calc_key_from_counts,
    char_to_piece_type,
    move_from,
    move_promotes,
    move_to,
)
from arcanum.results import ProbeResult, RootMove, Wdl, dtz_to_wdl
from arcanum.tablefile import TableType, find_table_file, init_table, test_table_file

logger = logging.getLogger(__name__)

TB_PIECES = 7
MAX_DTZ = 0x40000
SCORE_ILLEGAL = 0x7FFF

VALUE_PAWN = 100
VALUE_MATE = 32000
VALUE_DRAW = 0
MAX_MATE_PLY = 255

WDL_TO_MAP = (1, 3, 0, 2, 0)
PA_FLAGS = (8, 0, 0, 0, 4)
WDL_TO_DTZ = (-1, -101, 0, 101, 1)

CHECKMATE = ProbeResult(Wdl.WIN)
STALEMATE = ProbeResult(Wdl.DRAW)

_PIECE_CHARS = "QRBNP"
_NO_BEST = 2**31 - 1


def _cdiv(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero."""
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator >= 0) else -quotient


def _names_for(count: int) -> Iterator[str]:
    c = _PIECE_CHARS
    n = range(5)
    if count == 3:
        yield from (f"K{c[i]}vK" for i in n)
    elif count == 4:
        for i, j in combinations_with_replacement(n, 2):
            yield f"K{c[i]}vK{c[j]}"
        for i, j in combinations_with_replacement(n, 2):
            yield f"K{c[i]}{c[j]}vK"
    elif count == 5:
        for i, j in combinations_with_replacement(n, 2):
            for k in n:
                yield f"K{c[i]}{c[j]}vK{c[k]}"
        for i, j, k in combinations_with_replacement(n, 3):
            yield f"K{c[i]}{c[j]}{c[k]}vK"
    elif count == 6:
        for i, j in combinations_with_replacement(n, 2):
            for k in range(i, 5):
                for m in range(j if i == k else k, 5):
                    yield f"K{c[i]}{c[j]}vK{c[k]}{c[m]}"
        for i, j, k in combinations_with_replacement(n, 3):
            for m in n:
                yield f"K{c[i]}{c[j]}{c[k]}vK{c[m]}"
        for i, j, k, m in combinations_with_replacement(n, 4):
            yield f"K{c[i]}{c[j]}{c[k]}{c[m]}vK"
    elif count == 7:
        for combo in combinations_with_replacement(n, 5):
            yield "K" + "".join(c[x] for x in combo) + "vK"
        for combo in combinations_with_replacement(n, 4):
            for m in n:
                yield "K" + "".join(c[x] for x in combo) + f"vK{c[m]}"
        for combo in combinations_with_replacement(n, 3):
            for pair in combinations_with_replacement(n, 2):
                yield "K" + "".join(c[x] for x in combo) + "vK" + "".join(c[x] for x in pair)


def table_names(max_pieces: int) -> list[str]:
    """Names of all tables with at most max_pieces pieces, in scanning order."""
    names: list[str] = []
    for count in range(3, min(max_pieces, TB_PIECES) + 1):
        names.extend(_names_for(count))
    return names


def _material_name(position: Position, flip: bool) -> str:
    colour = BLACK if flip else WHITE
    parts = []
    for side in (colour, colour ^ 1):
        parts.append(
            "".join(
                PIECE_TO_CHAR[piece] * popcount(position.pieces_by_type(side, piece))
                for piece in reversed(PieceType)
            )
        )
    return "v".join(parts)


def _fill_squares(
    position: Position, pieces: list[int], flip: bool, mirror: int, squares: list[int]
) -> None:
    piece = pieces[len(squares)]
    colour = BLACK if piece >> 3 else WHITE
    if flip:
        colour ^= 1
    bb = position.pieces_by_type(colour, piece & 0x7)
    if not bb:
        raise ValueError(f"position lacks piece {piece} required by the table")
    squares.extend(sq ^ mirror for sq in iter_bits(bb))


class Tablebase:
    """A set of tablebase files found on a search path."""

    def __init__(self, path: str | None = None, value_mate: int = VALUE_MATE) -> None:
        self.value_mate = value_mate
        self._paths: list[str] = []
        self._entries: dict[int, TableEntry] = {}
        self._maps: list[mmap.mmap] = []
        self._lock = threading.Lock()
        self.largest = 0
        self.max_cardinality = 0
        self.max_cardinality_dtm = 0
        self.num_wdl = 0
        self.num_dtm = 0
        self.num_dtz = 0
        if path:
            self.init(path)

    # -- set up -------------------------------------------------------------

    def _release(self) -> None:
        for mapped in self._maps:
            try:
                mapped.close()
            except BufferError:
                logger.debug("table mapping still referenced; left to the collector")
        self._maps.clear()
        self._entries.clear()
        self._paths = []
        self.largest = self.max_cardinality = self.max_cardinality_dtm = 0
        self.num_wdl = self.num_dtm = self.num_dtz = 0

    def init(self, path: str) -> bool:
        """Scan the directories in path (os.pathsep separated) for tables."""
        self._release()
        if not path or path == "<empty>":
            return True
        self._paths = [part for part in path.split(os.pathsep) if part]
        for name in table_names(TB_PIECES):
            self._init_entry(name)
        self.largest = max(self.max_cardinality, self.max_cardinality_dtm)
        return True

    def free(self) -> None:
        """Release all loaded tables and forget the search path."""
        self._release()

    def _init_entry(self, name: str) -> None:
        if not test_table_file(self._paths, name, TableType.WDL.suffix):
            return
        counts = [0] * 16
        colour = 0
        for char in name:
            if char == "v":
                colour = 8
                continue
            piece = char_to_piece_type(char)
            if piece:
                counts[piece | colour] += 1

        key = calc_key_from_counts(counts, False)
        key2 = calc_key_from_counts(counts, True)
        has_pawns = bool(counts[WPAWN] or counts[BPAWN])
        entry = TableEntry(
            key=key, num=sum(counts), symmetric=key == key2, has_pawns=has_pawns
        )
        self.num_wdl += 1
        entry.has_dtm = test_table_file(self._paths, name, TableType.DTM.suffix)
        entry.has_dtz = test_table_file(self._paths, name, TableType.DTZ.suffix)
        self.num_dtm += entry.has_dtm
        self.num_dtz += entry.has_dtz
        self.max_cardinality = max(self.max_cardinality, entry.num)
        if entry.has_dtm:
            self.max_cardinality_dtm = max(self.max_cardinality_dtm, entry.num)

        if not has_pawns:
            entry.kk_enc = sum(1 for count in counts if count == 1) == 2
        else:
            white, black = counts[WPAWN], counts[BPAWN]
            if black and (not white or white > black):
                white, black = black, white
            entry.pawns = [white, black]

        self._entries[key] = entry
        if key != key2:
            self._entries[key2] = entry

    def _load(self, entry: TableEntry, name: str, table_type: TableType) -> bool:
        path = find_table_file(self._paths, name, table_type.suffix)
        if path is None:
            return False
        with open(path, "rb") as handle:
            mapped = mmap.mmap(handle.fileno(), 0, access=mmap.ACCESS_READ)
        try:
            init_table(entry, mapped, table_type)
        except ValueError as exc:
            logger.warning("Corrupted table %s%s: %s", name, table_type.suffix, exc)
            try:
                mapped.close()
            except BufferError:
                logger.debug("corrupted table mapping still referenced")
            return False
        self._maps.append(mapped)
        entry.ready.add(table_type)
        return True

    # -- table access -------------------------------------------------------

    def _probe_table(self, pos: Position, s: int, table_type: TableType) -> tuple[int, int]:
        """Value from a table and a status: 1 ok, 0 failed, -1 other side needed."""
        key = pos.calc_key(False)
        if table_type == TableType.WDL and key == 0:
            return 0, 1

        entry = self._entries.get(key)
        if entry is None:
            return 0, 0
        if table_type == TableType.DTZ and not entry.has_dtz:
            return 0, 0

        if table_type not in entry.ready:
            with self._lock:
                if table_type not in entry.ready:
                    name = _material_name(pos, entry.key != key)
                    if not self._load(entry, name, table_type):
                        self._entries.pop(key, None)
                        return 0, 0

        if not entry.symmetric:
            flip = key != entry.key
            bside = int(pos.turn == flip)
        else:
            flip = not pos.turn
            bside = 0

        infos = entry.enc_info[table_type]
        t = 0
        flags = 0
        squares: list[int] = []
        if not entry.has_pawns:
            if table_type == TableType.DTZ:
                flags = entry.dtz_flags[0]
                if (flags & 1) != bside and not entry.symmetric:
                    return 0, -1
            info = infos[bside] if table_type != TableType.DTZ else infos[0]
            if info is None:
                raise ValueError("table has no sub-table for this side to move")
            while len(squares) < entry.num:
                _fill_squares(pos, info.pieces, flip, 0, squares)
            idx = encode(squares, info, entry, Encoding.PIECE)
        else:
            mirror = 0x38 if flip else 0
            _fill_squares(pos, infos[0].pieces, flip, mirror, squares)
            t = leading_pawn(squares, entry, Encoding.FILE)
            if table_type == TableType.DTZ:
                flags = entry.dtz_flags[t]
                if (flags & 1) != bside and not entry.symmetric:
                    return 0, -1
            info = infos[t + 4 * bside] if table_type == TableType.WDL else infos[t]
            if info is None:
                raise ValueError("table has no sub-table for this side to move")
            while len(squares) < entry.num:
                _fill_squares(pos, info.pieces, flip, mirror, squares)
            idx = encode(squares, info, entry, Encoding.FILE)

        w = info.precomp.decompress(idx)
        if table_type == TableType.WDL:
            return w[0] - 2, 1

        value = w[0] + ((w[1] & 0x0F) << 8)
        if flags & 2:
            data: Any = entry.data[TableType.DTZ]
            m = WDL_TO_MAP[s + 2]
            index = entry.dtz_map_idx[t][m] + value
            if not flags & 16:
                value = data[entry.dtz_map + index]
            else:
                start = entry.dtz_map + 2 * index
                value = int.from_bytes(data[start:start + 2], "little")
        if not (flags & PA_FLAGS[s + 2]) or (s & 1):
            value *= 2
        return value, 1

    # -- recursive probing --------------------------------------------------

    def _probe_ab(self, pos: Position, alpha: int, beta: int) -> tuple[int, bool]:
        for move in pos.generate_captures():
            if not pos.is_capture(move):
                continue
            child = pos.do_move(move)
            if not child.is_legal():
                continue
            value, ok = self._probe_ab(child, -beta, -alpha)
            if not ok:
                return 0, False
            value = -value
            if value > alpha:
                if value >= beta:
                    return value, True
                alpha = value
        value, status = self._probe_table(pos, 0, TableType.WDL)
        return max(alpha, value), status != 0

    def _probe_wdl(self, pos: Position) -> tuple[int, int]:
        best_cap = best_ep = -3
        for move in pos.generate_captures():
            if not pos.is_capture(move):
                continue
            child = pos.do_move(move)
            if not child.is_legal():
                continue
            value, ok = self._probe_ab(child, -2, -best_cap)
            if not ok:
                return 0, 0
            value = -value
            if value > best_cap:
                if value == 2:
                    return 2, 2
                if not pos.is_en_passant(move):
                    best_cap = value
                elif value > best_ep:
                    best_ep = value

        value, status = self._probe_table(pos, 0, TableType.WDL)
        if status == 0:
            return 0, 0

        if best_ep > best_cap:
            if best_ep > value:
                return best_ep, 2
            best_cap = best_ep

        if best_cap >= value:
            return best_cap, 1 + (best_cap > 0)

        if best_ep > -3 and value == 0:
            has_other_move = any(
                not pos.is_en_passant(move) and pos.legal_move(move)
                for move in pos.generate_moves()
            )
            if not has_other_move and not pos.is_check():
                return best_ep, 2

        return value, 1

    def _probe_dtz(self, pos: Position) -> tuple[int, int]:
        wdl, success = self._probe_wdl(pos)
        if success == 0:
            return 0, 0
        if wdl == 0:
            return 0, success
        if success == 2:
            return WDL_TO_DTZ[wdl + 2], success

        moves: list[int] = []
        if wdl > 0:
            moves = pos.generate_legal()
            for move in moves:
                if not pos.is_pawn_move(move) or pos.is_capture(move):
                    continue
                child = pos.do_move(move)
                if not child.is_legal():
                    continue
                value, success = self._probe_wdl(child)
                if success == 0:
                    return 0, 0
                if -value == wdl:
                    return WDL_TO_DTZ[wdl + 2], success

        dtz, status = self._probe_table(pos, wdl, TableType.DTZ)
        if status == 0:
            return 0, 0
        if status > 0:
            return WDL_TO_DTZ[wdl + 2] + (dtz if wdl > 0 else -dtz), success

        success = -1
        if wdl > 0:
            best = _NO_BEST
        else:
            best = WDL_TO_DTZ[wdl + 2]
            moves = pos.generate_moves()

        for move in moves:
            if pos.is_capture(move) or pos.is_pawn_move(move):
                continue
            child = pos.do_move(move)
            if not child.is_legal():
                continue
            value, success = self._probe_dtz(child)
            value = -value
            if value == 1 and child.is_mate():
                best = 1
            elif wdl > 0:
                if 0 < value and value + 1 < best:
                    best = value + 1
            elif value - 1 < best:
                best = value - 1
            if success == 0:
                return 0, 0
        return best, success

    def _child_dtz(self, child: Position) -> tuple[int, int]:
        """DTZ of a move counted from the parent position."""
        if child.rule50 != 0:
            value, success = self._probe_dtz(child)
            value = -value
            if value > 0:
                value += 1
            elif value < 0:
                value -= 1
            return value, success
        value, success = self._probe_wdl(child)
        return WDL_TO_DTZ[-value + 2], success

    # -- public probes ------------------------------------------------------

    def probe_wdl(self, position: Position) -> Wdl | None:
        """WDL outcome for the side to move, or None when no table answers."""
        value, success = self._probe_wdl(replace(position, rule50=0))
        if not success:
            return None
        return Wdl(value + 2)

    def probe_dtz(self, position: Position) -> int | None:
        """Signed distance to zeroing in plies, or None when no table answers."""
        value, success = self._probe_dtz(position)
        if not success:
            return None
        return value

    def probe_root(self, position: Position) -> tuple[ProbeResult, list[ProbeResult]] | None:
        """Suggested move and a result for every legal move, or None on failure.

        CHECKMATE or STALEMATE stands in for the suggested move when the side
        to move has no move that keeps the outcome.
        """
        dtz, success = self._probe_dtz(position)
        if not success:
            return None

        moves = position.generate_moves()
        scores: list[int] = []
        results: list[ProbeResult] = []
        num_draw = 0
        for move in moves:
            child = position.do_move(move)
            if not child.is_legal():
                scores.append(SCORE_ILLEGAL)
                continue
            if dtz > 0 and child.is_mate():
                value = 1
            else:
                value, success = self._child_dtz(child)
            num_draw += value == 0
            if not success:
                return None
            scores.append(value)
            results.append(
                ProbeResult(
                    wdl=dtz_to_wdl(position.rule50, value),
                    from_square=move_from(move),
                    to_square=move_to(move),
                    promotes=move_promotes(move),
                    ep=position.is_en_passant(move),
                    dtz=abs(value),
                )
            )

        chosen: int | None = None
        scored = [(m, v) for m, v in zip(moves, scores) if v != SCORE_ILLEGAL]
        if dtz > 0:
            winning = [(v, i) for i, (_, v) in enumerate(scored) if v > 0]
            if not winning:
                return None
            chosen = scored[min(winning)[1]][0]
        elif dtz < 0:
            best = 0
            for move, value in scored:
                if value < best:
                    best = value
                    chosen = move
            if chosen is None:
                return CHECKMATE, results
        else:
            if num_draw == 0:
                return STALEMATE, results
            draws = [move for move, value in scored if value == 0]
            chosen = draws[position.calc_key(not position.turn) % num_draw]

        suggestion = ProbeResult(
            wdl=dtz_to_wdl(position.rule50, dtz),
            from_square=move_from(chosen),
            to_square=move_to(chosen),
            promotes=move_promotes(chosen),
            ep=position.is_en_passant(chosen),
            dtz=abs(dtz),
        )
        return suggestion, results

    def root_probe_dtz(
        self, position: Position, has_repeated: bool, use_rule50: bool
    ) -> list[RootMove] | None:
        """Rank and score every legal move with DTZ tables, or None on failure."""
        cnt50 = position.rule50
        bound = MAX_DTZ - 100 if use_rule50 else 1
        mate_value = self.value_mate - MAX_MATE_PLY - 1
        ranked: list[RootMove] = []
        for move in position.generate_legal():
            child = position.do_move(move)
            value, success = self._child_dtz(child)
            if value == 2 and child.is_mate():
                value = 1
            if not success:
                return None

            if value > 0:
                rank = MAX_DTZ if value + cnt50 <= 99 and not has_repeated else MAX_DTZ - (value + cnt50)
            elif value < 0:
                rank = -MAX_DTZ if -value * 2 + cnt50 < 100 else -MAX_DTZ + (-value + cnt50)
            else:
                rank = 0

            if rank >= bound:
                score = mate_value
            elif rank > 0:
                score = _cdiv(max(3, rank - (MAX_DTZ - 200)) * VALUE_PAWN, 200)
            elif rank == 0:
                score = VALUE_DRAW
            elif rank > -bound:
                score = _cdiv(min(-3, rank + (MAX_DTZ - 200)) * VALUE_PAWN, 200)
            else:
                score = -mate_value
            ranked.append(RootMove(move=move, tb_score=score, tb_rank=rank))
        return ranked

    def root_probe_wdl(self, position: Position, use_rule50: bool) -> list[RootMove] | None:
        """Rank and score every legal move with WDL tables, or None on failure."""
        mate_value = self.value_mate - MAX_MATE_PLY - 1
        wdl_to_rank = (-MAX_DTZ, -MAX_DTZ + 101, 0, MAX_DTZ - 101, MAX_DTZ)
        wdl_to_value = (-mate_value, VALUE_DRAW - 2, VALUE_DRAW, VALUE_DRAW + 2, mate_value)
        ranked: list[RootMove] = []
        for move in position.generate_legal():
            value, success = self._probe_wdl(position.do_move(move))
            if not success:
                return None
            value = -value
            if not use_rule50:
                value = 2 if value > 0 else -2 if value < 0 else 0
            ranked.append(
                RootMove(move=move, tb_score=wdl_to_value[value + 2], tb_rank=wdl_to_rank[value + 2])
            )
        return ranked