"""Tablebase files: locating them, reading their layout and decompressing values.

Table data is any bytes-like object (bytes, bytearray, memoryview or mmap).
Positions inside it are plain byte offsets. Offsets relative to the start of
the file stand in for memory addresses, since a mapped file starts page
aligned.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any

from arcanum.encoding import EncInfo, Encoding, TableEntry, init_enc_info
from arcanum.position import calc_key_from_pieces

logger = logging.getLogger(__name__)

MAX_SYMS = 4096
_MASK64 = (1 << 64) - 1
_LEAF_MARK = 0x0FFF


class TableType(IntEnum):
    """Kind of tablebase file."""

    WDL = 0
    DTM = 1
    DTZ = 2

    @property
    def suffix(self) -> str:
        """File name suffix of this kind of table."""
        return _SUFFIXES[self]

    @property
    def magic(self) -> int:
        """Magic number at the start of this kind of table."""
        return _MAGICS[self]


_SUFFIXES = {TableType.WDL: ".rtbw", TableType.DTM: ".rtbm", TableType.DTZ: ".rtbz"}
_MAGICS = {TableType.WDL: 0x5D23E871, TableType.DTM: 0x88AC504B, TableType.DTZ: 0xA50C66D7}


def _le(data: Any, pos: int, size: int) -> int:
    if pos < 0 or pos + size > len(data):
        raise ValueError(f"read past the end of the table at offset {pos}")
    return int.from_bytes(data[pos:pos + size], "little")


def _be_padded(data: Any, pos: int, size: int) -> int:
    chunk = bytes(data[pos:pos + size]) if pos < len(data) else b""
    return int.from_bytes(chunk.ljust(size, b"\x00"), "big")


def _claim(data: Any, pos: int, size: int) -> int:
    if size and pos + size > len(data):
        raise ValueError(f"table is truncated: needs {size} bytes at offset {pos}")
    return pos + size


def _align64(pos: int) -> int:
    return (pos + 0x3F) & ~0x3F


@dataclass
class PairsData:
    """Compressed value stream of one sub-table."""

    data: Any = b""
    idx_bits: int = 0
    const_value: bytes = b"\x00\x00"
    block_size: int = 0
    min_len: int = 0
    offset: int = 0
    sym_pat: int = 0
    sym_len: list[int] = field(default_factory=list)
    base: list[int] = field(default_factory=list)
    index_table: int = 0
    size_table: int = 0
    data_offset: int = 0

    def _symbol_length(self, sym: int) -> int:
        if not 0 <= sym < len(self.sym_len):
            raise ValueError(f"symbol {sym} is out of range")
        return self.sym_len[sym]

    def _block_length(self, block: int) -> int:
        if block < 0:
            raise ValueError("block index went below zero")
        return _le(self.data, self.size_table + 2 * block, 2)

    def decompress(self, index: int) -> bytes:
        """The value bytes stored for the given position index."""
        if not self.idx_bits:
            return bytes(self.const_value)
        if index < 0:
            raise ValueError(f"negative index: {index}")

        data = self.data
        main_idx = index >> self.idx_bits
        lit_idx = (index & ((1 << self.idx_bits) - 1)) - (1 << (self.idx_bits - 1))
        entry_pos = self.index_table + 6 * main_idx
        block = _le(data, entry_pos, 4)
        lit_idx += _le(data, entry_pos + 4, 2)

        if lit_idx < 0:
            while lit_idx < 0:
                block -= 1
                lit_idx += self._block_length(block) + 1
        else:
            while lit_idx > self._block_length(block):
                lit_idx -= self._block_length(block) + 1
                block += 1

        ptr = self.data_offset + (block << self.block_size)
        m = self.min_len
        base = self.base
        code = _be_padded(data, ptr, 8)
        ptr += 8
        bit_count = 0
        while True:
            length = m
            while code < base[length - m]:
                length += 1
            first = _le(data, self.offset + 2 * (length - m), 2)
            sym = (first + ((code - base[length - m]) >> (64 - length))) & 0xFFFFFFFF
            sym_length = self._symbol_length(sym)
            if lit_idx < sym_length + 1:
                break
            lit_idx -= sym_length + 1
            code = (code << length) & _MASK64
            bit_count += length
            if bit_count >= 32:
                bit_count -= 32
                code |= _be_padded(data, ptr, 4) << bit_count
                ptr += 4

        while self._symbol_length(sym) != 0:
            w = self.sym_pat + 3 * sym
            s1 = ((data[w + 1] & 0xF) << 8) | data[w]
            if lit_idx < self._symbol_length(s1) + 1:
                sym = s1
            else:
                lit_idx -= self._symbol_length(s1) + 1
                sym = (data[w + 2] << 4) | (data[w + 1] >> 4)

        start = self.sym_pat + 3 * sym
        return bytes(data[start:start + 3])


def _symbol_children(data: Any, sym_pat: int, sym: int) -> tuple[int, int] | None:
    w = sym_pat + 3 * sym
    b0, b1, b2 = _le(data, w, 1), _le(data, w + 1, 1), _le(data, w + 2, 1)
    s2 = (b2 << 4) | (b1 >> 4)
    if s2 == _LEAF_MARK:
        return None
    return ((b1 & 0xF) << 8) | b0, s2


def _symbol_lengths(data: Any, sym_pat: int, num_syms: int) -> list[int]:
    lengths = [0] * num_syms
    state = [0] * num_syms  # 0 unvisited, 1 in progress, 2 done
    for root in range(num_syms):
        if state[root]:
            continue
        stack = [root]
        while stack:
            sym = stack[-1]
            if state[sym] == 2:
                stack.pop()
                continue
            children = _symbol_children(data, sym_pat, sym)
            if children is None:
                lengths[sym] = 0
                state[sym] = 2
                stack.pop()
                continue
            if state[sym] == 0:
                state[sym] = 1
                for child in children:
                    if not 0 <= child < num_syms:
                        raise ValueError(f"symbol {sym} refers to unknown symbol {child}")
                    if state[child] == 1:
                        raise ValueError(f"symbol {sym} refers to itself")
                    if state[child] == 0:
                        stack.append(child)
                continue
            s1, s2 = children
            lengths[sym] = (lengths[s1] + lengths[s2] + 1) & 0xFF
            state[sym] = 2
            stack.pop()
    return lengths


def setup_pairs(
    data: Any, offset: int, tb_size: int, table_type: TableType
) -> tuple[PairsData, int, tuple[int, int, int], int]:
    """Read a pairs header at offset.

    Returns the pairs data, the offset just past the header, the sizes of the
    index, size and data regions, and the header's flag byte.
    """
    flags = _le(data, offset, 1)
    if flags & 0x80:
        value = _le(data, offset + 1, 1) if table_type == TableType.WDL else 0
        pairs = PairsData(data=data, idx_bits=0, const_value=bytes((value, 0)))
        return pairs, offset + 2, (0, 0, 0), flags

    block_size = _le(data, offset + 1, 1)
    idx_bits = _le(data, offset + 2, 1)
    real_num_blocks = _le(data, offset + 4, 4)
    num_blocks = real_num_blocks + _le(data, offset + 3, 1)
    max_len = _le(data, offset + 8, 1)
    min_len = _le(data, offset + 9, 1)
    h = max_len - min_len + 1
    if h < 1:
        raise ValueError(f"invalid code lengths {min_len}..{max_len}")
    num_syms = _le(data, offset + 10 + 2 * h, 2)
    if num_syms >= MAX_SYMS:
        raise ValueError(f"too many symbols: {num_syms}")

    pairs = PairsData(
        data=data,
        idx_bits=idx_bits,
        block_size=block_size,
        min_len=min_len,
        offset=offset + 10,
        sym_pat=offset + 12 + 2 * h,
    )
    next_offset = offset + 12 + 2 * h + 3 * num_syms + (num_syms & 1)

    num_indices = (tb_size + (1 << idx_bits) - 1) >> idx_bits
    sizes = (6 * num_indices, 2 * num_blocks, real_num_blocks << block_size)

    pairs.sym_len = _symbol_lengths(data, pairs.sym_pat, num_syms)

    base = [0] * h
    for i in range(h - 2, -1, -1):
        upper = _le(data, pairs.offset + 2 * i, 2)
        lower = _le(data, pairs.offset + 2 * (i + 1), 2)
        base[i] = ((base[i + 1] + upper - lower) & _MASK64) // 2
    for i in range(h):
        shift = 64 - (min_len + i)
        if shift < 0:
            raise ValueError("code length exceeds 64 bits")
        base[i] = (base[i] << shift) & _MASK64
    pairs.base = base

    return pairs, next_offset, sizes, flags


def find_table_file(paths: Iterable[str | os.PathLike[str]], name: str, suffix: str) -> Path | None:
    """First readable file name+suffix found in the given directories."""
    for directory in paths:
        candidate = Path(directory) / f"{name}{suffix}"
        if candidate.is_file() and os.access(candidate, os.R_OK):
            return candidate
    return None


def test_table_file(paths: Iterable[str | os.PathLike[str]], name: str, suffix: str) -> bool:
    """Whether a complete table file exists for name and suffix."""
    path = find_table_file(paths, name, suffix)
    if path is None:
        return False
    if path.stat().st_size & 63 != 16:
        logger.warning("Incomplete tablebase file %s%s", name, suffix)
        print(f"info string Incomplete tablebase file {name}{suffix}")
        return False
    return True


test_table_file.__test__ = False  # type: ignore[attr-defined]


def _num_tables(entry: TableEntry, table_type: TableType) -> int:
    if not entry.has_pawns:
        return 1
    return 6 if table_type == TableType.DTM else 4


def init_table(entry: TableEntry, data: Any, table_type: TableType) -> None:
    """Read the layout of a table file's contents into entry.

    Fills entry.enc_info[table_type] (split sub-tables follow the main ones;
    missing ones are None), the DTM and DTZ maps, and entry.data. Raises
    ValueError when the data is not a valid table of this type.
    """
    table_type = TableType(table_type)
    if _le(data, 0, 4) != table_type.magic:
        raise ValueError("corrupted table: bad magic number")

    header_flags = _le(data, 4, 1)
    split = table_type != TableType.DTZ and bool(header_flags & 0x01)
    if table_type == TableType.DTM:
        entry.dtm_loss_only = bool(header_flags & 0x04)

    num = _num_tables(entry, table_type)
    if not entry.has_pawns:
        enc = Encoding.PIECE
    else:
        enc = Encoding.FILE if table_type != TableType.DTM else Encoding.RANK

    view = memoryview(data)
    pos = 5
    header_len = entry.num + 1 + int(entry.has_pawns and entry.pawns[1] > 0)
    primary: list[EncInfo] = []
    secondary: list[EncInfo] = []
    tb_sizes: list[tuple[int, int]] = []
    for t in range(num):
        _le(data, pos + header_len - 1, 1)
        info, size0 = init_enc_info(entry, view[pos:], 0, t, enc)
        primary.append(info)
        size1 = 0
        if split:
            info1, size1 = init_enc_info(entry, view[pos:], 4, t, enc)
            secondary.append(info1)
        tb_sizes.append((size0, size1))
        pos += header_len
    pos += pos & 1

    region_sizes: list[tuple[tuple[int, int, int], tuple[int, int, int]]] = []
    dtz_flags: list[int] = []
    for t in range(num):
        pairs, pos, sizes0, flags = setup_pairs(data, pos, tb_sizes[t][0], table_type)
        primary[t].precomp = pairs
        dtz_flags.append(flags)
        sizes1 = (0, 0, 0)
        if split:
            pairs1, pos, sizes1, _ = setup_pairs(data, pos, tb_sizes[t][1], table_type)
            secondary[t].precomp = pairs1
        region_sizes.append((sizes0, sizes1))
    if table_type == TableType.DTZ:
        entry.dtz_flags = dtz_flags

    if table_type == TableType.DTM and not entry.dtm_loss_only:
        map_start = pos
        entry.dtm_map = map_start
        map_idx = [[[0, 0], [0, 0]] for _ in range(num)]
        for t in range(num):
            for side in ((0, 1) if split else (0,)):
                for i in range(2):
                    map_idx[t][side][i] = (pos + 1 - map_start) & 0xFFFF
                    pos += 2 + 2 * _le(data, pos, 2)
        entry.dtm_map_idx = map_idx

    if table_type == TableType.DTZ:
        map_start = pos
        entry.dtz_map = map_start
        dtz_idx = [[0, 0, 0, 0] for _ in range(num)]
        for t in range(num):
            if not dtz_flags[t] & 2:
                continue
            if not dtz_flags[t] & 16:
                for i in range(4):
                    dtz_idx[t][i] = (pos + 1 - map_start) & 0xFFFF
                    pos += 1 + _le(data, pos, 1)
            else:
                pos += pos & 1
                for i in range(4):
                    dtz_idx[t][i] = ((pos - map_start) // 2 + 1) & 0xFFFF
                    pos += 2 + 2 * _le(data, pos, 2)
        pos += pos & 1
        entry.dtz_map_idx = dtz_idx

    for t in range(num):
        primary[t].precomp.index_table = pos
        pos = _claim(data, pos, region_sizes[t][0][0])
        if split:
            secondary[t].precomp.index_table = pos
            pos = _claim(data, pos, region_sizes[t][1][0])

    for t in range(num):
        primary[t].precomp.size_table = pos
        pos = _claim(data, pos, region_sizes[t][0][1])
        if split:
            secondary[t].precomp.size_table = pos
            pos = _claim(data, pos, region_sizes[t][1][1])

    for t in range(num):
        pos = _align64(pos)
        primary[t].precomp.data_offset = pos
        pos = _claim(data, pos, region_sizes[t][0][2])
        if split:
            pos = _align64(pos)
            secondary[t].precomp.data_offset = pos
            pos = _claim(data, pos, region_sizes[t][1][2])

    if table_type == TableType.DTM and entry.has_pawns:
        entry.dtm_switched = calc_key_from_pieces(primary[0].pieces[: entry.num]) != entry.key

    infos: list[EncInfo | None] = list(primary)
    if table_type != TableType.DTZ:
        infos.extend(secondary if split else [None] * num)
    entry.enc_info[table_type] = infos
    entry.data[table_type] = data