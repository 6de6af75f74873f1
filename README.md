# arcanum

Pure-Python tools for probing Syzygy endgame tablebases:

- win/draw/loss (`.rtbw`) and distance-to-zero (`.rtbz`) probes,
- ranking and scoring of root moves from those tables,
- a small bitboard position and move generator used by the prober,
- a millisecond/nanosecond stopwatch.

The package has no dependencies outside the standard library.

## Installation

```
pip install .
```

Running the tests needs the `test` extra:

```
pip install ".[test]"
pytest
```

## Positions and moves

`arcanum.position.Position` is a frozen dataclass of bitboards. Bit 0 is a1
and bit 63 is h8; `turn` is `True` when white is to move; `ep` is the en
passant target square, or 0 when there is none.

```python
from arcanum.position import Position, make_move, Promotion

# White: Ke1, Qd1. Black: Ke8. White to move.
position = Position(
    white=(1 << 4) | (1 << 3),
    black=1 << 60,
    kings=(1 << 4) | (1 << 60),
    queens=1 << 3,
    turn=True,
)

moves = position.generate_legal()     # 16-bit move integers
child = position.do_move(moves[0])    # a new Position
print(position.is_check(), child.is_legal())
print(make_move(Promotion.NONE, 3, 59))
```

A move holds the target square in bits 0-5, the origin square in bits 6-11
and the promotion piece (`Promotion`) in bits 12-14; `move_from`, `move_to`
and `move_promotes` take it apart. `do_move` does not check legality: call
`is_legal()` on the result, or `legal_move(move)` on the parent. Castling is
not generated.

`arcanum.attacks` provides `popcount`, `lsb`, `iter_bits` and the attack sets
`pawn_attacks`, `knight_attacks`, `bishop_attacks`, `rook_attacks`,
`queen_attacks` and `king_attacks` (colour 1 is white, 0 is black).

## Probing tablebases

```python
from arcanum.prober import Tablebase

tb = Tablebase()
tb.init("/path/to/syzygy")   # several directories joined with os.pathsep
print(tb.largest, tb.num_wdl, tb.num_dtz)

wdl = tb.probe_wdl(position)   # a Wdl, or None when no table answers
dtz = tb.probe_dtz(position)   # signed plies to a zeroing move, or None

root = tb.probe_root(position)
if root is not None:
    suggestion, per_move = root  # ProbeResult, list[ProbeResult]

ranked = tb.root_probe_dtz(position, has_repeated=False, use_rule50=True)
ranked_wdl = tb.root_probe_wdl(position, use_rule50=True)
tb.free()
```

`Tablebase(path)` may also be given the path directly. Tables are found by
material signature (such as `KQvK`); `table_names(max_pieces)` lists every
signature scanned for, up to seven pieces. Files are memory-mapped the first
time a position of their material is probed. Every probe returns `None` when
the available tables cannot answer it.

`probe_root` returns the module constants `CHECKMATE` or `STALEMATE` as the
suggestion when the side to move has no move left. `root_probe_dtz` and
`root_probe_wdl` return a list of `RootMove` with `tb_rank` and `tb_score`
for each legal move; mate scores are based on `Tablebase(value_mate=...)`,
32000 by default.

## Results

`arcanum.results` holds `Wdl` (`LOSS`, `BLESSED_LOSS`, `DRAW`, `CURSED_WIN`,
`WIN`), `ProbeResult`, `RootMove` and `dtz_to_wdl(cnt50, dtz)`.
`ProbeResult.pack()` and `ProbeResult.unpack(value)` convert between the
result object and the 32-bit packed form used by other Syzygy tools;
unpacking the failed-probe value `0xFFFFFFFF` raises `ValueError`.

## Lower-level modules

- `arcanum.encoding` turns piece squares into table indices (`encode`,
  `leading_pawn`, `init_enc_info`, `binomial`, `subfactor`).
- `arcanum.tablefile` locates table files (`find_table_file`,
  `test_table_file`), reads their layout (`init_table`, `setup_pairs`) and
  decompresses stored values (`PairsData.decompress`).

## Timer

```python
from arcanum.timer import Timer

timer = Timer()
timer.start()
...
print(timer.elapsed_ms(), timer.elapsed_ns())
```

## What this package does not do

It is not a chess engine. There is no search, no evaluation, no hash table
for search results and no UCI command or other program to run. DTM
(`.rtbm`) files are counted when the path is scanned but are never probed.
Positions are built from bitboards only; there is no FEN parser.