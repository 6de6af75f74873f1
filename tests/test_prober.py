import os

import pytest

from arcanum.position import Position, move_from, move_to
from arcanum.prober import Tablebase, table_names
from arcanum.results import Wdl

E1, D1, E8 = 4, 3, 60


def kings_only(turn=True):
    return Position(
        white=1 << E1,
        black=1 << E8,
        kings=(1 << E1) | (1 << E8),
        turn=turn,
    )


def king_queen_king():
    return Position(
        white=(1 << E1) | (1 << D1),
        black=1 << E8,
        kings=(1 << E1) | (1 << E8),
        queens=1 << D1,
        turn=True,
    )


def test_table_names_start_with_three_piece_tables():
    names = table_names(3)
    assert len(names) == 5
    assert names[0] == "KQvK"
    assert all(name.startswith("K") and name.count("v") == 1 for name in names)


def test_table_names_are_unique_and_bounded():
    for limit in (3, 4, 5, 6, 7):
        names = table_names(limit)
        assert len(names) == len(set(names))
        assert all(len(name) - 1 <= limit for name in names)


def test_table_names_grow_by_prefix():
    small = table_names(4)
    large = table_names(6)
    assert large[: len(small)] == small
    assert len(large) > len(small)


def test_empty_path_leaves_no_tables():
    tb = Tablebase()
    assert tb.init("") is True
    assert tb.largest == 0
    assert tb.num_wdl == 0


def test_init_counts_complete_files(tmp_path):
    (tmp_path / "KQvK.rtbw").write_bytes(b"\x00" * 16)
    (tmp_path / "KQvK.rtbz").write_bytes(b"\x00" * 80)
    (tmp_path / "KRvK.rtbw").write_bytes(b"\x00" * 17)
    tb = Tablebase()
    tb.init(str(tmp_path))
    assert tb.num_wdl == 1
    assert tb.num_dtz == 1
    assert tb.num_dtm == 0
    assert tb.largest == 3


def test_init_searches_several_directories(tmp_path):
    first = tmp_path / "a"
    second = tmp_path / "b"
    first.mkdir()
    second.mkdir()
    (second / "KRvK.rtbw").write_bytes(b"\x00" * 16)
    tb = Tablebase(os.pathsep.join([str(first), str(second)]))
    assert tb.num_wdl == 1


def test_free_resets_counters(tmp_path):
    (tmp_path / "KQvK.rtbw").write_bytes(b"\x00" * 16)
    tb = Tablebase(str(tmp_path))
    assert tb.largest == 3
    tb.free()
    assert tb.largest == 0
    assert tb.num_wdl == 0


@pytest.mark.parametrize("turn", [True, False])
def test_bare_kings_are_drawn(turn):
    tb = Tablebase()
    assert tb.probe_wdl(kings_only(turn)) == Wdl.DRAW
    assert tb.probe_dtz(kings_only(turn)) == 0


def test_missing_table_gives_no_answer():
    tb = Tablebase()
    assert tb.probe_wdl(king_queen_king()) is None
    assert tb.probe_dtz(king_queen_king()) is None
    assert tb.probe_root(king_queen_king()) is None


def test_corrupted_table_gives_no_answer(tmp_path):
    (tmp_path / "KQvK.rtbw").write_bytes(b"\x00" * 16)
    tb = Tablebase(str(tmp_path))
    assert tb.probe_wdl(king_queen_king()) is None
    assert tb.probe_wdl(king_queen_king()) is None


def test_probe_root_on_bare_kings_keeps_the_draw():
    tb = Tablebase()
    position = kings_only()
    outcome = tb.probe_root(position)
    assert outcome is not None
    suggestion, results = outcome
    legal = position.generate_legal()
    assert suggestion.wdl == Wdl.DRAW
    assert suggestion.dtz == 0
    assert (suggestion.from_square, suggestion.to_square) == (move_from(legal[0]), move_to(legal[0]))
    assert len(results) == len(legal)
    assert all(result.wdl == Wdl.DRAW for result in results)
    assert [(r.from_square, r.to_square) for r in results] == [
        (move_from(m), move_to(m)) for m in legal
    ]


def test_root_probe_wdl_ranks_bare_kings_as_draws():
    tb = Tablebase()
    position = kings_only()
    ranked = tb.root_probe_wdl(position, True)
    assert ranked is not None
    assert [r.move for r in ranked] == position.generate_legal()
    assert all(r.tb_rank == 0 and r.tb_score == 0 for r in ranked)


def test_root_probe_dtz_ranks_bare_kings_as_draws():
    tb = Tablebase()
    position = kings_only(turn=False)
    ranked = tb.root_probe_dtz(position, False, True)
    assert ranked is not None
    assert len(ranked) == len(position.generate_legal())
    assert all(r.tb_rank == 0 and r.tb_score == 0 for r in ranked)


def test_root_probes_fail_without_tables():
    tb = Tablebase()
    assert tb.root_probe_wdl(king_queen_king(), True) is None
    assert tb.root_probe_dtz(king_queen_king(), False, True) is None