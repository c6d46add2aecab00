# src/tests/test_merge.py
"""
Unit-tests for vertex merges (BlockState.merge_vertices / VertexMover).

    0──1      block 0 = {0, 1}
    │╲ │      block 1 = {2, 3}
    2──3      plus a self-loop on 1
"""
from __future__ import annotations

from typing import Dict

import numpy as np
import pytest

from blockstate.graph_data import GraphData
from blockstate.block_state import BlockState
from blockstate.property_maps import PropertyMap
from blockstate.exceptions import InvalidOperation


###############################################################################
# helpers
###############################################################################
def _toy_state(directed: bool = False, **kwargs) -> BlockState:
    edges = [(0, 1), (0, 2), (0, 3), (1, 3), (2, 3), (1, 1)]
    g = GraphData(4, edges, directed=directed)
    return BlockState(g, [0, 0, 1, 1],
                      eweight=PropertyMap([1, 2, 1, 3, 1, 2]),
                      vweight=PropertyMap([1, 1, 1, 1]),
                      **kwargs)


def _block_pairs(state: BlockState) -> Dict:
    bd = state.block_data
    return {(r, s): int(bd.mrs[h]) for h, r, s in bd.index.items()}


def _weighted_degree(state: BlockState, v: int) -> int:
    g = state.graph_data
    return g.out_degree(v, state.eweight) + g.in_degree(v, state.eweight)


###############################################################################
# tests
###############################################################################
@pytest.mark.parametrize("directed", [False, True])
def test_merge_keeps_aggregates(directed: bool) -> None:
    state = _toy_state(directed)
    before = _block_pairs(state)
    mrp, wr = state.block_data.mrp.copy(), state.block_data.wr.copy()

    state.merge_vertices(0, 1)

    assert _block_pairs(state) == before
    assert np.array_equal(state.block_data.mrp, mrp)
    assert np.array_equal(state.block_data.wr, wr)


@pytest.mark.parametrize("directed", [False, True])
def test_merged_vertex_has_no_weight_left(directed: bool) -> None:
    state = _toy_state(directed)
    g = state.graph_data
    u_edges = [e for e, _ in g.all_edges(0)]
    deg_u, deg_v = _weighted_degree(state, 0), _weighted_degree(state, 1)

    state.merge_vertices(0, 1)

    assert list(g.all_edges(0)) == []
    assert all(state.eweight[e] == 0 for e in u_edges)
    assert state.vweight[0] == 0 and state.vweight[1] == 2
    assert _weighted_degree(state, 1) == deg_u + deg_v
    assert state.merge_map[0] == 1


def test_merge_folds_parallel_edges() -> None:
    state = _toy_state(False)
    g = state.graph_data
    state.merge_vertices(0, 1)

    to_3 = [e for e, u in g.out_edges(1) if u == 3]
    assert len(to_3) == 1, "edges 0-3 and 1-3 should be folded into one"
    assert state.eweight[to_3[0]] == 1 + 3

    loops = {e for e, u in g.out_edges(1) if u == 1}
    assert len(loops) == 1
    # old loop (2) plus the 0-1 edge (1)
    assert state.eweight[loops.pop()] == 3


def test_merge_respects_edge_labels() -> None:
    state = _toy_state(False)
    g = state.graph_data
    ec = PropertyMap([0, 0, 1, 0, 0, 0])  # edge 0-3 has a different label than 1-3
    state.merge_vertices(0, 1, ec=ec)

    to_3 = sorted(state.eweight[e] for e, u in g.out_edges(1) if u == 3)
    assert to_3 == [1, 3]
    new_edge = max(e for e, u in g.out_edges(1) if u == 3)
    assert ec[new_edge] == 1


def test_merge_across_blocks_moves_first() -> None:
    state = _toy_state(False)
    state.merge_vertices(2, 1)
    assert state.b[2] == 0
    assert state.block_data.wr.tolist() == [3, 1]
    S = state.entropy()
    assert np.isfinite(S)


def test_merge_then_moves_stay_consistent() -> None:
    state = _toy_state(False, degs="map")
    state.enable_partition_stats()
    state.init_mcmc(c=1.0, dl=True)
    state.merge_vertices(0, 1)

    S0 = state.entropy(partition_dl=True, deg_dl=True)
    dS = state.virtual_move(1, 1, partition_dl=True, deg_dl=True)
    state.move_vertex(1, 1)
    assert state.entropy(partition_dl=True, deg_dl=True) - S0 == pytest.approx(dS)

    rng = np.random.default_rng(0)
    assert state.sample_block(1, 1.0, rng=rng) in (0, 1)


def test_merge_with_self_is_noop() -> None:
    state = _toy_state(False)
    before = _block_pairs(state)
    state.merge_vertices(2, 2)
    assert _block_pairs(state) == before
    assert state.vweight[2] == 1


def test_merge_requires_explicit_weights() -> None:
    g = GraphData(3, [(0, 1), (1, 2)])
    state = BlockState(g, [0, 0, 1])
    with pytest.raises(InvalidOperation):
        state.merge_vertices(0, 1)


def test_merge_unions_degree_sequences() -> None:
    state = _toy_state(False, degs="map")
    g = state.graph_data
    entries_u = state.degs.get(0, g, state.eweight, state.vweight)
    entries_v = state.degs.get(1, g, state.eweight, state.vweight)
    state.merge_vertices(0, 1)
    merged = state.degs.get(1, g, state.eweight, state.vweight)
    assert sorted(merged) == sorted(entries_u + entries_v)
    assert state.degs.get(0, g, state.eweight, state.vweight) == []


def _brute_block_pairs(state: BlockState) -> Dict:
    g, b = state.graph_data, state.b
    pairs: Dict = {}
    for e in g.edges():
        w = state.eweight[e]
        if w == 0:
            continue
        r, s = int(b[g.source(e)]), int(b[g.target(e)])
        key = (r, s) if g.directed else (min(r, s), max(r, s))
        pairs[key] = pairs.get(key, 0) + w
    return pairs


def test_merge_onto_zero_weight_edge_then_move() -> None:
    # edge 1-2 carries no weight until the 0-2 weight is folded onto it
    g = GraphData(3, [(0, 2), (1, 2), (0, 1)])
    state = BlockState(g, [0, 0, 1],
                       eweight=PropertyMap([2, 0, 1]),
                       vweight=PropertyMap([1, 1, 1]))
    state.merge_vertices(0, 1)
    assert state.eweight[1] == 2
    assert _block_pairs(state) == _brute_block_pairs(state)

    state.move_vertex(1, 1)
    assert _block_pairs(state) == _brute_block_pairs(state)
    assert state.block_data.wr.tolist() == [0, 3]
