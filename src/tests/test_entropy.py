# src/tests/test_entropy.py
"""
Tests that the virtual-move deltas of
  • blockstate.entropy        (EntropyCalculator)
  • blockstate.block_state    (BlockState.virtual_move)

are identical to the change of the fully recomputed entropy after the
move is committed, for every regime (sparse / dense), graph direction and
model option.
"""
from __future__ import annotations

import math
from typing import Dict

import numpy as np
import pytest

from blockstate.graph_data import GraphData
from blockstate.block_state import BlockState
from blockstate.entropy import eterm, eterm_dense, lbinom, vterm, xlogx
from blockstate.exceptions import UnsupportedConfiguration


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------
def _random_state(directed: bool, deg_corr: bool, seed: int, N: int = 14, M: int = 35,
                  B: int = 4) -> BlockState:
    rng = np.random.default_rng(seed)
    edges = [(int(rng.integers(N)), int(rng.integers(N))) for _ in range(M)]
    g = GraphData(N, edges, directed=directed)
    eweight = rng.integers(1, 4, size=M)
    vweight = rng.integers(1, 3, size=N)
    b = rng.integers(0, B, size=N)
    # one extra empty block so that moves can create / empty blocks
    return BlockState(g, b, num_blocks=B + 1, eweight=eweight, vweight=vweight,
                      deg_corr=deg_corr, degs="map")


def _check_moves(state: BlockState, n_moves: int, seed: int, **args) -> None:
    rng = np.random.default_rng(seed)
    entropy_args = {k: args[k] for k in ("dense", "multigraph") if k in args}
    dl_args = {k: args[k] for k in ("partition_dl", "deg_dl", "edges_dl") if k in args}

    for _ in range(n_moves):
        v = int(rng.integers(state.graph_data.num_nodes))
        nr = int(rng.integers(state.num_blocks))
        S0 = state.entropy(**entropy_args, **dl_args)
        dS = state.virtual_move(v, nr, **args)
        state.move_vertex(v, nr)
        S1 = state.entropy(**entropy_args, **dl_args)
        assert S1 - S0 == pytest.approx(dS, abs=1e-8), \
            f"move {v} -> {nr}: full difference {S1 - S0}, virtual {dS}"


# ---------------------------------------------------------------------------
# kernels
# ---------------------------------------------------------------------------
def test_xlogx_and_lbinom() -> None:
    assert xlogx(0) == 0.0
    assert xlogx(-1.0) == 0.0
    assert xlogx(3.0) == pytest.approx(3 * math.log(3))
    assert lbinom(5, 2) == pytest.approx(math.log(10))
    assert lbinom(5, 0) == 0.0
    assert lbinom(5, 5) == 0.0
    assert lbinom(0, 3) == 0.0


def test_eterm_halves_undirected_diagonal() -> None:
    assert eterm(1, 1, 3, False) == pytest.approx(-xlogx(6.0) / 2)
    assert eterm(1, 2, 3, False) == pytest.approx(-xlogx(3.0))
    assert eterm(1, 1, 3, True) == pytest.approx(-xlogx(3.0))


def test_vterm() -> None:
    assert vterm(4, 4, 2, True, False) == pytest.approx(xlogx(4.0))
    assert vterm(4, 2, 3, False, True) == pytest.approx(6 * math.log(3))


def test_eterm_dense() -> None:
    assert eterm_dense(0, 1, 0, 3.0, 4.0, False, False) == 0.0
    assert eterm_dense(0, 1, 2, 3.0, 4.0, False, False) == pytest.approx(lbinom(12, 2))
    assert eterm_dense(0, 0, 2, 4.0, 4.0, False, False) == pytest.approx(lbinom(6, 2))
    assert eterm_dense(0, 0, 2, 4.0, 4.0, True, False) == pytest.approx(lbinom(10 + 1, 2))


# ---------------------------------------------------------------------------
# virtual moves vs full recomputation
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("directed", [False, True])
@pytest.mark.parametrize("deg_corr", [False, True])
@pytest.mark.parametrize("multigraph", [False, True])
def test_sparse_virtual_move_matches_entropy_difference(directed: bool, deg_corr: bool,
                                                         multigraph: bool) -> None:
    state = _random_state(directed, deg_corr, seed=1)
    _check_moves(state, 60, seed=2, dense=False, multigraph=multigraph)


@pytest.mark.parametrize("directed", [False, True])
@pytest.mark.parametrize("multigraph", [False, True])
def test_dense_virtual_move_matches_entropy_difference(directed: bool, multigraph: bool) -> None:
    state = _random_state(directed, deg_corr=False, seed=3)
    _check_moves(state, 60, seed=4, dense=True, multigraph=multigraph)


@pytest.mark.parametrize("directed", [False, True])
def test_both_regimes_return_zero_for_noop(directed: bool) -> None:
    state = _random_state(directed, deg_corr=False, seed=5)
    for v in range(state.graph_data.num_nodes):
        r = int(state.b[v])
        assert state.virtual_move(v, r, dense=False) == 0.0
        assert state.virtual_move(v, r, dense=True) == 0.0


def test_dense_entropy_rejects_degree_correction() -> None:
    state = _random_state(False, deg_corr=True, seed=6)
    with pytest.raises(UnsupportedConfiguration):
        state.dense_entropy()
    with pytest.raises(UnsupportedConfiguration):
        state.virtual_move(0, (int(state.b[0]) + 1) % state.num_blocks, dense=True)


def test_virtual_move_does_not_mutate() -> None:
    state = _random_state(True, deg_corr=True, seed=7)
    S0 = state.entropy()
    b0 = state.get_blocks()
    for v in range(state.graph_data.num_nodes):
        state.virtual_move(v, (int(state.b[v]) + 1) % state.num_blocks,
                           partition_dl=True, deg_dl=True, edges_dl=True)
    assert state.entropy() == pytest.approx(S0)
    assert np.array_equal(state.get_blocks(), b0)


def test_parallel_entropy_counts_multiplicities() -> None:
    # two parallel 0-1 edges (weights 2 and 1) and a self-loop of weight 2 on 2
    g = GraphData(3, [(0, 1), (1, 0), (2, 2)])
    state = BlockState(g, [0, 0, 1], eweight=[2, 1, 2])
    expected = math.lgamma(3 + 1) + math.lgamma(2 + 1)
    assert state.get_parallel_entropy() == pytest.approx(expected)


def test_deg_entropy_of_vertex() -> None:
    g = GraphData(3, [(0, 1), (0, 2)], directed=True)
    state = BlockState(g, [0, 0, 1], eweight=[1, 2])
    assert state.get_deg_entropy(0) == pytest.approx(-math.lgamma(3 + 1))
    assert state.get_deg_entropy(2) == pytest.approx(-math.lgamma(2 + 1))


def test_entry_set_of_move() -> None:
    g = GraphData(4, [(0, 1), (1, 2), (2, 3), (3, 0), (1, 1)])
    state = BlockState(g, [0, 0, 1, 1], eweight=[1, 1, 1, 1, 2])
    entries: Dict = dict(state.get_move_entries(1, 1))
    # 0-1 leaves (0,0) for (0,1); 1-2 leaves (0,1) for (1,1); the loop moves (0,0) -> (1,1)
    assert entries == {(0, 0): -3, (1, 1): 3}
