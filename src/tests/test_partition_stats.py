# src/tests/test_partition_stats.py
"""
Unit-tests for blockstate.partition_stats

  • log_q           exact table and asymptotic approximation
  • DL deltas       partition / degree / edges description lengths under moves
"""
from __future__ import annotations

import math

import numpy as np
import pytest

from blockstate.graph_data import GraphData
from blockstate.block_state import BlockState
from blockstate.partition_stats import edges_dl, log_q, log_q_approx


###############################################################################
# helpers
###############################################################################
def _brute_q(n: int, k: int) -> int:
    """Partitions of n into at most k parts (plain recursion)."""
    table = [[0] * (k + 1) for _ in range(n + 1)]
    for j in range(k + 1):
        table[0][j] = 1
    for i in range(1, n + 1):
        for j in range(1, k + 1):
            table[i][j] = table[i][j - 1] + (table[i - j][j] if j <= i else 0)
    return table[n][k]


def _state(directed: bool, seed: int, clabel: bool = False) -> BlockState:
    rng = np.random.default_rng(seed)
    N, M, B = 16, 40, 4
    edges = [(int(rng.integers(N)), int(rng.integers(N))) for _ in range(M)]
    g = GraphData(N, edges, directed=directed)
    labels = np.zeros(N, dtype=np.int64)
    b = rng.integers(0, B, size=N)
    if clabel:
        # blocks 0, 1 (and the spare 4) carry label 0, blocks 2, 3 (and 5) label 1
        labels = (b >= 2).astype(np.int64)
    bclabel = [0, 0, 1, 1, 0, 1]
    return BlockState(g, b, num_blocks=B + 2, eweight=rng.integers(1, 3, size=M),
                      vweight=rng.integers(1, 3, size=N), clabel=labels,
                      bclabel=bclabel if clabel else None)


###############################################################################
# log_q
###############################################################################
@pytest.mark.parametrize("n,k", [(5, 5), (5, 2), (10, 10), (10, 3), (30, 7), (50, 50)])
def test_log_q_exact(n: int, k: int) -> None:
    assert log_q(n, k) == pytest.approx(math.log(_brute_q(n, k)))


def test_log_q_degenerate_cases() -> None:
    assert log_q(0, 3) == 0.0
    assert log_q(4, 0) == 0.0
    assert log_q(3, 10) == pytest.approx(math.log(3))  # k is clipped to n


@pytest.mark.parametrize("k", [3, 100, 1000])
def test_log_q_approx_close_to_exact(k: int) -> None:
    exact = log_q(1000, k)
    approx = log_q_approx(1000, k)
    assert approx == pytest.approx(exact, rel=0.05), f"k={k}: exact {exact}, approx {approx}"


def test_log_q_beyond_table_is_finite_and_increasing() -> None:
    a, b = log_q(5000, 5000), log_q(6000, 6000)
    assert math.isfinite(a) and math.isfinite(b)
    assert b > a


def test_edges_dl() -> None:
    assert edges_dl(3, 10, directed=False) == pytest.approx(
        math.lgamma(6 + 10) - math.lgamma(10 + 1) - math.lgamma(6))
    assert edges_dl(2, 5, directed=True) == pytest.approx(
        math.lgamma(4 + 5) - math.lgamma(5 + 1) - math.lgamma(4))


###############################################################################
# description-length deltas
###############################################################################
@pytest.mark.parametrize("directed", [False, True])
@pytest.mark.parametrize("clabel", [False, True])
def test_dl_deltas_match_full_recomputation(directed: bool, clabel: bool) -> None:
    state = _state(directed, seed=1, clabel=clabel)
    rng = np.random.default_rng(2)
    for _ in range(80):
        v = int(rng.integers(state.graph_data.num_nodes))
        nr = int(rng.integers(state.num_blocks))
        if state.block_data.bclabel[nr] != state.block_data.bclabel[state.b[v]]:
            assert state.virtual_move(v, nr, partition_dl=True) == np.inf
            continue

        P0, D0, E0 = state.get_partition_dl(), state.get_deg_dl(), state.get_edges_dl()
        dP = state.virtual_move(v, nr, partition_dl=True) - state.virtual_move(v, nr)
        dD = state.virtual_move(v, nr, deg_dl=True) - state.virtual_move(v, nr)
        dE = state.virtual_move(v, nr, edges_dl=True) - state.virtual_move(v, nr)
        assert state.get_delta_dl(v, nr) == pytest.approx(dP, abs=1e-9)

        state.move_vertex(v, nr)
        assert state.get_partition_dl() - P0 == pytest.approx(dP, abs=1e-8)
        assert state.get_deg_dl() - D0 == pytest.approx(dD, abs=1e-8)
        assert state.get_edges_dl() - E0 == pytest.approx(dE, abs=1e-8)


def test_incremental_stats_equal_rebuilt_stats() -> None:
    state = _state(False, seed=3)
    state.enable_partition_stats()
    rng = np.random.default_rng(4)
    for _ in range(50):
        state.move_vertex(int(rng.integers(16)), int(rng.integers(state.num_blocks)))

    incremental = (state.get_partition_dl(), state.get_deg_dl(), state.get_edges_dl())
    state.disable_partition_stats()
    assert not state.is_partition_stats_enabled()
    rebuilt = (state.get_partition_dl(), state.get_deg_dl(), state.get_edges_dl())
    assert incremental == pytest.approx(rebuilt)


def test_deg_dl_kinds() -> None:
    state = _state(True, seed=5)
    for kind in ("distributed", "entropy", "uniform"):
        assert math.isfinite(state.get_deg_dl(kind))
    with pytest.raises(ValueError):
        state.get_deg_dl("exponential")  # type: ignore


def test_init_mcmc_toggles_structures() -> None:
    state = _state(False, seed=6)
    state.init_mcmc(c=1.0, dl=True)
    assert state.is_partition_stats_enabled()
    assert state.proposer.egroups is not None
    state.init_mcmc(c=np.inf, dl=False)
    assert not state.is_partition_stats_enabled()
    assert state.proposer.egroups is None
