"""
Description-length bookkeeping of a partition.

One ``PartitionStatsSegment`` is kept per vertex constraint label. It holds
the block sizes, the degree sums and the per-block degree histograms of
the vertices carrying that label, and answers full and incremental
description-length queries. ``PartitionStats`` owns the segments and the
quantities they share (total edge weight, number of non-empty blocks).
"""
from typing import DefaultDict, Dict, List, Literal, Tuple
from collections import Counter, defaultdict
import math

import numpy as np
from numba import jit
from scipy.special import spence

from blockstate.block_data import BlockData
from blockstate.degree_sequences import DegreeSequences
from blockstate.entropy import lbinom, safelog, xlogx
from blockstate.property_maps import WeightMap

DegreeDLKind = Literal["distributed", "entropy", "uniform"]

# ────────────────────────────────────────────────────────────────────
# Number of partitions of n into at most k parts
# ────────────────────────────────────────────────────────────────────
Q_CACHE_MAX_N = 1000

_q_cache: np.ndarray = np.zeros((0, 0))


@jit(nopython=True, cache=True)
def _log_sum_exp(a: float, b: float) -> float:
    if a == -np.inf:
        return b
    if b == -np.inf:
        return a
    m = max(a, b)
    return m + math.log1p(math.exp(-abs(a - b)))


@jit(nopython=True, cache=True)
def _build_log_q_table(n_max: int) -> np.ndarray:
    """
    log q(n, k) for 0 <= k <= n <= n_max, with q(n, k) = q(n, k-1) + q(n-k, k).
    Entries with k > n are filled with q(n, n).
    """
    table = np.full((n_max + 1, n_max + 1), -np.inf)
    for k in range(n_max + 1):
        table[0, k] = 0.0
    for n in range(1, n_max + 1):
        for k in range(1, n_max + 1):
            if k > n:
                table[n, k] = table[n, n]
                continue
            table[n, k] = _log_sum_exp(table[n, k - 1], table[n - k, k])
    return table


def init_q_cache(n_max: int) -> None:
    global _q_cache
    n_max = min(int(n_max), Q_CACHE_MAX_N)
    if n_max < _q_cache.shape[0]:
        return
    _q_cache = _build_log_q_table(n_max)


def _get_v(u: float, epsilon: float = 1e-8, max_iter: int = 10_000) -> float:
    v = u
    for _ in range(max_iter):
        n_v = u * math.sqrt(spence(math.exp(-v)))
        delta = abs(n_v - v)
        v = n_v
        if delta <= epsilon:
            break
    return v


def log_q_approx_small(n: int, k: int) -> float:
    return lbinom(n - 1, k - 1) - math.lgamma(k + 1)


def log_q_approx(n: int, k: int) -> float:
    """Asymptotic log q(n, k) for n beyond the exact table."""
    if k < n ** 0.25:
        return log_q_approx_small(n, k)
    u = k / math.sqrt(n)
    v = _get_v(u)
    lf = (math.log(v) - math.log1p(-math.exp(-v) * (1 + u * u / 2)) / 2
          - math.log(2) * 3 / 2 - math.log(u) - math.log(math.pi))
    g = 2 * v / u - u * math.log1p(-math.exp(-v))
    return lf - math.log(n) + math.sqrt(n) * g


def log_q(n: int, k: int) -> float:
    """log of the number of partitions of n into at most k parts."""
    n, k = int(n), int(k)
    if k > n:
        k = n
    if n <= 0 or k < 1:
        return 0.0
    if n <= Q_CACHE_MAX_N:
        if n >= _q_cache.shape[0]:
            init_q_cache(max(2 * n, 64))
        return float(_q_cache[n, k])
    return log_q_approx(n, k)


def edges_dl(B: int, E: int, directed: bool) -> float:
    """log of the number of block matrices with B blocks and E edges."""
    x = B * B if directed else (B * (B + 1)) / 2
    return lbinom(x + E - 1, E)


# ────────────────────────────────────────────────────────────────────
# Per-label statistics
# ────────────────────────────────────────────────────────────────────
class PartitionStatsSegment:
    def __init__(self, E: int, directed: bool):
        self.E = E
        self.directed = directed
        self.N = 0
        self.actual_B = 0
        self.total: DefaultDict[int, int] = defaultdict(int)
        self.ep: DefaultDict[int, int] = defaultdict(int)
        self.em: DefaultDict[int, int] = defaultdict(int)
        self.hist: DefaultDict[int, Counter] = defaultdict(Counter)

    def change_vertex(self,
                      n: int,
                      r: int,
                      degs: List[Tuple[int, int, int]],
                      deg_corr: bool,
                      diff: int,
        ) -> int:
        """
        Add (diff=+1) or remove (diff=-1) a vertex of weight n with degree
        entries degs to/from block r.

        :return: change in the number of non-empty blocks.
        """
        dB = 0
        if diff > 0 and n > 0 and self.total[r] == 0:
            dB = 1
        self.total[r] += diff * n
        self.N += diff * n
        assert self.total[r] >= 0, f"negative size of block {r}"
        if diff < 0 and n > 0 and self.total[r] == 0:
            dB = -1
        self.actual_B += dB

        if deg_corr:
            h = self.hist[r]
            for kin, kout, m in degs:
                h[(kin, kout)] += diff * m
                if h[(kin, kout)] == 0:
                    del h[(kin, kout)]
                self.ep[r] += diff * kout * m
                self.em[r] += diff * kin * m
        return dB

    # ----- full description lengths ----------------------------------
    def get_partition_dl(self) -> float:
        S = lbinom(self.N - 1, self.actual_B - 1)
        S += math.lgamma(self.N + 1)
        for nr in self.total.values():
            S -= math.lgamma(nr + 1)
        S += safelog(self.N)
        return S

    def get_deg_dl(self, kind: DegreeDLKind = "distributed") -> float:
        S = 0.0
        for r, n in self.total.items():
            if n == 0:
                continue
            h = self.hist[r]
            if kind == "distributed":
                S += log_q(self.ep[r], n) + log_q(self.em[r], n)
                S += math.lgamma(n + 1)
                for eta in h.values():
                    S -= math.lgamma(eta + 1)
            elif kind == "entropy":
                S += xlogx(n)
                for eta in h.values():
                    S -= xlogx(eta)
            elif kind == "uniform":
                S += lbinom(n + self.ep[r] - 1, self.ep[r])
                S += lbinom(n + self.em[r] - 1, self.em[r])
            else:
                raise ValueError(f"unknown degree description length kind {kind!r}")
        return S

    # ----- incremental description lengths ---------------------------
    def get_delta_dl(self, n: int, r: int, nr: int) -> float:
        """Partition description length change of moving weight n from r to nr."""
        if r == nr or n == 0:
            return 0.0

        S_b = math.lgamma(self.total[r] + 1) + math.lgamma(self.total[nr] + 1)
        S_a = math.lgamma(self.total[r] - n + 1) + math.lgamma(self.total[nr] + n + 1)
        # the block sizes enter the description length with a negative sign
        dS = S_b - S_a

        dB = 0
        if self.total[r] == n:
            dB -= 1
        if self.total[nr] == 0:
            dB += 1
        if dB != 0:
            dS += lbinom(self.N - 1, self.actual_B + dB - 1) - lbinom(self.N - 1, self.actual_B - 1)
        return dS

    def _block_deg_dl(self, r: int, n_delta: int, kout_delta: int, kin_delta: int,
                      ks: Dict[Tuple[int, int], int]) -> float:
        n = self.total[r] + n_delta
        if n == 0:
            return 0.0
        S = log_q(self.ep[r] + kout_delta, n) + log_q(self.em[r] + kin_delta, n)
        S += math.lgamma(n + 1)
        h = self.hist[r]
        sign = 1 if n_delta >= 0 else -1
        for k, m in ks.items():
            S -= math.lgamma(h.get(k, 0) + sign * m + 1)
        return S

    def get_delta_deg_dl(self, n: int, r: int, nr: int, degs: List[Tuple[int, int, int]]) -> float:
        """
        Degree description length change of moving a vertex of weight n
        and degree entries degs from r to nr (distributed kind).
        """
        if r == nr or n == 0:
            return 0.0

        ks: Dict[Tuple[int, int], int] = Counter()
        dkin, dkout = 0, 0
        for kin, kout, m in degs:
            ks[(kin, kout)] += m
            dkin += kin * m
            dkout += kout * m

        no_change = {k: 0 for k in ks}
        dS = 0.0
        dS += self._block_deg_dl(r, -n, -dkout, -dkin, ks)
        dS -= self._block_deg_dl(r, 0, 0, 0, no_change)
        dS += self._block_deg_dl(nr, n, dkout, dkin, ks)
        dS -= self._block_deg_dl(nr, 0, 0, 0, no_change)
        return dS

    def copy(self) -> "PartitionStatsSegment":
        other = PartitionStatsSegment(self.E, self.directed)
        other.N = self.N
        other.actual_B = self.actual_B
        other.total = defaultdict(int, self.total)
        other.ep = defaultdict(int, self.ep)
        other.em = defaultdict(int, self.em)
        other.hist = defaultdict(Counter, {r: Counter(h) for r, h in self.hist.items()})
        return other


class PartitionStats:
    """
    Statistics of every label segment plus the quantities shared by all of them.
    """
    def __init__(self,
                 block_data: BlockData,
                 clabel: np.ndarray,
                 eweight: WeightMap,
                 vweight: WeightMap,
                 degs: DegreeSequences,
                 deg_corr: bool,
        ):
        g = block_data.graph_data
        self.directed = block_data.directed
        self.deg_corr = deg_corr
        self.clabel = clabel
        self.E = sum(eweight[e] for e in g.edges())
        self.total_B = block_data.nonempty_blocks()

        C = int(clabel.max()) + 1 if len(clabel) > 0 else 0
        self.segments = [PartitionStatsSegment(self.E, self.directed) for _ in range(C)]

        for v in g.vertices():
            seg = self.segments[clabel[v]]
            seg.change_vertex(vweight[v], int(block_data.b[v]),
                              degs.get(v, g, eweight, vweight), deg_corr, +1)

        for seg in self.segments:
            for r, n in seg.total.items():
                assert n == block_data.wr[r], \
                    f"block {r}: size {n} disagrees with block weight {block_data.wr[r]}"

    def segment(self, v: int) -> PartitionStatsSegment:
        return self.segments[self.clabel[v]]

    def change_vertex(self, v: int, r: int, n: int, degs: List[Tuple[int, int, int]], diff: int) -> None:
        self.total_B += self.segment(v).change_vertex(n, r, degs, self.deg_corr, diff)

    def get_partition_dl(self) -> float:
        return sum(seg.get_partition_dl() for seg in self.segments)

    def get_deg_dl(self, kind: DegreeDLKind = "distributed") -> float:
        return sum(seg.get_deg_dl(kind) for seg in self.segments)

    def get_edges_dl(self) -> float:
        return edges_dl(self.total_B, self.E, self.directed)

    def get_delta_edges_dl(self, v: int, r: int, nr: int, n: int) -> float:
        if r == nr or n == 0:
            return 0.0
        seg = self.segment(v)
        dB = 0
        if seg.total[r] == n:
            dB -= 1
        if seg.total[nr] == 0:
            dB += 1
        if dB == 0:
            return 0.0
        return (edges_dl(self.total_B + dB, self.E, self.directed)
                - edges_dl(self.total_B, self.E, self.directed))

    def copy(self) -> "PartitionStats":
        other = PartitionStats.__new__(PartitionStats)
        other.directed = self.directed
        other.deg_corr = self.deg_corr
        other.clabel = self.clabel
        other.E = self.E
        other.total_B = self.total_B
        other.segments = [seg.copy() for seg in self.segments]
        return other
