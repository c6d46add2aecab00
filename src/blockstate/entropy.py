from typing import Dict
from collections import defaultdict
import math

import numpy as np
from numba import jit

from blockstate.block_data import BlockData
from blockstate.entry_set import EntrySet, move_entries
from blockstate.degree_sequences import DegreeSequences
from blockstate.property_maps import WeightMap
from blockstate.exceptions import UnsupportedConfiguration

# ────────────────────────────────────────────────────────────────────
# Scalar kernels
# ────────────────────────────────────────────────────────────────────
@jit(nopython=True, cache=True)
def xlogx(x: float) -> float:
    if x <= 0: # 0 · log 0 := 0   (limit)
        return 0.0
    return x * math.log(1.0 * x)


@jit(nopython=True, cache=True)
def safelog(x: float) -> float:
    if x <= 0:
        return 0.0
    return math.log(1.0 * x)


@jit(nopython=True, cache=True)
def lbinom(n: float, k: float) -> float:
    """log of the binomial coefficient n choose k (0 for the degenerate cases)."""
    if n == 0 or k == 0 or k >= n:
        return 0.0
    return math.lgamma(n + 1.0) - math.lgamma(k + 1.0) - math.lgamma(n - k + 1.0)


@jit(nopython=True, cache=True)
def eterm(r: int, s: int, mrs: int, directed: bool) -> float:
    """
    Edge term of the sparse entropy for one block pair.
    For undirected graphs the diagonal counts half-edges (2 m_rr).
    """
    if not directed and r == s:
        return -xlogx(2.0 * mrs) / 2
    return -xlogx(1.0 * mrs)


@jit(nopython=True, cache=True)
def vterm(mrp: int, mrm: int, wr: int, deg_corr: bool, directed: bool) -> float:
    """
    Vertex term of the sparse entropy for one block.
    """
    one = 1.0 if directed else 0.5
    if deg_corr:
        return one * (xlogx(1.0 * mrm) + xlogx(1.0 * mrp))
    return one * (mrm * safelog(1.0 * wr) + mrp * safelog(1.0 * wr))


@jit(nopython=True, cache=True)
def eterm_dense(r: int, s: int, ers: int, wr_r: float, wr_s: float,
                multigraph: bool, directed: bool) -> float:
    """
    Edge term of the dense entropy for one block pair: the log number of
    ways of placing ers edges among the n_r n_s possible pairs.
    """
    if ers == 0:
        return 0.0

    if r != s or directed:
        nrns = wr_r * wr_s
    elif multigraph:
        nrns = (wr_r * (wr_r + 1)) / 2
    else:
        nrns = (wr_r * (wr_r - 1)) / 2

    if multigraph:
        return lbinom(nrns + ers - 1, 1.0 * ers)
    return lbinom(nrns, 1.0 * ers)


def entries_dS(m_entries: EntrySet, block_data: BlockData) -> float:
    """
    Change of the summed edge terms over the block pairs touched by a move.
    """
    directed = block_data.directed
    dS = 0.0
    for (r, s), d in m_entries.items():
        ers = block_data.get_mrs(r, s)
        assert ers + d >= 0, f"entry set drives block pair ({r}, {s}) negative"
        dS += eterm(r, s, ers + d, directed) - eterm(r, s, ers, directed)
    return dS


#### EntropyCalculator class ######
class EntropyCalculator:
    """
    Full and marginal (virtual move) entropy of a partition.

    The sparse regime scores the Poisson / multinomial microcanonical model
    (Stirling form), with or without degree correction. The dense regime
    scores the Bernoulli (or multigraph) model and is only defined without
    degree correction.
    """
    def __init__(self,
                 block_data: BlockData,
                 eweight: WeightMap,
                 vweight: WeightMap,
                 degs: DegreeSequences,
                 deg_corr: bool = True,
        ):
        self.block_data = block_data
        self.eweight = eweight
        self.vweight = vweight
        self.degs = degs
        self.deg_corr = deg_corr

    # ------------------------------------------------------------------
    # full recomputation
    # ------------------------------------------------------------------
    def sparse_entropy(self, multigraph: bool = False, deg_entropy: bool = True) -> float:
        bd = self.block_data
        g = bd.graph_data
        directed = bd.directed

        S = 0.0
        for h, r, s in bd.index.items():
            S += eterm(r, s, int(bd.mrs[h]), directed)
        for r in range(bd.num_blocks):
            S += vterm(int(bd.mrp[r]), int(bd.mrm[r]), int(bd.wr[r]), self.deg_corr, directed)

        if self.deg_corr and deg_entropy:
            for v in g.vertices():
                S += self.get_deg_entropy(v)

        if multigraph:
            S += self.get_parallel_entropy()
        return S

    def dense_entropy(self, multigraph: bool = False) -> float:
        if self.deg_corr:
            raise UnsupportedConfiguration("Dense entropy for degree corrected model not implemented!")
        bd = self.block_data
        S = 0.0
        for h, r, s in bd.index.items():
            S += eterm_dense(r, s, int(bd.mrs[h]), float(bd.wr[r]), float(bd.wr[s]),
                             multigraph, bd.directed)
        return S

    def entropy(self, dense: bool = False, multigraph: bool = False, deg_entropy: bool = True) -> float:
        if dense:
            return self.dense_entropy(multigraph)
        return self.sparse_entropy(multigraph, deg_entropy)

    def get_deg_entropy(self, v: int) -> float:
        """-sum log(k_in!) + log(k_out!) over the degree sequence of v."""
        g = self.block_data.graph_data
        S = 0.0
        for kin, kout, n in self.degs.get(v, g, self.eweight, self.vweight):
            S -= n * (math.lgamma(kin + 1) + math.lgamma(kout + 1))
        return S

    def get_parallel_neighbours_entropy(self, v: int, us: Dict[int, int]) -> float:
        S = 0.0
        directed = self.block_data.directed
        for u, m in us.items():
            if m <= 1:
                continue
            if u == v and not directed:
                assert m % 2 == 0, f"odd self-loop multiplicity on vertex {v}"
                S += math.lgamma(m // 2 + 1)
            else:
                S += math.lgamma(m + 1)
        return S

    def get_parallel_entropy(self) -> float:
        """log of the product of edge multiplicity factorials."""
        g = self.block_data.graph_data
        S = 0.0
        for v in g.vertices():
            us: Dict[int, int] = defaultdict(int)
            for e, u in g.out_edges(v):
                if u < v and not g.directed:
                    continue
                us[u] += self.eweight[e]
            S += self.get_parallel_neighbours_entropy(v, us)
        return S

    # ------------------------------------------------------------------
    # virtual moves
    # ------------------------------------------------------------------
    def virtual_move_sparse(self, v: int, nr: int, m_entries: EntrySet) -> float:
        """
        Sparse entropy difference of moving v from its block to nr.
        Only the block pairs touched by v's edges are visited.
        """
        bd = self.block_data
        g = bd.graph_data
        r = int(bd.b[v])
        if r == nr:
            return 0.0

        move_entries(v, nr, bd, self.eweight, m_entries)

        kout = g.out_degree(v, self.eweight)
        kin = g.in_degree(v, self.eweight) if bd.directed else kout

        dS = entries_dS(m_entries, bd)

        dwr = self.vweight[v]
        mrp, mrm, wr = bd.mrp, bd.mrm, bd.wr
        deg_corr, directed = self.deg_corr, bd.directed

        dS += vterm(int(mrp[r]) - kout, int(mrm[r]) - kin, int(wr[r]) - dwr, deg_corr, directed)
        dS += vterm(int(mrp[nr]) + kout, int(mrm[nr]) + kin, int(wr[nr]) + dwr, deg_corr, directed)
        dS -= vterm(int(mrp[r]), int(mrm[r]), int(wr[r]), deg_corr, directed)
        dS -= vterm(int(mrp[nr]), int(mrm[nr]), int(wr[nr]), deg_corr, directed)
        return dS

    def virtual_move_dense(self, v: int, nr: int, multigraph: bool) -> float:
        """
        Dense entropy difference of moving v from its block to nr.
        Scans every block, since the pair sizes n_r n_s of all pairs
        touching r and nr change.
        """
        if self.deg_corr:
            raise UnsupportedConfiguration("Dense entropy for degree corrected model not implemented!")

        bd = self.block_data
        g = bd.graph_data
        b = bd.b
        directed = bd.directed
        r = int(b[v])
        if r == nr:
            return 0.0

        B = bd.num_blocks
        deltap = np.zeros(B, dtype=np.int64)
        deltal = 0
        for e, u in g.out_edges(v):
            if u == v:
                deltal += self.eweight[e]
            else:
                deltap[b[u]] += self.eweight[e]
        if not directed:
            deltal //= 2

        deltam = np.zeros(B, dtype=np.int64)
        for e, u in g.in_edges(v):
            if u == v:
                continue
            deltam[b[u]] += self.eweight[e]

        dwr = self.vweight[v]
        wr = bd.wr.astype(np.float64)
        w_r, w_nr = wr[r], wr[nr]
        ed = eterm_dense
        mg = multigraph

        Si, Sf = 0.0, 0.0
        for s in range(B):
            ers = bd.get_mrs(r, s)
            enrs = bd.get_mrs(nr, s)
            w_s = wr[s]

            if not directed:
                if s != nr and s != r:
                    Si += ed(r,  s, ers,                   w_r,        w_s, mg, False)
                    Sf += ed(r,  s, ers - int(deltap[s]),  w_r - dwr,  w_s, mg, False)
                    Si += ed(nr, s, enrs,                  w_nr,       w_s, mg, False)
                    Sf += ed(nr, s, enrs + int(deltap[s]), w_nr + dwr, w_s, mg, False)

                if s == r:
                    Si += ed(r, r, ers,                               w_r,       w_r,       mg, False)
                    Sf += ed(r, r, ers - int(deltap[r]) - deltal,     w_r - dwr, w_r - dwr, mg, False)

                if s == nr:
                    Si += ed(nr, nr, enrs,                            w_nr,       w_nr,       mg, False)
                    Sf += ed(nr, nr, enrs + int(deltap[nr]) + deltal, w_nr + dwr, w_nr + dwr, mg, False)

                    Si += ed(r, nr, ers,                                    w_r,       w_nr,       mg, False)
                    Sf += ed(r, nr, ers - int(deltap[nr]) + int(deltap[r]), w_r - dwr, w_nr + dwr, mg, False)
            else:
                esr = bd.get_mrs(s, r)
                esnr = bd.get_mrs(s, nr)
                dp_s, dm_s = int(deltap[s]), int(deltam[s])

                if s != nr and s != r:
                    Si += ed(r,  s, ers,          w_r,        w_s,        mg, True)
                    Sf += ed(r,  s, ers - dp_s,   w_r - dwr,  w_s,        mg, True)
                    Si += ed(s,  r, esr,          w_s,        w_r,        mg, True)
                    Sf += ed(s,  r, esr - dm_s,   w_s,        w_r - dwr,  mg, True)

                    Si += ed(nr, s, enrs,         w_nr,       w_s,        mg, True)
                    Sf += ed(nr, s, enrs + dp_s,  w_nr + dwr, w_s,        mg, True)
                    Si += ed(s, nr, esnr,         w_s,        w_nr,       mg, True)
                    Sf += ed(s, nr, esnr + dm_s,  w_s,        w_nr + dwr, mg, True)

                if s == r:
                    Si += ed(r, r, ers,                                        w_r,       w_r,        mg, True)
                    Sf += ed(r, r, ers - int(deltap[r]) - int(deltam[r]) - deltal, w_r - dwr, w_r - dwr, mg, True)

                    Si += ed(r, nr, esnr,                                     w_r,       w_nr,       mg, True)
                    Sf += ed(r, nr, esnr - int(deltap[nr]) + int(deltam[r]),  w_r - dwr, w_nr + dwr, mg, True)

                if s == nr:
                    Si += ed(nr, nr, esnr,                                           w_nr,       w_nr,       mg, True)
                    Sf += ed(nr, nr, esnr + int(deltap[nr]) + int(deltam[nr]) + deltal, w_nr + dwr, w_nr + dwr, mg, True)

                    Si += ed(nr, r, esr,                                     w_nr,       w_r,       mg, True)
                    Sf += ed(nr, r, esr + int(deltap[r]) - int(deltam[nr]),  w_nr + dwr, w_r - dwr, mg, True)

        return Sf - Si
