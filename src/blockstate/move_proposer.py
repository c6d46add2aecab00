"""
Block proposals for single-vertex moves.

A target block for vertex v is drawn by picking a random neighbour u of v
and, with probability c B / (e_t + c B) where t = b[u], a uniformly random
block; otherwise the block at the other end of a random edge incident on
block t. ``get_move_prob`` returns the exact probability of that kernel,
optionally evaluated on the partition after the move (reverse move).
"""
from typing import Dict, Optional, Sequence

import numpy as np

from blockstate.block_data import BlockData
from blockstate.entry_set import EntrySet, move_entries
from blockstate.property_maps import WeightMap
from blockstate.samplers import DynamicSampler, Sampler


class NeighbourSampler:
    """
    Per-vertex alias tables over incident edges, weighted by edge weight.
    Tables are built on first use.
    """
    def __init__(self, block_data: BlockData, eweight: WeightMap):
        self.block_data = block_data
        self.eweight = eweight
        self._samplers: Dict[int, Optional[Sampler[int]]] = {}

    def _build(self, v: int) -> Optional[Sampler[int]]:
        us, ws = [], []
        for e, u in self.block_data.graph_data.all_edges(v):
            w = self.eweight[e]
            if w == 0:
                continue
            us.append(u)
            ws.append(w)
        if not us:
            return None
        return Sampler(us, ws)

    def get(self, v: int) -> Optional[Sampler[int]]:
        if v not in self._samplers:
            self._samplers[v] = self._build(v)
        return self._samplers[v]

    def clear(self) -> None:
        self._samplers.clear()


class EdgeGroups:
    """
    For every block, a dynamic sampler over the edge incidences of its
    vertices (out-edges, plus in-edges when directed), weighted by edge
    weight. Kept in sync by the vertex mover.
    """
    def __init__(self, block_data: BlockData, eweight: WeightMap):
        self.block_data = block_data
        self.eweight = eweight
        self._groups: Dict[int, DynamicSampler[int]] = {}
        for v in block_data.graph_data.vertices():
            self.add_vertex(v, int(block_data.b[v]))

    def add_vertex(self, v: int, r: int) -> None:
        group = self._groups.setdefault(r, DynamicSampler())
        for i, (e, _) in enumerate(self.block_data.graph_data.all_edges(v)):
            w = self.eweight[e]
            if w == 0:
                continue
            group.insert((v, i), e, w)

    def remove_vertex(self, v: int, r: int) -> None:
        group = self._groups[r]
        for i, (e, _) in enumerate(self.block_data.graph_data.all_edges(v)):
            if self.eweight[e] == 0:
                continue
            group.remove((v, i))

    def sample_edge(self, r: int, rng: np.random.Generator) -> int:
        return self._groups[r].sample(rng)

    def group_size(self, r: int) -> int:
        group = self._groups.get(r)
        return 0 if group is None else len(group)


class MoveProposer:
    def __init__(self, block_data: BlockData, eweight: WeightMap, m_entries: EntrySet):
        self.block_data = block_data
        self.eweight = eweight
        self.m_entries = m_entries
        self.neighbour_sampler = NeighbourSampler(block_data, eweight)
        self.egroups: Optional[EdgeGroups] = None

    # ----- edge groups ------------------------------------------------
    def init_egroups(self) -> None:
        if self.egroups is None:
            self.egroups = EdgeGroups(self.block_data, self.eweight)

    def clear_egroups(self) -> None:
        self.egroups = None

    def reset(self) -> None:
        """Drop every cached sampler after the graph or its weights changed."""
        self.neighbour_sampler.clear()
        if self.egroups is not None:
            self.egroups = EdgeGroups(self.block_data, self.eweight)

    # ----- sampling ---------------------------------------------------
    def random_neighbour(self, v: int, rng: np.random.Generator) -> int:
        """Edge-weighted random neighbour of v; v itself if it has no edges."""
        sampler = self.neighbour_sampler.get(v)
        if sampler is None:
            return v
        return sampler.sample(rng)

    def sample_block(self, v: int, c: float, block_list: Sequence[int], rng: np.random.Generator) -> int:
        bd = self.block_data
        B = bd.num_blocks
        s = block_list[int(rng.integers(len(block_list)))]

        if not np.isinf(c):
            if self.neighbour_sampler.get(v) is None:
                return s
            u = self.random_neighbour(v, rng)
            t = int(bd.b[u])

            if c > 0:
                e_t = bd.mrp[t] + (bd.mrm[t] if bd.directed else 0)
                p_rand = c * B / (e_t + c * B)
            else:
                p_rand = 0.0

            if c == 0 or rng.random() >= p_rand:
                self.init_egroups()
                g = bd.graph_data
                e = self.egroups.sample_edge(t, rng)
                s = int(bd.b[g.target(e)])
                if s == t:
                    s = int(bd.b[g.source(e)])
        return s

    # ----- probabilities ---------------------------------------------
    def get_move_prob(self,
                      v: int,
                      r: int,
                      s: int,
                      c: float,
                      reverse: bool = False,
        ) -> float:
        """
        Probability that ``sample_block`` proposes s for v, which sits in r.

        With reverse=True, r is the block v is (virtually) moved to and s is
        its current block: the result is the probability of proposing the way
        back, evaluated on the partition after the move without committing it.
        """
        bd = self.block_data
        g = bd.graph_data
        B = bd.num_blocks
        directed = bd.directed

        if np.isinf(c):
            return 1. / B

        m_entries = move_entries(v, r if reverse else s, bd, self.eweight, self.m_entries)

        if reverse:
            kout = g.out_degree(v, self.eweight)
            kin = g.in_degree(v, self.eweight) if directed else kout

        p = 0.0
        w = 0
        for e, u in g.all_edges(v):
            ew = self.eweight[e]
            if ew == 0:
                continue
            t = r if u == v else int(bd.b[u])
            w += ew

            mts = bd.get_mrs(t, s)
            mtp = int(bd.mrp[t])
            mst = mts
            mtm = mtp
            if directed:
                mst = bd.get_mrs(s, t)
                mtm = int(bd.mrm[t])

            if reverse:
                mts += m_entries.get_delta(t, s)
                if directed:
                    mst += m_entries.get_delta(s, t)
                if t == s:
                    mtp -= kout
                    mtm -= kin
                if t == r:
                    mtp += kout
                    mtm += kin

            if directed:
                p += ew * ((mts + mst + c) / (mtp + mtm + c * B))
            else:
                if t == s:
                    mts *= 2
                p += ew * ((mts + c) / (mtp + c * B))

        if w > 0:
            return p / w
        return 1. / B
