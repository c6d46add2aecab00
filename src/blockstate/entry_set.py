"""
Entry sets: changes in block-pair edge weights caused by moving one vertex.

The same entry set is consumed by the virtual-move evaluator (entropy
deltas) and by the proposal kernel (reverse move probabilities), so both
always see the same post-move block matrix.
"""
from typing import DefaultDict, Iterator, Optional, Tuple
from collections import defaultdict

from blockstate.block_data import BlockData
from blockstate.property_maps import WeightMap

BlockPair = Tuple[int, int]


class EntrySet: # edge-weight changes between blocks
    def __init__(self, directed: bool):
        self.directed = directed
        self._deltas: DefaultDict[BlockPair, int] = defaultdict(int)
        self.r: Optional[int] = None
        self.nr: Optional[int] = None

    def _key(self, r: int, s: int) -> BlockPair:
        if not self.directed and r > s:
            return s, r
        return r, s

    def set_move(self, r: int, nr: int) -> None:
        self.r, self.nr = r, nr

    def clear(self) -> None:
        self._deltas.clear()
        self.r = self.nr = None

    def insert_delta(self, r: int, s: int, delta: int) -> None:
        """
        Accumulate delta onto block pair (r, s).
        Undirected pairs are stored as (min, max).
        """
        self._deltas[self._key(r, s)] += delta

    def get_delta(self, r: int, s: int) -> int:
        return self._deltas.get(self._key(r, s), 0)

    def __getitem__(self, pair: BlockPair) -> int:
        return self.get_delta(*pair)

    def __len__(self) -> int:
        """
        Return the number of non-zero deltas.
        """
        return sum(1 for d in self._deltas.values() if d != 0)

    def items(self) -> Iterator[Tuple[BlockPair, int]]:
        """
        Yield ((r, s), delta) for all pairs with a non-zero delta.
        """
        for pair, delta in self._deltas.items():
            if delta != 0:
                yield pair, delta


def _modify_entries(add: bool,
                    v: int,
                    r: int,
                    block_data: BlockData,
                    eweight: WeightMap,
                    m_entries: EntrySet,
    ) -> None:
    """
    Record the removal of v from block r (add=False) or its insertion into
    block r (add=True). Neighbour blocks are read from the current partition.
    """
    g = block_data.graph_data
    b = block_data.b
    sign = 1 if add else -1

    self_weight = 0
    for e, u in g.out_edges(v):
        ew = eweight[e]
        if ew == 0:
            continue
        s = r if u == v else int(b[u])
        if u == v and not g.directed:
            # listed twice; folded in below
            self_weight += ew
            continue
        m_entries.insert_delta(r, s, sign * ew)

    if self_weight > 0:
        assert self_weight % 2 == 0, f"odd self-loop weight on vertex {v}"
        m_entries.insert_delta(r, r, sign * (self_weight // 2))

    for e, u in g.in_edges(v):
        ew = eweight[e]
        if ew == 0 or u == v:
            continue
        s = int(b[u])
        m_entries.insert_delta(s, r, sign * ew)


def move_entries(v: int,
                 nr: int,
                 block_data: BlockData,
                 eweight: WeightMap,
                 m_entries: EntrySet,
    ) -> EntrySet:
    """
    Fill m_entries with the block-pair weight changes of moving v from its
    current block to nr. The entry set is cleared first.
    """
    r = int(block_data.b[v])
    m_entries.clear()
    m_entries.set_move(r, nr)
    _modify_entries(False, v, r, block_data, eweight, m_entries)
    _modify_entries(True, v, nr, block_data, eweight, m_entries)
    return m_entries
