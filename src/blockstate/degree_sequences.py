"""
Degree sequences of vertices, as read by the degree-corrected terms.

Each vertex exposes a list of (k_in, k_out, n) entries: n units of vertex
weight carrying in-degree k_in and out-degree k_out. A plain vertex has a
single entry. After vertex merges a vertex stands for several original
vertices, and the explicit map keeps the union of their entries.
"""
from typing import Dict, List, Literal, Tuple, Union
from collections import Counter

from blockstate.graph_data import GraphData
from blockstate.property_maps import WeightMap
from blockstate.exceptions import InvalidOperation

DegreeSequenceKind = Literal["simple", "map"]
DegreeEntry = Tuple[int, int, int]  # (k_in, k_out, count)


class SimpleDegs:
    """
    Degrees read directly from the graph. Undirected graphs report k_in = 0.
    """
    def get(self, v: int, g: GraphData, eweight: WeightMap, vweight: WeightMap) -> List[DegreeEntry]:
        kin = g.in_degree(v, eweight)
        kout = g.out_degree(v, eweight)
        return [(kin, kout, vweight[v])]

    def merge(self, u: int, v: int) -> None:
        # the merged vertex is read back from the graph as a single entry
        pass

    def copy(self) -> "SimpleDegs":
        return self


class DegreeSequenceMap:
    """
    Explicit per-vertex degree histograms.
    """
    def __init__(self, num_nodes: int):
        self._degs: List[Dict[Tuple[int, int], int]] = [dict() for _ in range(num_nodes)]

    @classmethod
    def from_graph(cls, g: GraphData, eweight: WeightMap, vweight: WeightMap) -> "DegreeSequenceMap":
        degs = cls(g.num_nodes)
        for v in g.vertices():
            n = vweight[v]
            if n == 0:
                continue
            degs._degs[v][(g.in_degree(v, eweight), g.out_degree(v, eweight))] = n
        return degs

    def get(self, v: int, g: GraphData, eweight: WeightMap, vweight: WeightMap) -> List[DegreeEntry]:
        return [(kin, kout, n) for (kin, kout), n in self._degs[v].items()]

    def merge(self, u: int, v: int) -> None:
        """Fold the histogram of u into v and leave u empty."""
        if u == v:
            return
        merged = Counter(self._degs[v])
        merged.update(self._degs[u])
        self._degs[v] = dict(merged)
        self._degs[u] = dict()

    def copy(self) -> "DegreeSequenceMap":
        other = DegreeSequenceMap(0)
        other._degs = [dict(d) for d in self._degs]
        return other


DegreeSequences = Union[SimpleDegs, DegreeSequenceMap]


def make_degree_sequences(kind: DegreeSequenceKind,
                          g: GraphData,
                          eweight: WeightMap,
                          vweight: WeightMap,
    ) -> DegreeSequences:
    if kind == "simple":
        return SimpleDegs()
    elif kind == "map":
        return DegreeSequenceMap.from_graph(g, eweight, vweight)
    raise InvalidOperation(f"unknown degree sequence kind {kind!r}; expected 'simple' or 'map'")
