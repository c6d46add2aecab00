from typing import Iterable, Iterator, List, Tuple

import numpy as np
import networkx as nx
from scipy.sparse import csr_array, triu

from blockstate.property_maps import WeightMap

Incidence = Tuple[int, int]  # (edge id, vertex at the other end)


class GraphData:
    """
    Multigraph with stable integer edge ids.

    Undirected graphs list every edge in the incidence list of both end
    points, so a self-loop appears twice in the list of its vertex and
    contributes twice to the degree. Directed graphs keep separate out- and
    in-incidence lists.

    The graph is borrowed by the block state. It is only mutated through
    ``add_edge`` and ``clear_vertex``, which vertex merges use.
    """

    def __init__(self, num_nodes: int, edges: Iterable[Tuple[int, int]] = (), directed: bool = False):
        self.directed: bool = directed
        self.num_nodes: int = int(num_nodes)

        self._source: List[int] = []
        self._target: List[int] = []
        self._alive: List[bool] = []
        self._out: List[List[int]] = [[] for _ in range(self.num_nodes)]
        self._in: List[List[int]] = [[] for _ in range(self.num_nodes)] if directed else []
        self.num_edges = 0

        for u, v in edges:
            self.add_edge(int(u), int(v))

    def __len__(self):
        return self.num_nodes

    def __repr__(self) -> str:
        kind = "directed" if self.directed else "undirected"
        return f"GraphData({kind}, num_nodes={self.num_nodes}, num_edges={self.num_edges})"

    # ----- structure --------------------------------------------------
    def add_edge(self, u: int, v: int) -> int:
        """
        Add an edge u -> v and return its id.
        """
        if not (0 <= u < self.num_nodes and 0 <= v < self.num_nodes):
            raise ValueError(f"edge ({u}, {v}) references a vertex outside [0, {self.num_nodes})")

        e = len(self._source)
        self._source.append(u)
        self._target.append(v)
        self._alive.append(True)

        self._out[u].append(e)
        if self.directed:
            self._in[v].append(e)
        else:
            self._out[v].append(e)

        self.num_edges += 1
        return e

    def clear_vertex(self, v: int) -> List[int]:
        """
        Remove every edge incident on v. The vertex itself is kept.

        :return: ids of the removed edges.
        """
        removed = set(self._out[v])
        if self.directed:
            removed.update(self._in[v])

        for e in removed:
            s, t = self._source[e], self._target[e]
            for w in (s, t):
                self._out[w] = [x for x in self._out[w] if x != e]
                if self.directed:
                    self._in[w] = [x for x in self._in[w] if x != e]
            self._alive[e] = False

        self.num_edges -= len(removed)
        return sorted(removed)

    def source(self, e: int) -> int:
        return self._source[e]

    def target(self, e: int) -> int:
        return self._target[e]

    def edges(self) -> Iterator[int]:
        """Ids of all edges currently in the graph."""
        for e, alive in enumerate(self._alive):
            if alive:
                yield e

    def vertices(self) -> range:
        return range(self.num_nodes)

    # ----- incidences -------------------------------------------------
    def out_edges(self, v: int) -> Iterator[Incidence]:
        """
        Yield (edge, neighbour) pairs of out-edges. For undirected graphs
        these are all incident edges (self-loops twice).
        """
        if self.directed:
            for e in self._out[v]:
                yield e, self._target[e]
        else:
            for e in self._out[v]:
                s = self._source[e]
                yield e, (self._target[e] if s == v else s)

    def in_edges(self, v: int) -> Iterator[Incidence]:
        """
        Yield (edge, neighbour) pairs of in-edges. Empty for undirected graphs.
        """
        if self.directed:
            for e in self._in[v]:
                yield e, self._source[e]

    def all_edges(self, v: int) -> Iterator[Incidence]:
        yield from self.out_edges(v)
        yield from self.in_edges(v)

    def out_degree(self, v: int, eweight: WeightMap) -> int:
        return sum(eweight[e] for e in self._out[v])

    def in_degree(self, v: int, eweight: WeightMap) -> int:
        if not self.directed:
            return 0
        return sum(eweight[e] for e in self._in[v])

    def total_degree(self, v: int) -> int:
        """Number of incidences, unweighted."""
        if self.directed:
            return len(self._out[v]) + len(self._in[v])
        return len(self._out[v])


def gd_from_adjacency(adjacency_matrix: csr_array, directed: bool = False) -> Tuple[GraphData, np.ndarray]:
    """
    Create a GraphData instance from a sparse adjacency matrix.

    Each nonzero entry becomes one edge whose multiplicity is returned as an
    edge weight array (aligned with the edge ids). For undirected graphs only
    the upper triangle is read; diagonal entries are read as self-loops with
    the stored multiplicity.
    """
    if not isinstance(adjacency_matrix, csr_array):
        raise ValueError("Adjacency matrix must be a scipy.sparse.csr_array")

    adj = adjacency_matrix.astype(np.int64)
    if not directed:
        adj = csr_array(triu(adj))

    coo = adj.tocoo()
    g = GraphData(adj.shape[0], directed=directed)  # type: ignore
    weights = np.zeros(coo.nnz, dtype=np.int64)
    for i, (u, v, w) in enumerate(zip(coo.row, coo.col, coo.data)):
        g.add_edge(int(u), int(v))
        weights[i] = w
    return g, weights


def gd_from_networkx(G: nx.Graph, weight: str = "weight") -> Tuple[GraphData, np.ndarray]:
    """
    Create a GraphData instance from a NetworkX (multi)graph.

    Nodes are relabelled 0..n-1 in iteration order. Missing weight
    attributes count as 1.
    """
    index = {node: i for i, node in enumerate(G.nodes())}
    g = GraphData(len(index), directed=G.is_directed())
    weights = []
    for u, v, data in G.edges(data=True):
        g.add_edge(index[u], index[v])
        weights.append(int(data.get(weight, 1)))
    return g, np.asarray(weights, dtype=np.int64)
