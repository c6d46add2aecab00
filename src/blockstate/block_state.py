"""
Incremental state of a stochastic block model fit.

``BlockState`` composes the partition aggregates, the virtual-move
evaluator, the proposal kernel, the vertex mover and the optional
description-length statistics behind one object, which is what an MCMC
driver talks to:

    dS = state.virtual_move(v, nr)
    p_fwd = state.get_move_prob(v, r, nr, c)
    p_bwd = state.get_move_prob(v, nr, r, c, reverse=True)
    if accept(dS, p_fwd, p_bwd):
        state.move_vertex(v, nr)
"""
from typing import Iterable, List, Optional, Sequence, Union
import math

import numpy as np

from blockstate.graph_data import GraphData
from blockstate.property_maps import PropertyMap, WeightMap, as_weight_map
from blockstate.block_pair_index import BlockIndexType
from blockstate.block_data import BlockConn, BlockData
from blockstate.degree_sequences import DegreeSequenceKind, make_degree_sequences
from blockstate.entry_set import EntrySet, move_entries
from blockstate.entropy import EntropyCalculator
from blockstate.partition_stats import DegreeDLKind, PartitionStats
from blockstate.move_proposer import MoveProposer
from blockstate.movers import VertexMover
from blockstate.exceptions import InvalidOperation
from blockstate.utils.config import BlockStateConfig, EntropyConfig, DEFAULT_CONFIG
from blockstate.utils.logger import CSVLogger
from blockstate.utils.util import set_random_seed


class BlockState:
    """
    Partition of a graph into blocks, with the aggregates needed to score
    and propose single-vertex moves incrementally.

    The graph, the weight maps, the vertex labels and the random generator
    are borrowed: vertex merges write to the graph and the weight maps.

    Parameters
    ----------
    graph_data
        The graph.
    b
        Initial block of every vertex.
    num_blocks
        Size of the block range; defaults to ``max(b) + 1``.
    eweight, vweight
        Edge / vertex weights. ``None`` means unit weights.
    clabel
        Constraint label of every vertex; vertices never leave blocks of
        their own label. Defaults to a single label.
    bclabel
        Label of every block. Derived from ``clabel`` when omitted (empty
        blocks get label 0).
    deg_corr
        Degree-corrected model.
    degs
        Degree sequence cache, ``"simple"`` or ``"map"``.
    block_index
        Block-pair index backend, ``"hash"`` or ``"dense"``.
    rng
        Random generator used when a sampling call gets none.
    logger
        Optional CSV trace of committed moves.
    """

    def __init__(self,
                 graph_data: GraphData,
                 b: Sequence[int],
                 num_blocks: Optional[int] = None,
                 eweight: Union[WeightMap, Sequence[int], np.ndarray, None] = None,
                 vweight: Union[WeightMap, Sequence[int], np.ndarray, None] = None,
                 clabel: Optional[Sequence[int]] = None,
                 bclabel: Optional[Sequence[int]] = None,
                 deg_corr: bool = True,
                 degs: DegreeSequenceKind = "simple",
                 block_index: BlockIndexType = "hash",
                 rng: Optional[np.random.Generator] = None,
                 logger: Optional[CSVLogger] = None,
        ):
        N = graph_data.num_nodes
        if len(b) != N:
            raise InvalidOperation(f"partition has {len(b)} entries but the graph has {N} vertices")

        self.graph_data = graph_data
        self.eweight: WeightMap = as_weight_map(eweight)
        self.vweight: WeightMap = as_weight_map(vweight)
        if isinstance(self.vweight, PropertyMap) and len(self.vweight) < N:
            raise InvalidOperation(f"vertex weights have {len(self.vweight)} entries, expected {N}")
        if isinstance(self.eweight, PropertyMap):
            n_edge_ids = max(graph_data.edges(), default=-1) + 1
            if len(self.eweight) < n_edge_ids:
                raise InvalidOperation(f"edge weights have {len(self.eweight)} entries, expected {n_edge_ids}")

        self.clabel: np.ndarray = np.zeros(N, dtype=np.int64) if clabel is None \
            else np.array(clabel, dtype=np.int64)
        if len(self.clabel) != N:
            raise InvalidOperation(f"clabel has {len(self.clabel)} entries but the graph has {N} vertices")

        self.deg_corr = deg_corr
        self.rng = rng
        self.logger = logger
        self._owns_logger = False
        self.entropy_args: EntropyConfig = dict(DEFAULT_CONFIG["entropy"])  # type: ignore
        self.c: float = DEFAULT_CONFIG["c"]

        b_arr = np.array(b, dtype=np.int64)
        self.block_data = BlockData(graph_data, b_arr, num_blocks,
                                    self._block_labels(b_arr, num_blocks, bclabel),
                                    block_index)

        self.degs = make_degree_sequences(degs, graph_data, self.eweight, self.vweight)
        self.merge_map: np.ndarray = np.arange(N, dtype=np.int64)
        self.partition_stats: Optional[PartitionStats] = None
        self._wire()
        self._num_moves = 0

        self.mover.add_vertices(list(graph_data.vertices()), b_arr.tolist())

    def _block_labels(self,
                      b: np.ndarray,
                      num_blocks: Optional[int],
                      bclabel: Optional[Sequence[int]],
        ) -> np.ndarray:
        B = num_blocks if num_blocks is not None else (int(b.max()) + 1 if len(b) > 0 else 0)
        if bclabel is not None:
            labels = np.array(bclabel, dtype=np.int64)
            for v, r in enumerate(b):
                if r < len(labels) and labels[r] != self.clabel[v]:
                    raise InvalidOperation(
                        f"vertex {v} has label {self.clabel[v]} but its block {r} has label {labels[r]}"
                    )
            return labels

        labels = np.zeros(max(B, 0), dtype=np.int64)
        seen = np.zeros(len(labels), dtype=bool)
        for v, r in enumerate(b):
            if r < 0 or r >= len(labels):
                continue  # rejected by BlockData
            if seen[r] and labels[r] != self.clabel[v]:
                raise InvalidOperation(f"block {r} holds vertices with different labels")
            labels[r] = self.clabel[v]
            seen[r] = True
        return labels

    def _wire(self) -> None:
        """Build the components that work on top of the block data."""
        self._m_entries = EntrySet(self.graph_data.directed)
        self.proposer = MoveProposer(self.block_data, self.eweight, self._m_entries)
        self.entropy_calc = EntropyCalculator(self.block_data, self.eweight, self.vweight,
                                              self.degs, self.deg_corr)
        self.mover = VertexMover(self)

    @classmethod
    def from_config(cls,
                    graph_data: GraphData,
                    b: Sequence[int],
                    config: Optional[BlockStateConfig] = None,
                    **kwargs,
        ) -> "BlockState":
        """
        Build a state from a configuration (see ``utils.config.load_config``).
        Keyword arguments are passed through to the constructor.
        """
        config = DEFAULT_CONFIG if config is None else config
        logger = kwargs.pop("logger", None)
        owns_logger = False
        if logger is None:
            logger = CSVLogger.from_config(config["logging"])
            owns_logger = logger is not None

        state = cls(graph_data, b,
                    deg_corr=config["deg_corr"],
                    degs=config["degree_sequences"],
                    block_index=config["block_index"],
                    rng=kwargs.pop("rng", set_random_seed(config["seed"])),
                    logger=logger,
                    **kwargs)
        state._owns_logger = owns_logger
        state.entropy_args = dict(config["entropy"])  # type: ignore
        state.c = config["c"]
        return state

    def close(self) -> None:
        """Close the move trace if this state opened it."""
        if self.logger is not None and self._owns_logger:
            self.logger.close()

    def copy(self) -> "BlockState":
        """
        Independent copy of the partition and every derived structure.
        The graph, weights, labels, random generator and logger are shared.
        """
        other = BlockState.__new__(BlockState)
        other.graph_data = self.graph_data
        other.eweight = self.eweight
        other.vweight = self.vweight
        other.clabel = self.clabel
        other.deg_corr = self.deg_corr
        other.rng = self.rng
        other.logger = self.logger
        other._owns_logger = False
        other.entropy_args = dict(self.entropy_args)  # type: ignore
        other.c = self.c
        other.block_data = self.block_data.copy()
        other.degs = self.degs.copy()
        other.merge_map = self.merge_map.copy()
        other.partition_stats = None if self.partition_stats is None else self.partition_stats.copy()
        other._wire()
        if self.proposer.egroups is not None:
            other.proposer.init_egroups()
        other._num_moves = self._num_moves
        return other

    # ------------------------------------------------------------------
    # accessors
    # ------------------------------------------------------------------
    @property
    def b(self) -> np.ndarray:
        return self.block_data.b

    @property
    def num_blocks(self) -> int:
        return self.block_data.num_blocks

    def get_B(self) -> int:
        return self.block_data.num_blocks

    def get_nonempty_B(self) -> int:
        return self.block_data.nonempty_blocks()

    def get_N(self) -> int:
        return sum(self.vweight[v] for v in self.graph_data.vertices())

    def get_E(self) -> int:
        return sum(self.eweight[e] for e in self.graph_data.edges())

    def get_blocks(self) -> np.ndarray:
        return self.block_data.b.copy()

    def get_bclabel(self) -> np.ndarray:
        return self.block_data.bclabel.copy()

    def block_connectivity(self) -> BlockConn:
        return self.block_data.block_connectivity()

    def is_last(self, v: int) -> bool:
        """Whether v is the only weight left in its block."""
        r = self.block_data.b[v]
        return self.block_data.wr[r] == self.vweight[v]

    def node_weight(self, v: int) -> int:
        return self.vweight[v]

    def virtual_remove_size(self, v: int) -> int:
        """Weight left in v's block if v were removed."""
        return int(self.block_data.wr[self.block_data.b[v]]) - self.vweight[v]

    # ------------------------------------------------------------------
    # blocks
    # ------------------------------------------------------------------
    def add_block(self, n: int = 1, label: int = 0) -> int:
        """Append n empty blocks; returns the id of the first one."""
        first = self.block_data.num_blocks
        self.block_data.add_blocks(n, label=label)
        return first

    def set_num_blocks(self, num_blocks: int) -> None:
        self.block_data.set_num_blocks(num_blocks)

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------
    def remove_vertex(self, v: int) -> None:
        self.mover.remove_vertex(v)

    def add_vertex(self, v: int, r: int) -> None:
        self.mover.add_vertex(v, r)

    def remove_vertices(self, vs: Iterable[int]) -> None:
        self.mover.remove_vertices(vs)

    def add_vertices(self, vs: Sequence[int], rs: Sequence[int]) -> None:
        self.mover.add_vertices(vs, rs)

    def move_vertex(self, v: int, nr: int) -> None:
        r = int(self.block_data.b[v])
        if not self.mover.move_vertex(v, nr):
            return
        self._num_moves += 1
        if self.logger is not None and self.logger.should_log(self._num_moves):
            self.logger.log(self._num_moves, v, r, nr, self.block_data.nonempty_blocks())

    def move_vertices(self, vs: Sequence[int], nrs: Sequence[int]) -> None:
        if len(vs) != len(nrs):
            raise InvalidOperation(f"got {len(vs)} vertices but {len(nrs)} blocks")
        for v, nr in zip(vs, nrs):
            self.move_vertex(int(v), int(nr))

    def set_partition(self, b: Sequence[int]) -> None:
        if len(b) != self.graph_data.num_nodes:
            raise InvalidOperation(
                f"partition has {len(b)} entries but the graph has {self.graph_data.num_nodes} vertices"
            )
        self.move_vertices(list(self.graph_data.vertices()), [int(r) for r in b])

    def merge_vertices(self, u: int, v: int, ec: Optional[PropertyMap] = None) -> None:
        """
        Merge u into v; see ``VertexMover.merge_vertices``. Cached samplers
        and statistics are rebuilt afterwards.
        """
        if u == v:
            return
        self.mover.merge_vertices(u, v, ec)
        self.proposer.reset()
        if self.partition_stats is not None:
            self.disable_partition_stats()
            self.enable_partition_stats()

    # ------------------------------------------------------------------
    # entropy
    # ------------------------------------------------------------------
    def entropy(self, dense: bool = False, multigraph: bool = False, deg_entropy: bool = True,
                partition_dl: bool = False, deg_dl: bool = False, edges_dl: bool = False) -> float:
        """
        Full entropy, optionally with the description-length terms.
        """
        S = self.entropy_calc.entropy(dense, multigraph, deg_entropy)
        if partition_dl:
            S += self.get_partition_dl()
        if deg_dl and self.deg_corr:
            S += self.get_deg_dl()
        if edges_dl:
            S += self.get_edges_dl()
        return S

    def sparse_entropy(self, multigraph: bool = False, deg_entropy: bool = True) -> float:
        return self.entropy_calc.sparse_entropy(multigraph, deg_entropy)

    def dense_entropy(self, multigraph: bool = False) -> float:
        return self.entropy_calc.dense_entropy(multigraph)

    def get_parallel_entropy(self) -> float:
        return self.entropy_calc.get_parallel_entropy()

    def get_deg_entropy(self, v: int) -> float:
        return self.entropy_calc.get_deg_entropy(v)

    def virtual_move(self,
                     v: int,
                     nr: int,
                     dense: Optional[bool] = None,
                     multigraph: Optional[bool] = None,
                     partition_dl: Optional[bool] = None,
                     deg_dl: Optional[bool] = None,
                     edges_dl: Optional[bool] = None,
        ) -> float:
        """
        Entropy difference of moving v to block nr, without moving it.

        Options left as None fall back to ``entropy_args``. Moves across
        label barriers cost +inf.
        """
        args = self.entropy_args
        dense = args["dense"] if dense is None else dense
        multigraph = args["multigraph"] if multigraph is None else multigraph
        partition_dl = args["partition_dl"] if partition_dl is None else partition_dl
        deg_dl = args["deg_dl"] if deg_dl is None else deg_dl
        edges_dl = args["edges_dl"] if edges_dl is None else edges_dl

        bd = self.block_data
        if nr < 0 or nr >= bd.num_blocks:
            raise InvalidOperation(f"block {nr} does not exist; add it with add_block first")
        r = int(bd.b[v])
        if bd.bclabel[r] != bd.bclabel[nr]:
            return math.inf
        if r == nr:
            return 0.0

        if dense:
            dS = self.entropy_calc.virtual_move_dense(v, nr, multigraph)
        else:
            dS = self.entropy_calc.virtual_move_sparse(v, nr, self._m_entries)

        if partition_dl or (deg_dl and self.deg_corr) or edges_dl:
            ps = self.enable_partition_stats()
            n = self.vweight[v]
            seg = ps.segment(v)
            if partition_dl:
                dS += seg.get_delta_dl(n, r, nr)
            if deg_dl and self.deg_corr:
                degs = self.degs.get(v, self.graph_data, self.eweight, self.vweight)
                dS += seg.get_delta_deg_dl(n, r, nr, degs)
            if edges_dl:
                dS += ps.get_delta_edges_dl(v, r, nr, n)
        return dS

    def virtual_move_config(self, v: int, nr: int) -> float:
        """``virtual_move`` with the configured entropy options only."""
        return self.virtual_move(v, nr, **self.entropy_args)

    # ------------------------------------------------------------------
    # description lengths
    # ------------------------------------------------------------------
    def enable_partition_stats(self) -> PartitionStats:
        if self.partition_stats is None:
            self.partition_stats = PartitionStats(self.block_data, self.clabel, self.eweight,
                                                  self.vweight, self.degs, self.deg_corr)
        return self.partition_stats

    def disable_partition_stats(self) -> None:
        self.partition_stats = None

    def is_partition_stats_enabled(self) -> bool:
        return self.partition_stats is not None

    def get_partition_dl(self) -> float:
        return self.enable_partition_stats().get_partition_dl()

    def get_deg_dl(self, kind: DegreeDLKind = "distributed") -> float:
        return self.enable_partition_stats().get_deg_dl(kind)

    def get_edges_dl(self) -> float:
        return self.enable_partition_stats().get_edges_dl()

    def get_delta_dl(self, v: int, nr: int) -> float:
        """Change of the partition description length of moving v to nr."""
        r = int(self.block_data.b[v])
        ps = self.enable_partition_stats()
        return ps.segment(v).get_delta_dl(self.vweight[v], r, nr)

    # ------------------------------------------------------------------
    # proposals
    # ------------------------------------------------------------------
    def init_mcmc(self, c: float, dl: bool) -> None:
        """
        Prepare the proposal structures for a sweep with mixing parameter c,
        and the description-length statistics if dl is set.
        """
        if math.isinf(c):
            self.proposer.clear_egroups()
        else:
            self.proposer.init_egroups()
        if dl:
            self.enable_partition_stats()
        else:
            self.disable_partition_stats()

    def _rng(self, rng: Optional[np.random.Generator]) -> np.random.Generator:
        if rng is not None:
            return rng
        if self.rng is None:
            raise InvalidOperation("no random generator given and none attached to the state")
        return self.rng

    def sample_block(self,
                     v: int,
                     c: float,
                     block_list: Optional[Sequence[int]] = None,
                     rng: Optional[np.random.Generator] = None,
        ) -> int:
        if block_list is None:
            block_list = range(self.block_data.num_blocks)
        return self.proposer.sample_block(v, c, block_list, self._rng(rng))

    def random_neighbour(self, v: int, rng: Optional[np.random.Generator] = None) -> int:
        return self.proposer.random_neighbour(v, self._rng(rng))

    def get_move_prob(self, v: int, r: int, s: int, c: float, reverse: bool = False) -> float:
        return self.proposer.get_move_prob(v, r, s, c, reverse)

    def get_move_entries(self, v: int, nr: int) -> List:
        """Non-zero block-pair weight changes of moving v to nr."""
        return list(move_entries(v, nr, self.block_data, self.eweight, self._m_entries).items())
