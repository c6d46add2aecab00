from typing import Dict, Optional, Sequence

import numpy as np
import scipy.sparse as sp

from blockstate.graph_data import GraphData
from blockstate.block_pair_index import (
    BlockIndexType,
    BlockPairIndex,
    make_block_pair_index,
)
from blockstate.exceptions import InvalidOperation

BlockConn = sp.dok_array


class _BlockDataUpdater:
    """
    Helper class to update block-pair weights and block degree sums.
    This class is used to hide bookkeeping of handling directed vs undirected graphs.

    For undirected graphs ``mrm`` is the same array as ``mrp``, so a call
    with (r, s) adds the weight to the degree sum of both end blocks.

    Parameters
    ----------
    block_data : BlockData
    """
    def __init__(self, block_data: "BlockData"):
        self.block_data = block_data

    def _increment_edge_count(self, r: int, s: int, handle: int, e_delta: int) -> None:
        """
        Add e_delta (may be negative) to block pair (r, s) through its handle,
        and to the out / in degree sums of r and s.
        Removes the block pair from the index when its weight drops to zero.
        """
        bd = self.block_data
        bd.mrs[handle] += e_delta
        bd.mrp[r] += e_delta
        bd.mrm[s] += e_delta

        assert bd.mrs[handle] >= 0, f"negative weight on block pair ({r}, {s})"
        assert bd.mrp[r] >= 0 and bd.mrm[s] >= 0, f"negative degree sum on blocks ({r}, {s})"

        bd.remove_bedge_if_empty(r, s, handle)

    def _increment_block_weight(self, r: int, w_delta: int) -> None:
        bd = self.block_data
        bd.wr[r] += w_delta
        assert bd.wr[r] >= 0, f"negative vertex weight on block {r}"


class BlockData:
    """
    Aggregate statistics of a partition.

    Attributes:
        graph_data: The (borrowed) graph.
        directed: Whether the graph is directed.
        b: Block id of every vertex.
        index: Block-pair index, block pair -> handle.
        mrs: Edge weight of every block pair, indexed by handle.
        mrp: Out-edge weight incident on every block (degree sum if undirected).
        mrm: In-edge weight incident on every block; alias of mrp if undirected.
        wr: Vertex weight of every block.
        bclabel: Constraint label of every block.
        bedge: Per-edge cache, edge id -> block-pair handle.

    The aggregates start empty; ``VertexMover.add_vertices`` fills them.
    """

    def __init__(self,
                 graph_data: GraphData,
                 b: Sequence[int],
                 num_blocks: Optional[int] = None,
                 bclabel: Optional[Sequence[int]] = None,
                 block_index: BlockIndexType = "hash",
        ):
        if len(b) != graph_data.num_nodes:
            raise InvalidOperation(
                f"partition has {len(b)} entries but the graph has {graph_data.num_nodes} vertices"
            )

        self.graph_data = graph_data
        self.directed: bool = graph_data.directed
        self.block_index_type: BlockIndexType = block_index

        self.b: np.ndarray = np.array(b, dtype=np.int64)
        if len(self.b) > 0 and self.b.min() < 0:
            raise InvalidOperation("block ids must be non-negative")

        if num_blocks is None:
            num_blocks = int(self.b.max()) + 1 if len(self.b) > 0 else 0
        elif len(self.b) > 0 and num_blocks <= self.b.max():
            raise InvalidOperation(f"num_blocks={num_blocks} is smaller than the largest block id + 1")
        num_blocks = int(num_blocks)

        self.index: BlockPairIndex = make_block_pair_index(block_index, num_blocks, self.directed)
        self.mrs: np.ndarray = np.zeros(64, dtype=np.int64)

        self.mrp: np.ndarray = np.zeros(num_blocks, dtype=np.int64)
        self.mrm: np.ndarray = np.zeros(num_blocks, dtype=np.int64) if self.directed else self.mrp
        self.wr: np.ndarray = np.zeros(num_blocks, dtype=np.int64)

        if bclabel is None:
            self.bclabel = np.zeros(num_blocks, dtype=np.int64)
        else:
            if len(bclabel) != num_blocks:
                raise InvalidOperation(f"bclabel has {len(bclabel)} entries, expected {num_blocks}")
            self.bclabel = np.array(bclabel, dtype=np.int64)

        self.bedge: Dict[int, int] = {}
        self.block_updater = _BlockDataUpdater(self)

    @property
    def num_blocks(self) -> int:
        return len(self.wr)

    # ----- block pairs --------------------------------------------------
    def get_mrs(self, r: int, s: int) -> int:
        """Edge weight between blocks r and s (0 if the pair is absent)."""
        h = self.index.get(r, s)
        return 0 if h is None else int(self.mrs[h])

    def get_or_create_bedge(self, r: int, s: int) -> int:
        """Handle of block pair (r, s); a zero-weight record is created if absent."""
        h, created = self.index.get_or_create(r, s)
        if created:
            self._ensure_capacity(h)
            self.mrs[h] = 0
        return h

    def remove_bedge_if_empty(self, r: int, s: int, handle: int) -> None:
        if self.mrs[handle] == 0:
            self.index.remove(r, s)

    def _ensure_capacity(self, handle: int) -> None:
        if handle >= len(self.mrs):
            # double in-place (amortised O(1))
            grown = np.zeros(max(2 * len(self.mrs), handle + 1), dtype=np.int64)
            grown[:len(self.mrs)] = self.mrs
            self.mrs = grown

    # ----- blocks ---------------------------------------------------------
    def add_blocks(self, n: int = 1, label: int = 0) -> None:
        """
        Append n empty blocks with the given constraint label.
        """
        if n <= 0:
            return
        self.mrp = np.concatenate([self.mrp, np.zeros(n, dtype=np.int64)])
        self.mrm = np.concatenate([self.mrm, np.zeros(n, dtype=np.int64)]) if self.directed else self.mrp
        self.wr = np.concatenate([self.wr, np.zeros(n, dtype=np.int64)])
        self.bclabel = np.concatenate([self.bclabel, np.full(n, label, dtype=np.int64)])
        self.index.resize(self.num_blocks)

    def ensure_block(self, r: int, label: int = 0) -> None:
        """Grow the block range so that r is a valid block id."""
        if r >= self.num_blocks:
            self.add_blocks(r + 1 - self.num_blocks, label=label)

    def set_num_blocks(self, num_blocks: int) -> None:
        """
        Grow or shrink the block range. Only empty, edge-free blocks can be dropped.
        """
        if num_blocks >= self.num_blocks:
            self.add_blocks(num_blocks - self.num_blocks)
            return

        if (self.wr[num_blocks:] > 0).any() or (self.mrp[num_blocks:] > 0).any() \
                or (self.mrm[num_blocks:] > 0).any():
            raise InvalidOperation(f"cannot shrink to {num_blocks} blocks: dropped blocks are not empty")

        self.index.resize(num_blocks)
        self.mrp = self.mrp[:num_blocks].copy()
        self.mrm = self.mrm[:num_blocks].copy() if self.directed else self.mrp
        self.wr = self.wr[:num_blocks].copy()
        self.bclabel = self.bclabel[:num_blocks].copy()

    def nonempty_blocks(self) -> int:
        return int((self.wr > 0).sum())

    def get_total_edge_weight(self) -> int:
        return int(sum(self.mrs[h] for h, _, _ in self.index.items()))

    def block_connectivity(self) -> BlockConn:
        """
        Block matrix as a sparse array. Entry (r, s) is the edge weight from
        block r to block s. If the graph is undirected, the matrix is symmetric
        and the diagonal holds the weight of the edges inside each block.
        """
        B = self.num_blocks
        conn = sp.dok_array((B, B), dtype=np.int64)
        for h, r, s in self.index.items():
            conn[r, s] = self.mrs[h]
            if not self.directed:
                conn[s, r] = self.mrs[h]
        return conn

    def copy(self) -> "BlockData":
        other = BlockData.__new__(BlockData)
        other.graph_data = self.graph_data
        other.directed = self.directed
        other.block_index_type = self.block_index_type
        other.b = self.b.copy()
        other.index = self.index.copy()
        other.mrs = self.mrs.copy()
        other.mrp = self.mrp.copy()
        other.mrm = self.mrm.copy() if self.directed else other.mrp
        other.wr = self.wr.copy()
        other.bclabel = self.bclabel.copy()
        other.bedge = dict(self.bedge)
        other.block_updater = _BlockDataUpdater(other)
        return other
