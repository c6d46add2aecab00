"""
Index from block pairs to aggregate block-edge handles.

A handle is a small integer identifying one block-pair record; the weight
of the record lives in ``BlockData.mrs``. Handles are recycled through a
free list so that the weight array stays compact.

Two backends with identical observable behaviour:

* ``HashBlockPairIndex``: dictionary keyed by the (canonical) block pair.
  Memory is proportional to the number of nonzero block pairs.
* ``DenseBlockPairIndex``: B x B numpy array of handles (-1 = absent).
  Lookups are plain array reads; memory is O(B^2).
"""
from typing import Dict, Iterator, List, Literal, Optional, Tuple

import numpy as np

from blockstate.exceptions import InvalidOperation

BlockIndexType = Literal["hash", "dense"]
BlockPair = Tuple[int, int]

NULL_HANDLE = -1


class BlockPairIndex:
    """
    Base class holding handle bookkeeping. Subclasses implement
    ``_lookup``, ``_store``, ``_erase`` and ``resize``.
    """

    def __init__(self, num_blocks: int, directed: bool):
        self.num_blocks: int = int(num_blocks)
        self.directed: bool = directed
        self._endpoints: Dict[int, BlockPair] = {}
        self._free: List[int] = []
        self._next_handle: int = 0

    def canonical(self, r: int, s: int) -> BlockPair:
        """Undirected pairs are stored as (min, max)."""
        if not self.directed and r > s:
            return s, r
        return r, s

    # ----- backend hooks ----------------------------------------------
    def _lookup(self, r: int, s: int) -> int:
        raise NotImplementedError("This method should be overridden by subclasses.")

    def _store(self, r: int, s: int, handle: int) -> None:
        raise NotImplementedError("This method should be overridden by subclasses.")

    def _erase(self, r: int, s: int) -> None:
        raise NotImplementedError("This method should be overridden by subclasses.")

    def resize(self, num_blocks: int) -> None:
        raise NotImplementedError("This method should be overridden by subclasses.")

    def copy(self) -> "BlockPairIndex":
        raise NotImplementedError("This method should be overridden by subclasses.")

    # ----- public API -------------------------------------------------
    def get(self, r: int, s: int) -> Optional[int]:
        """
        Return the handle of block pair (r, s) or None if the pair has no record.
        """
        r, s = self.canonical(r, s)
        h = self._lookup(r, s)
        return None if h == NULL_HANDLE else h

    def get_or_create(self, r: int, s: int) -> Tuple[int, bool]:
        """
        Return the handle of (r, s), creating a fresh record if absent.

        :return: (handle, created)
        """
        r, s = self.canonical(r, s)
        h = self._lookup(r, s)
        if h != NULL_HANDLE:
            return h, False

        if self._free:
            h = self._free.pop()
        else:
            h = self._next_handle
            self._next_handle += 1
        self._store(r, s, h)
        self._endpoints[h] = (r, s)
        return h, True

    def remove(self, r: int, s: int) -> None:
        """
        Delete the record of (r, s). The caller guarantees its weight is zero.
        """
        r, s = self.canonical(r, s)
        h = self._lookup(r, s)
        assert h != NULL_HANDLE, f"block pair ({r}, {s}) is not indexed"
        self._erase(r, s)
        del self._endpoints[h]
        self._free.append(h)

    def endpoints(self, handle: int) -> BlockPair:
        return self._endpoints[handle]

    def items(self) -> Iterator[Tuple[int, int, int]]:
        """Yield (handle, r, s) for every indexed block pair."""
        for h, (r, s) in self._endpoints.items():
            yield h, r, s

    def __len__(self) -> int:
        return len(self._endpoints)

    def __contains__(self, pair: BlockPair) -> bool:
        return self.get(*pair) is not None

    def _copy_bookkeeping(self, other: "BlockPairIndex") -> None:
        other._endpoints = dict(self._endpoints)
        other._free = list(self._free)
        other._next_handle = self._next_handle

    def _check_shrink(self, num_blocks: int) -> None:
        for _, r, s in self.items():
            if r >= num_blocks or s >= num_blocks:
                raise InvalidOperation(
                    f"cannot shrink to {num_blocks} blocks: pair ({r}, {s}) still has edges"
                )


class HashBlockPairIndex(BlockPairIndex):
    def __init__(self, num_blocks: int, directed: bool):
        super().__init__(num_blocks, directed)
        self._pairs: Dict[BlockPair, int] = {}

    def _lookup(self, r: int, s: int) -> int:
        return self._pairs.get((r, s), NULL_HANDLE)

    def _store(self, r: int, s: int, handle: int) -> None:
        self._pairs[(r, s)] = handle

    def _erase(self, r: int, s: int) -> None:
        del self._pairs[(r, s)]

    def resize(self, num_blocks: int) -> None:
        if num_blocks < self.num_blocks:
            self._check_shrink(num_blocks)
        self.num_blocks = int(num_blocks)

    def copy(self) -> "HashBlockPairIndex":
        other = HashBlockPairIndex(self.num_blocks, self.directed)
        other._pairs = dict(self._pairs)
        self._copy_bookkeeping(other)
        return other


class DenseBlockPairIndex(BlockPairIndex):
    def __init__(self, num_blocks: int, directed: bool):
        super().__init__(num_blocks, directed)
        self._mat: np.ndarray = np.full((self.num_blocks, self.num_blocks), NULL_HANDLE, dtype=np.int64)

    def _lookup(self, r: int, s: int) -> int:
        return int(self._mat[r, s])

    def _store(self, r: int, s: int, handle: int) -> None:
        self._mat[r, s] = handle
        if not self.directed:
            self._mat[s, r] = handle

    def _erase(self, r: int, s: int) -> None:
        self._mat[r, s] = NULL_HANDLE
        if not self.directed:
            self._mat[s, r] = NULL_HANDLE

    def resize(self, num_blocks: int) -> None:
        num_blocks = int(num_blocks)
        if num_blocks < self.num_blocks:
            self._check_shrink(num_blocks)
            self._mat = self._mat[:num_blocks, :num_blocks].copy()
        elif num_blocks > self.num_blocks:
            grown = np.full((num_blocks, num_blocks), NULL_HANDLE, dtype=np.int64)
            grown[:self.num_blocks, :self.num_blocks] = self._mat
            self._mat = grown
        self.num_blocks = num_blocks

    def copy(self) -> "DenseBlockPairIndex":
        other = DenseBlockPairIndex(0, self.directed)
        other.num_blocks = self.num_blocks
        other._mat = self._mat.copy()
        self._copy_bookkeeping(other)
        return other


def make_block_pair_index(kind: BlockIndexType, num_blocks: int, directed: bool) -> BlockPairIndex:
    """
    Build the index backend selected by ``kind``.
    """
    if kind == "hash":
        return HashBlockPairIndex(num_blocks, directed)
    elif kind == "dense":
        return DenseBlockPairIndex(num_blocks, directed)
    raise InvalidOperation(f"unknown block index type {kind!r}; expected 'hash' or 'dense'")
