from typing import Dict, Generic, Hashable, List, Sequence, TypeVar

import numpy as np

T = TypeVar("T")


class Sampler(Generic[T]):
    """
    Static weighted sampler (Walker / Vose alias table).
    Construction is O(n), every draw O(1).
    """
    def __init__(self, items: Sequence[T], weights: Sequence[float]):
        if len(items) != len(weights):
            raise ValueError("items and weights must have the same length")
        if len(items) == 0:
            raise ValueError("cannot build a sampler over zero items")

        self.items: List[T] = list(items)
        n = len(self.items)
        w = np.asarray(weights, dtype=np.float64)
        total = w.sum()
        if total <= 0:
            raise ValueError("sampler weights must have a positive sum")

        prob = w * n / total
        self._prob = np.ones(n, dtype=np.float64)
        self._alias = np.arange(n, dtype=np.int64)

        small = [i for i in range(n) if prob[i] < 1.0]
        large = [i for i in range(n) if prob[i] >= 1.0]
        while small and large:
            s = small.pop()
            l = large.pop()
            self._prob[s] = prob[s]
            self._alias[s] = l
            prob[l] = prob[l] + prob[s] - 1.0
            if prob[l] < 1.0:
                small.append(l)
            else:
                large.append(l)
        # leftovers keep probability one (round-off)

    def __len__(self) -> int:
        return len(self.items)

    def sample(self, rng: np.random.Generator) -> T:
        i = int(rng.integers(len(self.items)))
        if rng.random() < self._prob[i]:
            return self.items[i]
        return self.items[self._alias[i]]


class DynamicSampler(Generic[T]):
    """
    Weighted sampler supporting O(1) insertion and removal.

    Draws use rejection against the largest weight inserted so far, so they
    are exact for any weights and O(1) on average while the weights are of
    similar size.
    """
    def __init__(self):
        self._keys: List[Hashable] = []
        self._items: List[T] = []
        self._weights: List[float] = []
        self._pos: Dict[Hashable, int] = {}
        self._max_w = 0.0
        self._total = 0.0

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._pos

    @property
    def total_weight(self) -> float:
        return self._total

    def insert(self, key: Hashable, item: T, weight: float) -> None:
        assert key not in self._pos, f"key {key} already in sampler"
        assert weight > 0, "sampler weights must be positive"
        self._pos[key] = len(self._items)
        self._keys.append(key)
        self._items.append(item)
        self._weights.append(weight)
        self._max_w = max(self._max_w, weight)
        self._total += weight

    def remove(self, key: Hashable) -> None:
        i = self._pos.pop(key)
        self._total -= self._weights[i]

        # swap with the last slot
        last = len(self._items) - 1
        if i != last:
            self._keys[i] = self._keys[last]
            self._items[i] = self._items[last]
            self._weights[i] = self._weights[last]
            self._pos[self._keys[i]] = i
        self._keys.pop()
        self._items.pop()
        self._weights.pop()

        if not self._items:
            self._max_w = 0.0
            self._total = 0.0
        elif self._max_w > self._total:
            self._max_w = max(self._weights)

    def sample(self, rng: np.random.Generator) -> T:
        if not self._items:
            raise ValueError("cannot sample from an empty sampler")
        n = len(self._items)
        while True:
            i = int(rng.integers(n))
            if rng.random() * self._max_w < self._weights[i]:
                return self._items[i]
