from typing import Iterable, Optional, Union

import numpy as np

from blockstate.exceptions import InvalidOperation


class UnityPropertyMap:
    """
    Constant weight map: every key maps to 1.

    Used for unweighted graphs. It cannot be written to, which is why
    vertex merges are refused on states that use it.
    """
    is_constant = True

    def __getitem__(self, key: int) -> int:
        return 1

    def __setitem__(self, key: int, value: int) -> None:
        raise InvalidOperation("cannot write to a constant (unity) property map")

    def copy(self) -> "UnityPropertyMap":
        return self


class PropertyMap:
    """
    Integer weight map backed by a numpy array.

    Writing past the end grows the array (doubling, zero filled), so edge
    weight maps follow edges created by vertex merges.
    """
    is_constant = False

    def __init__(self, values: Union[Iterable[int], np.ndarray, None] = None, size: Optional[int] = None):
        if values is None:
            values = np.zeros(0 if size is None else size, dtype=np.int64)
        self._a: np.ndarray = np.array(values, dtype=np.int64)
        if self._a.ndim != 1:
            raise InvalidOperation("property map values must be one-dimensional")
        self._size = len(self._a)

    def __repr__(self) -> str:
        return f"PropertyMap({self._a[:self._size].tolist()})"

    def __len__(self) -> int:
        return self._size

    def __getitem__(self, key: int) -> int:
        if key >= self._size:
            return 0
        return int(self._a[key])

    def _ensure_capacity(self, key: int) -> None:
        if key < len(self._a):
            return
        new_cap = max(2 * len(self._a), key + 1)
        grown = np.zeros(new_cap, dtype=np.int64)
        grown[:len(self._a)] = self._a
        self._a = grown

    def __setitem__(self, key: int, value: int) -> None:
        self._ensure_capacity(key)
        self._a[key] = value
        self._size = max(self._size, key + 1)

    def array(self) -> np.ndarray:
        """Return the active values (a view, no copy)."""
        return self._a[:self._size]

    def copy(self) -> "PropertyMap":
        return PropertyMap(self.array().copy())


WeightMap = Union[UnityPropertyMap, PropertyMap]


def as_weight_map(values: Union[WeightMap, Iterable[int], np.ndarray, None]) -> WeightMap:
    """
    Wrap user supplied weights. ``None`` means unweighted.
    """
    if values is None:
        return UnityPropertyMap()
    if isinstance(values, (UnityPropertyMap, PropertyMap)):
        return values
    return PropertyMap(values)
