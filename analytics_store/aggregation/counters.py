"""
Counter Maps

Structured per-dimension counters (orders by diet, orders by theme) that
turn into store increments without hand-built field paths.
"""

from typing import Dict, Iterator, Mapping, Optional, Union

Number = Union[int, float]


class CounterMap:
    """
    Named counters with increment and merge.

    Keys become nested field names in the store, so they are validated
    up front: non-empty, no dots, no leading ``$``.

    Example:
        diets = CounterMap().increment("vegan")
        diets.as_increments("ordersByDiet")  # {"ordersByDiet.vegan": 1}
    """

    def __init__(self, counts: Optional[Mapping[str, Number]] = None):
        self._counts: Dict[str, Number] = {}
        for key, amount in (counts or {}).items():
            self.increment(key, amount)

    @staticmethod
    def validate_key(key: str) -> str:
        if not isinstance(key, str):
            raise ValueError(f"Counter key must be a string, got {type(key).__name__}")
        key = key.strip()
        if not key:
            raise ValueError("Counter key must not be empty")
        if "." in key or key.startswith("$") or "\x00" in key:
            raise ValueError(f"Invalid counter key: {key!r}")
        return key

    def increment(self, key: str, amount: Number = 1) -> "CounterMap":
        key = self.validate_key(key)
        self._counts[key] = self._counts.get(key, 0) + amount
        return self

    def merge(self, other: "CounterMap") -> "CounterMap":
        """New map with the counts of both"""
        merged = CounterMap(self._counts)
        for key, amount in other.items():
            merged.increment(key, amount)
        return merged

    def as_increments(self, field: str) -> Dict[str, Number]:
        """Increment document for the nested ``field`` map"""
        return {f"{field}.{key}": amount for key, amount in self._counts.items()}

    def get(self, key: str, default: Number = 0) -> Number:
        return self._counts.get(key, default)

    def items(self):
        return self._counts.items()

    def to_dict(self) -> Dict[str, Number]:
        return dict(self._counts)

    def __iter__(self) -> Iterator[str]:
        return iter(self._counts)

    def __len__(self) -> int:
        return len(self._counts)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CounterMap):
            return self._counts == other._counts
        if isinstance(other, Mapping):
            return self._counts == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"CounterMap({self._counts!r})"
