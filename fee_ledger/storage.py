"""
storage.py - Key-value storage and storage mappers

The ledger never touches a dict directly. It is written against two mappers
that give storage the "absent means zero" semantics:

- SingleValueMapper: one integer under a fixed key (fee, collectedFees)
- MapMapper: a family of integers under "<base>[<key>]" (reserveForAddress)

Both mappers expose an explicit clear() that deletes the key rather than
storing zero, so storage contents stay exact.

Backends:
- MemoryStorage: dict-backed, used by default
"""

from __future__ import annotations
import copy
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Tuple, runtime_checkable

from .core import Amount, StorageSnapshot, validate_amount


@runtime_checkable
class Storage(Protocol):
    """
    Protocol for key-value storage backends.

    snapshot() and restore() are what give each ledger call its
    all-or-nothing boundary.
    """

    def get(self, key: str, default: Optional[Amount] = None) -> Optional[Amount]:
        ...

    def set(self, key: str, value: Amount) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def contains(self, key: str) -> bool:
        ...

    def keys(self, prefix: str = "") -> List[str]:
        ...

    def snapshot(self) -> StorageSnapshot:
        ...

    def restore(self, snapshot: StorageSnapshot) -> None:
        ...


class MemoryStorage:
    """
    Dict-backed storage.

    Example:
        storage = MemoryStorage()
        storage.set("fee", 1)
        storage.get("fee")          # 1
        storage.get("missing", 0)   # 0
    """

    def __init__(self, initial: Optional[StorageSnapshot] = None):
        self._data: Dict[str, Amount] = dict(initial or {})

    def get(self, key: str, default: Optional[Amount] = None) -> Optional[Amount]:
        return self._data.get(key, default)

    def set(self, key: str, value: Amount) -> None:
        self._data[key] = validate_amount(value, key)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def contains(self, key: str) -> bool:
        return key in self._data

    def keys(self, prefix: str = "") -> List[str]:
        """Return all keys starting with prefix, sorted."""
        return sorted(k for k in self._data if k.startswith(prefix))

    def snapshot(self) -> StorageSnapshot:
        return copy.deepcopy(self._data)

    def restore(self, snapshot: StorageSnapshot) -> None:
        self._data = copy.deepcopy(snapshot)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self._data)} keys)"


# ============================================================================
# STORAGE MAPPERS
# ============================================================================

class SingleValueMapper:
    """
    A single integer stored under a fixed key.

    get() returns 0 when the key is absent.
    """

    def __init__(self, storage: Storage, key: str):
        self.storage = storage
        self.key = key

    def get(self) -> Amount:
        return self.storage.get(self.key, 0)

    def set(self, value: Amount) -> None:
        self.storage.set(self.key, value)

    def update(self, fn: Callable[[Amount], Amount]) -> Amount:
        """Apply fn to the current value, store and return the result."""
        new_value = fn(self.get())
        self.set(new_value)
        return new_value

    def clear(self) -> None:
        """Remove the key from storage."""
        self.storage.delete(self.key)

    def is_empty(self) -> bool:
        return not self.storage.contains(self.key)


class MapMapper:
    """
    A mapping from string keys to integers, one storage entry per key.

    Entry for k lives at "<base_key>[<k>]". Missing entries read as 0 and
    clear() removes the entry instead of writing 0.
    """

    def __init__(self, storage: Storage, base_key: str):
        self.storage = storage
        self.base_key = base_key
        self._prefix = f"{base_key}["

    def storage_key(self, key: str) -> str:
        return f"{self._prefix}{key}]"

    def get(self, key: str) -> Amount:
        return self.storage.get(self.storage_key(key), 0)

    def set(self, key: str, value: Amount) -> None:
        self.storage.set(self.storage_key(key), value)

    def add(self, key: str, delta: Amount) -> Amount:
        """Increment an entry, creating it if absent. Returns the new value."""
        new_value = self.get(key) + delta
        self.set(key, new_value)
        return new_value

    def clear(self, key: str) -> None:
        self.storage.delete(self.storage_key(key))

    def contains(self, key: str) -> bool:
        return self.storage.contains(self.storage_key(key))

    def items(self) -> Iterator[Tuple[str, Amount]]:
        """Yield (key, value) for every present entry, in key order."""
        for full_key in self.storage.keys(self._prefix):
            if full_key.endswith("]"):
                yield full_key[len(self._prefix):-1], self.storage.get(full_key, 0)

    def total(self) -> Amount:
        return sum(value for _, value in self.items())
