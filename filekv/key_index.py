import threading
import uuid
from typing import Any, Dict, Hashable, Optional, Set

from .config import DEFAULT_SUFFIX


class KeyIndex:
    """
    In-memory map from key to the file identifier holding its entry.

    - Holds identity and existence only, never values.
    - Safe to share between threads; resolve_or_create is atomic per key.
    - Has no persistence of its own: it is rebuilt from the storage
      directory every time a store is opened.
    """

    def __init__(self, suffix: str = DEFAULT_SUFFIX):
        self.suffix = suffix
        # key -> file id ("<uuid hex><suffix>")
        self._ids: Dict[Hashable, str] = {}
        # file id -> number of puts still writing it
        self._in_flight: Dict[str, int] = {}
        self._lock = threading.Lock()

    def new_file_id(self) -> str:
        return uuid.uuid4().hex + self.suffix

    def resolve_or_create(self, key: Hashable) -> str:
        with self._lock:
            return self._resolve_locked(key)

    def reserve(self, key: Hashable) -> str:
        """
        resolve_or_create for a writer: the returned id counts as in flight
        until settle() is called, and forget_if() leaves it alone meanwhile.
        """
        with self._lock:
            file_id = self._resolve_locked(key)
            self._in_flight[file_id] = self._in_flight.get(file_id, 0) + 1
            return file_id

    def settle(self, file_id: str) -> None:
        with self._lock:
            self._settle_locked(file_id)

    def abandon(self, key: Hashable, file_id: str) -> bool:
        """
        settle() for a failed first write of key. The key is forgotten, and
        True returned, only if no other put is still writing file_id.
        """
        with self._lock:
            self._settle_locked(file_id)
            if file_id in self._in_flight or self._ids.get(key) != file_id:
                return False
            del self._ids[key]
            return True

    def track(self, key: Hashable, file_id: str) -> str:
        """
        Record a mapping discovered on disk.

        If the key is already tracked (two files on disk claim the same
        key), the first mapping is kept and returned.
        """
        with self._lock:
            return self._ids.setdefault(key, file_id)

    def lookup(self, key: Any) -> Optional[str]:
        with self._lock:
            return self._ids.get(key)

    def forget(self, key: Any) -> None:
        with self._lock:
            self._ids.pop(key, None)

    def forget_if(self, key: Any, file_id: str) -> bool:
        """Forget key only while it still maps to file_id and no put is writing it."""
        with self._lock:
            if self._ids.get(key) == file_id and file_id not in self._in_flight:
                del self._ids[key]
                return True
            return False

    def contains(self, key: Any) -> bool:
        with self._lock:
            return key in self._ids

    def snapshot_keys(self) -> Set[Hashable]:
        with self._lock:
            return set(self._ids)

    def count(self) -> int:
        with self._lock:
            return len(self._ids)

    def clear(self) -> None:
        with self._lock:
            self._ids.clear()

    __contains__ = contains
    __len__ = count

    # ------------------ internal helpers ------------------ #

    def _resolve_locked(self, key: Hashable) -> str:
        file_id = self._ids.get(key)
        if file_id is None:
            file_id = self.new_file_id()
            self._ids[key] = file_id
        return file_id

    def _settle_locked(self, file_id: str) -> None:
        n = self._in_flight.get(file_id, 0) - 1
        if n > 0:
            self._in_flight[file_id] = n
        else:
            self._in_flight.pop(file_id, None)
