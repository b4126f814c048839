import logging
from pathlib import Path
from typing import Any, Hashable, Iterator, List, Mapping, Optional, Set, Tuple, Union

from .codec import Codec, get_codec
from .config import StoreConfig
from .key_index import KeyIndex
from .storage import StorageDirectory

logger = logging.getLogger(__name__)

_MISSING = object()


class FileMap:
    """
    Map-like key/value store with one file per entry:
    - the file name is a random token assigned on a key's first put,
      so keys need not be filesystem-safe.
    - each file holds the serialized key followed by the value.
    - an in-memory index (key -> file name) is rebuilt from the
      directory on startup; values are always read from disk.

    get/remove never raise for a missing or corrupt entry, they return
    None instead. put raises EntryWriteError if the file cannot be written;
    a failed first put of a key leaves no trace. A failed overwrite may
    leave the old value truncated unless the store uses atomic_writes=True,
    which keeps the previous value intact.

    Two FileMap objects over the same directory do not see each other's
    new keys until reopened.
    """

    def __init__(
        self,
        directory: Union[str, Path, None] = None,
        config: Optional[StoreConfig] = None,
        codec: Optional[Codec] = None,
    ):
        config = config or StoreConfig()
        if directory is not None:
            config = config.model_copy(update={"directory": Path(directory)})
        self.config = config
        self.codec = codec if codec is not None else get_codec(config.codec)

        self._storage = StorageDirectory(
            str(config.directory),
            self.codec,
            suffix=config.suffix,
            atomic_writes=config.atomic_writes,
            fsync=config.fsync,
        )
        self._index = KeyIndex(config.suffix)
        self._load_existing_keys()

    # ------------------ public API ------------------ #

    @property
    def storage_directory(self) -> Path:
        return self.config.directory

    @property
    def skipped_files(self) -> int:
        """Number of entry files the startup scan could not decode."""
        return self._storage.skipped_files

    def get(self, key: Any, default: Any = None) -> Any:
        file_id = self._index.lookup(key)
        if file_id is None:
            return default

        if not self._storage.exists(file_id):
            # deleted behind our back
            self._index.forget_if(key, file_id)
            logger.debug("Entry file %s for key %r is gone; dropping key", file_id, key)
            return default

        entry = self._storage.read_entry(file_id)
        if entry is None:
            return default
        return entry[1]

    def put(self, key: Hashable, value: Any) -> Any:
        """Store value under key and return the previous value (or None)."""
        if key is None:
            raise ValueError("Key cannot be None")

        old_value = self.get(key)
        created = self._index.lookup(key) is None
        file_id = self._index.reserve(key)
        try:
            self._storage.write_entry(file_id, key, value)
        except Exception:
            if not created:
                self._index.settle(file_id)
            elif self._index.abandon(key, file_id):
                # partial file from this write, nobody else is writing it
                self._storage.delete_entry(file_id)
            raise
        self._index.settle(file_id)
        return old_value

    def remove(self, key: Any) -> Any:
        """Delete key and return its last value (or None)."""
        file_id = self._index.lookup(key)
        if file_id is None:
            return None

        old_value = self.get(key)
        self._storage.delete_entry(file_id)
        self._index.forget(key)
        return old_value

    def put_all(self, entries: Mapping[Hashable, Any]) -> None:
        for key, value in entries.items():
            self.put(key, value)

    def contains_key(self, key: Any) -> bool:
        return self._index.contains(key)

    def contains_value(self, value: Any) -> bool:
        for key in self._index.snapshot_keys():
            if self.get(key) == value:
                return True
        return False

    def keys(self) -> Set[Hashable]:
        return self._index.snapshot_keys()

    def values(self) -> List[Any]:
        return [self.get(key) for key in self._index.snapshot_keys()]

    def entries(self) -> List[Tuple[Hashable, Any]]:
        return [(key, self.get(key)) for key in self._index.snapshot_keys()]

    items = entries

    def size(self) -> int:
        return self._index.count()

    def is_empty(self) -> bool:
        return self._index.count() == 0

    def clear(self) -> None:
        for key in self._index.snapshot_keys():
            self.remove(key)
        self._index.clear()

    def close(self) -> None:
        # nothing to release; all state lives in the directory
        pass

    # ------------------ dict protocol ------------------ #

    def __getitem__(self, key: Any) -> Any:
        value = self.get(key, _MISSING)
        if value is _MISSING:
            raise KeyError(key)
        return value

    def __setitem__(self, key: Hashable, value: Any) -> None:
        self.put(key, value)

    def __delitem__(self, key: Any) -> None:
        if not self._index.contains(key):
            raise KeyError(key)
        self.remove(key)

    def __contains__(self, key: Any) -> bool:
        return self._index.contains(key)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._index.snapshot_keys())

    def __len__(self) -> int:
        return self._index.count()

    def __enter__(self) -> "FileMap":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v}" for k, v in self.entries())
        return "{" + body + "}"

    # ------------------ internal helpers ------------------ #

    def _load_existing_keys(self) -> None:
        for key, file_id in self._storage.scan():
            self._index.track(key, file_id)

        logger.info(
            "Loaded %d keys from %s (%d files skipped)",
            self._index.count(), self._storage.dirpath, self._storage.skipped_files,
        )
