import logging
import os
from typing import Any, Iterator, Optional, Tuple

from .codec import Codec, decode_entry, encode_entry, read_key
from .config import DEFAULT_SUFFIX
from .errors import EntryDecodeError, EntryWriteError, StoreInitError

logger = logging.getLogger(__name__)

TMP_SUFFIX = ".tmp"


class StorageDirectory:
    """
    Owns the flat directory of entry files.

    Disk layout:
        <dirpath>/<uuid hex><suffix>   one entry per file, see codec.py

    Reads degrade to None on a missing or undecodable file, writes raise
    EntryWriteError, deletes are best effort.
    """

    def __init__(
        self,
        dirpath: str,
        codec: Codec,
        suffix: str = DEFAULT_SUFFIX,
        atomic_writes: bool = False,
        fsync: bool = False,
    ):
        self.dirpath = dirpath
        self.codec = codec
        self.suffix = suffix
        self.atomic_writes = atomic_writes
        self.fsync = fsync

        # files the last scan() could not decode
        self.skipped_files = 0

        self.initialize()

    # ------------------ public API ------------------ #

    def initialize(self) -> None:
        try:
            os.makedirs(self.dirpath, exist_ok=True)
        except OSError as e:
            raise StoreInitError(
                f"Cannot create storage directory {self.dirpath!r}: {e}"
            ) from e
        if not os.path.isdir(self.dirpath):
            raise StoreInitError(f"Storage path {self.dirpath!r} is not a directory")

    def path_for(self, file_id: str) -> str:
        return os.path.join(self.dirpath, file_id)

    def exists(self, file_id: str) -> bool:
        return os.path.isfile(self.path_for(file_id))

    def scan(self) -> Iterator[Tuple[Any, str]]:
        """
        Yield (key, file_id) for every decodable entry file.

        Files are visited in name order so that a rebuild is deterministic.
        Anything that cannot be read or decoded, or whose key is not
        hashable, is skipped and counted in skipped_files.
        """
        self.skipped_files = 0
        try:
            names = sorted(os.listdir(self.dirpath))
        except OSError as e:
            raise StoreInitError(f"Cannot list storage directory {self.dirpath!r}: {e}") from e

        for fname in names:
            if not fname.endswith(self.suffix):
                continue
            path = self.path_for(fname)
            try:
                with open(path, "rb") as f:
                    key = read_key(self.codec, f)
            except (OSError, EntryDecodeError) as e:
                self.skipped_files += 1
                logger.debug("Skipping unreadable entry file %s: %s", path, e)
                continue
            try:
                hash(key)
            except TypeError:
                self.skipped_files += 1
                logger.debug("Skipping entry file %s with unhashable key %r", path, key)
                continue
            yield key, fname

    def read_entry(self, file_id: str) -> Optional[Tuple[Any, Any]]:
        path = self.path_for(file_id)
        try:
            with open(path, "rb") as f:
                data = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.debug("Cannot read entry file %s: %s", path, e)
            return None

        try:
            return decode_entry(self.codec, data)
        except EntryDecodeError as e:
            logger.debug("Cannot decode entry file %s: %s", path, e)
            return None

    def write_entry(self, file_id: str, key: Any, value: Any) -> None:
        path = self.path_for(file_id)
        try:
            data = encode_entry(self.codec, key, value)
        except Exception as e:
            raise EntryWriteError(f"Cannot encode entry for {path}: {e}") from e

        if self.atomic_writes:
            self._write_replace(path, data)
        else:
            try:
                self._write_file(path, data)
            except OSError as e:
                raise EntryWriteError(f"Failed to write to file: {path}") from e

    def delete_entry(self, file_id: str) -> bool:
        """Remove an entry file. Returns False if nothing was removed."""
        path = self.path_for(file_id)
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.debug("Ignoring failed delete of %s: %s", path, e)
            return False
        return True

    # ------------------ internal helpers ------------------ #

    def _write_file(self, path: str, data: bytes) -> None:
        with open(path, "wb") as f:
            f.write(data)
            f.flush()
            if self.fsync:
                os.fsync(f.fileno())

    def _write_replace(self, path: str, data: bytes) -> None:
        # temp name does not end with the entry suffix, so scan() ignores it
        tmp = os.path.join(self.dirpath, "." + os.path.basename(path) + TMP_SUFFIX)
        try:
            self._write_file(tmp, data)
            os.replace(tmp, path)
        except OSError as e:
            try:
                os.remove(tmp)
            except OSError:
                pass
            raise EntryWriteError(f"Failed to write to file: {path}") from e
