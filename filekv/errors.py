class FileKVError(Exception):
    """Base exception for the file-per-entry key/value store."""


class StoreInitError(FileKVError):
    """Raised when the storage directory cannot be created or used."""


class EntryDecodeError(FileKVError):
    """Raised when an entry file does not hold a well-formed key/value record."""


class EntryWriteError(FileKVError):
    """Raised when persisting an entry file fails."""
