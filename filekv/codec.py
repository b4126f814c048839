import json
import pickle
import struct
from typing import Any, BinaryIO, Callable, Protocol, Tuple

from .errors import EntryDecodeError

MAGIC = b"FKV1"
HEADER_FORMAT = ">4sII"  # magic, key_len (uint32), val_len (uint32)
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)


class Codec(Protocol):
    """Turns keys and values into bytes and back."""

    def dumps(self, obj: Any) -> bytes:
        ...

    def loads(self, data: bytes) -> Any:
        ...

    def loads_key(self, data: bytes) -> Any:
        ...


class PickleCodec:
    """Default codec: any picklable Python object."""

    name = "pickle"

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL):
        self.protocol = protocol

    def dumps(self, obj: Any) -> bytes:
        return pickle.dumps(obj, protocol=self.protocol)

    def loads(self, data: bytes) -> Any:
        return pickle.loads(data)

    loads_key = loads


class JsonCodec:
    """
    UTF-8 JSON codec.

    Only JSON-shaped values round-trip: tuples come back as lists, and
    dict keys come back as strings. Keys are decoded with lists turned
    back into tuples, so tuple keys survive a reopen.
    """

    name = "json"

    def dumps(self, obj: Any) -> bytes:
        return json.dumps(obj, separators=(",", ":")).encode("utf-8")

    def loads(self, data: bytes) -> Any:
        return json.loads(data.decode("utf-8"))

    def loads_key(self, data: bytes) -> Any:
        return _tuplify(self.loads(data))


def _tuplify(obj: Any) -> Any:
    if isinstance(obj, list):
        return tuple(_tuplify(x) for x in obj)
    return obj


_CODECS = {
    "pickle": PickleCodec,
    "json": JsonCodec,
}


def get_codec(name: str) -> Codec:
    try:
        return _CODECS[name]()
    except KeyError:
        raise ValueError(f"Unknown codec {name!r}; expected one of {sorted(_CODECS)}") from None


# ------------------ entry framing ------------------ #
#
# Disk format:
#     [magic:4][key_len:4][val_len:4][key][value]

def encode_entry(codec: Codec, key: Any, value: Any) -> bytes:
    k = codec.dumps(key)
    v = codec.dumps(value)
    header = struct.pack(HEADER_FORMAT, MAGIC, len(k), len(v))
    return header + k + v


def _unpack_header(header: bytes) -> Tuple[int, int]:
    if len(header) < HEADER_SIZE:
        raise EntryDecodeError("truncated header")
    magic, key_len, val_len = struct.unpack(HEADER_FORMAT, header)
    if magic != MAGIC:
        raise EntryDecodeError(f"bad magic {magic!r}")
    return key_len, val_len


def _load(loads: Callable[[bytes], Any], data: bytes, what: str) -> Any:
    try:
        return loads(data)
    except Exception as e:
        # pickle raises arbitrary exception types on bad input
        raise EntryDecodeError(f"cannot decode {what}: {e}") from e


def decode_entry(codec: Codec, data: bytes) -> Tuple[Any, Any]:
    """Decode a whole entry file; returns (key, value)."""
    key_len, val_len = _unpack_header(data[:HEADER_SIZE])
    if len(data) != HEADER_SIZE + key_len + val_len:
        raise EntryDecodeError(
            f"expected {HEADER_SIZE + key_len + val_len} bytes, got {len(data)}"
        )
    k = data[HEADER_SIZE:HEADER_SIZE + key_len]
    v = data[HEADER_SIZE + key_len:]
    return _load(codec.loads_key, k, "key"), _load(codec.loads, v, "value")


def read_key(codec: Codec, f: BinaryIO) -> Any:
    """Decode only the key of an entry, leaving the value unread."""
    key_len, _ = _unpack_header(f.read(HEADER_SIZE))
    k = f.read(key_len)
    if len(k) < key_len:
        raise EntryDecodeError("truncated key")
    return _load(codec.loads_key, k, "key")
