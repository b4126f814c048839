"""Store configuration schema."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, field_validator

DEFAULT_DIRECTORY = ".filemap"
DEFAULT_SUFFIX = ".dat"


class StoreConfig(BaseModel):
    """Settings for a FileMap store."""
    directory: Path = Path(DEFAULT_DIRECTORY)
    suffix: str = DEFAULT_SUFFIX
    codec: Literal["pickle", "json"] = "pickle"
    atomic_writes: bool = False  # write to a temp file, then os.replace
    fsync: bool = False

    @field_validator("suffix")
    @classmethod
    def _check_suffix(cls, v: str) -> str:
        if not v.startswith(".") or len(v) < 2 or "/" in v or "\\" in v:
            raise ValueError(f"suffix must look like '.ext', got {v!r}")
        return v
