"""Central configuration for the npy/npz codec."""

from dataclasses import dataclass
from enum import Enum

WRITE_STRATEGIES = ("direct", "streaming")
DUPLICATE_POLICIES = ("reject", "last")


class SaveMode(Enum):
    """How a save treats an existing file."""
    OVERWRITE = "w"
    APPEND = "a"

    @classmethod
    def coerce(cls, mode) -> "SaveMode":
        """Accept a SaveMode or its one-letter value ('w' / 'a')."""
        if isinstance(mode, cls):
            return mode
        try:
            return cls(mode)
        except ValueError:
            raise ValueError(f"Unknown save mode: {mode!r}. Use 'w' or 'a'.") from None


@dataclass
class CodecConfig:
    """All codec options in one place."""

    # --- Archive writes ---
    write_strategy: str = "direct"  # 'direct' (manual ZIP records) or 'streaming' (zipfile backend)
    stream_chunk_size: int = 64 * 1024  # Bytes pulled from the entry source per read
    use_mtime: bool = True  # Stamp new entries with the current time (else DOS epoch 1980-01-01)

    # --- Archive reads ---
    duplicate_policy: str = "reject"  # 'reject' raises DuplicateEntry, 'last' keeps the last one
    verify_crc: bool = True  # Check CRC32 of each loaded entry

    def validate(self) -> "CodecConfig":
        if self.write_strategy not in WRITE_STRATEGIES:
            raise ValueError(
                f"Unknown write strategy: {self.write_strategy!r}. "
                f"Use one of {WRITE_STRATEGIES}."
            )
        if self.duplicate_policy not in DUPLICATE_POLICIES:
            raise ValueError(
                f"Unknown duplicate policy: {self.duplicate_policy!r}. "
                f"Use one of {DUPLICATE_POLICIES}."
            )
        if self.stream_chunk_size <= 0:
            raise ValueError(f"stream_chunk_size must be positive, got {self.stream_chunk_size}")
        return self


DEFAULT_CONFIG = CodecConfig()


def resolve_config(config=None) -> CodecConfig:
    return (DEFAULT_CONFIG if config is None else config).validate()
