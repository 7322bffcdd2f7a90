"""Little-endian binary file writer that counts the bytes it has written."""

from __future__ import annotations

import os
import struct
from typing import Iterable, Union

PathLike = Union[str, "os.PathLike[str]"]


class BinaryWriter:
    """Writes binary data to a file; use as a context manager."""

    def __init__(self, path: PathLike):
        self._file = open(path, "wb")
        self._written = 0

    def __enter__(self) -> BinaryWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Flush and close the file; safe to call twice."""
        if not self._file.closed:
            self._file.close()

    def write_bytes(self, data) -> int:
        """Write raw bytes and return how many were written."""
        view = memoryview(data).cast("B")
        self._file.write(view)
        self._written += view.nbytes
        return view.nbytes

    def write_zero_bytes(self, n: int) -> int:
        if n < 0:
            raise ValueError(f"cannot write a negative number of bytes: {n}")
        return self.write_bytes(bytes(n))

    def write_cstring(self, s: str | bytes) -> int:
        """Write a NUL-terminated string and return its length including the NUL."""
        data = s.encode("utf-8") if isinstance(s, str) else bytes(s)
        return self.write_bytes(data + b"\0")

    def write_utf32_text_block(self, s: str, n_bytes: int) -> int:
        """Write s as UTF-32LE, truncated or zero-padded to exactly n_bytes."""
        if n_bytes < 0:
            raise ValueError(f"block size must be nonnegative: {n_bytes}")
        n_char = min(n_bytes // 4, len(s))
        written = self.write_bytes(s[:n_char].encode("utf-32-le"))
        pad = n_bytes - written
        if pad > 0:
            written += self.write_zero_bytes(pad)
        return written

    def _pack(self, fmt: str, *values) -> int:
        try:
            data = struct.pack(fmt, *values)
        except struct.error as err:
            raise ValueError(f"cannot pack {values!r} as {fmt!r}: {err}") from err
        return self.write_bytes(data)

    def write_int32(self, value: int) -> int:
        return self._pack("<i", value)

    def write_uint32(self, value: int) -> int:
        return self._pack("<I", value)

    def write_uint64(self, value: int) -> int:
        return self._pack("<Q", value)

    def write_float(self, value: float) -> int:
        return self._pack("<f", value)

    def write_floats(self, values: Iterable[float]) -> int:
        items = list(values)
        return self._pack(f"<{len(items)}f", *items)

    def bytes_written(self) -> int:
        """Total number of bytes written so far."""
        return self._written