"""Bounded byte writer and reader for the fixed TLV layouts.

TlvWriter is the only way structures get built: it has a capacity fixed
up front and every append checks it. LimitReader reads them back again.
"""

from typing import Self, BinaryIO, override
from collections.abc import Iterable
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from textwrap import dedent

from esni_common import BufferOverflow
from util import pformat

ERROR_VAL = '!!! ERROR HERE !!!'

U16_MAX = 0xffff


@dataclass
class UnpackError(ValueError):
    source: bytes
    description: str
    partial: object = ERROR_VAL

    @override
    def __str__(self) -> str:
        return dedent(f"""\
            Error unpacking {pformat(self.source, byteslen=40)}
            {self.description}
            Partial result:
            {pformat(self.partial)}
            """)


class TlvWriter:
    """Append-only byte buffer that refuses to grow past its capacity."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._buf = bytearray()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._buf)

    def remaining(self) -> int:
        return self._capacity - len(self._buf)

    def _reserve(self, size: int) -> None:
        if size > self.remaining():
            raise BufferOverflow(
                f"writing {size} bytes at offset {len(self._buf)} would exceed capacity {self._capacity}")

    def append_bytes(self, data: bytes) -> None:
        self._reserve(len(data))
        self._buf.extend(data)

    def append_u8(self, value: int) -> None:
        self.append_bytes(value.to_bytes(1))

    def append_u16(self, value: int) -> None:
        self.append_bytes(value.to_bytes(2))

    def append_u32(self, value: int) -> None:
        self.append_bytes(value.to_bytes(4))

    def append_zeros(self, count: int) -> None:
        self.append_bytes(bytes(count))

    def length_prefixed(self, data: bytes) -> None:
        """Writes len(data) as a big-endian u16, then data."""
        if len(data) > U16_MAX:
            raise BufferOverflow(f"{len(data)} bytes won't fit a 16-bit length prefix")
        self._reserve(2 + len(data))
        self.append_u16(len(data))
        self.append_bytes(data)

    def getvalue(self) -> bytearray:
        """The live buffer. Callers that patch it in place own that patch."""
        return self._buf


@dataclass
class LimitReader:
    src: BinaryIO
    limit: int|None = None
    got: bytearray = field(default_factory=bytearray)

    def read(self, size: int) -> bytes:
        if self.limit is not None and self.limit < size:
            limited = self.limit
            self.read(limited)
            raise UnpackError(bytes(self.got), f"tried to read {size} bytes but limit was {limited}")
        raw = self.src.read(size)
        self.got.extend(raw)
        if len(raw) != size:
            raise UnpackError(bytes(self.got), f"tried to read {size} bytes but only got {len(raw)}")
        if self.limit is not None:
            self.limit -= size
        return raw

    def read_u8(self) -> int:
        return int.from_bytes(self.read(1))

    def read_u16(self) -> int:
        return int.from_bytes(self.read(2))

    def read_u64(self) -> int:
        return int.from_bytes(self.read(8))

    def read_prefixed(self) -> bytes:
        return self.read(self.read_u16())

    @classmethod
    def from_raw(cls, raw: bytes) -> Self:
        return cls(src = BytesIO(raw), limit = len(raw))

    def assert_used_up(self) -> None:
        if self.limit is None:
            raise ValueError("can't check used_up when there is no limit")
        elif self.limit != 0:
            limited = self.limit
            extra = self.read(limited)
            raise UnpackError(bytes(self.got), f"extra bytes that should have been used up: {pformat(extra)}")


def force_write(dest: BinaryIO, data: bytes) -> None:
    written = dest.write(data)
    if written != len(data):
        raise ValueError(f"Error trying to write {len(data)} bytes; only wrote {written}")
    dest.flush()

def write_files(outputs: Iterable[tuple[str, bytes]]) -> None:
    """Writes each (fname, data) in order, all or nothing.

    If one write fails, files already written by this call are removed
    before the error is re-raised.
    """
    written: list[str] = []
    try:
        for fname, data in outputs:
            with open(fname, 'wb') as fout:
                written.append(fname)
                force_write(fout, data)
    except (OSError, ValueError):
        for fname in written:
            Path(fname).unlink(missing_ok=True)
        raise


@dataclass(frozen=True)
class Extension:
    """One extension, written as the whole extensions block.

        outer_len(u16) | typ(u16) | inner_len(u16) | data
    """
    typ: int
    data: bytes

    def outer_length(self) -> int:
        return len(self.data) + 4

    def encode(self) -> bytes:
        if len(self.data) > U16_MAX - 4:
            raise BufferOverflow(f"extension data of {len(self.data)} bytes is too long")
        out = TlvWriter(len(self.data) + 6)
        out.append_u16(self.outer_length())
        out.append_u16(self.typ)
        out.length_prefixed(self.data)
        return bytes(out.getvalue())
