"""Protobuf wire-format byte reader."""

from __future__ import annotations

import struct
from enum import IntEnum

MAX_VARINT_BYTES = 10
_UINT64_MASK = (1 << 64) - 1
_FLOAT32 = struct.Struct("<f")
_FLOAT64 = struct.Struct("<d")


class WireType(IntEnum):
    """Low three bits of a field tag."""

    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    START_GROUP = 3
    END_GROUP = 4
    FIXED32 = 5


SKIPPABLE_WIRE_TYPES = frozenset(
    {WireType.VARINT, WireType.FIXED64, WireType.LENGTH_DELIMITED, WireType.FIXED32}
)


class WireFormatError(ValueError):
    """Raised when bytes cannot be read as protobuf wire format."""

    def __init__(self, message: str, offset: int) -> None:
        super().__init__(f"{message} (offset {offset})")
        self.offset = offset


class BufferUnderrun(WireFormatError):
    """Raised when a read needs more bytes than remain in the reader's bound."""


class UnknownWireType(WireFormatError):
    """Raised when asked to skip a wire type outside {0, 1, 2, 5}."""

    def __init__(self, wire_type: int, offset: int) -> None:
        super().__init__(f"Unknown wire type {wire_type}", offset)
        self.wire_type = wire_type


class ByteReader:
    """Cursor over an owned copy of a protobuf-encoded byte range.

    A reader never looks past its own end: nested messages are read through
    ``read_sub_reader``, which hands back a new reader bounded by the
    declared length of the field.
    """

    __slots__ = ("_base", "_data", "_pos")

    def __init__(self, data: bytes | bytearray | memoryview, base: int = 0) -> None:
        self._data = bytes(data)
        self._pos = 0
        self._base = base

    def __len__(self) -> int:
        return len(self._data)

    @property
    def position(self) -> int:
        return self._pos

    @property
    def base(self) -> int:
        """Offset of this reader's first byte within the outermost reader."""
        return self._base

    @property
    def offset(self) -> int:
        """Cursor position measured from the start of the outermost reader."""
        return self._base + self._pos

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def is_exhausted(self) -> bool:
        return self._pos >= len(self._data)

    def read_varint(self) -> int:
        """Read an unsigned base-128 varint.

        Returns:
            The value, truncated to 64 bits.

        Raises:
            BufferUnderrun: If no terminating byte is found within
                ``MAX_VARINT_BYTES`` or before the end of this reader.
        """
        start = self._pos
        data = self._data
        end = min(len(data), start + MAX_VARINT_BYTES)
        result = 0
        shift = 0
        pos = start
        while pos < end:
            byte = data[pos]
            pos += 1
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                self._pos = pos
                return result & _UINT64_MASK
            shift += 7

        if end - start >= MAX_VARINT_BYTES:
            msg = f"Varint longer than {MAX_VARINT_BYTES} bytes"
        else:
            msg = "Truncated varint"
        raise BufferUnderrun(msg, self._base + start)

    def read_signed_varint32(self) -> int:
        """Read a varint and reinterpret its low 32 bits as two's complement.

        No zigzag decoding is applied.
        """
        value = self.read_varint() & 0xFFFFFFFF
        if value & 0x80000000:
            value -= 1 << 32
        return value

    def read_bool(self) -> bool:
        return self.read_varint() != 0

    def read_float32(self) -> float:
        return _FLOAT32.unpack(self._take(4))[0]

    def read_float64(self) -> float:
        return _FLOAT64.unpack(self._take(8))[0]

    def read_length_delimited(self) -> bytes:
        """Read a varint length prefix and return a copy of that many bytes.

        Raises:
            BufferUnderrun: If the prefix is truncated or declares more bytes
                than remain.
        """
        start = self._pos
        length = self.read_varint()
        if length > self.remaining:
            self._pos = start
            msg = f"Length-delimited field declares {length} bytes, {self.remaining} remain"
            raise BufferUnderrun(msg, self._base + start)
        return self._take(length)

    def read_string(self) -> str:
        return self.read_length_delimited().decode("utf-8", errors="replace")

    def read_sub_reader(self) -> ByteReader:
        """Return a reader bounded to the next length-delimited field.

        The sub-reader keeps this reader's coordinates, so offsets in its
        errors still point into the outermost byte range.
        """
        payload = self.read_length_delimited()
        return ByteReader(payload, base=self.offset - len(payload))

    def read_tag(self) -> tuple[int, int]:
        """Read a field tag.

        Returns:
            Tuple of (field_number, wire_type).
        """
        tag = self.read_varint()
        return tag >> 3, tag & 0x07

    def skip(self, wire_type: int) -> None:
        """Advance past one field value of the given wire type.

        Raises:
            UnknownWireType: For groups and the reserved wire types 6 and 7.
            BufferUnderrun: If the value runs past the end of this reader.
        """
        if wire_type == WireType.VARINT:
            self.read_varint()
        elif wire_type == WireType.FIXED64:
            self._take(8)
        elif wire_type == WireType.LENGTH_DELIMITED:
            self.read_length_delimited()
        elif wire_type == WireType.FIXED32:
            self._take(4)
        else:
            raise UnknownWireType(wire_type, self.offset)

    def peek(self, count: int) -> bytes:
        """Return up to ``count`` bytes from the cursor without advancing."""
        return self._data[self._pos : self._pos + count]

    def _take(self, count: int) -> bytes:
        if count > self.remaining:
            msg = f"Need {count} bytes, {self.remaining} remain"
            raise BufferUnderrun(msg, self.offset)
        start = self._pos
        self._pos += count
        return self._data[start : self._pos]
