"""Schema-less protobuf walker for reverse-engineering vendor payloads.

Reports every field it can reach with its wire type, size and the plausible
readings of its value. Not used on the decode path.

Usage:
    python -m delijn_rt.services.gtfs_rt.introspect capture.pb
    python -m delijn_rt.services.gtfs_rt.introspect --hex "0a0b68656c6c6f"
"""

from __future__ import annotations

import argparse
import json
import math
import struct
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence

from delijn_rt.services.gtfs_rt.reader import ByteReader, WireFormatError, WireType

DEFAULT_MAX_DEPTH = 8
HEX_PREVIEW_BYTES = 24

WIRE_TYPE_NAMES = {
    WireType.VARINT: "varint",
    WireType.FIXED64: "fixed64",
    WireType.LENGTH_DELIMITED: "length_delimited",
    WireType.START_GROUP: "start_group",
    WireType.END_GROUP: "end_group",
    WireType.FIXED32: "fixed32",
}


@dataclass
class WireField:
    """One field found while walking raw bytes."""

    number: int
    wire_type: int
    offset: int
    length: int
    interpretations: dict[str, Any] = field(default_factory=dict)
    children: List[WireField] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def wire_type_name(self) -> str:
        return WIRE_TYPE_NAMES.get(self.wire_type, f"unknown({self.wire_type})")

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "field": self.number,
            "wireType": self.wire_type_name,
            "offset": self.offset,
            "length": self.length,
            "values": self.interpretations,
        }
        if self.children:
            d["children"] = [c.to_dict() for c in self.children]
        if self.error:
            d["error"] = self.error
        return d


def introspect(data: bytes, max_depth: int = DEFAULT_MAX_DEPTH) -> list[WireField]:
    """Walk ``data`` as a protobuf message without assuming any schema.

    Never raises on malformed input: the walk stops at the first unreadable
    field, which is reported as a trailing entry carrying ``error``.
    """
    fields, _ = _walk(ByteReader(data), depth=0, max_depth=max_depth)
    return fields


def _walk(reader: ByteReader, depth: int, max_depth: int) -> tuple[list[WireField], bool]:
    """Return the fields found and whether the reader was consumed cleanly."""
    fields: list[WireField] = []
    while not reader.is_exhausted():
        start = reader.offset
        try:
            number, wire_type = reader.read_tag()
            value_start = reader.position
            interpretations, children = _read_value(reader, wire_type, depth, max_depth)
        except WireFormatError as exc:
            fields.append(
                WireField(
                    number=0,
                    wire_type=-1,
                    offset=start,
                    length=reader.remaining,
                    interpretations={"hex": reader.peek(HEX_PREVIEW_BYTES).hex()},
                    error=str(exc),
                )
            )
            return fields, False
        fields.append(
            WireField(
                number=number,
                wire_type=wire_type,
                offset=start,
                length=reader.position - value_start,
                interpretations=interpretations,
                children=children,
            )
        )
    return fields, True


def _read_value(
    reader: ByteReader, wire_type: int, depth: int, max_depth: int
) -> tuple[dict[str, Any], list[WireField]]:
    if wire_type == WireType.VARINT:
        return _varint_readings(reader.read_varint()), []

    if wire_type == WireType.FIXED32:
        raw = reader.peek(4)
        value = reader.read_float32()
        return {
            "float32": _float_reading(value),
            "uint32": struct.unpack("<I", raw)[0],
            "hex": raw.hex(),
        }, []

    if wire_type == WireType.FIXED64:
        raw = reader.peek(8)
        value = reader.read_float64()
        return {
            "float64": _float_reading(value),
            "uint64": struct.unpack("<Q", raw)[0],
            "hex": raw.hex(),
        }, []

    if wire_type == WireType.LENGTH_DELIMITED:
        payload = reader.read_length_delimited()
        payload_offset = reader.offset - len(payload)
        return _length_delimited_readings(payload, depth, max_depth, payload_offset)

    reader.skip(wire_type)
    return {}, []


def _varint_readings(value: int) -> dict[str, Any]:
    low = value & 0xFFFFFFFF
    return {
        "uint": value,
        "int32": low - (1 << 32) if low & 0x80000000 else low,
        "zigzag": (value >> 1) ^ -(value & 1),
        "bool": bool(value) if value in (0, 1) else None,
    }


def _float_reading(value: float) -> float | str:
    # NaN and infinities are kept as text so the walk stays JSON-safe
    return value if math.isfinite(value) else repr(value)


def _length_delimited_readings(
    payload: bytes, depth: int, max_depth: int, offset: int
) -> tuple[dict[str, Any], list[WireField]]:
    readings: dict[str, Any] = {"hex": payload[:HEX_PREVIEW_BYTES].hex()}
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        text = None
    if text is not None and text.isprintable():
        readings["string"] = text

    children: list[WireField] = []
    if payload and depth < max_depth:
        nested, clean = _walk(ByteReader(payload, base=offset), depth + 1, max_depth)
        if clean:
            children = nested
            readings["message"] = len(nested)
    return readings, children


def render(fields: Sequence[WireField], indent: int = 0) -> str:
    """Format a walk as an indented text tree."""
    lines: list[str] = []
    pad = "  " * indent
    for f in fields:
        if f.error:
            lines.append(f"{pad}@{f.offset} !! {f.error} [{f.interpretations.get('hex', '')}]")
            continue
        values = " ".join(f"{k}={v!r}" for k, v in f.interpretations.items() if k != "message")
        lines.append(f"{pad}#{f.number} {f.wire_type_name} @{f.offset} len={f.length} {values}")
        if f.children:
            lines.append(render(f.children, indent + 1))
    return "\n".join(lines)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Walk a protobuf payload without a schema.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("path", nargs="?", type=Path, help="File holding the raw payload")
    source.add_argument("--hex", dest="hex_data", help="Payload as a hex string")
    parser.add_argument("--max-depth", type=int, default=DEFAULT_MAX_DEPTH)
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of a tree")
    args = parser.parse_args(argv)

    data = bytes.fromhex(args.hex_data) if args.hex_data else args.path.read_bytes()
    fields = introspect(data, max_depth=args.max_depth)
    if args.json:
        print(json.dumps([f.to_dict() for f in fields], indent=2))
    else:
        print(f"{len(data)} bytes")
        print(render(fields))
    return 0


if __name__ == "__main__":
    sys.exit(main())
