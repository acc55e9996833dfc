"""Table-driven parsers for the GTFS-RT message family."""

from __future__ import annotations

from typing import Any, Callable, Dict, Type

from delijn_rt.services.gtfs_rt.reader import ByteReader
from delijn_rt.services.gtfs_rt.records import (
    FeedEntity,
    FeedHeader,
    Position,
    Record,
    StopTimeEvent,
    StopTimeUpdate,
    TripDescriptor,
    TripUpdate,
    VehicleDescriptor,
    VehiclePosition,
)
from delijn_rt.services.gtfs_rt.schema import (
    GTFS_REALTIME,
    FieldKind,
    FieldSpec,
    SchemaVariant,
)

RECORD_TYPES: Dict[str, Type[Record]] = {
    "feed_header": FeedHeader,
    "feed_entity": FeedEntity,
    "trip_update": TripUpdate,
    "stop_time_update": StopTimeUpdate,
    "stop_time_event": StopTimeEvent,
    "vehicle_position": VehiclePosition,
    "trip_descriptor": TripDescriptor,
    "vehicle_descriptor": VehicleDescriptor,
    "position": Position,
}

_SCALAR_READERS: Dict[FieldKind, Callable[[ByteReader], Any]] = {
    FieldKind.UINT: ByteReader.read_varint,
    FieldKind.ENUM: ByteReader.read_varint,
    FieldKind.INT32: ByteReader.read_signed_varint32,
    FieldKind.BOOL: ByteReader.read_bool,
    FieldKind.FLOAT: ByteReader.read_float32,
    FieldKind.DOUBLE: ByteReader.read_float64,
    FieldKind.STRING: ByteReader.read_string,
}


def parse_message(reader: ByteReader, message: str, variant: SchemaVariant) -> Any:
    """Consume ``reader`` to the end as one ``message`` and build its record.

    Fields missing from the variant's table, or arriving with a wire type
    other than the one the table expects, are skipped. Scalars keep the last
    occurrence; repeated fields keep arrival order.

    Raises:
        WireFormatError: If the bytes are truncated or use an unknown wire type.
    """
    table = variant.table(message)
    values: dict[str, Any] = {}

    while not reader.is_exhausted():
        field_number, wire_type = reader.read_tag()
        spec = table.get(field_number)
        if spec is None or wire_type != spec.wire_type:
            reader.skip(wire_type)
            continue

        value = _read_value(reader, spec, variant)
        if spec.repeated:
            values.setdefault(spec.slot, []).append(value)
        else:
            values[spec.slot] = value

    return RECORD_TYPES[message](**values)


def _read_value(reader: ByteReader, spec: FieldSpec, variant: SchemaVariant) -> Any:
    if spec.kind is FieldKind.MESSAGE:
        return parse_message(reader.read_sub_reader(), spec.message, variant)
    return _SCALAR_READERS[spec.kind](reader)


def parse_feed_header(reader: ByteReader, variant: SchemaVariant = GTFS_REALTIME) -> FeedHeader:
    """Parse a FeedHeader from the remainder of ``reader``."""
    return parse_message(reader, "feed_header", variant)


def parse_feed_entity(reader: ByteReader, variant: SchemaVariant = GTFS_REALTIME) -> FeedEntity:
    """Parse one FeedEntity; trip update and vehicle content share one slot."""
    return parse_message(reader, "feed_entity", variant)


def parse_trip_update(reader: ByteReader, variant: SchemaVariant = GTFS_REALTIME) -> TripUpdate:
    """Parse a TripUpdate with its stop time updates in arrival order."""
    return parse_message(reader, "trip_update", variant)


def parse_stop_time_update(
    reader: ByteReader, variant: SchemaVariant = GTFS_REALTIME
) -> StopTimeUpdate:
    """Parse one StopTimeUpdate."""
    return parse_message(reader, "stop_time_update", variant)


def parse_stop_time_event(
    reader: ByteReader, variant: SchemaVariant = GTFS_REALTIME
) -> StopTimeEvent:
    """Parse a StopTimeEvent; ``delay`` and ``uncertainty`` are int32, not zigzag."""
    return parse_message(reader, "stop_time_event", variant)


def parse_vehicle_position(
    reader: ByteReader, variant: SchemaVariant = GTFS_REALTIME
) -> VehiclePosition:
    """Parse a VehiclePosition using the variant's vehicle_position table."""
    return parse_message(reader, "vehicle_position", variant)


def parse_trip_descriptor(
    reader: ByteReader, variant: SchemaVariant = GTFS_REALTIME
) -> TripDescriptor:
    """Parse a TripDescriptor."""
    return parse_message(reader, "trip_descriptor", variant)


def parse_vehicle_descriptor(
    reader: ByteReader, variant: SchemaVariant = GTFS_REALTIME
) -> VehicleDescriptor:
    """Parse a VehicleDescriptor."""
    return parse_message(reader, "vehicle_descriptor", variant)


def parse_position(reader: ByteReader, variant: SchemaVariant = GTFS_REALTIME) -> Position:
    """Parse a Position (float32 coordinates, float64 odometer)."""
    return parse_message(reader, "position", variant)
