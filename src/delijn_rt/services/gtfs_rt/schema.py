"""Field-number tables for each GTFS-RT message type.

The tables are data: a vendor that numbers a message differently gets a new
``SchemaVariant``, not new parsing code.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping

from delijn_rt.services.gtfs_rt.reader import WireType


class FieldKind(str, Enum):
    """How a field's value is decoded once its wire type has been checked."""

    UINT = "uint"
    INT32 = "int32"
    BOOL = "bool"
    ENUM = "enum"
    FLOAT = "float"
    DOUBLE = "double"
    STRING = "string"
    MESSAGE = "message"


# Wire type each field kind must arrive with
EXPECTED_WIRE_TYPE = {
    FieldKind.UINT: WireType.VARINT,
    FieldKind.INT32: WireType.VARINT,
    FieldKind.BOOL: WireType.VARINT,
    FieldKind.ENUM: WireType.VARINT,
    FieldKind.FLOAT: WireType.FIXED32,
    FieldKind.DOUBLE: WireType.FIXED64,
    FieldKind.STRING: WireType.LENGTH_DELIMITED,
    FieldKind.MESSAGE: WireType.LENGTH_DELIMITED,
}


@dataclass(frozen=True)
class FieldSpec:
    """Meaning of one field number within a message."""

    slot: str
    kind: FieldKind
    message: str | None = None
    repeated: bool = False

    @property
    def wire_type(self) -> WireType:
        return EXPECTED_WIRE_TYPE[self.kind]


MessageSchema = Mapping[int, FieldSpec]


def _field(slot: str, kind: FieldKind) -> FieldSpec:
    return FieldSpec(slot=slot, kind=kind)


def _message(slot: str, message: str, repeated: bool = False) -> FieldSpec:
    return FieldSpec(slot=slot, kind=FieldKind.MESSAGE, message=message, repeated=repeated)


@dataclass(frozen=True)
class SchemaVariant:
    """One table per message type, selected per deployment.

    Tables are copied into read-only mappings on construction, so a variant
    derived with ``replace`` never shares a mutable table with its parent.
    """

    name: str
    feed_message: MessageSchema
    feed_header: MessageSchema
    feed_entity: MessageSchema
    trip_update: MessageSchema
    stop_time_update: MessageSchema
    stop_time_event: MessageSchema
    vehicle_position: MessageSchema
    trip_descriptor: MessageSchema
    vehicle_descriptor: MessageSchema
    position: MessageSchema

    def __post_init__(self) -> None:
        for table_field in dataclasses.fields(self):
            if table_field.name != "name":
                table = getattr(self, table_field.name)
                object.__setattr__(self, table_field.name, MappingProxyType(dict(table)))

    def table(self, message: str) -> MessageSchema:
        """Look up the table for a message type by its attribute name."""
        return getattr(self, message)

    def replace(self, **changes: MessageSchema | str) -> SchemaVariant:
        """Derive a variant that swaps out some of this variant's tables."""
        return dataclasses.replace(self, **changes)


GTFS_REALTIME = SchemaVariant(
    name="gtfs-realtime",
    feed_message={
        1: _message("header", "feed_header"),
        2: _message("entity", "feed_entity", repeated=True),
    },
    feed_header={
        1: _field("gtfs_realtime_version", FieldKind.STRING),
        2: _field("incrementality", FieldKind.ENUM),
        3: _field("timestamp", FieldKind.UINT),
    },
    feed_entity={
        1: _field("id", FieldKind.STRING),
        2: _field("is_deleted", FieldKind.BOOL),
        # oneof: both share a slot so the last one on the wire wins
        3: _message("content", "trip_update"),
        4: _message("content", "vehicle_position"),
    },
    trip_update={
        1: _message("trip", "trip_descriptor"),
        2: _message("stop_time_update", "stop_time_update", repeated=True),
        3: _message("vehicle", "vehicle_descriptor"),
        4: _field("timestamp", FieldKind.UINT),
        5: _field("delay", FieldKind.INT32),
    },
    stop_time_update={
        1: _field("stop_sequence", FieldKind.UINT),
        2: _message("arrival", "stop_time_event"),
        3: _message("departure", "stop_time_event"),
        4: _field("stop_id", FieldKind.STRING),
        5: _field("schedule_relationship", FieldKind.ENUM),
    },
    stop_time_event={
        1: _field("delay", FieldKind.INT32),
        2: _field("time", FieldKind.UINT),
        3: _field("uncertainty", FieldKind.INT32),
    },
    vehicle_position={
        1: _message("trip", "trip_descriptor"),
        2: _message("position", "position"),
        3: _field("current_stop_sequence", FieldKind.UINT),
        4: _field("current_status", FieldKind.ENUM),
        5: _field("timestamp", FieldKind.UINT),
        6: _field("congestion_level", FieldKind.ENUM),
        7: _field("stop_id", FieldKind.STRING),
        8: _message("vehicle", "vehicle_descriptor"),
        9: _field("occupancy_status", FieldKind.ENUM),
    },
    trip_descriptor={
        1: _field("trip_id", FieldKind.STRING),
        2: _field("start_time", FieldKind.STRING),
        3: _field("start_date", FieldKind.STRING),
        4: _field("schedule_relationship", FieldKind.ENUM),
        5: _field("route_id", FieldKind.STRING),
        6: _field("direction_id", FieldKind.UINT),
    },
    vehicle_descriptor={
        1: _field("id", FieldKind.STRING),
        2: _field("label", FieldKind.STRING),
        3: _field("license_plate", FieldKind.STRING),
    },
    position={
        1: _field("latitude", FieldKind.FLOAT),
        2: _field("longitude", FieldKind.FLOAT),
        3: _field("bearing", FieldKind.FLOAT),
        4: _field("odometer", FieldKind.DOUBLE),
        5: _field("speed", FieldKind.FLOAT),
    },
)

# Vehicle position with the descriptor, position and timestamp renumbered
# sequentially (trip 1, vehicle 2, position 3, timestamp 7).
SEQUENTIAL_VEHICLE = GTFS_REALTIME.replace(
    name="sequential-vehicle",
    vehicle_position={
        1: _message("trip", "trip_descriptor"),
        2: _message("vehicle", "vehicle_descriptor"),
        3: _message("position", "position"),
        4: _field("current_stop_sequence", FieldKind.UINT),
        5: _field("current_status", FieldKind.ENUM),
        6: _field("stop_id", FieldKind.STRING),
        7: _field("timestamp", FieldKind.UINT),
        8: _field("congestion_level", FieldKind.ENUM),
        9: _field("occupancy_status", FieldKind.ENUM),
    },
)

DEFAULT_SCHEMA_VARIANT = GTFS_REALTIME.name

_VARIANTS: Dict[str, SchemaVariant] = {
    GTFS_REALTIME.name: GTFS_REALTIME,
    SEQUENTIAL_VEHICLE.name: SEQUENTIAL_VEHICLE,
}


def register_schema_variant(variant: SchemaVariant) -> None:
    """Make a variant selectable by name (replaces any with the same name)."""
    _VARIANTS[variant.name] = variant


def get_schema_variant(name: str) -> SchemaVariant:
    """Resolve a registered schema variant.

    Raises:
        KeyError: If no variant is registered under ``name``.
    """
    try:
        return _VARIANTS[name]
    except KeyError:
        msg = f"Unknown schema variant {name!r}; known: {', '.join(schema_variant_names())}"
        raise KeyError(msg) from None


def schema_variant_names() -> list[str]:
    return sorted(_VARIANTS)
