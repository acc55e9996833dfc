"""Decoded GTFS-RT records.

Every record is frozen. Optional fields default to ``None`` so that a value
missing from the wire is never confused with a zero that was sent.
"""

from __future__ import annotations

from typing import Any, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    model_serializer,
)
from pydantic.alias_generators import to_camel


class Record(BaseModel):
    """Frozen base for decoded records; serializes with camelCase aliases."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Render as camelCase JSON data with absent fields dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FeedHeader(Record):
    """Feed-level metadata; ``timestamp`` is POSIX seconds."""

    gtfs_realtime_version: Optional[str] = None
    incrementality: Optional[int] = None
    timestamp: Optional[int] = None


class TripDescriptor(Record):
    """Identifies the trip an update or position belongs to."""

    trip_id: Optional[str] = None
    route_id: Optional[str] = None
    direction_id: Optional[int] = None
    start_time: Optional[str] = None
    start_date: Optional[str] = None
    schedule_relationship: Optional[int] = None


class VehicleDescriptor(Record):
    """Identifies the physical vehicle."""

    id: Optional[str] = None
    label: Optional[str] = None
    license_plate: Optional[str] = None


class Position(Record):
    """WGS84 position; coordinates arrive as float32."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    bearing: Optional[float] = None
    odometer: Optional[float] = None
    speed: Optional[float] = None


class StopTimeEvent(Record):
    """Predicted arrival or departure at one stop."""

    delay: Optional[int] = None
    time: Optional[int] = None
    uncertainty: Optional[int] = None


class StopTimeUpdate(Record):
    """Realtime update for one stop of a trip."""

    stop_sequence: Optional[int] = None
    arrival: Optional[StopTimeEvent] = None
    departure: Optional[StopTimeEvent] = None
    stop_id: Optional[str] = None
    schedule_relationship: Optional[int] = None


class TripUpdate(Record):
    """Realtime progress of one trip."""

    kind: Literal["trip_update"] = "trip_update"
    trip: Optional[TripDescriptor] = None
    vehicle: Optional[VehicleDescriptor] = None
    stop_time_update: Tuple[StopTimeUpdate, ...] = ()
    timestamp: Optional[int] = None
    delay: Optional[int] = None


class VehiclePosition(Record):
    """Last reported position and status of one vehicle."""

    kind: Literal["vehicle_position"] = "vehicle_position"
    trip: Optional[TripDescriptor] = None
    vehicle: Optional[VehicleDescriptor] = None
    position: Optional[Position] = None
    current_stop_sequence: Optional[int] = None
    stop_id: Optional[str] = None
    current_status: Optional[int] = None
    timestamp: Optional[int] = None
    congestion_level: Optional[int] = None
    occupancy_status: Optional[int] = None


class ParseError(Record):
    """Stands in for an entity whose bytes could not be decoded.

    ``offset`` is where reading failed, counted from the first byte of the
    entity, however deeply nested the failing field was.
    """

    kind: Literal["parse_error"] = "parse_error"
    message: str
    offset: Optional[int] = None
    byte_count: int = 0


EntityContent = Union[TripUpdate, VehiclePosition, ParseError]

# JSON key each content kind is rendered under, as in GTFS-RT JSON
_CONTENT_KEYS = {
    "trip_update": "tripUpdate",
    "vehicle_position": "vehicle",
    "parse_error": "parseError",
}


class FeedEntity(Record):
    """One feed entity; ``content`` holds whichever record the wire carried last."""

    id: Optional[str] = None
    is_deleted: Optional[bool] = None
    content: Optional[EntityContent] = None

    @model_serializer(mode="wrap")
    def _serialize(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        content = data.pop("content", None)
        if isinstance(content, dict) and self.content is not None:
            content.pop("kind", None)
            data[_CONTENT_KEYS[self.content.kind]] = content
        return data

    @property
    def trip_update(self) -> TripUpdate | None:
        return self.content if isinstance(self.content, TripUpdate) else None

    @property
    def vehicle(self) -> VehiclePosition | None:
        return self.content if isinstance(self.content, VehiclePosition) else None

    @property
    def parse_error(self) -> ParseError | None:
        return self.content if isinstance(self.content, ParseError) else None


class FeedMessage(Record):
    """A decoded feed; ``parse_error_count`` counts entities that failed."""

    header: Optional[FeedHeader] = None
    entities: Tuple[FeedEntity, ...] = Field(default=(), alias="entity")
    parse_error_count: int = 0
