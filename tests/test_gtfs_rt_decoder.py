"""Tests for GTFS-RT feed decoder."""

import json

import pytest

from delijn_rt.services.gtfs_rt.decoder import FeedFramingError, GtfsRtDecoder
from delijn_rt.services.gtfs_rt.records import ParseError
from delijn_rt.services.gtfs_rt.schema import (
    GTFS_REALTIME,
    SEQUENTIAL_VEHICLE,
    FieldKind,
    FieldSpec,
)

from .fixtures.gtfs_rt_fixture import (
    build_alert_feed,
    build_empty_feed,
    build_multi_entity_trip_update_feed,
    build_trip_update_feed,
    build_vehicle_position_feed,
    bytes_field,
    encode_tag,
    encode_varint,
    float_field,
    raw_feed,
    raw_vehicle_entity,
    string_field,
    varint_field,
)


class TestGtfsRtDecoder:
    """Decoding feeds serialized by the official bindings."""

    def test_decode_trip_update_feed(self) -> None:
        data = build_trip_update_feed(feed_timestamp=1700000000)
        feed = GtfsRtDecoder().decode(data, "poll-1")
        assert feed.header is not None
        assert feed.header.timestamp == 1700000000
        assert feed.header.gtfs_realtime_version == "2.0"
        assert len(feed.entities) == 1
        tu = feed.entities[0].trip_update
        assert tu is not None
        assert tu.trip is not None and tu.trip.trip_id == "trip_001"
        assert tu.trip.route_id == "route_R1"
        assert tu.trip.schedule_relationship == 0
        assert [stu.stop_id for stu in tu.stop_time_update] == ["stop_A", "stop_B"]
        first = tu.stop_time_update[0]
        assert first.arrival is not None and first.arrival.delay == 60
        assert first.arrival.time == 0
        assert first.departure is not None and first.departure.delay == 65

    def test_decode_negative_delay(self) -> None:
        data = build_trip_update_feed(
            stop_updates=[{"stop_id": "S1", "stop_sequence": 1, "arrival_delay": -45}],
        )
        feed = GtfsRtDecoder().decode(data)
        stu = feed.entities[0].trip_update.stop_time_update[0]
        assert stu.arrival.delay == -45

    def test_decode_vehicle_position_feed(self) -> None:
        data = build_vehicle_position_feed(feed_timestamp=1700000000)
        feed = GtfsRtDecoder().decode(data, "poll-1")
        assert len(feed.entities) == 1
        entity = feed.entities[0]
        assert entity.id == "vp_veh_001"
        vp = entity.vehicle
        assert vp is not None
        assert vp.vehicle.id == "veh_001"
        assert vp.vehicle.label == "Bus veh_001"
        assert vp.trip.trip_id == "trip_001"
        assert vp.trip.direction_id == 1
        assert vp.position.latitude == pytest.approx(51.0543, abs=0.001)
        assert vp.position.longitude == pytest.approx(3.7174, abs=0.001)
        assert vp.position.bearing == 90.0
        assert vp.position.speed == 12.5
        assert vp.position.odometer == 123456.75
        assert vp.current_stop_sequence == 3
        assert vp.current_status == 1
        assert vp.stop_id == "stop_C"
        assert vp.timestamp == 1700000042
        assert vp.occupancy_status == 2
        assert vp.congestion_level is None

    def test_decode_alert_feed_skips_alert_content(self) -> None:
        data = build_alert_feed(feed_timestamp=1700000000)
        feed = GtfsRtDecoder().decode(data, "poll-1")
        assert len(feed.entities) == 1
        assert feed.entities[0].id == "alert_001"
        assert feed.entities[0].content is None
        assert feed.parse_error_count == 0

    def test_decode_empty_feed(self) -> None:
        data = build_empty_feed(feed_timestamp=1700000000)
        feed = GtfsRtDecoder().decode(data, "poll-1")
        assert len(feed.entities) == 0
        assert feed.header.timestamp == 1700000000

    def test_decode_multi_entity(self) -> None:
        data = build_multi_entity_trip_update_feed(count=10, feed_timestamp=1700000000)
        feed = GtfsRtDecoder().decode(data, "poll-1")
        assert len(feed.entities) == 10
        assert [e.id for e in feed.entities] == [f"tu_trip_{i:03d}" for i in range(10)]

    def test_decode_empty_bytes_succeeds(self) -> None:
        # Empty bytes is a valid (but empty) protobuf
        feed = GtfsRtDecoder().decode(b"", "poll-1")
        assert feed.header is None
        assert len(feed.entities) == 0

    def test_get_feed_timestamp(self) -> None:
        data = build_trip_update_feed(feed_timestamp=1700000000)
        feed = GtfsRtDecoder().decode(data, "poll-1")
        assert GtfsRtDecoder.get_feed_timestamp(feed) == 1700000000

    def test_get_feed_timestamp_unset(self) -> None:
        feed = GtfsRtDecoder().decode(raw_feed(header=string_field(1, "2.0")))
        assert GtfsRtDecoder.get_feed_timestamp(feed) is None

    def test_get_entity_count(self) -> None:
        data = build_multi_entity_trip_update_feed(count=7, feed_timestamp=1700000000)
        feed = GtfsRtDecoder().decode(data, "poll-1")
        assert GtfsRtDecoder.get_entity_count(feed) == 7


class TestEntityIsolation:
    """A corrupt entity never takes the rest of the feed down."""

    def test_truncated_middle_entity(self) -> None:
        data = raw_feed(
            raw_vehicle_entity("e0", "V0"),
            raw_vehicle_entity("e1", "V1", truncate_by=2),
            raw_vehicle_entity("e2", "V2"),
        )
        feed = GtfsRtDecoder().decode(data, "poll-1")

        assert len(feed.entities) == 3
        assert feed.parse_error_count == 1
        assert isinstance(feed.entities[1].content, ParseError)
        assert feed.entities[1].parse_error.byte_count > 0
        assert feed.entities[0].vehicle.vehicle.id == "V0"
        assert feed.entities[2].vehicle.vehicle.id == "V2"
        assert feed.entities[2].vehicle.position.latitude == pytest.approx(51.05, abs=1e-5)

    def test_nested_failure_offset_is_entity_relative(self) -> None:
        entity_id = string_field(1, "e0")
        trip = bytes_field(1, string_field(1, "T"))
        latitude = float_field(1, 51.05)
        # longitude tag followed by 2 of its 4 bytes
        position = bytes_field(2, latitude + encode_tag(2, 5) + b"\x00\x00")
        entity = entity_id + bytes_field(4, trip + position)
        expected = len(entity_id) + 2 + len(trip) + 2 + len(latitude) + 1

        feed = GtfsRtDecoder().decode(raw_feed(entity))

        error = feed.entities[0].parse_error
        assert error is not None
        assert error.offset == expected == 19
        assert error.byte_count == len(entity)
        assert f"(offset {expected})" in error.message

    def test_every_entity_failing_still_returns_feed(self) -> None:
        data = raw_feed(*(raw_vehicle_entity(f"e{i}", f"V{i}", truncate_by=1) for i in range(4)))
        feed = GtfsRtDecoder().decode(data)
        assert feed.parse_error_count == 4
        assert all(e.parse_error is not None for e in feed.entities)
        assert feed.header.timestamp == 1700000000

    def test_unknown_wire_type_inside_entity_is_isolated(self) -> None:
        bad = string_field(1, "bad") + encode_tag(15, 7)
        data = raw_feed(bad, raw_vehicle_entity("ok", "V1"))
        feed = GtfsRtDecoder().decode(data)
        assert feed.parse_error_count == 1
        assert "Unknown wire type 7" in feed.entities[0].parse_error.message
        assert feed.entities[1].vehicle is not None

    def test_unknown_feed_level_fields_skipped(self) -> None:
        data = varint_field(1000, 5) + raw_feed(raw_vehicle_entity("e0", "V0"))
        feed = GtfsRtDecoder().decode(data)
        assert len(feed.entities) == 1
        assert feed.parse_error_count == 0

    def test_entity_with_wrong_wire_type_skipped(self) -> None:
        data = raw_feed(raw_vehicle_entity("e0", "V0")) + varint_field(2, 7)
        feed = GtfsRtDecoder().decode(data)
        assert len(feed.entities) == 1


class TestFeedFraming:
    """Failures above the entity boundary abort the decode."""

    def test_entity_length_past_end_of_feed(self) -> None:
        body = raw_vehicle_entity("e0", "V0")
        data = raw_feed() + encode_tag(2, 2) + encode_varint(len(body) + 10) + body
        with pytest.raises(FeedFramingError) as exc_info:
            GtfsRtDecoder().decode(data)
        error = exc_info.value
        assert error.offset == len(raw_feed())
        assert error.byte_count == len(data)
        assert error.hex_preview.startswith("0a")

    def test_corrupt_header(self) -> None:
        header = string_field(1, "2.0") + float_field(3, 1.0)[:-2]
        data = bytes_field(1, header) + bytes_field(2, raw_vehicle_entity("e0", "V0"))
        with pytest.raises(FeedFramingError, match="Malformed feed at byte 0"):
            GtfsRtDecoder().decode(data)

    def test_garbage_input(self) -> None:
        with pytest.raises(FeedFramingError):
            GtfsRtDecoder().decode(b"not a protobuf")

    def test_preview_is_bounded(self) -> None:
        data = b"\x0a\xff" + b"\x00" * 100
        with pytest.raises(FeedFramingError) as exc_info:
            GtfsRtDecoder(preview_bytes=4).decode(data)
        assert exc_info.value.hex_preview == "0a ff 00 00"


class TestVariantSelection:
    """The decoder applies the variant it was built with."""

    def test_sequential_vehicle_variant(self) -> None:
        vehicle = (
            bytes_field(1, string_field(1, "T1"))
            + bytes_field(2, string_field(1, "V1"))
            + bytes_field(3, float_field(1, 51.05) + float_field(2, 3.73))
            + varint_field(7, 1700000000)
        )
        data = raw_feed(string_field(1, "e0") + bytes_field(4, vehicle))
        feed = GtfsRtDecoder(variant=SEQUENTIAL_VEHICLE).decode(data)
        vp = feed.entities[0].vehicle
        assert vp.vehicle.id == "V1"
        assert vp.position.longitude == pytest.approx(3.73, abs=1e-5)
        assert vp.timestamp == 1700000000

    def test_feed_level_numbering_comes_from_variant(self) -> None:
        renumbered = GTFS_REALTIME.replace(
            name="test-renumbered-feed",
            feed_message={
                1: FieldSpec("header", FieldKind.MESSAGE, message="feed_header"),
                7: FieldSpec("entity", FieldKind.MESSAGE, message="feed_entity", repeated=True),
            },
        )
        data = bytes_field(1, varint_field(3, 1700000000)) + bytes_field(
            7, raw_vehicle_entity("e0", "V0")
        )
        feed = GtfsRtDecoder(variant=renumbered).decode(data)
        assert feed.header.timestamp == 1700000000
        assert feed.entities[0].vehicle.vehicle.id == "V0"

        # field 2 is no longer an entity under this variant
        standard = raw_feed(raw_vehicle_entity("e0", "V0"))
        assert GtfsRtDecoder(variant=renumbered).decode(standard).entities == ()


class TestJsonRendering:
    """Decoded feeds render as GTFS-RT style JSON."""

    def test_vehicle_feed_json(self) -> None:
        data = raw_feed(
            raw_vehicle_entity("e0", "V0"),
            raw_vehicle_entity("e1", "V1", truncate_by=2),
        )
        feed = GtfsRtDecoder().decode(data)
        rendered = json.loads(feed.model_dump_json(by_alias=True, exclude_none=True))

        assert rendered["header"] == {"gtfsRealtimeVersion": "2.0", "timestamp": 1700000000}
        assert rendered["parseErrorCount"] == 1
        first, second = rendered["entity"]
        assert first["id"] == "e0"
        assert first["vehicle"]["vehicle"] == {"id": "V0"}
        assert first["vehicle"]["trip"] == {"tripId": "trip_V0"}
        assert "kind" not in first["vehicle"]
        assert "content" not in first
        assert "parseError" in second
        assert second["parseError"]["byteCount"] > 0

    def test_to_json_dict_matches(self) -> None:
        data = build_trip_update_feed(feed_timestamp=1700000000)
        feed = GtfsRtDecoder().decode(data)
        rendered = feed.to_json_dict()
        stu = rendered["entity"][0]["tripUpdate"]["stopTimeUpdate"][0]
        assert stu["stopId"] == "stop_A"
        assert stu["arrival"]["delay"] == 60
