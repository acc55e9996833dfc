"""GTFS-RT feed decode layer."""

from __future__ import annotations

from delijn_rt.logging import get_logger
from delijn_rt.services.gtfs_rt.parsers import parse_feed_entity, parse_feed_header
from delijn_rt.services.gtfs_rt.reader import ByteReader, WireFormatError
from delijn_rt.services.gtfs_rt.records import FeedEntity, FeedHeader, FeedMessage, ParseError
from delijn_rt.services.gtfs_rt.schema import GTFS_REALTIME, SchemaVariant

logger = get_logger(__name__)

# Slots of the feed_message table the decoder handles itself
FEED_HEADER_SLOT = "header"
FEED_ENTITY_SLOT = "entity"
DEFAULT_PREVIEW_BYTES = 32


class EntityDecodeFailure(Exception):
    """Raised when one feed entity's byte range cannot be decoded."""

    def __init__(self, index: int, byte_count: int, cause: WireFormatError) -> None:
        super().__init__(f"Entity {index} failed to decode: {cause}")
        self.index = index
        self.byte_count = byte_count
        self.offset = cause.offset


class FeedFramingError(Exception):
    """Raised when the feed itself cannot be decoded (header or entity framing)."""

    def __init__(self, message: str, offset: int, data: bytes, preview_bytes: int) -> None:
        super().__init__(message)
        self.offset = offset
        self.byte_count = len(data)
        self.hex_preview = data[:preview_bytes].hex(" ")


class GtfsRtDecoder:
    """Decodes raw GTFS-RT protobuf bytes into an immutable FeedMessage.

    Failures inside one entity are contained to that entity; failures in the
    header or in the framing of the entity sequence abort the whole decode.
    """

    def __init__(
        self,
        variant: SchemaVariant = GTFS_REALTIME,
        preview_bytes: int = DEFAULT_PREVIEW_BYTES,
    ) -> None:
        self.variant = variant
        self.preview_bytes = preview_bytes

    def decode(self, data: bytes, poll_id: str | None = None) -> FeedMessage:
        """Decode one serialized FeedMessage.

        Args:
            data: Raw protobuf bytes.
            poll_id: Correlation ID for logging.

        Returns:
            Parsed FeedMessage; entities that failed carry a ParseError.

        Raises:
            FeedFramingError: If the header or the entity framing is malformed.
        """
        reader = ByteReader(data)
        header: FeedHeader | None = None
        entities: list[FeedEntity] = []
        error_count = 0
        table = self.variant.table("feed_message")

        while not reader.is_exhausted():
            field_start = reader.position
            try:
                field_number, wire_type = reader.read_tag()
                spec = table.get(field_number)
                slot = spec.slot if spec is not None and wire_type == spec.wire_type else None
                if slot == FEED_HEADER_SLOT:
                    header = parse_feed_header(reader.read_sub_reader(), self.variant)
                    continue
                if slot == FEED_ENTITY_SLOT:
                    entity_bytes = reader.read_length_delimited()
                else:
                    reader.skip(wire_type)
                    continue
            except WireFormatError as exc:
                raise self._framing_error(exc, field_start, data, poll_id) from exc

            try:
                entity = self._decode_entity(entity_bytes, len(entities))
            except EntityDecodeFailure as exc:
                error_count += 1
                logger.warning(
                    "GTFS-RT entity decode failed",
                    poll_id=poll_id,
                    entity_index=exc.index,
                    entity_offset=field_start,
                    error=str(exc.__cause__),
                )
                entity = FeedEntity(
                    content=ParseError(
                        message=str(exc.__cause__),
                        offset=exc.offset,
                        byte_count=exc.byte_count,
                    )
                )
            entities.append(entity)

        feed = FeedMessage(header=header, entities=entities, parse_error_count=error_count)
        logger.info(
            "GTFS-RT feed decoded",
            poll_id=poll_id,
            schema_variant=self.variant.name,
            size_bytes=len(data),
            entity_count=len(entities),
            parse_error_count=error_count,
            feed_timestamp=header.timestamp if header else None,
            gtfs_rt_version=header.gtfs_realtime_version if header else None,
        )
        return feed

    def _decode_entity(self, entity_bytes: bytes, index: int) -> FeedEntity:
        try:
            return parse_feed_entity(ByteReader(entity_bytes), self.variant)
        except WireFormatError as exc:
            raise EntityDecodeFailure(index, len(entity_bytes), exc) from exc

    def _framing_error(
        self, exc: WireFormatError, field_start: int, data: bytes, poll_id: str | None
    ) -> FeedFramingError:
        msg = f"Malformed feed at byte {field_start}: {exc}"
        error = FeedFramingError(msg, field_start, data, self.preview_bytes)
        logger.error(
            "GTFS-RT feed framing failed",
            poll_id=poll_id,
            offset=field_start,
            size_bytes=error.byte_count,
            hex_preview=error.hex_preview,
            error=str(exc),
        )
        return error

    @staticmethod
    def get_feed_timestamp(feed: FeedMessage) -> int | None:
        """Extract the header timestamp, or None if the feed did not send one."""
        return feed.header.timestamp if feed.header else None

    @staticmethod
    def get_entity_count(feed: FeedMessage) -> int:
        """Get the number of entities in the feed, failed ones included."""
        return len(feed.entities)
