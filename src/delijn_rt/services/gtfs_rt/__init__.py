"""GTFS-Realtime fetch and decode pipeline for De Lijn data."""

from delijn_rt.services.gtfs_rt.decoder import (
    EntityDecodeFailure,
    FeedFramingError,
    GtfsRtDecoder,
)
from delijn_rt.services.gtfs_rt.fetcher import FeedFetchError, GtfsRtFetcher
from delijn_rt.services.gtfs_rt.reader import (
    BufferUnderrun,
    ByteReader,
    UnknownWireType,
    WireFormatError,
    WireType,
)
from delijn_rt.services.gtfs_rt.schema import (
    SchemaVariant,
    get_schema_variant,
    register_schema_variant,
)

__all__ = [
    "BufferUnderrun",
    "ByteReader",
    "EntityDecodeFailure",
    "FeedFetchError",
    "FeedFramingError",
    "GtfsRtDecoder",
    "GtfsRtFetcher",
    "SchemaVariant",
    "UnknownWireType",
    "WireFormatError",
    "WireType",
    "get_schema_variant",
    "register_schema_variant",
]
