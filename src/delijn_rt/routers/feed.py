"""Decoded GTFS-RT feed endpoints."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from delijn_rt.config import Settings, get_settings
from delijn_rt.logging import bind_poll_context, get_logger
from delijn_rt.services.gtfs_rt.decoder import FeedFramingError, GtfsRtDecoder
from delijn_rt.services.gtfs_rt.fetcher import FeedFetchError, GtfsRtFetcher
from delijn_rt.services.gtfs_rt.introspect import introspect
from delijn_rt.services.gtfs_rt.schema import get_schema_variant

logger = get_logger(__name__)

router = APIRouter(prefix="/api/gtfs", tags=["gtfs-rt"])


def _error(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


async def _fetch_feed(settings: Settings, poll_id: str) -> bytes | JSONResponse:
    """Fetch the raw feed, or return the error response to send instead."""
    if not settings.dl_gtfsrt:
        return _error(
            500, "Secret DL_GTFSRT is not configured. Set the DL_GTFSRT environment variable."
        )

    fetcher = GtfsRtFetcher(
        api_key=settings.dl_gtfsrt,
        timeout_sec=settings.gtfs_rt_fetch_timeout_sec,
        max_retries=settings.gtfs_rt_max_retries,
        backoff_base=settings.gtfs_rt_backoff_base,
    )
    try:
        data, _ = await fetcher.fetch(settings.gtfs_rt_url, poll_id)
    except FeedFetchError as exc:
        if exc.status_code is not None:
            return _error(
                exc.status_code, f"De Lijn API returned {exc.status_code}", detail=exc.body
            )
        return _error(502, "Failed to reach De Lijn API", detail=str(exc))
    return data


@router.get("", summary="Get the decoded De Lijn GTFS-RT feed")
async def get_feed() -> Response:
    """Fetch the vendor feed and return it decoded as JSON."""
    settings = get_settings()
    poll_id = str(uuid.uuid4())[:8]
    bind_poll_context(poll_id)

    fetched = await _fetch_feed(settings, poll_id)
    if isinstance(fetched, JSONResponse):
        return fetched

    decoder = GtfsRtDecoder(
        variant=get_schema_variant(settings.gtfs_rt_schema_variant),
        preview_bytes=settings.error_preview_bytes,
    )
    try:
        feed = decoder.decode(fetched, poll_id=poll_id)
    except FeedFramingError as exc:
        return _error(
            500,
            "Failed to decode protobuf",
            detail=str(exc),
            offset=exc.offset,
            byteCount=exc.byte_count,
            hexPreview=exc.hex_preview,
        )

    return Response(
        content=feed.model_dump_json(by_alias=True, exclude_none=True),
        media_type="application/json",
        headers={"Cache-Control": "no-store"},
    )


@router.get("/inspect", summary="Walk the live feed without a schema")
async def inspect_feed(
    max_depth: int | None = Query(default=None, alias="maxDepth", ge=0, le=32),
) -> Any:
    """Return the schema-less field walk of the live feed (non-production only)."""
    settings = get_settings()
    if settings.environment == "production":
        raise HTTPException(status_code=404, detail="Not found")

    poll_id = str(uuid.uuid4())[:8]
    bind_poll_context(poll_id)
    fetched = await _fetch_feed(settings, poll_id)
    if isinstance(fetched, JSONResponse):
        return fetched

    depth = settings.introspect_max_depth if max_depth is None else max_depth
    fields = introspect(fetched, max_depth=depth)
    logger.info(
        "GTFS-RT feed introspected",
        size_bytes=len(fetched),
        top_level_fields=len(fields),
    )
    return {
        "byteCount": len(fetched),
        "maxDepth": depth,
        "fields": [f.to_dict() for f in fields],
    }
