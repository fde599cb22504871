"""GTFS-RT decode layer over the schema-driven codec."""

from __future__ import annotations

from transit_rt.codec import Message, decode
from transit_rt.errors import MalformedInput
from transit_rt.logging import get_logger
from transit_rt.schema.descriptors import SchemaRegistry
from transit_rt.schema.gtfs_realtime import FEED_MESSAGE, GTFS_REALTIME

logger = get_logger(__name__)


class GtfsRtDecoder:
    """Decodes raw feed bytes into ``FeedMessage`` trees."""

    @staticmethod
    def decode(
        data: bytes,
        feed_type: str,
        ingest_id: str,
        *,
        registry: SchemaRegistry = GTFS_REALTIME,
        enforce_required: bool = False,
        max_depth: int = 100,
    ) -> Message:
        """Decode bytes into a FeedMessage tree.

        Args:
            data: Raw feed bytes.
            feed_type: Label for logging.
            ingest_id: Correlation ID.
            registry: Schema to decode against; pass one built with
                ``with_extension`` to read consumer-known extensions.
            enforce_required: Fail on missing ``required`` fields.
            max_depth: Nesting limit.

        Returns:
            Decoded FeedMessage tree.

        Raises:
            MalformedInput: If the bytes cannot be parsed.
        """
        try:
            feed = decode(
                data,
                FEED_MESSAGE,
                registry,
                enforce_required=enforce_required,
                max_depth=max_depth,
            )
        except MalformedInput as exc:
            logger.error(
                "Failed to decode feed",
                feed_type=feed_type,
                ingest_id=ingest_id,
                offset=exc.offset,
                path=exc.path,
                error=str(exc),
            )
            raise

        header = feed.fields.get("header")
        logger.info(
            "GTFS-RT feed decoded",
            feed_type=feed_type,
            ingest_id=ingest_id,
            entity_count=GtfsRtDecoder.get_entity_count(feed),
            feed_timestamp=GtfsRtDecoder.get_feed_timestamp(feed),
            gtfs_rt_version=header.get("gtfs_realtime_version") if header else None,
        )

        return feed

    @staticmethod
    def get_feed_timestamp(feed: Message) -> int:
        """Extract the header timestamp from a FeedMessage.

        Returns:
            Unix timestamp (seconds), or 0 if not set.
        """
        header = feed.fields.get("header")
        if header is None:
            return 0
        return header.get("timestamp") or 0

    @staticmethod
    def get_entity_count(feed: Message) -> int:
        """Get the number of entities in the feed."""
        return len(feed.get("entity"))
