"""GTFS-Realtime ingestion pipeline."""

from transit_rt.services.gtfs_rt.decoder import GtfsRtDecoder
from transit_rt.services.gtfs_rt.normalizer import GtfsRtNormalizer
from transit_rt.services.gtfs_rt.pipeline import FeedIngestor, get_ingestor, reset_ingestor

__all__ = [
    "FeedIngestor",
    "GtfsRtDecoder",
    "GtfsRtNormalizer",
    "get_ingestor",
    "reset_ingestor",
]
