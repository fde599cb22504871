"""GTFS-realtime feed codec, validation, merging and resolution."""

__version__ = "0.1.0"
