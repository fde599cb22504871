"""Generic codec for the tagged binary wire format."""

from transit_rt.codec.codec import decode, encode
from transit_rt.codec.message import Message, UnknownField
from transit_rt.codec.wire import WireType

__all__ = [
    "Message",
    "UnknownField",
    "WireType",
    "decode",
    "encode",
]
