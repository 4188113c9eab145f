"""k1s0 event_store_client library."""

from .channel import Channel
from .client import EventStoreClient
from .decoder import Fragment, extract_payload, is_keepalive, iter_fragments, parse_fragment
from .exceptions import ChannelClosedError, EventStoreError, EventStoreErrorCodes
from .http_client import HttpEventStoreClient
from .models import (
    Event,
    EventStoreConfig,
    ObservationState,
    Precondition,
    StreamOptions,
    format_time,
    parse_time,
)
from .normalizer import EventDefaults, normalize_event
from .observation import Observation

__all__ = [
    "Channel",
    "ChannelClosedError",
    "Event",
    "EventDefaults",
    "EventStoreClient",
    "EventStoreConfig",
    "EventStoreError",
    "EventStoreErrorCodes",
    "Fragment",
    "HttpEventStoreClient",
    "Observation",
    "ObservationState",
    "Precondition",
    "StreamOptions",
    "extract_payload",
    "format_time",
    "is_keepalive",
    "iter_fragments",
    "normalize_event",
    "parse_fragment",
    "parse_time",
]
