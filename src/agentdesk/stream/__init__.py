"""Engine stream forwarding."""

from .dispatcher import StreamDispatcher
from .partial_json import parse_partial_object

__all__ = ["StreamDispatcher", "parse_partial_object"]
