"""WebSocket module for pushing reload notifications to browsers."""

from .broadcaster import PushBroadcaster

__all__ = [
    'PushBroadcaster',
]
