"""Streamer/live collaborator exports"""

from .models import StreamerInfo, viewer_key
from .repository import StreamDirectory

__all__ = ["StreamDirectory", "StreamerInfo", "viewer_key"]
