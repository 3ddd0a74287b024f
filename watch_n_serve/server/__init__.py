"""
Server module for the watch-n-serve development server.

This module provides:
- DevServer for serving static files with live reload
- ChangeWatcher for detecting changes under the served root
- ServerConfig for explicit server configuration
"""

from .api import DevServer
from .config import ServerConfig
from .watcher import ChangeWatcher

__all__ = ["DevServer", "ServerConfig", "ChangeWatcher"]
