"""Static file development server that reloads browsers when files change."""

from .server import ChangeWatcher, DevServer, ServerConfig

__all__ = ["ChangeWatcher", "DevServer", "ServerConfig"]
