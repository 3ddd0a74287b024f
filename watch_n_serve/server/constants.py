"""
Constants for the watch-n-serve development server.

This module centralizes the fixed values shared by the watcher, the
HTTP/WebSocket server and the command line entry point.
"""


class ServerConstants:
    """Constants for serving and change notification."""

    # Listener
    DEFAULT_HOST = "localhost"
    DEFAULT_PORT = 8888

    # Debouncing
    DEBOUNCE_DELAY_SECONDS = 0.2  # 200ms quiet period per burst

    # Push channel
    RELOAD_EVENT_PATH = "/.watch_n_serve/events"
    RELOAD_MESSAGE = "updated"

    # Static files
    INDEX_FILE = "index.html"
    INSTRUMENTED_SUFFIX = ".html"
    CLOSING_BODY_TAG = "</body>"
    DEFAULT_CONTENT_TYPE = "application/octet-stream"


class BroadcastConstants:
    """Constants for per-client push queues."""

    CLIENT_QUEUE_SIZE = 100
