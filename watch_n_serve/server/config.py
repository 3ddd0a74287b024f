"""Explicit configuration for a DevServer instance."""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .constants import ServerConstants


@dataclass
class ServerConfig:
    """
    Configuration passed to DevServer.

    Attributes:
        root: Directory whose files are served and watched
        host: Hostname to bind to (also used in the reload script)
        port: Port to listen on (also used in the reload script)
        watch: Watch root for changes and instrument HTML responses
        minimum_delay: Debounce quiet period in seconds
    """
    root: Union[str, Path]
    host: str = ServerConstants.DEFAULT_HOST
    port: int = ServerConstants.DEFAULT_PORT
    watch: bool = True
    minimum_delay: float = ServerConstants.DEBOUNCE_DELAY_SECONDS

    def __post_init__(self):
        self.root = Path(self.root)
