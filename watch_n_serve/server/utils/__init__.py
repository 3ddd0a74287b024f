"""
Utilities package for the watch-n-serve development server.

This package contains helper utilities for debouncing filesystem
change notifications.
"""

from .debouncer import BurstDebouncer

__all__ = [
    "BurstDebouncer",
]
