"""Foundation: errors, events, configuration and logging.

Leaf layer with no imports from the runtime; everything else builds on it.
"""

from .config import FluxguardSettings, clear_settings_cache, get_settings
from .errors import ErrorCode, FluxError, HttpError, classify_exception
from .events import EventEmitter, EventKind
from .logging import JsonFormatter, configure_logging

__all__ = [
    # Errors
    "ErrorCode", "FluxError", "HttpError", "classify_exception",
    # Events
    "EventEmitter", "EventKind",
    # Config
    "FluxguardSettings", "get_settings", "clear_settings_cache",
    # Logging
    "configure_logging", "JsonFormatter",
]
