"""
Utility functions for the concurrent_state library.
"""

import os
import sys
from typing import Optional

# Environment variable to control debug mode
DEBUG_TASKS = os.environ.get("CONCURRENT_STATE_DEBUG", "").lower() in ("1", "true", "yes")


class _NoEvent:
    """Marker for "no event argument" so that ``None`` can still be passed as an event."""

    _instance: Optional["_NoEvent"] = None

    def __new__(cls) -> "_NoEvent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_EVENT"

    def __bool__(self) -> bool:
        return False


NO_EVENT = _NoEvent()


def _is_library_frame(path: str) -> bool:
    normalized = path.replace("\\", "/").lower()
    return "/concurrent_state/" in normalized


def capture_creation_site(skip_frames: int = 2) -> Optional[str]:
    """
    Describe where a task was created, as ``file:line in function``.

    Frames inside this library are skipped so the site points at user code.
    Returns ``None`` unless CONCURRENT_STATE_DEBUG is enabled.
    """
    if not DEBUG_TASKS:
        return None
    try:
        frame = sys._getframe(skip_frames)
    except ValueError:
        return None
    while frame is not None and _is_library_frame(frame.f_code.co_filename):
        frame = frame.f_back
    if frame is None:
        return None
    return f"{frame.f_code.co_filename}:{frame.f_lineno} in {frame.f_code.co_name}"


__all__ = ["DEBUG_TASKS", "NO_EVENT", "capture_creation_site"]
