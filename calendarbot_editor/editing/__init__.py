"""Edit sessions, live previews and debounced saving."""

from .edit_session import EditSession, SessionState
from .live_preview import LivePreviewCoordinator, PreviewEndReason
from .save_scheduler import SaveScheduler, has_meaningful_content

__all__ = [
    "EditSession",
    "LivePreviewCoordinator",
    "PreviewEndReason",
    "SaveScheduler",
    "SessionState",
    "has_meaningful_content",
]
