"""
Attention tracking layer: landmark post-processing, the looking/away state
machine and per-session time accounting.
"""

from .accumulator import ActiveWindowEvent, SessionAccumulator, SessionStateError
from .config import Settings
from .landmarks import FaceLandmarks, GazeSample, analyze, extract_face
from .session import FocusSession, Session, focus_score
from .state import AttentionState, AttentionStateMachine

__all__ = [
    "ActiveWindowEvent",
    "AttentionState",
    "AttentionStateMachine",
    "FaceLandmarks",
    "FocusSession",
    "GazeSample",
    "Session",
    "SessionAccumulator",
    "SessionStateError",
    "Settings",
    "analyze",
    "extract_face",
    "focus_score",
]
