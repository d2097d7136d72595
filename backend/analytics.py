from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence


def _session_day(session: dict) -> date:
    return datetime.fromtimestamp(session["start_time"] / 1000.0).date()


def avg_focus_score(sessions: Sequence[dict]) -> int:
    if not sessions:
        return 0
    total = sum(session.get("focus_score") or 0 for session in sessions)
    return int(round(total / len(sessions)))


def current_streak(sessions: Sequence[dict], today: Optional[date] = None) -> int:
    """
    Consecutive days with at least one session, ending today or yesterday.
    """
    if not sessions:
        return 0
    today = today or date.today()
    days = {_session_day(session) for session in sessions}

    if today in days:
        day = today
    elif today - timedelta(days=1) in days:
        day = today - timedelta(days=1)
    else:
        return 0

    streak = 0
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def recent_sessions(sessions: Sequence[dict], limit: int = 5) -> List[dict]:
    return sorted(sessions, key=lambda s: s["start_time"], reverse=True)[:limit]
