from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, Optional, Tuple
from urllib.parse import urlsplit

from .config import DEFAULT_BROWSERS
from .state import AttentionState, new_durations

logger = logging.getLogger(__name__)


class SessionStateError(RuntimeError):
    pass


@dataclass(frozen=True)
class ActiveWindowEvent:
    owner: str
    url: Optional[str] = None
    title: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "ActiveWindowEvent":
        owner = payload.get("owner") or {}
        name = owner.get("name") if isinstance(owner, dict) else owner
        return cls(
            owner=str(name or "unknown"),
            url=payload.get("url") or None,
            title=payload.get("title") or None,
        )


def is_browser(app_name: str, browsers: Iterable[str] = DEFAULT_BROWSERS) -> bool:
    lowered = app_name.lower()
    return any(name in lowered for name in browsers)


def hostname_of(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError:
        return None
    return host or None


@dataclass
class _OpenInterval:
    """Tracks which key is currently accruing time and since when."""

    durations: Dict[str, float] = field(default_factory=dict)
    current: Optional[str] = None
    since: float = 0.0

    def flush(self, now: float) -> None:
        if self.current is not None:
            self.durations[self.current] = self.durations.get(self.current, 0.0) + max(now - self.since, 0.0)
        self.since = now

    def switch(self, key: str, now: float) -> None:
        if self.current is None:
            self.current = key
            self.since = now
        elif key != self.current:
            self.flush(now)
            self.current = key

    def close(self, now: float) -> None:
        self.flush(now)
        self.current = None

    def reset(self) -> None:
        self.durations.clear()
        self.current = None
        self.since = 0.0


@dataclass
class SessionAccumulator:
    """
    Wall-clock accounting for one focus session: time per attention state,
    per foreground application and per browsed hostname.

    Window events are queued with ``post`` and applied in order by ``drain``
    on the thread that owns the session, so the duration maps only ever have
    one writer.
    """

    browsers: Tuple[str, ...] = DEFAULT_BROWSERS
    state_durations: Dict[AttentionState, float] = field(default_factory=new_durations)
    session_start: Optional[float] = None
    session_end: Optional[float] = None
    running: bool = False
    finalized: bool = False
    inbox: Deque[Tuple[float, ActiveWindowEvent]] = field(default_factory=deque)
    _apps: _OpenInterval = field(default_factory=_OpenInterval)
    _sites: _OpenInterval = field(default_factory=_OpenInterval)

    @property
    def app_durations(self) -> Dict[str, float]:
        return self._apps.durations

    @property
    def site_durations(self) -> Dict[str, float]:
        return self._sites.durations

    @property
    def current_app(self) -> Optional[str]:
        return self._apps.current

    @property
    def current_site(self) -> Optional[str]:
        return self._sites.current

    @property
    def active(self) -> bool:
        return self.session_start is not None and not self.finalized

    def start(self, now: float) -> None:
        for state in list(self.state_durations):
            self.state_durations[state] = 0.0
        self._apps.reset()
        self._sites.reset()
        self.inbox.clear()
        self.session_start = now
        self.session_end = None
        self.finalized = False
        self.running = True

    def stop(self, now: float) -> Dict[str, float]:
        if not self.active:
            raise SessionStateError("session accumulator is not running")
        self.drain()
        if self.running:
            self._apps.flush(now)
            self._sites.flush(now)
        self.running = False
        self.session_end = now
        self.finalized = True
        return dict(self._apps.durations)

    def pause(self, now: float) -> None:
        if not self.running:
            return
        self.drain()
        self._apps.flush(now)
        self._sites.flush(now)
        self.running = False

    def resume(self, now: float) -> None:
        if self.running or not self.active:
            return
        self._apps.since = now
        self._sites.since = now
        self.running = True

    def post(self, event: ActiveWindowEvent, now: float) -> None:
        self.inbox.append((now, event))

    def drain(self) -> int:
        handled = 0
        while self.inbox:
            ts, event = self.inbox.popleft()
            self.on_active_window(event, ts)
            handled += 1
        return handled

    def on_active_window(self, event: ActiveWindowEvent, now: float) -> None:
        if not self.running:
            return
        self._apps.switch(event.owner, now)

        host = hostname_of(event.url) if is_browser(event.owner, self.browsers) else None
        if host is None:
            self._sites.close(now)
        else:
            self._sites.switch(host, now)

    def totals(self, now: float) -> Dict[str, Dict[str, float]]:
        """Per-app and per-site totals including the open intervals."""
        apps = dict(self._apps.durations)
        sites = dict(self._sites.durations)
        if self.running:
            if self._apps.current is not None:
                apps[self._apps.current] = apps.get(self._apps.current, 0.0) + max(now - self._apps.since, 0.0)
            if self._sites.current is not None:
                sites[self._sites.current] = sites.get(self._sites.current, 0.0) + max(now - self._sites.since, 0.0)
        return {"apps": apps, "sites": sites}
