from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from .patterns import classify, matches

BYPASS_WINDOW_MS = 60_000.0


@dataclass(frozen=True)
class Bypass:
    timestamp: float  # epoch milliseconds


@dataclass(frozen=True)
class BlockedNavigation:
    tab_id: int
    blocked_url: str
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {"tabId": self.tab_id, "blockedUrl": self.blocked_url, "timestamp": self.timestamp}


@dataclass(frozen=True)
class NavigationDecision:
    soft_block: bool
    reason: str
    consumed_bypass: bool = False


def matches_any(url: str, patterns: Iterable[str]) -> bool:
    for raw in patterns:
        pattern = classify(raw)
        if pattern is not None and matches(pattern, url):
            return True
    return False


def decide(
    url: str,
    allowlist: Iterable[str],
    blocklist: Iterable[str],
    session_on: bool,
    bypass: Optional[Bypass],
    now: float,
    window_ms: float = BYPASS_WINDOW_MS,
) -> NavigationDecision:
    """
    Decides whether a navigation goes through the soft-block interstitial.

    Block-list hits are let through here because the hard block belongs to
    the declarative rule engine. A live bypass lets the navigation through
    once; the caller must drop it when ``consumed_bypass`` is set.
    """
    if not session_on:
        return NavigationDecision(soft_block=False, reason="session_off")
    if bypass is not None and now - bypass.timestamp < window_ms:
        return NavigationDecision(soft_block=False, reason="bypass", consumed_bypass=True)
    if matches_any(url, blocklist):
        return NavigationDecision(soft_block=False, reason="hard_block")
    if matches_any(url, allowlist):
        return NavigationDecision(soft_block=False, reason="allowed")
    return NavigationDecision(soft_block=True, reason="not_allowed")


@dataclass
class BypassStore:
    """Per-tab bypass tokens and the URLs parked behind the interstitial."""

    window_ms: float = BYPASS_WINDOW_MS
    bypasses: Dict[int, Bypass] = field(default_factory=dict)
    blocked: Dict[int, BlockedNavigation] = field(default_factory=dict)

    def get(self, tab_id: int, now: float) -> Optional[Bypass]:
        bypass = self.bypasses.get(tab_id)
        if bypass is not None and now - bypass.timestamp >= self.window_ms:
            del self.bypasses[tab_id]
            return None
        return bypass

    def grant(self, tab_id: int, now: float) -> Optional[BlockedNavigation]:
        """Registers a bypass for the tab and hands back the parked navigation."""
        self.bypasses[tab_id] = Bypass(timestamp=now)
        return self.blocked.pop(tab_id, None)

    def consume(self, tab_id: int) -> None:
        self.bypasses.pop(tab_id, None)

    def park(self, tab_id: int, url: str, now: float) -> BlockedNavigation:
        record = BlockedNavigation(tab_id=tab_id, blocked_url=url, timestamp=now)
        self.blocked[tab_id] = record
        return record

    def purge(self, now: float) -> None:
        expired = [tab for tab, bypass in self.bypasses.items() if now - bypass.timestamp >= self.window_ms]
        for tab in expired:
            del self.bypasses[tab]
