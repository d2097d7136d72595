from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from attention.config import FilterConfig

from .rules import RuleBatch, clear_update, compile_rules
from .softblock import BlockedNavigation, BypassStore, NavigationDecision, decide

logger = logging.getLogger(__name__)


@dataclass
class FilterController:
    """
    Holds the current allow/block lists and what was last handed to the
    rule engine. ``apply`` replaces list state wholesale and returns the
    update the engine must install; it never touches session timing state.
    """

    config: FilterConfig = field(default_factory=FilterConfig)
    allowlist: List[str] = field(default_factory=list)
    blocklist: List[str] = field(default_factory=list)
    session_on: bool = False
    batch: RuleBatch = field(default_factory=RuleBatch)
    installed_ids: List[int] = field(default_factory=list)
    bypasses: BypassStore = field(init=False)

    def __post_init__(self) -> None:
        self.bypasses = BypassStore(window_ms=self.config.bypass_window_ms)

    def apply(self, allowlist: List[str], blocklist: List[str], session_on: bool) -> Dict[str, Any]:
        self.allowlist = list(allowlist)
        self.blocklist = list(blocklist)
        self.session_on = bool(session_on)

        previous = list(self.installed_ids)
        if self.session_on:
            self.batch = compile_rules(self.allowlist, self.blocklist, self.config)
            update = self.batch.replacing(previous)
        else:
            self.batch = RuleBatch()
            update = clear_update(previous)
        self.installed_ids = self.batch.ids
        logger.info(
            "filters applied: session_on=%s allow=%d block=%d rules=%d",
            self.session_on,
            len(self.allowlist),
            len(self.blocklist),
            len(self.batch),
        )
        return update

    def check(self, tab_id: int, url: str, now: float) -> NavigationDecision:
        decision = decide(
            url,
            self.allowlist,
            self.blocklist,
            self.session_on,
            self.bypasses.get(tab_id, now),
            now,
            window_ms=self.config.bypass_window_ms,
        )
        if decision.consumed_bypass:
            self.bypasses.consume(tab_id)
        elif decision.soft_block:
            self.bypasses.park(tab_id, url, now)
        return decision

    def grant_bypass(self, tab_id: int, now: float) -> Optional[BlockedNavigation]:
        self.bypasses.purge(now)
        return self.bypasses.grant(tab_id, now)

    def blocked_navigation(self, tab_id: int) -> Optional[BlockedNavigation]:
        return self.bypasses.blocked.get(tab_id)
