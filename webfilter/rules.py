from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from attention.config import FilterConfig

from .patterns import FilterPattern, PatternKind, classify, compile_regex, domain_regex

logger = logging.getLogger(__name__)

RESOURCE_TYPES: Tuple[str, ...] = (
    "main_frame",
    "sub_frame",
    "xmlhttprequest",
    "script",
    "image",
    "media",
    "stylesheet",
    "font",
    "ping",
    "websocket",
    "csp_report",
    "object",
    "other",
    "webbundle",
    "webtransport",
)


class RuleAction(str, Enum):
    ALLOW = "allow"
    BLOCK = "block"


@dataclass(frozen=True)
class RegexCondition:
    regex: str


@dataclass(frozen=True)
class UrlSubstringCondition:
    substring: str


Condition = Union[RegexCondition, UrlSubstringCondition]


@dataclass(frozen=True)
class CompiledRule:
    id: int
    priority: int
    action: RuleAction
    condition: Condition
    resource_types: Tuple[str, ...] = RESOURCE_TYPES

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.condition, RegexCondition):
            condition: Dict[str, Any] = {"regexFilter": self.condition.regex}
        else:
            condition = {"urlFilter": self.condition.substring}
        condition["resourceTypes"] = list(self.resource_types)
        return {
            "id": self.id,
            "priority": self.priority,
            "action": {"type": self.action.value},
            "condition": condition,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CompiledRule":
        cond = payload.get("condition", {})
        if "regexFilter" in cond:
            condition: Condition = RegexCondition(regex=cond["regexFilter"])
        else:
            condition = UrlSubstringCondition(substring=cond.get("urlFilter", ""))
        return cls(
            id=int(payload["id"]),
            priority=int(payload["priority"]),
            action=RuleAction(payload["action"]["type"]),
            condition=condition,
            resource_types=tuple(cond.get("resourceTypes", RESOURCE_TYPES)),
        )


def condition_for(pattern: FilterPattern) -> Optional[Condition]:
    """Returns None when the pattern cannot become a valid rule."""
    if pattern.kind == PatternKind.ALL_URLS:
        return UrlSubstringCondition(substring="")
    if pattern.kind == PatternKind.EXPLICIT_REGEX:
        if compile_regex(pattern.value) is None:
            return None
        return RegexCondition(regex=pattern.value)
    if pattern.kind in (PatternKind.PATH_PREFIX, PatternKind.PATH_SUBSTRING):
        return UrlSubstringCondition(substring=pattern.value)
    regex = domain_regex(pattern.value)
    if compile_regex(regex) is None:
        return None
    return RegexCondition(regex=regex)


@dataclass
class RuleBatch:
    rules: List[CompiledRule] = field(default_factory=list)

    @property
    def ids(self) -> List[int]:
        return [rule.id for rule in self.rules]

    def __len__(self) -> int:
        return len(self.rules)

    def to_payload(self) -> List[Dict[str, Any]]:
        return [rule.to_dict() for rule in self.rules]

    @classmethod
    def from_payload(cls, payload: Iterable[Dict[str, Any]]) -> "RuleBatch":
        return cls(rules=[CompiledRule.from_dict(item) for item in payload])

    def replacing(self, previous_ids: Sequence[int]) -> Dict[str, Any]:
        """Full-replace update: drop every previously installed id, add this batch."""
        return {"removeRuleIds": list(previous_ids), "addRules": self.to_payload()}


def clear_update(previous_ids: Sequence[int]) -> Dict[str, Any]:
    return {"removeRuleIds": list(previous_ids), "addRules": []}


def compile_rules(
    allowlist: Iterable[str],
    blocklist: Iterable[str],
    config: Optional[FilterConfig] = None,
) -> RuleBatch:
    """
    Compiles allow and block entries into one dynamic rule batch.

    Allow entries come first and every produced condition takes the next id,
    so the same lists always yield the same ids. Entries that are blank or
    whose regex does not compile produce no rule and consume no id.
    """
    config = config or FilterConfig()
    rules: List[CompiledRule] = []
    next_id = config.rule_id_base

    for raws, action, priority in (
        (allowlist, RuleAction.ALLOW, config.allow_priority),
        (blocklist, RuleAction.BLOCK, config.block_priority),
    ):
        for raw in raws:
            pattern = classify(raw)
            if pattern is None:
                continue
            condition = condition_for(pattern)
            if condition is None:
                continue
            rules.append(CompiledRule(id=next_id, priority=priority, action=action, condition=condition))
            next_id += 1

    logger.debug("compiled %d filter rules", len(rules))
    return RuleBatch(rules=rules)
