"""
Website filtering: allow/block pattern compilation for the browser's
declarative rule engine and the soft-block navigation decision.
"""

from .controller import FilterController
from .patterns import FilterPattern, PatternKind, classify
from .rules import CompiledRule, RuleAction, RuleBatch, compile_rules
from .softblock import BypassStore, NavigationDecision, decide

__all__ = [
    "BypassStore",
    "CompiledRule",
    "FilterController",
    "FilterPattern",
    "NavigationDecision",
    "PatternKind",
    "RuleAction",
    "RuleBatch",
    "classify",
    "compile_rules",
    "decide",
]
