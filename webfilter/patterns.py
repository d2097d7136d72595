from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

ALL_URLS_TOKEN = "<all_urls>"
REGEX_PREFIX = "re:/"

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
_REGEX_META = re.compile(r"[.*+?^${}()|\[\]\\]")


class PatternKind(str, Enum):
    ALL_URLS = "all_urls"
    EXPLICIT_REGEX = "explicit_regex"
    PATH_PREFIX = "path_prefix"
    PATH_SUBSTRING = "path_substring"
    BARE_DOMAIN = "bare_domain"


@dataclass(frozen=True)
class FilterPattern:
    raw: str
    kind: PatternKind
    value: str


def classify(raw: str) -> Optional[FilterPattern]:
    """
    Sorts a user-entered allow/block entry into one pattern kind.

    Returns None for blank or non-string entries. The checks run in a fixed
    order and the first one that applies wins.
    """
    if not isinstance(raw, str):
        return None
    p = raw.strip()
    if not p:
        return None
    if p == ALL_URLS_TOKEN:
        return FilterPattern(raw=raw, kind=PatternKind.ALL_URLS, value="")
    if p.startswith(REGEX_PREFIX) and p.endswith("/") and len(p) > len(REGEX_PREFIX):
        return FilterPattern(raw=raw, kind=PatternKind.EXPLICIT_REGEX, value=p[len(REGEX_PREFIX):-1])
    if p.startswith("/"):
        return FilterPattern(raw=raw, kind=PatternKind.PATH_PREFIX, value=p)
    if "/" in p:
        return FilterPattern(raw=raw, kind=PatternKind.PATH_SUBSTRING, value=_SCHEME.sub("", p))
    return FilterPattern(raw=raw, kind=PatternKind.BARE_DOMAIN, value=p)


def escape_domain(domain: str) -> str:
    return _REGEX_META.sub(lambda m: "\\" + m.group(0), domain)


def domain_regex(domain: str) -> str:
    return rf"^https?://([^.]+\.)*{escape_domain(domain)}(?::\d+)?(/|$)"


def compile_regex(body: str) -> Optional["re.Pattern[str]"]:
    try:
        return re.compile(body)
    except re.error as exc:
        logger.warning("skipping filter regex %r: %s", body, exc)
        return None


def _hostname(url: str) -> Optional[str]:
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def matches(pattern: FilterPattern, url: str) -> bool:
    """
    Navigation-time match used by the soft-block path.

    Bare domains match the hostname itself or any subdomain; explicit
    regexes are searched against the full URL; the remaining kinds behave
    like the compiled substring rules.
    """
    if pattern.kind == PatternKind.ALL_URLS:
        return True
    if pattern.kind == PatternKind.BARE_DOMAIN:
        host = _hostname(url)
        if not host:
            return False
        domain = pattern.value.lower().rstrip(".")
        return host == domain or host.endswith("." + domain)
    if pattern.kind == PatternKind.EXPLICIT_REGEX:
        compiled = compile_regex(pattern.value)
        return bool(compiled and compiled.search(url))
    return pattern.value in url
