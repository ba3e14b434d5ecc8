"""
Domain, URL and regex pattern matching shared by the rule compiler, the
URL decision engine and the category classifier.

Patterns come from administrators, so a malformed regex must never take
down evaluation of the remaining rules: compile failures are treated as
"no match".
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Optional

_logger = logging.getLogger("pattern_matcher")

_SCHEME_RE = re.compile(r"^[a-z]+://", re.IGNORECASE)
_WWW_RE = re.compile(r"^www\.", re.IGNORECASE)


def normalize_domain(value: Optional[str]) -> str:
    """Reduce a domain or URL to a bare lower-case host without ``www.``."""
    raw = str(value or "").strip()
    if not raw:
        return ""
    without_scheme = _SCHEME_RE.sub("", raw)
    host = without_scheme.split("/")[0].split("?")[0]
    return _WWW_RE.sub("", host, count=1).lower()


def normalize_url(value: Optional[str]) -> str:
    """Lower-case URL with scheme and a leading ``www.`` removed, path kept."""
    raw = str(value or "").strip()
    if not raw:
        return ""
    return _WWW_RE.sub("", _SCHEME_RE.sub("", raw), count=1).lower()


@lru_cache(maxsize=1024)
def compile_regex(pattern: str) -> Optional[re.Pattern]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        _logger.warning("Ignoring invalid regex pattern %r: %s", pattern, exc)
        return None


@lru_cache(maxsize=1024)
def glob_to_regex(pattern: str) -> Optional[re.Pattern]:
    """``*`` expands to ``.*``; every other character is matched literally."""
    if not pattern:
        return None
    return compile_regex(".*".join(re.escape(part) for part in pattern.split("*")))


def glob_matches(pattern: Optional[str], target: Optional[str]) -> bool:
    regex = glob_to_regex(pattern or "")
    return bool(regex and target and regex.search(target))


def domain_matches(target: Optional[str], pattern: Optional[str]) -> bool:
    """Exact host match, or ``*.rest`` meaning ``rest`` or any subdomain of it."""
    normalized_target = normalize_domain(target)
    value = (pattern or "").strip().lower()
    if value.startswith("*."):
        suffix = normalize_domain(value[2:])
        if not suffix:
            return False
        return normalized_target == suffix or normalized_target.endswith(f".{suffix}")
    normalized_pattern = normalize_domain(value)
    if not normalized_pattern:
        return False
    return normalized_target == normalized_pattern


def strip_www(value: Optional[str]) -> str:
    value = value or ""
    return value[4:] if value.startswith("www.") else value


def suffix_match(target: Optional[str], pattern: Optional[str]) -> bool:
    """Suffix-aware comparison used by the real-time decision path.

    Only one leading ``www.`` is stripped from each side; no other
    normalisation is applied.
    """
    clean_target = strip_www(target)
    clean_pattern = strip_www(pattern)
    if not clean_target or not clean_pattern:
        return False
    return clean_target == clean_pattern or clean_target.endswith(f".{clean_pattern}")


def matches(pattern: Optional[str], pattern_type: Optional[str], domain: Optional[str], url: Optional[str]) -> bool:
    value = (pattern or "").strip()
    if not value:
        return False
    kind = (pattern_type or "domain").lower()
    if kind == "domain":
        return domain_matches(domain or url, value)
    if kind == "url":
        return glob_matches(normalize_url(value), normalize_url(url))
    if kind == "regex":
        regex = compile_regex(value)
        if regex is None:
            return False
        return bool(regex.search(normalize_url(url)) or regex.search(normalize_domain(domain)))
    return False
