"""Heuristics that tell real content apart from bot-defense and error pages.

Challenge pages are short. Generic words such as "blocked" or "forbidden" show up
in plenty of real articles, so every rule is gated on the body size and the more
specific vendor markers additionally need a corroborating phrase.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .fetch import FetchAttempt


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


@dataclass(frozen=True)
class ChallengeRule:
    """
    One row of the bot-challenge table.

    A body matches when it is shorter than `max_chars`, one of `patterns` is found,
    one of `corroborating` is found (when any are given), and, when
    `max_visible_chars` is set, the body minus script/style blocks is shorter
    than that.
    """

    name: str
    max_chars: int
    patterns: tuple[re.Pattern[str], ...]
    corroborating: tuple[re.Pattern[str], ...] = ()
    max_visible_chars: int | None = None

    def matches(self, body: str) -> bool:
        if len(body) >= self.max_chars:
            return False
        if self.max_visible_chars is not None and len(strip_scripts_and_styles(body)) >= self.max_visible_chars:
            return False
        if not any(p.search(body) for p in self.patterns):
            return False
        if self.corroborating and not any(p.search(body) for p in self.corroborating):
            return False
        return True


_GENERIC_BOT_PATTERNS = _compile(
    r"access denied",
    r"blocked",
    r"captcha",
    r"cloudflare",
    r"please verify you are human",
    r"enable javascript",
    r"browser check",
    r"security check",
    r"unusual traffic",
    r"automated access",
    r"rate limit",
    r"too many requests",
    r"forbidden",
    r"not allowed",
    r"robot or human",
    r"are you a robot",
    r"verify you are human",
    r"challenge-platform",
    r"just a moment",
    r"checking your browser",
    r"ddos protection",
    r"attention required",
    r"cf-browser-verification",
    r"hcaptcha",
    r"recaptcha",
    r"grecaptcha",
    r"turnstile",
)

_CHALLENGE_NETWORK_MARKERS = _compile(
    r"ray id",
    r"cloudflare",
    r"cf-ray",
    r"__cf_bm",
    r"challenge-platform",
    r"cdn-cgi",
)

_CHALLENGE_NETWORK_PHRASES = _compile(
    r"checking your browser",
    r"just a moment",
    r"challenge-platform",
    r"enable javascript and cookies",
)

CHALLENGE_RULES: tuple[ChallengeRule, ...] = (
    ChallengeRule(name="generic", max_chars=1_000, patterns=_GENERIC_BOT_PATTERNS),
    ChallengeRule(
        name="challenge-network",
        max_chars=10_000,
        patterns=_CHALLENGE_NETWORK_MARKERS,
        corroborating=_CHALLENGE_NETWORK_PHRASES,
    ),
    ChallengeRule(
        name="minimal-shell",
        max_chars=5_000,
        patterns=_compile(r"challenge", r"verify"),
        max_visible_chars=500,
    ),
)

ERROR_PAGE_MAX_CHARS = 2_000

_ERROR_PAGE_PATTERNS = _compile(
    r"404 not found",
    r"page not found",
    r"500 internal server error",
    r"503 service unavailable",
    r"502 bad gateway",
)

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)


def strip_scripts_and_styles(body: str) -> str:
    return _SCRIPT_STYLE_RE.sub("", body or "")


def matching_challenge_rule(body: str, rules: tuple[ChallengeRule, ...] = CHALLENGE_RULES) -> ChallengeRule | None:
    for rule in rules:
        if rule.matches(body or ""):
            return rule
    return None


def is_bot_challenge(body: str) -> bool:
    """True if `body` looks like a bot-defense challenge/verification page."""
    return matching_challenge_rule(body) is not None


def is_error_page(body: str, status: int) -> bool:
    """True for HTTP errors and for short 200 pages that only carry an error message."""
    if status >= 400:
        return True
    body = body or ""
    if len(body) >= ERROR_PAGE_MAX_CHARS:
        return False
    return any(p.search(body) for p in _ERROR_PAGE_PATTERNS)


def rejection_reason(attempt: "FetchAttempt") -> str | None:
    """Why `attempt` is not usable content, or None when it is."""
    if attempt.error is not None:
        return "transport error"
    if not attempt.http_ok:
        return f"status {attempt.status}"
    if not attempt.text:
        return "empty body"
    rule = matching_challenge_rule(attempt.text)
    if rule is not None:
        return f"bot challenge ({rule.name})"
    if is_error_page(attempt.text, attempt.status):
        return "error page"
    return None
