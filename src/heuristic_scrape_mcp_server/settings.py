from __future__ import annotations

import os
from dataclasses import dataclass


def _get_int_env(key: str, default: int) -> int:
    raw = (os.environ.get(key) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _get_float_env(key: str, default: float) -> float:
    raw = (os.environ.get(key) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _get_list_env(key: str) -> tuple[str, ...]:
    raw = (os.environ.get(key) or "").strip()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime configuration (env-first).

    Note: keep this module lightweight; it is imported by tests.
    """

    timeout_seconds: float = 15.0
    min_article_chars: int = 100
    pdf_max_pages: int = 50
    # Empty means "use the built-in heuristic order".
    heuristic_order: tuple[str, ...] = ()
    tool_total_timeout_seconds: float = 55.0
    # Bind address for the sse/streamable-http transports.
    http_host: str = "127.0.0.1"
    http_port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            timeout_seconds=max(1.0, _get_float_env("SCRAPE_TIMEOUT_SECONDS", 15.0)),
            min_article_chars=max(0, _get_int_env("SCRAPE_MIN_ARTICLE_CHARS", 100)),
            pdf_max_pages=max(1, _get_int_env("SCRAPE_PDF_MAX_PAGES", 50)),
            heuristic_order=_get_list_env("SCRAPE_HEURISTIC_ORDER"),
            tool_total_timeout_seconds=max(
                1.0, min(_get_float_env("SCRAPE_TOOL_TOTAL_TIMEOUT_SECONDS", 55.0), 300.0)
            ),
            http_host=(os.environ.get("FASTMCP_HOST") or "").strip() or "127.0.0.1",
            http_port=_get_int_env("FASTMCP_PORT", 8000),
        )


settings = Settings.from_env()
