from __future__ import annotations

import asyncio

import httpx

from ..models import ScrapeResult
from ..scrape.agents import HEURISTIC, AgentCatalog, UnknownAgentError
from ..scrape.fetch import FetchOutcome
from ..settings import Settings
from .article import load_article
from .pdf import is_probably_pdf_url, load_pdf


def describe_failure(outcome: FetchOutcome) -> str:
    """Human-readable reason why an outcome carries no page."""
    if outcome.cancelled:
        return f"Cancelled after {outcome.attempt_count} attempt(s)."
    if outcome.ok:
        return f"Could not extract readable content ({outcome.reason or 'no article extracted'})."

    details: list[str] = []
    if outcome.agent_used:
        details.append(f"last agent: {outcome.agent_used}")
    if outcome.status:
        details.append(f"status {outcome.status}")
    if outcome.reason:
        details.append(outcome.reason)
    if outcome.error:
        details.append(outcome.error)
    suffix = f" ({'; '.join(details)})" if details else ""
    return f"Fetch failed after {outcome.attempt_count} attempt(s){suffix}."


async def scrape_url(
    url: str,
    *,
    catalog: AgentCatalog,
    settings: Settings,
    markdown: bool = True,
    agent: str = HEURISTIC,
    http_client: httpx.AsyncClient | None = None,
    cancel_event: asyncio.Event | None = None,
) -> FetchOutcome[ScrapeResult]:
    """Resolve a URL to an extracted page.

    Stage 1: URLs that obviously point at a PDF → PDF loader.
    Stage 2: everything else → article loader (which still hands PDF bodies to the PDF path).
    """
    if agent != HEURISTIC and agent not in catalog:
        # Fail fast, before any request.
        raise UnknownAgentError(agent)

    if is_probably_pdf_url(url):
        return await load_pdf(
            url,
            catalog=catalog,
            agent=agent,
            markdown=markdown,
            max_pages=settings.pdf_max_pages,
            http_client=http_client,
            timeout_seconds=settings.timeout_seconds,
            cancel_event=cancel_event,
        )

    return await load_article(
        url,
        catalog=catalog,
        agent=agent,
        markdown=markdown,
        min_chars=settings.min_article_chars,
        max_pages=settings.pdf_max_pages,
        http_client=http_client,
        timeout_seconds=settings.timeout_seconds,
        cancel_event=cancel_event,
    )
