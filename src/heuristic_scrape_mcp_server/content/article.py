from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Callable

import httpx

from ..models import ScrapeMeta, ScrapeResult
from ..scrape.agents import HEURISTIC, AgentCatalog
from ..scrape.classify import rejection_reason
from ..scrape.extract import Article, clean_string, extract_article, to_markdown
from ..scrape.fetch import DEFAULT_TIMEOUT_SECONDS, FetchAttempt, FetchOutcome, Verdict, fetch_with_agent, try_agents
from .pdf import DEFAULT_MAX_PAGES, PdfText, extract_pdf_text, format_pdf, looks_like_pdf, pdf_evaluator


LOGGER = logging.getLogger(__name__)

DEFAULT_MIN_ARTICLE_CHARS = 100


def format_article(article: Article, *, markdown: bool, agent_used: str, attempts: int) -> ScrapeResult:
    meta = ScrapeMeta(agent_used=agent_used, attempts=attempts)
    if markdown:
        content = article.content
        text_content = to_markdown(article.content)
    else:
        content = clean_string(article.content)
        text_content = clean_string(article.text_content)
    return ScrapeResult(
        title=article.title,
        byline=article.byline,
        dir=article.dir,
        lang=article.lang,
        content=content,
        text_content=text_content,
        length=article.length,
        excerpt=article.excerpt,
        site_name=article.site_name,
        meta=meta,
    )


def article_evaluator(
    *,
    min_chars: int = DEFAULT_MIN_ARTICLE_CHARS,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> Callable[[FetchAttempt], Verdict[Any]]:
    """
    Accept an attempt only when it is real content that readability can turn into
    an article of at least `min_chars` characters of HTML.

    Servers that answer an HTML URL with a PDF are handed to the PDF evaluator.
    """
    evaluate_pdf = pdf_evaluator(max_pages=max_pages)

    def evaluate(attempt: FetchAttempt) -> Verdict[Any]:
        if attempt.http_ok and looks_like_pdf(attempt.content, attempt.content_type):
            return evaluate_pdf(attempt)

        reason = rejection_reason(attempt)
        if reason is not None:
            return Verdict.reject(reason)

        article = extract_article(attempt.text)
        if article is None:
            return Verdict.reject("no article extracted")
        if len(article.content) < min_chars:
            return Verdict.reject(f"article too small ({len(article.content)} chars)")
        return Verdict.accept(article)

    return evaluate


def _format_payload(
    payload: Article | PdfText, *, url: str, markdown: bool, agent_used: str, attempts: int
) -> ScrapeResult:
    if isinstance(payload, PdfText):
        return format_pdf(payload, url=url, markdown=markdown, agent_used=agent_used, attempts=attempts)
    return format_article(payload, markdown=markdown, agent_used=agent_used, attempts=attempts)


async def load_article(
    url: str,
    *,
    catalog: AgentCatalog,
    agent: str = HEURISTIC,
    markdown: bool = True,
    min_chars: int = DEFAULT_MIN_ARTICLE_CHARS,
    max_pages: int = DEFAULT_MAX_PAGES,
    http_client: httpx.AsyncClient | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    cancel_event: asyncio.Event | None = None,
) -> FetchOutcome[ScrapeResult]:
    """
    Fetch a page and extract its article.

    The returned outcome's `payload` is the formatted result, or None when no
    agent produced usable content (heuristic mode) or readability found nothing
    (named agent).
    """
    if agent == HEURISTIC:
        outcome = await try_agents(
            url,
            catalog=catalog,
            evaluate=article_evaluator(min_chars=min_chars, max_pages=max_pages),
            http_client=http_client,
            timeout_seconds=timeout_seconds,
            cancel_event=cancel_event,
        )
        if not outcome.ok:
            return dataclasses.replace(outcome, payload=None)
        payload = outcome.payload
    else:
        outcome = await fetch_with_agent(
            url, agent, catalog=catalog, http_client=http_client, timeout_seconds=timeout_seconds
        )
        if looks_like_pdf(outcome.content, outcome.content_type):
            payload = extract_pdf_text(outcome.content, max_pages=max_pages)
        else:
            payload = extract_article(outcome.body)
        if payload is None:
            LOGGER.info("[fetch] no article extracted from %s (status=%s)", url, outcome.status)
            return dataclasses.replace(outcome, payload=None, reason="no article extracted")

    result = _format_payload(
        payload,
        url=url,
        markdown=markdown,
        agent_used=outcome.agent_used,
        attempts=outcome.attempt_count,
    )
    return dataclasses.replace(outcome, payload=result)
