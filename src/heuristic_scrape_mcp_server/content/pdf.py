from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import io
import logging
import re
from dataclasses import dataclass
from typing import Callable
from urllib.parse import unquote, urlparse

import httpx
import pymupdf

from ..models import ScrapeMeta, ScrapeResult
from ..scrape.agents import HEURISTIC, AgentCatalog
from ..scrape.extract import clean_string
from ..scrape.fetch import DEFAULT_TIMEOUT_SECONDS, FetchAttempt, FetchOutcome, Verdict, fetch_with_agent, try_agents


LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 50
_EXCERPT_CHARS = 150
_HEADING_MAX_CHARS = 80


class PdfError(RuntimeError):
    pass


@dataclass(frozen=True)
class PdfText:
    title: str | None
    pages: list[str]
    page_count: int

    @property
    def text(self) -> str:
        return "\n\n".join(page for page in self.pages if page)


@contextlib.contextmanager
def _suppress_third_party_output():
    """
    Suppress noisy third-party prints during PDF conversion.

    In MCP stdio mode, *any* accidental output can corrupt the protocol stream.
    """
    with contextlib.redirect_stdout(io.StringIO()), contextlib.redirect_stderr(io.StringIO()):
        yield


def is_probably_pdf_url(url: str) -> bool:
    """Cheap heuristic: route obvious PDFs straight to the PDF loader."""
    return (urlparse(url).path or "").lower().endswith(".pdf")


def looks_like_pdf(content: bytes, content_type: str = "") -> bool:
    return content[:5] == b"%PDF-" or "application/pdf" in (content_type or "").lower()


def _clean_page(text: str) -> str:
    paragraphs = [clean_string(p) for p in re.split(r"\n\s*\n", text or "")]
    return "\n\n".join(p for p in paragraphs if p)


def extract_pdf_text(data: bytes, *, max_pages: int = DEFAULT_MAX_PAGES) -> PdfText:
    """Extract the title and per-page text of a PDF held in memory."""
    if data[:5] != b"%PDF-":
        raise PdfError("Downloaded content did not have a %PDF- signature.")

    try:
        with _suppress_third_party_output():
            doc = pymupdf.open(stream=data, filetype="pdf")
    except RuntimeError as exc:
        raise PdfError(f"Could not open PDF: {exc}") from exc

    try:
        page_count = int(doc.page_count)
        title = clean_string((doc.metadata or {}).get("title") or "") or None
        pages: list[str] = []
        with _suppress_third_party_output():
            for i in range(min(max(1, max_pages), page_count)):
                page = doc.load_page(i)
                pages.append(_clean_page(page.get_text("text") or ""))
        return PdfText(title=title, pages=pages, page_count=page_count)
    finally:
        doc.close()


def pdf_title(pdf: PdfText, url: str) -> str:
    if pdf.title:
        return pdf.title
    segment = unquote((urlparse(url).path or "").rstrip("/").rsplit("/", 1)[-1])
    return segment or "Untitled PDF"


def pdf_text_to_markdown(text: str, title: str) -> str:
    """Render extracted PDF text as Markdown; short all-caps paragraphs become headings."""
    lines: list[str] = [f"# {title}", ""]
    for paragraph in re.split(r"\n\s*\n", text or ""):
        trimmed = paragraph.strip()
        if not trimmed:
            continue
        if len(trimmed) < _HEADING_MAX_CHARS and trimmed == trimmed.upper() and trimmed != trimmed.lower():
            lines.extend([f"## {trimmed}", ""])
        else:
            lines.extend([trimmed, ""])
    return "\n".join(lines).strip() + "\n"


def format_pdf(pdf: PdfText, *, url: str, markdown: bool, agent_used: str, attempts: int) -> ScrapeResult:
    title = pdf_title(pdf, url)
    text = pdf.text
    excerpt = text[:_EXCERPT_CHARS] + ("..." if len(text) > _EXCERPT_CHARS else "")
    return ScrapeResult(
        title=title,
        content=text,
        text_content=pdf_text_to_markdown(text, title) if markdown else clean_string(text),
        length=len(text),
        excerpt=excerpt or None,
        meta=ScrapeMeta(agent_used=agent_used, attempts=attempts),
    )


def pdf_evaluator(*, max_pages: int = DEFAULT_MAX_PAGES) -> Callable[[FetchAttempt], Verdict[PdfText]]:
    def evaluate(attempt: FetchAttempt) -> Verdict[PdfText]:
        if not attempt.http_ok:
            return Verdict.reject(f"status {attempt.status}")
        try:
            pdf = extract_pdf_text(attempt.content, max_pages=max_pages)
        except PdfError as exc:
            return Verdict.reject(f"unreadable pdf ({exc})")
        if not pdf.text:
            return Verdict.reject("empty pdf text")
        return Verdict.accept(pdf)

    return evaluate


async def load_pdf(
    url: str,
    *,
    catalog: AgentCatalog,
    agent: str = HEURISTIC,
    markdown: bool = True,
    max_pages: int = DEFAULT_MAX_PAGES,
    http_client: httpx.AsyncClient | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    cancel_event: asyncio.Event | None = None,
) -> FetchOutcome[ScrapeResult]:
    """
    Fetch a PDF and convert its text.

    Heuristic mode walks the agent order until one agent gets a PDF with
    extractable text. With a named agent, a non-2xx response or an unreadable
    PDF raises `PdfError`.
    """
    if agent == HEURISTIC:
        outcome = await try_agents(
            url,
            catalog=catalog,
            evaluate=pdf_evaluator(max_pages=max_pages),
            http_client=http_client,
            timeout_seconds=timeout_seconds,
            cancel_event=cancel_event,
            label="heuristic-pdf",
        )
        if not outcome.ok:
            return dataclasses.replace(outcome, payload=None)
    else:
        outcome = await fetch_with_agent(
            url, agent, catalog=catalog, http_client=http_client, timeout_seconds=timeout_seconds
        )
        if not outcome.ok:
            raise PdfError(f"Failed to fetch PDF: HTTP {outcome.status}")
        outcome = dataclasses.replace(outcome, payload=extract_pdf_text(outcome.content, max_pages=max_pages))

    result = format_pdf(
        outcome.payload,
        url=url,
        markdown=markdown,
        agent_used=outcome.agent_used,
        attempts=outcome.attempt_count,
    )
    return dataclasses.replace(outcome, payload=result)
