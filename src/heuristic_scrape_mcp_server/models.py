from __future__ import annotations

from pydantic import BaseModel, Field


class ScrapeMeta(BaseModel):
    agent_used: str = Field(description="Agent profile that produced the content (or the last one tried).")
    attempts: int = Field(description="Number of network attempts made for this request.")


class ScrapeResult(BaseModel):
    title: str | None = Field(default=None, description="Article or document title.")
    byline: str | None = Field(default=None, description="Author line, when the page declares one.")
    dir: str | None = Field(default=None, description="Text direction of the document (`ltr`/`rtl`).")
    lang: str | None = Field(default=None, description="Document language.")
    content: str = Field(description="Extracted article HTML, or cleaned text when Markdown is off / for PDFs.")
    text_content: str = Field(description="Markdown (default) or cleaned plain text of the content.")
    length: int = Field(description="Length of the extracted plain text.")
    excerpt: str | None = Field(default=None, description="Short description or first paragraph.")
    site_name: str | None = Field(default=None, description="Publishing site name.")
    meta: ScrapeMeta


class ScrapeResponse(BaseModel):
    url: str = Field(description="The requested URL.")
    page: ScrapeResult | None = Field(default=None, description="Extracted page, or null on failure.")
    error: str | None = Field(default=None, description="Why `page` is null (absent on success).")
    meta: ScrapeMeta | None = Field(
        default=None,
        description="Agent used and attempt count, reported even when no page could be extracted.",
    )


class AgentInfo(BaseModel):
    id: str
    display_name: str
    user_agent: str
    in_heuristic_order: bool


class AgentListResponse(BaseModel):
    agents: list[AgentInfo]
    heuristic_order: list[str]
