from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Literal
from urllib.parse import urlparse

from mcp.server.fastmcp import FastMCP
from pydantic import BaseModel, ValidationError, field_validator
from starlette.requests import Request
from starlette.responses import JSONResponse

from .content.resolver import describe_failure, scrape_url
from .models import AgentInfo, AgentListResponse, ScrapeMeta, ScrapeResponse
from .scrape.agents import HEURISTIC, AgentCatalog, agent_choices, build_catalog
from .settings import settings
from .utils.errors import describe_exception
from .utils.logging import configure_logging

configure_logging()
LOGGER = logging.getLogger(__name__)

# Built once at startup; an invalid SCRAPE_HEURISTIC_ORDER fails here, not per request.
CATALOG: AgentCatalog = build_catalog(settings)

# Time the agent loop gets to wind down after the budget expires before it is cancelled.
CANCEL_GRACE_SECONDS = 2.0

mcp = FastMCP(
    "heuristic-scrape",
    instructions=(
        "Fetch a web page or PDF that may sit behind anti-bot defenses by trying several "
        "client profiles in turn, and return the main article as Markdown or plain text."
    ),
)

Transport = Literal["stdio", "sse", "streamable-http"]


def _looks_like_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class ScrapeQuery(BaseModel):
    """Query parameters of the plain HTTP endpoint."""

    url: str
    markdown: bool = True
    agent: str = HEURISTIC

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        if not _looks_like_url(value):
            raise ValueError("must be an absolute http(s) URL")
        return value

    @field_validator("agent")
    @classmethod
    def _check_agent(cls, value: str) -> str:
        choices = agent_choices(CATALOG)
        if value not in choices:
            raise ValueError(f"must be one of: {', '.join(choices)}")
        return value


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "Invalid request: " + "; ".join(parts)


async def _scrape_response(
    url: str,
    *,
    markdown: bool,
    agent: str,
    catalog: AgentCatalog | None = None,
) -> ScrapeResponse:
    """
    Run one scrape under the tool time budget; never raises.

    When the budget runs out the agent loop is asked to stop before its next
    attempt, so the response still reports the agents tried. The task is only
    cancelled outright if it has not returned `CANCEL_GRACE_SECONDS` later
    (e.g. a single slow request).
    """
    timeout_seconds = settings.tool_total_timeout_seconds
    budget_note = f"TimeoutError: tool time budget ({timeout_seconds:g}s) exceeded"

    cancel_event = asyncio.Event()
    expiry = asyncio.get_running_loop().call_later(timeout_seconds, cancel_event.set)
    try:
        outcome = await asyncio.wait_for(
            scrape_url(
                url,
                catalog=catalog or CATALOG,
                settings=settings,
                markdown=markdown,
                agent=agent,
                cancel_event=cancel_event,
            ),
            timeout=timeout_seconds + CANCEL_GRACE_SECONDS,
        )
    except asyncio.TimeoutError:
        return ScrapeResponse(url=url, error=budget_note)
    except Exception as exc:
        LOGGER.warning("scrape failed for %s: %s", url, describe_exception(exc))
        return ScrapeResponse(url=url, error=describe_exception(exc))
    finally:
        expiry.cancel()

    meta = ScrapeMeta(agent_used=outcome.agent_used, attempts=outcome.attempt_count)
    if outcome.cancelled:
        return ScrapeResponse(url=url, error=f"{budget_note}. {describe_failure(outcome)}", meta=meta)
    if outcome.payload is None:
        return ScrapeResponse(url=url, error=describe_failure(outcome), meta=meta)
    return ScrapeResponse(url=url, page=outcome.payload, meta=meta)


@mcp.tool()
async def scrape(url: str, markdown: bool = True, agent: str = HEURISTIC) -> dict:
    """Fetch one URL (HTML page or PDF) and return its main content.

    When to use:
    - You have a URL and need the article text, including from sites that block
      plain scripted clients (bot walls, CDN challenges, "Access Denied" pages).

    Args:
    - url: Absolute http(s) URL.
    - markdown: Return `text_content` as Markdown (default). When false, `content`
      and `text_content` are whitespace-collapsed plain strings.
    - agent: `"heuristic"` (default) tries several client profiles in order until one
      yields real content. Any id from `list_agents()` forces that single profile
      (one request, no bot-page detection).

    Returns:
    - `{"url": str, "page": {...} | null, "error": str | null, "meta": {"agent_used": str, "attempts": int} | null}`
    - `page.meta` names the profile that served the content and how many requests were made.

    Notes:
    - JavaScript challenges and CAPTCHAs are detected and skipped, never solved.
    - Bounded by `SCRAPE_TOOL_TOTAL_TIMEOUT_SECONDS` (default 55).
    """
    response = await _scrape_response(url, markdown=markdown, agent=agent)
    return response.model_dump()


@mcp.tool()
async def list_agents() -> dict:
    """List the client profiles available to `scrape(agent=...)` and the heuristic order."""
    order = set(CATALOG.heuristic_order)
    agents = [
        AgentInfo(
            id=profile.id,
            display_name=profile.display_name,
            user_agent=profile.user_agent,
            in_heuristic_order=profile.id in order,
        )
        for profile in CATALOG.profiles.values()
    ]
    return AgentListResponse(agents=agents, heuristic_order=list(CATALOG.heuristic_order)).model_dump()


@mcp.custom_route("/", methods=["GET"])
async def scrape_http(request: Request) -> JSONResponse:
    """`GET /?url=...&markdown=true&agent=heuristic` for non-MCP clients (HTTP/SSE transports only)."""
    try:
        query = ScrapeQuery.model_validate(dict(request.query_params))
    except ValidationError as exc:
        return JSONResponse({"page": None, "error": _validation_message(exc)}, status_code=400)

    LOGGER.info("scraping %s markdown=%s agent=%s", query.url, query.markdown, query.agent)
    response = await _scrape_response(query.url, markdown=query.markdown, agent=query.agent)
    return JSONResponse(response.model_dump())


_TRANSPORT_SHORTCUTS: tuple[tuple[tuple[str, ...], Transport], ...] = (
    (("--stdio",), "stdio"),
    (("--sse",), "sse"),
    (("--http", "--streamable-http"), "streamable-http"),
)


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="heuristic-scrape-mcp",
        description="MCP server: multi-agent page retrieval + article extraction.",
    )

    transports = parser.add_mutually_exclusive_group()
    transports.add_argument(
        "--transport",
        choices=[value for _, value in _TRANSPORT_SHORTCUTS],
        default="stdio",
        help="MCP transport (default: stdio).",
    )
    for flags, value in _TRANSPORT_SHORTCUTS:
        transports.add_argument(
            *flags,
            dest="transport",
            action="store_const",
            const=value,
            help=f"Shortcut for --transport {value}.",
        )

    parser.add_argument("--host", help="Bind host for sse/streamable-http (default: FASTMCP_HOST or 127.0.0.1).")
    parser.add_argument("--port", type=int, help="Bind port for sse/streamable-http (default: FASTMCP_PORT or 8000).")
    parser.add_argument("--mount-path", help="Mount path for the SSE app.")
    return parser


def _stdio_on_a_terminal() -> bool:
    if not sys.stdin.isatty():
        return False
    override = os.environ.get("MCP_ALLOW_TTY_STDIO", "").strip().lower()
    return override not in ("1", "true", "yes")


def main(argv: list[str] | None = None) -> None:
    """
    Entrypoint for running the MCP server.

    stdio is meant to be spawned by an MCP client; sse/streamable-http also
    serve the plain `GET /?url=...` endpoint.
    """
    args = _build_arg_parser().parse_args(argv)
    transport: Transport = args.transport

    if transport == "stdio" and _stdio_on_a_terminal():
        print(
            "Error: stdio transport speaks JSON-RPC and should be started by an MCP client.\n"
            "Use --http and open /?url=<page> to try it by hand, "
            "or set MCP_ALLOW_TTY_STDIO=1 to run stdio anyway.",
            file=sys.stderr,
        )
        raise SystemExit(2)

    if transport != "stdio":
        mcp.settings.host = args.host or settings.http_host
        mcp.settings.port = args.port if args.port is not None else settings.http_port

    LOGGER.info(
        "starting %s transport; heuristic order: %s",
        transport,
        ", ".join(CATALOG.heuristic_order),
    )
    mcp.run(transport=transport, mount_path=args.mount_path)
