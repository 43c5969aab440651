from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Sequence, TypeVar

import httpx

from .agents import HEURISTIC, AgentCatalog, AgentProfile, NoAgentsAvailableError, UnknownAgentError
from .classify import rejection_reason
from ..utils.errors import describe_exception


LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 15.0


@dataclass(frozen=True)
class FetchAttempt:
    """One request made with one agent profile."""

    agent_id: str
    status: int = 0
    content: bytes = b""
    text: str = ""
    content_type: str = ""
    final_url: str = ""
    error: str | None = None

    @property
    def transport_ok(self) -> bool:
        return self.error is None

    @property
    def http_ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class Verdict(Generic[T]):
    """Acceptance decision for an attempt; `payload` is what the caller gets back on success."""

    payload: T | None = None
    reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.reason is None

    @classmethod
    def accept(cls, payload: T) -> "Verdict[T]":
        return cls(payload=payload)

    @classmethod
    def reject(cls, reason: str) -> "Verdict[T]":
        return cls(reason=reason or "rejected")


@dataclass(frozen=True)
class FetchOutcome(Generic[T]):
    """
    Result of a fetch call, in either mode.

    When `ok` is false, `status`/`body` hold the last attempt that got a response
    (0 and "" if none did), `reason` the last rejection and `error` the last
    transport failure.
    """

    ok: bool
    status: int
    body: str
    agent_used: str
    attempt_count: int
    content: bytes = b""
    content_type: str = ""
    payload: T | None = None
    reason: str | None = None
    error: str | None = None
    cancelled: bool = False


Evaluator = Callable[[FetchAttempt], Verdict[Any]]


def accept_classified(attempt: FetchAttempt) -> Verdict[str]:
    """Default acceptance: a 2xx, non-empty body that is neither a challenge nor an error page."""
    reason = rejection_reason(attempt)
    if reason is not None:
        return Verdict.reject(reason)
    return Verdict.accept(attempt.text)


def new_http_client(timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    client = httpx.AsyncClient(follow_redirects=True, timeout=timeout_seconds)
    # Profiles carry the complete header set; httpx defaults (python-httpx UA,
    # Accept, Accept-Encoding) would otherwise fill the gaps of minimal profiles.
    client.headers.clear()
    return client


async def perform_fetch(url: str, profile: AgentProfile, *, http_client: httpx.AsyncClient) -> FetchAttempt:
    """
    GET `url` with `profile`'s headers.

    Redirects are followed by the client. Raises `httpx.RequestError` subclasses
    for transport-level failures (DNS, connect, TLS, timeouts, decoding).

    The client's cookie jar is emptied before the request, so a client passed in
    here must not be shared with other fetches running concurrently.
    """
    # Each agent starts from an empty cookie jar.
    http_client.cookies.clear()
    resp = await http_client.get(url, headers=profile.as_dict())
    return FetchAttempt(
        agent_id=profile.id,
        status=resp.status_code,
        content=resp.content,
        text=resp.text,
        content_type=(resp.headers.get("content-type") or "").lower(),
        final_url=str(resp.url),
    )


async def try_agents(
    url: str,
    *,
    catalog: AgentCatalog,
    evaluate: Evaluator = accept_classified,
    order: Sequence[str] | None = None,
    http_client: httpx.AsyncClient | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    cancel_event: asyncio.Event | None = None,
    label: str = "heuristic",
) -> FetchOutcome[Any]:
    """
    Try agents one after another until `evaluate` accepts an attempt.

    - Agents are tried in `order` (default: the catalog's heuristic order), exactly
      one request each, strictly sequentially.
    - Transport failures, per-request timeouts and exceptions raised by
      `evaluate` reject that agent only.
    - `cancel_event` is checked before every attempt; once set the loop returns a
      cancelled outcome instead of trying the remaining agents.
    - When every agent is rejected the outcome has `ok=False` and carries the last
      attempt, so callers can see what the site actually returned.

    An injected `http_client` belongs to this call until it returns (see
    `perform_fetch`); without one, a private client is created and closed here.
    """
    agent_ids = tuple(order) if order is not None else catalog.heuristic_order
    if not agent_ids:
        raise NoAgentsAvailableError("No agents to try.")

    if http_client is None:
        async with new_http_client(timeout_seconds) as client:
            return await _run_agents(url, catalog, evaluate, agent_ids, client, cancel_event, label)
    return await _run_agents(url, catalog, evaluate, agent_ids, http_client, cancel_event, label)


async def _run_agents(
    url: str,
    catalog: AgentCatalog,
    evaluate: Evaluator,
    agent_ids: tuple[str, ...],
    client: httpx.AsyncClient,
    cancel_event: asyncio.Event | None,
    label: str,
) -> FetchOutcome[Any]:
    attempts = 0
    last_attempt: FetchAttempt | None = None
    last_agent = ""
    last_reason: str | None = None
    last_error: str | None = None

    def finish(*, cancelled: bool = False) -> FetchOutcome[Any]:
        return FetchOutcome(
            ok=False,
            status=last_attempt.status if last_attempt else 0,
            body=last_attempt.text if last_attempt else "",
            agent_used=last_agent,
            attempt_count=attempts,
            content=last_attempt.content if last_attempt else b"",
            content_type=last_attempt.content_type if last_attempt else "",
            reason="cancelled" if cancelled else last_reason,
            error=last_error,
            cancelled=cancelled,
        )

    for agent_id in agent_ids:
        if cancel_event is not None and cancel_event.is_set():
            LOGGER.info("[%s] cancelled after %d attempt(s) for %s", label, attempts, url)
            return finish(cancelled=True)

        try:
            profile = catalog.lookup(agent_id)
        except UnknownAgentError:
            LOGGER.error("[%s] agent %r is not in the catalog; skipping", label, agent_id)
            continue

        attempts += 1
        last_agent = agent_id
        LOGGER.info("[%s] trying agent %s (%d/%d): %s", label, agent_id, attempts, len(agent_ids), url)

        try:
            attempt = await perform_fetch(url, profile, http_client=client)
        except (httpx.RequestError, asyncio.TimeoutError) as exc:
            attempt = FetchAttempt(agent_id=agent_id, error=describe_exception(exc))

        if not attempt.transport_ok:
            last_error = attempt.error
            last_reason = rejection_reason(attempt)
            LOGGER.warning("[%s] agent %s failed: %s", label, agent_id, attempt.error)
            continue

        last_attempt = attempt
        try:
            verdict = evaluate(attempt)
        except Exception as exc:
            # An evaluator failure rejects this agent only.
            LOGGER.warning("[%s] evaluating agent %s failed", label, agent_id, exc_info=True)
            verdict = Verdict.reject(describe_exception(exc))
        if verdict.accepted:
            LOGGER.info("[%s] success with agent %s after %d attempt(s)", label, agent_id, attempts)
            return FetchOutcome(
                ok=True,
                status=attempt.status,
                body=attempt.text,
                agent_used=agent_id,
                attempt_count=attempts,
                content=attempt.content,
                content_type=attempt.content_type,
                payload=verdict.payload,
            )

        last_reason = verdict.reason
        LOGGER.info(
            "[%s] agent %s rejected: %s (status=%s, len=%d)",
            label,
            agent_id,
            verdict.reason,
            attempt.status,
            len(attempt.text),
        )

    if attempts == 0:
        raise NoAgentsAvailableError(f"None of the agents {list(agent_ids)!r} exist in the catalog.")

    LOGGER.info("[%s] all agents failed after %d attempt(s) for %s", label, attempts, url)
    return finish()


async def fetch_with_agent(
    url: str,
    agent_id: str,
    *,
    catalog: AgentCatalog,
    http_client: httpx.AsyncClient | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> FetchOutcome[str]:
    """
    Fetch once with an explicitly chosen agent: no classification, no retry.

    Unknown agent ids raise `UnknownAgentError` before any request is made.
    Transport errors propagate. An injected `http_client` must not be in use by
    a concurrent fetch (see `perform_fetch`).
    """
    profile = catalog.lookup(agent_id)
    LOGGER.info("[fetch] using agent %s: %s", agent_id, url)

    if http_client is None:
        async with new_http_client(timeout_seconds) as client:
            attempt = await perform_fetch(url, profile, http_client=client)
    else:
        attempt = await perform_fetch(url, profile, http_client=http_client)

    return FetchOutcome(
        ok=attempt.http_ok,
        status=attempt.status,
        body=attempt.text,
        agent_used=agent_id,
        attempt_count=1,
        content=attempt.content,
        content_type=attempt.content_type,
        payload=attempt.text,
    )


async def fetch_url(
    url: str,
    agent: str = HEURISTIC,
    *,
    catalog: AgentCatalog,
    http_client: httpx.AsyncClient | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    cancel_event: asyncio.Event | None = None,
) -> FetchOutcome[str]:
    """Fetch raw page text with a named agent, or with `"heuristic"` to walk the catalog order."""
    if agent == HEURISTIC:
        return await try_agents(
            url,
            catalog=catalog,
            http_client=http_client,
            timeout_seconds=timeout_seconds,
            cancel_event=cancel_event,
        )
    return await fetch_with_agent(
        url,
        agent,
        catalog=catalog,
        http_client=http_client,
        timeout_seconds=timeout_seconds,
    )
