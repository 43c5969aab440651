from __future__ import annotations

import sys
import json
from pathlib import Path
import unittest
import asyncio
from unittest.mock import AsyncMock, patch

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from heuristic_scrape_mcp_server.models import ScrapeMeta, ScrapeResult
from heuristic_scrape_mcp_server.scrape.fetch import FetchOutcome


def _page(agent_used: str = "googlebot", attempts: int = 2) -> ScrapeResult:
    return ScrapeResult(
        title="Harbour expansion approved",
        content="<p>Hello</p>",
        text_content="Hello",
        length=5,
        meta=ScrapeMeta(agent_used=agent_used, attempts=attempts),
    )


def _request(query: bytes):
    from starlette.requests import Request

    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "query_string": query,
            "headers": [],
        }
    )


class TestScrapeTool(unittest.IsolatedAsyncioTestCase):
    async def test_scrape_returns_page(self) -> None:
        from heuristic_scrape_mcp_server.server import scrape

        outcome = FetchOutcome(ok=True, status=200, body="", agent_used="googlebot", attempt_count=2, payload=_page())
        with patch(
            "heuristic_scrape_mcp_server.server.scrape_url", new_callable=AsyncMock
        ) as mock_scrape:
            mock_scrape.return_value = outcome
            out = await scrape("https://example.com/story")

        self.assertEqual(out["url"], "https://example.com/story")
        self.assertIsNone(out["error"])
        self.assertEqual(out["page"]["title"], "Harbour expansion approved")
        self.assertEqual(out["page"]["meta"], {"agent_used": "googlebot", "attempts": 2})
        self.assertEqual(out["meta"], {"agent_used": "googlebot", "attempts": 2})
        self.assertEqual(mock_scrape.await_args.kwargs["agent"], "heuristic")
        self.assertTrue(mock_scrape.await_args.kwargs["markdown"])

    async def test_scrape_reports_exhausted_agents(self) -> None:
        from heuristic_scrape_mcp_server.server import scrape

        outcome = FetchOutcome(
            ok=False,
            status=403,
            body="Access Denied",
            agent_used="axios",
            attempt_count=6,
            reason="status 403",
        )
        with patch(
            "heuristic_scrape_mcp_server.server.scrape_url", new_callable=AsyncMock
        ) as mock_scrape:
            mock_scrape.return_value = outcome
            out = await scrape("https://example.com/story")

        self.assertIsNone(out["page"])
        self.assertIn("6 attempt(s)", out["error"])
        self.assertIn("axios", out["error"])
        self.assertEqual(out["meta"], {"agent_used": "axios", "attempts": 6})

    async def test_scrape_never_raises(self) -> None:
        from heuristic_scrape_mcp_server.server import scrape

        with patch(
            "heuristic_scrape_mcp_server.server.scrape_url", new_callable=AsyncMock
        ) as mock_scrape:
            mock_scrape.side_effect = RuntimeError("boom")
            out = await scrape("https://example.com/story")

        self.assertIsNone(out["page"])
        self.assertEqual(out["error"], "RuntimeError: boom")
        self.assertIsNone(out["meta"])

    async def test_scrape_returns_timeout_note_on_timeout(self) -> None:
        from heuristic_scrape_mcp_server.server import scrape

        with patch(
            "heuristic_scrape_mcp_server.server.scrape_url", new_callable=AsyncMock
        ) as mock_scrape:
            mock_scrape.side_effect = asyncio.TimeoutError()
            out = await scrape("https://example.com/story")

        self.assertIsNone(out["page"])
        self.assertIn("TimeoutError", out["error"])

    async def test_time_budget_stops_the_loop_and_keeps_meta(self) -> None:
        import httpx

        from heuristic_scrape_mcp_server import server
        from heuristic_scrape_mcp_server.scrape.agents import default_catalog
        from heuristic_scrape_mcp_server.settings import Settings

        async def slow_denial(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.3)
            return httpx.Response(403, text="Access Denied")

        def client_factory(timeout_seconds: float = 15.0) -> httpx.AsyncClient:
            return httpx.AsyncClient(transport=httpx.MockTransport(slow_denial))

        catalog = default_catalog().subset(["chrome", "googlebot", "firefox", "safari"])
        with patch.object(server, "settings", Settings(tool_total_timeout_seconds=0.5)), patch(
            "heuristic_scrape_mcp_server.scrape.fetch.new_http_client", side_effect=client_factory
        ):
            response = await server._scrape_response(
                "https://example.com/story", markdown=True, agent="heuristic", catalog=catalog
            )

        self.assertIsNone(response.page)
        self.assertIsNotNone(response.meta)
        self.assertGreaterEqual(response.meta.attempts, 1)
        self.assertLess(response.meta.attempts, 4)
        self.assertIn(response.meta.agent_used, ("chrome", "googlebot", "firefox"))
        self.assertIn("TimeoutError: tool time budget (0.5s) exceeded", response.error)
        self.assertIn("Cancelled after", response.error)

    async def test_scrape_passes_a_cancel_event(self) -> None:
        from heuristic_scrape_mcp_server.server import scrape

        outcome = FetchOutcome(ok=True, status=200, body="", agent_used="chrome", attempt_count=1, payload=_page())
        with patch(
            "heuristic_scrape_mcp_server.server.scrape_url", new_callable=AsyncMock
        ) as mock_scrape:
            mock_scrape.return_value = outcome
            await scrape("https://example.com/story")

        cancel_event = mock_scrape.await_args.kwargs["cancel_event"]
        self.assertIsInstance(cancel_event, asyncio.Event)
        self.assertFalse(cancel_event.is_set())

    async def test_unknown_agent_is_reported_without_fetching(self) -> None:
        from heuristic_scrape_mcp_server.server import scrape

        with patch("heuristic_scrape_mcp_server.scrape.fetch.perform_fetch", new_callable=AsyncMock) as mock_fetch:
            out = await scrape("https://example.com/story", agent="netscape")

        mock_fetch.assert_not_awaited()
        self.assertIsNone(out["page"])
        self.assertIn("UnknownAgentError", out["error"])
        self.assertIn("netscape", out["error"])

    async def test_list_agents(self) -> None:
        from heuristic_scrape_mcp_server.server import list_agents

        out = await list_agents()
        ids = [agent["id"] for agent in out["agents"]]
        self.assertIn("curl", ids)
        self.assertEqual(out["heuristic_order"][0], "chrome")
        by_id = {agent["id"]: agent for agent in out["agents"]}
        self.assertFalse(by_id["curl"]["in_heuristic_order"])
        self.assertTrue(by_id["googlebot"]["in_heuristic_order"])
        self.assertIn("Googlebot", by_id["googlebot"]["user_agent"])


class TestHttpEndpoint(unittest.IsolatedAsyncioTestCase):
    async def test_rejects_non_http_url(self) -> None:
        from heuristic_scrape_mcp_server.server import scrape_http

        with patch(
            "heuristic_scrape_mcp_server.server.scrape_url", new_callable=AsyncMock
        ) as mock_scrape:
            response = await scrape_http(_request(b"url=ftp%3A%2F%2Fexample.com%2Ffile"))

        mock_scrape.assert_not_awaited()
        self.assertEqual(response.status_code, 400)
        body = json.loads(response.body)
        self.assertIsNone(body["page"])
        self.assertIn("url", body["error"])

    async def test_rejects_missing_url_and_unknown_agent(self) -> None:
        from heuristic_scrape_mcp_server.server import scrape_http

        response = await scrape_http(_request(b""))
        self.assertEqual(response.status_code, 400)

        response = await scrape_http(_request(b"url=https%3A%2F%2Fexample.com&agent=netscape"))
        self.assertEqual(response.status_code, 400)
        self.assertIn("agent", json.loads(response.body)["error"])

    async def test_passes_query_through(self) -> None:
        from heuristic_scrape_mcp_server.server import scrape_http

        outcome = FetchOutcome(ok=True, status=200, body="", agent_used="curl", attempt_count=1, payload=_page("curl", 1))
        with patch(
            "heuristic_scrape_mcp_server.server.scrape_url", new_callable=AsyncMock
        ) as mock_scrape:
            mock_scrape.return_value = outcome
            response = await scrape_http(_request(b"url=https%3A%2F%2Fexample.com%2Fa&markdown=false&agent=curl"))

        self.assertEqual(response.status_code, 200)
        body = json.loads(response.body)
        self.assertEqual(body["page"]["meta"]["agent_used"], "curl")
        self.assertEqual(mock_scrape.await_args.args[0], "https://example.com/a")
        self.assertEqual(mock_scrape.await_args.kwargs["agent"], "curl")
        self.assertFalse(mock_scrape.await_args.kwargs["markdown"])


class TestServerMain(unittest.TestCase):
    def test_http_transport_binds_from_args(self) -> None:
        from heuristic_scrape_mcp_server import server

        with patch.object(server.mcp, "run") as mock_run, patch.object(server.mcp.settings, "port", 1):
            server.main(["--http", "--port", "9001"])
            self.assertEqual(server.mcp.settings.port, 9001)

        mock_run.assert_called_once_with(transport="streamable-http", mount_path=None)

    def test_transport_option_and_shortcuts_are_exclusive(self) -> None:
        from heuristic_scrape_mcp_server import server

        parser = server._build_arg_parser()
        self.assertEqual(parser.parse_args([]).transport, "stdio")
        self.assertEqual(parser.parse_args(["--sse"]).transport, "sse")
        self.assertEqual(parser.parse_args(["--transport", "streamable-http"]).transport, "streamable-http")
        with self.assertRaises(SystemExit):
            parser.parse_args(["--sse", "--http"])

    def test_stdio_refuses_interactive_terminal(self) -> None:
        from heuristic_scrape_mcp_server import server

        with patch.object(server.sys, "stdin") as mock_stdin, patch.dict(
            server.os.environ, {"MCP_ALLOW_TTY_STDIO": ""}, clear=False
        ), patch.object(server.mcp, "run") as mock_run:
            mock_stdin.isatty.return_value = True
            with self.assertRaises(SystemExit) as ctx:
                server.main(["--stdio"])

        self.assertEqual(ctx.exception.code, 2)
        mock_run.assert_not_called()


if __name__ == "__main__":
    unittest.main()
