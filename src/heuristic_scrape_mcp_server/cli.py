from __future__ import annotations

import argparse
import asyncio
import json

_TRANSPORT_FLAGS = frozenset({"--stdio", "--sse", "--http", "--streamable-http", "--transport"})


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="heuristic-scrape-mcp-server",
        description="Command-line entry for the heuristic scrape MCP server.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser(
        "start-mcp-server",
        help="Start the MCP server (stdio by default).",
        description="Start the MCP server. Unrecognized options (--http, --port 8000, ...) go to the server.",
    )

    fetch = commands.add_parser("fetch", help="Scrape one URL and print the JSON result.")
    fetch.add_argument("url", help="Absolute http(s) URL of the page or PDF.")
    fetch.add_argument(
        "--agent",
        default="heuristic",
        help="Agent profile id, or 'heuristic' to try profiles in order (default).",
    )
    fetch.add_argument(
        "--no-markdown",
        dest="markdown",
        action="store_false",
        help="Return cleaned plain text instead of Markdown.",
    )

    commands.add_parser("agents", help="Print the agent catalog and heuristic order as JSON.")
    return parser


def _server_argv(extra: list[str]) -> list[str]:
    """Arguments for `server.main`: drop a leading `--`, default to stdio."""
    if extra[:1] == ["--"]:
        extra = extra[1:]
    if any(arg.split("=", 1)[0] in _TRANSPORT_FLAGS for arg in extra):
        return extra
    return ["--stdio", *extra]


def main(argv: list[str] | None = None) -> None:
    from . import server

    parser = _build_arg_parser()
    args, extra = parser.parse_known_args(argv)

    if args.command == "start-mcp-server":
        server.main(_server_argv(extra))
        return

    if extra:
        parser.error(f"unrecognized arguments: {' '.join(extra)}")

    if args.command == "fetch":
        result = asyncio.run(server.scrape(args.url, markdown=args.markdown, agent=args.agent))
        print(json.dumps(result, indent=2, ensure_ascii=False))
    else:
        print(json.dumps(asyncio.run(server.list_agents()), indent=2))
