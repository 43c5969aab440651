"""MCP server: fetch pages behind anti-bot defenses and return clean article text/Markdown."""

__version__ = "0.1.0"
