from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

from ..settings import Settings


HEURISTIC = "heuristic"


class AgentConfigError(RuntimeError):
    pass


class UnknownAgentError(AgentConfigError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Unknown agent: {agent_id}")
        self.agent_id = agent_id


class NoAgentsAvailableError(AgentConfigError):
    pass


@dataclass(frozen=True)
class AgentProfile:
    """
    A named header set that makes a request resemble one specific client.

    Header names keep their casing (and order) on the wire; lookups through
    `header()` are case-insensitive.
    """

    id: str
    display_name: str
    headers: tuple[tuple[str, str], ...]

    def header(self, name: str) -> str | None:
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    def has_header(self, name: str) -> bool:
        return self.header(name) is not None

    def as_dict(self) -> dict[str, str]:
        return dict(self.headers)

    @property
    def user_agent(self) -> str:
        return self.header("User-Agent") or ""


@dataclass(frozen=True)
class AgentCatalog:
    """Immutable agent registry plus the priority order used in heuristic mode."""

    profiles: Mapping[str, AgentProfile]
    heuristic_order: tuple[str, ...]
    _ids: tuple[str, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.profiles:
            raise NoAgentsAvailableError("Agent catalog is empty.")
        if not self.heuristic_order:
            raise NoAgentsAvailableError("Heuristic agent order is empty.")
        for agent_id, profile in self.profiles.items():
            if agent_id != profile.id:
                raise AgentConfigError(f"Catalog key {agent_id!r} does not match profile id {profile.id!r}.")
            if agent_id == HEURISTIC:
                raise AgentConfigError(f"{HEURISTIC!r} is reserved and cannot be an agent id.")
        seen: set[str] = set()
        for agent_id in self.heuristic_order:
            if agent_id not in self.profiles:
                raise UnknownAgentError(agent_id)
            if agent_id in seen:
                raise AgentConfigError(f"Agent {agent_id!r} appears twice in the heuristic order.")
            seen.add(agent_id)
        # Read-only view: nothing can add or swap profiles after startup.
        object.__setattr__(self, "profiles", MappingProxyType(dict(self.profiles)))
        object.__setattr__(self, "_ids", tuple(self.profiles))

    def lookup(self, agent_id: str) -> AgentProfile:
        try:
            return self.profiles[agent_id]
        except KeyError:
            raise UnknownAgentError(agent_id) from None

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self.profiles

    @property
    def ids(self) -> tuple[str, ...]:
        return self._ids

    def with_order(self, order: Sequence[str]) -> "AgentCatalog":
        """Return a catalog sharing these profiles with a different heuristic order."""
        return AgentCatalog(profiles=self.profiles, heuristic_order=tuple(order))

    def subset(self, agent_ids: Iterable[str]) -> "AgentCatalog":
        """Return a catalog reduced to `agent_ids` (which also becomes the order)."""
        ids = tuple(agent_ids)
        return AgentCatalog(
            profiles={agent_id: self.lookup(agent_id) for agent_id in ids},
            heuristic_order=ids,
        )


def agent_choices(catalog: AgentCatalog) -> tuple[str, ...]:
    """Valid values for an `agent` request parameter."""
    return (*catalog.ids, HEURISTIC)


# Header sets follow what each client really sends (2025 releases). Browsers that
# do not implement client hints (Firefox, Safari) must not carry Sec-CH-UA*, and
# Safari sends no Sec-Fetch-* metadata either.
_CHROME_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
    "image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
)
_CHROME_BRANDS = '"Google Chrome";v="131", "Chromium";v="131", "Not_A Brand";v="24"'
_EDGE_BRANDS = '"Microsoft Edge";v="131", "Chromium";v="131", "Not_A Brand";v="24"'

_NAVIGATION_FETCH_METADATA = (
    ("Sec-Fetch-Dest", "document"),
    ("Sec-Fetch-Mode", "navigate"),
    ("Sec-Fetch-Site", "none"),
    ("Sec-Fetch-User", "?1"),
)


def _chromium_headers(
    *,
    user_agent: str,
    brands: str,
    platform: str,
    mobile: bool,
    priority: bool,
) -> tuple[tuple[str, str], ...]:
    headers: list[tuple[str, str]] = [
        ("User-Agent", user_agent),
        ("Accept", _CHROME_ACCEPT),
        ("Accept-Language", "en-US,en;q=0.9"),
        ("Accept-Encoding", "gzip, deflate, br, zstd"),
    ]
    if priority:
        headers.append(("Cache-Control", "max-age=0"))
    headers.extend(
        [
            ("Sec-CH-UA", brands),
            ("Sec-CH-UA-Mobile", "?1" if mobile else "?0"),
            ("Sec-CH-UA-Platform", f'"{platform}"'),
            *_NAVIGATION_FETCH_METADATA,
            ("Upgrade-Insecure-Requests", "1"),
        ]
    )
    if priority:
        headers.append(("Priority", "u=0, i"))
    return tuple(headers)


DEFAULT_PROFILES: tuple[AgentProfile, ...] = (
    AgentProfile(
        id="chrome",
        display_name="Chrome 131 (Windows)",
        headers=_chromium_headers(
            user_agent=(
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
            ),
            brands=_CHROME_BRANDS,
            platform="Windows",
            mobile=False,
            priority=True,
        ),
    ),
    AgentProfile(
        id="chrome_mac",
        display_name="Chrome 131 (macOS)",
        headers=_chromium_headers(
            user_agent=(
                "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
            ),
            brands=_CHROME_BRANDS,
            platform="macOS",
            mobile=False,
            priority=True,
        ),
    ),
    AgentProfile(
        id="chrome_mobile",
        display_name="Chrome 131 (Android)",
        headers=_chromium_headers(
            user_agent=(
                "Mozilla/5.0 (Linux; Android 10; K) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/131.0.0.0 Mobile Safari/537.36"
            ),
            brands=_CHROME_BRANDS,
            platform="Android",
            mobile=True,
            priority=False,
        ),
    ),
    AgentProfile(
        id="edge",
        display_name="Edge 131 (Windows)",
        headers=_chromium_headers(
            user_agent=(
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0"
            ),
            brands=_EDGE_BRANDS,
            platform="Windows",
            mobile=False,
            priority=False,
        ),
    ),
    AgentProfile(
        id="firefox",
        display_name="Firefox 133 (Windows)",
        headers=(
            ("User-Agent", "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0"),
            (
                "Accept",
                "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
                "image/png,image/svg+xml,*/*;q=0.8",
            ),
            ("Accept-Language", "en-US,en;q=0.5"),
            ("Accept-Encoding", "gzip, deflate, br, zstd"),
            ("Upgrade-Insecure-Requests", "1"),
            *_NAVIGATION_FETCH_METADATA,
            ("Priority", "u=0, i"),
        ),
    ),
    AgentProfile(
        id="safari",
        display_name="Safari 18 (macOS)",
        headers=(
            (
                "User-Agent",
                "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
                "(KHTML, like Gecko) Version/18.2 Safari/605.1.15",
            ),
            ("Accept", "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"),
            ("Accept-Language", "en-US,en;q=0.9"),
            ("Accept-Encoding", "gzip, deflate, br"),
        ),
    ),
    AgentProfile(
        id="googlebot",
        display_name="Googlebot 2.1",
        headers=(
            ("User-Agent", "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"),
            ("Accept", "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"),
            ("Accept-Language", "en-US,en;q=0.5"),
            ("Accept-Encoding", "gzip, deflate"),
        ),
    ),
    AgentProfile(
        id="googlebot_chrome",
        display_name="Googlebot (evergreen Chrome renderer)",
        headers=(
            (
                "User-Agent",
                "Mozilla/5.0 (Linux; Android 6.0.1; Nexus 5X Build/MMB29P) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/131.0.0.0 Mobile Safari/537.36 "
                "(compatible; Googlebot/2.1; +http://www.google.com/bot.html)",
            ),
            (
                "Accept",
                "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
                "image/apng,*/*;q=0.8",
            ),
            ("Accept-Language", "en-US,en;q=0.9"),
            ("Accept-Encoding", "gzip, deflate, br"),
        ),
    ),
    AgentProfile(
        id="axios",
        display_name="axios 1.8 (Node.js)",
        headers=(
            ("User-Agent", "axios/1.8.4"),
            ("Accept", "text/markdown, text/html, */*"),
            ("Accept-Encoding", "gzip, compress, deflate, br"),
        ),
    ),
    AgentProfile(
        id="curl",
        display_name="curl 8.4",
        headers=(
            ("User-Agent", "curl/8.4.0"),
            ("Accept", "*/*"),
        ),
    ),
)

# Most likely to succeed first: a mainstream browser, then the crawler most sites
# allow-list, then alternative engines, then a bare programmatic client.
DEFAULT_HEURISTIC_ORDER: tuple[str, ...] = (
    "chrome",
    "googlebot",
    "firefox",
    "safari",
    "chrome_mobile",
    "axios",
)


def default_catalog(order: Sequence[str] | None = None) -> AgentCatalog:
    return AgentCatalog(
        profiles={profile.id: profile for profile in DEFAULT_PROFILES},
        heuristic_order=tuple(order) if order else DEFAULT_HEURISTIC_ORDER,
    )


def build_catalog(settings: Settings) -> AgentCatalog:
    """Build the process catalog from settings; configuration errors surface here, at startup."""
    return default_catalog(settings.heuristic_order or None)
