"""Parser and matcher for ``robots.txt`` crawl policies.

Only the subset the network uses is understood: ``User-agent``, ``Disallow``,
``Allow`` and ``Crawl-delay``. Anything that cannot be parsed is skipped, so
a malformed file degrades to "allow everything".
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re


logger = logging.getLogger(__name__)

ROBOTS_PATH = "/robots.txt"


@dataclass(frozen=True)
class RobotsPattern:
    """A path pattern where ``*`` matches any run of characters."""

    value: str
    regex: re.Pattern[str]

    @classmethod
    def compile(cls, value: str) -> RobotsPattern:
        escaped = ".*".join(re.escape(part) for part in value.split("*"))
        return cls(value=value, regex=re.compile(escaped))

    def matches(self, path: str) -> bool:
        return self.regex.search(path) is not None


@dataclass
class RobotsRules:
    """Directives that apply to one user agent."""

    disallow: list[RobotsPattern] = field(default_factory=list)
    allow: list[RobotsPattern] = field(default_factory=list)
    crawl_delay: float | None = None

    @classmethod
    def allow_all(cls) -> RobotsRules:
        return cls()

    def is_allowed(self, path: str) -> bool:
        """Return True unless a Disallow matches and no equally specific Allow does."""
        blocking = [pattern for pattern in self.disallow if pattern.matches(path)]
        if not blocking:
            return True
        longest_block = max(len(pattern.value) for pattern in blocking)
        return any(pattern.matches(path) and len(pattern.value) >= longest_block for pattern in self.allow)


def _agent_applies(agent: str, user_agent: str) -> bool:
    agent = agent.strip().lower()
    return agent == "*" or (bool(agent) and agent in user_agent.lower())


def parse_robots_txt(text: str, user_agent: str) -> RobotsRules:
    """Collect the directives of every group addressed to ``user_agent`` or ``*``."""
    rules = RobotsRules()
    group_agents: list[str] = []
    in_agent_lines = False

    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        name, value = (part.strip() for part in line.split(":", 1))
        name = name.lower()

        if name == "user-agent":
            if not in_agent_lines:
                group_agents = []
            group_agents.append(value)
            in_agent_lines = True
            continue

        in_agent_lines = False
        if not any(_agent_applies(agent, user_agent) for agent in group_agents):
            continue

        if name == "disallow" and value:
            rules.disallow.append(RobotsPattern.compile(value))
        elif name == "allow" and value:
            rules.allow.append(RobotsPattern.compile(value))
        elif name == "crawl-delay":
            try:
                delay = float(value)
            except ValueError:
                logger.debug("Ignoring invalid Crawl-delay value: %r", value)
                continue
            if delay >= 0:
                rules.crawl_delay = max(delay, rules.crawl_delay or 0.0)

    return rules
